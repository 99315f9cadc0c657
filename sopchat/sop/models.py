"""
SOP Data Models

Standard Operating Procedure definitions, runs, and the step graph used by the
step state machine. Wire format is camelCase (how SOPs are authored and stored);
attributes are snake_case.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# Sentinel step id meaning "the workflow is finished"
TERMINAL_STEP = "DONE"

RunStatus = Literal["in_progress", "completed", "paused"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        """Dump using the camelCase field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ExpectedOutput(_CamelModel):
    """What the assistant should produce at a step."""

    type: Literal["text", "markdown-document", "structured", "conversation"] = "text"
    format: str | None = None
    description: str | None = None


class SOPFormat(_CamelModel):
    """Reusable output template referenced by steps."""

    id: str
    name: str
    template: str
    requirements: list[str] = Field(default_factory=list)


class UserDocument(_CamelModel):
    id: str
    name: str
    description: str = ""
    type: Literal["text", "file"] = "text"
    required: bool = True


class SOPStep(_CamelModel):
    id: str
    step_number: int | float = Field(alias="stepNumber")
    assistant_facing_title: str = Field(default="", alias="assistantFacingTitle")
    user_facing_title: str | None = Field(default=None, alias="userFacingTitle")
    description: str = ""
    referenced_documents: list[str] = Field(default_factory=list, alias="referencedDocuments")
    expected_output: ExpectedOutput = Field(default_factory=ExpectedOutput, alias="expectedOutput")
    # Single id, list of candidate ids (branching), or None / TERMINAL_STEP
    next_step: str | list[str] | None = Field(default=None, alias="nextStep")

    def next_step_ids(self) -> list[str]:
        """Declared next step ids in declaration order, duplicates removed."""
        if self.next_step is None:
            return []
        candidates = [self.next_step] if isinstance(self.next_step, str) else self.next_step
        seen: list[str] = []
        for candidate in candidates:
            if candidate and candidate not in seen:
                seen.append(candidate)
        return seen


class SOP(_CamelModel):
    id: str
    name: str
    display_name: str = Field(alias="displayName")
    description: str = ""
    version: str = "1.0.0"
    general_instructions: str | None = Field(default=None, alias="generalInstructions")
    user_documents: list[UserDocument] = Field(default_factory=list, alias="userDocuments")
    assistant_output_formats: list[SOPFormat] = Field(
        default_factory=list, alias="assistantOutputFormats"
    )
    steps: list[SOPStep]
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    def find_step(self, step_id: str | None) -> SOPStep | None:
        if step_id is None:
            return None
        return next((step for step in self.steps if step.id == step_id), None)

    def first_step(self) -> SOPStep | None:
        return self.steps[0] if self.steps else None

    def graph(self) -> StepGraph:
        return StepGraph.from_sop(self)


class SOPRun(BaseModel):
    """One execution of an SOP for a chat."""

    id: int
    chat_id: int
    sop_id: str
    current_step_id: str
    status: RunStatus = "in_progress"
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None


class StepGraph:
    """
    Directed step graph stored as an arena.

    Steps live in a list; edges are lists of indices into that list. Edges to
    TERMINAL_STEP are recorded as a terminal flag instead of an index, and edges
    to ids that do not exist are kept aside so validation can report them.
    """

    def __init__(self, step_ids: list[str]) -> None:
        self.step_ids = step_ids
        self.index: dict[str, int] = {step_id: i for i, step_id in enumerate(step_ids)}
        self.edges: list[list[int]] = [[] for _ in step_ids]
        self.terminal: list[bool] = [False for _ in step_ids]
        self.dangling: dict[str, list[str]] = {}

    @classmethod
    def from_sop(cls, sop: SOP) -> StepGraph:
        return cls.from_edges([(step.id, step.next_step_ids()) for step in sop.steps])

    @classmethod
    def from_edges(cls, steps: list[tuple[str, list[str]]]) -> StepGraph:
        """Build from ``(step_id, next_step_ids)`` pairs in step order."""
        graph = cls([step_id for step_id, _ in steps])
        for i, (step_id, targets) in enumerate(steps):
            for target in targets:
                if target == TERMINAL_STEP:
                    graph.terminal[i] = True
                elif target in graph.index:
                    graph.edges[i].append(graph.index[target])
                else:
                    graph.dangling.setdefault(step_id, []).append(target)
        return graph

    def legal_next_step_ids(self, step_id: str) -> list[str]:
        """Ids the run may move to from ``step_id`` (terminal sentinel included)."""
        i = self.index.get(step_id)
        if i is None:
            return []
        legal = [self.step_ids[j] for j in self.edges[i]]
        if self.terminal[i]:
            legal.append(TERMINAL_STEP)
        return legal

    def unknown_targets(self) -> dict[str, list[str]]:
        """Step id -> next-step ids that name no step in the SOP."""
        return {step_id: list(targets) for step_id, targets in self.dangling.items()}

    def unreachable_step_ids(self) -> list[str]:
        """Steps that cannot be reached from the first step."""
        if not self.step_ids:
            return []
        seen = {0}
        stack = [0]
        while stack:
            node = stack.pop()
            for nxt in self.edges[node]:
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return [step_id for i, step_id in enumerate(self.step_ids) if i not in seen]
