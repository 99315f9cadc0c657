"""
Step Manager

Decides once per turn whether an SOP run stays on its current step or moves
to one of the step's declared next steps. The decision comes from a forced
function call whose only parameter is an enum of the legal values, and the
returned value is checked against that set again before it is used. Any
failure keeps the run where it is.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from sopchat.chat.logging_utils import log_step_transition
from sopchat.chat.models import (
    ChatCompletionMessage,
    ToolDefinition,
    ToolFunctionDefinition,
    UserMessage,
)
from sopchat.history.models import Message
from sopchat.sop.models import SOP, TERMINAL_STEP, SOPRun, SOPStep

if TYPE_CHECKING:
    from sopchat.clients import LLMClient
    from sopchat.history.repository import MessageStore

logger = logging.getLogger(__name__)

STAY_ON_CURRENT_STEP = "stay_on_current_step"
DECISION_FUNCTION = "choose_next_step"


class StepDecision(BaseModel):
    previous_step: str
    next_step: str
    changed: bool = False

    @classmethod
    def stay(cls, step_id: str) -> StepDecision:
        return cls(previous_step=step_id, next_step=step_id)


def legal_decisions(step: SOPStep, sop: SOP) -> list[str]:
    """``stay_on_current_step`` followed by the step's legal next step ids."""
    options = [STAY_ON_CURRENT_STEP]
    for step_id in sop.graph().legal_next_step_ids(step.id):
        if step_id not in options:
            options.append(step_id)
    return options


def _decision_tool(options: list[str]) -> ToolDefinition:
    return ToolDefinition(
        function=ToolFunctionDefinition(
            name=DECISION_FUNCTION,
            description="Record which step the workflow should be on after the user's message.",
            parameters={
                "type": "object",
                "properties": {"nextStep": {"type": "string", "enum": options}},
                "required": ["nextStep"],
                "additionalProperties": False,
            },
        )
    )


def _recent_context(recent_messages: list[Message]) -> str:
    lines = [
        f"{m.role.upper()}: {m.content}"
        for m in recent_messages
        if m.content and m.role in ("user", "assistant")
    ]
    return "\n".join(lines) or "(no earlier messages)"


def build_decision_prompt(
    user_message: str, step: SOPStep, sop: SOP, options: list[str], recent_messages: list[Message]
) -> str:
    return (
        "You are a workflow manager. Based on the user's message and the complete SOP "
        "context, determine which step the workflow should transition to.\n\n"
        f'User Message: "{user_message}"\n\n'
        f"Recent conversation:\n{_recent_context(recent_messages)}\n\n"
        f"Complete SOP:\n{json.dumps(sop.to_wire(), indent=2)}\n\n"
        f"Current Step ID: {step.id}\n\n"
        f"Valid Next Steps: {', '.join(options)}\n\n"
        "Analyze the user's message and the current step requirements. Decide whether to:\n"
        "1. Stay on the current step (if more work is needed)\n"
        "2. Advance to one of the valid next steps (if the current step is complete)\n"
        f"Choose {TERMINAL_STEP} only when the whole workflow is finished."
    )


class StepManager:
    """Constrained step-transition decisions for SOP runs."""

    def __init__(self, llm_client: LLMClient, step_conf: dict[str, Any], model: str | None = None):
        self.llm_client = llm_client
        self.step_conf = step_conf
        self.model = step_conf.get("model") or model
        self.enabled = bool(step_conf.get("enabled", True))
        self.recent_limit = int(step_conf.get("recent_messages", 6))

    async def decide(
        self,
        user_message: str,
        current_step: SOPStep,
        sop: SOP,
        recent_messages: list[Message] | None = None,
    ) -> StepDecision:
        """Never raises; every failure resolves to staying on ``current_step``."""
        if not self.enabled:
            return StepDecision.stay(current_step.id)

        options = legal_decisions(current_step, sop)
        if len(options) == 1:
            return StepDecision.stay(current_step.id)

        recent = (recent_messages or [])[-self.recent_limit :] if self.recent_limit > 0 else []
        prompt = build_decision_prompt(user_message, current_step, sop, options, recent)
        messages: list[ChatCompletionMessage] = [UserMessage(content=prompt)]

        try:
            response = await self.llm_client.get_response_with_tools(
                messages,
                [_decision_tool(options)],
                model=self.model,
                tool_choice={"type": "function", "function": {"name": DECISION_FUNCTION}},
            )
            tool_calls = response.message.tool_calls or []
            if not tool_calls:
                raise ValueError("model did not call the decision function")
            choice = json.loads(tool_calls[0].function.arguments).get("nextStep")
        except Exception as e:
            logger.error("Error determining next step for %s: %s", current_step.id, e)
            return StepDecision.stay(current_step.id)

        if choice not in options:
            logger.warning(
                "Model returned invalid step %r. Valid options: %s. Staying on current step.",
                choice,
                ", ".join(options),
            )
            return StepDecision.stay(current_step.id)

        if choice == STAY_ON_CURRENT_STEP:
            return StepDecision.stay(current_step.id)

        return StepDecision(previous_step=current_step.id, next_step=choice, changed=True)

    async def apply(self, run: SOPRun, decision: StepDecision, store: MessageStore) -> SOPRun:
        """Persist a changed decision; moving to the terminal step completes the run."""
        if not decision.changed:
            return run

        await store.update_run_step(run.id, decision.next_step)
        if decision.next_step == TERMINAL_STEP:
            await store.complete_run(run.id)
        log_step_transition(run.chat_id, decision.previous_step, decision.next_step)

        updated = await store.get_active_run(run.chat_id) or await store.get_latest_run(run.chat_id)
        return updated or run.model_copy(update={"current_step_id": decision.next_step})
