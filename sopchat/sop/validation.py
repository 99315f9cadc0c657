"""
SOP structural validation.

Errors are collected in one pass and returned together so the model can fix
everything at once. Nothing here raises on bad input.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from .models import SOP, StepGraph

logger = logging.getLogger(__name__)

REQUIRED_SOP_FIELDS = ("id", "name", "displayName")


def _is_number(value: Any) -> bool:
    # bool is an int subclass; a step number of True is not a number
    return isinstance(value, int | float) and not isinstance(value, bool)


def validate_sop_structure(data: Any) -> list[str]:
    """Return every structural problem with an SOP payload (empty when valid)."""
    if not isinstance(data, dict):
        return ["SOP must be a JSON object"]

    # Without steps nothing else is worth reporting
    steps = data.get("steps")
    if not isinstance(steps, list) or not steps:
        return ["Missing steps array"]

    errors: list[str] = []
    for field in REQUIRED_SOP_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"Missing required field: {field}")

    seen_ids: set[str] = set()
    for position, step in enumerate(steps, start=1):
        if not isinstance(step, dict):
            errors.append(f"Step {position} must be an object")
            continue

        step_id = step.get("id")
        if not isinstance(step_id, str) or not step_id.strip():
            errors.append(f"Step {position} is missing an id")
        elif step_id in seen_ids:
            errors.append(f"Duplicate step id: {step_id}")
        else:
            seen_ids.add(step_id)

        if not _is_number(step.get("stepNumber")):
            errors.append(f"Step {position} ({step_id or 'unknown'}) must have a numeric stepNumber")

    # Only walk the step graph once ids are sane
    if not errors:
        errors.extend(_graph_errors(steps))

    return errors


def _graph_errors(steps: list[dict[str, Any]]) -> list[str]:
    errors: list[str] = []
    edges: list[tuple[str, list[str]]] = []
    for step in steps:
        next_step = step.get("nextStep")
        targets = [next_step] if isinstance(next_step, str) else next_step
        if targets is None:
            targets = []
        elif not isinstance(targets, list):
            errors.append(f"Step {step['id']} has an invalid nextStep")
            targets = []
        elif not all(isinstance(target, str) for target in targets):
            errors.append(f"Step {step['id']} has a non-string nextStep entry")
            targets = [target for target in targets if isinstance(target, str)]
        edges.append((step["id"], targets))

    graph = StepGraph.from_edges(edges)
    for step_id, unknown in graph.unknown_targets().items():
        errors.extend(f"Step {step_id} points to unknown step: {target}" for target in unknown)
    # Loops are allowed; steps nothing leads to are not
    errors.extend(
        f"Step {step_id} cannot be reached from the first step"
        for step_id in graph.unreachable_step_ids()
    )
    return errors


def parse_sop_payload(raw: Any) -> tuple[SOP | None, list[str]]:
    """
    Parse an SOP delivered as a JSON string (or already-decoded object).

    Returns the model and an empty list on success, or ``None`` and the list of
    problems found.
    """
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            return None, [f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})"]
    else:
        data = raw

    errors = validate_sop_structure(data)
    if errors:
        logger.debug("SOP payload rejected with %d error(s)", len(errors))
        return None, errors

    try:
        return SOP.model_validate(data), []
    except ValidationError as e:
        return None, [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
