"""
SOP authoring tools.

SOPs arrive as complete JSON strings, are validated structurally before any
write, and every problem is reported back to the model at once. Built-in SOPs
cannot be deleted.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sopchat.history.repository import MessageStore
from sopchat.sop import PROTECTED_SOP_IDS, parse_sop_payload

from .base import ToolExecutionContext, ToolOutput, missing_fields

logger = logging.getLogger(__name__)


def _validation_failure(action: str, errors: list[str]) -> ToolOutput:
    lines = "\n".join(f"- {error}" for error in errors)
    return ToolOutput(
        result=f"SOP validation failed; nothing was {action}. Fix these problems and try again:\n{lines}",
        metadata={"validationErrors": errors},
    )


async def _available_ids(store: MessageStore) -> str:
    return ", ".join(sop.id for sop in await store.list_sops()) or "(none)"


async def display_sop_to_user(
    args: dict[str, Any], context: ToolExecutionContext, store: MessageStore
) -> ToolOutput:
    if missing_fields(args, ("sopId",)):
        return ToolOutput(result="Error: display_sop_to_user requires sopId.")

    sop_id = args["sopId"]
    sop = await store.get_sop(sop_id)
    if sop is None:
        return ToolOutput(
            result=f"SOP not found: {sop_id}. Available SOPs: {await _available_ids(store)}"
        )

    return ToolOutput(
        result=json.dumps(sop.to_wire(), indent=2),
        metadata={"sopId": sop.id, "displaySop": True},
    )


async def create_sop(
    args: dict[str, Any], context: ToolExecutionContext, store: MessageStore
) -> ToolOutput:
    if "newSOP" not in args:
        return ToolOutput(result="Error: create_sop requires newSOP (the complete SOP as a JSON string).")

    sop, errors = parse_sop_payload(args["newSOP"])
    if sop is None:
        return _validation_failure("created", errors)

    if await store.get_sop(sop.id) is not None:
        return ToolOutput(
            result=f"An SOP with id '{sop.id}' already exists. Use overwrite_sop to change it."
        )

    sop.created_at = None
    await store.save_sop(sop)
    logger.info("← Repository: created SOP %s", sop.id)
    return ToolOutput(
        result=f"Created SOP '{sop.id}' ({sop.display_name}) with {len(sop.steps)} step(s).",
        metadata={"sopId": sop.id, "action": "created"},
    )


async def overwrite_sop(
    args: dict[str, Any], context: ToolExecutionContext, store: MessageStore
) -> ToolOutput:
    if "modifiedSOP" not in args:
        return ToolOutput(
            result="Error: overwrite_sop requires modifiedSOP (the complete SOP as a JSON string)."
        )

    sop, errors = parse_sop_payload(args["modifiedSOP"])
    if sop is None:
        return _validation_failure("saved", errors)

    existing = await store.get_sop(sop.id)
    if existing is None:
        return ToolOutput(
            result=(
                f"SOP not found: {sop.id}. Use create_sop for new SOPs. "
                f"Available SOPs: {await _available_ids(store)}"
            )
        )

    sop.created_at = existing.created_at
    await store.save_sop(sop)
    logger.info("← Repository: overwrote SOP %s", sop.id)
    return ToolOutput(
        result=f"Saved changes to SOP '{sop.id}' ({sop.display_name}).",
        metadata={"sopId": sop.id, "action": "updated"},
    )


async def delete_sop(
    args: dict[str, Any], context: ToolExecutionContext, store: MessageStore
) -> ToolOutput:
    if missing_fields(args, ("sopId",)):
        return ToolOutput(result="Error: delete_sop requires sopId.")

    sop_id = args["sopId"]
    if sop_id in PROTECTED_SOP_IDS:
        return ToolOutput(
            result=(
                f"Cannot delete '{sop_id}': built-in SOPs "
                f"({', '.join(sorted(PROTECTED_SOP_IDS))}) are protected."
            )
        )

    if not await store.delete_sop(sop_id):
        return ToolOutput(
            result=f"SOP not found: {sop_id}. Available SOPs: {await _available_ids(store)}"
        )

    logger.info("← Repository: deleted SOP %s", sop_id)
    return ToolOutput(
        result=f"Deleted SOP '{sop_id}'.",
        metadata={"sopId": sop_id, "action": "deleted"},
    )
