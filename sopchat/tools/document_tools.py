"""
Document-writing tool.

The assistant delivers formatted step output through ``write_document``; the
document is stored and shown to the user by the UI, so the model is told not
to repeat it.
"""

from __future__ import annotations

import logging
from typing import Any

from sopchat.history.repository import MessageStore

from .base import ToolExecutionContext, ToolOutput, missing_fields

logger = logging.getLogger(__name__)

WRITE_DOCUMENT_FIELDS = ("stepId", "documentName", "content")


async def write_document(
    args: dict[str, Any], context: ToolExecutionContext, store: MessageStore
) -> ToolOutput:
    missing = missing_fields(args, WRITE_DOCUMENT_FIELDS)
    if missing:
        return ToolOutput(
            result=(
                f"Error: write_document requires {', '.join(WRITE_DOCUMENT_FIELDS)}. "
                f"Missing: {', '.join(missing)}."
            )
        )

    step_id = args["stepId"]
    if context.sop is not None and context.sop.find_step(step_id) is None:
        logger.warning(
            "write_document called with step %s not in SOP %s", step_id, context.sop.id
        )

    document = await store.save_document(
        chat_id=context.chat_id,
        document_name=args["documentName"],
        content=args["content"],
        run_id=context.sop_run_id,
        step_id=step_id,
    )
    logger.info("← Repository: saved document %d (%s)", document.id, document.document_name)

    return ToolOutput(
        result=(
            f'Document "{document.document_name}" was written for step {step_id} and is '
            "now displayed to the user. Do not repeat its content in your reply."
        ),
        metadata={
            "documentId": document.id,
            "documentName": document.document_name,
            "stepId": step_id,
        },
    )
