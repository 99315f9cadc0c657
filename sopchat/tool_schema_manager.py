"""Tool Schema Manager

Registry for the built-in tools:
- Declares each tool as an MCP ``types.Tool`` (name, description, JSON Schema)
- Maps every ``ToolName`` to its handler and checks the mapping at startup
- Emits OpenAI-compatible tool definitions on demand

SOP tool descriptions list the SOP ids that currently exist, so the model
knows which ids it can pass.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import StrEnum

from mcp import McpError, types

from sopchat.chat.models import ToolDefinition, ToolFunctionDefinition
from sopchat.sop import PROTECTED_SOP_IDS, SOP
from sopchat.tools import (
    ToolHandler,
    create_sop,
    delete_sop,
    display_sop_to_user,
    overwrite_sop,
    write_document,
)

logger = logging.getLogger(__name__)

SOP_MANAGEMENT_ID = "sop-management"


class ToolName(StrEnum):
    WRITE_DOCUMENT = "write_document"
    DISPLAY_SOP_TO_USER = "display_sop_to_user"
    CREATE_SOP = "create_sop"
    OVERWRITE_SOP = "overwrite_sop"
    DELETE_SOP = "delete_sop"


SOP_AUTHORING_TOOLS = (
    ToolName.DISPLAY_SOP_TO_USER,
    ToolName.CREATE_SOP,
    ToolName.OVERWRITE_SOP,
    ToolName.DELETE_SOP,
)


def _object_schema(properties: dict[str, str], required: list[str]) -> dict:
    return {
        "type": "object",
        "properties": {
            name: {"type": "string", "description": description}
            for name, description in properties.items()
        },
        "required": required,
    }


DECLARATIONS: dict[ToolName, types.Tool] = {
    ToolName.WRITE_DOCUMENT: types.Tool(
        name=ToolName.WRITE_DOCUMENT,
        description=(
            "Writes a formatted document for the current SOP step. The document is "
            "displayed to the user automatically."
        ),
        inputSchema=_object_schema(
            {
                "stepId": "The ID of the current SOP step",
                "documentName": "The name/title of the document being written",
                "content": "The document content to write (HTML)",
            },
            ["stepId", "documentName", "content"],
        ),
    ),
    ToolName.DISPLAY_SOP_TO_USER: types.Tool(
        name=ToolName.DISPLAY_SOP_TO_USER,
        description=(
            "Retrieves and displays an existing SOP to the user. Returns the complete SOP "
            "JSON, which you can modify and pass to overwrite_sop. Use this first when "
            "editing or reviewing an existing SOP."
        ),
        inputSchema=_object_schema(
            {"sopId": "The unique ID of the SOP to retrieve"}, ["sopId"]
        ),
    ),
    ToolName.CREATE_SOP: types.Tool(
        name=ToolName.CREATE_SOP,
        description=(
            "Creates and saves a new SOP. Accepts the full new SOP as a JSON string. "
            "Get user approval before calling this tool."
        ),
        inputSchema=_object_schema(
            {
                "newSOP": (
                    "REQUIRED: Complete new SOP as a JSON string with all fields (id, name, "
                    "displayName, description, version, generalInstructions, steps, "
                    "assistantOutputFormats, userDocuments)"
                )
            },
            ["newSOP"],
        ),
    ),
    ToolName.OVERWRITE_SOP: types.Tool(
        name=ToolName.OVERWRITE_SOP,
        description=(
            "Saves approved changes to an existing SOP. Accepts the full edited SOP as a "
            "JSON string. Get user approval before calling this tool."
        ),
        inputSchema=_object_schema(
            {"modifiedSOP": "REQUIRED: The complete modified SOP as a JSON string with all fields"},
            ["modifiedSOP"],
        ),
    ),
    ToolName.DELETE_SOP: types.Tool(
        name=ToolName.DELETE_SOP,
        description=(
            "Deletes an SOP and cannot be undone. Only call this when the user explicitly "
            "asks to delete a custom SOP they created."
        ),
        inputSchema=_object_schema({"sopId": "The ID of the SOP to delete"}, ["sopId"]),
    ),
}

HANDLERS: dict[ToolName, ToolHandler] = {
    ToolName.WRITE_DOCUMENT: write_document,
    ToolName.DISPLAY_SOP_TO_USER: display_sop_to_user,
    ToolName.CREATE_SOP: create_sop,
    ToolName.OVERWRITE_SOP: overwrite_sop,
    ToolName.DELETE_SOP: delete_sop,
}


class ToolSchemaManager:
    """
    Holds tool declarations and their handlers.

    ``validate()`` is called once at startup: every declared tool needs a
    handler and every handler needs a declaration.
    """

    def __init__(
        self,
        declarations: dict[ToolName, types.Tool] | None = None,
        handlers: dict[ToolName, ToolHandler] | None = None,
    ) -> None:
        self.declarations = dict(DECLARATIONS if declarations is None else declarations)
        self.handlers = dict(HANDLERS if handlers is None else handlers)

    def validate(self) -> None:
        """
        Raises:
            ValueError: If declarations and handlers do not cover the same tools.
        """
        undeclared = sorted(set(self.handlers) - set(self.declarations))
        unhandled = sorted(set(self.declarations) - set(self.handlers))
        if undeclared or unhandled:
            raise ValueError(
                f"Tool registry mismatch: no handler for {unhandled or '[]'}, "
                f"no declaration for {undeclared or '[]'}"
            )
        for name, tool in self.declarations.items():
            if tool.name != name:
                raise ValueError(f"Tool declared under {name} is named {tool.name}")
        logger.info("Validated %d tools", len(self.declarations))

    def get_handler(self, tool_name: str) -> ToolHandler:
        """
        Raises:
            McpError: ``INVALID_PARAMS`` when the name is not a registered tool.
        """
        try:
            return self.handlers[ToolName(tool_name)]
        except (ValueError, KeyError) as e:
            raise McpError(
                error=types.ErrorData(
                    code=types.INVALID_PARAMS,
                    message=f"Tool '{tool_name}' not found",
                )
            ) from e

    def tools_for(self, sop: SOP | None) -> list[ToolName]:
        """Tools offered for a turn: always the document tool, SOP authoring in SOP management."""
        names = [ToolName.WRITE_DOCUMENT]
        if sop is not None and sop.id == SOP_MANAGEMENT_ID:
            names.extend(SOP_AUTHORING_TOOLS)
        return names

    def needs_sop_ids(self, names: Iterable[ToolName]) -> bool:
        """True when any of ``names`` lists stored SOP ids in its description."""
        return any(name in SOP_AUTHORING_TOOLS for name in names)

    def _describe(self, name: ToolName, custom_sop_ids: list[str]) -> str:
        description = self.declarations[name].description or ""
        if name not in SOP_AUTHORING_TOOLS or name == ToolName.CREATE_SOP:
            return description

        builtin = ", ".join(sorted(PROTECTED_SOP_IDS))
        custom = ", ".join(custom_sop_ids) or "none"
        if name == ToolName.DELETE_SOP:
            return (
                f"{description} Built-in SOPs ({builtin}) are protected and cannot be "
                f"deleted. Custom SOPs: {custom}."
            )
        return f"{description} Built-in SOPs: {builtin}. Custom SOPs: {custom}."

    def _to_openai_tool(self, name: ToolName, custom_sop_ids: list[str]) -> ToolDefinition:
        tool = self.declarations[name]
        if not tool.inputSchema:
            raise ValueError(f"Tool {tool.name} has no input schema")
        return ToolDefinition(
            function=ToolFunctionDefinition(
                name=tool.name,
                description=self._describe(name, custom_sop_ids),
                parameters=tool.inputSchema,
            )
        )

    def get_openai_tools(
        self, names: Iterable[ToolName], sop_ids: Iterable[str] = ()
    ) -> list[ToolDefinition]:
        """OpenAI tool definitions for ``names``; ``sop_ids`` are all stored SOP ids."""
        custom = [sop_id for sop_id in sop_ids if sop_id not in PROTECTED_SOP_IDS]
        return [self._to_openai_tool(name, custom) for name in names]
