"""
Built-in tools the assistant can call during a turn.
"""

from .base import ToolExecutionContext, ToolHandler, ToolOutput
from .document_tools import write_document
from .sop_tools import create_sop, delete_sop, display_sop_to_user, overwrite_sop

__all__ = [
    "ToolExecutionContext",
    "ToolHandler",
    "ToolOutput",
    "create_sop",
    "delete_sop",
    "display_sop_to_user",
    "overwrite_sop",
    "write_document",
]
