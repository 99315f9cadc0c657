"""
Chat Service Module

Turn orchestration, streaming aggregation, tool dispatch, step decisions and
message-tree queries.
"""

from .chat_orchestrator import ChatOrchestrator
from .models import StreamEvent, encode_event

__all__ = ["ChatOrchestrator", "StreamEvent", "encode_event"]
