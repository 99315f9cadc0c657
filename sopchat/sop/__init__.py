"""
SOP Module

Workflow definitions, the step graph, built-in templates and structural validation.
"""

from .models import SOP, TERMINAL_STEP, ExpectedOutput, SOPRun, SOPStep, StepGraph
from .templates import PROTECTED_SOP_IDS, get_default_sops
from .validation import parse_sop_payload, validate_sop_structure

__all__ = [
    "ExpectedOutput",
    "PROTECTED_SOP_IDS",
    "SOP",
    "SOPRun",
    "SOPStep",
    "StepGraph",
    "TERMINAL_STEP",
    "get_default_sops",
    "parse_sop_payload",
    "validate_sop_structure",
]
