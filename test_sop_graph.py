#!/usr/bin/env python3
"""
Tests for SOP models, the step graph and the built-in SOP templates.
"""

from sopchat.sop import PROTECTED_SOP_IDS, TERMINAL_STEP, get_default_sops, validate_sop_structure
from sopchat.sop.models import SOP, SOPStep


def make_sop(steps):
    return SOP.model_validate({"id": "g", "name": "g", "displayName": "G", "steps": steps})


def test_next_step_ids_normalized():
    step = SOPStep.model_validate({"id": "a", "stepNumber": 1, "nextStep": ["b", "b", "DONE"]})
    assert step.next_step_ids() == ["b", "DONE"]
    assert SOPStep.model_validate({"id": "a", "stepNumber": 1}).next_step_ids() == []


def test_legal_next_steps_include_terminal():
    print("Testing step graph...")
    sop = make_sop(
        [
            {"id": "a", "stepNumber": 1, "nextStep": ["b", "c"]},
            {"id": "b", "stepNumber": 2, "nextStep": "DONE"},
            {"id": "c", "stepNumber": 3, "nextStep": ["a", "DONE"]},
        ]
    )
    graph = sop.graph()
    assert graph.legal_next_step_ids("a") == ["b", "c"]
    assert graph.legal_next_step_ids("b") == [TERMINAL_STEP]
    assert graph.legal_next_step_ids("c") == ["a", TERMINAL_STEP]
    assert graph.legal_next_step_ids("missing") == []
    # c loops back to a; every step is still reachable
    assert graph.unreachable_step_ids() == []


def test_dangling_and_unreachable_steps():
    sop = make_sop(
        [
            {"id": "a", "stepNumber": 1, "nextStep": "ghost"},
            {"id": "island", "stepNumber": 2, "nextStep": "DONE"},
        ]
    )
    graph = sop.graph()
    assert graph.unknown_targets() == {"a": ["ghost"]}
    assert graph.unreachable_step_ids() == ["island"]


def test_wire_format_uses_camel_case():
    sop = make_sop([{"id": "a", "stepNumber": 1, "assistantFacingTitle": "Do it"}])
    wire = sop.to_wire()
    assert wire["displayName"] == "G"
    assert wire["steps"][0]["assistantFacingTitle"] == "Do it"
    assert "display_name" not in wire
    assert SOP.model_validate(wire) == sop


def test_builtin_templates_are_valid():
    print("Testing built-in SOP templates...")
    sops = get_default_sops()
    assert {sop.id for sop in sops} == set(PROTECTED_SOP_IDS)
    for sop in sops:
        assert validate_sop_structure(sop.to_wire()) == [], sop.id
        graph = sop.graph()
        assert graph.unknown_targets() == {}
        assert graph.unreachable_step_ids() == []
        # Every workflow can finish
        assert any(TERMINAL_STEP in graph.legal_next_step_ids(step.id) for step in sop.steps)


if __name__ == "__main__":
    test_next_step_ids_normalized()
    test_legal_next_steps_include_terminal()
    test_dangling_and_unreachable_steps()
    test_wire_format_uses_camel_case()
    test_builtin_templates_are_valid()
    print("✅ SOP graph tests passed!")
