#!/usr/bin/env python3
"""
Tests for constrained SOP step transitions.
"""

import asyncio

from llm_fakes import ScriptedLLMClient, function_call_response
from sopchat.chat.step_manager import (
    DECISION_FUNCTION,
    STAY_ON_CURRENT_STEP,
    StepDecision,
    StepManager,
    legal_decisions,
)
from sopchat.history import InMemoryRepo
from sopchat.sop.models import SOP

BRANCHING_SOP = SOP.model_validate(
    {
        "id": "branching",
        "name": "branching",
        "displayName": "Branching",
        "steps": [
            {"id": "intake", "stepNumber": 1, "nextStep": ["draft", "review"]},
            {"id": "draft", "stepNumber": 2, "nextStep": "review"},
            {"id": "review", "stepNumber": 3, "nextStep": "DONE"},
            {"id": "archive", "stepNumber": 4},
        ],
    }
)


def decide_with(*responses, step_id="intake"):
    llm = ScriptedLLMClient(responses={DECISION_FUNCTION: list(responses)})
    manager = StepManager(llm, {"enabled": True, "recent_messages": 6}, model="test-model")
    step = BRANCHING_SOP.find_step(step_id)
    return asyncio.run(manager.decide("next please", step, BRANCHING_SOP)), llm


def test_legal_decisions():
    assert legal_decisions(BRANCHING_SOP.find_step("intake"), BRANCHING_SOP) == [
        STAY_ON_CURRENT_STEP,
        "draft",
        "review",
    ]
    assert legal_decisions(BRANCHING_SOP.find_step("review"), BRANCHING_SOP) == [
        STAY_ON_CURRENT_STEP,
        "DONE",
    ]


def test_valid_choice_moves_run():
    print("Testing valid step transition...")
    decision, llm = decide_with(function_call_response(DECISION_FUNCTION, {"nextStep": "review"}))
    assert decision == StepDecision(previous_step="intake", next_step="review", changed=True)

    # The decision tool only offers the legal values
    (tool,) = llm.response_calls[0]["tools"]
    assert tool.function.parameters["properties"]["nextStep"]["enum"] == [
        STAY_ON_CURRENT_STEP,
        "draft",
        "review",
    ]


def test_output_is_always_contained():
    print("Testing step decision containment...")
    allowed = {"intake", "draft", "review"}
    for value in ["archive", "DONE", "", "Intake", None, 3, "stay", STAY_ON_CURRENT_STEP, "draft"]:
        decision, _ = decide_with(function_call_response(DECISION_FUNCTION, {"nextStep": value}))
        assert decision.next_step in allowed
        assert decision.previous_step == "intake"
        if value != "draft":
            assert decision.next_step == "intake"
            assert not decision.changed


def test_failures_stay_on_current_step():
    decision, _ = decide_with(RuntimeError("rate limited"))
    assert decision == StepDecision.stay("intake")

    # No scripted response at all
    decision, _ = decide_with()
    assert decision.next_step == "intake"


def test_step_without_next_steps_skips_model():
    decision, llm = decide_with(step_id="archive")
    assert decision == StepDecision.stay("archive")
    assert llm.response_calls == []


def test_disabled_manager_stays():
    llm = ScriptedLLMClient()
    manager = StepManager(llm, {"enabled": False})
    decision = asyncio.run(manager.decide("hi", BRANCHING_SOP.find_step("intake"), BRANCHING_SOP))
    assert not decision.changed
    assert llm.response_calls == []


def test_apply_to_done_completes_run():
    print("Testing run completion...")
    store = InMemoryRepo()
    manager = StepManager(ScriptedLLMClient(), {})

    async def scenario():
        chat = await store.create_chat("test-model")
        run = await store.create_run(chat.id, BRANCHING_SOP.id, "review")

        unchanged = await manager.apply(run, StepDecision.stay("review"), store)
        assert unchanged.current_step_id == "review"

        finished = await manager.apply(
            run, StepDecision(previous_step="review", next_step="DONE", changed=True), store
        )
        assert finished.status == "completed"
        assert finished.current_step_id == "DONE"
        assert finished.completed_at is not None
        assert await store.get_active_run(chat.id) is None

    asyncio.run(scenario())


if __name__ == "__main__":
    test_legal_decisions()
    test_valid_choice_moves_run()
    test_output_is_always_contained()
    test_failures_stay_on_current_step()
    test_step_without_next_steps_skips_model()
    test_disabled_manager_stays()
    test_apply_to_done_completes_run()
    print("✅ Step manager tests passed!")
