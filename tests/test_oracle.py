"""Tests for the decision oracle: retry policy, JSON parsing, stage results."""

import json
import random
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import StubLLM
from realm_forge.errors import OracleUnavailable
from realm_forge.llm import LLMError
from realm_forge.models import ThemeConfig, ToolArchive
from realm_forge.oracle import (
    HISTORY_FALLBACK,
    MAX_SUB_ACTIONS,
    Decision,
    Oracle,
    parse_json_output,
)

THEME = ThemeConfig()


def _oracle(llm, **kw) -> tuple[Oracle, AsyncMock]:
    sleep = AsyncMock()
    return Oracle(llm, sleep=sleep, rng=random.Random(0), **kw), sleep


# ── parse_json_output ─────────────────────────────────────


def test_parse_plain_json():
    assert parse_json_output('{"a": 1}') == {"a": 1}


def test_parse_strips_markdown_fences():
    assert parse_json_output('```json\n{"a": 1}\n```') == {"a": 1}


def test_parse_rejects_non_objects():
    assert parse_json_output("[1, 2]") is None
    assert parse_json_output("nonsense") is None


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------

class TestRetry:
    async def test_rate_limit_then_success(self) -> None:
        llm = StubLLM({"history": [LLMError("slow down", status_code=429), "Peace."]})
        oracle, sleep = _oracle(llm)
        assert await oracle.summarize_history(["x"]) == "Peace."
        assert sleep.await_count == 1
        delay = sleep.await_args[0][0]
        assert 2.0 <= delay < 3.0

    async def test_backoff_grows(self) -> None:
        errors = [LLMError("429", status_code=429)] * 2
        oracle, sleep = _oracle(StubLLM({"history": [*errors, "ok"]}))
        await oracle.summarize_history(["x"])
        first, second = (c[0][0] for c in sleep.await_args_list)
        assert 2.0 <= first < 3.0
        assert 4.0 <= second < 5.0

    async def test_gives_up_after_max_attempts(self) -> None:
        errors = [LLMError("429", status_code=429)] * 3
        llm = StubLLM({"history": errors})
        oracle, sleep = _oracle(llm)
        with pytest.raises(OracleUnavailable):
            await oracle.summarize_history(["x"])
        assert len(llm.calls) == 3
        assert sleep.await_count == 2

    async def test_other_errors_not_retried(self) -> None:
        llm = StubLLM({"history": [LLMError("boom", status_code=500)]})
        oracle, sleep = _oracle(llm)
        with pytest.raises(OracleUnavailable):
            await oracle.summarize_history(["x"])
        sleep.assert_not_awaited()

    @pytest.mark.parametrize("error", [httpx.ReadError("reset"), KeyError("choices"), ValueError("bad")])
    async def test_unexpected_llm_errors_become_unavailable(self, error) -> None:
        llm = StubLLM({"history": [error]})
        oracle, sleep = _oracle(llm)
        with pytest.raises(OracleUnavailable, match=type(error).__name__):
            await oracle.summarize_history(["x"])
        assert len(llm.calls) == 1
        sleep.assert_not_awaited()

    async def test_broken_override_template(self) -> None:
        oracle, _ = _oracle(StubLLM(), prompts={"history": "{{> nope}}"})
        with pytest.raises(OracleUnavailable, match="Prompt template error"):
            await oracle.summarize_history(["x"])


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

class TestDecide:
    async def test_valid_decision(self, state) -> None:
        reply = {"action": "build_structure", "args": {"location_id": "loc_a"}, "confidence": 0.6}
        oracle, _ = _oracle(StubLLM({"decision": [reply]}))
        decision = await oracle.decide(state.get_npc("npc_a"), state, ToolArchive(), THEME)
        assert decision.action == "build_structure"
        assert decision.args == {"location_id": "loc_a"}
        assert decision.confidence == 0.6

    @pytest.mark.parametrize("reply", ["garbage", '{"action": 5}', '{"args": "x"}'])
    async def test_malformed_means_no_action(self, state, reply: str) -> None:
        oracle, _ = _oracle(StubLLM({"decision": [reply]}))
        decision = await oracle.decide(state.get_npc("npc_a"), state, ToolArchive(), THEME)
        assert decision == Decision()

    async def test_prompt_mentions_manager(self, state) -> None:
        llm = StubLLM({"decision": ['{"action": null}']})
        oracle, _ = _oracle(llm)
        await oracle.decide(state.get_npc("npc_b"), state, ToolArchive(), THEME)
        assert "Warlord Brakk" in llm.calls[0][1]


class TestCombat:
    async def test_valid_ruling(self, state) -> None:
        reply = {"narrative": "Clash.", "attacker_casualties": 3, "location_conquered": True}
        oracle, _ = _oracle(StubLLM({"combat": [reply]}))
        ruling = await oracle.arbitrate_combat(
            state.get_faction("fac_a"), state.get_faction("fac_b"), state.get_location("loc_b"),
        )
        assert ruling.location_conquered
        assert ruling.attacker_casualties == 3

    async def test_missing_narrative_unavailable(self, state) -> None:
        oracle, _ = _oracle(StubLLM({"combat": ["{}"]}))
        with pytest.raises(OracleUnavailable):
            await oracle.arbitrate_combat(
                state.get_faction("fac_a"), state.get_faction("fac_b"), state.get_location("loc_b"),
            )


async def test_history_blank_falls_back():
    oracle, _ = _oracle(StubLLM({"history": ["   "]}))
    assert await oracle.summarize_history(["x"]) == HISTORY_FALLBACK


async def test_world_event_empty_is_none(state):
    oracle, _ = _oracle(StubLLM({"world_event": ["{}"]}))
    assert await oracle.world_event(state, THEME) is None


async def test_world_event_draft(state):
    reply = {"title": "Comet", "summary": "A red comet hangs low."}
    oracle, _ = _oracle(StubLLM({"world_event": [reply]}))
    draft = await oracle.world_event(state, THEME)
    assert draft.title == "Comet"
    assert draft.type == "world_event"


class TestEvolveTool:
    async def test_filters_parameters(self, state) -> None:
        reply = {
            "name": "Grain Levy", "description": "Tax the harvest",
            "action_guidance": "Shift grain to the treasury",
            "parameters": [
                {"name": "target_id", "type": "string"},
                {"name": "secret_power", "type": "number"},
                {"name": "intensity", "type": "object"},
            ],
        }
        oracle, _ = _oracle(StubLLM({"tool_evolution": [reply]}))
        tool = await oracle.evolve_tool(state, ToolArchive(), THEME)
        assert tool.name == "Grain Levy"
        assert [p.name for p in tool.parameters] == ["target_id"]
        assert tool.cooldown_days == 2
        assert tool.created_epoch == state.time.epoch
        assert tool.id.startswith("tool_")

    async def test_incomplete_is_none(self, state) -> None:
        oracle, _ = _oracle(StubLLM({"tool_evolution": [{"name": "X"}]}))
        assert await oracle.evolve_tool(state, ToolArchive(), THEME) is None


class TestPlanToolExecution:
    async def test_truncates_calls(self, state) -> None:
        calls = [{"tool": "apply_influence", "args": {}}] * 5
        oracle, _ = _oracle(StubLLM({"tool_execution": [{"summary": "s", "calls": calls}]}))
        tool = await _evolved(state)
        plan = await oracle.plan_tool_execution(state, state.get_npc("npc_a"), tool, {}, THEME)
        assert len(plan.calls) == MAX_SUB_ACTIONS

    async def test_missing_calls_is_none(self, state) -> None:
        oracle, _ = _oracle(StubLLM({"tool_execution": [{"summary": "s"}]}))
        tool = await _evolved(state)
        assert await oracle.plan_tool_execution(state, state.get_npc("npc_a"), tool, {}, THEME) is None


async def _evolved(state):
    reply = json.dumps({"name": "N", "description": "D", "action_guidance": "G"})
    oracle, _ = _oracle(StubLLM({"tool_evolution": [reply]}))
    return await oracle.evolve_tool(state, ToolArchive(), THEME)
