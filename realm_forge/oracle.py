"""Decision oracle: the external collaborator behind every judgement call.

The Oracle turns world state into a prompt (realm_forge.prompts), sends it
to an LLM callable (realm_forge.llm), and validates the JSON it gets back
into a typed result. It never touches WorldState itself.

Stages:
  genesis         seed + theme            → GenesisDraft
  decision        manager + world         → Decision (action or none)
  combat          attacker/defender/loc   → CombatOutcome
  history         turn log lines          → one-line summary
  world_event     world                   → WorldEventDraft | None
  tool_evolution  world + archive         → AgentTool | None
  tool_execution  tool + arguments        → ToolPlan | None

Failure contract: rate-limited calls (HTTP 429) are retried with
exponential backoff; any other transport failure, or retries running out,
raises OracleUnavailable. Unusable JSON raises OracleUnavailable for genesis
and combat, and degrades to "nothing" for the optional stages.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from realm_forge.errors import OracleUnavailable
from realm_forge.llm import LLM, LLMError
from realm_forge.models import (
    NPC,
    AgentTool,
    Commodity,
    Faction,
    Location,
    ThemeConfig,
    ToolArchive,
    ToolParameter,
    WorldState,
)
from realm_forge.prompts import DEFAULT_PROMPTS, PromptError, render_prompt
from realm_forge.sim.conflict import CombatOutcome
from realm_forge.tools import describe_tools

logger = logging.getLogger(__name__)

MAX_SUB_ACTIONS = 3
HISTORY_FALLBACK = "Daily events concluded."

ALLOWED_PARAMETER_NAMES = (
    "target_id", "target_type", "location_id", "faction_id", "npc_id",
    "building_type", "target_faction_id", "intensity", "budget_gold",
    "budget_grain",
)

_parameter_adapter: TypeAdapter = TypeAdapter(ToolParameter)


# ---------------------------------------------------------------------------
# Typed oracle results
# ---------------------------------------------------------------------------

class Decision(BaseModel):
    action: str | None = None
    args: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""
    confidence: float = 0.8


class WorldEventDraft(BaseModel):
    title: str
    summary: str
    type: str = "world_event"


class SubAction(BaseModel):
    tool: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolPlan(BaseModel):
    summary: str = ""
    calls: list[SubAction] = Field(default_factory=list)


class GenesisDraft(BaseModel):
    world_name: str = ""
    factions: list[Faction] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    npcs: list[NPC] = Field(default_factory=list)
    commodities: list[Commodity] = Field(default_factory=list)
    initial_event: str = "The world begins."


# ---------------------------------------------------------------------------
# JSON parsing
# ---------------------------------------------------------------------------

def parse_json_output(text: str) -> dict | None:
    """Parse a JSON object from LLM output, stripping markdown fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines[1:] if not line.strip().startswith("```")]
        cleaned = "\n".join(lines)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Oracle output is not valid JSON: %s", e)
        return None
    return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------

class Oracle:
    """Typed, retrying front end over an LLM callable.

    Args:
        llm:          Any LLM implementation (HttpLLM, OfflineLLM, a test stub).
        prompts:      Per-stage template overrides; missing stages use defaults.
        max_attempts: Total tries per call when rate limited.
        backoff_base: Delay before retry n is backoff_base ** n seconds plus
                      up to one second of jitter.
        sleep:        Awaitable used for backoff delays (patched in tests).
    """

    def __init__(
        self,
        llm: LLM,
        *,
        prompts: dict[str, str] | None = None,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._llm = llm
        self._prompts = {**DEFAULT_PROMPTS, **(prompts or {})}
        self._max_attempts = max(1, max_attempts)
        self._backoff_base = backoff_base
        self._sleep = sleep
        self._rng = rng or random.Random()

    # -- transport ---------------------------------------------------------

    async def _call(self, stage: str, context: dict[str, Any]) -> str:
        try:
            prompt = render_prompt(self._prompts[stage], context)
        except PromptError as e:
            raise OracleUnavailable(f"Prompt template error ({stage}): {e}") from e

        for attempt in range(1, self._max_attempts + 1):
            try:
                return await self._llm(stage, prompt)
            except LLMError as e:
                if e.rate_limited and attempt < self._max_attempts:
                    delay = self._backoff_base ** attempt + self._rng.random()
                    logger.warning(
                        "Rate limited on %s. Retrying in %.1fs (attempt %d/%d)",
                        stage, delay, attempt, self._max_attempts,
                    )
                    await self._sleep(delay)
                    continue
                raise OracleUnavailable(f"{stage}: {e}") from e
            except TimeoutError as e:
                raise OracleUnavailable(f"{stage}: timed out") from e
            except Exception as e:
                logger.exception("LLM call for %s failed", stage)
                raise OracleUnavailable(f"{stage}: {type(e).__name__}: {e}") from e
        raise OracleUnavailable(f"{stage}: no attempts made")

    async def _call_json(self, stage: str, context: dict[str, Any]) -> dict | None:
        return parse_json_output(await self._call(stage, context))

    # -- stages --------------------------------------------------------------

    async def genesis(
        self, seed: str, theme: ThemeConfig, width: int, height: int
    ) -> GenesisDraft:
        data = await self._call_json("genesis", {
            "seed": seed,
            "theme": theme.model_dump(),
            "max_x": width - 1,
            "max_y": height - 1,
        })
        if data is None:
            raise OracleUnavailable("genesis returned no usable world")
        try:
            return GenesisDraft.model_validate(data)
        except ValidationError as e:
            raise OracleUnavailable(f"genesis returned an invalid world: {e}") from e

    async def decide(
        self,
        manager: NPC,
        state: WorldState,
        archive: ToolArchive,
        theme: ThemeConfig,
        memories: list[Any] | None = None,
    ) -> Decision:
        faction = state.get_faction(manager.faction_id)
        data = await self._call_json("decision", {
            "manager": manager.model_dump(),
            "faction": faction.model_dump() if faction else {"name": "no faction"},
            "rivals": [
                f.model_dump() for f in state.factions if f.id != manager.faction_id
            ],
            "theme": theme.model_dump(),
            "locations": [loc.model_dump() for loc in state.map.locations],
            "commodities": [c.model_dump() for c in state.economy.commodities],
            "recent_events": [e.model_dump() for e in state.event_log],
            "memories": [m.model_dump() for m in memories or []],
            "goals": [g.model_dump() for g in manager.goals],
            "tools": describe_tools(archive),
        })
        if data is None:
            return Decision()
        try:
            return Decision.model_validate(data)
        except ValidationError:
            logger.warning("Decision for %s is malformed, treating as wait", manager.id)
            return Decision()

    async def arbitrate_combat(
        self, attacker: Faction, defender: Faction, location: Location
    ) -> CombatOutcome:
        data = await self._call_json("combat", {
            "attacker": attacker.model_dump(),
            "defender": defender.model_dump(),
            "location": location.model_dump(),
        })
        if data is None:
            raise OracleUnavailable("combat ruling is not valid JSON")
        try:
            return CombatOutcome.model_validate(data)
        except ValidationError as e:
            raise OracleUnavailable(f"combat ruling is malformed: {e}") from e

    async def summarize_history(self, logs: list[str]) -> str:
        text = await self._call("history", {"logs": logs})
        return text.strip() or HISTORY_FALLBACK

    async def world_event(
        self, state: WorldState, theme: ThemeConfig
    ) -> WorldEventDraft | None:
        data = await self._call_json("world_event", {
            "day": state.time.day,
            "theme": theme.model_dump(),
        })
        if not data:
            return None
        try:
            return WorldEventDraft.model_validate(data)
        except ValidationError:
            logger.warning("World event draft is malformed, skipped")
            return None

    async def evolve_tool(
        self, state: WorldState, archive: ToolArchive, theme: ThemeConfig
    ) -> AgentTool | None:
        data = await self._call_json("tool_evolution", {
            "day": state.time.day,
            "theme": theme.model_dump(),
            "tools": describe_tools(archive),
            "allowed_parameters": ", ".join(ALLOWED_PARAMETER_NAMES),
        })
        if not data or not all(data.get(k) for k in ("name", "description", "action_guidance")):
            return None
        raw_params = data.get("parameters")
        params = []
        for raw in raw_params if isinstance(raw_params, list) else []:
            try:
                param = _parameter_adapter.validate_python(raw)
            except ValidationError:
                logger.info("Dropped malformed tool parameter %r", raw)
                continue
            if param.name in ALLOWED_PARAMETER_NAMES:
                params.append(param)
        try:
            cooldown = int(data.get("cooldown_days") or 2)
        except (TypeError, ValueError):
            cooldown = 2
        return AgentTool(
            id=f"tool_{uuid.uuid4().hex[:10]}",
            name=str(data["name"]),
            description=str(data["description"]),
            action_guidance=str(data["action_guidance"]),
            parameters=params,
            cooldown_days=cooldown,
            lore=str(data.get("lore") or ""),
            created_epoch=state.time.epoch,
        )

    async def plan_tool_execution(
        self,
        state: WorldState,
        manager: NPC,
        tool: AgentTool,
        args: dict[str, Any],
        theme: ThemeConfig,
    ) -> ToolPlan | None:
        data = await self._call_json("tool_execution", {
            "day": state.time.day,
            "theme": theme.model_dump(),
            "manager": manager.model_dump(),
            "tool": tool.model_dump(),
            "parameters_json": json.dumps([p.model_dump() for p in tool.parameters]),
            "arguments_json": json.dumps(args),
        })
        if data is None or not isinstance(data.get("calls"), list):
            return None
        try:
            plan = ToolPlan.model_validate(data)
        except ValidationError:
            logger.warning("Tool plan for %s is malformed, skipped", tool.id)
            return None
        if len(plan.calls) > MAX_SUB_ACTIONS:
            logger.info("Tool plan for %s truncated to %d calls", tool.id, MAX_SUB_ACTIONS)
            plan.calls = plan.calls[:MAX_SUB_ACTIONS]
        return plan
