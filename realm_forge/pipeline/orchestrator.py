"""Turn orchestrator: advances the world by one epoch.

Turn flow:
  1. Snapshot the committed state; all work happens on a deep copy.
  2. Memory decay for every NPC.
  3. Economy tick.
  4. Managers (faction leaders, or NPCs whose role matches a keyword) each
     ask the oracle for one action and it is dispatched:
       build_structure → construction resolver
       simulate_combat → conflict resolver (attacker = manager's faction)
       execute_tool    → Tool Archive lookup, cooldown and argument checks,
                         then a second oracle call plans up to three
                         sub-actions (build_structure, simulate_combat,
                         apply_influence)
     A DecisionTrace is built complete, outputs included, and only then
     appended. A manager that waits still gets a "Wait" trace. A manager
     that acts remembers what it did.
  5. History summary entry linking the last trace, or a quiet entry.
  6. Optional world event.
  7. Tool evolution, at most once per epoch.
  8. Time advances one day (+24h): day +1, epoch +1, hour unchanged.
  9. Diff against the snapshot, commit, persist.

A manager whose oracle call fails is skipped. Nothing inside a turn raises
once it has started; the only error advance_time() raises is TurnInProgress.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from realm_forge.config import SimSettings
from realm_forge.errors import OracleUnavailable, TurnInProgress, ValidationFailure
from realm_forge.models import (
    NPC,
    DecisionTrace,
    EventLogEntry,
    MemoryItem,
    PlanCandidate,
    RetrievedMemory,
    ToolArchive,
    ToolCallRecord,
    ToolResult,
    WorldBundle,
    WorldDiff,
    WorldState,
    WorldTime,
)
from realm_forge.oracle import HISTORY_FALLBACK, Decision, Oracle, SubAction
from realm_forge.sim.conflict import resolve_combat
from realm_forge.sim.construction import Cost, build_structure
from realm_forge.sim.diff import generate_world_diff
from realm_forge.sim.economy import simulate_economy
from realm_forge.sim.influence import Influence, apply_influence
from realm_forge.sim.memory import add_memory, decay_memories, retrieve_memories
from realm_forge.storage import Storage
from realm_forge.tools import add_tool, can_use, get_tool, mark_used, validate_arguments

logger = logging.getLogger(__name__)

MEMORY_QUERY = "current threats opportunities goal"


class TurnReport(BaseModel):
    epoch: int
    day: int
    logs: list[str] = Field(default_factory=list)
    events: list[EventLogEntry] = Field(default_factory=list)
    diff: WorldDiff


# ---------------------------------------------------------------------------
# Action arguments as the oracle sends them
# ---------------------------------------------------------------------------

class BuildArgs(BaseModel):
    location_id: str = ""
    building_type: str = ""
    cost_gold: int = 0
    cost_grain: int = 0
    cost_iron: int = 0


class CombatArgs(BaseModel):
    target_faction_id: str = ""
    location_id: str = ""


class ExecuteToolArgs(BaseModel):
    tool_id: str = ""
    arguments: dict[str, Any] = Field(default_factory=dict)
    note: str = ""


@dataclass
class _Turn:
    state: WorldState
    archive: ToolArchive
    logs: list[str] = field(default_factory=list)
    events: list[EventLogEntry] = field(default_factory=list)
    last_trace_id: str | None = None


def select_managers(state: WorldState, settings: SimSettings) -> list[NPC]:
    """Faction leaders and keyword-matched roles, in NPC order, first N."""
    leaders = {f.leader_npc_id for f in state.factions if f.leader_npc_id}
    keywords = [k.lower() for k in settings.manager_keywords]
    managers = [
        npc for npc in state.npcs
        if npc.id in leaders or any(k in npc.role.lower() for k in keywords)
    ]
    return managers[:settings.max_managers]


def _failure(message: str, error: str) -> ToolResult:
    return ToolResult(success=False, message=message, error=error)


def _world_facts(state: WorldState, manager: NPC) -> list[str]:
    facts = []
    faction = state.get_faction(manager.faction_id)
    if faction is not None:
        r = faction.resources
        facts.append(
            f"{faction.name}: gold {r.gold}, grain {r.grain}, iron {r.iron},"
            f" troops {faction.military.troops}"
        )
    facts.extend(f"Market {c.id}: {c.current_price}" for c in state.economy.commodities)
    return facts


class TurnOrchestrator:
    """Owns the committed WorldBundle and advances it one epoch at a time.

    Args:
        store:    Where each committed turn is saved. None keeps it in memory.
        oracle:   Decision oracle used for every judgement call.
        bundle:   The world to advance.
        settings: Simulation tunables.
        rng:      Randomness for the economy tick (seed it for replays).
        sleep:    Awaitable used for the throttle between oracle calls.
    """

    def __init__(
        self,
        store: Storage | None,
        oracle: Oracle,
        bundle: WorldBundle,
        settings: SimSettings | None = None,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._bundle = bundle
        self._settings = settings or SimSettings()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def bundle(self) -> WorldBundle:
        return self._bundle

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def advance_time(self) -> TurnReport:
        if self._lock.locked():
            raise TurnInProgress("A turn is already being simulated")
        async with self._lock:
            return await self._run_turn()

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def _throttle(self) -> None:
        if self._settings.oracle_delay_seconds > 0:
            await self._sleep(self._settings.oracle_delay_seconds)

    async def _run_turn(self) -> TurnReport:
        committed = self._bundle
        snapshot = committed.world_state
        turn = _Turn(
            state=snapshot.model_copy(deep=True),
            archive=committed.tool_archive.model_copy(deep=True),
        )
        state = turn.state
        epoch = state.time.epoch
        logger.info("turn start epoch=%d day=%d", epoch, state.time.day)

        state.npcs = decay_memories(state.npcs, self._settings.memory_decay)
        state.economy.commodities = simulate_economy(state, self._rng)

        for i, manager in enumerate(select_managers(state, self._settings)):
            if i > 0:
                await self._throttle()
            await self._run_manager(turn, manager.id)

        await self._record_history(turn)

        if self._settings.world_events:
            await self._throttle()
            await self._world_event(turn)

        if self._settings.tool_evolution and turn.archive.last_evolved_epoch != epoch:
            await self._throttle()
            await self._evolve_tool(turn)

        state.time = WorldTime(
            day=state.time.day + 1,
            hour=state.time.hour,
            epoch=epoch + 1,
        )
        diff = generate_world_diff(snapshot, state, state.time.epoch)

        self._bundle = committed.model_copy(update={
            "world_state": state,
            "world_diffs": [*committed.world_diffs, diff],
            "tool_archive": turn.archive,
        })
        self._persist()
        logger.info(
            "turn done epoch=%d actions=%d events=%d",
            state.time.epoch, len(turn.logs), len(turn.events),
        )
        return TurnReport(
            epoch=state.time.epoch,
            day=state.time.day,
            logs=turn.logs,
            events=turn.events,
            diff=diff,
        )

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save_bundle(self._bundle)
        except OSError:
            logger.exception("Could not save world after epoch %d", self._bundle.world_state.time.epoch)

    def _add_event(self, turn: _Turn, type: str, title: str, summary: str, **extra: Any) -> None:
        entry = EventLogEntry(
            id=f"evt_{uuid.uuid4().hex[:12]}",
            epoch=turn.state.time.epoch,
            type=type,
            title=title,
            summary=summary,
            **extra,
        )
        turn.state.event_log.append(entry)
        turn.events.append(entry)

    # ------------------------------------------------------------------
    # Managers
    # ------------------------------------------------------------------

    async def _run_manager(self, turn: _Turn, manager_id: str) -> None:
        state = turn.state
        manager = state.get_npc(manager_id)
        if manager is None:
            return
        memories = retrieve_memories(manager, MEMORY_QUERY)
        bundle_theme = self._bundle.meta.theme
        try:
            decision = await self._oracle.decide(
                manager, state, turn.archive, bundle_theme, memories
            )
        except OracleUnavailable as e:
            logger.warning("Manager %s skipped, oracle unavailable: %s", manager.id, e)
            return

        # facts as the manager saw them when deciding
        facts = _world_facts(state, manager)
        if not decision.action:
            logger.debug("Manager %s waits", manager.id)
            self._append_trace(turn, manager, memories, facts, decision, [], [])
            return

        records, message = await self._dispatch(turn, manager, decision)
        self._append_trace(turn, manager, memories, facts, decision, records, [message])
        turn.logs.append(f"{manager.name}: {message}")

        idx = next(i for i, n in enumerate(state.npcs) if n.id == manager.id)
        state.npcs[idx] = add_memory(
            manager, f"Day {state.time.day}: {message}", state.time.epoch, tags=[decision.action]
        )

    def _append_trace(
        self,
        turn: _Turn,
        manager: NPC,
        memories: list[MemoryItem],
        facts: list[str],
        decision: Decision,
        records: list[ToolCallRecord],
        summary: list[str],
    ) -> None:
        plan = decision.action or "Wait"
        trace = DecisionTrace(
            decision_trace_id=f"trace_{uuid.uuid4().hex[:12]}",
            epoch=turn.state.time.epoch,
            actor=manager.id,
            goal_summary=[g.text for g in manager.goals],
            retrieved_memories=[
                RetrievedMemory(id=m.id, text=m.text, strength=m.strength) for m in memories
            ],
            world_facts_used=facts,
            plan_candidates=[
                PlanCandidate(plan=plan, pros=[decision.reason] if decision.reason else [])
            ],
            chosen_plan=plan,
            tool_calls=records,
            world_diff_summary=summary,
            confidence=decision.confidence,
        )
        turn.state.decision_traces.append(trace)
        turn.last_trace_id = trace.decision_trace_id

    async def _dispatch(
        self, turn: _Turn, manager: NPC, decision: Decision
    ) -> tuple[list[ToolCallRecord], str]:
        action, args = decision.action, decision.args
        if action == "execute_tool":
            return await self._execute_tool(turn, manager, args)
        if action in ("build_structure", "simulate_combat"):
            outputs, message = await self._run_action(turn, manager, action, args)
            return [ToolCallRecord(tool=action, inputs=args, outputs=outputs)], message
        logger.warning("Manager %s chose unknown action %r", manager.id, action)
        result = _failure(f"Unknown action {action}", "validation_failure")
        return [ToolCallRecord(tool=action, inputs=args, outputs=result.model_dump())], result.message

    async def _run_action(
        self, turn: _Turn, manager: NPC, action: str, args: dict[str, Any]
    ) -> tuple[dict[str, Any], str]:
        """Run one primitive action. Returns (outputs, message)."""
        state = turn.state
        try:
            if action == "build_structure":
                build = BuildArgs.model_validate(args)
                cost = Cost(gold=build.cost_gold, grain=build.cost_grain, iron=build.cost_iron)
                result = build_structure(
                    state, build.location_id, build.building_type, manager.id, cost
                )
                return result.model_dump(), result.message
            if action == "simulate_combat":
                combat = CombatArgs.model_validate(args)
                outcome = await resolve_combat(
                    state, manager.faction_id, combat.target_faction_id,
                    combat.location_id, self._oracle,
                )
                return outcome.model_dump(), outcome.outcome
            if action == "apply_influence":
                result = apply_influence(state, Influence.model_validate(args))
                return result.model_dump(), result.message
        except ValidationError as e:
            result = _failure(f"Invalid arguments for {action}: {e.error_count()} error(s)", "validation_failure")
            return result.model_dump(), result.message
        result = _failure(f"Unknown action {action}", "validation_failure")
        return result.model_dump(), result.message

    async def _execute_tool(
        self, turn: _Turn, manager: NPC, args: dict[str, Any]
    ) -> tuple[list[ToolCallRecord], str]:
        state = turn.state
        try:
            request = ExecuteToolArgs.model_validate(args)
        except ValidationError:
            result = _failure("Invalid execute_tool arguments", "validation_failure")
            return [ToolCallRecord(tool="execute_tool", inputs=args, outputs=result.model_dump())], result.message

        tool = get_tool(turn.archive, request.tool_id)
        result: ToolResult | None = None
        checked: dict[str, Any] = {}
        if tool is None:
            result = _failure(f"Tool {request.tool_id} not found", "not_found")
        elif not can_use(turn.archive, tool.id, state.time.epoch):
            result = _failure(f"Tool {tool.name} is on cooldown", "cooldown")
        else:
            try:
                checked = validate_arguments(tool, request.arguments)
            except ValidationFailure as e:
                result = _failure(str(e), "validation_failure")
        if result is not None:
            return [ToolCallRecord(tool="execute_tool", inputs=args, outputs=result.model_dump())], result.message

        await self._throttle()
        try:
            plan = await self._oracle.plan_tool_execution(
                state, manager, tool, checked, self._bundle.meta.theme
            )
        except OracleUnavailable as e:
            logger.warning("Tool %s execution not planned: %s", tool.id, e)
            plan = None
        if plan is None:
            result = _failure(f"{tool.name} could not be carried out", "validation_failure")
            return [ToolCallRecord(tool="execute_tool", inputs=args, outputs=result.model_dump())], result.message

        records: list[ToolCallRecord] = []
        messages = []
        for call in plan.calls:
            outputs, message = await self._run_sub_action(turn, manager, call)
            records.append(ToolCallRecord(tool=call.tool, inputs=call.args, outputs=outputs))
            messages.append(message)
        turn.archive = mark_used(turn.archive, tool.id, state.time.epoch)

        summary = plan.summary or f"Used {tool.name}"
        outputs = {
            "success": True,
            "tool_id": tool.id,
            "summary": summary,
            "results": messages,
        }
        records.insert(0, ToolCallRecord(tool="execute_tool", inputs=args, outputs=outputs))
        return records, f"{tool.name}: {summary}"

    async def _run_sub_action(
        self, turn: _Turn, manager: NPC, call: SubAction
    ) -> tuple[dict[str, Any], str]:
        if call.tool not in ("build_structure", "simulate_combat", "apply_influence"):
            result = _failure(f"Sub-action {call.tool} is not allowed", "validation_failure")
            return result.model_dump(), result.message
        return await self._run_action(turn, manager, call.tool, call.args)

    # ------------------------------------------------------------------
    # End of turn
    # ------------------------------------------------------------------

    async def _record_history(self, turn: _Turn) -> None:
        day = turn.state.time.day
        if not turn.logs:
            self._add_event(
                turn, "quiet", f"Day {day}: A quiet day",
                "No leader took action. The realm held its breath.",
            )
            return
        try:
            summary = await self._oracle.summarize_history(turn.logs)
        except OracleUnavailable as e:
            logger.warning("History summary unavailable: %s", e)
            summary = HISTORY_FALLBACK
        self._add_event(
            turn, "history", f"Day {day} Chronicle", summary,
            impact={"actions": len(turn.logs)},
            decision_trace_id=turn.last_trace_id,
        )

    async def _world_event(self, turn: _Turn) -> None:
        try:
            draft = await self._oracle.world_event(turn.state, self._bundle.meta.theme)
        except OracleUnavailable as e:
            logger.warning("World event skipped: %s", e)
            return
        if draft is not None:
            self._add_event(turn, draft.type, draft.title, draft.summary)

    async def _evolve_tool(self, turn: _Turn) -> None:
        epoch = turn.state.time.epoch
        try:
            tool = await self._oracle.evolve_tool(
                turn.state, turn.archive, self._bundle.meta.theme
            )
        except OracleUnavailable as e:
            logger.warning("Tool evolution skipped: %s", e)
            tool = None
        archive = turn.archive.model_copy(update={"last_evolved_epoch": epoch})
        if tool is not None:
            grown = add_tool(archive, tool)
            if len(grown.tools) > len(archive.tools):
                logger.info("New tool %s (%s) entered the archive", tool.id, tool.name)
                self._add_event(
                    turn, "tool_evolved", f"New practice: {tool.name}", tool.description,
                )
            archive = grown
        turn.archive = archive
