"""Core domain models.

Every subsystem and the storage layer operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

TerrainType = Literal["plains", "forest", "mountain", "water", "desert"]
FactionArchetype = Literal["order", "chaos", "commerce", "nature"]
BuildingType = Literal[
    "market", "farm", "barracks", "wall", "inn", "workshop", "watchtower",
]
LocationType = Literal["town", "outpost", "ruin", "capital"]

BUILDING_TYPES: tuple[str, ...] = (
    "market", "farm", "barracks", "wall", "inn", "workshop", "watchtower",
)

BUNDLE_VERSION = "2"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Map
# ---------------------------------------------------------------------------

class Tile(BaseModel):
    x: int
    y: int
    terrain: TerrainType = "plains"
    owner_faction_id: str | None = None
    location_id: str | None = None


class Building(BaseModel):
    id: str
    type: BuildingType
    level: int = 1
    owner_npc_id: str
    status: Literal["active", "damaged", "building"] = "active"


class Location(BaseModel):
    """A mutable settlement. defense, prosperity and unrest live in [0, 100]."""

    id: str
    name: str
    type: LocationType = "town"
    x: int = 0
    y: int = 0
    faction_id: str | None = None
    population: int = 1200
    buildings: list[Building] = Field(default_factory=list)
    defense: int = 50
    prosperity: int = 50
    unrest: int = 0


class TradeRoute(BaseModel):
    id: str
    type: Literal["trade"] = "trade"
    from_location_id: str
    to_location_id: str
    commodity: str
    volume: int = 0
    risk: float = 0.0
    status: Literal["active", "disrupted"] = "active"


class WorldMap(BaseModel):
    width: int = 24
    height: int = 16
    tiles: list[Tile] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    routes: list[TradeRoute] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Factions and NPCs
# ---------------------------------------------------------------------------

class Resources(BaseModel):
    gold: int = 0
    grain: int = 0
    iron: int = 0


class Military(BaseModel):
    troops: int = 50
    quality: float = 1.0  # multiplier, kept in [0.2, 3.0]


class FactionRelationship(BaseModel):
    target_faction_id: str
    type: Literal["hostile", "neutral", "allied"] = "neutral"
    score: int = 0


class Law(BaseModel):
    id: str
    text: str
    enforcement: int = 50


class Faction(BaseModel):
    id: str
    name: str
    archetype: FactionArchetype = "order"
    ideology: str = ""
    leader_npc_id: str = ""
    resources: Resources = Field(default_factory=Resources)
    military: Military = Field(default_factory=Military)
    relationships: list[FactionRelationship] = Field(default_factory=list)
    laws: list[Law] = Field(default_factory=list)


class Goal(BaseModel):
    id: str
    text: str
    priority: int = 1


class NpcResources(BaseModel):
    gold: int = 50
    influence: int = 10


class NpcRelationship(BaseModel):
    target_id: str
    type: str = "neutral"
    score: int = 0


class MemoryItem(BaseModel):
    """A fact remembered by one NPC. Never shared across agents."""

    id: str
    text: str
    tags: list[str] = Field(default_factory=list)
    strength: float = 1.0
    created_epoch: int
    last_reinforced_epoch: int


class NPC(BaseModel):
    id: str
    name: str
    role: str = ""
    faction_id: str = ""
    traits: list[str] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    resources: NpcResources = Field(default_factory=NpcResources)
    relationships: list[NpcRelationship] = Field(default_factory=list)
    memory: list[MemoryItem] = Field(default_factory=list)  # newest first
    location_id: str = ""
    status: str = "idle"


# ---------------------------------------------------------------------------
# Economy
# ---------------------------------------------------------------------------

class Commodity(BaseModel):
    id: str
    base_price: float
    current_price: float
    supply: float = 100
    demand: float = 100
    volatility: float = 1.0


class Economy(BaseModel):
    commodities: list[Commodity] = Field(default_factory=list)
    market_events: list[dict[str, Any]] = Field(default_factory=list)


class Quest(BaseModel):
    id: str
    title: str
    status: Literal["open", "completed", "failed"] = "open"
    giver_npc_id: str = ""
    objective: str = ""
    reward: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class EventLogEntry(BaseModel):
    id: str
    epoch: int
    type: str
    title: str
    summary: str
    impact: dict[str, Any] = Field(default_factory=dict)
    decision_trace_id: str | None = None


class ToolCallRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: Any = None


class PlanCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan: str
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)


class RetrievedMemory(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    strength: float


class DecisionTrace(BaseModel):
    """Audit record of one decision cycle. Built complete, then appended."""

    model_config = ConfigDict(frozen=True)

    decision_trace_id: str
    epoch: int
    actor: str
    goal_summary: list[str] = Field(default_factory=list)
    retrieved_memories: list[RetrievedMemory] = Field(default_factory=list)
    world_facts_used: list[str] = Field(default_factory=list)
    plan_candidates: list[PlanCandidate] = Field(default_factory=list)
    chosen_plan: str = "Wait"
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    world_diff_summary: list[str] = Field(default_factory=list)
    confidence: float = 0.8


class DiffBody(BaseModel):
    added: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class WorldDiff(BaseModel):
    epoch: int
    title: str
    diff: DiffBody = Field(default_factory=DiffBody)


# ---------------------------------------------------------------------------
# World state
# ---------------------------------------------------------------------------

class WorldTime(BaseModel):
    day: int = 1
    hour: int = 8
    epoch: int = 0


class WorldState(BaseModel):
    """The single source of truth, versioned by time.epoch."""

    time: WorldTime = Field(default_factory=WorldTime)
    map: WorldMap = Field(default_factory=WorldMap)
    factions: list[Faction] = Field(default_factory=list)
    npcs: list[NPC] = Field(default_factory=list)
    economy: Economy = Field(default_factory=Economy)
    quests: list[Quest] = Field(default_factory=list)
    event_log: list[EventLogEntry] = Field(default_factory=list)
    decision_traces: list[DecisionTrace] = Field(default_factory=list)

    def get_faction(self, faction_id: str | None) -> Faction | None:
        return next((f for f in self.factions if f.id == faction_id), None)

    def get_location(self, location_id: str | None) -> Location | None:
        return next((loc for loc in self.map.locations if loc.id == location_id), None)

    def get_npc(self, npc_id: str | None) -> NPC | None:
        return next((n for n in self.npcs if n.id == npc_id), None)


# ---------------------------------------------------------------------------
# Tool Archive
# ---------------------------------------------------------------------------

class StringParameter(BaseModel):
    type: Literal["string"] = "string"
    name: str
    description: str = ""


class NumberParameter(BaseModel):
    type: Literal["number"] = "number"
    name: str
    description: str = ""
    minimum: float | None = None
    maximum: float | None = None


class BooleanParameter(BaseModel):
    type: Literal["boolean"] = "boolean"
    name: str
    description: str = ""


ToolParameter = Annotated[
    Union[StringParameter, NumberParameter, BooleanParameter],
    Field(discriminator="type"),
]


class AgentTool(BaseModel):
    """A shared, oracle-invented capability. Names are unique, case-insensitive."""

    id: str
    name: str = ""
    description: str = ""
    action_guidance: str = ""
    parameters: list[ToolParameter] = Field(default_factory=list)
    cooldown_days: int = 1
    lore: str = ""
    created_epoch: int = 0


class ToolArchive(BaseModel):
    tools: list[AgentTool] = Field(default_factory=list)
    usage: dict[str, int] = Field(default_factory=dict)  # tool id → last-used epoch
    last_evolved_epoch: int | None = None


# ---------------------------------------------------------------------------
# Bundle (unit of persistence and export)
# ---------------------------------------------------------------------------

class ThemeConfig(BaseModel):
    genre: str = "high fantasy"
    threat: str = "a creeping blight"
    tone: str = "grim"


class BundleMeta(BaseModel):
    world_id: str
    world_name: str
    seed: str
    created_at: str
    version: str
    rules: dict[str, Any] = Field(default_factory=dict)
    theme: ThemeConfig = Field(default_factory=ThemeConfig)


class WorldBundle(BaseModel):
    meta: BundleMeta
    world_state: WorldState = Field(default_factory=WorldState)
    world_diffs: list[WorldDiff] = Field(default_factory=list)
    tool_archive: ToolArchive = Field(default_factory=ToolArchive)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

ErrorKind = Literal[
    "not_found", "insufficient_resources", "validation_failure", "cooldown",
]


class ToolResult(BaseModel):
    """Outcome of one action. Failed results never carry state changes."""

    success: bool
    message: str
    error: ErrorKind | None = None
    outputs: dict[str, Any] = Field(default_factory=dict)
