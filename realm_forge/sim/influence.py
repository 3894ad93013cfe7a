"""Direct nudges to a faction, location or NPC field.

Tool executions fan out into apply_influence calls. Each delta is clamped to
[-MAX_DELTA, MAX_DELTA] and every field keeps its declared bound.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from realm_forge.models import ToolResult, WorldState, clamp

MAX_DELTA = 50
QUALITY_STEP = 0.02  # military.quality moves by delta × step

FACTION_FIELDS = (
    "resources.gold", "resources.grain", "resources.iron",
    "military.troops", "military.quality",
)
LOCATION_FIELDS = ("prosperity", "defense", "unrest", "population")
NPC_FIELDS = ("resources.gold", "resources.influence")


class Influence(BaseModel):
    target_type: Literal["faction", "location", "npc"]
    target_id: str
    field: str
    delta: float


def apply_influence(state: WorldState, inputs: Influence) -> ToolResult:
    if not inputs.target_id:
        return ToolResult(success=False, message="Missing target_id", error="validation_failure")
    delta = clamp(inputs.delta, -MAX_DELTA, MAX_DELTA)

    if inputs.target_type == "faction":
        faction = state.get_faction(inputs.target_id)
        if faction is None:
            return ToolResult(success=False, message="Faction not found", error="not_found")
        if inputs.field not in FACTION_FIELDS:
            return _bad_field(inputs)
        if inputs.field == "military.quality":
            faction.military.quality = clamp(
                faction.military.quality + delta * QUALITY_STEP, 0.2, 3.0
            )
        elif inputs.field == "military.troops":
            faction.military.troops = max(0, faction.military.troops + int(delta))
        else:
            key = inputs.field.split(".", 1)[1]
            current = getattr(faction.resources, key)
            setattr(faction.resources, key, max(0, current + int(delta)))
        return _shifted(faction.name, inputs, delta)

    if inputs.target_type == "location":
        location = state.get_location(inputs.target_id)
        if location is None:
            return ToolResult(success=False, message="Location not found", error="not_found")
        if inputs.field not in LOCATION_FIELDS:
            return _bad_field(inputs)
        current = getattr(location, inputs.field)
        if inputs.field == "population":
            location.population = max(0, current + int(delta))
        else:
            setattr(location, inputs.field, int(clamp(current + delta, 0, 100)))
        return _shifted(location.name, inputs, delta)

    npc = state.get_npc(inputs.target_id)
    if npc is None:
        return ToolResult(success=False, message="NPC not found", error="not_found")
    if inputs.field not in NPC_FIELDS:
        return _bad_field(inputs)
    key = inputs.field.split(".", 1)[1]
    setattr(npc.resources, key, max(0, getattr(npc.resources, key) + int(delta)))
    return _shifted(npc.name, inputs, delta)


def _shifted(name: str, inputs: Influence, delta: float) -> ToolResult:
    return ToolResult(
        success=True,
        message=f"{name} shifted",
        outputs={"field": inputs.field, "delta": delta},
    )


def _bad_field(inputs: Influence) -> ToolResult:
    return ToolResult(
        success=False,
        message=f"Unsupported field {inputs.field!r} for {inputs.target_type}",
        error="validation_failure",
    )
