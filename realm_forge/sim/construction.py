"""Resource-gated building construction.

The cost is paid by the faction that owns the location. Checks run before any
write, so a failed build leaves the state untouched.
"""

from __future__ import annotations

import logging
import uuid

from pydantic import BaseModel, Field

from realm_forge.models import BUILDING_TYPES, Building, ToolResult, WorldState, clamp

logger = logging.getLogger(__name__)

PROSPERITY_BONUS = 5


class Cost(BaseModel):
    gold: int = Field(default=0, ge=0)
    grain: int = Field(default=0, ge=0)
    iron: int = Field(default=0, ge=0)


def build_structure(
    state: WorldState,
    location_id: str,
    building_type: str,
    owner_id: str,
    cost: Cost,
) -> ToolResult:
    """Build `building_type` at a location, mutating `state` only on success."""
    if building_type not in BUILDING_TYPES:
        return ToolResult(
            success=False,
            message=f"Unknown building type: {building_type}",
            error="validation_failure",
        )

    location = state.get_location(location_id)
    if location is None:
        return ToolResult(success=False, message="Location not found", error="not_found")

    faction = state.get_faction(location.faction_id)
    if faction is None:
        return ToolResult(success=False, message="Faction not found", error="not_found")

    res = faction.resources
    if res.gold < cost.gold or res.grain < cost.grain or res.iron < cost.iron:
        logger.debug(
            "build refused faction=%s have=%s need=%s",
            faction.id, res.model_dump(), cost.model_dump(),
        )
        return ToolResult(
            success=False,
            message=f"Insufficient resources. Needed: {cost.model_dump_json()}",
            error="insufficient_resources",
        )

    building = Building(
        id=f"bld_{uuid.uuid4().hex[:10]}",
        type=building_type,
        level=1,
        owner_npc_id=owner_id,
        status="active",
    )

    res.gold -= cost.gold
    res.grain -= cost.grain
    res.iron -= cost.iron
    location.buildings.append(building)
    location.prosperity = int(clamp(location.prosperity + PROSPERITY_BONUS, 0, 100))

    return ToolResult(
        success=True,
        message=f"Built {building_type} in {location.name}",
        outputs={"building_id": building.id, "location_id": location.id},
    )
