"""Military engagement between two factions at a location.

The arbiter (normally the Oracle) decides what happened; this module only
interprets the ruling and applies it safely:

  - casualties are clamped to each side's current troops
  - conquest: ownership moves to the attacker, defense takes the reported
    damage plus CONQUEST_DEFENSE_PENALTY, unrest is forced to 100
  - otherwise: defense drops by the reported damage, unrest moves by the
    reported delta, both clamped to [0, 100]

A missing entity, or a faction attacking itself, yields the "fog of war" no-op.
An arbiter failure yields an inconclusive skirmish. Neither path touches the
state, and resolve_combat never raises.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import BaseModel, Field

from realm_forge.errors import OracleUnavailable
from realm_forge.models import Faction, Location, WorldState, clamp

logger = logging.getLogger(__name__)

CONQUEST_DEFENSE_PENALTY = 10

FOG_OF_WAR = "The fog of war prevents resolution (Invalid IDs)."
INCONCLUSIVE = "A chaotic skirmish erupted, but the dust settles with no clear victor."


class CombatOutcome(BaseModel):
    """The arbiter's ruling, as reported."""

    narrative: str
    attacker_casualties: int = 0
    defender_casualties: int = 0
    location_conquered: bool = False
    defense_damage: int = Field(default=0, ge=0)
    unrest_change: int = 0


class CombatResult(BaseModel):
    outcome: str
    applied: bool = False
    attacker_losses: int = 0
    defender_losses: int = 0
    conquered: bool = False


class Arbiter(Protocol):
    async def arbitrate_combat(
        self, attacker: Faction, defender: Faction, location: Location
    ) -> CombatOutcome: ...


async def resolve_combat(
    state: WorldState,
    attacker_faction_id: str,
    defender_faction_id: str,
    location_id: str,
    arbiter: Arbiter,
) -> CombatResult:
    attacker = state.get_faction(attacker_faction_id)
    defender = state.get_faction(defender_faction_id)
    location = state.get_location(location_id)
    if attacker is None or defender is None or location is None or attacker is defender:
        logger.warning(
            "combat skipped: unknown or identical ids attacker=%s defender=%s location=%s",
            attacker_faction_id, defender_faction_id, location_id,
        )
        return CombatResult(outcome=FOG_OF_WAR)

    try:
        ruling = await arbiter.arbitrate_combat(attacker, defender, location)
    except OracleUnavailable as e:
        logger.warning("combat arbiter unavailable, skirmish is inconclusive: %s", e)
        return CombatResult(outcome=INCONCLUSIVE)

    return apply_outcome(state, attacker, defender, location, ruling)


def apply_outcome(
    state: WorldState,
    attacker: Faction,
    defender: Faction,
    location: Location,
    ruling: CombatOutcome,
) -> CombatResult:
    """Apply an arbiter ruling to entities that belong to `state`."""
    att_losses = int(clamp(ruling.attacker_casualties, 0, attacker.military.troops))
    def_losses = int(clamp(ruling.defender_casualties, 0, defender.military.troops))
    attacker.military.troops -= att_losses
    defender.military.troops -= def_losses

    defense = max(0, location.defense - ruling.defense_damage)
    if ruling.location_conquered:
        location.faction_id = attacker.id
        location.defense = max(0, defense - CONQUEST_DEFENSE_PENALTY)
        location.unrest = 100
        for tile in state.map.tiles:
            if tile.location_id == location.id:
                tile.owner_faction_id = attacker.id
        tail = f" {attacker.name} has SEIZED control!"
    else:
        location.defense = defense
        location.unrest = int(clamp(location.unrest + ruling.unrest_change, 0, 100))
        tail = f" {defender.name} held the line."

    return CombatResult(
        outcome=f"{ruling.narrative} (Lost: {att_losses} vs {def_losses}).{tail}",
        applied=True,
        attacker_losses=att_losses,
        defender_losses=def_losses,
        conquered=ruling.location_conquered,
    )
