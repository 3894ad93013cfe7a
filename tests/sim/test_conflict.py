"""Tests for combat resolution with a scripted arbiter."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from realm_forge.errors import OracleUnavailable
from realm_forge.sim.conflict import (
    FOG_OF_WAR,
    INCONCLUSIVE,
    CombatOutcome,
    resolve_combat,
)


def _arbiter(outcome=None, error=None) -> MagicMock:
    arbiter = MagicMock()
    arbiter.arbitrate_combat = AsyncMock(return_value=outcome, side_effect=error)
    return arbiter


async def test_casualties_clamped_to_troops(state):
    state.get_faction("fac_b").military.troops = 30
    outcome = CombatOutcome(narrative="Slaughter.", attacker_casualties=10, defender_casualties=1000)
    result = await resolve_combat(state, "fac_a", "fac_b", "loc_b", _arbiter(outcome))
    assert result.defender_losses == 30
    assert state.get_faction("fac_b").military.troops == 0
    assert state.get_faction("fac_a").military.troops == 40


async def test_negative_casualties_treated_as_zero(state):
    outcome = CombatOutcome(narrative="Odd.", attacker_casualties=-5)
    result = await resolve_combat(state, "fac_a", "fac_b", "loc_b", _arbiter(outcome))
    assert result.attacker_losses == 0
    assert state.get_faction("fac_a").military.troops == 50


async def test_conquest_transfers_control(state):
    outcome = CombatOutcome(
        narrative="The gates fell.", attacker_casualties=5, defender_casualties=20,
        location_conquered=True, defense_damage=15,
    )
    result = await resolve_combat(state, "fac_a", "fac_b", "loc_b", _arbiter(outcome))
    location = state.get_location("loc_b")
    assert result.conquered
    assert location.faction_id == "fac_a"
    assert location.defense == 15  # 40 - 15 - 10
    assert location.unrest == 100
    assert state.map.tiles[15].owner_faction_id == "fac_a"
    assert result.outcome == "The gates fell. (Lost: 5 vs 20). Azure Pact has SEIZED control!"


async def test_defense_floor_on_conquest(state):
    outcome = CombatOutcome(narrative="Rout.", location_conquered=True, defense_damage=20)
    state.get_location("loc_b").defense = 12
    await resolve_combat(state, "fac_a", "fac_b", "loc_b", _arbiter(outcome))
    assert state.get_location("loc_b").defense == 0


async def test_repelled_attack(state):
    outcome = CombatOutcome(narrative="Arrows rained.", defense_damage=5, unrest_change=95)
    result = await resolve_combat(state, "fac_a", "fac_b", "loc_b", _arbiter(outcome))
    location = state.get_location("loc_b")
    assert not result.conquered
    assert location.faction_id == "fac_b"
    assert location.defense == 35
    assert location.unrest == 100
    assert result.outcome.endswith("Bone Legion held the line.")


@pytest.mark.parametrize("ids", [
    ("fac_x", "fac_b", "loc_b"),
    ("fac_a", "fac_x", "loc_b"),
    ("fac_a", "fac_b", "loc_x"),
])
async def test_unknown_ids_are_fog_of_war(state, ids):
    before = state.model_copy(deep=True)
    arbiter = _arbiter()
    result = await resolve_combat(state, *ids, arbiter)
    assert result.outcome == FOG_OF_WAR
    assert not result.applied
    assert state == before
    arbiter.arbitrate_combat.assert_not_awaited()


async def test_arbiter_failure_is_inconclusive(state):
    before = state.model_copy(deep=True)
    result = await resolve_combat(
        state, "fac_a", "fac_b", "loc_b", _arbiter(error=OracleUnavailable("down")),
    )
    assert result.outcome == INCONCLUSIVE
    assert state == before


async def test_faction_cannot_attack_itself(state):
    before = state.model_copy(deep=True)
    outcome = CombatOutcome(narrative="Civil war.", attacker_casualties=10, location_conquered=True)
    arbiter = _arbiter(outcome)
    result = await resolve_combat(state, "fac_b", "fac_b", "loc_b", arbiter)
    assert result.outcome == FOG_OF_WAR
    assert state == before
    arbiter.arbitrate_combat.assert_not_awaited()
