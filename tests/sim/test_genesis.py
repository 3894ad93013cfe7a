"""Tests for world creation: deterministic terrain plus oracle overlay."""

import pytest

from conftest import StubLLM
from realm_forge.errors import OracleUnavailable
from realm_forge.llm import OfflineLLM
from realm_forge.models import Faction, Location, ThemeConfig
from realm_forge.oracle import GenesisDraft, Oracle
from realm_forge.sim.genesis import create_world, generate_terrain, overlay_world


# ── generate_terrain ──────────────────────────────────────


def test_terrain_is_row_major():
    tiles = generate_terrain(5, 3, "seed")
    assert len(tiles) == 15
    assert (tiles[7].x, tiles[7].y) == (2, 1)


def test_same_seed_same_terrain():
    assert generate_terrain(24, 16, "amber") == generate_terrain(24, 16, "amber")


def test_different_seed_differs():
    assert generate_terrain(24, 16, "amber") != generate_terrain(24, 16, "onyx")


# ── overlay_world ─────────────────────────────────────────


def test_overlay_clamps_and_links():
    draft = GenesisDraft(
        factions=[Faction(id="f1", name="One")],
        locations=[
            Location(id="l1", name="Far", x=99, y=-4, faction_id="f1", defense=300),
            Location(id="l2", name="Stray", x=1, y=1, faction_id="ghost"),
        ],
    )
    state = overlay_world(draft, generate_terrain(4, 4, "s"), 4, 4)
    far, stray = state.map.locations
    assert (far.x, far.y) == (3, 0)
    assert far.defense == 100
    assert stray.faction_id is None
    assert state.map.tiles[3].location_id == "l1"
    assert state.map.tiles[3].owner_faction_id == "f1"
    assert state.map.tiles[5].location_id == "l2"


def test_overlay_time_and_genesis_event():
    state = overlay_world(GenesisDraft(initial_event="Dawn."), generate_terrain(2, 2, "s"), 2, 2)
    assert (state.time.day, state.time.hour, state.time.epoch) == (1, 8, 1)
    [event] = state.event_log
    assert event.type == "genesis"
    assert event.summary == "Dawn."


# ── create_world ──────────────────────────────────────────


async def test_create_world_offline():
    bundle = await create_world(Oracle(OfflineLLM()), "marches", ThemeConfig())
    state = bundle.world_state
    assert len(state.factions) == 3
    assert len(state.npcs) == 6
    assert len(state.map.tiles) == 24 * 16
    assert bundle.meta.seed == "marches"
    assert bundle.meta.version == "2"
    assert bundle.meta.rules == {"map_width": 24, "map_height": 16}
    assert bundle.tool_archive.tools == []
    assert bundle.world_diffs == []


async def test_create_world_oracle_garbage():
    oracle = Oracle(StubLLM({"genesis": ["not json at all"]}))
    with pytest.raises(OracleUnavailable):
        await create_world(oracle, "s", ThemeConfig(), width=4, height=4)
