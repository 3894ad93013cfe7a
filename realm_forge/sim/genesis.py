"""World creation: deterministic terrain overlaid with oracle-generated content.

Terrain depends only on the seed. Factions, locations, NPCs and commodities
come from the oracle and are overlaid onto the grid: locations are clamped
inside the map and linked to their tile, and every entity gets the defaults
the rest of the engine relies on.
"""

from __future__ import annotations

import hashlib
import logging
import math
import random
import uuid
from datetime import datetime, timezone

from realm_forge.models import (
    BUNDLE_VERSION,
    BundleMeta,
    Economy,
    EventLogEntry,
    ThemeConfig,
    Tile,
    ToolArchive,
    WorldBundle,
    WorldMap,
    WorldState,
    WorldTime,
    clamp,
)
from realm_forge.oracle import GenesisDraft, Oracle

logger = logging.getLogger(__name__)


def _seed_int(seed: str) -> int:
    return int.from_bytes(hashlib.sha256(seed.encode()).digest()[:8], "big")


def generate_terrain(width: int, height: int, seed: str) -> list[Tile]:
    """Row-major grid; the same seed always gives the same terrain."""
    rng = random.Random(_seed_int(seed))
    tiles: list[Tile] = []
    for y in range(height):
        for x in range(width):
            noise = math.sin(x * 0.2) + math.cos(y * 0.2) + rng.random() * 0.5
            if noise > 1.5:
                terrain = "mountain"
            elif noise > 1.0:
                terrain = "forest"
            elif noise < -0.5:
                terrain = "water"
            elif noise < -0.2 and rng.random() < 0.3:
                terrain = "desert"
            else:
                terrain = "plains"
            tiles.append(Tile(x=x, y=y, terrain=terrain))
    return tiles


def overlay_world(
    draft: GenesisDraft, tiles: list[Tile], width: int, height: int
) -> WorldState:
    """Merge oracle content onto the terrain grid."""
    faction_ids = {f.id for f in draft.factions}
    locations = []
    for loc in draft.locations:
        loc.x = int(clamp(loc.x, 0, width - 1))
        loc.y = int(clamp(loc.y, 0, height - 1))
        if loc.faction_id not in faction_ids:
            loc.faction_id = None
        loc.population = max(0, loc.population)
        loc.defense = int(clamp(loc.defense, 0, 100))
        loc.prosperity = int(clamp(loc.prosperity, 0, 100))
        loc.unrest = int(clamp(loc.unrest, 0, 100))
        tile = tiles[loc.y * width + loc.x]
        if tile.location_id is not None:
            logger.warning("Location %s overlaps %s, kept off the grid", loc.id, tile.location_id)
        else:
            tile.location_id = loc.id
            tile.owner_faction_id = loc.faction_id
        locations.append(loc)

    for faction in draft.factions:
        res = faction.resources
        res.gold, res.grain, res.iron = max(0, res.gold), max(0, res.grain), max(0, res.iron)
        faction.military.troops = max(0, faction.military.troops)
        faction.military.quality = clamp(faction.military.quality, 0.2, 3.0)

    for npc in draft.npcs:
        npc.memory = []
        npc.status = "idle"

    return WorldState(
        time=WorldTime(day=1, hour=8, epoch=1),
        map=WorldMap(width=width, height=height, tiles=tiles, locations=locations),
        factions=draft.factions,
        npcs=draft.npcs,
        economy=Economy(commodities=draft.commodities),
        event_log=[
            EventLogEntry(
                id="evt_genesis",
                epoch=0,
                type="genesis",
                title="World Created",
                summary=draft.initial_event or "The world begins.",
            )
        ],
    )


async def create_world(
    oracle: Oracle,
    seed: str,
    theme: ThemeConfig,
    width: int = 24,
    height: int = 16,
    archive: ToolArchive | None = None,
) -> WorldBundle:
    """Build a fresh bundle at epoch 1. Raises OracleUnavailable on failure."""
    draft = await oracle.genesis(seed, theme, width, height)
    state = overlay_world(draft, generate_terrain(width, height, seed), width, height)
    logger.info(
        "genesis seed=%s factions=%d locations=%d npcs=%d",
        seed, len(state.factions), len(state.map.locations), len(state.npcs),
    )
    return WorldBundle(
        meta=BundleMeta(
            world_id=f"world_{uuid.uuid4().hex[:12]}",
            world_name=draft.world_name or f"World {seed}",
            seed=seed,
            created_at=datetime.now(timezone.utc).isoformat(),
            version=BUNDLE_VERSION,
            rules={"map_width": width, "map_height": height},
            theme=theme,
        ),
        world_state=state,
        tool_archive=archive or ToolArchive(),
    )
