"""Coarse, human-readable summary of what changed between two snapshots.

Only these triggers are reported:
  added    location id new in curr                 "Location X founded"
  updated  location owner changed                  "X captured by new faction"
           location building count changed         "New building in X"
           commodity price moved by more than 1    "C price changed from P to Q"
  removed  location id gone from curr              "Location X lost"
"""

from __future__ import annotations

from realm_forge.models import DiffBody, WorldDiff, WorldState

PRICE_THRESHOLD = 1.0


def generate_world_diff(prev: WorldState, curr: WorldState, epoch: int) -> WorldDiff:
    body = DiffBody()
    prev_locations = {loc.id: loc for loc in prev.map.locations}
    curr_ids = {loc.id for loc in curr.map.locations}

    for loc in curr.map.locations:
        before = prev_locations.get(loc.id)
        if before is None:
            body.added.append(f"Location {loc.name} founded")
            continue
        if before.faction_id != loc.faction_id:
            body.updated.append(f"{loc.name} captured by new faction")
        if len(before.buildings) != len(loc.buildings):
            body.updated.append(f"New building in {loc.name}")

    for loc in prev.map.locations:
        if loc.id not in curr_ids:
            body.removed.append(f"Location {loc.name} lost")

    prev_prices = {c.id: c.current_price for c in prev.economy.commodities}
    for c in curr.economy.commodities:
        before_price = prev_prices.get(c.id)
        if before_price is not None and abs(before_price - c.current_price) > PRICE_THRESHOLD:
            body.updated.append(
                f"{c.id} price changed from {before_price} to {c.current_price}"
            )

    return WorldDiff(epoch=epoch, title=f"Day {curr.time.day} Changes", diff=body)
