"""Commodity pricing: supply/demand pressure, trade-route reversion, noise.

Per commodity, once per epoch:
  1. fluctuation  uniform in [-volatility, +volatility]
  2. scarcity     demand / max(1, supply);  > 1.2 → +1,  < 0.8 → -1
  3. routes       0.5 per active route carrying the commodity, pulling the
                  price back toward base_price
  4. next price   current + pressure + fluctuation ∓ route pull,
                  rounded to 2 decimals, floored at 1
"""

from __future__ import annotations

import random

from realm_forge.models import Commodity, WorldState

SHORTAGE_RATIO = 1.2
GLUT_RATIO = 0.8
ROUTE_PULL = 0.5
PRICE_FLOOR = 1.0


def scarcity_pressure(commodity: Commodity) -> int:
    scarcity = commodity.demand / max(1, commodity.supply)
    if scarcity > SHORTAGE_RATIO:
        return 1
    if scarcity < GLUT_RATIO:
        return -1
    return 0


def route_pull(state: WorldState, commodity: Commodity) -> float:
    """Signed route adjustment for one commodity."""
    active = sum(
        1 for r in state.map.routes
        if r.commodity == commodity.id and r.status == "active"
    )
    factor = active * ROUTE_PULL
    # At exactly base price the routes still push upward.
    return -factor if commodity.current_price > commodity.base_price else factor


def simulate_economy(
    state: WorldState, rng: random.Random | None = None
) -> list[Commodity]:
    """Return the next-epoch commodity list. `state` is not modified."""
    rng = rng or random.Random()
    updated: list[Commodity] = []
    for c in state.economy.commodities:
        fluctuation = rng.uniform(-c.volatility, c.volatility)
        next_price = (
            c.current_price
            + scarcity_pressure(c)
            + fluctuation
            + route_pull(state, c)
        )
        next_price = max(PRICE_FLOOR, round(next_price, 2))
        updated.append(c.model_copy(update={"current_price": next_price}))
    return updated
