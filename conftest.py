import json
import shutil
from pathlib import Path

import pytest

from realm_forge.llm import OFFLINE_REPLIES
from realm_forge.models import (
    NPC,
    BundleMeta,
    Commodity,
    Economy,
    EventLogEntry,
    Faction,
    Goal,
    Location,
    Military,
    Resources,
    Tile,
    WorldBundle,
    WorldMap,
    WorldState,
    WorldTime,
)

TEST_DATA_DIR = Path("data-tests")


@pytest.fixture
def data_dir() -> Path:
    """Wipe data-tests/ and hand it to the test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    TEST_DATA_DIR.mkdir()
    return TEST_DATA_DIR


# ---------------------------------------------------------------------------
# StubLLM: dispatches by stage name, independent queue per stage
# ---------------------------------------------------------------------------

class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name → list of responses (in call order).
    A response may be an exception instance, which is raised instead.
    When a stage's queue is empty the `defaults` reply is used; without one
    the call fails the test.
    """

    def __init__(
        self,
        responses: dict[str, list] | None = None,
        defaults: dict[str, str] | None = None,
    ) -> None:
        self._queues: dict[str, list] = {k: list(v) for k, v in (responses or {}).items()}
        self._defaults = dict(defaults or {})
        self.calls: list[tuple[str, str]] = []

    @classmethod
    def quiet(cls, responses: dict[str, list] | None = None) -> "StubLLM":
        """Offline replies for every stage unless overridden."""
        return cls(responses, defaults=OFFLINE_REPLIES)

    async def __call__(self, stage: str, prompt: str) -> str:
        self.calls.append((stage, prompt))
        queue = self._queues.get(stage)
        if queue:
            reply = queue.pop(0)
        elif stage in self._defaults:
            reply = self._defaults[stage]
        else:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {[c[0] for c in self.calls]}"
            )
        if isinstance(reply, BaseException):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)

    def stages(self) -> list[str]:
        return [stage for stage, _ in self.calls]

    def assert_exhausted(self) -> None:
        """Assert every queued response was consumed."""
        leftover = {k: v for k, v in self._queues.items() if v}
        if leftover:
            raise AssertionError(f"StubLLM: unused responses remain: {leftover}")


# ---------------------------------------------------------------------------
# A small two-faction world
# ---------------------------------------------------------------------------

def build_state() -> WorldState:
    """4x4 map, two factions with one town each, three NPCs, one commodity."""
    tiles = [Tile(x=x, y=y) for y in range(4) for x in range(4)]
    tiles[0].location_id, tiles[0].owner_faction_id = "loc_a", "fac_a"
    tiles[15].location_id, tiles[15].owner_faction_id = "loc_b", "fac_b"
    return WorldState(
        time=WorldTime(day=1, hour=8, epoch=1),
        map=WorldMap(
            width=4,
            height=4,
            tiles=tiles,
            locations=[
                Location(id="loc_a", name="Ashford", x=0, y=0, faction_id="fac_a"),
                Location(id="loc_b", name="Blackmere", x=3, y=3, faction_id="fac_b",
                         defense=40, unrest=10),
            ],
        ),
        factions=[
            Faction(id="fac_a", name="Azure Pact", leader_npc_id="npc_a",
                    resources=Resources(gold=10, grain=5, iron=0),
                    military=Military(troops=50, quality=1.0)),
            Faction(id="fac_b", name="Bone Legion", archetype="chaos", leader_npc_id="npc_b",
                    resources=Resources(gold=100, grain=100, iron=100),
                    military=Military(troops=40, quality=1.2)),
        ],
        npcs=[
            NPC(id="npc_a", name="Queen Aster", role="Ruler", faction_id="fac_a",
                location_id="loc_a", goals=[Goal(id="g1", text="Keep Ashford fed")]),
            NPC(id="npc_b", name="Warlord Brakk", role="Warlord", faction_id="fac_b",
                location_id="loc_b"),
            NPC(id="npc_c", name="Pell", role="Farmer", faction_id="fac_a",
                location_id="loc_a"),
        ],
        economy=Economy(commodities=[
            Commodity(id="grain", base_price=10, current_price=10, supply=100, demand=100,
                      volatility=0.0),
        ]),
        event_log=[
            EventLogEntry(id="evt_genesis", epoch=0, type="genesis",
                          title="World Created", summary="It begins."),
        ],
    )


def build_bundle(state: WorldState | None = None) -> WorldBundle:
    return WorldBundle(
        meta=BundleMeta(
            world_id="world_test",
            world_name="Testland",
            seed="test-seed",
            created_at="2026-01-01T00:00:00+00:00",
            version="2",
        ),
        world_state=state or build_state(),
    )


@pytest.fixture
def state() -> WorldState:
    return build_state()


@pytest.fixture
def bundle() -> WorldBundle:
    return build_bundle()
