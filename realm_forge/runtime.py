"""Process-wide engine wiring shared by the HTTP API and the CLI.

init_runtime(data_dir) must be called once before get_runtime(). The runtime
owns the Storage and, once a world exists, the single TurnOrchestrator that
advances it. The orchestrator is rebuilt whenever the world or the config
changes.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Any

from realm_forge.config import build_llm, connection_from_config, settings_from_config
from realm_forge.errors import TurnInProgress
from realm_forge.llm import LLM
from realm_forge.models import ThemeConfig, WorldBundle
from realm_forge.oracle import Oracle
from realm_forge.pipeline.orchestrator import TurnOrchestrator
from realm_forge.sim.genesis import create_world
from realm_forge.storage import Storage

logger = logging.getLogger(__name__)


class Runtime:
    """Storage plus a lazily built orchestrator.

    Pass `llm` to bypass the configured connection (tests, offline runs).
    """

    def __init__(self, storage: Storage, llm: LLM | None = None) -> None:
        self.storage = storage
        self._llm = llm
        self._orchestrator: TurnOrchestrator | None = None

    def _oracle(self, config: dict[str, Any]) -> Oracle:
        llm = self._llm or build_llm(connection_from_config(config))
        return Oracle(llm, prompts=config.get("prompts") or {})

    def _make_orchestrator(self, bundle: WorldBundle) -> TurnOrchestrator:
        config = self.storage.get_config()
        return TurnOrchestrator(
            self.storage,
            self._oracle(config),
            bundle,
            settings_from_config(config),
            rng=random.Random(f"{bundle.meta.seed}:{bundle.world_state.time.epoch}"),
        )

    def orchestrator(self) -> TurnOrchestrator | None:
        """The orchestrator for the saved world, None if there is none.

        Raises CorruptSave if the saved world cannot be loaded.
        """
        if self._orchestrator is None:
            bundle = self.storage.load_bundle()
            if bundle is None:
                return None
            self._orchestrator = self._make_orchestrator(bundle)
        return self._orchestrator

    def bundle(self) -> WorldBundle | None:
        orchestrator = self.orchestrator()
        return orchestrator.bundle if orchestrator else None

    def _ensure_idle(self) -> None:
        if self._orchestrator is not None and self._orchestrator.busy:
            raise TurnInProgress("A turn is being simulated; try again when it finishes")

    async def create(self, seed: str, theme: ThemeConfig) -> WorldBundle:
        """Generate and save a new world, replacing any current one.

        Raises TurnInProgress while the current world is mid-turn.
        """
        self._ensure_idle()
        config = self.storage.get_config()
        settings = settings_from_config(config)
        bundle = await create_world(
            self._oracle(config), seed, theme,
            width=settings.map_width, height=settings.map_height,
        )
        # a turn may have started while the oracle was generating
        self._ensure_idle()
        self.storage.save_bundle(bundle)
        self._orchestrator = self._make_orchestrator(bundle)
        logger.info("Created world %s (%s)", bundle.meta.world_id, bundle.meta.world_name)
        return bundle

    def reset(self) -> bool:
        self._ensure_idle()
        self._orchestrator = None
        return self.storage.reset()

    def update_config(self, fields: dict[str, Any]) -> dict[str, Any]:
        config = self.storage.update_config(fields)
        # settings and connection are read when the orchestrator is built
        if self._orchestrator is not None and not self._orchestrator.busy:
            self._orchestrator = None
        return config


_runtime: Runtime | None = None


def init_runtime(data_dir: Path, llm: LLM | None = None) -> Runtime:
    global _runtime
    _runtime = Runtime(Storage(data_dir), llm=llm)
    return _runtime


def get_runtime() -> Runtime:
    assert _runtime is not None, "Call init_runtime() before using the runtime"
    return _runtime
