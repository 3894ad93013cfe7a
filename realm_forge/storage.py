"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM; reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      world.json     ← the current WorldBundle (state, diffs, tool archive)
      config.json    ← LLM connection, simulation settings, prompt overrides
      exports/       ← default target for export_bundle()

Saved worlds pass through migrate_bundle() exactly once, on load. It
upgrades older layouts, fills absent or null arrays with empty ones, and
either returns a valid WorldBundle or raises CorruptSave.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from realm_forge.errors import CorruptSave
from realm_forge.models import BUNDLE_VERSION, WorldBundle

logger = logging.getLogger(__name__)


_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm_connection": {
        "provider_url": "",
        "api_key": "",
        "provider_format": "openai",
        "model": "",
        "timeout": 120.0,
    },
    "simulation": {
        "memory_decay": 0.9,
        "max_managers": 3,
        "manager_keywords": [
            "leader", "ruler", "mayor", "chief", "lord", "master", "captain", "general",
        ],
        "oracle_delay_seconds": 1.0,
        "world_events": True,
        "tool_evolution": True,
        "map_width": 24,
        "map_height": 16,
    },
    "prompts": {},
}


# ---------------------------------------------------------------------------
# Schema migration
# ---------------------------------------------------------------------------

def _ensure_list(container: dict, key: str) -> list:
    value = container.get(key)
    if not isinstance(value, list):
        value = []
        container[key] = value
    return value


def _ensure_dict(container: dict, key: str) -> dict:
    value = container.get(key)
    if not isinstance(value, dict):
        value = {}
        container[key] = value
    return value


def _migrate_v1(raw: dict) -> dict:
    """v1 → v2: theme moved into meta.theme, tool archive joined the bundle."""
    meta = raw.get("meta")
    if isinstance(meta, dict) and "themeConfig" in meta:
        meta.setdefault("theme", meta.pop("themeConfig"))
    raw.setdefault("tool_archive", {})
    return raw


_MIGRATIONS: dict[str, Callable[[dict], dict]] = {
    "1": _migrate_v1,
}


def _fill_defaults(raw: dict) -> None:
    _ensure_list(raw, "world_diffs")
    ws = _ensure_dict(raw, "world_state")
    for key in ("factions", "npcs", "quests", "event_log", "decision_traces"):
        _ensure_list(ws, key)
    world_map = _ensure_dict(ws, "map")
    for key in ("tiles", "locations", "routes"):
        _ensure_list(world_map, key)
    economy = _ensure_dict(ws, "economy")
    for key in ("commodities", "market_events"):
        _ensure_list(economy, key)
    for loc in world_map["locations"]:
        if isinstance(loc, dict):
            _ensure_list(loc, "buildings")
    for faction in ws["factions"]:
        if isinstance(faction, dict):
            _ensure_list(faction, "relationships")
            _ensure_list(faction, "laws")
    for npc in ws["npcs"]:
        if isinstance(npc, dict):
            for key in ("memory", "goals", "traits", "relationships"):
                _ensure_list(npc, key)

    archive = _ensure_dict(raw, "tool_archive")
    _ensure_dict(archive, "usage")
    tools = []
    for tool in _ensure_list(archive, "tools"):
        if not isinstance(tool, dict):
            continue
        if not (tool.get("name") and tool.get("description") and tool.get("action_guidance")):
            logger.warning("Dropping incomplete saved tool %r", tool.get("id"))
            continue
        params = tool.get("parameters")
        tool["parameters"] = [
            p for p in (params if isinstance(params, list) else [])
            if isinstance(p, dict) and p.get("type") in ("string", "number", "boolean")
        ]
        tools.append(tool)
    archive["tools"] = tools


def migrate_bundle(raw: Any) -> WorldBundle:
    """Upgrade raw saved data to the current WorldBundle, or raise CorruptSave."""
    if not isinstance(raw, dict):
        raise CorruptSave("Saved world is not a JSON object")
    if not isinstance(raw.get("meta"), dict):
        raise CorruptSave("Saved world has no meta section")
    if raw.get("world_state") is not None and not isinstance(raw["world_state"], dict):
        raise CorruptSave("world_state must be an object")

    data = copy.deepcopy(raw)
    version = str(data["meta"].get("version") or "1")
    while version != BUNDLE_VERSION:
        step = _MIGRATIONS.get(version)
        if step is None:
            raise CorruptSave(f"Unknown save version {version!r}")
        logger.info("Migrating saved world from v%s", version)
        data = step(data)
        version = str(int(version) + 1)
    data["meta"]["version"] = BUNDLE_VERSION

    _fill_defaults(data)
    try:
        return WorldBundle.model_validate(data)
    except ValidationError as e:
        raise CorruptSave(f"Saved world failed validation: {e}") from e


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    @property
    def base_path(self) -> Path:
        return self._base

    def _world_file(self) -> Path:
        return self._base / "world.json"

    def _config_file(self) -> Path:
        return self._base / "config.json"

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2))

    # ------------------------------------------------------------------
    # World bundle
    # ------------------------------------------------------------------

    def has_world(self) -> bool:
        return self._world_file().is_file()

    def load_bundle(self) -> WorldBundle | None:
        """Return the saved bundle, None if there is none. Raises CorruptSave."""
        path = self._world_file()
        if not path.is_file():
            return None
        try:
            raw = self._read_json(path)
        except json.JSONDecodeError as e:
            raise CorruptSave(f"world.json is not valid JSON: {e}") from e
        return migrate_bundle(raw)

    def save_bundle(self, bundle: WorldBundle) -> None:
        # write-then-rename so a crash never leaves half a file behind
        tmp = self._world_file().with_suffix(".json.tmp")
        tmp.write_text(bundle.model_dump_json(indent=2))
        tmp.replace(self._world_file())

    def export_bundle(self, bundle: WorldBundle, target: Path | None = None) -> Path:
        if target is None:
            exports = self._base / "exports"
            exports.mkdir(exist_ok=True)
            target = exports / f"{bundle.meta.world_id}-epoch{bundle.world_state.time.epoch}.json"
        target.write_text(bundle.model_dump_json(indent=2))
        return target

    def import_bundle(self, source: Path) -> WorldBundle:
        try:
            raw = self._read_json(source)
        except json.JSONDecodeError as e:
            raise CorruptSave(f"{source.name} is not valid JSON: {e}") from e
        bundle = migrate_bundle(raw)
        self.save_bundle(bundle)
        return bundle

    def reset(self) -> bool:
        """Delete the current world. Config is kept. Returns False if none existed."""
        path = self._world_file()
        if not path.is_file():
            return False
        path.unlink()
        return True

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def get_config(self) -> dict[str, Any]:
        """Read config, returning defaults merged with stored values."""
        config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))
        path = self._config_file()
        if path.is_file():
            stored = self._read_json(path)
            for section in ("llm_connection", "simulation"):
                if isinstance(stored.get(section), dict):
                    config[section].update(stored[section])
            if isinstance(stored.get("prompts"), dict):
                config["prompts"] = stored["prompts"]
        return config

    def update_config(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge fields into config and persist. Returns full config.

        llm_connection and simulation merge key by key; prompts is replaced
        wholesale.
        """
        config = self.get_config()
        for section in ("llm_connection", "simulation"):
            if isinstance(fields.get(section), dict):
                config[section].update(fields[section])
        if isinstance(fields.get("prompts"), dict):
            config["prompts"] = fields["prompts"]
        self._write_json(self._config_file(), config)
        return config
