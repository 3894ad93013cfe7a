"""realm-forge command line.

    realm-forge init --seed S [--genre G] [--threat T] [--tone T]
    realm-forge advance [--turns N]
    realm-forge export [PATH]
    realm-forge reset
    realm-forge serve [--host H] [--port P]

Exit codes: 0 success, 1 usage error, 2 oracle unavailable, 3 invalid save
data, 4 no world.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from realm_forge.config import data_dir_from_env, load_env
from realm_forge.errors import CorruptSave, OracleUnavailable
from realm_forge.models import ThemeConfig
from realm_forge.runtime import Runtime, init_runtime

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_ORACLE = 2
EXIT_CORRUPT = 3
EXIT_NO_WORLD = 4


class _Parser(argparse.ArgumentParser):
    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="realm-forge", description="Turn-based world simulation")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data directory (default: $REALM_DATA_DIR or ./data)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create a new world")
    init.add_argument("--seed", required=True)
    defaults = ThemeConfig()
    init.add_argument("--genre", default=defaults.genre)
    init.add_argument("--threat", default=defaults.threat)
    init.add_argument("--tone", default=defaults.tone)

    advance = sub.add_parser("advance", help="Simulate one or more epochs")
    advance.add_argument("--turns", type=int, default=1)

    export = sub.add_parser("export", help="Write the world bundle to a file")
    export.add_argument("path", type=Path, nargs="?", default=None)

    sub.add_parser("reset", help="Delete the current world")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT", "13013")))
    return parser


async def _init(runtime: Runtime, args: argparse.Namespace) -> int:
    theme = ThemeConfig(genre=args.genre, threat=args.threat, tone=args.tone)
    bundle = await runtime.create(args.seed, theme)
    state = bundle.world_state
    print(
        f"Created {bundle.meta.world_name} ({bundle.meta.world_id}): "
        f"{len(state.factions)} factions, {len(state.map.locations)} locations, "
        f"{len(state.npcs)} NPCs"
    )
    return EXIT_OK


async def _advance(runtime: Runtime, args: argparse.Namespace) -> int:
    orchestrator = runtime.orchestrator()
    if orchestrator is None:
        print("No world. Run `realm-forge init` first.", file=sys.stderr)
        return EXIT_NO_WORLD
    if args.turns < 1:
        print("--turns must be at least 1", file=sys.stderr)
        return EXIT_USAGE
    for _ in range(args.turns):
        report = await orchestrator.advance_time()
        print(f"Day {report.day} (epoch {report.epoch})")
        for line in report.logs:
            print(f"  {line}")
        for event in report.events:
            print(f"  [{event.type}] {event.title}: {event.summary}")
    return EXIT_OK


def _export(runtime: Runtime, args: argparse.Namespace) -> int:
    bundle = runtime.bundle()
    if bundle is None:
        print("No world to export.", file=sys.stderr)
        return EXIT_NO_WORLD
    path = runtime.storage.export_bundle(bundle, args.path)
    print(f"Exported to {path}")
    return EXIT_OK


def _reset(runtime: Runtime) -> int:
    if not runtime.reset():
        print("No world to reset.", file=sys.stderr)
        return EXIT_NO_WORLD
    print("World deleted.")
    return EXIT_OK


def _serve(data_dir: Path, args: argparse.Namespace) -> int:
    import uvicorn

    from realm_forge.app import create_app

    uvicorn.run(create_app(data_dir), host=args.host, port=args.port)
    return EXIT_OK


def run(args: argparse.Namespace) -> int:
    data_dir = args.data_dir or data_dir_from_env()
    if args.command == "serve":
        return _serve(data_dir, args)

    runtime = init_runtime(data_dir)
    try:
        if args.command == "init":
            return asyncio.run(_init(runtime, args))
        if args.command == "advance":
            return asyncio.run(_advance(runtime, args))
        if args.command == "export":
            return _export(runtime, args)
        if args.command == "reset":
            return _reset(runtime)
    except OracleUnavailable as e:
        print(f"Oracle unavailable: {e}", file=sys.stderr)
        return EXIT_ORACLE
    except CorruptSave as e:
        print(f"Saved world is invalid: {e}", file=sys.stderr)
        return EXIT_CORRUPT
    return EXIT_USAGE


def main(argv: list[str] | None = None) -> int:
    load_env()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
