"""FastMCP server exposing the Tool Archive as read-only MCP tools.

Tools:
  - describe_archive()          : the archive as the oracle sees it
  - lookup_tool(name)           : fetch one tool by name (case-insensitive)
  - tool_status(tool_id, epoch) : cooldown state of a tool at an epoch

The archive is replaced via set_archive() for tests, or loaded from the saved
world in REALM_DATA_DIR when run as __main__.

Usage:
    python -m realm_forge.mcp_server
"""

from mcp.server.fastmcp import FastMCP

from realm_forge import tools
from realm_forge.models import ToolArchive

mcp = FastMCP("realm-forge-tools")

_archive: ToolArchive = ToolArchive()


def set_archive(archive: ToolArchive) -> None:
    """Replace the active archive (used in tests)."""
    global _archive
    _archive = archive


def get_archive() -> ToolArchive:
    return _archive


@mcp.tool()
def describe_archive() -> str:
    """Describe every shared tool, one per line."""
    return tools.describe_tools(_archive)


@mcp.tool()
def lookup_tool(name: str) -> dict:
    """Look up a tool by name. Returns an empty object if there is none."""
    tool = tools.find_tool_by_name(_archive, name)
    return tool.model_dump() if tool else {}


@mcp.tool()
def tool_status(tool_id: str, epoch: int) -> dict:
    """Report whether a tool can be used at `epoch`."""
    tool = tools.get_tool(_archive, tool_id)
    if tool is None:
        return {"tool_id": tool_id, "found": False, "available": False}
    return {
        "tool_id": tool_id,
        "found": True,
        "cooldown_days": tool.cooldown_days,
        "last_used_epoch": _archive.usage.get(tool_id),
        "available": tools.can_use(_archive, tool_id, epoch),
    }


if __name__ == "__main__":
    from realm_forge.config import data_dir_from_env, load_env
    from realm_forge.storage import Storage

    load_env()
    bundle = Storage(data_dir_from_env()).load_bundle()
    if bundle is not None:
        set_archive(bundle.tool_archive)
    mcp.run()
