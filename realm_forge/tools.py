"""Tool Archive: shared, cooldown-gated registry of oracle-invented actions.

State is a ToolArchive: the tools themselves, a usage map (tool id → epoch it
was last used, whoever used it) and the epoch of the last evolution.

All functions return a ToolArchive instead of mutating the one passed in.
A rejected add returns the input archive unchanged.

Tool parameters are a closed set of primitive kinds (string, number,
boolean). validate_arguments() checks oracle-supplied arguments against the
declared parameters before a tool is executed.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from realm_forge.errors import ValidationFailure
from realm_forge.models import AgentTool, NumberParameter, ToolArchive, clamp

logger = logging.getLogger(__name__)

MIN_COOLDOWN = 1
MAX_COOLDOWN = 10


def validate_tool(tool: AgentTool) -> bool:
    return bool(tool.name.strip() and tool.description.strip() and tool.action_guidance.strip())


def normalize_tool(tool: AgentTool) -> AgentTool:
    cooldown = int(clamp(tool.cooldown_days or MIN_COOLDOWN, MIN_COOLDOWN, MAX_COOLDOWN))
    return tool.model_copy(update={"cooldown_days": cooldown})


def add_tool(archive: ToolArchive, tool: AgentTool | dict[str, Any]) -> ToolArchive:
    """Append a tool unless it is invalid or its name is already taken."""
    if isinstance(tool, dict):
        try:
            tool = AgentTool.model_validate(tool)
        except ValidationError as e:
            logger.warning("Rejected malformed tool definition: %s", e.errors()[:1])
            return archive
    if not validate_tool(tool):
        logger.warning("Rejected incomplete tool %r", tool.id)
        return archive
    if find_tool_by_name(archive, tool.name) is not None:
        logger.info("Rejected duplicate tool name %r", tool.name)
        return archive
    return archive.model_copy(update={"tools": [*archive.tools, normalize_tool(tool)]})


def get_tool(archive: ToolArchive, tool_id: str) -> AgentTool | None:
    return next((t for t in archive.tools if t.id == tool_id), None)


def find_tool_by_name(archive: ToolArchive, name: str) -> AgentTool | None:
    wanted = name.strip().lower()
    return next((t for t in archive.tools if t.name.strip().lower() == wanted), None)


def can_use(archive: ToolArchive, tool_id: str, current_epoch: int) -> bool:
    tool = get_tool(archive, tool_id)
    if tool is None:
        return False
    last_used = archive.usage.get(tool_id)
    if last_used is None:
        return True
    return current_epoch - last_used >= tool.cooldown_days


def mark_used(archive: ToolArchive, tool_id: str, epoch: int) -> ToolArchive:
    return archive.model_copy(update={"usage": {**archive.usage, tool_id: epoch}})


def describe_tools(archive: ToolArchive) -> str:
    """One line per tool, for oracle prompts."""
    if not archive.tools:
        return "No shared tools yet."
    lines = []
    for tool in archive.tools:
        params = ", ".join(f"{p.name}:{p.type}" for p in tool.parameters) or "none"
        lines.append(
            f"{tool.id}: {tool.name} - {tool.description} | params: {params}"
            f" | guidance: {tool.action_guidance}"
        )
    return "\n".join(lines)


def validate_arguments(tool: AgentTool, args: dict[str, Any]) -> dict[str, Any]:
    """Check `args` against the tool's declared parameters.

    Undeclared names are dropped. Missing parameters are allowed. A value of
    the wrong kind, or a number outside declared bounds, raises
    ValidationFailure.
    """
    checked: dict[str, Any] = {}
    for param in tool.parameters:
        if param.name not in args or args[param.name] is None:
            continue
        value = args[param.name]
        if param.type == "boolean":
            if not isinstance(value, bool):
                raise ValidationFailure(f"{param.name} must be a boolean")
        elif param.type == "number":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationFailure(f"{param.name} must be a number")
            _check_bounds(param, value)
        elif not isinstance(value, str):
            raise ValidationFailure(f"{param.name} must be a string")
        checked[param.name] = value
    return checked


def _check_bounds(param: NumberParameter, value: float) -> None:
    if param.minimum is not None and value < param.minimum:
        raise ValidationFailure(f"{param.name} below minimum {param.minimum}")
    if param.maximum is not None and value > param.maximum:
        raise ValidationFailure(f"{param.name} above maximum {param.maximum}")
