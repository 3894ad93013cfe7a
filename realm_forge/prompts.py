"""Handlebars prompt templates for the oracle stages.

Each oracle stage has a default template. Deployments may override any of
them through the "prompts" section of config.json; the override is used as
given, so it must reference the same context variables.

Triple-stash ({{{x}}}) is used for free text so names and JSON survive
without HTML escaping.
"""

from collections.abc import Callable
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_take(this, options, items, count):
    """{{#take array N}}...{{/take}}: iterate over the first N items."""
    result = []
    for item in list(items)[:int(count)]:
        result.extend(options["fn"](item))
    return result


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}}: iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "take": _helper_take,
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Default templates ────────────────────────────────────

GENESIS_PROMPT = """\
GENESIS AGENT: Create a new world based on seed "{{{seed}}}".
USER SETTINGS: GENRE: {{{theme.genre}}}, THREAT: {{{theme.threat}}}, TONE: {{{theme.tone}}}
Generate: 3 factions, 2-3 locations (x: 0-{{max_x}}, y: 0-{{max_y}}) with population and faction_id,
6 NPCs (one leader per faction, referenced by the faction's leader_npc_id),
1 commodity config, 1 initial event.
Output strict JSON with keys: world_name, factions, locations, npcs, commodities, initial_event.
"""

DECISION_PROMPT = """\
You are {{{manager.name}}}, the {{{manager.role}}} of {{{faction.name}}}.
CONTEXT: The world genre is {{{theme.genre}}} ({{{theme.tone}}}). Threats: {{{theme.threat}}}.
FACTION STATUS: Resources G{{faction.resources.gold}}/Gr{{faction.resources.grain}}/Fe{{faction.resources.iron}}, Troops {{faction.military.troops}}
KEY LOCATIONS:
{{#take locations 3}}- {{{id}}}: {{{name}}} (owner {{{faction_id}}}, Pros:{{prosperity}} Unrest:{{unrest}} Def:{{defense}})
{{/take}}
OTHER FACTIONS:
{{#each rivals}}- {{{id}}}: {{{name}}} (troops {{military.troops}})
{{/each}}
MARKET: {{#take commodities 3}}{{{id}}} {{current_price}}G; {{/take}}
RECENT EVENTS:
{{#last recent_events 3}}- {{{title}}}: {{{summary}}}
{{/last}}
MEMORIES:
{{#each memories}}- {{{text}}}
{{/each}}
Goals: {{#each goals}}{{{text}}}; {{/each}}
SHARED TOOL ARCHIVE:
{{{tools}}}
Task: decide on one strategic move, or wait.
Available actions:
- build_structure: {"location_id", "building_type" (market|farm|barracks|wall|inn|workshop|watchtower), "cost_gold", "cost_grain", "cost_iron"}
- simulate_combat: {"target_faction_id", "location_id"}
- execute_tool: {"tool_id", "arguments", "note"}
Output strict JSON: {"action": "<name or null>", "args": {...}, "reason": "", "confidence": 0.8}
"""

COMBAT_PROMPT = """\
ROLE: You are the GOD ENGINE, the omniscient arbiter of reality in this simulation.
TASK: Resolve a battle between two factions. Use logic, narrative stakes and the balance of power.

ATTACKER: {{{attacker.name}}} (Archetype: {{attacker.archetype}})
  - Troops: {{attacker.military.troops}}
  - Quality: {{attacker.military.quality}}
DEFENDER: {{{defender.name}}} (Archetype: {{defender.archetype}})
  - Troops: {{defender.military.troops}}
  - Quality: {{defender.military.quality}}
BATTLEFIELD: {{{location.name}}} ({{location.type}})
  - Defenses: {{location.defense}}
  - Current Unrest: {{location.unrest}}
  - Population: {{location.population}}

The attacker generally needs superior numbers or quality to take a fortified location.
Output strict JSON:
{"narrative": "", "attacker_casualties": 0, "defender_casualties": 0,
 "location_conquered": false, "defense_damage": 0, "unrest_change": 0}
defense_damage is 0-20, unrest_change is -10 to +50.
"""

HISTORY_PROMPT = """\
Summarize these world events into a single punchy log entry:
{{#each logs}}- {{{this}}}
{{/each}}
"""

WORLD_EVENT_PROMPT = """\
You are the world narrator for a strategy simulation.
Create a short, punchy event entry (title + summary) for Day {{day}}.
World tone: {{{theme.genre}}} ({{{theme.tone}}}) with threats like {{{theme.threat}}}.
Output strict JSON: {"title": "", "summary": "", "type": "world_event"}
"""

TOOL_EVOLUTION_PROMPT = """\
You are designing shared strategic action templates for AI agents in a living world simulation.
World: {{{theme.genre}}} ({{{theme.tone}}}). Day {{day}}.
Existing tools:
{{{tools}}}
Create ONE new tool that is creative, useful and grounded. Avoid duplicates.
The tool should be a reusable action template, not a direct effect.
Allowed parameter names (pick only those needed): {{{allowed_parameters}}}.
Output strict JSON:
{"name": "", "description": "", "action_guidance": "",
 "parameters": [{"name": "", "type": "string|number|boolean", "description": ""}],
 "cooldown_days": 2, "lore": ""}
"""

TOOL_EXECUTION_PROMPT = """\
You are executing a shared action template for a world simulation.
World: {{{theme.genre}}} ({{{theme.tone}}}). Day {{day}}.
Actor: {{{manager.name}}} ({{{manager.role}}}) of faction {{{manager.faction_id}}}.
Tool: {{{tool.name}}}
Description: {{{tool.description}}}
Guidance: {{{tool.action_guidance}}}
Parameters: {{{parameters_json}}}
Provided Arguments: {{{arguments_json}}}
Return a concise summary and 1-3 tool calls.
Allowed tool calls:
- build_structure: {"location_id", "building_type", "cost_gold", "cost_grain", "cost_iron"}
- simulate_combat: {"target_faction_id", "location_id"}
- apply_influence: {"target_type" (faction|location|npc), "target_id", "field", "delta"}
Allowed fields for apply_influence:
  faction: resources.gold, resources.grain, resources.iron, military.troops, military.quality
  location: prosperity, defense, unrest, population
  npc: resources.gold, resources.influence
Output strict JSON: {"summary": "", "calls": [{"tool": "", "args": {}}]}
"""

DEFAULT_PROMPTS: dict[str, str] = {
    "genesis": GENESIS_PROMPT,
    "decision": DECISION_PROMPT,
    "combat": COMBAT_PROMPT,
    "history": HISTORY_PROMPT,
    "world_event": WORLD_EVENT_PROMPT,
    "tool_evolution": TOOL_EVOLUTION_PROMPT,
    "tool_execution": TOOL_EXECUTION_PROMPT,
}
