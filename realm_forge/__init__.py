"""Realm Forge: a turn-based world simulation engine.

Factions, locations and NPC agents evolve one epoch at a time. Deterministic
subsystems (memory, economy, construction, combat application) live in
realm_forge.sim; judgement calls go to a decision oracle (realm_forge.oracle)
backed by any LLM. realm_forge.pipeline.orchestrator runs the turn.
"""
