"""Domain error taxonomy.

NotFound, InsufficientResources and ValidationFailure are recovered where they
happen and surface as failed ToolResults. OracleUnavailable is recovered per
call site. CorruptSave is raised once, at load time. TurnInProgress guards the
orchestrator against overlapping turns.
"""

from __future__ import annotations


class WorldError(Exception):
    """Base class for simulation errors."""


class NotFound(WorldError):
    """A faction, location, NPC or tool referenced by id does not exist."""


class InsufficientResources(WorldError):
    """A faction cannot afford a cost in at least one resource dimension."""


class ValidationFailure(WorldError):
    """A tool definition, tool argument set or oracle payload is malformed."""


class OracleUnavailable(WorldError):
    """The external oracle failed after retries or returned unusable output."""


class CorruptSave(WorldError):
    """Saved world data cannot be migrated into a valid WorldBundle."""


class TurnInProgress(WorldError):
    """advance_time() was called while another turn is still running."""
