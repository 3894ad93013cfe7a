"""Turn pipeline.

TurnOrchestrator.advance_time() runs one epoch: memory decay, economy tick,
manager decisions and their actions, history, world events, tool evolution,
time advance and the world diff. See orchestrator.py for the full flow.
"""

from .orchestrator import TurnOrchestrator, TurnReport, select_managers  # noqa: F401
