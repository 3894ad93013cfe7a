"""Deterministic world subsystems.

Each module works on a WorldState (or part of one) and never calls the
oracle directly; conflict resolution receives its arbiter as an argument.
"""
