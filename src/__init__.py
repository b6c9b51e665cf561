"""Phaseflow - task decomposition to execution engine.

Takes a planner's breakdown of work (steps grouped into phases, gated by
milestones), validates its dependency graphs, orders and runs it phase by
phase, and keeps a resumable execution context per workflow.
"""

__version__ = "0.1.0"
