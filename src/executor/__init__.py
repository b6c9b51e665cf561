"""Execution engine for workflow plans.

Architecture (bottom-up):
- tools: tool registry interface consumed by tool_call steps
- step_executor: dispatches one step by action kind, normalizes the result
- phase_runner: runs one phase's steps in dependency order
- milestones: milestone achievement and named success metrics
- db / state_store: execution context persistence with expiry
- workflow_runner: drives phases, suspension, resumption and adaptation
"""
