"""Approver routing engine.

Evaluates organization-scoped assignment rules in priority order,
narrows the candidate pool, applies an assignment strategy and honours
approval delegations.  Every entry point takes an explicit
``OrgContext``; nothing here reads ambient request state.
"""
