"""Routing exception hierarchy.

These errors are raised at the store boundary and caught inside the
routing engine, which degrades to a weaker policy instead of failing a
request submission.  They never reach the submission caller.
"""
from __future__ import annotations


class RoutingError(Exception):
    """Base class for recoverable routing failures."""


class RoutingStoreError(RoutingError):
    """A read against the backing store failed."""


class WorkloadUnavailableError(RoutingError):
    """The approver workload aggregate could not be read."""


class InvalidRuleConfiguration(RoutingError, ValueError):
    """A rule's conditions or escalation policy do not validate."""
