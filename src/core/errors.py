"""Error taxonomy for the monitoring engine."""

from __future__ import annotations


class PeriscopeError(Exception):
    """Base class for engine errors."""


class ContextLostError(PeriscopeError):
    """A collaborator of the engine (store, command channel) is unreachable.

    This is transient and never logged as an error; the state machine runs a
    bounded recovery sequence when it sees one.
    """


class ContainerNotFound(PeriscopeError):
    """No container selector matched within the locator's attempt budget."""

    def __init__(self, selectors, attempts: int) -> None:
        super().__init__(f"No container matched {len(selectors)} selectors after {attempts} attempts")
        self.selectors = tuple(selectors)
        self.attempts = attempts


class HostTreeError(PeriscopeError):
    """The host page could not answer a query (navigating, closed, crashed)."""


class PipelineError(PeriscopeError):
    """A single candidate text could not be normalized or matched."""
