from __future__ import annotations


class ConsoleError(Exception):
    """Base class for errors reported through the status channel."""


class ValidationError(ConsoleError):
    """Malformed user input, rejected before any network call."""


class NotFoundError(ConsoleError):
    """The job lookup succeeded but returned no document."""


class BackendError(ConsoleError):
    """A backend answered with success=false."""


class TransportError(ConsoleError):
    """A network call failed before a usable answer arrived."""


class ResolverBusyError(ConsoleError):
    """A reference resolution is already in flight."""


class CatalogError(ValueError):
    """The task catalog failed load-time validation."""
