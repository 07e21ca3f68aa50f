"""Hub exception types."""


class HubError(Exception):
    """Base class for hub errors."""


class InvalidUpdate(HubError):
    """A publish request that cannot be turned into a deliverable update."""


class Unauthorized(HubError):
    """Missing or unverifiable credential."""
