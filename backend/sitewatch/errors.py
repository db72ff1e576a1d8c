"""Error taxonomy shared by the monitoring core and the admin API."""


class SitewatchError(Exception):
    """Base class for all sitewatch errors."""


class ProbeFailure(SitewatchError):
    """A probe could not reach the site. Converted into a check result by the prober."""

    def __init__(self, status: str, message: str):
        self.status = status
        super().__init__(message)


class NotFound(SitewatchError):
    """A referenced site or alert does not exist."""

    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class DuplicateConfiguration(SitewatchError):
    """A site with the same name or URL is already registered."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"A site with {field} '{value}' already exists")


class NotificationDeliveryFailure(SitewatchError):
    """A channel failed to deliver a notification."""


class RepositoryFailure(SitewatchError):
    """Persistence is unavailable or rejected the operation."""
