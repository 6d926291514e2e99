class DashboardError(Exception):
    """Base class for errors raised by the analytics service."""


class SourceUnavailable(DashboardError):
    """The backing store could not be queried."""

    def __init__(self, backend: str, detail: str):
        super().__init__(f"{backend} unavailable: {detail}")
        self.backend = backend
        self.detail = detail


class MessageNotFound(DashboardError):
    def __init__(self, message_id: str):
        super().__init__(f"Message '{message_id}' not found")
        self.message_id = message_id


class InvalidQuery(DashboardError):
    """Request parameters the route layer refuses to pass to the core."""
