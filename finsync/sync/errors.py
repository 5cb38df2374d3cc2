"""Exceptions raised by the sync engine and its collaborators."""


class SyncError(Exception):
    """Base exception for calendar sync errors."""


class EventNotFound(SyncError):
    """The referenced local event does not exist."""

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class ProviderUnavailable(SyncError):
    """Talking to the external calendar failed (network, auth, API error)."""


class UnmappableEvent(SyncError):
    """A provider event lacks the fields needed to build a local event."""


class StoreFailure(SyncError):
    """The local event store rejected or failed an operation."""
