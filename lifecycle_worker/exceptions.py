class LifecycleWorkerError(Exception):
    """Base exception for lifecycle worker."""
    pass


class LeadNotFoundError(LifecycleWorkerError):
    """Raised when an event refers to a lead that does not exist."""
    pass


class DatabaseError(LifecycleWorkerError):
    """Raised when database operation fails."""
    pass


class MessageProcessingError(LifecycleWorkerError):
    """Raised when a stream message cannot be turned into a lead event."""
    pass
