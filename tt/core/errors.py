class TimeTrackerError(Exception):
    """Base class for every error the core raises on purpose."""


class AlreadyRunning(TimeTrackerError):
    def __init__(self, entry_id=None, message=None):
        self.entry_id = entry_id
        super().__init__(message or f"A timer is already running (entry {entry_id})")


class NotRunning(TimeTrackerError):
    def __init__(self, message="No timer is running"):
        super().__init__(message)


class NotFound(TimeTrackerError):
    def __init__(self, kind, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"No {kind} with id {ident}")


class InvalidReference(TimeTrackerError):
    pass


class InvalidEntry(TimeTrackerError, ValueError):
    pass


class PersistenceFailure(TimeTrackerError):
    def __init__(self, message, path=None):
        self.path = path
        super().__init__(message)
