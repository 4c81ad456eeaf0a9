# drive_mounter/core/exceptions.py

UNEXPECTED_TERMINATION_MESSAGE = "mount process terminated unexpectedly"


class MountError(Exception):
    """Base class for mount orchestration errors raised to callers."""


class NoDriveLetterAvailableError(MountError):
    """Raised when no drive letter can be assigned to a mount."""
    def __init__(self, message: str = "No available drive letters"):
        super().__init__(message)


class AlreadyMountingError(MountError):
    """Raised when a mount is requested while the connection has a live entry."""
    def __init__(self, connection_id: str, status: str):
        self.connection_id = connection_id
        self.status = status
        super().__init__(
            f"Connection {connection_id} is already {status.lower()}; "
            f"unmount it or wait for the current operation to finish."
        )


class UnknownConnectionError(MountError):
    """Raised when a connection id has no persisted connection record."""
    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} does not exist.")


class UnsupportedProtocolError(MountError):
    """Raised when no adapter exists for a connection's protocol."""
    pass


class InvalidTransitionError(Exception):
    """Raised when a mount status transition is not allowed."""
    def __init__(self, connection_id: str, from_status: str, to_status: str):
        self.connection_id = connection_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid state transition for {connection_id}: "
            f"Cannot move from '{from_status}' to '{to_status}'."
        )
