"""Custom error types for hostbridge."""


class HostBridgeError(Exception):
    """Base class for all hostbridge errors."""


class InvalidDescriptorError(HostBridgeError, TypeError):
    """Raised when a host class descriptor refers to unloaded host metadata."""

    class_name: str

    def __init__(self, class_name: str, message: str) -> None:
        """Initialize an invalid-descriptor error.

        :param class_name: Readable identity of the affected host class.
        :param message: Human-readable error message.
        """
        self.class_name = class_name
        super().__init__(message)


class HandleError(HostBridgeError):
    """Raised when a cross-runtime handle is used after it was freed."""


class BridgeInvariantError(HostBridgeError):
    """Raised when an internal invariant of the type bridge is violated."""


class BridgeReleasedError(HostBridgeError):
    """Raised when a released metatype dispatch slot is invoked."""


class BridgeNotInitializedError(HostBridgeError):
    """Raised when the bridge runtime is used before initialization."""


class RuntimeStateError(HostBridgeError):
    """Raised when persisted runtime state is missing or malformed."""
