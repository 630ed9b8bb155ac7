"""Public package API for hostbridge."""

from hostbridge.api import expose
from hostbridge.api import unwrap
from hostbridge.api import wrap
from hostbridge.errors import BridgeInvariantError
from hostbridge.errors import BridgeNotInitializedError
from hostbridge.errors import BridgeReleasedError
from hostbridge.errors import HandleError
from hostbridge.errors import HostBridgeError
from hostbridge.errors import InvalidDescriptorError
from hostbridge.errors import RuntimeStateError
from hostbridge.metatype import HostMeta
from hostbridge.runtime import add_shutdown_handler
from hostbridge.runtime import get_runtime
from hostbridge.runtime import initialize
from hostbridge.runtime import is_initialized
from hostbridge.runtime import remove_shutdown_handler
from hostbridge.runtime import shutdown

__all__: list[str] = [
    "add_shutdown_handler",
    "expose",
    "get_runtime",
    "initialize",
    "is_initialized",
    "remove_shutdown_handler",
    "shutdown",
    "unwrap",
    "wrap",
    "BridgeInvariantError",
    "BridgeNotInitializedError",
    "BridgeReleasedError",
    "HandleError",
    "HostBridgeError",
    "HostMeta",
    "InvalidDescriptorError",
    "RuntimeStateError",
]
