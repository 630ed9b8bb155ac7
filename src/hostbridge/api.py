"""User-facing API entrypoints for hostbridge."""

from hostbridge.host import HostClass
from hostbridge.runtime import get_runtime


def expose(host_class: HostClass) -> type:
    """Return the Python proxy type representing a host class.

    The proxy type is created on first use and cached for the session.
    Instantiating it selects a host constructor from the call arguments,
    and guest classes may derive from it.

    :param host_class: Host class to expose.
    :returns: Proxy type whose metaclass is the host metatype.
    :raises BridgeNotInitializedError: If the bridge is not initialized.
    :raises InvalidDescriptorError: If the host class was unloaded.
    """
    return get_runtime().expose(host_class)


def wrap(value: object) -> object:
    """Convert a raw host value into its guest representation.

    :param value: Host object or plain value.
    :returns: Proxy instance for host objects, ``value`` otherwise.
    """
    return get_runtime().manager.wrap(value)


def unwrap(value: object) -> object:
    """Return the host object pinned by a proxy instance.

    :param value: Proxy instance or plain value.
    :returns: Host object for proxies, ``value`` otherwise.
    """
    return get_runtime().manager.unwrap(value)
