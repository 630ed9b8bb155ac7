"""Runtime construction of proxy-type state."""

import dataclasses
import enum
from collections.abc import Callable

from hostbridge.errors import BridgeInvariantError
from hostbridge.handles import INSTANCE_HANDLE_SLOT
from hostbridge.handles import HostHandle

STATE_ATTR: str = "__bridge_state__"


class TypeFlags(enum.IntFlag):
    """Guest-visible capabilities of a proxy type."""

    NONE = 0
    READY = enum.auto()
    HAS_HOST_INSTANCE = enum.auto()
    HEAP_TYPE = enum.auto()
    BASE_TYPE = enum.auto()
    SUBCLASS = enum.auto()
    HAVE_GC = enum.auto()


ROOT_FLAGS: TypeFlags = (
    TypeFlags.READY | TypeFlags.HAS_HOST_INSTANCE | TypeFlags.HEAP_TYPE | TypeFlags.BASE_TYPE | TypeFlags.HAVE_GC
)
SUBCLASS_FLAGS: TypeFlags = ROOT_FLAGS | TypeFlags.SUBCLASS


class InstanceLifetime:
    """Lifetime operations of objects that own no host handle.

    Proxy types implement these operations through their state rather than
    through inheritance, so a derived type reuses its root's behaviour
    exactly.
    """

    def dealloc(self, handle: HostHandle | None) -> None:
        """Release whatever an instance owned once it is gone.

        :param handle: Handle captured when the instance was bound.
        """
        _ = handle

    def traverse(self, instance: object, visit: Callable[[object], None]) -> None:
        """Report host-side referents of an instance.

        :param instance: Guest instance.
        :param visit: Callback receiving each referent.
        """
        _ = (instance, visit)

    def clear(self, instance: object) -> None:
        """Break an instance's references ahead of deallocation.

        :param instance: Guest instance.
        """
        _ = instance


class HostInstanceLifetime(InstanceLifetime):
    """Lifetime operations of instances pinning a host object in a handle slot."""

    handle_slot: str

    def __init__(self, handle_slot: str = INSTANCE_HANDLE_SLOT) -> None:
        """Initialize lifetime operations for one handle slot.

        :param handle_slot: Name of the slot holding the instance handle.
        """
        self.handle_slot = handle_slot

    def read_handle(self, instance: object) -> HostHandle | None:
        """Read the handle slot of an instance.

        :param instance: Guest instance.
        :returns: Stored handle, or ``None`` when unset.
        """
        try:
            value: object = object.__getattribute__(instance, self.handle_slot)
        except AttributeError:
            return None
        if isinstance(value, HostHandle) is False:
            return None
        return value

    def dealloc(self, handle: HostHandle | None) -> None:
        """Free the instance handle unless it was already cleared.

        :param handle: Handle captured when the instance was bound.
        """
        if handle is None:
            return
        if handle.alive is True:
            handle.free()

    def traverse(self, instance: object, visit: Callable[[object], None]) -> None:
        """Visit the host object pinned by an instance.

        :param instance: Guest instance.
        :param visit: Callback receiving the pinned host object.
        """
        handle: HostHandle | None = self.read_handle(instance)
        if handle is not None and handle.alive is True:
            visit(handle.target)

    def clear(self, instance: object) -> None:
        """Free the instance handle and empty the slot.

        :param instance: Guest instance.
        """
        handle: HostHandle | None = self.read_handle(instance)
        if handle is None:
            return
        object.__setattr__(instance, self.handle_slot, None)
        if handle.alive is True:
            handle.free()


@dataclasses.dataclass(frozen=True)
class ProxyTypeState:
    """Immutable bridge state attached to one proxy type."""

    flags: TypeFlags
    lifetime: InstanceLifetime
    handle_slot: str
    type_handle: HostHandle | None = None

    @property
    def is_subclass(self) -> bool:
        return TypeFlags.SUBCLASS in self.flags

    @property
    def class_info(self) -> object:
        """Return the class wrapper pinned by the type-level handle.

        :returns: Class wrapper, or ``None`` without a live type handle.
        """
        if self.type_handle is None or self.type_handle.alive is False:
            return None
        return self.type_handle.target


class ProxyTypeBuilder:
    """Assemble the state of a proxy type before publishing it."""

    name: str
    base: type
    flags: TypeFlags
    handle_slot: str
    lifetime: InstanceLifetime | None
    type_handle: HostHandle | None

    def __init__(
        self,
        name: str,
        base: type,
        flags: TypeFlags,
        handle_slot: str = INSTANCE_HANDLE_SLOT,
    ) -> None:
        """Initialize a builder.

        :param name: Name of the type being built.
        :param base: Its single base.
        :param flags: Capability flags.
        :param handle_slot: Fixed instance-handle slot name.
        """
        self.name = name
        self.base = base
        self.flags = flags
        self.handle_slot = handle_slot
        self.lifetime = None
        self.type_handle = None

    @classmethod
    def for_subclass(cls, name: str, base: type) -> "ProxyTypeBuilder":
        """Start a guest subclass builder inheriting its base's state.

        The lifetime operations and the handle slot are copied verbatim, and
        the base's type-level handle is shared when it has one.

        :param name: Name of the subclass.
        :param base: Single base of the subclass.
        :returns: Builder preloaded from the base.
        """
        builder: ProxyTypeBuilder = cls(name, base, SUBCLASS_FLAGS)
        base_state: ProxyTypeState | None = proxy_type_state(base)
        if base_state is None:
            builder.lifetime = InstanceLifetime()
            return builder
        builder.lifetime = base_state.lifetime
        builder.handle_slot = base_state.handle_slot
        builder.type_handle = base_state.type_handle
        return builder

    def with_lifetime(self, lifetime: InstanceLifetime) -> "ProxyTypeBuilder":
        self.lifetime = lifetime
        return self

    def with_type_handle(self, type_handle: HostHandle | None) -> "ProxyTypeBuilder":
        self.type_handle = type_handle
        return self

    def build(self) -> ProxyTypeState:
        """Produce the immutable state.

        :returns: Proxy type state.
        :raises BridgeInvariantError: If no lifetime operations were provided.
        """
        if self.lifetime is None:
            raise BridgeInvariantError(f"Proxy type {self.name} has no instance lifetime operations")
        return ProxyTypeState(
            flags=self.flags,
            lifetime=self.lifetime,
            handle_slot=self.handle_slot,
            type_handle=self.type_handle,
        )


def publish(proxy_type: type, state: ProxyTypeState) -> None:
    """Attach state to a freshly created proxy type.

    :param proxy_type: Proxy type.
    :param state: State to attach.
    :raises BridgeInvariantError: If the type already carries state.
    """
    if STATE_ATTR in vars(proxy_type):
        raise BridgeInvariantError(f"Proxy type {proxy_type.__name__} already has bridge state")
    type.__setattr__(proxy_type, STATE_ATTR, state)


def detach(proxy_type: type) -> None:
    """Remove state from a proxy type that is being torn down.

    :param proxy_type: Proxy type.
    """
    if STATE_ATTR in vars(proxy_type):
        type.__delattr__(proxy_type, STATE_ATTR)


def proxy_type_state(proxy_type: type) -> ProxyTypeState | None:
    """Read the state attached directly to a proxy type.

    :param proxy_type: Type to inspect.
    :returns: Attached state, or ``None``.
    """
    state: object = vars(proxy_type).get(STATE_ATTR)
    if isinstance(state, ProxyTypeState) is False:
        return None
    return state
