"""Metatype of the proxy types that represent host classes.

``HostMeta`` starts out as a plain subclass of ``type``.  Its dispatch table,
the type-creation, call, attribute-assignment, deletion and subscript entry points
plus the instance and subclass check thunks, is installed by
:func:`initialize_metatype` and reset by :func:`release_metatype`.  Proxy
type lifetime is tracked here as well: every proxy type is allocated through
:func:`tp_alloc` and torn down exactly once through :func:`tp_dealloc`, which
runs from a ``weakref.finalize`` callback or explicitly at shutdown.
"""

import enum
import logging
import types
import weakref
from collections.abc import Callable

from hostbridge.builder import ProxyTypeBuilder
from hostbridge.builder import ProxyTypeState
from hostbridge.builder import detach
from hostbridge.builder import proxy_type_state
from hostbridge.builder import publish
from hostbridge.classes import ClassInfo
from hostbridge.classes import HostMemberDescriptor
from hostbridge.classes import class_info_of
from hostbridge.errors import BridgeInvariantError
from hostbridge.errors import BridgeNotInitializedError
from hostbridge.errors import BridgeReleasedError
from hostbridge.errors import InvalidDescriptorError
from hostbridge.errors import RuntimeStateError
from hostbridge.storage import RuntimeDataStorage
from hostbridge.subtypes import REFLECTED_SUBTYPE_KEYS
from hostbridge.subtypes import create_reflected_subtype

logger = logging.getLogger(__name__)

CUSTOM_METHODS: tuple[str, ...] = ("__instancecheck__", "__subclasscheck__")
DISPATCH_SLOTS: tuple[str, ...] = ("__new__", "__call__", "__setattr__", "__delattr__", "__getitem__")
_PY_TPFLAGS_READY: int = 1 << 12
_MISSING: object = object()


class HostMeta(type):
    """Metatype of every proxy type for a host class."""


class DescriptorKind(enum.Enum):
    """Capability tag of a descriptor found during attribute assignment."""

    DATA = "data"
    BOUND_METHOD = "bound_method"
    EXTENSION = "extension"
    NONE = "none"


class SlotsHolder:
    """Record dispatch slots installed on a type so they can be reset."""

    target: type
    _saved: dict[str, object]

    def __init__(self, target: type) -> None:
        """Initialize a holder for one type.

        :param target: Type whose slots are managed.
        """
        self.target = target
        self._saved = {}

    def set_slot(self, name: str, value: object) -> None:
        """Install a slot, remembering what it replaced.

        :param name: Special method name.
        :param value: New implementation.
        """
        if name not in self._saved:
            self._saved[name] = vars(self.target).get(name, _MISSING)
        type.__setattr__(self.target, name, value)

    def reset_slots(self) -> None:
        """Restore every slot to its state before installation."""
        for name, previous in reversed(list(self._saved.items())):
            if previous is _MISSING:
                if name in vars(self.target):
                    type.__delattr__(self.target, name)
            else:
                type.__setattr__(self.target, name, previous)
        self._saved.clear()

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._saved)


_metatype: type | None = None
_slots_holder: SlotsHolder | None = None
_live_type_count: int = 0
_type_finalizers: "weakref.WeakKeyDictionary[type, weakref.finalize]" = weakref.WeakKeyDictionary()
_lookup_cache: "weakref.WeakKeyDictionary[type, dict[str, object]]" = weakref.WeakKeyDictionary()


def get_metatype() -> type:
    """Return the active metatype singleton.

    :returns: ``HostMeta``.
    :raises BridgeNotInitializedError: If the metatype is not initialized.
    """
    if _metatype is None:
        raise BridgeNotInitializedError("The host bridge metatype is not initialized")
    return _metatype


def live_type_count() -> int:
    """Return the number of proxy types allocated and not yet deallocated.

    :returns: Live proxy type count.
    """
    return _live_type_count


def type_is_ready(proxy_type: object) -> bool:
    if isinstance(proxy_type, type) is False:
        return False
    return (proxy_type.__flags__ & _PY_TPFLAGS_READY) != 0


def type_modified(proxy_type: type) -> None:
    """Invalidate cached attribute lookups of a type and its subclasses.

    :param proxy_type: Modified type.
    """
    _lookup_cache.pop(proxy_type, None)
    for subclass in type.__subclasses__(proxy_type):
        type_modified(subclass)


def tp_new(meta: type, *args: object, **kwargs: object) -> type:
    """Create a guest subclass of a proxy type.

    :param meta: Metatype being instantiated.
    :param args: ``(name, bases, namespace)`` from the class statement.
    :param kwargs: Class keyword arguments.
    :returns: New proxy type.
    :raises TypeError: If the class statement cannot derive from the base.
    :raises BridgeInvariantError: If type construction returned an incomplete type.
    """
    if len(args) != 3:
        raise TypeError("invalid argument list")
    name, bases, namespace = args
    if isinstance(name, str) is False or isinstance(bases, tuple) is False or isinstance(namespace, dict) is False:
        raise TypeError("invalid argument list")

    if len(bases) != 1:
        raise TypeError("cannot use multiple inheritance with host classes")
    base: object = bases[0]
    base_meta: type = type(base)
    if base_meta is not HostMeta and base_meta is not type:
        raise TypeError("invalid metatype")

    info: ClassInfo | None = class_info_of(base)
    if info is not None:
        try:
            subclassable: bool = info.can_subclass()
        except InvalidDescriptorError as exc:
            raise InvalidDescriptorError(
                info.descriptor.name,
                f"Underlying host base class {info.descriptor.name} has been deleted",
            ) from exc
        if subclassable is False:
            raise TypeError("delegates, enums and array types cannot be subclassed")

    if "__slots__" in namespace:
        raise TypeError("subclasses of host classes do not support __slots__")

    for key in REFLECTED_SUBTYPE_KEYS:
        if key in namespace:
            if info is None:
                raise TypeError(f"{name} names {key} but its base is not a host class")
            return create_reflected_subtype(name, base, namespace, info)

    proxy_type: type = tp_alloc(meta, name, bases, namespace, **kwargs)
    if type_is_ready(proxy_type) is False:
        raise BridgeInvariantError(f"Type construction returned an incomplete type for {name}")
    state: ProxyTypeState = ProxyTypeBuilder.for_subclass(name, base).build()
    _publish_tracked(proxy_type, state)
    type_modified(proxy_type)
    logger.debug("Created guest subclass %s of %s", name, base.__name__)
    return proxy_type


def tp_alloc(meta: type, name: str, bases: tuple[type, ...], namespace: dict[str, object], **kwargs: object) -> type:
    """Allocate a type object and take a reference on the metatype.

    :param meta: Metatype of the new type.
    :param name: Type name.
    :param bases: Base tuple.
    :param namespace: Class namespace.
    :param kwargs: Class keyword arguments.
    :returns: New type object.
    """
    global _live_type_count
    proxy_type: type = type.__new__(meta, name, bases, namespace, **kwargs)
    _live_type_count += 1
    return proxy_type


def tp_free(proxy_type: type) -> None:
    """Detach bridge state from a type being torn down.

    :param proxy_type: Type whose bridge state is dropped.
    """
    detach(proxy_type)
    _lookup_cache.pop(proxy_type, None)


def tp_dealloc(type_ref: "weakref.ReferenceType[type]", state: ProxyTypeState) -> None:
    """Tear down a proxy type.

    Root proxy types free their type-level handle; guest subclasses share
    their root's handle and leave it alone.

    :param type_ref: Weak reference to the type, dead when run by the collector.
    :param state: State the type was published with.
    """
    global _live_type_count
    if state.is_subclass is False and state.type_handle is not None and state.type_handle.alive is True:
        state.type_handle.free()
    _live_type_count -= 1
    proxy_type: type | None = type_ref()
    if proxy_type is not None:
        tp_free(proxy_type)


def _publish_tracked(proxy_type: type, state: ProxyTypeState) -> None:
    publish(proxy_type, state)
    finalizer: weakref.finalize = weakref.finalize(proxy_type, tp_dealloc, weakref.ref(proxy_type), state)
    finalizer.atexit = False
    _type_finalizers[proxy_type] = finalizer


def create_root_type(name: str, base: type, namespace: dict[str, object], state: ProxyTypeState) -> type:
    """Allocate a root proxy type for a host class.

    :param name: Type name.
    :param base: Single base type.
    :param namespace: Class namespace including host member descriptors.
    :param state: Root state to publish.
    :returns: New proxy type.
    :raises BridgeInvariantError: If type construction returned an incomplete type.
    """
    proxy_type: type = tp_alloc(get_metatype(), name, (base,), namespace)
    if type_is_ready(proxy_type) is False:
        raise BridgeInvariantError(f"Type construction returned an incomplete type for {name}")
    _publish_tracked(proxy_type, state)
    type_modified(proxy_type)
    return proxy_type


def dealloc_type(proxy_type: type) -> None:
    """Run a proxy type's teardown now instead of at collection time.

    :param proxy_type: Proxy type.
    """
    finalizer: weakref.finalize | None = _type_finalizers.pop(proxy_type, None)
    if finalizer is not None:
        finalizer()


def tp_call(proxy_type: type, *args: object, **kwargs: object) -> object:
    """Instantiate a proxy type and run its initializer.

    :param proxy_type: Proxy type being called.
    :param args: Positional arguments.
    :param kwargs: Keyword arguments.
    :returns: Initialized instance.
    :raises TypeError: If the type cannot create instances.
    """
    new: Callable[..., object] | None = getattr(proxy_type, "__new__", None)
    if new is None:
        raise TypeError("invalid object")
    instance: object = new(proxy_type, *args, **kwargs)
    if instance is None:
        raise TypeError(f"{proxy_type.__name__}.__new__ returned no object")
    return call_init(instance, args, kwargs)


def call_init(instance: object, args: tuple[object, ...], kwargs: dict[str, object]) -> object:
    """Run ``__init__`` on a freshly created instance.

    A missing initializer is not an error.  When the initializer fails the
    instance releases its host object before the error propagates.

    :param instance: Newly created instance.
    :param args: Positional arguments.
    :param kwargs: Keyword arguments.
    :returns: ``instance``.
    """
    try:
        init: Callable[..., object] = getattr(instance, "__init__")
    except AttributeError:
        return instance
    try:
        init(*args, **kwargs)
    except Exception:
        release_instance(instance)
        raise
    return instance


def release_instance(instance: object) -> None:
    state: ProxyTypeState | None = proxy_type_state(type(instance))
    if state is not None:
        state.lifetime.clear(instance)


def classify_descriptor(descriptor: object) -> DescriptorKind:
    """Tag a descriptor found on a proxy type.

    :param descriptor: Attribute found by type lookup.
    :returns: Descriptor kind.
    """
    if isinstance(descriptor, HostMemberDescriptor):
        return DescriptorKind.EXTENSION
    if isinstance(descriptor, types.MethodType):
        return DescriptorKind.BOUND_METHOD
    if isinstance(descriptor, (types.WrapperDescriptorType, types.MemberDescriptorType, types.GetSetDescriptorType)):
        return DescriptorKind.DATA
    return DescriptorKind.NONE


def _type_lookup(proxy_type: type, name: str) -> object:
    cache: dict[str, object] | None = _lookup_cache.get(proxy_type)
    if cache is None:
        cache = {}
        _lookup_cache[proxy_type] = cache
    if name in cache:
        return cache[name]
    found: object = None
    for klass in proxy_type.__mro__:
        klass_dict = vars(klass)
        if name in klass_dict:
            found = klass_dict[name]
            break
    cache[name] = found
    return found


def tp_setattro(proxy_type: type, name: str, value: object) -> None:
    """Assign a class attribute, honouring host member descriptors.

    :param proxy_type: Proxy type.
    :param name: Attribute name.
    :param value: New value.
    :raises AttributeError: If a descriptor owns the name but cannot be set.
    """
    descriptor: object = _type_lookup(proxy_type, name)
    kind: DescriptorKind = classify_descriptor(descriptor)
    if kind is not DescriptorKind.NONE:
        setter: Callable[[object, object, object], None] | None = getattr(type(descriptor), "__set__", None)
        if setter is None:
            raise AttributeError("attribute is read-only")
        setter(descriptor, proxy_type, value)
        return
    type.__setattr__(proxy_type, name, value)
    type_modified(proxy_type)


def tp_delattro(proxy_type: type, name: str) -> None:
    """Delete a class attribute and drop cached lookups.

    :param proxy_type: Proxy type.
    :param name: Attribute name.
    """
    type.__delattr__(proxy_type, name)
    type_modified(proxy_type)


def mp_subscript(proxy_type: type, index: object) -> type:
    """Close a generic proxy type over type arguments.

    :param proxy_type: Generic definition proxy.
    :param index: Type arguments.
    :returns: Proxy type of the closed generic class.
    :raises TypeError: If the type has no class wrapper.
    """
    info: ClassInfo | None = class_info_of(proxy_type)
    if info is None:
        raise TypeError("unsubscriptable object")
    return info.type_subscript(index)


def do_instance_check(proxy_type: type, args: tuple[object, ...], check_type: bool) -> bool:
    """Answer ``isinstance`` or ``issubclass`` through host assignability.

    Guest subclasses and types without a class wrapper use the standard
    checks, since their host class is the one of their root.

    :param proxy_type: Type on the right-hand side of the check.
    :param args: Checked object, as a one-element tuple.
    :param check_type: ``True`` for ``issubclass``, ``False`` for ``isinstance``.
    :returns: Check result.
    :raises TypeError: If ``args`` does not hold exactly one value.
    """
    state: ProxyTypeState | None = proxy_type_state(proxy_type)
    info: ClassInfo | None = class_info_of(proxy_type)
    if info is not None and info.descriptor.valid is False:
        return False
    if len(args) != 1:
        raise TypeError("invalid parameter count")
    if info is None or state is None or state.is_subclass is True:
        if check_type is True:
            return type.__subclasscheck__(proxy_type, args[0])
        return type.__instancecheck__(proxy_type, args[0])

    comparand: object = args[0] if check_type is True else type(args[0])
    if isinstance(comparand, HostMeta) is False:
        return False
    other: ClassInfo | None = class_info_of(comparand)
    if other is None or other.descriptor.valid is False:
        return False
    return info.descriptor.value.is_assignable_from(other.descriptor.value)


def _instancecheck_thunk(proxy_type: type, *args: object) -> bool:
    return do_instance_check(proxy_type, args, False)


def _subclasscheck_thunk(proxy_type: type, *args: object) -> bool:
    return do_instance_check(proxy_type, args, True)


_CUSTOM_METHOD_THUNKS: dict[str, Callable[..., bool]] = {
    "__instancecheck__": _instancecheck_thunk,
    "__subclasscheck__": _subclasscheck_thunk,
}


def _released_stub(slot_name: str) -> Callable[..., object]:
    def stub(*args: object, **kwargs: object) -> object:
        raise BridgeReleasedError(f"{slot_name} was called after the host bridge was released")

    return stub


def _install(metatype: type) -> type:
    global _metatype
    global _slots_holder
    if _slots_holder is not None:
        _slots_holder.reset_slots()
    holder: SlotsHolder = SlotsHolder(metatype)
    holder.set_slot("__new__", staticmethod(tp_new))
    holder.set_slot("__call__", tp_call)
    holder.set_slot("__setattr__", tp_setattro)
    holder.set_slot("__delattr__", tp_delattro)
    holder.set_slot("__getitem__", mp_subscript)
    for method_name in CUSTOM_METHODS:
        holder.set_slot(method_name, _CUSTOM_METHOD_THUNKS[method_name])
    _slots_holder = holder
    _metatype = metatype
    return metatype


def initialize_metatype() -> type:
    """Install the dispatch table on the metatype singleton.

    Re-initialization first resets whatever a previous run installed.

    :returns: ``HostMeta``.
    """
    metatype: type = _install(HostMeta)
    logger.debug("Installed host metatype slots: %s", ", ".join(DISPATCH_SLOTS + CUSTOM_METHODS))
    return metatype


def release_metatype() -> None:
    """Reset the dispatch table and drop the singleton reference.

    When proxy types are still alive their dispatch slots are replaced with
    stubs raising :class:`BridgeReleasedError`.
    """
    global _metatype
    global _slots_holder
    if _metatype is None:
        return
    if _slots_holder is not None:
        _slots_holder.reset_slots()
    _slots_holder = None
    if _live_type_count > 0:
        stubs: SlotsHolder = SlotsHolder(_metatype)
        for slot_name in DISPATCH_SLOTS:
            stub: Callable[..., object] = _released_stub(slot_name)
            stubs.set_slot(slot_name, staticmethod(stub) if slot_name == "__new__" else stub)
        _slots_holder = stubs
        logger.debug("Reset host metatype slots with %d proxy types still alive", _live_type_count)
    _metatype = None


def save_runtime_data(storage: RuntimeDataStorage) -> None:
    """Persist the metatype identity ahead of a soft shutdown.

    :param storage: Storage receiving the state.
    :raises BridgeNotInitializedError: If the metatype is not initialized.
    """
    storage.push_value(get_metatype())


def restore_runtime_data(storage: RuntimeDataStorage) -> type:
    """Restore the metatype saved by :func:`save_runtime_data`.

    :param storage: Storage holding the state.
    :returns: Restored metatype, identical to the saved one.
    :raises RuntimeStateError: If the stored value is not the metatype.
    """
    metatype: object = storage.pop_value(type)
    if metatype is not HostMeta:
        raise RuntimeStateError(f"Persisted metatype {metatype!r} is not the host metatype")
    _install(HostMeta)
    logger.debug("Restored host metatype slots")
    return HostMeta
