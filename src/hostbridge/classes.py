"""Class wrappers, the root instance proxy and the class manager."""

import logging
import weakref
from collections.abc import Callable

from hostbridge.binder import MethodBinder
from hostbridge.binder import convert_argument
from hostbridge.binder import unwrap_guest_value
from hostbridge.builder import ROOT_FLAGS
from hostbridge.builder import HostInstanceLifetime
from hostbridge.builder import InstanceLifetime
from hostbridge.builder import ProxyTypeBuilder
from hostbridge.builder import ProxyTypeState
from hostbridge.builder import proxy_type_state
from hostbridge.constructors import ConstructorBinder
from hostbridge.descriptor import HostClassDescriptor
from hostbridge.errors import BridgeInvariantError
from hostbridge.handles import INSTANCE_HANDLE_SLOT
from hostbridge.handles import HandleTable
from hostbridge.handles import HostHandle
from hostbridge.host import HostClass
from hostbridge.host import HostField
from hostbridge.host import HostMethod
from hostbridge.host import HostObject
from hostbridge.host import HostProperty
from hostbridge.host import HostRuntime
from hostbridge.host import TypeKind

logger = logging.getLogger(__name__)

TypeFactory = Callable[[str, type, dict[str, object], ProxyTypeState], type]
TypeDealloc = Callable[[type], None]
UNSUBCLASSABLE_KINDS: tuple[TypeKind, ...] = (TypeKind.ENUM, TypeKind.DELEGATE, TypeKind.ARRAY)


def _resolve_in_mro(owner: type, name: str) -> object:
    for klass in owner.__mro__:
        if name in vars(klass):
            return vars(klass)[name]
    return None


def class_info_of(proxy_type: type) -> "ClassInfo | None":
    """Return the class wrapper reachable from a proxy type's state.

    :param proxy_type: Proxy type or guest subclass.
    :returns: Class wrapper, or ``None`` when the type carries none.
    """
    state: ProxyTypeState | None = proxy_type_state(proxy_type)
    if state is None:
        return None
    info: object = state.class_info
    if isinstance(info, ClassInfo) is False:
        return None
    return info


class ClassInfo:
    """Bridge-side wrapper of one host class."""

    descriptor: HostClassDescriptor
    manager: "ClassManager"
    _constructor_binder: ConstructorBinder | None

    def __init__(self, descriptor: HostClassDescriptor, manager: "ClassManager") -> None:
        """Initialize a class wrapper.

        :param descriptor: Descriptor of the wrapped host class.
        :param manager: Owning class manager.
        """
        self.descriptor = descriptor
        self.manager = manager
        self._constructor_binder = None

    def can_subclass(self) -> bool:
        """Report whether guest code may derive from the wrapped class.

        :returns: ``False`` for enumerations, delegates and arrays.
        :raises InvalidDescriptorError: If the host class was unloaded.
        """
        host_class: HostClass = self.descriptor.value
        return host_class.kind not in UNSUBCLASSABLE_KINDS

    def constructor_binder(self) -> ConstructorBinder:
        """Return the lazily created constructor binder.

        :returns: Binder over the class's constructors.
        """
        if self._constructor_binder is None:
            self._constructor_binder = ConstructorBinder(self.descriptor)
        return self._constructor_binder

    def type_subscript(self, index: object) -> type:
        """Close a generic definition over the given type arguments.

        :param index: One type or a tuple of types.
        :returns: Proxy type of the closed generic class.
        :raises TypeError: If the class is not generic, an argument is not a
            type, or the argument count is wrong.
        """
        host_class: HostClass = self.descriptor.value
        if host_class.is_generic_definition is False:
            raise TypeError("unsubscriptable object")
        items: tuple[object, ...] = index if isinstance(index, tuple) else (index,)
        arguments: list[HostClass] = []
        for item in items:
            argument: HostClass | None = self.manager.host_class_for_type(item)
            if argument is None:
                raise TypeError("type(s) expected")
            arguments.append(argument)
        if len(arguments) != len(host_class.generic_parameter_types):
            raise TypeError(f"{host_class.name} does not accept {len(arguments)} generic parameters")
        closed: HostClass = host_class.make_generic_type(tuple(arguments))
        return self.manager.get_proxy_type(closed)

    def build_namespace(self) -> dict[str, object]:
        """Create the class namespace exposing declared static members.

        Instance fields are not part of the namespace; proxies resolve them
        on the pinned host object.

        :returns: Namespace for the proxy type.
        """
        host_class: HostClass = self.descriptor.value
        namespace: dict[str, object] = {
            "__module__": host_class.namespace if len(host_class.namespace) > 0 else "hostbridge.types",
            "__qualname__": host_class.name,
            "__doc__": f"Proxy for host class {host_class.full_name}.",
        }
        for field in host_class.declared_fields():
            if field.is_static is False:
                continue
            if field.is_readonly is True:
                namespace[field.name] = HostLiteralDescriptor(self.manager, field)
            else:
                namespace[field.name] = HostFieldDescriptor(self.manager, field)
        for host_property in host_class.declared_properties():
            namespace[host_property.name] = HostPropertyDescriptor(self.manager, host_property)
        for name, overloads in host_class.declared_methods().items():
            namespace[name] = HostMethodDescriptor(self.manager, name, overloads)
        return namespace

    def __repr__(self) -> str:
        return f"<ClassInfo {self.descriptor.name}>"


class HostMemberDescriptor:
    """Base of descriptors exposing host members on proxy types."""

    manager: "ClassManager"
    name: str

    def __init__(self, manager: "ClassManager", name: str) -> None:
        self.manager = manager
        self.name = name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class HostLiteralDescriptor(HostMemberDescriptor):
    """Read-only static field."""

    field: HostField

    def __init__(self, manager: "ClassManager", field: HostField) -> None:
        super().__init__(manager, field.name)
        self.field = field

    def __get__(self, instance: object, owner: type | None = None) -> object:
        return self.manager.wrap(self.field.get_static())


class HostFieldDescriptor(HostMemberDescriptor):
    """Settable static field."""

    field: HostField

    def __init__(self, manager: "ClassManager", field: HostField) -> None:
        super().__init__(manager, field.name)
        self.field = field

    def __get__(self, instance: object, owner: type | None = None) -> object:
        return self.manager.wrap(self.field.get_static())

    def __set__(self, instance: object, value: object) -> None:
        """Convert and store a new static value.

        :param instance: Proxy type or instance the assignment targets.
        :param value: Guest value.
        :raises TypeError: If the value cannot be converted.
        """
        converted, _ = convert_argument(value, self.field.field_type)
        self.field.set_static(converted)


class HostPropertyDescriptor(HostMemberDescriptor):
    """Static property with an optional setter."""

    host_property: HostProperty

    def __init__(self, manager: "ClassManager", host_property: HostProperty) -> None:
        super().__init__(manager, host_property.name)
        self.host_property = host_property

    def __get__(self, instance: object, owner: type | None = None) -> object:
        self.host_property.declaring_class.ensure_loaded()
        return self.manager.wrap(self.host_property.getter())

    def __set__(self, instance: object, value: object) -> None:
        """Convert and store a new property value.

        :param instance: Proxy type or instance the assignment targets.
        :param value: Guest value.
        :raises AttributeError: If the property has no setter.
        """
        setter: Callable[[object], None] | None = self.host_property.setter
        if setter is None:
            raise AttributeError(f"property {self.name!r} has no setter")
        converted, _ = convert_argument(value, self.host_property.property_type)
        setter(converted)


class HostMethodDescriptor(HostMemberDescriptor):
    """Overload set of one host method."""

    binder: MethodBinder

    def __init__(self, manager: "ClassManager", name: str, overloads: tuple[HostMethod, ...]) -> None:
        super().__init__(manager, name)
        self.binder = MethodBinder(overloads)

    def __get__(self, instance: object, owner: type | None = None) -> "BoundHostMethod":
        if instance is None:
            return BoundHostMethod(self, None, True)
        # Reached past a shadowing attribute, as through super().
        shadowed: bool = _resolve_in_mro(type(instance), self.name) is not self
        return BoundHostMethod(self, instance, shadowed is False)

    @property
    def overloads(self) -> tuple[str, ...]:
        return tuple(method.signature() for method in self.binder.methods)

    def invoke(
        self,
        instance: object,
        args: tuple[object, ...],
        kwargs: dict[str, object],
        dispatch_virtual: bool = True,
    ) -> object:
        """Invoke the best-matching overload.

        Calls through the class with an explicit instance as first argument
        dispatch non-virtually, so guest overrides can reach the host
        implementation they override.

        :param instance: Bound proxy instance, ``None`` for class access.
        :param args: Positional guest arguments.
        :param kwargs: Keyword guest arguments.
        :param dispatch_virtual: Whether a bound call resolves overrides.
        :returns: Wrapped result.
        """
        target: object = None
        if instance is not None:
            target = unwrap_guest_value(instance)
        elif len(args) > 0 and self._has_instance_overload() is True:
            first: object = unwrap_guest_value(args[0])
            if isinstance(first, HostObject) is True:
                target = first
                args = args[1:]
                dispatch_virtual = False
        if target is not None and isinstance(target, HostObject) is False:
            raise TypeError(f"{self.name}() requires a host object, got {type(instance).__name__}")
        result: object = self.binder.invoke(target, args, kwargs, dispatch_virtual=dispatch_virtual)
        return self.manager.wrap(result)

    def _has_instance_overload(self) -> bool:
        for method in self.binder.methods:
            if method.is_static is False:
                return True
        return False


class BoundHostMethod:
    """Host method overload set bound to an optional instance."""

    __slots__ = ("_descriptor", "_instance", "_dispatch_virtual")

    _descriptor: HostMethodDescriptor
    _instance: object
    _dispatch_virtual: bool

    def __init__(self, descriptor: HostMethodDescriptor, instance: object, dispatch_virtual: bool) -> None:
        self._descriptor = descriptor
        self._instance = instance
        self._dispatch_virtual = dispatch_virtual

    @property
    def __overloads__(self) -> tuple[str, ...]:
        return self._descriptor.overloads

    def __call__(self, *args: object, **kwargs: object) -> object:
        return self._descriptor.invoke(self._instance, args, kwargs, self._dispatch_virtual)

    def __repr__(self) -> str:
        return f"<bound host method {self._descriptor.name} of {self._instance!r}>"


class HostObjectProxy:
    """Root base of every proxy type.

    Instances hold a single fixed slot with the handle pinning their host
    object.  Guest subclasses inherit the slot unchanged.
    """

    __slots__ = (INSTANCE_HANDLE_SLOT, "__weakref__")

    def __new__(cls, *args: object, **kwargs: object) -> "HostObjectProxy":
        """Construct a host object and bind it into an instance of ``cls``.

        :param args: Positional constructor arguments.
        :param kwargs: Keyword constructor arguments.
        :returns: Bound proxy instance.
        :raises TypeError: If ``cls`` is not backed by a host class.
        """
        info: ClassInfo | None = class_info_of(cls)
        if info is None:
            raise TypeError(f"cannot create {cls.__name__} instances: no host class is bound")
        host_object: HostObject = info.constructor_binder().invoke_raw(args, kwargs)
        return info.manager.bind_instance(cls, host_object)

    def __init__(self, *args: object, **kwargs: object) -> None:
        _ = (args, kwargs)

    def _host_object(self) -> HostObject | None:
        try:
            handle: object = object.__getattribute__(self, INSTANCE_HANDLE_SLOT)
        except AttributeError:
            return None
        if isinstance(handle, HostHandle) is False or handle.alive is False:
            return None
        target: object = handle.target
        if isinstance(target, HostObject) is False:
            return None
        return target

    def __getattr__(self, name: str) -> object:
        """Read an instance field of the pinned host object.

        :param name: Field name.
        :returns: Wrapped field value.
        :raises AttributeError: If the host object has no such field.
        """
        host_object: HostObject | None = self._host_object()
        if host_object is not None and host_object.has_field(name) is True:
            info: ClassInfo | None = class_info_of(type(self))
            value: object = host_object.get_field(name)
            if info is None:
                return value
            return info.manager.wrap(value)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __setattr__(self, name: str, value: object) -> None:
        """Write an instance field of the pinned host object.

        Names that are not host fields are stored on the guest object.

        :param name: Attribute name.
        :param value: Guest value.
        :raises AttributeError: If the field is read-only.
        """
        host_object: HostObject | None = self._host_object()
        if host_object is not None and host_object.has_field(name) is True:
            field: HostField | None = host_object.host_class.find_field(name)
            if field is None:
                raise BridgeInvariantError(f"{host_object.host_class.full_name} lost field {name!r}")
            if field.is_readonly is True:
                raise AttributeError(f"field {name!r} is read-only")
            converted, _ = convert_argument(value, field.field_type)
            host_object.set_field(name, converted)
            return
        object.__setattr__(self, name, value)

    def __repr__(self) -> str:
        host_object: HostObject | None = self._host_object()
        if host_object is None:
            return f"<{type(self).__name__} (released)>"
        return f"<{type(self).__name__} proxy of {host_object!r}>"


class ClassManager:
    """Own proxy types and the guest identity of host objects."""

    host_runtime: HostRuntime
    handles: HandleTable
    _type_factory: TypeFactory
    _type_dealloc: TypeDealloc
    _types_by_class: dict[HostClass, type]
    _guest_objects: "weakref.WeakValueDictionary[int, HostObjectProxy]"

    def __init__(
        self,
        host_runtime: HostRuntime,
        handles: HandleTable,
        type_factory: TypeFactory,
        type_dealloc: TypeDealloc,
    ) -> None:
        """Initialize a class manager.

        :param host_runtime: Host runtime whose classes are exposed.
        :param handles: Table pinning host objects and class wrappers.
        :param type_factory: Callable allocating a proxy type with its state.
        :param type_dealloc: Callable tearing down a proxy type.
        """
        self.host_runtime = host_runtime
        self.handles = handles
        self._type_factory = type_factory
        self._type_dealloc = type_dealloc
        self._types_by_class = {}
        self._guest_objects = weakref.WeakValueDictionary()

    def get_proxy_type(self, host_class: HostClass) -> type:
        """Return the proxy type of a host class, creating it on first use.

        :param host_class: Host class to expose.
        :returns: Cached proxy type.
        :raises InvalidDescriptorError: If the host class was unloaded.
        """
        cached: type | None = self._types_by_class.get(host_class)
        if cached is not None:
            return cached
        base_type: type = HostObjectProxy
        if host_class.base is not None:
            base_type = self.get_proxy_type(host_class.base)
        return self.create_proxy_type(host_class, base_type)

    def create_proxy_type(
        self,
        host_class: HostClass,
        base_type: type,
        guest_namespace: dict[str, object] | None = None,
        name: str | None = None,
    ) -> type:
        """Create and cache a root proxy type for a host class.

        :param host_class: Host class the type represents.
        :param base_type: Single base of the new type.
        :param guest_namespace: Guest-defined members layered over the host members.
        :param name: Type name, defaulting to the host class name.
        :returns: New proxy type.
        :raises InvalidDescriptorError: If the host class was unloaded.
        """
        descriptor: HostClassDescriptor = HostClassDescriptor(host_class)
        host_class = descriptor.value
        info: ClassInfo = ClassInfo(descriptor, self)
        namespace: dict[str, object] = info.build_namespace()
        if guest_namespace is None:
            namespace["__slots__"] = ()
        else:
            namespace.update(guest_namespace)

        lifetime: InstanceLifetime = HostInstanceLifetime()
        handle_slot: str = INSTANCE_HANDLE_SLOT
        base_state: ProxyTypeState | None = proxy_type_state(base_type)
        if base_state is not None:
            lifetime = base_state.lifetime
            handle_slot = base_state.handle_slot
        type_name: str = name if name is not None else host_class.name
        state: ProxyTypeState = (
            ProxyTypeBuilder(type_name, base_type, ROOT_FLAGS, handle_slot=handle_slot)
            .with_lifetime(lifetime)
            .with_type_handle(self.handles.alloc(info))
            .build()
        )
        proxy_type: type = self._type_factory(type_name, base_type, namespace, state)
        self._types_by_class[host_class] = proxy_type
        logger.debug("Created proxy type %s for host class %s", type_name, host_class.full_name)
        return proxy_type

    def host_class_for_type(self, value: object) -> HostClass | None:
        """Map a guest type to a host class.

        :param value: Proxy type or builtin Python type.
        :returns: Host class, or ``None`` when ``value`` has no counterpart.
        """
        if isinstance(value, type) is False:
            return None
        info: ClassInfo | None = class_info_of(value)
        if info is not None:
            return info.descriptor.value
        return self.host_runtime.primitive_for(value)

    def bind_instance(self, proxy_type: type, host_object: HostObject) -> HostObjectProxy:
        """Allocate a guest instance pinning a host object.

        :param proxy_type: Proxy type or guest subclass to instantiate.
        :param host_object: Host object to pin.
        :returns: New guest instance.
        :raises BridgeInvariantError: If ``proxy_type`` carries no bridge state.
        """
        state: ProxyTypeState | None = proxy_type_state(proxy_type)
        if state is None:
            raise BridgeInvariantError(f"{proxy_type.__name__} is not a proxy type")
        instance: HostObjectProxy = object.__new__(proxy_type)
        handle: HostHandle = self.handles.alloc(host_object)
        object.__setattr__(instance, state.handle_slot, handle)
        weakref.finalize(instance, state.lifetime.dealloc, handle)
        self._guest_objects[id(host_object)] = instance
        return instance

    def guest_object_for(self, host_object: HostObject) -> HostObjectProxy | None:
        """Find the live guest instance pinning a host object.

        :param host_object: Host object.
        :returns: Guest instance, or ``None``.
        """
        instance: HostObjectProxy | None = self._guest_objects.get(id(host_object))
        if instance is None:
            return None
        if instance._host_object() is not host_object:
            return None
        return instance

    def wrap(self, value: object) -> object:
        """Convert a host value into its guest representation.

        :param value: Raw host value.
        :returns: Guest instance for host objects, ``value`` otherwise.
        """
        if isinstance(value, HostObject) is False:
            return value
        existing: HostObjectProxy | None = self.guest_object_for(value)
        if existing is not None:
            return existing
        proxy_type: type = self.get_proxy_type(value.host_class)
        return self.bind_instance(proxy_type, value)

    def unwrap(self, value: object) -> object:
        return unwrap_guest_value(value)

    def cached_types(self) -> tuple[type, ...]:
        return tuple(self._types_by_class.values())

    def dispose(self) -> None:
        """Tear down every cached proxy type, most recent first."""
        proxy_types: list[type] = list(self._types_by_class.values())
        self._types_by_class.clear()
        for proxy_type in reversed(proxy_types):
            self._type_dealloc(proxy_type)
        self._guest_objects.clear()

