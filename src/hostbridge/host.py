"""In-process host runtime exposing reflective class metadata.

The host runtime models a reflection-capable object system: assemblies that
own classes, classes with a kind (reference class, value type, primitive,
enumeration, delegate, array, interface), constructors, methods, fields and
static properties, plus generic type definitions.  Assemblies can be unloaded,
after which every class they define reports itself as no longer loaded.

Reflective invocation follows the host convention of wrapping whatever the
invoked member raises in a :class:`TargetInvocationError`; callers use
:func:`unwrap_innermost` to recover the original cause.
"""

import decimal
import enum
from collections.abc import Callable

CORE_ASSEMBLY_NAME: str = "core"
CORE_NAMESPACE: str = "System"
NO_DEFAULT: object = object()


class TypeKind(enum.Enum):
    """Kind of a host class."""

    CLASS = "class"
    VALUE_TYPE = "value_type"
    PRIMITIVE = "primitive"
    ENUM = "enum"
    DELEGATE = "delegate"
    ARRAY = "array"
    INTERFACE = "interface"
    GENERIC_PARAMETER = "generic_parameter"


class HostException(Exception):
    """Base class for exceptions raised by the host runtime."""

    inner_exception: BaseException | None

    def __init__(self, message: str, inner_exception: BaseException | None = None) -> None:
        """Initialize a host exception.

        :param message: Human-readable message.
        :param inner_exception: Optional wrapped cause.
        """
        self.inner_exception = inner_exception
        super().__init__(message)


class TargetInvocationError(HostException):
    """Raised by reflective invocation when the invoked member throws."""


class TypeInitializationError(HostException):
    """Raised when a class initializer fails."""


class HostTypeLoadError(HostException):
    """Raised when a member of a class from an unloaded assembly is used."""


class HostMissingMemberError(HostException):
    """Raised when a requested member does not exist."""


def unwrap_innermost(exc: BaseException) -> BaseException:
    """Return the innermost cause of a chain of wrapped host exceptions.

    :param exc: Exception raised by reflective invocation.
    :returns: Innermost wrapped exception, or ``exc`` itself.
    """
    current: BaseException = exc
    seen_ids: set[int] = set()
    while isinstance(current, HostException) is True:
        inner: BaseException | None = current.inner_exception
        if inner is None:
            break
        identity: int = id(inner)
        if identity in seen_ids:
            break
        seen_ids.add(identity)
        current = inner
    return current


class HostParameter:
    """One formal parameter of a host constructor or method."""

    name: str
    parameter_type: "HostClass"
    default: object

    def __init__(self, name: str, parameter_type: "HostClass", default: object = NO_DEFAULT) -> None:
        """Initialize a parameter.

        :param name: Parameter name, usable as a keyword.
        :param parameter_type: Declared host type.
        :param default: Optional default value.
        """
        self.name = name
        self.parameter_type = parameter_type
        self.default = default

    @property
    def has_default(self) -> bool:
        """Report whether the parameter is optional.

        :returns: ``True`` when a default value is declared.
        """
        return self.default is not NO_DEFAULT

    def __repr__(self) -> str:
        return f"{self.parameter_type.name} {self.name}"


class HostMethodBase:
    """Shared metadata of host constructors and methods."""

    name: str
    declaring_class: "HostClass"
    parameters: tuple[HostParameter, ...]
    body: Callable[..., object]
    is_static: bool

    def __init__(
        self,
        name: str,
        declaring_class: "HostClass",
        parameters: tuple[HostParameter, ...],
        body: Callable[..., object],
        is_static: bool = False,
    ) -> None:
        """Initialize member metadata.

        :param name: Member name.
        :param declaring_class: Class declaring the member.
        :param parameters: Formal parameters.
        :param body: Implementation callable.
        :param is_static: Whether the member takes no target object.
        """
        self.name = name
        self.declaring_class = declaring_class
        self.parameters = parameters
        self.body = body
        self.is_static = is_static

    @property
    def is_constructor(self) -> bool:
        """Report whether this member is a constructor.

        :returns: ``False`` for ordinary methods.
        """
        return False

    def signature(self) -> str:
        """Return a readable signature.

        :returns: Signature text such as ``Point(Int x, Int y)``.
        """
        rendered: str = ", ".join(repr(parameter) for parameter in self.parameters)
        return f"{self.declaring_class.name}.{self.name}({rendered})"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.signature()}>"


class HostConstructor(HostMethodBase):
    """Host constructor metadata."""

    def __init__(
        self,
        declaring_class: "HostClass",
        parameters: tuple[HostParameter, ...],
        body: Callable[..., object],
    ) -> None:
        """Initialize constructor metadata.

        :param declaring_class: Class being constructed.
        :param parameters: Formal parameters.
        :param body: Callable receiving the fresh object followed by arguments.
        """
        super().__init__(".ctor", declaring_class, parameters, body, is_static=True)

    @property
    def is_constructor(self) -> bool:
        """Report whether this member is a constructor.

        :returns: Always ``True``.
        """
        return True

    def signature(self) -> str:
        """Return a readable signature.

        :returns: Signature text such as ``Point(Int x, Int y)``.
        """
        rendered: str = ", ".join(repr(parameter) for parameter in self.parameters)
        return f"{self.declaring_class.name}({rendered})"

    def invoke(self, args: list[object]) -> "HostObject":
        """Create a new object of the declaring class.

        :param args: Already converted argument values.
        :returns: Constructed host object.
        :raises HostTypeLoadError: If the declaring assembly is unloaded.
        :raises TargetInvocationError: If the initializer or constructor body throws.
        """
        declaring: HostClass = self.declaring_class
        declaring.ensure_loaded()
        try:
            declaring.ensure_initialized()
            instance: HostObject = HostObject(declaring)
            self.body(instance, *args)
        except Exception as exc:
            raise TargetInvocationError(
                f"Exception has been thrown by the target of an invocation: {self.signature()}",
                exc,
            ) from exc
        return instance


class HostMethod(HostMethodBase):
    """Host method metadata."""

    return_type: "HostClass | None"
    is_virtual: bool

    def __init__(
        self,
        name: str,
        declaring_class: "HostClass",
        parameters: tuple[HostParameter, ...],
        body: Callable[..., object],
        return_type: "HostClass | None" = None,
        is_static: bool = False,
        is_virtual: bool = False,
    ) -> None:
        """Initialize method metadata.

        :param name: Method name.
        :param declaring_class: Class declaring the method.
        :param parameters: Formal parameters.
        :param body: Callable receiving the target (unless static) followed by arguments.
        :param return_type: Declared return type, ``None`` for void.
        :param is_static: Whether the method takes no target object.
        :param is_virtual: Whether derived classes may override the method.
        """
        super().__init__(name, declaring_class, parameters, body, is_static=is_static)
        self.return_type = return_type
        self.is_virtual = is_virtual

    def has_same_signature(self, other: "HostMethod") -> bool:
        """Compare name and parameter types.

        :param other: Candidate method.
        :returns: ``True`` when both methods share name and parameter types.
        """
        if self.name != other.name:
            return False
        if len(self.parameters) != len(other.parameters):
            return False
        for mine, theirs in zip(self.parameters, other.parameters):
            if mine.parameter_type is not theirs.parameter_type:
                return False
        return True

    def invoke(self, target: "HostObject | None", args: list[object], dispatch_virtual: bool = True) -> object:
        """Invoke the method, dispatching virtually on ``target`` by default.

        :param target: Target object, ``None`` for static methods.
        :param args: Already converted argument values.
        :param dispatch_virtual: Whether overrides of a virtual method are selected.
        :returns: Method result.
        :raises HostTypeLoadError: If the declaring assembly is unloaded.
        :raises TargetInvocationError: If the method body throws.
        """
        self.declaring_class.ensure_loaded()
        try:
            self.declaring_class.ensure_initialized()
            if self.is_static is True:
                return self.body(*args)
            if target is None:
                raise HostException(f"Non-static method {self.signature()} requires a target")
            selected: HostMethod = self
            if self.is_virtual is True and dispatch_virtual is True:
                selected = target.host_class.resolve_override(self)
            return selected.body(target, *args)
        except Exception as exc:
            raise TargetInvocationError(
                f"Exception has been thrown by the target of an invocation: {self.signature()}",
                exc,
            ) from exc


class HostField:
    """Host field metadata, with storage for static values."""

    name: str
    field_type: "HostClass"
    is_static: bool
    is_readonly: bool
    declaring_class: "HostClass"
    _static_value: object

    def __init__(
        self,
        name: str,
        declaring_class: "HostClass",
        field_type: "HostClass",
        is_static: bool = False,
        is_readonly: bool = False,
        value: object = None,
    ) -> None:
        """Initialize a field.

        :param name: Field name.
        :param declaring_class: Class declaring the field.
        :param field_type: Declared host type.
        :param is_static: Whether the field belongs to the class.
        :param is_readonly: Whether the field is a literal that cannot be assigned.
        :param value: Initial static value.
        """
        self.name = name
        self.declaring_class = declaring_class
        self.field_type = field_type
        self.is_static = is_static
        self.is_readonly = is_readonly
        self._static_value = value

    def get_static(self) -> object:
        """Read a static field.

        :returns: Current value.
        """
        self.declaring_class.ensure_loaded()
        return self._static_value

    def set_static(self, value: object) -> None:
        """Assign a static field.

        :param value: New value, already converted to the field type.
        :raises HostException: If the field is read-only.
        """
        self.declaring_class.ensure_loaded()
        if self.is_readonly is True:
            raise HostException(f"Field {self.declaring_class.name}.{self.name} is read-only")
        self._static_value = value


class HostProperty:
    """Static host property backed by getter and setter callables."""

    name: str
    property_type: "HostClass"
    declaring_class: "HostClass"
    getter: Callable[[], object]
    setter: Callable[[object], None] | None

    def __init__(
        self,
        name: str,
        declaring_class: "HostClass",
        property_type: "HostClass",
        getter: Callable[[], object],
        setter: Callable[[object], None] | None = None,
    ) -> None:
        """Initialize a static property.

        :param name: Property name.
        :param declaring_class: Class declaring the property.
        :param property_type: Declared host type.
        :param getter: Callable returning the value.
        :param setter: Optional callable storing a new value.
        """
        self.name = name
        self.declaring_class = declaring_class
        self.property_type = property_type
        self.getter = getter
        self.setter = setter


class HostClass:
    """Reflective metadata for one host class."""

    name: str
    namespace: str
    assembly: "HostAssembly"
    kind: TypeKind
    base: "HostClass | None"
    interfaces: tuple["HostClass", ...]
    is_sealed: bool
    zero_value: object
    generic_parameter_types: tuple["HostClass", ...]
    generic_definition: "HostClass | None"
    generic_arguments: tuple["HostClass", ...]
    _constructors: list[HostConstructor]
    _methods: dict[str, list[HostMethod]]
    _fields: dict[str, HostField]
    _properties: dict[str, HostProperty]
    _initializer: Callable[[], None] | None
    _initialized: bool
    _initialization_error: BaseException | None
    _generic_instances: dict[tuple["HostClass", ...], "HostClass"]

    def __init__(
        self,
        name: str,
        assembly: "HostAssembly",
        namespace: str = "",
        kind: TypeKind = TypeKind.CLASS,
        base: "HostClass | None" = None,
        interfaces: tuple["HostClass", ...] = (),
        is_sealed: bool = False,
        zero_value: object = None,
        generic_parameters: tuple[str, ...] = (),
        initializer: Callable[[], None] | None = None,
    ) -> None:
        """Initialize class metadata.

        :param name: Simple class name.
        :param assembly: Owning assembly.
        :param namespace: Dotted namespace.
        :param kind: Class kind.
        :param base: Base class, ``None`` for roots and interfaces.
        :param interfaces: Directly implemented interfaces.
        :param is_sealed: Whether host-side derivation is forbidden.
        :param zero_value: Default value of fields of this type.
        :param generic_parameters: Names of generic parameters of a definition.
        :param initializer: Optional class initializer run before first use.
        """
        self.name = name
        self.namespace = namespace
        self.assembly = assembly
        self.kind = kind
        self.base = base
        self.interfaces = interfaces
        self.is_sealed = is_sealed
        self.zero_value = zero_value
        self.generic_parameter_types = tuple(
            HostClass(parameter_name, assembly, kind=TypeKind.GENERIC_PARAMETER)
            for parameter_name in generic_parameters
        )
        self.generic_definition = None
        self.generic_arguments = ()
        self._constructors = []
        self._methods = {}
        self._fields = {}
        self._properties = {}
        self._initializer = initializer
        self._initialized = False
        self._initialization_error = None
        self._generic_instances = {}

    @property
    def full_name(self) -> str:
        """Return the namespace-qualified name.

        :returns: Dotted full name.
        """
        if len(self.namespace) == 0:
            return self.name
        return f"{self.namespace}.{self.name}"

    @property
    def is_loaded(self) -> bool:
        """Report whether the owning assembly is still loaded.

        :returns: ``True`` while the class metadata is usable.
        """
        return self.assembly.is_loaded

    @property
    def is_value_type(self) -> bool:
        """Report whether instances have value semantics.

        :returns: ``True`` for value types, primitives and enumerations.
        """
        return self.kind in (TypeKind.VALUE_TYPE, TypeKind.PRIMITIVE, TypeKind.ENUM)

    @property
    def is_primitive(self) -> bool:
        return self.kind is TypeKind.PRIMITIVE

    @property
    def is_enum(self) -> bool:
        return self.kind is TypeKind.ENUM

    @property
    def is_decimal(self) -> bool:
        """Report whether this is the runtime's fixed-point decimal type.

        :returns: ``True`` for the core ``Decimal`` class.
        """
        return self is self.assembly.runtime.decimal_class

    @property
    def is_interface(self) -> bool:
        return self.kind is TypeKind.INTERFACE

    @property
    def is_generic_definition(self) -> bool:
        """Report whether this class is an open generic definition.

        :returns: ``True`` when generic parameters are still unbound.
        """
        return len(self.generic_parameter_types) > 0 and self.generic_definition is None

    def ensure_loaded(self) -> None:
        """Fail when the owning assembly has been unloaded.

        :raises HostTypeLoadError: If the assembly is unloaded.
        """
        if self.assembly.is_loaded is False:
            raise HostTypeLoadError(
                f"Could not load type {self.full_name}: assembly {self.assembly.name} was unloaded"
            )

    def ensure_initialized(self) -> None:
        """Run the class initializer once, caching its failure.

        :raises TypeInitializationError: If the initializer failed, now or earlier.
        """
        if self._initialized is True:
            if self._initialization_error is not None:
                raise TypeInitializationError(
                    f"The type initializer for {self.full_name} threw an exception",
                    self._initialization_error,
                )
            return
        self._initialized = True
        if self.base is not None:
            self.base.ensure_initialized()
        initializer: Callable[[], None] | None = self._initializer
        if initializer is None:
            return
        try:
            initializer()
        except Exception as exc:
            self._initialization_error = exc
            raise TypeInitializationError(
                f"The type initializer for {self.full_name} threw an exception",
                exc,
            ) from exc

    def add_constructor(
        self,
        parameters: tuple[HostParameter, ...],
        body: Callable[..., object],
    ) -> HostConstructor:
        """Declare a constructor.

        :param parameters: Formal parameters.
        :param body: Callable receiving the fresh object followed by arguments.
        :returns: Declared constructor.
        """
        constructor: HostConstructor = HostConstructor(self, parameters, body)
        self._constructors.append(constructor)
        return constructor

    def add_method(
        self,
        name: str,
        parameters: tuple[HostParameter, ...],
        body: Callable[..., object],
        return_type: "HostClass | None" = None,
        is_static: bool = False,
        is_virtual: bool = False,
    ) -> HostMethod:
        """Declare one method overload.

        :param name: Method name.
        :param parameters: Formal parameters.
        :param body: Implementation callable.
        :param return_type: Declared return type.
        :param is_static: Whether the method is static.
        :param is_virtual: Whether the method is overridable.
        :returns: Declared method.
        """
        method: HostMethod = HostMethod(
            name,
            self,
            parameters,
            body,
            return_type=return_type,
            is_static=is_static,
            is_virtual=is_virtual,
        )
        self._methods.setdefault(name, []).append(method)
        return method

    def add_field(
        self,
        name: str,
        field_type: "HostClass",
        is_static: bool = False,
        is_readonly: bool = False,
        value: object = None,
    ) -> HostField:
        """Declare a field.

        :param name: Field name.
        :param field_type: Declared host type.
        :param is_static: Whether the field belongs to the class.
        :param is_readonly: Whether the field cannot be assigned.
        :param value: Initial static value.
        :returns: Declared field.
        """
        field: HostField = HostField(
            name,
            self,
            field_type,
            is_static=is_static,
            is_readonly=is_readonly,
            value=value,
        )
        self._fields[name] = field
        return field

    def add_property(
        self,
        name: str,
        property_type: "HostClass",
        getter: Callable[[], object],
        setter: Callable[[object], None] | None = None,
    ) -> HostProperty:
        """Declare a static property.

        :param name: Property name.
        :param property_type: Declared host type.
        :param getter: Value getter.
        :param setter: Optional value setter.
        :returns: Declared property.
        """
        host_property: HostProperty = HostProperty(name, self, property_type, getter, setter)
        self._properties[name] = host_property
        return host_property

    def get_constructors(self) -> tuple[HostConstructor, ...]:
        """Enumerate declared constructors.

        :returns: Constructors in declaration order.
        :raises HostTypeLoadError: If the owning assembly is unloaded.
        """
        self.ensure_loaded()
        return tuple(self._constructors)

    def declared_methods(self) -> dict[str, tuple[HostMethod, ...]]:
        """Return methods declared directly on this class.

        :returns: Mapping of method name to overloads.
        """
        return {name: tuple(overloads) for name, overloads in self._methods.items()}

    def declared_fields(self) -> tuple[HostField, ...]:
        return tuple(self._fields.values())

    def declared_properties(self) -> tuple[HostProperty, ...]:
        return tuple(self._properties.values())

    def find_field(self, name: str) -> HostField | None:
        """Find a field on this class or its bases.

        :param name: Field name.
        :returns: Field metadata or ``None``.
        """
        current: HostClass | None = self
        while current is not None:
            field: HostField | None = current._fields.get(name)
            if field is not None:
                return field
            current = current.base
        return None

    def find_methods(self, name: str) -> tuple[HostMethod, ...]:
        """Find the nearest overload set for ``name`` along the base chain.

        :param name: Method name.
        :returns: Overloads, empty when the method does not exist.
        """
        current: HostClass | None = self
        while current is not None:
            overloads: list[HostMethod] | None = current._methods.get(name)
            if overloads is not None:
                return tuple(overloads)
            current = current.base
        return ()

    def instance_fields(self) -> list[HostField]:
        """Collect instance fields from the root class down.

        :returns: Instance field metadata.
        """
        chain: list[HostClass] = []
        current: HostClass | None = self
        while current is not None:
            chain.append(current)
            current = current.base
        fields: list[HostField] = []
        for host_class in reversed(chain):
            for field in host_class._fields.values():
                if field.is_static is False:
                    fields.append(field)
        return fields

    def resolve_override(self, method: HostMethod) -> HostMethod:
        """Find the most derived override of a virtual method.

        :param method: Virtual method being dispatched.
        :returns: Overriding method, or ``method`` itself.
        """
        current: HostClass | None = self
        while current is not None and current is not method.declaring_class:
            for candidate in current._methods.get(method.name, []):
                if candidate.is_static is False and candidate.has_same_signature(method) is True:
                    return candidate
            current = current.base
        return method

    def all_interfaces(self) -> set["HostClass"]:
        """Collect every interface implemented directly or through bases.

        :returns: Interface set.
        """
        collected: set[HostClass] = set()
        pending: list[HostClass] = []
        current: HostClass | None = self
        while current is not None:
            pending.extend(current.interfaces)
            current = current.base
        while len(pending) > 0:
            interface: HostClass = pending.pop()
            if interface in collected:
                continue
            collected.add(interface)
            pending.extend(interface.interfaces)
        return collected

    def is_assignable_from(self, other: "HostClass") -> bool:
        """Evaluate host assignability of ``other`` to this class.

        :param other: Candidate class.
        :returns: ``True`` when instances of ``other`` are instances of this class.
        """
        if other is self:
            return True
        if self.is_interface is True:
            return self in other.all_interfaces()
        if self is self.assembly.runtime.object_class:
            return other.kind is not TypeKind.GENERIC_PARAMETER
        current: HostClass | None = other.base
        while current is not None:
            if current is self:
                return True
            current = current.base
        return False

    def inheritance_distance(self, other: "HostClass") -> int | None:
        """Count base-chain steps from ``other`` up to this class.

        :param other: Candidate class.
        :returns: Step count, ``None`` when not assignable.
        """
        distance: int = 0
        current: HostClass | None = other
        while current is not None:
            if current is self:
                return distance
            distance += 1
            current = current.base
        if self.is_assignable_from(other) is True:
            return distance
        return None

    def make_generic_type(self, type_arguments: tuple["HostClass", ...]) -> "HostClass":
        """Close a generic definition over concrete type arguments.

        :param type_arguments: One host class per generic parameter.
        :returns: Cached closed generic class.
        :raises HostException: If this is not a definition or arity differs.
        """
        self.ensure_loaded()
        if self.is_generic_definition is False:
            raise HostException(f"{self.full_name} is not a generic type definition")
        if len(type_arguments) != len(self.generic_parameter_types):
            raise HostException(
                f"{self.full_name} expects {len(self.generic_parameter_types)} type arguments"
            )
        cached: HostClass | None = self._generic_instances.get(type_arguments)
        if cached is not None:
            return cached

        argument_names: str = ", ".join(argument.name for argument in type_arguments)
        closed: HostClass = HostClass(
            f"{self.name}[{argument_names}]",
            self.assembly,
            namespace=self.namespace,
            kind=self.kind,
            base=self.base,
            interfaces=self.interfaces,
            is_sealed=self.is_sealed,
            zero_value=self.zero_value,
        )
        closed.generic_definition = self
        closed.generic_arguments = type_arguments
        mapping: dict[HostClass, HostClass] = dict(zip(self.generic_parameter_types, type_arguments))

        def substitute(parameter: HostParameter) -> HostParameter:
            parameter_type: HostClass = mapping.get(parameter.parameter_type, parameter.parameter_type)
            return HostParameter(parameter.name, parameter_type, parameter.default)

        for constructor in self._constructors:
            closed.add_constructor(tuple(substitute(p) for p in constructor.parameters), constructor.body)
        for name, overloads in self._methods.items():
            for method in overloads:
                return_type: HostClass | None = method.return_type
                if return_type is not None:
                    return_type = mapping.get(return_type, return_type)
                closed.add_method(
                    name,
                    tuple(substitute(p) for p in method.parameters),
                    method.body,
                    return_type=return_type,
                    is_static=method.is_static,
                    is_virtual=method.is_virtual,
                )
        for field in self._fields.values():
            field_type: HostClass = mapping.get(field.field_type, field.field_type)
            closed.add_field(
                field.name,
                field_type,
                is_static=field.is_static,
                is_readonly=field.is_readonly,
                value=field._static_value,
            )
        self._generic_instances[type_arguments] = closed
        return closed

    def default_value(self) -> object:
        """Return the value a field of this type holds before assignment.

        :returns: Zero value for primitives and enums, a default instance for
            other value types, ``None`` for reference types.
        """
        if self.kind is TypeKind.VALUE_TYPE and self.is_decimal is False:
            return self.create_default_instance()
        return self.zero_value

    def create_default_instance(self) -> "HostObject":
        """Create a value-type instance through its implicit default constructor.

        :returns: Zero-initialized host object.
        :raises HostTypeLoadError: If the owning assembly is unloaded.
        :raises TargetInvocationError: If the class initializer fails.
        """
        self.ensure_loaded()
        try:
            self.ensure_initialized()
        except TypeInitializationError as exc:
            raise TargetInvocationError(
                f"Exception has been thrown while creating {self.full_name}",
                exc,
            ) from exc
        return HostObject(self)

    def __repr__(self) -> str:
        return f"<HostClass {self.full_name} ({self.kind.value})>"


class HostObject:
    """Instance of a host class."""

    __slots__ = ("host_class", "_fields", "__weakref__")

    host_class: HostClass
    _fields: dict[str, object]

    def __init__(self, host_class: HostClass) -> None:
        """Create a zero-initialized instance.

        :param host_class: Runtime class of the instance.
        """
        self.host_class = host_class
        self._fields = {}
        for field in host_class.instance_fields():
            self._fields[field.name] = field.field_type.default_value()

    def has_field(self, name: str) -> bool:
        return name in self._fields

    def get_field(self, name: str) -> object:
        """Read an instance field.

        :param name: Field name.
        :returns: Field value.
        :raises HostMissingMemberError: If the field does not exist.
        """
        if name not in self._fields:
            raise HostMissingMemberError(f"{self.host_class.full_name} has no field {name!r}")
        return self._fields[name]

    def set_field(self, name: str, value: object) -> None:
        """Assign an instance field.

        :param name: Field name.
        :param value: New value.
        :raises HostMissingMemberError: If the field does not exist.
        """
        if name not in self._fields:
            raise HostMissingMemberError(f"{self.host_class.full_name} has no field {name!r}")
        self._fields[name] = value

    def invoke(self, name: str, *args: object) -> object:
        """Call an instance method from host code, dispatching virtually.

        :param name: Method name.
        :param args: Host-side argument values.
        :returns: Method result.
        :raises HostMissingMemberError: If no overload takes ``len(args)`` arguments.
        """
        for method in self.host_class.find_methods(name):
            if method.is_static is False and len(method.parameters) == len(args):
                return method.invoke(self, list(args))
        raise HostMissingMemberError(
            f"{self.host_class.full_name} has no method {name!r} taking {len(args)} arguments"
        )

    def __repr__(self) -> str:
        return f"<HostObject {self.host_class.full_name} {self._fields!r}>"


class HostAssembly:
    """Unit of host class metadata that can be unloaded as a whole."""

    name: str
    runtime: "HostRuntime"
    _classes: dict[str, HostClass]
    _loaded: bool

    def __init__(self, name: str, runtime: "HostRuntime") -> None:
        """Initialize an empty, loaded assembly.

        :param name: Assembly name.
        :param runtime: Owning host runtime.
        """
        self.name = name
        self.runtime = runtime
        self._classes = {}
        self._loaded = True

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def define_class(
        self,
        name: str,
        namespace: str = "",
        kind: TypeKind = TypeKind.CLASS,
        base: HostClass | None = None,
        interfaces: tuple[HostClass, ...] = (),
        is_sealed: bool = False,
        zero_value: object = None,
        generic_parameters: tuple[str, ...] = (),
        initializer: Callable[[], None] | None = None,
    ) -> HostClass:
        """Define a new class in this assembly.

        Classes other than interfaces derive from the runtime's root object
        class when ``base`` is omitted.

        :param name: Simple class name.
        :param namespace: Dotted namespace.
        :param kind: Class kind.
        :param base: Explicit base class.
        :param interfaces: Implemented interfaces.
        :param is_sealed: Whether host-side derivation is forbidden.
        :param zero_value: Default field value for primitives and enums.
        :param generic_parameters: Generic parameter names for a definition.
        :param initializer: Optional class initializer.
        :returns: Defined class.
        :raises ValueError: If the full name is already defined.
        """
        self._require_loaded()
        resolved_base: HostClass | None = base
        if resolved_base is None and kind is not TypeKind.INTERFACE:
            resolved_base = self.runtime.object_class
        host_class: HostClass = HostClass(
            name,
            self,
            namespace=namespace,
            kind=kind,
            base=resolved_base,
            interfaces=interfaces,
            is_sealed=is_sealed,
            zero_value=zero_value,
            generic_parameters=generic_parameters,
            initializer=initializer,
        )
        full_name: str = host_class.full_name
        if full_name in self._classes:
            raise ValueError(f"Class {full_name} is already defined in assembly {self.name}")
        self._classes[full_name] = host_class
        return host_class

    def get_class(self, full_name: str) -> HostClass | None:
        """Look up a class by full name.

        :param full_name: Namespace-qualified class name.
        :returns: Class metadata or ``None``.
        """
        return self._classes.get(full_name)

    def classes(self) -> tuple[HostClass, ...]:
        return tuple(self._classes.values())

    def unload(self) -> None:
        """Unload the assembly, invalidating every class it defines."""
        self._loaded = False
        self.runtime._forget_assembly(self)

    def _require_loaded(self) -> None:
        if self._loaded is False:
            raise HostTypeLoadError(f"Assembly {self.name} was unloaded")


class HostRuntime:
    """Registry of loaded host assemblies, including the core assembly."""

    _assemblies: dict[str, HostAssembly]
    core: HostAssembly
    object_class: HostClass
    int_class: HostClass
    float_class: HostClass
    bool_class: HostClass
    string_class: HostClass
    decimal_class: HostClass

    def __init__(self) -> None:
        """Create a runtime with the core assembly loaded."""
        self._assemblies = {}
        core: HostAssembly = HostAssembly(CORE_ASSEMBLY_NAME, self)
        self._assemblies[CORE_ASSEMBLY_NAME] = core
        self.core = core
        self.object_class = HostClass("Object", core, namespace=CORE_NAMESPACE)
        core._classes[self.object_class.full_name] = self.object_class
        self.object_class.add_constructor((), _empty_constructor)
        self.int_class = core.define_class(
            "Int", namespace=CORE_NAMESPACE, kind=TypeKind.PRIMITIVE, is_sealed=True, zero_value=0
        )
        self.float_class = core.define_class(
            "Float", namespace=CORE_NAMESPACE, kind=TypeKind.PRIMITIVE, is_sealed=True, zero_value=0.0
        )
        self.bool_class = core.define_class(
            "Bool", namespace=CORE_NAMESPACE, kind=TypeKind.PRIMITIVE, is_sealed=True, zero_value=False
        )
        self.string_class = core.define_class("String", namespace=CORE_NAMESPACE, is_sealed=True)
        self.decimal_class = core.define_class(
            "Decimal",
            namespace=CORE_NAMESPACE,
            kind=TypeKind.VALUE_TYPE,
            is_sealed=True,
            zero_value=decimal.Decimal(0),
        )

    def define_assembly(self, name: str) -> HostAssembly:
        """Load a new, empty assembly.

        :param name: Assembly name.
        :returns: Loaded assembly.
        :raises ValueError: If an assembly with that name is loaded.
        """
        if name in self._assemblies:
            raise ValueError(f"Assembly {name} is already loaded")
        assembly: HostAssembly = HostAssembly(name, self)
        self._assemblies[name] = assembly
        return assembly

    def get_assembly(self, name: str) -> HostAssembly | None:
        return self._assemblies.get(name)

    def primitive_for(self, python_type: type) -> HostClass | None:
        """Map a Python builtin type to its host counterpart.

        :param python_type: Python type object.
        :returns: Host class or ``None`` when there is no counterpart.
        """
        mapping: dict[type, HostClass] = {
            bool: self.bool_class,
            int: self.int_class,
            float: self.float_class,
            str: self.string_class,
            decimal.Decimal: self.decimal_class,
            object: self.object_class,
        }
        return mapping.get(python_type)

    def _forget_assembly(self, assembly: HostAssembly) -> None:
        current: HostAssembly | None = self._assemblies.get(assembly.name)
        if current is assembly:
            self._assemblies.pop(assembly.name, None)


def _empty_constructor(instance: HostObject) -> None:
    _ = instance
