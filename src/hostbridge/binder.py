"""Overload resolution of guest arguments against host member signatures."""

import decimal
from typing import NoReturn

from hostbridge.handles import INSTANCE_HANDLE_SLOT
from hostbridge.handles import HostHandle
from hostbridge.host import HostClass
from hostbridge.host import HostException
from hostbridge.host import HostMethodBase
from hostbridge.host import HostObject
from hostbridge.host import TypeKind
from hostbridge.host import unwrap_innermost

EXACT_COST: int = 0
WIDENING_COST: int = 1
NONE_COST: int = 2
OBJECT_COST: int = 10


def unwrap_guest_value(value: object) -> object:
    """Replace a proxy instance with the host object it pins.

    :param value: Guest-side value.
    :returns: Pinned host object, or ``value`` unchanged.
    :raises TypeError: If the proxy's handle was freed.
    """
    slot: object = getattr(type(value), INSTANCE_HANDLE_SLOT, None)
    if slot is None:
        return value
    try:
        instance_handle: object = object.__getattribute__(value, INSTANCE_HANDLE_SLOT)
    except AttributeError:
        return value
    if isinstance(instance_handle, HostHandle) is False:
        return value
    if instance_handle.alive is False:
        raise TypeError(f"{type(value).__name__} instance was released with its bridge session")
    return instance_handle.target


def convert_argument(value: object, parameter_type: HostClass) -> tuple[object, int]:
    """Convert one guest value to a host parameter type.

    :param value: Guest-side value.
    :param parameter_type: Declared host parameter type.
    :returns: Converted value and its conversion cost.
    :raises TypeError: If the value cannot be converted.
    """
    runtime = parameter_type.assembly.runtime
    if parameter_type.kind is TypeKind.GENERIC_PARAMETER:
        raise TypeError(f"cannot convert to open generic parameter {parameter_type.name}")

    host_value: object = unwrap_guest_value(value)
    if parameter_type is runtime.object_class:
        return host_value, OBJECT_COST
    if host_value is None:
        if parameter_type.is_value_type is True:
            raise TypeError(f"cannot convert None to value type {parameter_type.name}")
        return None, NONE_COST
    if isinstance(host_value, HostObject):
        distance: int | None = parameter_type.inheritance_distance(host_value.host_class)
        if distance is None:
            raise TypeError(
                f"{host_value.host_class.name} is not assignable to {parameter_type.name}"
            )
        return host_value, distance

    is_integer: bool = isinstance(host_value, int) is True and isinstance(host_value, bool) is False
    if parameter_type is runtime.bool_class and isinstance(host_value, bool) is True:
        return host_value, EXACT_COST
    if parameter_type is runtime.int_class and is_integer is True:
        return host_value, EXACT_COST
    if parameter_type is runtime.float_class:
        if isinstance(host_value, float) is True:
            return host_value, EXACT_COST
        if is_integer is True:
            return float(host_value), WIDENING_COST
    if parameter_type is runtime.decimal_class:
        if isinstance(host_value, decimal.Decimal) is True:
            return host_value, EXACT_COST
        if is_integer is True:
            return decimal.Decimal(host_value), WIDENING_COST
    if parameter_type is runtime.string_class and isinstance(host_value, str) is True:
        return host_value, EXACT_COST
    if parameter_type.is_enum is True and is_integer is True:
        return host_value, WIDENING_COST
    raise TypeError(f"cannot convert {type(value).__name__} to {parameter_type.name}")


def describe_arguments(args: tuple[object, ...], kwargs: dict[str, object] | None = None) -> str:
    """Render the types of supplied arguments for error messages.

    :param args: Positional arguments.
    :param kwargs: Keyword arguments.
    :returns: Text such as ``(int, str, y=float)``.
    """
    rendered: list[str] = [type(argument).__name__ for argument in args]
    if kwargs is not None:
        for name, argument in kwargs.items():
            rendered.append(f"{name}={type(argument).__name__}")
    return "(" + ", ".join(rendered) + ")"


def raise_innermost(exc: HostException) -> NoReturn:
    """Re-raise the innermost cause of a wrapped host exception.

    :param exc: Exception raised by reflective invocation.
    :raises BaseException: The innermost cause.
    """
    innermost: BaseException = unwrap_innermost(exc)
    raise innermost from None


class Binding:
    """Selected member together with its converted arguments."""

    method: HostMethodBase
    args: list[object]
    cost: int

    def __init__(self, method: HostMethodBase, args: list[object], cost: int) -> None:
        """Initialize a binding.

        :param method: Selected constructor or method.
        :param args: Converted argument values in parameter order.
        :param cost: Total conversion cost.
        """
        self.method = method
        self.args = args
        self.cost = cost

    def invoke(self, target: HostObject | None = None, dispatch_virtual: bool = True) -> object:
        """Invoke the selected member.

        :param target: Target object for instance methods.
        :param dispatch_virtual: Whether virtual methods dispatch on the target class.
        :returns: Raw host result.
        """
        if self.method.is_constructor is True:
            return self.method.invoke(self.args)
        return self.method.invoke(target, self.args, dispatch_virtual=dispatch_virtual)

    def __repr__(self) -> str:
        return f"<Binding {self.method.signature()} cost={self.cost}>"


class MethodBinder:
    """Choose among overloads of one host member."""

    _methods: list[HostMethodBase]

    def __init__(self, methods: tuple[HostMethodBase, ...] = ()) -> None:
        """Initialize a binder.

        :param methods: Candidate overloads in declaration order.
        """
        self._methods = list(methods)

    @property
    def methods(self) -> tuple[HostMethodBase, ...]:
        return tuple(self._methods)

    def add_method(self, method: HostMethodBase) -> None:
        self._methods.append(method)

    def bind(
        self,
        args: tuple[object, ...],
        kwargs: dict[str, object] | None = None,
        info: HostMethodBase | None = None,
        errors: list[BaseException] | None = None,
    ) -> Binding | None:
        """Match arguments against the candidates and pick the cheapest.

        :param args: Positional guest arguments.
        :param kwargs: Keyword guest arguments.
        :param info: Single pre-selected candidate, replacing the overload set.
        :param errors: Optional list collecting conversion failures.
        :returns: Best binding, or ``None`` when nothing matches.
        """
        candidates: tuple[HostMethodBase, ...] = (info,) if info is not None else self.methods
        best: Binding | None = None
        for method in candidates:
            try:
                converted, cost = self._match(method, args, kwargs or {})
            except TypeError as exc:
                if errors is not None:
                    errors.append(exc)
                continue
            if best is None or cost < best.cost:
                best = Binding(method, converted, cost)
        return best

    def invoke(
        self,
        target: HostObject | None,
        args: tuple[object, ...],
        kwargs: dict[str, object] | None = None,
        dispatch_virtual: bool = True,
    ) -> object:
        """Bind and invoke an overload.

        :param target: Target object, ``None`` for static members.
        :param args: Positional guest arguments.
        :param kwargs: Keyword guest arguments.
        :param dispatch_virtual: Whether virtual methods dispatch on the target class.
        :returns: Raw host result.
        :raises TypeError: If no overload matches.
        """
        errors: list[BaseException] = []
        binding: Binding | None = self.bind(args, kwargs, errors=errors)
        if binding is None:
            name: str = self._methods[0].name if len(self._methods) > 0 else "<unknown>"
            message: str = f"no method matches given arguments for {name}: {describe_arguments(args, kwargs)}"
            last_error: BaseException | None = errors[-1] if len(errors) > 0 else None
            raise TypeError(message) from last_error
        try:
            return binding.invoke(target, dispatch_virtual=dispatch_virtual)
        except HostException as exc:
            raise_innermost(exc)

    def _match(
        self,
        method: HostMethodBase,
        args: tuple[object, ...],
        kwargs: dict[str, object],
    ) -> tuple[list[object], int]:
        parameters = method.parameters
        if len(args) > len(parameters):
            raise TypeError(
                f"{method.signature()} takes {len(parameters)} arguments ({len(args)} given)"
            )
        remaining: dict[str, object] = dict(kwargs)
        values: list[object] = []
        total: int = 0
        for index, parameter in enumerate(parameters):
            if index < len(args):
                if parameter.name in remaining:
                    raise TypeError(
                        f"{method.signature()} got multiple values for argument {parameter.name!r}"
                    )
                raw: object = args[index]
            elif parameter.name in remaining:
                raw = remaining.pop(parameter.name)
            elif parameter.has_default is True:
                values.append(parameter.default)
                continue
            else:
                raise TypeError(f"{method.signature()} missing argument {parameter.name!r}")
            value, cost = convert_argument(raw, parameter.parameter_type)
            values.append(value)
            total += cost
        if len(remaining) > 0:
            unexpected: str = ", ".join(sorted(remaining))
            raise TypeError(f"{method.signature()} got unexpected keyword arguments: {unexpected}")
        return values, total
