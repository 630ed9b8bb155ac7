"""Tests for argument conversion and overload selection."""

import decimal

import pytest

from hostbridge import expose
from hostbridge.binder import EXACT_COST
from hostbridge.binder import NONE_COST
from hostbridge.binder import OBJECT_COST
from hostbridge.binder import WIDENING_COST
from hostbridge.binder import Binding
from hostbridge.binder import MethodBinder
from hostbridge.binder import convert_argument
from hostbridge.binder import describe_arguments
from hostbridge.host import HostClass
from hostbridge.host import HostMethod
from hostbridge.host import HostObject
from hostbridge.host import HostParameter
from hostbridge.host import HostRuntime
from tests.fixtures.geometry import GeometryClasses


def test_primitive_conversion_costs(host_runtime: HostRuntime) -> None:
    """Exact matches are free and numeric widening costs one step."""
    assert convert_argument(3, host_runtime.int_class) == (3, EXACT_COST)
    assert convert_argument(3, host_runtime.float_class) == (3.0, WIDENING_COST)
    assert convert_argument(2.5, host_runtime.float_class) == (2.5, EXACT_COST)
    assert convert_argument(3, host_runtime.decimal_class) == (decimal.Decimal(3), WIDENING_COST)
    assert convert_argument(True, host_runtime.bool_class) == (True, EXACT_COST)
    assert convert_argument("a", host_runtime.string_class) == ("a", EXACT_COST)
    assert convert_argument("a", host_runtime.object_class) == ("a", OBJECT_COST)
    with pytest.raises(TypeError, match="cannot convert bool to Int"):
        convert_argument(True, host_runtime.int_class)
    with pytest.raises(TypeError, match="cannot convert float to Int"):
        convert_argument(2.5, host_runtime.int_class)


def test_none_converts_to_reference_types_only(geometry: GeometryClasses) -> None:
    """``None`` binds to reference types and never to value types."""
    runtime: HostRuntime = geometry.runtime
    assert convert_argument(None, geometry.shape) == (None, NONE_COST)
    assert convert_argument(None, runtime.string_class) == (None, NONE_COST)
    with pytest.raises(TypeError, match="value type Point"):
        convert_argument(None, geometry.point)
    with pytest.raises(TypeError, match="value type Int"):
        convert_argument(None, runtime.int_class)


def test_host_object_cost_is_inheritance_distance(geometry: GeometryClasses) -> None:
    """Proxies unwrap to their host object, costing their base-chain distance."""
    circle_cls: type = expose(geometry.circle)
    circle: object = circle_cls(1.0)
    converted, cost = convert_argument(circle, geometry.shape)
    assert isinstance(converted, HostObject) is True
    assert cost == 1
    assert convert_argument(circle, geometry.circle)[1] == 0
    with pytest.raises(TypeError, match="Circle is not assignable to Counter"):
        convert_argument(circle, geometry.counter)


def test_enum_accepts_integers(geometry: GeometryClasses) -> None:
    """Enumerations take integers at widening cost."""
    assert convert_argument(2, geometry.color) == (2, WIDENING_COST)


def test_open_generic_parameter_rejects_arguments(geometry: GeometryClasses) -> None:
    """Open generic parameters cannot be bound."""
    item_type: HostClass = geometry.list_class.generic_parameter_types[0]
    with pytest.raises(TypeError, match="open generic parameter T"):
        convert_argument(1, item_type)


def test_ties_keep_declaration_order(host_runtime: HostRuntime, geometry: GeometryClasses) -> None:
    """Equal-cost overloads resolve to the one declared first."""
    first: HostMethod = geometry.counter.add_method(
        "pick",
        (HostParameter("value", host_runtime.object_class),),
        lambda value: "first",
        is_static=True,
    )
    geometry.counter.add_method(
        "pick",
        (HostParameter("value", host_runtime.object_class),),
        lambda value: "second",
        is_static=True,
    )
    binder: MethodBinder = MethodBinder(geometry.counter.find_methods("pick"))
    binding: Binding | None = binder.bind(("x",))
    assert binding is not None
    assert binding.method is first
    assert binding.cost == OBJECT_COST
    assert binder.invoke(None, ("x",)) == "first"


def test_bind_collects_conversion_errors(host_runtime: HostRuntime, geometry: GeometryClasses) -> None:
    """Rejected candidates leave their reasons in the error list."""
    binder: MethodBinder = MethodBinder(geometry.converter.get_constructors())
    errors: list[BaseException] = []
    assert binder.bind(("text",), errors=errors) is None
    assert len(errors) == 2
    assert all(isinstance(error, TypeError) for error in errors) is True

    binding: Binding | None = binder.bind((), {"value": 4})
    assert binding is not None
    assert binding.cost == EXACT_COST
    assert binding.method.parameters[0].parameter_type is host_runtime.int_class


def test_method_binder_reports_unmatched_call(geometry: GeometryClasses) -> None:
    """Method calls without a matching overload name the method."""
    counter_cls: type = expose(geometry.counter)
    counter: object = counter_cls(1)
    assert counter.increment() == 2
    assert counter.increment(by=3) == 5
    with pytest.raises(TypeError, match=r"no method matches given arguments for increment: \(str\)") as info:
        counter.increment("many")
    assert isinstance(info.value.__cause__, TypeError) is True


def test_static_members_through_proxy(geometry: GeometryClasses) -> None:
    """Static methods and fields are reachable from the class and instances."""
    counter_cls: type = expose(geometry.counter)
    assert counter_cls.describe() == "counts things"
    assert counter_cls.LIMIT == 100
    assert counter_cls(2).LIMIT == 100
    assert sorted(counter_cls.increment.__overloads__) == ["Counter.increment(Int by)"]


def test_describe_arguments_renders_types() -> None:
    """Argument summaries list positional then keyword types."""
    assert describe_arguments((1, "a"), {"flag": True}) == "(int, str, flag=bool)"
    assert describe_arguments(()) == "()"
