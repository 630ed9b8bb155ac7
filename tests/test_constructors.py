"""Tests for overload-resolving construction of host objects."""

import pytest

from hostbridge import expose
from hostbridge.binder import MethodBinder
from hostbridge.constructors import ConstructorBinder
from hostbridge.descriptor import HostClassDescriptor
from hostbridge.host import HostConstructor
from hostbridge.host import HostObject
from tests.fixtures.geometry import GeometryClasses


def test_value_type_constructor_binds_arguments(geometry: GeometryClasses) -> None:
    """Construct a value type through its two-argument constructor."""
    point_cls: type = expose(geometry.point)
    point: object = point_cls(3, 4)
    assert point.x == 3
    assert point.y == 4
    assert point.length() == 5.0
    assert geometry.count("Point(x, y)") == 1


def test_unmatched_arguments_raise_type_error_naming_class(geometry: GeometryClasses) -> None:
    """A failed match names the class and the supplied argument types."""
    point_cls: type = expose(geometry.point)
    with pytest.raises(TypeError) as info:
        point_cls("a")
    message: str = str(info.value)
    assert message.startswith("no constructor matches given arguments for Point:")
    assert "(str)" in message
    assert geometry.count("Point(x, y)") == 0


def test_value_type_without_arguments_skips_binding(
    geometry: GeometryClasses,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A value type called without arguments is default-initialized directly."""

    def fail_bind(*args: object, **kwargs: object) -> None:
        raise AssertionError("binding must not run for the default value-type constructor")

    monkeypatch.setattr(MethodBinder, "bind", fail_bind)
    point_cls: type = expose(geometry.point)
    point: object = point_cls()
    assert point.x == 0
    assert point.y == 0
    assert geometry.count("Point(x, y)") == 0


def test_overloads_are_selected_by_argument_count(geometry: GeometryClasses) -> None:
    """Each call runs exactly one constructor, chosen by its arguments."""
    counter_cls: type = expose(geometry.counter)
    empty: object = counter_cls()
    assert geometry.count("Counter()") == 1
    assert geometry.count("Counter(start)") == 0
    assert empty.value == 0

    started: object = counter_cls(5)
    assert geometry.count("Counter()") == 1
    assert geometry.count("Counter(start)") == 1
    assert started.value == 5


def test_cheapest_conversion_wins(geometry: GeometryClasses) -> None:
    """An exact parameter match beats a widening conversion."""
    converter_cls: type = expose(geometry.converter)
    assert converter_cls(3).kind == "int"
    assert converter_cls(2.5).kind == "float"


def test_keyword_arguments_and_defaults(geometry: GeometryClasses) -> None:
    """Keyword arguments bind by name and omitted parameters take defaults."""
    widget_cls: type = expose(geometry.widget)
    positional: object = widget_cls("gear")
    assert positional.name == "gear"
    assert positional.size == 1

    named: object = widget_cls(size=3, name="cog")
    assert named.name == "cog"
    assert named.size == 3

    with pytest.raises(TypeError, match="no constructor matches given arguments for Widget"):
        widget_cls("gear", name="cog")


def test_host_exception_is_unwrapped(geometry: GeometryClasses) -> None:
    """The exception raised by a constructor body reaches the caller unwrapped."""
    faulty_cls: type = expose(geometry.faulty)
    with pytest.raises(ValueError, match="boom") as info:
        faulty_cls("boom")
    assert info.value.__suppress_context__ is True


def test_class_initializer_failure_is_unwrapped(geometry: GeometryClasses) -> None:
    """A failing class initializer surfaces as its own exception, every time."""
    bad_cls: type = expose(geometry.bad_init)
    with pytest.raises(RuntimeError, match="static state unavailable"):
        bad_cls()
    with pytest.raises(RuntimeError, match="static state unavailable"):
        bad_cls()


def test_deleted_class_raises_type_error(geometry: GeometryClasses) -> None:
    """Constructing a class from an unloaded assembly fails with its name."""
    binder: ConstructorBinder = ConstructorBinder(HostClassDescriptor(geometry.plugin))
    geometry.plugins.unload()
    with pytest.raises(TypeError, match="Underlying host class Plugins.Plugin has been deleted"):
        binder.invoke_raw(())


def test_deleted_class_fails_through_proxy_type(geometry: GeometryClasses) -> None:
    """Calling the proxy type of an unloaded class fails the same way."""
    plugin_cls: type = expose(geometry.plugin)
    geometry.plugins.unload()
    with pytest.raises(TypeError, match="has been deleted"):
        plugin_cls()


def test_invoke_raw_returns_host_object(geometry: GeometryClasses) -> None:
    """The raw entry point returns the host object without a guest proxy."""
    binder: ConstructorBinder = ConstructorBinder(HostClassDescriptor(geometry.counter))
    created: object = binder.invoke_raw((7,))
    assert isinstance(created, HostObject) is True
    assert created.host_class is geometry.counter
    assert created.get_field("value") == 7


def test_preselected_constructor_does_not_fall_back(geometry: GeometryClasses) -> None:
    """With a pre-selected constructor no zero-argument retry happens."""
    binder: ConstructorBinder = ConstructorBinder(HostClassDescriptor(geometry.counter))
    start_constructor: HostConstructor = [
        constructor for constructor in geometry.counter.get_constructors() if len(constructor.parameters) == 1
    ][0]
    with pytest.raises(TypeError, match=r"for Counter: \(str\)"):
        binder.invoke_raw(("x",), info=start_constructor)
    assert geometry.count("Counter()") == 0

    created: HostObject = binder.invoke_raw((9,), info=start_constructor)
    assert created.get_field("value") == 9


def test_guest_subclass_falls_back_to_default_constructor(geometry: GeometryClasses) -> None:
    """Arguments meant for a guest initializer fall back to the empty constructor."""
    counter_cls: type = expose(geometry.counter)

    class Tally(counter_cls):
        """Guest subclass taking its own initializer arguments."""

        def __init__(self, label: str) -> None:
            """Initialize the guest part.

            :param label: Guest-only label.
            """
            super().__init__()
            self.label = label

    tally: object = Tally("apples")
    assert tally.label == "apples"
    assert tally.value == 0
    assert geometry.count("Counter()") == 1
    assert geometry.count("Counter(start)") == 0


def test_fallback_failure_reports_original_arguments(geometry: GeometryClasses) -> None:
    """When the empty-constructor retry fails too, the original call is reported."""
    label_cls: type = expose(geometry.label)
    with pytest.raises(TypeError) as info:
        label_cls(1, 2)
    assert "for Label: (int, int)" in str(info.value)
