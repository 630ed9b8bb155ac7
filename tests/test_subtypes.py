"""Tests for host subclasses defined by guest class statements."""

import pytest

from hostbridge import expose
from hostbridge import unwrap
from hostbridge.builder import ProxyTypeState
from hostbridge.builder import proxy_type_state
from hostbridge.classes import class_info_of
from hostbridge.host import HostAssembly
from hostbridge.host import HostClass
from hostbridge.host import HostObject
from hostbridge.subtypes import DEFAULT_ASSEMBLY_NAME
from tests.fixtures.geometry import GeometryClasses


def test_reflected_subtype_defines_host_class(geometry: GeometryClasses) -> None:
    """Naming a namespace turns the class statement into a new host class."""
    shape_cls: type = expose(geometry.shape)

    class Square(shape_cls):
        """Guest-defined host subclass."""

        __namespace__ = "Python.Shapes"

    assembly: HostAssembly | None = geometry.runtime.get_assembly(DEFAULT_ASSEMBLY_NAME)
    assert assembly is not None
    host_class: HostClass | None = assembly.get_class("Python.Shapes.Square")
    assert host_class is not None
    assert host_class.base is geometry.shape
    assert class_info_of(Square).descriptor.value is host_class

    state: ProxyTypeState | None = proxy_type_state(Square)
    assert state is not None
    assert state.is_subclass is False
    assert issubclass(Square, shape_cls) is True
    assert expose(host_class) is Square


def test_reflected_subtype_mirrors_base_constructors(geometry: GeometryClasses) -> None:
    """Base constructors are available on the new host class."""
    shape_cls: type = expose(geometry.shape)

    class Tagged(shape_cls):
        """Guest-defined host subclass without overrides."""

        __assembly__ = "python.tagged"

    tagged: object = Tagged("tag")
    assert tagged.name == "tag"
    host_object: object = unwrap(tagged)
    assert isinstance(host_object, HostObject) is True
    assert host_object.host_class.assembly.name == "python.tagged"
    assert Tagged().name == "shape"


def test_host_calls_dispatch_to_guest_override(geometry: GeometryClasses) -> None:
    """Virtual calls made by host code reach the guest override."""
    shape_cls: type = expose(geometry.shape)

    class Square(shape_cls):
        """Square with a guest-computed area."""

        __namespace__ = "Python.Shapes"

        def __init__(self, side: float) -> None:
            """Initialize the guest part.

            :param side: Side length.
            """
            self.side = side

        def area(self) -> float:
            return self.side * self.side

    square: object = Square(3.0)
    assert square.name == "shape"
    assert square.area() == 9.0
    assert square.describe() == "shape with area 9.00"
    assert shape_cls().measure(square) == 9.0


def test_guest_override_reaches_base_through_super(geometry: GeometryClasses) -> None:
    """``super()`` inside an override runs the host implementation once."""
    circle_cls: type = expose(geometry.circle)
    shape_cls: type = expose(geometry.shape)

    class Ring(circle_cls):
        """Circle whose area is offset by one."""

        __namespace__ = "Python.Shapes"

        def area(self) -> float:
            return super().area() + 1.0

    class Blank(shape_cls):
        """Shape calling the base implementation through the class."""

        __namespace__ = "Python.Shapes"

        def area(self) -> float:
            return shape_cls.area(self) + 2.0

    ring: object = Ring(1.0)
    ring_area: float = ring.area()
    assert ring_area == pytest.approx(3.141592653589793 + 1.0)
    assert ring.describe() == f"circle with area {ring_area:.2f}"
    assert Blank().area() == 2.0
    assert Blank().describe() == "shape with area 2.00"


def test_override_with_unconvertible_result_fails(geometry: GeometryClasses) -> None:
    """The override's result must convert to the declared return type."""
    shape_cls: type = expose(geometry.shape)

    class Broken(shape_cls):
        """Shape whose area is not a number."""

        __namespace__ = "Python.Shapes"

        def area(self) -> str:
            return "large"

    with pytest.raises(TypeError, match="cannot convert str to Float"):
        Broken().describe()


def test_duplicate_reflected_subtype_is_rejected(geometry: GeometryClasses) -> None:
    """A host class name can only be defined once per assembly."""
    shape_cls: type = expose(geometry.shape)

    class Hexagon(shape_cls):
        """First definition."""

        __namespace__ = "Python.Shapes"

    with pytest.raises(TypeError, match="host class Python.Shapes.Hexagon already exists"):

        class Hexagon(shape_cls):  # noqa: F811
            """Second definition."""

            __namespace__ = "Python.Shapes"


def test_sealed_and_value_type_bases_are_rejected(geometry: GeometryClasses) -> None:
    """Reflected subtypes cannot derive from sealed classes or value types."""
    label_cls: type = expose(geometry.label)
    point_cls: type = expose(geometry.point)
    with pytest.raises(TypeError, match="sealed host class Geometry.Label"):

        class FancyLabel(label_cls):
            """Not allowed."""

            __namespace__ = "Python.Labels"

    with pytest.raises(TypeError, match="host value type Geometry.Point"):

        class FancyPoint(point_cls):
            """Not allowed."""

            __assembly__ = "python.points"


def test_reflected_subtype_name_must_be_string(geometry: GeometryClasses) -> None:
    """Assembly and namespace names are validated."""
    shape_cls: type = expose(geometry.shape)
    with pytest.raises(TypeError, match="__namespace__ must be a string"):

        class Numbered(shape_cls):
            """Not allowed."""

            __namespace__ = 7
