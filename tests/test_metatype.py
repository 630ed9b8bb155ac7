"""Tests for the host metatype: subclassing, attribute assignment, checks and lifetime."""

import gc

import pytest

from hostbridge import HostMeta
from hostbridge import expose
from hostbridge import unwrap
from hostbridge.builder import TypeFlags
from hostbridge.builder import ProxyTypeState
from hostbridge.builder import proxy_type_state
from hostbridge.classes import HostLiteralDescriptor
from hostbridge.classes import class_info_of
from hostbridge.errors import InvalidDescriptorError
from hostbridge.handles import INSTANCE_HANDLE_SLOT
from hostbridge.handles import HostHandle
from hostbridge.metatype import DescriptorKind
from hostbridge.metatype import call_init
from hostbridge.metatype import classify_descriptor
from hostbridge.metatype import dealloc_type
from hostbridge.metatype import do_instance_check
from hostbridge.metatype import live_type_count
from hostbridge.runtime import BridgeRuntime
from tests.fixtures.geometry import GeometryClasses


class ForeignMeta(type):
    """Metaclass unrelated to the bridge."""


class Foreign(metaclass=ForeignMeta):
    """Class created by an unrelated metaclass."""

    def ping(self) -> str:
        return "pong"


def test_proxy_type_uses_host_metatype(geometry: GeometryClasses, bridge: BridgeRuntime) -> None:
    """Proxy types are instances of the metatype and mirror the host chain."""
    circle_cls: type = expose(geometry.circle)
    shape_cls: type = expose(geometry.shape)
    assert type(circle_cls) is HostMeta
    assert bridge.metatype is HostMeta
    assert circle_cls.__bases__ == (shape_cls,)
    assert circle_cls.__name__ == "Circle"
    assert circle_cls.__module__ == "Geometry"
    assert expose(geometry.circle) is circle_cls


def test_multiple_inheritance_is_rejected(geometry: GeometryClasses) -> None:
    """A class statement may not list two bases."""
    counter_cls: type = expose(geometry.counter)
    shape_cls: type = expose(geometry.shape)
    before: int = live_type_count()
    with pytest.raises(TypeError, match="cannot use multiple inheritance with host classes"):

        class Both(counter_cls, shape_cls):
            """Not allowed."""

    assert live_type_count() == before


def test_malformed_creation_arguments_are_rejected() -> None:
    """Direct metatype calls need exactly a name, bases and a namespace."""
    with pytest.raises(TypeError, match="invalid argument list"):
        HostMeta("Lonely")
    with pytest.raises(TypeError, match="invalid argument list"):
        HostMeta("Lonely", [object], {})


def test_base_with_foreign_metatype_is_rejected() -> None:
    """A base created by another metaclass cannot be derived through the bridge."""
    with pytest.raises(TypeError, match="invalid metatype"):
        HostMeta("Mixed", (Foreign,), {})


@pytest.mark.parametrize("attribute", ["color", "callback", "int_array"])
def test_enums_delegates_and_arrays_cannot_be_subclassed(geometry: GeometryClasses, attribute: str) -> None:
    """Subclassing a sealed kind of host type fails."""
    proxy_cls: type = expose(getattr(geometry, attribute))
    with pytest.raises(TypeError, match="delegates, enums and array types cannot be subclassed"):

        class Derived(proxy_cls):
            """Not allowed."""


def test_subclass_slots_are_rejected(geometry: GeometryClasses) -> None:
    """Guest subclasses cannot declare ``__slots__``."""
    counter_cls: type = expose(geometry.counter)
    before: int = live_type_count()
    with pytest.raises(TypeError, match="subclasses of host classes do not support __slots__"):

        class Slotted(counter_cls):
            """Not allowed."""

            __slots__ = ("extra",)

    assert live_type_count() == before


def test_deleted_base_class_is_reported(geometry: GeometryClasses) -> None:
    """Deriving from a proxy of an unloaded class names the deleted base."""
    plugin_cls: type = expose(geometry.plugin)
    geometry.plugins.unload()
    expected: str = "Underlying host base class Plugins.Plugin has been deleted"
    with pytest.raises(InvalidDescriptorError, match=expected) as info:

        class Extension(plugin_cls):
            """Not allowed."""

    assert info.value.class_name == "Plugins.Plugin"


def test_subclass_state_shares_root_handle_and_lifetime(geometry: GeometryClasses) -> None:
    """Guest subclasses copy the handle slot and type handle from their base."""
    counter_cls: type = expose(geometry.counter)

    class Tally(counter_cls):
        """First-level guest subclass."""

    class Deeper(Tally):
        """Second-level guest subclass."""

    root_state: ProxyTypeState | None = proxy_type_state(counter_cls)
    tally_state: ProxyTypeState | None = proxy_type_state(Tally)
    deeper_state: ProxyTypeState | None = proxy_type_state(Deeper)
    assert root_state is not None and tally_state is not None and deeper_state is not None
    assert root_state.is_subclass is False
    assert tally_state.is_subclass is True
    assert deeper_state.is_subclass is True
    for flag in (TypeFlags.READY, TypeFlags.HAS_HOST_INSTANCE, TypeFlags.HEAP_TYPE, TypeFlags.BASE_TYPE):
        assert flag in tally_state.flags
    assert tally_state.handle_slot == INSTANCE_HANDLE_SLOT
    assert deeper_state.handle_slot == INSTANCE_HANDLE_SLOT
    assert tally_state.lifetime is root_state.lifetime
    assert tally_state.type_handle is root_state.type_handle
    assert deeper_state.type_handle is root_state.type_handle
    assert class_info_of(Deeper) is class_info_of(counter_cls)


def test_plain_type_base_gets_no_class_info() -> None:
    """The metatype can derive from ordinary classes, which carry no host class."""
    loose: type = HostMeta("Loose", (object,), {})
    state: ProxyTypeState | None = proxy_type_state(loose)
    assert state is not None
    assert state.is_subclass is True
    assert class_info_of(loose) is None
    assert isinstance(loose(), loose) is True
    with pytest.raises(TypeError, match="unsubscriptable object"):
        loose[int]


def test_failed_initializer_releases_host_object(geometry: GeometryClasses, bridge: BridgeRuntime) -> None:
    """An exception from ``__init__`` frees the handle before propagating."""
    counter_cls: type = expose(geometry.counter)

    class Exploding(counter_cls):
        """Guest subclass whose initializer always fails."""

        def __init__(self, *args: object) -> None:
            """Fail unconditionally.

            :param args: Ignored arguments.
            """
            raise RuntimeError("init failed")

    live_before: int = bridge.handles.count
    with pytest.raises(RuntimeError, match="init failed"):
        Exploding()
    assert bridge.handles.count == live_before
    assert geometry.count("Counter()") == 1


def test_missing_initializer_is_not_an_error() -> None:
    """Objects without a reachable ``__init__`` are returned unchanged."""

    class NoInit:
        """Object hiding its initializer."""

        def __getattribute__(self, name: str) -> object:
            if name == "__init__":
                raise AttributeError(name)
            return object.__getattribute__(self, name)

    instance: NoInit = NoInit()
    assert call_init(instance, (1,), {}) is instance


def test_static_field_assignment_converts_values(geometry: GeometryClasses) -> None:
    """Assigning a settable static field stores the converted value."""
    config_cls: type = expose(geometry.config)
    assert config_cls.level == 1
    config_cls.level = 5
    assert config_cls.level == 5
    assert geometry.config.find_field("level").get_static() == 5
    with pytest.raises(TypeError):
        config_cls.level = "high"
    assert config_cls.level == 5


def test_read_only_members_cannot_be_assigned(geometry: GeometryClasses) -> None:
    """Literal fields, methods and setter-less properties reject assignment."""
    config_cls: type = expose(geometry.config)
    counter_cls: type = expose(geometry.counter)
    assert config_cls.VERSION == "1.0"
    with pytest.raises(AttributeError, match="attribute is read-only"):
        config_cls.VERSION = "2.0"
    assert config_cls.VERSION == "1.0"
    with pytest.raises(AttributeError, match="attribute is read-only"):
        counter_cls.increment = None
    with pytest.raises(AttributeError, match="has no setter"):
        config_cls.build = "debug"


def test_static_property_assignment_uses_setter(geometry: GeometryClasses) -> None:
    """Settable static properties route assignment through the host setter."""
    config_cls: type = expose(geometry.config)
    assert config_cls.mode == "fast"
    config_cls.mode = "slow"
    assert config_cls.mode == "slow"


def test_plain_attributes_use_generic_assignment(geometry: GeometryClasses) -> None:
    """Names without a descriptor are stored on the type, visible to subclasses."""
    counter_cls: type = expose(geometry.counter)

    class Tally(counter_cls):
        """Guest subclass observing the base attribute."""

    counter_cls.note = "first"
    assert Tally.note == "first"
    counter_cls.note = "second"
    assert Tally.note == "second"


def test_deleted_member_no_longer_intercepts_assignment(geometry: GeometryClasses) -> None:
    """Deleting a class attribute makes the next assignment a plain store."""
    counter_cls: type = expose(geometry.counter)

    class Tally(counter_cls):
        """Guest subclass that looked the member up before the deletion."""

    counter_cls.created = 1
    Tally.created = 3
    assert geometry.counter.find_field("created").get_static() == 3
    del counter_cls.created
    counter_cls.created = 42
    Tally.created = 7
    assert vars(counter_cls)["created"] == 42
    assert vars(Tally)["created"] == 7
    assert geometry.counter.find_field("created").get_static() == 3


def test_descriptor_classification() -> None:
    """Descriptors are tagged by capability."""
    literal: HostLiteralDescriptor = HostLiteralDescriptor.__new__(HostLiteralDescriptor)
    assert classify_descriptor(literal) is DescriptorKind.EXTENSION
    assert classify_descriptor(vars(object)["__hash__"]) is DescriptorKind.DATA
    assert classify_descriptor(vars(type)["__name__"]) is DescriptorKind.DATA
    assert classify_descriptor(Foreign().ping) is DescriptorKind.BOUND_METHOD
    assert classify_descriptor(5) is DescriptorKind.NONE
    assert classify_descriptor(None) is DescriptorKind.NONE


def test_builtin_data_descriptor_assignment(geometry: GeometryClasses) -> None:
    """Built-in descriptors without a setter are read-only on proxy types."""
    counter_cls: type = expose(geometry.counter)
    with pytest.raises(AttributeError, match="attribute is read-only"):
        counter_cls.__hash__ = None


def test_generic_subscript_closes_definition(geometry: GeometryClasses) -> None:
    """Subscripting a generic proxy yields a cached closed proxy type."""
    list_cls: type = expose(geometry.list_class)
    int_list: type = list_cls[int]
    assert int_list is list_cls[int]
    assert int_list.__name__ == "List[Int]"
    items: object = int_list()
    assert items.add(5) == 1
    assert items.add(6) == 2
    assert items.count == 2
    with pytest.raises(TypeError, match="no method matches given arguments for add"):
        items.add("six")


def test_generic_subscript_accepts_proxy_types(geometry: GeometryClasses) -> None:
    """Proxy types are accepted as generic arguments."""
    list_cls: type = expose(geometry.list_class)
    point_cls: type = expose(geometry.point)
    points: type = list_cls[point_cls]
    assert points.__name__ == "List[Point]"
    assert points().add(point_cls(1, 2)) == 1


def test_generic_subscript_errors(geometry: GeometryClasses) -> None:
    """Wrong subscripts report what was wrong with them."""
    list_cls: type = expose(geometry.list_class)
    counter_cls: type = expose(geometry.counter)
    with pytest.raises(TypeError, match="unsubscriptable object"):
        counter_cls[int]
    with pytest.raises(TypeError, match=r"type\(s\) expected"):
        list_cls[3]
    with pytest.raises(TypeError, match="List does not accept 2 generic parameters"):
        list_cls[int, str]


def test_instance_checks_follow_host_assignability(geometry: GeometryClasses) -> None:
    """``isinstance`` and ``issubclass`` answer through host assignability."""
    shape_cls: type = expose(geometry.shape)
    circle_cls: type = expose(geometry.circle)
    ishape_cls: type = expose(geometry.ishape)
    circle: object = circle_cls(2.0)
    assert isinstance(circle, shape_cls) is True
    assert isinstance(shape_cls(), circle_cls) is False
    assert issubclass(circle_cls, shape_cls) is True
    assert issubclass(shape_cls, circle_cls) is False
    assert issubclass(circle_cls, ishape_cls) is True
    assert isinstance(circle, ishape_cls) is True
    assert isinstance(5, shape_cls) is False
    assert issubclass(int, shape_cls) is False


def test_instance_checks_on_guest_subclasses_use_type_semantics(geometry: GeometryClasses) -> None:
    """Checks against a guest subclass use the standard type checks."""
    circle_cls: type = expose(geometry.circle)

    class Disk(circle_cls):
        """Guest subclass of a proxy type."""

    disk: object = Disk(1.0)
    circle: object = circle_cls(1.0)
    assert isinstance(disk, circle_cls) is True
    assert isinstance(disk, Disk) is True
    assert isinstance(circle, Disk) is False
    assert issubclass(Disk, circle_cls) is True
    assert issubclass(circle_cls, Disk) is False


def test_instance_checks_on_deleted_classes_are_false(geometry: GeometryClasses) -> None:
    """Checks involving an unloaded class answer ``False``."""
    plugin_cls: type = expose(geometry.plugin)
    object_cls: type = expose(geometry.runtime.object_class)
    plugin: object = plugin_cls()
    assert issubclass(plugin_cls, object_cls) is True
    geometry.plugins.unload()
    assert issubclass(plugin_cls, plugin_cls) is False
    assert issubclass(plugin_cls, object_cls) is False
    assert do_instance_check(plugin_cls, (plugin,), False) is False


def test_instance_check_requires_one_argument(geometry: GeometryClasses) -> None:
    """The check thunks take exactly one argument."""
    shape_cls: type = expose(geometry.shape)
    with pytest.raises(TypeError, match="invalid parameter count"):
        do_instance_check(shape_cls, (), False)
    with pytest.raises(TypeError, match="invalid parameter count"):
        HostMeta.__instancecheck__(shape_cls, 1, 2)


def test_root_type_dealloc_frees_type_handle_once(geometry: GeometryClasses, bridge: BridgeRuntime) -> None:
    """Tearing down a root proxy type frees its type handle exactly once."""
    counter_cls: type = expose(geometry.counter)
    state: ProxyTypeState | None = proxy_type_state(counter_cls)
    assert state is not None and state.type_handle is not None
    type_handle: HostHandle = state.type_handle
    live_before: int = live_type_count()
    freed_before: int = bridge.handles.freed_count

    dealloc_type(counter_cls)
    assert type_handle.alive is False
    assert live_type_count() == live_before - 1
    assert bridge.handles.freed_count == freed_before + 1
    assert proxy_type_state(counter_cls) is None

    dealloc_type(counter_cls)
    assert live_type_count() == live_before - 1
    assert bridge.handles.freed_count == freed_before + 1


def test_subclass_dealloc_keeps_root_handle(geometry: GeometryClasses) -> None:
    """Tearing down a guest subclass leaves the shared type handle alive."""
    counter_cls: type = expose(geometry.counter)

    class Tally(counter_cls):
        """Guest subclass torn down explicitly."""

    root_state: ProxyTypeState | None = proxy_type_state(counter_cls)
    assert root_state is not None and root_state.type_handle is not None
    live_before: int = live_type_count()
    dealloc_type(Tally)
    assert live_type_count() == live_before - 1
    assert root_state.type_handle.alive is True
    assert proxy_type_state(Tally) is None
    assert class_info_of(counter_cls) is not None


def test_collected_subclass_is_deallocated(geometry: GeometryClasses) -> None:
    """A guest subclass dropped by guest code is torn down by the collector."""
    counter_cls: type = expose(geometry.counter)
    live_before: int = live_type_count()

    def define_temporary() -> None:
        class Temporary(counter_cls):
            """Guest subclass that goes out of scope."""

        assert live_type_count() == live_before + 1

    define_temporary()
    gc.collect()
    assert live_type_count() == live_before


def test_subclass_lifetime_traverses_pinned_host_object(geometry: GeometryClasses) -> None:
    """A guest subclass instance reports its host object until cleared."""
    counter_cls: type = expose(geometry.counter)

    class Tally(counter_cls):
        """Guest subclass reusing the root lifetime."""

    tally: object = Tally()
    host_object: object = unwrap(tally)
    state: ProxyTypeState | None = proxy_type_state(Tally)
    assert state is not None
    visited: list[object] = []
    state.lifetime.traverse(tally, visited.append)
    assert len(visited) == 1
    assert visited[0] is host_object

    state.lifetime.clear(tally)
    visited.clear()
    state.lifetime.traverse(tally, visited.append)
    assert visited == []
    assert object.__getattribute__(tally, INSTANCE_HANDLE_SLOT) is None


def test_collected_instance_frees_its_handle(geometry: GeometryClasses, bridge: BridgeRuntime) -> None:
    """Collecting a proxy instance frees the handle pinning its host object."""
    counter_cls: type = expose(geometry.counter)

    class Tally(counter_cls):
        """Guest subclass whose instances share the root lifetime."""

    for proxy_cls in (counter_cls, Tally):
        instance: object = proxy_cls()
        handle: HostHandle = object.__getattribute__(instance, INSTANCE_HANDLE_SLOT)
        freed_before: int = bridge.handles.freed_count
        assert handle.alive is True
        del instance
        gc.collect()
        assert handle.alive is False
        assert bridge.handles.freed_count == freed_before + 1
