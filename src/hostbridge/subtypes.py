"""Reflected host subtypes defined by guest class statements.

A class statement deriving from a proxy type and naming ``__assembly__`` or
``__namespace__`` defines a real host class.  Host code can then construct
and call it, and its virtual methods dispatch back into the guest overrides.
"""

import logging
from collections.abc import Callable

from hostbridge.binder import convert_argument
from hostbridge.classes import ClassInfo
from hostbridge.classes import ClassManager
from hostbridge.host import HostAssembly
from hostbridge.host import HostClass
from hostbridge.host import HostMethod
from hostbridge.host import HostObject
from hostbridge.host import HostRuntime

logger = logging.getLogger(__name__)

ASSEMBLY_KEY: str = "__assembly__"
NAMESPACE_KEY: str = "__namespace__"
REFLECTED_SUBTYPE_KEYS: tuple[str, ...] = (ASSEMBLY_KEY, NAMESPACE_KEY)
DEFAULT_ASSEMBLY_NAME: str = "hostbridge.dynamic"


def _read_name(namespace: dict[str, object], key: str, default: str) -> str:
    value: object = namespace.get(key, default)
    if isinstance(value, str) is False:
        raise TypeError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _virtual_methods(base_class: HostClass) -> list[HostMethod]:
    """Collect the most derived virtual methods visible from a class.

    :param base_class: Class whose chain is inspected.
    :returns: Virtual instance methods, overridden ones excluded.
    """
    collected: list[HostMethod] = []
    current: HostClass | None = base_class
    while current is not None:
        for overloads in current.declared_methods().values():
            for method in overloads:
                if method.is_virtual is False or method.is_static is True:
                    continue
                shadowed: bool = any(known.has_same_signature(method) for known in collected)
                if shadowed is False:
                    collected.append(method)
        current = current.base
    return collected


def _guest_override(manager: ClassManager, method: HostMethod) -> Callable[..., object]:
    """Build a host method body forwarding to the guest override.

    Host objects without a guest proxy run the overridden implementation.

    :param manager: Class manager resolving guest objects.
    :param method: Virtual method being overridden.
    :returns: Host method body.
    """

    def invoke_guest(target: HostObject, *args: object) -> object:
        guest: object = manager.guest_object_for(target)
        if guest is None:
            return method.body(target, *args)
        result: object = getattr(guest, method.name)(*[manager.wrap(argument) for argument in args])
        if method.return_type is None:
            return None
        converted, _ = convert_argument(result, method.return_type)
        return converted

    return invoke_guest


def create_reflected_subtype(name: str, base: type, namespace: dict[str, object], info: ClassInfo) -> type:
    """Define a host subclass mirroring a guest class statement.

    :param name: Class name.
    :param base: Proxy type being derived from.
    :param namespace: Guest class namespace.
    :param info: Class wrapper of the base.
    :returns: Proxy type of the new host class.
    :raises TypeError: If the base cannot be derived from or the name is taken.
    """
    base_class: HostClass = info.descriptor.value
    if base_class.is_sealed is True:
        raise TypeError(f"cannot derive {name} from sealed host class {base_class.full_name}")
    if base_class.is_value_type is True:
        raise TypeError(f"cannot derive {name} from host value type {base_class.full_name}")

    assembly_name: str = _read_name(namespace, ASSEMBLY_KEY, DEFAULT_ASSEMBLY_NAME)
    namespace_name: str = _read_name(namespace, NAMESPACE_KEY, "")
    runtime: HostRuntime = base_class.assembly.runtime
    assembly: HostAssembly | None = runtime.get_assembly(assembly_name)
    if assembly is None:
        assembly = runtime.define_assembly(assembly_name)
    full_name: str = f"{namespace_name}.{name}" if len(namespace_name) > 0 else name
    if assembly.get_class(full_name) is not None:
        raise TypeError(f"host class {full_name} already exists in assembly {assembly_name}")

    host_class: HostClass = assembly.define_class(name, namespace=namespace_name, base=base_class)
    for constructor in base_class.get_constructors():
        host_class.add_constructor(constructor.parameters, constructor.body)
    overridden: list[str] = []
    for method in _virtual_methods(base_class):
        override: object = namespace.get(method.name)
        if override is None or callable(override) is False:
            continue
        host_class.add_method(
            method.name,
            method.parameters,
            _guest_override(info.manager, method),
            return_type=method.return_type,
            is_virtual=True,
        )
        overridden.append(method.name)

    logger.debug(
        "Defined reflected subtype %s in assembly %s overriding %s",
        full_name,
        assembly_name,
        overridden,
    )
    return info.manager.create_proxy_type(host_class, base, guest_namespace=dict(namespace), name=name)
