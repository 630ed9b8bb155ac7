"""Overload-resolving instantiation of host classes."""

import logging

from hostbridge.binder import Binding
from hostbridge.binder import MethodBinder
from hostbridge.binder import describe_arguments
from hostbridge.binder import raise_innermost
from hostbridge.descriptor import HostClassDescriptor
from hostbridge.errors import BridgeInvariantError
from hostbridge.host import HostClass
from hostbridge.host import HostConstructor
from hostbridge.host import HostException
from hostbridge.host import HostObject

logger = logging.getLogger(__name__)


class ConstructorBinder(MethodBinder):
    """Select and invoke the host constructor matching guest arguments.

    The binder returns raw host objects rather than proxies.  Only the caller
    allocating the guest object knows whether the result belongs to a plain
    proxy type or to a guest-defined subclass of it.
    """

    descriptor: HostClassDescriptor

    def __init__(self, descriptor: HostClassDescriptor) -> None:
        """Initialize a constructor binder for one host class.

        :param descriptor: Descriptor of the class being constructed.
        """
        host_class: HostClass = descriptor.value
        super().__init__(host_class.get_constructors())
        self.descriptor = descriptor

    def invoke_raw(
        self,
        args: tuple[object, ...],
        kwargs: dict[str, object] | None = None,
        info: HostConstructor | None = None,
    ) -> HostObject:
        """Create a host object from guest arguments.

        Value types other than primitives, enumerations and the decimal type
        are default-constructed without overload resolution when no
        arguments are supplied.  When binding fails and no constructor was
        pre-selected, binding is retried with zero arguments, leaving the
        supplied arguments to a guest-defined initializer.

        :param args: Positional guest arguments.
        :param kwargs: Keyword guest arguments.
        :param info: Single pre-selected constructor.
        :returns: Constructed host object.
        :raises TypeError: If the class is deleted or no constructor matches.
        """
        if self.descriptor.valid is False:
            raise TypeError(self.descriptor.deleted_message)
        host_class: HostClass = self.descriptor.value
        supplied_count: int = len(args) + len(kwargs or {})

        if (
            host_class.is_value_type is True
            and host_class.is_primitive is False
            and host_class.is_enum is False
            and host_class.is_decimal is False
            and supplied_count == 0
        ):
            try:
                return host_class.create_default_instance()
            except HostException as exc:
                raise_innermost(exc)

        errors: list[BaseException] = []
        binding: Binding | None = self.bind(args, kwargs, info=info, errors=errors)
        if binding is None and info is None and supplied_count > 0:
            logger.debug(
                "No constructor of %s accepts %s; retrying with zero arguments",
                host_class.full_name,
                describe_arguments(args, kwargs),
            )
            binding = self.bind((), None, errors=errors)

        if binding is None:
            class_name: str = info.declaring_class.name if info is not None else host_class.name
            message: str = (
                f"no constructor matches given arguments for {class_name}: "
                f"{describe_arguments(args, kwargs)}"
            )
            last_error: BaseException | None = errors[-1] if len(errors) > 0 else None
            raise TypeError(message) from last_error

        try:
            result: object = binding.invoke()
        except HostException as exc:
            raise_innermost(exc)
        if isinstance(result, HostObject) is False:
            raise BridgeInvariantError(
                f"Constructor of {host_class.full_name} returned {type(result).__name__}"
            )
        return result
