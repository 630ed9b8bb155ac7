"""Validity-checked references to host class metadata."""

from hostbridge.errors import InvalidDescriptorError
from hostbridge.host import HostClass


class HostClassDescriptor:
    """Immutable, validity-checked handle to one host class."""

    __slots__ = ("_host_class",)

    _host_class: HostClass

    def __init__(self, host_class: HostClass) -> None:
        """Bind a descriptor to host class metadata.

        :param host_class: Host class the descriptor refers to.
        """
        object.__setattr__(self, "_host_class", host_class)

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def valid(self) -> bool:
        """Report whether the underlying host class is still loaded.

        :returns: ``False`` once the owning assembly has been unloaded.
        """
        return self._host_class.is_loaded

    @property
    def name(self) -> str:
        """Return the readable identity used in error messages.

        :returns: Full name of the host class.
        """
        return self._host_class.full_name

    @property
    def deleted_message(self) -> str:
        return f"Underlying host class {self.name} has been deleted"

    @property
    def value(self) -> HostClass:
        """Return the host class, checking validity first.

        :returns: Host class metadata.
        :raises InvalidDescriptorError: If the host class was unloaded.
        """
        if self.valid is False:
            raise InvalidDescriptorError(self.name, self.deleted_message)
        return self._host_class

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HostClassDescriptor) is False:
            return NotImplemented
        return self._host_class is other._host_class

    def __hash__(self) -> int:
        return id(self._host_class)

    def __repr__(self) -> str:
        state: str = "valid" if self.valid is True else "deleted"
        return f"<HostClassDescriptor {self.name} ({state})>"
