"""Cross-runtime handles pinning host objects for guest references."""

from hostbridge.errors import HandleError

INSTANCE_HANDLE_SLOT: str = "_bridge_handle"


class HostHandle:
    """Pin keeping one host-side value alive while a guest object refers to it."""

    __slots__ = ("_table", "handle_id")

    _table: "HandleTable"
    handle_id: int

    def __init__(self, table: "HandleTable", handle_id: int) -> None:
        """Initialize a handle.

        :param table: Table the handle was allocated from.
        :param handle_id: Identifier inside the table.
        """
        self._table = table
        self.handle_id = handle_id

    @property
    def alive(self) -> bool:
        """Report whether the handle still pins its target.

        :returns: ``True`` until :meth:`free` is called.
        """
        return self._table.contains(self.handle_id)

    @property
    def target(self) -> object:
        """Return the pinned value.

        :returns: Pinned value.
        :raises HandleError: If the handle was freed.
        """
        return self._table.get(self.handle_id)

    def free(self) -> None:
        """Release the pin.

        :raises HandleError: If the handle was already freed.
        """
        self._table.free(self.handle_id)

    def __repr__(self) -> str:
        state: str = "alive" if self.alive is True else "freed"
        return f"<HostHandle {self.handle_id} ({state})>"


class HandleTable:
    """Store pinned values under stable integer identifiers."""

    _by_handle_id: dict[int, object]
    _next_handle_id: int
    _freed_count: int

    def __init__(self) -> None:
        """Initialize an empty handle table."""
        self._by_handle_id = {}
        self._next_handle_id = 1
        self._freed_count = 0

    def alloc(self, value: object) -> HostHandle:
        """Pin a value and return a new handle to it.

        Every call allocates a fresh handle, even for a value that is
        already pinned.

        :param value: Value to pin.
        :returns: Handle owning the pin.
        """
        handle_id: int = self._next_handle_id
        self._next_handle_id += 1
        self._by_handle_id[handle_id] = value
        return HostHandle(self, handle_id)

    def contains(self, handle_id: int) -> bool:
        return handle_id in self._by_handle_id

    def get(self, handle_id: int) -> object:
        """Get a pinned value.

        :param handle_id: Identifier of the handle.
        :returns: Pinned value.
        :raises HandleError: If the identifier is unknown or freed.
        """
        exists: bool = handle_id in self._by_handle_id
        if exists is False:
            raise HandleError(f"Unknown or freed host handle: {handle_id}")
        return self._by_handle_id[handle_id]

    def free(self, handle_id: int) -> None:
        """Release a pin.

        :param handle_id: Identifier of the handle.
        :raises HandleError: If the identifier is unknown or already freed.
        """
        exists: bool = handle_id in self._by_handle_id
        if exists is False:
            raise HandleError(f"Host handle {handle_id} was already freed")
        del self._by_handle_id[handle_id]
        self._freed_count += 1

    @property
    def count(self) -> int:
        """Return the number of live pins.

        :returns: Live handle count.
        """
        return len(self._by_handle_id)

    @property
    def freed_count(self) -> int:
        return self._freed_count

    def clear(self) -> None:
        """Drop every pin."""
        self._by_handle_id.clear()
