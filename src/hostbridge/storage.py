"""Stack of values persisted across a soft shutdown."""

from hostbridge.errors import RuntimeStateError


class RuntimeDataStorage:
    """Last-in, first-out store for runtime state saved before teardown."""

    _values: list[object]

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._values = []

    def push_value(self, value: object) -> None:
        self._values.append(value)

    def pop_value(self, expected_type: type | None = None) -> object:
        """Pop the most recently pushed value.

        :param expected_type: Optional type the value must be an instance of.
        :returns: Stored value.
        :raises RuntimeStateError: If the storage is empty or the value has
            an unexpected type.
        """
        if len(self._values) == 0:
            raise RuntimeStateError("Persisted runtime state is exhausted")
        value: object = self._values.pop()
        if expected_type is not None and isinstance(value, expected_type) is False:
            raise RuntimeStateError(
                f"Persisted runtime state holds {type(value).__name__}, expected {expected_type.__name__}"
            )
        return value

    def __len__(self) -> int:
        return len(self._values)
