"""Process-wide bootstrap and teardown of the host bridge."""

import atexit
import logging
import os
import threading
from collections.abc import Callable
from typing import Literal

from hostbridge.classes import ClassManager
from hostbridge.errors import BridgeNotInitializedError
from hostbridge.handles import HandleTable
from hostbridge.host import HostClass
from hostbridge.host import HostRuntime
from hostbridge.metatype import create_root_type
from hostbridge.metatype import dealloc_type
from hostbridge.metatype import initialize_metatype
from hostbridge.metatype import release_metatype
from hostbridge.metatype import restore_runtime_data
from hostbridge.metatype import save_runtime_data
from hostbridge.storage import RuntimeDataStorage

logger = logging.getLogger(__name__)

ShutdownMode = Literal["normal", "soft"]
SHUTDOWN_MODE_ENV_VAR: str = "HOSTBRIDGE_SHUTDOWN_MODE"
_RUNTIME_LOCK: threading.RLock = threading.RLock()
_ACTIVE_RUNTIME: "BridgeRuntime | None" = None
_SAVED_STATE: RuntimeDataStorage | None = None
_SHUTDOWN_HANDLERS: list[Callable[[], None]] = []
_ATEXIT_REGISTERED: bool = False


def _validate_shutdown_mode(shutdown_mode: str) -> ShutdownMode:
    """Validate a shutdown mode.

    :param shutdown_mode: Requested mode.
    :returns: Validated mode.
    :raises ValueError: If the mode is unsupported.
    """
    if shutdown_mode == "normal":
        return "normal"
    if shutdown_mode == "soft":
        return "soft"
    raise ValueError(f"Unsupported shutdown mode {shutdown_mode!r}; expected 'normal' or 'soft'")


def get_default_shutdown_mode() -> ShutdownMode:
    """Read the default shutdown mode from the environment.

    :returns: Mode named by ``HOSTBRIDGE_SHUTDOWN_MODE``, else ``"normal"``.
    :raises ValueError: If the environment names an unsupported mode.
    """
    configured: str | None = os.environ.get(SHUTDOWN_MODE_ENV_VAR)
    if configured is None or len(configured.strip()) == 0:
        return "normal"
    return _validate_shutdown_mode(configured.strip().lower())


class BridgeRuntime:
    """State of one active bridge session."""

    host_runtime: HostRuntime
    handles: HandleTable
    manager: ClassManager
    metatype: type
    shutdown_mode: ShutdownMode

    def __init__(
        self,
        host_runtime: HostRuntime,
        handles: HandleTable,
        manager: ClassManager,
        metatype: type,
        shutdown_mode: ShutdownMode,
    ) -> None:
        """Initialize runtime state.

        :param host_runtime: Host runtime whose classes are exposed.
        :param handles: Handle table pinning host values.
        :param manager: Class manager owning proxy types.
        :param metatype: Metatype singleton.
        :param shutdown_mode: Mode applied by :func:`shutdown`.
        """
        self.host_runtime = host_runtime
        self.handles = handles
        self.manager = manager
        self.metatype = metatype
        self.shutdown_mode = shutdown_mode

    def expose(self, host_class: HostClass) -> type:
        """Return the proxy type of a host class.

        :param host_class: Host class.
        :returns: Proxy type.
        """
        return self.manager.get_proxy_type(host_class)


def _restore_runtime(
    storage: RuntimeDataStorage,
    host_runtime: HostRuntime | None,
    shutdown_mode: ShutdownMode,
) -> BridgeRuntime:
    metatype: type = restore_runtime_data(storage)
    saved_host_runtime: object = storage.pop_value(HostRuntime)
    manager: object = storage.pop_value(ClassManager)
    handles: object = storage.pop_value(HandleTable)
    if host_runtime is not None and host_runtime is not saved_host_runtime:
        release_metatype()
        raise ValueError("A soft-shutdown session can only be restored with its own host runtime")
    logger.debug("Restored host bridge state after soft shutdown")
    return BridgeRuntime(saved_host_runtime, handles, manager, metatype, shutdown_mode)


def initialize(host_runtime: HostRuntime | None = None, shutdown_mode: str | None = None) -> BridgeRuntime:
    """Initialize the bridge, or return the already active session.

    State saved by a soft shutdown is restored, preserving the identity of
    the metatype and of every cached proxy type.

    :param host_runtime: Host runtime to expose; a fresh one when omitted.
    :param shutdown_mode: ``"normal"`` or ``"soft"``; read from the
        environment when omitted.
    :returns: Active runtime.
    :raises ValueError: If the mode is invalid or conflicts with the active session.
    """
    global _ACTIVE_RUNTIME
    global _SAVED_STATE
    global _ATEXIT_REGISTERED
    with _RUNTIME_LOCK:
        if _ACTIVE_RUNTIME is not None:
            if host_runtime is not None and host_runtime is not _ACTIVE_RUNTIME.host_runtime:
                raise ValueError("The host bridge is already initialized with a different host runtime")
            return _ACTIVE_RUNTIME

        resolved_mode: ShutdownMode = (
            _validate_shutdown_mode(shutdown_mode) if shutdown_mode is not None else get_default_shutdown_mode()
        )
        runtime: BridgeRuntime
        if _SAVED_STATE is not None:
            storage: RuntimeDataStorage = _SAVED_STATE
            _SAVED_STATE = None
            runtime = _restore_runtime(storage, host_runtime, resolved_mode)
        else:
            metatype: type = initialize_metatype()
            resolved_host: HostRuntime = host_runtime if host_runtime is not None else HostRuntime()
            handles: HandleTable = HandleTable()
            manager: ClassManager = ClassManager(resolved_host, handles, create_root_type, dealloc_type)
            runtime = BridgeRuntime(resolved_host, handles, manager, metatype, resolved_mode)

        if _ATEXIT_REGISTERED is False:
            atexit.register(_shutdown_at_exit)
            _ATEXIT_REGISTERED = True
        _ACTIVE_RUNTIME = runtime
        logger.debug("Initialized host bridge (shutdown mode %s)", resolved_mode)
        return runtime


def _run_shutdown_handlers() -> BaseException | None:
    first_error: BaseException | None = None
    while len(_SHUTDOWN_HANDLERS) > 0:
        handler: Callable[[], None] = _SHUTDOWN_HANDLERS.pop()
        try:
            handler()
        except Exception as exc:
            logger.debug("Shutdown handler %r failed: %s", handler, exc)
            if first_error is None:
                first_error = exc
    return first_error


def shutdown() -> None:
    """Tear down the active session.

    Shutdown handlers run first, most recently added first.  A normal
    shutdown then disposes every cached proxy type; a soft shutdown saves
    the session so the next :func:`initialize` restores it.  The first
    handler failure, if any, is raised once teardown is complete.
    """
    global _ACTIVE_RUNTIME
    global _SAVED_STATE
    with _RUNTIME_LOCK:
        runtime: BridgeRuntime | None = _ACTIVE_RUNTIME
        if runtime is None:
            return
        handler_error: BaseException | None = _run_shutdown_handlers()
        if runtime.shutdown_mode == "soft":
            storage: RuntimeDataStorage = RuntimeDataStorage()
            storage.push_value(runtime.handles)
            storage.push_value(runtime.manager)
            storage.push_value(runtime.host_runtime)
            save_runtime_data(storage)
            _SAVED_STATE = storage
        else:
            runtime.manager.dispose()
            runtime.handles.clear()
            _SAVED_STATE = None
        release_metatype()
        _ACTIVE_RUNTIME = None
        logger.debug("Shut down host bridge (mode %s)", runtime.shutdown_mode)
        if handler_error is not None:
            raise handler_error


def _shutdown_at_exit() -> None:
    global _SAVED_STATE
    with _RUNTIME_LOCK:
        if _ACTIVE_RUNTIME is not None:
            _ACTIVE_RUNTIME.shutdown_mode = "normal"
        _SAVED_STATE = None
    shutdown()


def discard_saved_state() -> bool:
    """Drop state saved by a soft shutdown.

    :returns: ``True`` when saved state existed.
    """
    global _SAVED_STATE
    with _RUNTIME_LOCK:
        existed: bool = _SAVED_STATE is not None
        _SAVED_STATE = None
        return existed


def is_initialized() -> bool:
    with _RUNTIME_LOCK:
        return _ACTIVE_RUNTIME is not None


def get_runtime() -> BridgeRuntime:
    """Return the active session.

    :returns: Active runtime.
    :raises BridgeNotInitializedError: If the bridge is not initialized.
    """
    with _RUNTIME_LOCK:
        if _ACTIVE_RUNTIME is None:
            raise BridgeNotInitializedError("The host bridge is not initialized; call initialize() first")
        return _ACTIVE_RUNTIME


def add_shutdown_handler(handler: Callable[[], None]) -> None:
    """Register a callable run at the next shutdown.

    :param handler: Callable taking no arguments.
    """
    with _RUNTIME_LOCK:
        _SHUTDOWN_HANDLERS.append(handler)


def remove_shutdown_handler(handler: Callable[[], None]) -> bool:
    """Remove the most recent registration of a shutdown handler.

    :param handler: Previously registered callable.
    :returns: ``True`` when a registration was removed.
    """
    with _RUNTIME_LOCK:
        for index in range(len(_SHUTDOWN_HANDLERS) - 1, -1, -1):
            if _SHUTDOWN_HANDLERS[index] == handler:
                del _SHUTDOWN_HANDLERS[index]
                return True
        return False
