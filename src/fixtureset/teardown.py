"""Teardown scheduling bound to scope lifetimes.

Fixture producers register cleanup callbacks against a scope. The scheduler
keeps one list of callbacks per live scope instance and runs a list when the
host reports that the instance has finished.

Which instance a registration belongs to is decided by the calling execution
context: the host binds the active session, module and test instances with
`TeardownScheduler.bind` while fixtures are being built. The binding lives in
a `ContextVar`, so concurrent tests on other threads or asyncio tasks never
see each other's instances.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Optional

from fixtureset.domain import Scope
from fixtureset.errors import NoActiveScope, TeardownFailed

__all__ = ["TeardownScheduler", "register_teardown"]

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]


@dataclass(frozen=True)
class _Binding:
    scheduler: "TeardownScheduler"
    scope_ids: Mapping[Scope, str]


_active_binding: ContextVar[Optional[_Binding]] = ContextVar(
    "fixtureset_active_scopes", default=None
)


class TeardownScheduler:
    """Collects teardown callbacks per scope instance and runs them on request."""

    def __init__(self):
        self._lock = threading.Lock()
        self._teardowns: dict[str, list[Callback]] = {}

    def open_scope(self, scope: Scope) -> str:
        """Allocate an id for a new scope instance with no callbacks yet."""
        scope_id = f"{scope.label}-{uuid.uuid4().hex}"
        with self._lock:
            self._teardowns[scope_id] = []
        logger.debug("Opened %s", scope_id)
        return scope_id

    @contextmanager
    def bind(
        self,
        session_id: Optional[str] = None,
        module_id: Optional[str] = None,
        test_id: Optional[str] = None,
    ) -> Iterator[None]:
        """Make the given scope instances active in the current execution context.

        The previous binding is restored on exit.
        """
        scope_ids = {
            scope: scope_id
            for scope, scope_id in (
                (Scope.SESSION, session_id),
                (Scope.MODULE, module_id),
                (Scope.TEST, test_id),
            )
            if scope_id is not None
        }
        token = _active_binding.set(_Binding(self, MappingProxyType(scope_ids)))
        try:
            yield
        finally:
            _active_binding.reset(token)

    def register(self, scope: Scope, callback: Callback):
        """Register `callback` to run when the active instance of `scope` ends.

        Test-scoped callbacks are only recorded. The host runs them when its
        test finishes.

        Raises:
            NoActiveScope: If no live instance of `scope` is bound to the current
                context.
        """
        binding = _active_binding.get()
        scope_id = None
        if binding is not None and binding.scheduler is self:
            scope_id = binding.scope_ids.get(scope)

        with self._lock:
            if scope_id is None or scope_id not in self._teardowns:
                raise NoActiveScope(scope)
            self._teardowns[scope_id].append(callback)

    def pending(self, scope_id: str) -> int:
        with self._lock:
            return len(self._teardowns.get(scope_id, ()))

    def run_scope(self, scope_id: str):
        """Run and forget the callbacks registered for a scope instance.

        Callbacks run synchronously in registration order. A failing callback
        does not stop the rest from running.

        Raises:
            TeardownFailed: After all callbacks ran, if any of them raised.
        """
        with self._lock:
            callbacks = self._teardowns.pop(scope_id, None)
        if callbacks is None:
            return

        logger.debug("Running %d teardown(s) for %s", len(callbacks), scope_id)
        errors = []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.exception("Teardown %r failed for %s", callback, scope_id)
                errors.append(e)

        if errors:
            raise TeardownFailed(scope_id, errors) from errors[0]


def register_teardown(scope: Scope, callback: Callback):
    """Register a teardown with whichever scheduler is bound to this context.

    This is the entry point for producer code, which has no reference to the
    scheduler.

    Raises:
        NoActiveScope: If nothing is bound, or `scope` has no live instance.
    """
    binding = _active_binding.get()
    if binding is None:
        raise NoActiveScope(scope)
    binding.scheduler.register(scope, callback)
