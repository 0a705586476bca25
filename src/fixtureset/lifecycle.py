"""Session, module and test lifecycles for a host test runner.

The host drives the engine through three nested objects:

- `FixtureSession` is created once per process run and closed at the end. It
  owns the session store and the teardown scheduler; nothing about it is
  global, so tests can create as many sessions as they like.
- `ModuleRun` is created by `FixtureSession.start_module` when a test module
  starts and finished when all its tests are done. It owns the module store.
- `PreparedTest` is returned by `ModuleRun.setup_test` just before a test body
  runs. It holds the requested fixture values and the test's teardowns.

Example:
    >>> with FixtureSession() as session:
    ...     with session.start_module(module.registry) as module_run:
    ...         with module_run.setup_test(["model"], context={"name": "t1"}) as test:
    ...             run_test_body(test["model"])
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any, Iterable, Iterator, Optional

from fixtureset.config import DEFAULT_CONFIG, EngineConfig
from fixtureset.domain import Scope
from fixtureset.engine import Stores, create_fixtures
from fixtureset.errors import FixtureError, StoreClosed, TeardownFailed
from fixtureset.registry import FixtureRegistry
from fixtureset.store import ScopedStore
from fixtureset.teardown import TeardownScheduler

__all__ = ["FixtureSession", "ModuleRun", "PreparedTest"]

logger = logging.getLogger(__name__)


class FixtureSession:
    """The process-wide scope: one session store and one teardown scheduler.

    Closing the session finishes any module runs still open, runs the session
    teardowns and discards the session store. Closing happens at most once.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        scheduler: Optional[TeardownScheduler] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.scheduler = scheduler or TeardownScheduler()
        self.session_id = self.scheduler.open_scope(Scope.SESSION)
        self.store = ScopedStore(self.session_id)
        self._lock = threading.Lock()
        self._closed = False
        self._modules: list["ModuleRun"] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def start_module(self, registry: FixtureRegistry) -> "ModuleRun":
        """Signal that a test module is starting and return its run.

        Raises:
            StoreClosed: If the session has already been closed.
        """
        with self._lock:
            if self._closed:
                raise StoreClosed(self.session_id)
            module_run = ModuleRun(self, registry)
            self._modules.append(module_run)
        return module_run

    def close(self):
        """Signal the end of the session. Later calls do nothing.

        Every open module is finished and the session teardowns run even when
        some of them fail. The failures are then raised as one
        `TeardownFailed` for the session.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            modules, self._modules = self._modules, []

        errors = []
        try:
            for module_run in modules:
                try:
                    module_run.finish()
                except TeardownFailed as e:
                    errors.extend(e.errors)
            try:
                self.run_teardowns(self.session_id)
            except TeardownFailed as e:
                errors.extend(e.errors)
        finally:
            self.store.close()
            logger.debug("Closed %s", self.session_id)

        if errors:
            raise TeardownFailed(self.session_id, errors) from errors[0]

    def run_teardowns(self, scope_id: str):
        """Run the teardowns of a scope instance, honouring `strict_teardown`."""
        try:
            self.scheduler.run_scope(scope_id)
        except TeardownFailed as e:
            if self.config.strict_teardown:
                raise
            logger.warning("Ignoring %d failed teardown(s) for %s", len(e.errors), scope_id)

    def _forget(self, module_run: "ModuleRun"):
        with self._lock:
            if module_run in self._modules:
                self._modules.remove(module_run)

    def __enter__(self) -> "FixtureSession":
        return self

    def __exit__(self, *exc_info):
        self.close()


class ModuleRun:
    """One run of a test module: a fresh module store and module scope instance."""

    def __init__(self, session: FixtureSession, registry: FixtureRegistry):
        self.session = session
        self.registry = registry
        self.module_id = session.scheduler.open_scope(Scope.MODULE)
        self.store = ScopedStore(self.module_id)
        self._lock = threading.Lock()
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def setup_test(self, requested: Iterable[str] = (), context: Any = None) -> "PreparedTest":
        """Build the fixtures for one test.

        May be called concurrently from several threads for the same module.

        Args:
            requested: Local names of the fixtures the test asked for.
            context: The ambient test context passed to fixtures depending on
                the context sentinel.

        Returns:
            A `PreparedTest` holding the fixture values.

        Raises:
            FixtureConstructionError: If a producer fails. Teardowns registered
                by test-scoped fixtures built before the failure are run first.
        """
        scheduler = self.session.scheduler
        test_id = scheduler.open_scope(Scope.TEST)
        stores = Stores(self.session.store, self.store)

        with scheduler.bind(self.session.session_id, self.module_id, test_id):
            try:
                fixtures = create_fixtures(requested, self.registry, stores, context)
            except FixtureError:
                try:
                    scheduler.run_scope(test_id)
                except TeardownFailed as e:
                    logger.error("Teardown after failed setup of %s also failed: %s", test_id, e)
                raise

        return PreparedTest(self.session, test_id, fixtures)

    def finish(self):
        """Signal that every test in the module is done.

        Runs the module teardowns in registration order, then discards the
        module store even if a teardown failed. Later calls do nothing.
        """
        with self._lock:
            if self._finished:
                return
            self._finished = True

        try:
            self.session.run_teardowns(self.module_id)
        finally:
            self.store.close()
            self.session._forget(self)
            logger.debug("Finished %s", self.module_id)

    def __enter__(self) -> "ModuleRun":
        return self

    def __exit__(self, *exc_info):
        self.finish()


class PreparedTest(Mapping):
    """The fixtures built for one test, and the test's pending teardowns."""

    def __init__(self, session: FixtureSession, test_id: str, fixtures: dict[str, Any]):
        self._session = session
        self.test_id = test_id
        self.fixtures = fixtures

    def __getitem__(self, name: str) -> Any:
        return self.fixtures[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.fixtures)

    def __len__(self) -> int:
        return len(self.fixtures)

    def teardown(self):
        """Run the test-scoped teardowns. Safe to call more than once."""
        self._session.run_teardowns(self.test_id)

    def __enter__(self) -> "PreparedTest":
        return self

    def __exit__(self, *exc_info):
        self.teardown()
