"""Scoped test-fixture dependency injection.

fixtureset builds the fixtures a test asks for. Fixtures are named producer
functions that declare the fixtures they depend on, how long their value is
cached for (a single test, a test module, or the whole session), and whether
every test uses them automatically. For each test the engine resolves the
request into a creation order, builds only what is needed, shares module- and
session-scoped values between tests (safely, even when tests run
concurrently), and runs teardowns when each scope ends.

Key Features:
    - Shadowing: a fixture defined in an importing scope overrides an imported
      fixture of the same name, and may depend on the one it overrides
    - Scope validation and missing-name suggestions before any test runs
    - Create-once caching per module run and per session
    - Teardown callbacks bound to the scope instance that registered them

Basic Usage:
    >>> from fixtureset import FixtureModule, FixtureSession, Scope
    >>>
    >>> fixtures = FixtureModule("tests.test_models")
    >>>
    >>> @fixtures.fixture(scope=Scope.MODULE)
    ... def db():
    ...     return connect()
    >>>
    >>> @fixtures.fixture()
    ... def model(db):
    ...     return Model(db)
    >>>
    >>> with FixtureSession() as session:
    ...     with session.start_module(fixtures.registry) as module_run:
    ...         with module_run.setup_test(["model"]) as test:
    ...             assert test["model"].db is not None

The package consists of several modules:
    - domain: Core models (Scope, FixtureDefinition)
    - registry: Registries, shadowing and dependency qualification
    - fixture_module: Builder and decorator for declaring fixtures
    - graph: Dependency resolution and topological ordering
    - store: Concurrency-safe get-or-create caches
    - engine: Building the fixtures for one test
    - teardown: Teardown callbacks bound to scope instances
    - lifecycle: Session, module and test lifecycles for a host runner
    - errors: Exceptions raised by the package
"""

from fixtureset.config import EngineConfig
from fixtureset.domain import CONTEXT, FixtureDefinition, Scope
from fixtureset.engine import Stores, create_fixtures
from fixtureset.errors import (
    ConfigurationError,
    CyclicDependency,
    DuplicateFixtureName,
    FixtureConstructionError,
    FixtureError,
    FixtureNotFound,
    InvalidFixtureDefinition,
    NoActiveScope,
    ScopeMismatch,
    StoreClosed,
    TeardownFailed,
)
from fixtureset.fixture_module import FixtureModule
from fixtureset.graph import resolve
from fixtureset.lifecycle import FixtureSession, ModuleRun, PreparedTest
from fixtureset.registry import FixtureRegistry, merge
from fixtureset.store import ScopedStore
from fixtureset.teardown import TeardownScheduler, register_teardown

__all__ = [
    "CONTEXT",
    "ConfigurationError",
    "CyclicDependency",
    "DuplicateFixtureName",
    "EngineConfig",
    "FixtureConstructionError",
    "FixtureDefinition",
    "FixtureError",
    "FixtureModule",
    "FixtureNotFound",
    "FixtureRegistry",
    "FixtureSession",
    "InvalidFixtureDefinition",
    "ModuleRun",
    "NoActiveScope",
    "Scope",
    "ScopeMismatch",
    "ScopedStore",
    "StoreClosed",
    "Stores",
    "TeardownFailed",
    "TeardownScheduler",
    "PreparedTest",
    "create_fixtures",
    "merge",
    "register_teardown",
    "resolve",
]
