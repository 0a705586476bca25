"""Exceptions raised by the fixture engine.

Errors fall into two families. Configuration errors are detected while
definitions are registered and merged; they describe a broken fixture set and
should abort loading of the whole suite. The remaining errors happen while
fixtures are being built or torn down and only affect the current test or
scope instance.
"""

from typing import Optional, Sequence

__all__ = [
    "FixtureError",
    "ConfigurationError",
    "FixtureNotFound",
    "DuplicateFixtureName",
    "ScopeMismatch",
    "CyclicDependency",
    "InvalidFixtureDefinition",
    "FixtureConstructionError",
    "NoActiveScope",
    "StoreClosed",
    "TeardownFailed",
]


class FixtureError(Exception):
    """Base class for every error raised by this package."""

    pass


class ConfigurationError(FixtureError):
    """Raised when the declared fixtures cannot form a valid fixture set."""

    pass


class FixtureNotFound(ConfigurationError):
    """Raised when a fixture name cannot be resolved.

    Attributes:
        name: The name that was looked up.
        suggestion: The closest registered name, if any names are registered.
    """

    def __init__(self, name: str, suggestion: Optional[str] = None):
        self.name = name
        self.suggestion = suggestion
        message = f"Could not find a fixture named '{name}'."
        if suggestion is not None:
            message += f" Did you mean '{suggestion}'?"
        super().__init__(message)


class DuplicateFixtureName(ConfigurationError):
    """Raised when two fixtures are registered under the same name in one scope."""

    def __init__(self, name: str, defining_scope: Optional[str] = None):
        self.name = name
        self.defining_scope = defining_scope
        where = f" in {defining_scope}" if defining_scope else ""
        super().__init__(f"There is already a fixture named '{name}'{where}.")


class ScopeMismatch(ConfigurationError):
    """Raised when a fixture depends on a fixture with a shorter lifetime."""

    def __init__(self, dependent: str, dependency: str, dependent_scope=None, dependency_scope=None):
        self.dependent = dependent
        self.dependency = dependency
        message = f"Mis-matched scopes: '{dependent}' depends on '{dependency}'"
        if dependent_scope is not None and dependency_scope is not None:
            message += (
                f", but '{dependent}' is scoped to the {dependent_scope.label} "
                f"and '{dependency}' is scoped to the {dependency_scope.label}"
            )
        super().__init__(message)


class CyclicDependency(ConfigurationError):
    """Raised when fixture dependencies form a cycle.

    Attributes:
        cycle: Qualified names along the cycle, with the first member repeated
            at the end.
    """

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(
            f"Cyclic dependency between fixtures: {' -> '.join(self.cycle)}"
        )


class InvalidFixtureDefinition(ConfigurationError):
    """Raised when a fixture definition is malformed or registered too late."""

    pass


class FixtureConstructionError(FixtureError):
    """Raised when a fixture's producer fails.

    Attributes:
        fixture: Qualified name of the fixture whose producer failed.
        cause: The exception raised by the producer.
    """

    def __init__(self, fixture: str, cause: BaseException):
        self.fixture = fixture
        self.cause = cause
        super().__init__(
            f"Fixture '{fixture}' failed to build: {type(cause).__name__}: {cause}"
        )


class NoActiveScope(FixtureError):
    """Raised when a teardown is registered outside any live scope instance."""

    def __init__(self, scope):
        self.scope = scope
        super().__init__(
            f"Cannot register a {scope.label}-scoped teardown: "
            f"no {scope.label} scope is active in this context"
        )


class StoreClosed(FixtureError):
    """Raised when a scoped store is used after its scope has ended."""

    def __init__(self, store: str):
        self.store = store
        super().__init__(f"Fixture store '{store}' has already been closed")


class TeardownFailed(FixtureError):
    """Raised after a scope's teardown callbacks ran and at least one failed.

    Attributes:
        scope_id: The scope instance being torn down.
        errors: Exceptions raised by the callbacks, in the order they ran.
    """

    def __init__(self, scope_id: str, errors: Sequence[BaseException]):
        self.scope_id = scope_id
        self.errors = list(errors)
        super().__init__(
            f"{len(self.errors)} teardown callback(s) failed for scope {scope_id}: "
            + "; ".join(f"{type(e).__name__}: {e}" for e in self.errors)
        )
