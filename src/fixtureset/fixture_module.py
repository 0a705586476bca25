"""Builder for the fixtures defined in one scope.

A `FixtureModule` collects fixture definitions for one defining scope (for
example a test file or a shared fixtures file) and turns them into a merged
`FixtureRegistry` together with the modules it imports. Fixtures are declared
either explicitly with `define` or by decorating a producer function, whose
positional parameter names become its dependencies.

Example:
    >>> shared = FixtureModule("tests.fixtures")
    >>>
    >>> @shared.fixture(scope=Scope.MODULE)
    ... def database():
    ...     return {"users": []}
    >>>
    >>> tests = FixtureModule("tests.test_users", imports=[shared])
    >>>
    >>> @tests.fixture()
    ... def make_user(database):
    ...     return database["users"]
    >>>
    >>> tests.registry.resolve_name("user")
    'tests.test_users.user'
"""

import inspect
from typing import Any, Callable, Iterable, Optional, Union

from fixtureset.config import DEFAULT_CONFIG, EngineConfig
from fixtureset.domain import FixtureDefinition, Scope
from fixtureset.errors import DuplicateFixtureName, InvalidFixtureDefinition
from fixtureset.registry import FixtureRegistry, merge

__all__ = ["FixtureModule", "inferred_name"]

Importable = Union["FixtureModule", FixtureRegistry]

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


def inferred_name(func: Callable) -> str:
    """Derive a fixture name from a function name, removing any 'make_' prefix.

    Example:
        >>> inferred_name(make_database)  # Returns "database"
        >>> inferred_name(user)           # Returns "user"
    """
    if func.__name__.startswith("make_"):
        return func.__name__[5:]
    return func.__name__


class FixtureModule:
    """Fixtures defined in one scope, plus the modules that scope imports.

    The module is frozen the first time its `registry` is read; defining more
    fixtures after that raises `InvalidFixtureDefinition`.
    """

    def __init__(
        self,
        name: str,
        imports: Iterable[Importable] = (),
        config: Optional[EngineConfig] = None,
    ):
        self.name = name
        self._imports = list(imports)
        self._config = config or DEFAULT_CONFIG
        self._definitions: list[FixtureDefinition] = []
        self._registry: Optional[FixtureRegistry] = None

    @property
    def definitions(self) -> list[FixtureDefinition]:
        """Local definitions, unqualified, in registration order."""
        return list(self._definitions)

    def import_fixtures(self, other: Importable):
        """Import another module's fixtures. Later imports override earlier ones."""
        self._check_not_frozen(self.name)
        self._imports.append(other)

    def add(self, definition: FixtureDefinition) -> FixtureDefinition:
        """Register a definition explicitly.

        Raises:
            DuplicateFixtureName: If a fixture with the same name is already
                defined in this module.
            InvalidFixtureDefinition: If the name is reserved or the module has
                already been frozen.
        """
        self._check_not_frozen(definition.name)
        if definition.name == self._config.context_name:
            raise InvalidFixtureDefinition(
                f"The name '{definition.name}' is reserved for the test context "
                "and may not be used for a fixture"
            )
        if any(existing.name == definition.name for existing in self._definitions):
            raise DuplicateFixtureName(definition.name, self.name)
        self._definitions.append(definition)
        return definition

    def define(
        self,
        name: str,
        producer: Callable[..., Any],
        dependency_names: Iterable[str] = (),
        scope: Scope = Scope.TEST,
        autouse: bool = False,
    ) -> FixtureDefinition:
        """Register a fixture from its parts; the qualified name is derived from this module."""
        return self.add(
            FixtureDefinition(
                name,
                f"{self.name}.{name}",
                producer,
                tuple(dependency_names),
                Scope(scope),
                autouse,
            )
        )

    def fixture(
        self,
        func: Optional[Callable] = None,
        *,
        name: Optional[str] = None,
        scope: Scope = Scope.TEST,
        autouse: bool = False,
    ) -> Callable:
        """Decorator to register a function as a fixture producer.

        Args:
            func: Set when used bare as `@module.fixture`.
            name: Optional fixture name; defaults to the function name with any
                'make_' prefix removed.
            scope: How long the produced value is cached.
            autouse: Whether every test gets the fixture without asking.

        Returns:
            The decorated function, unchanged.

        Example:
            @module.fixture(scope=Scope.MODULE)
            def make_db(context):
                return connect(context["url"])
        """

        def decorator(producer: Callable) -> Callable:
            self.define(
                name or inferred_name(producer),
                producer,
                _dependency_names(producer),
                scope,
                autouse,
            )
            return producer

        if func is not None:
            return decorator(func)
        return decorator

    @property
    def registry(self) -> FixtureRegistry:
        """The merged registry of this module; built once, on first access."""
        if self._registry is None:
            self._registry = merge(
                self._definitions,
                [_registry_of(imported) for imported in self._imports],
                self._config,
            )
        return self._registry

    def _check_not_frozen(self, what: str):
        if self._registry is not None:
            raise InvalidFixtureDefinition(
                f"Cannot change fixture module {self.name} ({what}): "
                "its registry has already been built"
            )


def _registry_of(imported: Importable) -> FixtureRegistry:
    if isinstance(imported, FixtureModule):
        return imported.registry
    return imported


def _dependency_names(producer: Callable) -> tuple[str, ...]:
    """Read dependency names from a producer's positional parameters.

    Raises:
        InvalidFixtureDefinition: If the producer has parameters that cannot be
            passed positionally.
    """
    names = []
    for parameter in inspect.signature(producer).parameters.values():
        if parameter.kind not in _POSITIONAL:
            raise InvalidFixtureDefinition(
                f"Parameter <{parameter.name}> of fixture producer <{producer.__name__}> "
                "must be positional"
            )
        names.append(parameter.name)
    return tuple(names)
