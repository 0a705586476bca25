"""Domain models used throughout the engine."""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional

__all__ = ["CONTEXT", "Scope", "FixtureDefinition"]


CONTEXT = "context"
"""Default name of the dependency that injects the ambient test context."""


class Scope(IntEnum):
    """Lifetime class of a fixture, ordered by how long its value is cached.

    A fixture may only depend on fixtures whose scope compares greater than
    or equal to its own.
    """

    TEST = 1
    MODULE = 2
    SESSION = 3

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class FixtureDefinition:
    """A declared fixture.

    Attributes:
        name: Local name the fixture is requested by.
        qualified_name: Globally unique name, the defining scope joined with `name`.
        producer: Callable invoked with the dependency values, positionally and in
            the order of `dependency_names`.
        dependency_names: Local names of the fixtures this one depends on. May
            contain the context sentinel.
        scope: How long the produced value is cached for.
        autouse: Whether the fixture is added to every test's request.
        hidden: True once the fixture has been shadowed by a same-named fixture
            in an importing scope.
        qualified_dependency_names: `dependency_names` resolved to qualified names,
            or None until the definition has been merged into a registry.
    """

    name: str
    qualified_name: str
    producer: Callable[..., Any]
    dependency_names: tuple[str, ...] = ()
    scope: Scope = Scope.TEST
    autouse: bool = False
    hidden: bool = False
    qualified_dependency_names: Optional[tuple[str, ...]] = None

    @property
    def is_qualified(self) -> bool:
        return self.qualified_dependency_names is not None
