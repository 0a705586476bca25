"""Fixture registries and the merging of local and imported fixtures.

A registry is an immutable snapshot of fixture definitions keyed by qualified
name. Registries are produced by `merge`, which combines the fixtures defined
in one scope with the registries that scope imports:

- a local fixture shadows any imported fixture of the same name, which is
  marked hidden and can then only be reached by qualified name;
- each local dependency name is qualified against the visible fixtures, except
  a dependency on the fixture's own name, which resolves to the fixture it
  overrides;
- a fixture may not depend on a fixture with a shorter lifetime.

All of these checks happen before any test runs, so a broken fixture set is
reported while the suite is still loading.
"""

import logging
from dataclasses import replace
from typing import Iterable, Iterator, Mapping, Optional

from fixtureset.config import DEFAULT_CONFIG, EngineConfig
from fixtureset.domain import CONTEXT, FixtureDefinition, Scope
from fixtureset.errors import (
    DuplicateFixtureName,
    FixtureNotFound,
    InvalidFixtureDefinition,
    ScopeMismatch,
)
from fixtureset.graph import topological_order
from fixtureset.similarity import closest_name

__all__ = ["FixtureRegistry", "merge"]

logger = logging.getLogger(__name__)


class FixtureRegistry:
    """Immutable collection of qualified fixture definitions.

    Hidden definitions are kept so that overriding fixtures can still depend on
    them, but they are never returned by name-based lookups.

    Example:
        >>> registry = merge([FixtureDefinition("db", "tests.db", make_db)])
        >>> registry.resolve_name("db")
        'tests.db'
    """

    def __init__(
        self,
        definitions: Optional[Mapping[str, FixtureDefinition]] = None,
        context_name: str = CONTEXT,
    ):
        self._definitions = dict(definitions or {})
        self.context_name = context_name
        self._visible = {
            definition.name: definition
            for definition in self._definitions.values()
            if not definition.hidden
        }

    def __getitem__(self, qualified_name: str) -> FixtureDefinition:
        return self._definitions[qualified_name]

    def __contains__(self, qualified_name: str) -> bool:
        return qualified_name in self._definitions

    def __iter__(self) -> Iterator[FixtureDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def __repr__(self) -> str:
        return f"FixtureRegistry({sorted(self._definitions)!r})"

    def qualified_names(self) -> list[str]:
        return list(self._definitions)

    def visible(self) -> dict[str, FixtureDefinition]:
        """Return the non-hidden definitions keyed by local name."""
        return dict(self._visible)

    def autouse_names(self) -> list[str]:
        """Return the local names of visible autouse fixtures, in registration order."""
        return [name for name, definition in self._visible.items() if definition.autouse]

    def resolve_name(self, name: str) -> str:
        """Resolve a local fixture name to its qualified name.

        Args:
            name: The local name to look up among the visible fixtures.

        Returns:
            The qualified name of the visible fixture called `name`.

        Raises:
            FixtureNotFound: If no visible fixture has that name. The error
                carries the closest visible name as a suggestion.
        """
        definition = self._visible.get(name)
        if definition is None:
            raise FixtureNotFound(name, closest_name(name, self._visible))
        return definition.qualified_name


def merge(
    local: Iterable[FixtureDefinition],
    imported: Iterable[FixtureRegistry] = (),
    config: Optional[EngineConfig] = None,
) -> FixtureRegistry:
    """Merge locally defined fixtures with the registries they import.

    Args:
        local: Fixtures defined in the current scope. Their dependency names
            are qualified during the merge.
        imported: Registries imported by the current scope, in import order.
            When two of them expose the same name, the later one wins.
        config: Engine settings; only `context_name` is used here.

    Returns:
        A new registry holding the imported fixtures (with shadowed ones
        hidden) and the qualified local fixtures.

    Raises:
        DuplicateFixtureName: If two local fixtures share a name, or a qualified
            name is defined twice.
        InvalidFixtureDefinition: If a fixture uses the reserved context name.
        FixtureNotFound: If a dependency cannot be resolved.
        ScopeMismatch: If a fixture depends on one with a shorter lifetime.
        CyclicDependency: If the local fixtures depend on each other in a cycle.
    """
    config = config or DEFAULT_CONFIG
    local = list(local)
    _check_local_definitions(local, config)

    combined = _combine_imports(list(imported))
    clashes = [definition.qualified_name for definition in local if definition.qualified_name in combined]
    if clashes:
        raise DuplicateFixtureName(clashes[0])

    visible_imported = {
        definition.name: definition for definition in combined.values() if not definition.hidden
    }
    all_visible = {**visible_imported, **{definition.name: definition for definition in local}}

    resolved_locals = [
        _qualify(definition, all_visible, visible_imported, config) for definition in local
    ]

    local_names = {definition.name for definition in local}
    definitions = {
        qualified_name: (
            replace(definition, hidden=True)
            if not definition.hidden and definition.name in local_names
            else definition
        )
        for qualified_name, definition in combined.items()
    }
    definitions.update((definition.qualified_name, definition) for definition in resolved_locals)

    topological_order(
        {
            definition.qualified_name: [
                dependency
                for dependency in definition.qualified_dependency_names
                if dependency != config.context_name
            ]
            for definition in resolved_locals
        }
    )

    logger.debug(
        "Merged %d local and %d imported fixtures (%d hidden)",
        len(resolved_locals),
        len(combined),
        sum(1 for definition in definitions.values() if definition.hidden),
    )
    return FixtureRegistry(definitions, config.context_name)


def _check_local_definitions(local: list[FixtureDefinition], config: EngineConfig):
    seen_names: set[str] = set()
    seen_qualified: set[str] = set()
    for definition in local:
        if definition.name == config.context_name:
            raise InvalidFixtureDefinition(
                f"The name '{config.context_name}' is reserved for the test context "
                f"and may not be used for a fixture ({definition.qualified_name})"
            )
        if definition.name in seen_names:
            raise DuplicateFixtureName(definition.name)
        if definition.qualified_name in seen_qualified:
            raise DuplicateFixtureName(definition.qualified_name)
        seen_names.add(definition.name)
        seen_qualified.add(definition.qualified_name)


def _combine_imports(imported: list[FixtureRegistry]) -> dict[str, FixtureDefinition]:
    """Combine imported registries into one mapping keyed by qualified name.

    The same definition may arrive through several imports; it is hidden if any
    of them hides it. Among visible definitions sharing a name, the one from
    the last import stays visible.
    """
    combined: dict[str, FixtureDefinition] = {}
    for registry in imported:
        for definition in registry:
            existing = combined.get(definition.qualified_name)
            if existing is None:
                combined[definition.qualified_name] = definition
                continue
            if replace(existing, hidden=False) != replace(definition, hidden=False):
                raise DuplicateFixtureName(definition.qualified_name)
            if definition.hidden and not existing.hidden:
                combined[definition.qualified_name] = definition

    visible_by_name: dict[str, str] = {}
    for registry in imported:
        for definition in registry:
            if not combined[definition.qualified_name].hidden:
                visible_by_name[definition.name] = definition.qualified_name

    return {
        qualified_name: (
            replace(definition, hidden=True)
            if not definition.hidden and visible_by_name[definition.name] != qualified_name
            else definition
        )
        for qualified_name, definition in combined.items()
    }


def _qualify(
    definition: FixtureDefinition,
    all_visible: dict[str, FixtureDefinition],
    visible_imported: dict[str, FixtureDefinition],
    config: EngineConfig,
) -> FixtureDefinition:
    qualified_dependencies = []
    for dependency_name in definition.dependency_names:
        if dependency_name == config.context_name:
            _validate_scopes(definition, dependency_name, Scope.TEST)
            qualified_dependencies.append(dependency_name)
            continue

        # A fixture naming itself as a dependency forwards to the fixture it overrides.
        candidates = visible_imported if dependency_name == definition.name else all_visible
        dependency = candidates.get(dependency_name)
        if dependency is None:
            raise FixtureNotFound(
                dependency_name,
                closest_name(dependency_name, (name for name in all_visible if name != dependency_name)),
            )

        _validate_scopes(definition, dependency.name, dependency.scope)
        qualified_dependencies.append(dependency.qualified_name)

    return replace(
        definition,
        hidden=False,
        qualified_dependency_names=tuple(qualified_dependencies),
    )


def _validate_scopes(definition: FixtureDefinition, dependency_name: str, dependency_scope: Scope):
    if dependency_scope < definition.scope:
        raise ScopeMismatch(definition.name, dependency_name, definition.scope, dependency_scope)
