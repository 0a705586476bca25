"""Instantiation of the fixtures requested by a single test.

`create_fixtures` resolves a request into creation order and then builds the
fixtures scope by scope. Session- and module-scoped fixtures go through their
scope's `ScopedStore`, so each is built at most once per scope instance no
matter how many tests request it concurrently. Test-scoped fixtures are built
fresh for every call into a private working map that needs no locking.
"""

import logging
from collections import ChainMap
from typing import Any, Iterable, Mapping, NamedTuple

from fixtureset.domain import FixtureDefinition, Scope
from fixtureset.errors import FixtureConstructionError
from fixtureset.graph import resolve
from fixtureset.registry import FixtureRegistry
from fixtureset.store import ScopedStore

__all__ = ["Stores", "create_fixtures"]

logger = logging.getLogger(__name__)


class Stores(NamedTuple):
    """The stores of the session and module instances a test runs in."""

    session: ScopedStore
    module: ScopedStore


def create_fixtures(
    requested: Iterable[str],
    registry: FixtureRegistry,
    stores: Stores,
    ambient_context: Any = None,
) -> dict[str, Any]:
    """Build the fixtures a test asked for.

    Autouse fixtures are added to the request. Dependencies are built as
    needed but only requested and autouse fixtures are returned.

    Args:
        requested: Local names of the fixtures the test asked for.
        registry: The merged registry of the test's defining scope.
        stores: Stores of the current session and module instances.
        ambient_context: Value injected into fixtures that depend on the
            context sentinel.

    Returns:
        A mapping from each requested or autouse fixture name to its value.

    Raises:
        FixtureNotFound: If a requested name cannot be resolved.
        FixtureConstructionError: If a producer fails. Nothing built for the
            failing fixture is cached; values cached earlier stay valid.
    """
    effective = list(dict.fromkeys([*requested, *registry.autouse_names()]))
    ordered = resolve(effective, registry)

    session_values: dict[str, Any] = {}
    for definition in _of_scope(ordered, Scope.SESSION):
        session_values[definition.qualified_name] = stores.session.get_or_create(
            definition.qualified_name,
            lambda snapshot, definition=definition: _invoke(definition, snapshot),
        )

    module_values: dict[str, Any] = {}
    for definition in _of_scope(ordered, Scope.MODULE):
        module_values[definition.qualified_name] = stores.module.get_or_create(
            definition.qualified_name,
            lambda snapshot, definition=definition: _invoke(
                definition, ChainMap(snapshot, session_values)
            ),
        )

    working: dict[str, Any] = {registry.context_name: ambient_context}
    working.update(session_values)
    working.update(module_values)
    for definition in _of_scope(ordered, Scope.TEST):
        working[definition.qualified_name] = _invoke(definition, working)

    return {name: working[registry.resolve_name(name)] for name in effective}


def _of_scope(ordered: list[FixtureDefinition], scope: Scope) -> list[FixtureDefinition]:
    return [definition for definition in ordered if definition.scope == scope]


def _invoke(definition: FixtureDefinition, values: Mapping[str, Any]) -> Any:
    """Call a definition's producer with its dependency values, in order."""
    args = [values[dependency] for dependency in definition.qualified_dependency_names or ()]
    logger.debug("Building %s fixture %s", definition.scope.label, definition.qualified_name)
    try:
        return definition.producer(*args)
    except Exception as e:
        logger.warning("Fixture %s failed to build: %r", definition.qualified_name, e)
        raise FixtureConstructionError(definition.qualified_name, e) from e
