import pytest

from fixtureset.config import EngineConfig
from fixtureset.domain import FixtureDefinition, Scope
from fixtureset.errors import (
    CyclicDependency,
    DuplicateFixtureName,
    FixtureNotFound,
    InvalidFixtureDefinition,
    ScopeMismatch,
)
from fixtureset.registry import FixtureRegistry, merge


def fixture(name, *dependency_names, module="tests", scope=Scope.TEST, autouse=False):
    return FixtureDefinition(
        name, f"{module}.{name}", lambda *args: name, dependency_names, scope, autouse
    )


@pytest.fixture
def base():
    return merge([fixture("one", module="base"), fixture("two", "one", module="base")])


def test_merge_with_no_imports_qualifies_dependencies():
    registry = merge([fixture("fixture_one"), fixture("fixture_two", "fixture_one")])

    assert len(registry) == 2
    assert registry["tests.fixture_one"].qualified_dependency_names == ()
    assert registry["tests.fixture_two"].dependency_names == ("fixture_one",)
    assert registry["tests.fixture_two"].qualified_dependency_names == ("tests.fixture_one",)
    assert not any(definition.hidden for definition in registry)


def test_local_fixture_can_depend_on_imported_fixture(base):
    registry = merge([fixture("three", "two")], [base])

    assert registry["tests.three"].qualified_dependency_names == ("base.two",)
    assert not registry["base.two"].hidden


def test_local_fixture_hides_imported_fixture_of_same_name(base):
    registry = merge([fixture("one", "one")], [base])

    assert registry["base.one"].hidden
    assert not registry["tests.one"].hidden
    assert registry.resolve_name("one") == "tests.one"
    assert registry["tests.one"].qualified_dependency_names == ("base.one",)


def test_imported_dependents_keep_their_original_dependency(base):
    registry = merge([fixture("one", "one")], [base])

    assert registry["base.two"].qualified_dependency_names == ("base.one",)


def test_local_dependents_receive_the_override(base):
    registry = merge([fixture("one", "one"), fixture("three", "one")], [base])

    assert registry["tests.three"].qualified_dependency_names == ("tests.one",)


def test_hidden_fixtures_are_not_resolvable_by_name(base):
    registry = merge([fixture("one")], [base])

    assert "base.one" in registry
    assert registry.visible()["one"].qualified_name == "tests.one"


def test_self_dependency_without_imported_fixture_is_missing():
    with pytest.raises(FixtureNotFound, match="Could not find a fixture named 'one'"):
        merge([fixture("one", "one")])


def test_duplicate_local_names_fail():
    with pytest.raises(DuplicateFixtureName, match="'one'"):
        merge([fixture("one"), fixture("one", module="elsewhere")])


def test_local_qualified_name_clashing_with_import_fails(base):
    with pytest.raises(DuplicateFixtureName, match="base.one"):
        merge([FixtureDefinition("other", "base.one", print)], [base])


def test_context_name_is_reserved():
    with pytest.raises(InvalidFixtureDefinition, match="reserved"):
        merge([fixture("context")])


def test_context_name_is_configurable():
    config = EngineConfig(context_name="ctx")
    registry = merge([fixture("context"), fixture("user", "ctx")], config=config)

    assert registry.context_name == "ctx"
    assert registry["tests.user"].qualified_dependency_names == ("ctx",)


def test_context_dependency_is_passed_through():
    registry = merge([fixture("user", "context")])

    assert registry["tests.user"].qualified_dependency_names == ("context",)


def test_missing_dependency_fails():
    with pytest.raises(FixtureNotFound, match="Could not find a fixture named 'missing'"):
        merge([fixture("test", "missing")])


def test_missing_dependency_suggests_closest_name():
    with pytest.raises(FixtureNotFound, match=r"Did you mean 'test'\?$") as error:
        merge([fixture("test", "missing")])

    assert error.value.suggestion == "test"


def test_module_scope_depending_on_test_scope_fails():
    with pytest.raises(ScopeMismatch, match="scoped to the test") as error:
        merge([fixture("mod", "test", scope=Scope.MODULE), fixture("test")])

    assert (error.value.dependent, error.value.dependency) == ("mod", "test")


def test_session_scope_depending_on_module_scope_fails():
    with pytest.raises(ScopeMismatch):
        merge([fixture("session", "mod", scope=Scope.SESSION), fixture("mod", scope=Scope.MODULE)])


def test_longer_lived_dependencies_are_allowed():
    registry = merge(
        [
            fixture("session", scope=Scope.SESSION),
            fixture("mod", "session", scope=Scope.MODULE),
            fixture("test", "mod", "session"),
        ]
    )

    assert registry["tests.test"].qualified_dependency_names == ("tests.mod", "tests.session")


def test_only_test_scope_may_depend_on_context():
    with pytest.raises(ScopeMismatch, match="'mod' depends on 'context'"):
        merge([fixture("mod", "context", scope=Scope.MODULE)])


def test_scope_mismatch_against_imported_fixture(base):
    with pytest.raises(ScopeMismatch):
        merge([fixture("mod", "one", scope=Scope.MODULE)], [base])


def test_cycles_between_local_fixtures_fail_at_merge():
    with pytest.raises(CyclicDependency) as error:
        merge([fixture("a", "b"), fixture("b", "a")])

    assert set(error.value.cycle) == {"tests.a", "tests.b"}


def test_later_import_wins_when_imports_share_a_name():
    first = merge([fixture("db", module="first")])
    second = merge([fixture("db", module="second")])

    registry = merge([fixture("user", "db")], [first, second])

    assert registry["first.db"].hidden
    assert registry.resolve_name("db") == "second.db"
    assert registry["tests.user"].qualified_dependency_names == ("second.db",)


def test_same_registry_imported_twice_is_not_a_clash(base):
    middle = merge([fixture("three", "two", module="middle")], [base])

    registry = merge([], [base, middle])

    assert sorted(registry.qualified_names()) == ["base.one", "base.two", "middle.three"]


def test_hidden_flag_survives_a_second_import_path(base):
    override = merge([fixture("one", "one", module="override")], [base])

    registry = merge([], [base, override])

    assert registry["base.one"].hidden
    assert registry.resolve_name("one") == "override.one"


def test_resolve_name_suggests_closest_name():
    registry = merge([fixture("fast"), fixture("fetch")])

    with pytest.raises(FixtureNotFound) as error:
        registry.resolve_name("fsat")

    assert error.value.suggestion in {"fast", "fetch"}
    assert "Did you mean" in str(error.value)


def test_resolve_name_on_empty_registry_has_no_suggestion():
    with pytest.raises(FixtureNotFound) as error:
        FixtureRegistry().resolve_name("anything")

    assert error.value.suggestion is None
    assert "Did you mean" not in str(error.value)


def test_autouse_names_only_include_visible_fixtures():
    base = merge([fixture("auto", module="base", autouse=True)])
    registry = merge([fixture("auto"), fixture("other", autouse=True)], [base])

    assert registry.autouse_names() == ["other"]
