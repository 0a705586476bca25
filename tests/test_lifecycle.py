import itertools

import pytest

from fixtureset.config import EngineConfig
from fixtureset.domain import Scope
from fixtureset.errors import (
    FixtureConstructionError,
    NoActiveScope,
    StoreClosed,
    TeardownFailed,
)
from fixtureset.fixture_module import FixtureModule
from fixtureset.lifecycle import FixtureSession, PreparedTest
from fixtureset.teardown import register_teardown


@pytest.fixture
def events():
    return []


@pytest.fixture
def fixtures(events):
    counter = itertools.count(1)
    module = FixtureModule("tests.test_models")

    @module.fixture(scope=Scope.SESSION)
    def settings():
        events.append("settings")
        register_teardown(Scope.SESSION, lambda: events.append("settings torn down"))
        return {"dsn": "sqlite://"}

    @module.fixture(scope=Scope.MODULE)
    def db(settings):
        value = next(counter)
        events.append(f"db {value}")
        register_teardown(Scope.MODULE, lambda: events.append(f"db {value} torn down"))
        return value

    @module.fixture()
    def model(db, context):
        register_teardown(Scope.TEST, lambda: events.append(f"model {context} torn down"))
        return (db, context)

    @module.fixture()
    def broken(db):
        raise RuntimeError("cannot build")

    return module


def test_end_to_end_lifecycle(fixtures, events):
    with FixtureSession() as session:
        with session.start_module(fixtures.registry) as module_run:
            for name in ("t1", "t2"):
                with module_run.setup_test(["model"], context=name) as test:
                    assert test["model"] == (1, name)
                    assert dict(test) == {"model": (1, name)}

        with session.start_module(fixtures.registry) as module_run:
            with module_run.setup_test(["model"], context="t3") as test:
                assert test["model"] == (2, "t3")

    assert events == [
        "settings",
        "db 1",
        "model t1 torn down",
        "model t2 torn down",
        "db 1 torn down",
        "db 2",
        "model t3 torn down",
        "db 2 torn down",
        "settings torn down",
    ]


def test_five_tests_share_one_module_fixture(fixtures, events):
    session = FixtureSession()
    module_run = session.start_module(fixtures.registry)

    results = [module_run.setup_test(["model"], context=index)["model"] for index in range(5)]

    assert [db for db, _ in results] == [1] * 5
    assert events.count("db 1") == 1


def test_module_finish_discards_store_and_runs_once(fixtures, events):
    session = FixtureSession()
    module_run = session.start_module(fixtures.registry)
    module_run.setup_test(["model"], context="t1")

    module_run.finish()
    module_run.finish()

    assert module_run.finished
    assert module_run.store.closed
    assert events.count("db 1 torn down") == 1
    with pytest.raises(StoreClosed):
        module_run.setup_test(["model"], context="late")


def test_module_store_is_discarded_even_when_teardown_fails(fixtures):
    session = FixtureSession()
    module_run = session.start_module(fixtures.registry)

    with session.scheduler.bind(module_id=module_run.module_id):
        register_teardown(Scope.MODULE, lambda: 1 / 0)

    with pytest.raises(TeardownFailed):
        module_run.finish()

    assert module_run.store.closed


def test_lenient_teardown_only_logs_failures(fixtures, caplog):
    session = FixtureSession(EngineConfig(strict_teardown=False))
    module_run = session.start_module(fixtures.registry)

    with session.scheduler.bind(module_id=module_run.module_id):
        register_teardown(Scope.MODULE, lambda: 1 / 0)

    module_run.finish()

    assert module_run.store.closed
    assert "Ignoring 1 failed teardown" in caplog.text


def test_failed_setup_runs_teardowns_of_fixtures_already_built(events):
    module = FixtureModule("tests")

    @module.fixture()
    def first():
        register_teardown(Scope.TEST, lambda: events.append("first torn down"))

    @module.fixture()
    def second(first):
        raise RuntimeError("cannot build")

    session = FixtureSession()
    module_run = session.start_module(module.registry)

    with pytest.raises(FixtureConstructionError, match="tests.second"):
        module_run.setup_test(["second"])

    assert events == ["first torn down"]


def test_failed_test_fixture_keeps_module_fixture_for_other_tests(fixtures, events):
    session = FixtureSession()
    module_run = session.start_module(fixtures.registry)

    with pytest.raises(FixtureConstructionError, match="broken"):
        module_run.setup_test(["broken"], context="t1")

    assert module_run.setup_test(["model"], context="t2")["model"] == (1, "t2")
    assert events.count("db 1") == 1


def test_registering_module_teardown_outside_a_test_fails():
    with pytest.raises(NoActiveScope):
        register_teardown(Scope.MODULE, lambda: None)


def test_session_close_is_idempotent_and_finishes_open_modules(fixtures, events):
    session = FixtureSession()
    module_run = session.start_module(fixtures.registry)
    module_run.setup_test(["model"], context="t1")

    session.close()
    session.close()

    assert module_run.finished
    assert session.store.closed
    assert events[-2:] == ["db 1 torn down", "settings torn down"]
    assert events.count("settings torn down") == 1
    with pytest.raises(StoreClosed):
        session.start_module(fixtures.registry)


def test_session_close_runs_every_teardown_after_a_module_teardown_fails(events):
    session = FixtureSession()
    first = session.start_module(FixtureModule("tests.first").registry)
    second = session.start_module(FixtureModule("tests.second").registry)

    with session.scheduler.bind(session_id=session.session_id):
        register_teardown(Scope.SESSION, lambda: events.append("session torn down"))
    with session.scheduler.bind(module_id=first.module_id):
        register_teardown(Scope.MODULE, lambda: 1 / 0)
    with session.scheduler.bind(module_id=second.module_id):
        register_teardown(Scope.MODULE, lambda: events.append("second torn down"))

    with pytest.raises(TeardownFailed) as excinfo:
        session.close()

    assert excinfo.value.scope_id == session.session_id
    assert isinstance(excinfo.value.__cause__, ZeroDivisionError)
    assert events == ["second torn down", "session torn down"]
    assert first.finished and second.finished
    assert first.store.closed and second.store.closed
    assert session.store.closed
    assert session.scheduler.pending(session.session_id) == 0

    session.close()
    assert events.count("session torn down") == 1


def test_autouse_fixtures_are_set_up_for_every_test():
    module = FixtureModule("tests")
    module.define("always", lambda: "used", autouse=True)

    with FixtureSession() as session:
        with session.start_module(module.registry) as module_run:
            assert dict(module_run.setup_test()) == {"always": "used"}


def test_setup_test_returns_a_prepared_test_mapping(fixtures):
    with FixtureSession() as session:
        with session.start_module(fixtures.registry) as module_run:
            with module_run.setup_test(["model"], context="t1") as test:
                assert isinstance(test, PreparedTest)
                assert test["model"] == (1, "t1")
                assert list(test) == ["model"]
