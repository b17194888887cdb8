import asyncio

import pytest

from chefherd.application import Application
from chefherd.config import Settings
from chefherd.exceptions import ValidatorNotFound
from chefherd.models import JobState
from chefherd.mutex import LOCKS_DATA_BAG
from chefherd.store import DataBagStore, MemoryDataBagStore

from _fakes import FakeChefConnection, FakeNodeQuerier


def _app(store=None):
    return Application(Settings(client_name="alice"), store=store or MemoryDataBagStore(client_name="alice"))


def test_default_store_talks_to_server():
    app = Application(Settings(server_url="https://chef.example.com", client_name="deployer", token="secret"))
    assert isinstance(app.store, DataBagStore)
    assert app.store.client_name == "deployer"


def test_chef_mutex_uses_app_services():
    app = _app()
    mutex = app.chef_mutex(environment="production")
    assert mutex.store is app.store
    assert mutex.registry is app.lock_registry
    assert mutex.testing is False

    testing_app = Application(Settings(env="test"), store=MemoryDataBagStore())
    assert testing_app.chef_mutex(environment="production").testing is True


@pytest.mark.asyncio
async def test_bootstrap_job():
    app = _app()
    querier = FakeNodeQuerier(registered={"h2": "n2"})

    job = app.bootstrap("production", ["h1", "h2"], querier, FakeChefConnection(),
                        options={"attributes": {"app": {}}})
    record = await job.wait()

    assert record.state is JobState.SUCCESS
    assert record.status == "Bootstrap finished"
    assert [(r["hostname"], r["bootstrap_type"], r["status"]) for r in record.result] == [
        ("h1", "full", "ok"),
        ("h2", "partial", "ok"),
    ]
    assert app.store.data[LOCKS_DATA_BAG] == {}
    assert app.job_manager.active() == []


@pytest.mark.asyncio
async def test_bootstrap_job_with_node_errors():
    app = _app()
    job = app.bootstrap("production", ["h1"], FakeNodeQuerier(registered={"h1": "n1"}, fail_secret={"h1"}),
                        FakeChefConnection())
    record = await job.wait()
    assert record.state is JobState.SUCCESS
    assert record.status == "Bootstrap finished with errors on h1"
    assert record.result[0]["message"] == "error in copy"


@pytest.mark.asyncio
async def test_bootstrap_job_on_locked_environment():
    app = _app()
    other = Application(Settings(client_name="bob"), store=app.store.as_client("bob"))
    assert await other.chef_mutex(environment="production").lock()

    connection = FakeChefConnection()
    record = await app.bootstrap("production", ["h1"], FakeNodeQuerier(), connection).wait()

    assert record.state is JobState.FAILURE
    assert "locked by bob" in record.error
    assert connection.calls == []
    assert app.store.data[LOCKS_DATA_BAG]["environment-production"]["client_name"] == "bob"


@pytest.mark.asyncio
async def test_shutdown_stops_jobs_and_releases_locks():
    app = _app()
    started = asyncio.Event()

    class StuckQuerier(FakeNodeQuerier):
        async def chef_run(self, hostname):
            started.set()
            await asyncio.sleep(60)

    job = app.bootstrap("production", ["h1"], StuckQuerier(registered={"h1": "n1"}), FakeChefConnection())
    await started.wait()
    assert "environment-production" in app.store.data[LOCKS_DATA_BAG]

    await app.shutdown()

    assert job.task.cancelled()
    assert app.job_manager.active() == []
    record = app.job_manager.find(job.id)
    assert record.state is JobState.FAILURE
    assert record.status == "incomplete"
    assert record.error == "terminated"
    assert app.store.data[LOCKS_DATA_BAG] == {}
    assert app.lock_registry.locks == []


@pytest.mark.asyncio
async def test_shutdown_leaves_lock_when_asked():
    app = _app()
    started = asyncio.Event()

    class StuckQuerier(FakeNodeQuerier):
        async def chef_run(self, hostname):
            started.set()
            await asyncio.sleep(60)

    app.bootstrap("production", ["h1"], StuckQuerier(registered={"h1": "n1"}), FakeChefConnection(),
                  options={"unlock_on_failure": False})
    await started.wait()
    await app.job_manager.terminate_active()

    assert "environment-production" in app.store.data[LOCKS_DATA_BAG]


@pytest.mark.asyncio
async def test_validator_failure_waits_for_partial_bootstrap():
    app = _app()
    seen = []

    class SlowQuerier(FakeNodeQuerier):
        async def chef_run(self, hostname):
            await asyncio.sleep(0.05)
            locked = "environment-production" in app.store.data[LOCKS_DATA_BAG]
            seen.append((hostname, locked))

    connection = FakeChefConnection(errors={"h1": ValidatorNotFound("/etc/chef/validation.pem")})
    job = app.bootstrap("production", ["h1", "h2"], SlowQuerier(registered={"h2": "n2"}), connection)
    record = await job.wait()

    assert seen == [("h2", True)]
    assert record.state is JobState.FAILURE
    assert "validator key" in record.error
    assert app.store.data[LOCKS_DATA_BAG] == {}
