from fastapi.testclient import TestClient

from conftest import FakeAdmin, FakeRuntime
from pgd import api, db
from pgd.models import InstanceStatus
from pgd.settings import settings


def _client(runtime, admin):
    api.app.dependency_overrides[api.get_runtime] = lambda: runtime
    api.app.dependency_overrides[api.get_admin] = lambda: admin
    return TestClient(api.app)


def teardown_function():
    api.app.dependency_overrides.clear()


def test_health():
    r = TestClient(api.app).get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}


def test_status_running_and_ready():
    runtime = FakeRuntime()
    cid = runtime.add(settings.container_name, InstanceStatus.RUNNING)
    r = _client(runtime, FakeAdmin()).get("/status")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "running"
    assert body["instance_id"] == cid
    assert body["ready"] is True


def test_status_absent():
    r = _client(FakeRuntime(), FakeAdmin()).get("/status")
    assert r.json()["status"] == "absent"
    assert r.json()["ready"] is False


def test_status_restarting_is_not_probed():
    runtime = FakeRuntime()
    runtime.add(settings.container_name, InstanceStatus.RESTARTING)
    admin = FakeAdmin()
    r = _client(runtime, admin).get("/status")
    assert r.json()["ready"] is False
    assert admin.pings == 0


def test_status_runtime_down_is_503():
    r = _client(FakeRuntime(fail={"list"}), FakeAdmin()).get("/status")
    assert r.status_code == 503


def test_events_and_runs():
    run_id = db.start_run("svc", "img:1")
    db.log_event("INFO", "hello", service_name="svc", stage="probe")
    db.finish_run(run_id, "succeeded", 0, stage="report")

    client = TestClient(api.app)
    events = client.get("/events", params={"limit": 5}).json()
    assert events[0]["message"] == "hello"
    assert events[0]["stage"] == "probe"

    runs = client.get("/runs").json()
    assert runs[0]["id"] == run_id
    assert runs[0]["state"] == "succeeded"

    assert client.get("/events", params={"limit": 0}).status_code == 422
