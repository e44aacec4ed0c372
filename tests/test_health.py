import pytest

from conftest import FakeAdmin, FakeRuntime
from pgd.admin import PsqlAdmin
from pgd.errors import AdminCommandError
from pgd.health import HealthReporter, check_ready
from pgd.models import InstanceStatus, RetryPolicy, ServiceInstance


INST = ServiceInstance(instance_id="c1", name="svc", status=InstanceStatus.RUNNING)


def test_reachable_after_a_few_probes():
    sleeps = []
    admin = FakeAdmin(ready_after=3)
    summary = HealthReporter(admin, FakeRuntime(), RetryPolicy(5, 1.5), sleep=sleeps.append).report(INST)
    assert summary.reachable is True
    assert summary.attempts == 3
    assert summary.diagnostic is None
    assert sleeps == [1.5, 1.5]


def test_unreachable_includes_logs():
    runtime = FakeRuntime(logs_text="database system is starting up")
    summary = HealthReporter(FakeAdmin(ready_after=None), runtime, RetryPolicy(3, 0), sleep=lambda s: None).report(INST)
    assert summary.reachable is False
    assert summary.attempts == 3
    assert "database system is starting up" in summary.diagnostic


def test_never_raises_even_when_everything_fails():
    class Broken:
        def ping(self, instance):
            raise RuntimeError("socket gone")

    runtime = FakeRuntime(fail={"logs"})
    summary = HealthReporter(Broken(), runtime, RetryPolicy(2, 0), sleep=lambda s: None).report(INST)
    assert summary.reachable is False
    assert "socket gone" in summary.diagnostic
    assert "logs unavailable" in summary.diagnostic


def test_check_ready_message():
    assert check_ready(FakeAdmin(), INST) == (True, "Accepting connections")


def test_psql_admin_commands():
    runtime = FakeRuntime()
    admin = PsqlAdmin(runtime, user="postgres")
    admin.execute(INST, "SELECT 1;")
    admin.reload(INST)
    assert admin.ping(INST) is True
    assert runtime.exec_calls[0][:3] == ["psql", "-U", "postgres"]
    assert runtime.exec_calls[0][-1] == "SELECT 1;"
    assert runtime.exec_calls[1][-1] == "SELECT pg_reload_conf();"
    assert runtime.exec_calls[2] == ["pg_isready", "-U", "postgres"]


def test_psql_admin_raises_on_non_zero_exit():
    runtime = FakeRuntime()
    runtime.exec_results["psql"] = (3, 'ERROR:  unrecognized configuration parameter "nope"')
    runtime.exec_results["pg_isready"] = (2, "no response")
    admin = PsqlAdmin(runtime)
    with pytest.raises(AdminCommandError) as exc:
        admin.execute(INST, "ALTER SYSTEM SET nope = '1';")
    assert exc.value.exit_code == 3
    assert admin.ping(INST) is False
