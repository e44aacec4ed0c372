import subprocess
import sys

import pytest

# Ensure project root is importable (so `import cli` / `import pgd` work without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from pgd import db
from pgd.errors import AdminCommandError, RuntimeOperationError
from pgd.host import CommandError
from pgd.models import InstanceStatus, ServiceInstance, ServiceSpec
from pgd.settings import Settings


GB = 1024 ** 3
MUTATIONS = {"pull", "create", "stop", "remove"}


class FakeRuntime:
    """In-memory ContainerRuntime. Records every call in `calls`."""

    def __init__(self, start_statuses=None, fail=None, logs_text="fake log line"):
        self.containers = {}  # id -> [name, status]
        self.calls = []
        self.start_statuses = list(start_statuses or [InstanceStatus.RUNNING])
        self.fail = set(fail or [])
        self.logs_text = logs_text
        self.exec_results = {}  # argv[0] -> (code, output)
        self.exec_calls = []
        self._next = 0

    def add(self, name, status):
        self._next += 1
        cid = f"old{self._next}"
        self.containers[cid] = [name, status]
        return cid

    def _maybe_fail(self, op):
        self.calls.append(op)
        if op in self.fail:
            raise RuntimeOperationError(op, "boom")

    @property
    def mutations(self):
        return [c for c in self.calls if c in MUTATIONS]

    def list_by_name(self, name):
        self._maybe_fail("list")
        return [
            ServiceInstance(instance_id=cid, name=n, status=st)
            for cid, (n, st) in self.containers.items()
            if n == name
        ]

    def pull(self, image):
        self._maybe_fail("pull")

    def create(self, spec, memory_limit_bytes):
        self._maybe_fail("create")
        self._next += 1
        cid = f"c{self._next}"
        self.containers[cid] = [spec.name, InstanceStatus.CREATED]
        self.last_memory_limit = memory_limit_bytes
        self.last_spec = spec
        return ServiceInstance(instance_id=cid, name=spec.name, status=InstanceStatus.CREATED)

    def stop(self, instance_id):
        self._maybe_fail("stop")
        if instance_id in self.containers:
            self.containers[instance_id][1] = InstanceStatus.EXITED

    def remove(self, instance_id):
        self._maybe_fail("remove")
        self.containers.pop(instance_id, None)

    def status(self, instance_id):
        self._maybe_fail("status")
        if instance_id not in self.containers:
            return InstanceStatus.ABSENT
        if len(self.start_statuses) > 1:
            st = self.start_statuses.pop(0)
        else:
            st = self.start_statuses[0]
        self.containers[instance_id][1] = st
        return st

    def logs(self, instance_id, tail=100):
        self._maybe_fail("logs")
        return self.logs_text

    def exec(self, instance_id, argv, user=None):
        self.exec_calls.append(list(argv))
        return self.exec_results.get(argv[0], (0, ""))


class FakeAdmin:
    """AdminChannel double. Statements containing any `fail_on` text fail."""

    def __init__(self, fail_on=(), reload_fails=False, ready_after=1):
        self.fail_on = tuple(fail_on)
        self.reload_fails = reload_fails
        self.ready_after = ready_after
        self.executed = []
        self.reloads = 0
        self.pings = 0

    def execute(self, instance, statement):
        if any(x in statement for x in self.fail_on):
            raise AdminCommandError(1, f"ERROR: bad statement {statement}")
        self.executed.append(statement)
        return ""

    def reload(self, instance):
        if self.reload_fails:
            raise AdminCommandError(2, "server closed the connection")
        self.reloads += 1

    def ping(self, instance):
        self.pings += 1
        return self.ready_after is not None and self.pings >= self.ready_after


class FakeRunner:
    """Records argv lists; exit codes come from `codes` keyed by command prefix."""

    def __init__(self, codes=None, on_run=None):
        self.codes = dict(codes or {})
        self.on_run = on_run
        self.calls = []

    def _code(self, argv):
        cmd = [a for a in argv if a != "sudo"]
        for prefix, code in self.codes.items():
            if tuple(cmd[: len(prefix)]) == prefix:
                return code
        return 0

    def __call__(self, argv, *, check=True, capture_output=False, input=None):
        self.calls.append(list(argv))
        code = self._code(argv)
        if self.on_run is not None:
            self.on_run(argv, code)
        if check and code != 0:
            raise CommandError(code, argv, "", "failed")
        return subprocess.CompletedProcess(argv, code, "", "")

    def commands(self):
        return [" ".join(a for a in c if a != "sudo") for c in self.calls]


@pytest.fixture(autouse=True)
def journal(tmp_path, monkeypatch):
    """Point the event journal at a throwaway sqlite file."""
    monkeypatch.setattr(db, "settings", Settings(db_path=str(tmp_path / "pgd-test.db")))
    db.init_db()
    return db


@pytest.fixture
def spec(tmp_path):
    return ServiceSpec(
        name="svc",
        image_reference="pgduckdb/pgduckdb:17-main",
        published_port=5432,
        volume_host_path=str(tmp_path / "data"),
        volume_container_path="/var/lib/postgresql/data",
        environment={"POSTGRES_PASSWORD": "s3cret", "MOTHERDUCK_TOKEN": "md-token"},
    )


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def fake_admin():
    return FakeAdmin()
