from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import asdict

import requests

from pgd import db
from pgd.admin import PsqlAdmin
from pgd.configurator import ConfigurationApplier
from pgd.docker_ops import DockerRuntime
from pgd.errors import PgdError, ReconcileError
from pgd.health import HealthReporter
from pgd.host import invoking_user
from pgd.installer import RuntimeInstaller
from pgd.logging_setup import setup_logging
from pgd.models import RetryPolicy, RunReport, ServiceSpec
from pgd.pipeline import Pipeline
from pgd.planner import pg_size, plan
from pgd.prober import probe
from pgd.reconciler import REQUIRED_CREDENTIALS, Reconciler
from pgd.scripts import MONITOR_SCRIPT, START_SCRIPT, write_helper_scripts
from pgd.settings import Settings, settings


USAGE_HINT = "Usage: POSTGRES_PASSWORD=your_secure_password MOTHERDUCK_TOKEN=your_md_token python cli.py up"


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def build_spec(cfg: Settings, environ: dict[str, str]) -> ServiceSpec:
    """The only place credentials are read from the process environment."""
    env = {k: environ[k] for k in REQUIRED_CREDENTIALS if environ.get(k)}
    return ServiceSpec(
        name=cfg.container_name,
        image_reference=cfg.image,
        published_port=cfg.port,
        volume_host_path=cfg.data_dir,
        volume_container_path=cfg.container_data_path,
        environment=env,
        restart_policy=cfg.restart_policy,
    )


def build_pipeline(cfg: Settings) -> Pipeline:
    runtime = DockerRuntime()
    admin = PsqlAdmin(runtime, user=cfg.db_user)
    return Pipeline(
        installer=RuntimeInstaller(user=invoking_user()),
        reconciler=Reconciler(runtime, RetryPolicy(cfg.ready_attempts, cfg.ready_interval_s)),
        applier=ConfigurationApplier(admin),
        reporter=HealthReporter(admin, runtime, RetryPolicy(cfg.health_attempts, cfg.health_interval_s)),
        buffer_cache_ratio=cfg.buffer_cache_ratio,
        extensions=cfg.extensions,
        query_logging=cfg.query_logging,
    )


def print_summary(report: RunReport, cfg: Settings, scripts_dir: str) -> None:
    print("=== Setup Complete ===")
    print(f"Container {report.instance.name}: {report.instance.status.value}")
    print(f"Memory limit: {pg_size(report.plan.container_memory_limit_bytes) if report.plan.container_memory_limit_bytes else 'none'}")
    if report.failed_extensions:
        print(f"WARNING: extensions not installed: {', '.join(report.failed_extensions)}")
    if report.failed_settings:
        print(f"WARNING: settings not applied: {', '.join(report.failed_settings)}")
    if report.pending_restart:
        print(f"NOTE: {', '.join(report.pending_restart)} take effect after: docker restart {report.instance.name}")
    if not report.health.reachable:
        print("WARNING: PostgreSQL is not accepting connections yet.")
        print(report.health.diagnostic or "")
        print("Try reducing the memory settings if the container keeps restarting.")

    print("\n=== Connection Information ===")
    print("Host: localhost")
    print(f"Port: {cfg.port}")
    print(f"User: {cfg.db_user}")
    print("Password: [The password you provided]")
    print("Database: postgres")

    print("\n=== Useful Commands ===")
    print(f"Monitor status: {os.path.join(scripts_dir, MONITOR_SCRIPT)}")
    print(f"Start after reboot: {os.path.join(scripts_dir, START_SCRIPT)}")
    print(f"Connect to PostgreSQL: docker exec -it {cfg.container_name} psql -U {cfg.db_user}")
    print(f"View logs: docker logs {cfg.container_name}")

    print("\n=== Note ===")
    print("You may need to log out and log back in for the docker group changes to take effect.")


def cmd_up(cfg: Settings, environ: dict[str, str], pipeline: Pipeline | None = None) -> int:
    spec = build_spec(cfg, environ)
    pipeline = pipeline or build_pipeline(cfg)
    try:
        report = pipeline.run(spec)
    except PgdError as e:
        print(f"ERROR: stage '{e.stage}' failed with exit code {e.exit_code}: {e}", file=sys.stderr)
        if e.stage == "validate":
            print(USAGE_HINT, file=sys.stderr)
        if isinstance(e, ReconcileError) and e.captured_logs:
            print("--- container logs ---", file=sys.stderr)
            print(e.captured_logs, file=sys.stderr)
        return e.exit_code

    scripts_dir = os.path.expanduser(cfg.scripts_dir)
    write_helper_scripts(scripts_dir, cfg.container_name, cfg.db_user)
    print_summary(report, cfg, scripts_dir)
    return 0


def main(argv: list[str] | None = None, environ: dict[str, str] | None = None) -> int:
    p = argparse.ArgumentParser(description="PostgreSQL + DuckDB single-host deployer")
    p.add_argument("--api", default=settings.api_url, help="Status API base URL")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("up", help="Install Docker if needed and (re)deploy the database container")
    sub.add_parser("probe", help="Print the detected host profile")
    s_plan = sub.add_parser("plan", help="Print the resource plan for this host")
    s_plan.add_argument("--buffer-cache-ratio", type=float, default=settings.buffer_cache_ratio)

    s_scripts = sub.add_parser("scripts", help="Write the monitor/start helper scripts")
    s_scripts.add_argument("--dir", default=settings.scripts_dir)

    sub.add_parser("status", help="Show container status (via the status API)")
    s_ev = sub.add_parser("events", help="Show events (via the status API)")
    s_ev.add_argument("--limit", type=int, default=20)
    s_runs = sub.add_parser("runs", help="Show deployment runs (via the status API)")
    s_runs.add_argument("--limit", type=int, default=10)

    s_serve = sub.add_parser("serve", help="Run the status API")
    s_serve.add_argument("--host", default="127.0.0.1")
    s_serve.add_argument("--port", type=int, default=8000)

    args = p.parse_args(argv)
    setup_logging(args.log_level)
    base = args.api.rstrip("/")

    if args.cmd == "up":
        db.init_db()
        return cmd_up(settings, dict(os.environ) if environ is None else environ)

    if args.cmd == "probe":
        _print(asdict(probe()))
        return 0

    if args.cmd == "plan":
        profile = probe()
        _print({"host": asdict(profile), "plan": asdict(plan(profile, args.buffer_cache_ratio))})
        return 0

    if args.cmd == "scripts":
        paths = write_helper_scripts(args.dir, settings.container_name, settings.db_user)
        _print([str(x) for x in paths])
        return 0

    if args.cmd == "status":
        r = requests.get(f"{base}/status", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "runs":
        _print(requests.get(f"{base}/runs", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "serve":
        import uvicorn

        uvicorn.run("pgd.api:app", host=args.host, port=args.port)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
