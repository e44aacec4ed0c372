"""Helper shell scripts written next to a deployment (status monitor, restart)."""
from __future__ import annotations

import os
from pathlib import Path

from jinja2 import Environment, StrictUndefined


MONITOR_SCRIPT = "monitor_pg.sh"
START_SCRIPT = "start_pg.sh"

_TEMPLATES = {
    MONITOR_SCRIPT: """\
#!/bin/bash
echo "=== PostgreSQL Container Status ==="
docker ps -a -f name={{ container_name }}

echo -e "\\n=== Resource Usage ==="
docker stats --no-stream {{ container_name }}

echo -e "\\n=== Recent Logs ==="
docker logs --tail {{ log_tail }} {{ container_name }}

echo -e "\\n=== Connection Test ==="
if docker exec {{ container_name }} pg_isready -U {{ db_user }}; then
  echo "PostgreSQL is accepting connections."
else
  echo "PostgreSQL is not accepting connections."
fi
""",
    START_SCRIPT: """\
#!/bin/bash
echo "Starting PostgreSQL container..."
docker start {{ container_name }}
echo "Container status:"
docker ps -a -f name={{ container_name }}
""",
}


def render_helper_scripts(container_name: str, db_user: str = "postgres", log_tail: int = 10) -> dict[str, str]:
    """Render both scripts; returns {filename: text}."""
    jinja = Environment(
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    context = {"container_name": container_name, "db_user": db_user, "log_tail": int(log_tail)}
    return {name: jinja.from_string(text).render(**context) for name, text in _TEMPLATES.items()}


def write_helper_scripts(directory: str | Path, container_name: str, db_user: str = "postgres") -> list[Path]:
    target = Path(directory).expanduser()
    target.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for name, text in render_helper_scripts(container_name, db_user).items():
        path = target / name
        path.write_text(text, encoding="utf-8")
        os.chmod(path, 0o755)
        written.append(path)
    return written
