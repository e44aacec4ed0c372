"""PG deployer (pgd).

Single-host installer/reconciler for a PostgreSQL + DuckDB container:
 - detects the host (OS family, architecture, memory)
 - makes sure Docker is installed and running
 - sizes memory limits from the host
 - replaces the named container and waits for it to run
 - applies database settings through psql and reports health

Everything runs sequentially in one process; see pgd.pipeline.
"""
