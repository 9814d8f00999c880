"""
CLI: ``replcheck run``: run a workload and write its history.
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from replcheck.cli.utils import console, err_console, fail, load_settings, make_connector, output_data, split_nodes
from replcheck.core.config import Isolation, LockingMode, WorkloadName
from replcheck.core.errors import ReplCheckError
from replcheck.execution import History, WorkloadRunner


def run(
    history_path: str = typer.Option("-", "--history", "-o", help="History file (JSON lines); '-' for stdout"),
    nodes: str | None = typer.Option(None, "--nodes", help="Comma-separated nodes"),
    workload: WorkloadName | None = typer.Option(None, "--workload", "-w"),
    isolation: Isolation | None = typer.Option(None, "--isolation", "-i"),
    read_locking: LockingMode | None = typer.Option(None, "--read-locking"),
    concurrency: int | None = typer.Option(None, "--concurrency", "-c"),
    time_limit: float | None = typer.Option(None, "--time-limit", "-t", help="Seconds"),
    abort_probability: float | None = typer.Option(None, "--abort-probability"),
    predicate_read_probability: float | None = typer.Option(None, "--predicate-read-probability"),
    inter_mop_delay: float | None = typer.Option(None, "--inter-mop-delay", help="Mean seconds between micro-ops"),
    seed: int | None = typer.Option(None, "--seed", help="Seed worker RNGs for repeatable choices"),
) -> None:
    """Run the configured workload against the cluster and record a history."""
    settings = load_settings(
        nodes=split_nodes(nodes),
        workload=workload,
        isolation=isolation,
        read_locking=read_locking,
        concurrency=concurrency,
        time_limit=time_limit,
        abort_probability=abort_probability,
        predicate_read_probability=predicate_read_probability,
        inter_mop_delay=inter_mop_delay,
    )
    # With the history on stdout, everything else goes to stderr.
    out = err_console if history_path == "-" else console
    out.print(f"[bold]{settings.test_name()}[/bold] on {', '.join(settings.nodes)}")

    sink = sys.stdout if history_path == "-" else Path(history_path).open("w", encoding="utf-8")
    try:
        runner = WorkloadRunner.from_settings(
            settings,
            make_connector(settings),
            history=History(sink),
            seed=seed,
        )
        history = runner.run()
    except ReplCheckError as e:
        fail(e)
    finally:
        if sink is not sys.stdout:
            sink.close()

    summary = history.summary()
    if history_path == "-":
        err_console.print(summary)
    else:
        output_data(summary, title=f"History written to {history_path}")
