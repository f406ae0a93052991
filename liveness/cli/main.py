"""
liveness.cli.main
-----------------

Inspect and simulate the liveness protocol from the command line.

Examples
--------
# Required thresholds for 1..20 owners
python -m liveness.cli threshold 20

# Which owners of a scenario can be removed, and with which hints
python -m liveness.cli plan scenarios/council.json

# Run the removal batch and print the resulting Safe, as JSON
python -m liveness.cli simulate scenarios/council.json --json --events events.jsonl
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import logging as llog
from ..config import get_config, summary
from ..errors import LivenessError, error_to_fields
from ..module import required_threshold
from ..scenario import Deployment, Scenario, deploy, load_scenario, owner_rows, removal_targets
from ..state.events import EventSink, InMemoryEventSink, JsonlEventSink
from ..types import Address, to_hex
from ..version import __version__, git_describe

app = typer.Typer(
    name="liveness",
    add_completion=False,
    no_args_is_help=True,
    help="Owner liveness and inactive-owner removal for Safe multisigs.",
)

# -------------------- utils --------------------


def _echo_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, sort_keys=True))


def _fail(code: str, message: str, json_out: bool, *, fields: Optional[Dict[str, Any]] = None) -> None:
    if json_out:
        _echo_json({"ok": False, **(fields or {"status": "ERROR", "error": {"code": code, "message": message}})})
    else:
        Console(stderr=True).print(f"[red]{code}[/red]: {message}")
    raise typer.Exit(1)


def _fail_with(err: LivenessError, json_out: bool) -> None:
    _fail(err.code, err.message, json_out, fields=error_to_fields(err))


def _load(path: Path, json_out: bool, events: Optional[Path] = None) -> Tuple[Scenario, Deployment, EventSink]:
    sink: EventSink = JsonlEventSink(str(events)) if events is not None else InMemoryEventSink()
    try:
        sc = load_scenario(path)
        dep = deploy(sc, sink=sink)
    except LivenessError as e:
        sink.close()
        _fail_with(e, json_out)
    return sc, dep, sink


def _plan(dep: Deployment, sc: Scenario, json_out: bool) -> Tuple[List[Address], List[Address]]:
    targets = removal_targets(dep, sc)
    try:
        hints = dep.module.plan_removal(targets)
    except ValueError as e:
        _fail("PLAN", str(e), json_out)
    return targets, hints


def _summary_line(dep: Deployment) -> str:
    m = dep.module
    return (
        f"owners={len(dep.safe.get_owners())} threshold={dep.safe.get_threshold()} "
        f"interval={m.liveness_interval}s min_owners={m.min_owners} "
        f"fallback={dep.name_of(m.fallback_owner)} now={dep.host.now()}"
    )


def _owners_table(dep: Deployment, title: str) -> Table:
    t = Table(title=title, box=box.SIMPLE)
    t.add_column("Owner")
    t.add_column("Address")
    t.add_column("Last live", justify="right")
    t.add_column("Idle (s)", justify="right")
    t.add_column("Removable", justify="center")
    for row in owner_rows(dep):
        t.add_row(
            row["name"],
            row["address"],
            str(row["last_live"]),
            str(row["idle"]),
            "[green]yes[/green]" if row["removable"] else "no",
        )
    return t


def _safe_state(dep: Deployment) -> Dict[str, Any]:
    return {
        "owners": dep.owner_names(),
        "threshold": dep.safe.get_threshold(),
        "transferred_to_fallback": dep.module.ownership_transferred_to_fallback,
    }


# -------------------- callback --------------------


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"liveness {__version__} ({git_describe()})")
        raise typer.Exit(0)


@app.callback()
def _meta(
    version: bool = typer.Option(
        False, "--version", "-V", help="Print version and exit", is_eager=True, callback=_print_version
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level (default: WARNING, or LIVENESS_LOG_LEVEL)"
    ),
    log_json: Optional[bool] = typer.Option(None, "--log-json/--log-text", help="Log format on stderr"),
) -> None:
    try:
        cfg = get_config()
    except LivenessError as e:
        _fail_with(e, False)
    level = log_level or (cfg.logging.level if os.environ.get("LIVENESS_LOG_LEVEL") else "WARNING")
    llog.configure(json=log_json if log_json is not None else cfg.logging.json, level=level)


# -------------------- commands --------------------


@app.command("threshold")
def threshold_cmd(
    owners: int = typer.Argument(..., min=1, help="Largest owner count to tabulate"),
    percentage: int = typer.Option(75, "--percentage", "-p", min=1, max=100, help="Threshold percentage"),
    json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
) -> None:
    """Required threshold for every owner count from 1 to OWNERS."""
    rows = [{"owners": n, "threshold": required_threshold(n, percentage)} for n in range(1, owners + 1)]
    if json_out:
        _echo_json({"percentage": percentage, "thresholds": rows})
        return
    t = Table(title=f"Required threshold ({percentage}%)", box=box.SIMPLE)
    t.add_column("Owners", justify="right")
    t.add_column("Threshold", justify="right")
    for r in rows:
        t.add_row(str(r["owners"]), str(r["threshold"]))
    Console().print(t)


@app.command("plan")
def plan_cmd(
    scenario: Path = typer.Argument(..., exists=True, dir_okay=False, help="Scenario JSON file"),
    json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
) -> None:
    """List removable owners and the predecessor hints a removal batch needs."""
    sc, dep, sink = _load(scenario, json_out)
    try:
        targets, hints = _plan(dep, sc, json_out)
        plan = [
            {"owner": dep.name_of(t), "address": to_hex(t), "previous_owner": to_hex(h)}
            for t, h in zip(targets, hints)
        ]
        if json_out:
            _echo_json({"ok": True, "owners": list(owner_rows(dep)), "plan": plan, "safe": _safe_state(dep)})
            return

        console = Console()
        console.print(Panel(_summary_line(dep), title="Safe", expand=False))
        console.print(_owners_table(dep, "Owners"))
        p = Table(title="Removal batch", box=box.SIMPLE)
        p.add_column("#", justify="right")
        p.add_column("Owner")
        p.add_column("Previous owner hint")
        for i, step in enumerate(plan):
            p.add_row(str(i), step["owner"], step["previous_owner"])
        console.print(p)
    finally:
        sink.close()


@app.command("simulate")
def simulate_cmd(
    scenario: Path = typer.Argument(..., exists=True, dir_okay=False, help="Scenario JSON file"),
    json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    events: Optional[Path] = typer.Option(None, "--events", help="Append committed events to this JSONL file"),
) -> None:
    """Run the removal batch against the scenario and report the outcome."""
    sc, dep, sink = _load(scenario, json_out, events)
    try:
        targets, hints = _plan(dep, sc, json_out)
        before = _safe_state(dep)
        try:
            dep.module.remove_owners(hints, targets)
        except LivenessError as e:
            _fail_with(e, json_out)

        removed = [dep.name_of(t) for t in targets]
        after = _safe_state(dep)
        if json_out:
            _echo_json({"ok": True, "status": "OK", "removed": removed, "before": before, "after": after})
            return

        console = Console()
        console.print(Panel(_summary_line(dep), title="Safe after removal", expand=False))
        console.print(f"removed: {', '.join(removed) if removed else '-'}")
        console.print(_owners_table(dep, "Owners"))
    finally:
        sink.close()


@app.command("config")
def config_cmd(json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON")) -> None:
    """Show the configuration read from the environment."""
    cfg = get_config()
    if json_out:
        _echo_json(cfg.to_dict())
    else:
        typer.echo(summary(cfg))


def main(argv: Optional[List[str]] = None) -> int:
    app(args=argv)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
