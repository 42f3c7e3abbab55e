"""Command-line interface for cbdata."""

from __future__ import annotations

import json
from pathlib import Path

import click

from cbdata import __version__


@click.group()
@click.version_option(version=__version__, prog_name="cbdata")
def main() -> None:
    """cbdata -- retrieve and transform economic time series from formulas."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _parse_overrides(overrides: tuple[str, ...]) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in overrides:
        if "=" not in item:
            raise click.ClickException(f"Invalid --set format: {item!r}. Use key=value.")
        k, v = item.split("=", 1)
        params[k] = v
    return params


def _echo_event(evt: dict) -> None:
    ts = evt.get("ts", "")
    lvl = evt.get("level", "").upper()
    etype = evt.get("event_type", "")
    msg = evt.get("message", "")
    err = evt.get("error_code")
    line = f"[{ts}] {lvl:7s} {etype}: {msg}"
    if err:
        line += f"  ({err})"
    click.echo(line)


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@main.command("data")
@click.argument("formulas", nargs=-1, required=True)
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
@click.option("--db", "db_id", default=None, help="Default database id (e.g. FRED, CHIDATA).")
@click.option("--start", "start_date", default=None, help="First date to return.")
@click.option("--end", "end_date", default=None, help="Last date to return.")
@click.option("--freq", "frequency", default=None, help="Aggregate output to D, W, M, Q or A.")
@click.option("--ignore-nan", is_flag=True, help="Treat missing values as neutral in arithmetic.")
@click.option("--set", "overrides", multiple=True, help="Extra options as key=value.")
@click.option("--workers", "max_workers", type=int, default=None, help="Parallel workers (1=sequential).")
@click.option("--output", "output", default=None, type=click.Path(), help="Write CSV to a file.")
@click.option("--provenance", "show_provenance", is_flag=True, help="Print provenance as JSON.")
def data_cmd(
    formulas: tuple[str, ...],
    directory: str,
    db_id: str | None,
    start_date: str | None,
    end_date: str | None,
    frequency: str | None,
    ignore_nan: bool,
    overrides: tuple[str, ...],
    max_workers: int | None,
    output: str | None,
    show_provenance: bool,
) -> None:
    """Evaluate one or more FORMULAS and print the merged table as CSV."""
    from cbdata.config import context_from_config, load_config, sources_from_config
    from cbdata.expressions import Evaluator, ExpressionError
    from cbdata.logging import set_project_dir
    from cbdata.retrieval import data
    from cbdata.tables import is_table

    project_dir = Path(directory)
    params: dict[str, object] = dict(_parse_overrides(overrides))
    flags = {
        "db_id": db_id,
        "start_date": start_date,
        "end_date": end_date,
        "frequency": frequency,
        "ignore_nan": True if ignore_nan else None,
    }
    params.update({k: v for k, v in flags.items() if v is not None})
    try:
        config = load_config(project_dir)
        set_project_dir(project_dir)
        context = context_from_config(config, **params)
        evaluator = Evaluator(sources=sources_from_config(config))
        workers = max_workers if max_workers is not None else int(config.get("max_workers") or 1)
        result, provenance = data(list(formulas), evaluator=evaluator, context=context, max_workers=workers)
    except (ExpressionError, ZeroDivisionError, ValueError) as exc:
        raise click.ClickException(str(exc))

    if is_table(result):
        csv_text = result.write_csv()
    else:
        csv_text = f"{result}\n"

    if output:
        Path(output).write_text(csv_text)
        click.echo(f"Wrote {output}")
    else:
        click.echo(csv_text, nl=False)

    if show_provenance:
        click.echo(json.dumps([p.to_dict() for p in provenance], indent=2))


# ---------------------------------------------------------------------------
# Functions
# ---------------------------------------------------------------------------


@main.command("functions")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def functions_cmd(as_json: bool) -> None:
    """List the registered transformation functions."""
    from cbdata.functions import default_registry

    specs = default_registry().specs()
    if as_json:
        out = [
            {
                "name": s.name,
                "min_args": s.min_args,
                "max_args": s.max_args,
                "description": s.description,
            }
            for s in specs
        ]
        click.echo(json.dumps(out, indent=2))
        return
    for s in specs:
        click.echo(f"  {s.name.upper():10s} args: {s.arity_text():6s} {s.description}")


# ---------------------------------------------------------------------------
# Frequency
# ---------------------------------------------------------------------------


@main.command("freq")
@click.argument("csv_file", type=click.Path(exists=True))
def freq_cmd(csv_file: str) -> None:
    """Report the frequency of the dates in CSV_FILE (first column)."""
    import polars as pl

    from cbdata.tables import get_frequency, normalize_table

    try:
        table = normalize_table(pl.read_csv(csv_file, try_parse_dates=True))
    except (ValueError, pl.exceptions.PolarsError) as exc:
        raise click.ClickException(f"Cannot read dates from {csv_file}: {exc}")
    code, periods = get_frequency(table)
    if periods is None:
        click.echo(code)
    else:
        click.echo(f"{code} ({periods} periods per year)")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--batch-id", default=None, help="Show only the log of one retrieval batch.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    batch_id: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from cbdata.logging.sink import EventSink

    sink = EventSink(Path(directory))
    if batch_id:
        events = sink.read_batch_log(batch_id)[:limit]
    else:
        events = sink.read_global(level=level, event_type=event_type, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        _echo_event(evt)
