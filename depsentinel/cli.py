"""CLI entry point: depsentinel.

Subcommands:
    depsentinel scan --factory pkg.mod:make   # Run one scan with console progress
    depsentinel show [--json]                 # Print the persisted analysis
    depsentinel clear                         # Drop the persisted analysis
    depsentinel serve --factory pkg.mod:make  # HTTP API with start-up/periodic scans
"""

from __future__ import annotations

import asyncio
import json
import sys

import click
from pydantic import TypeAdapter

from depsentinel.core.config import ScanSettings
from depsentinel.core.database import create_all, create_engine, create_session_factory
from depsentinel.core.logging import setup_logging
from depsentinel.dao.snapshot_dao import SnapshotDAO
from depsentinel.engines.scan_coordinator.models import (
    AnalysisResult,
    ScanCompletion,
    ScanOutcome,
    ScanStatus,
    ScanTrigger,
)
from depsentinel.engines.scan_coordinator.store import DatabaseSnapshotStore
from depsentinel.runtime import build_runtime, load_factory
from depsentinel.services.snapshot_service import SnapshotService

_result_adapter = TypeAdapter(AnalysisResult)

_EXIT_CODES = {
    ScanStatus.COMPLETED: 0,
    ScanStatus.EMPTY: 0,
    ScanStatus.SKIPPED_BUSY: 3,
    ScanStatus.ABORTED_OFFLINE: 2,
    ScanStatus.ABORTED_CACHE: 2,
    ScanStatus.FAILED: 1,
}


class ConsoleObserver:
    """Writes scan events to stderr so stdout stays free for ``--json``."""

    def __init__(self) -> None:
        self._last: tuple[int, str] | None = None

    def progress(self, percent: int, label: str) -> None:
        if (percent, label) == self._last:
            return
        self._last = (percent, label)
        click.echo(f"[{percent:3d}%] {label}", err=True)

    def loading(self, is_loading: bool, text: str | None = None) -> None:
        if is_loading and text:
            click.echo(text, err=True)

    def offline_status(self, mode: str, message: str) -> None:
        click.echo(f"offline ({mode}): {message}", err=True)

    def empty_state(self, previous: AnalysisResult | None, cache_age_minutes: int) -> None:
        click.echo("No dependencies found in workspace", err=True)
        if previous is not None:
            click.echo(f"Showing previous result ({cache_age_minutes} min old)", err=True)

    def scan_completed(self, completion: ScanCompletion) -> None:
        source = (
            f"cached, {completion.cache_age_minutes} min old" if completion.cached else "live"
        )
        click.echo(f"{completion.message} [{source}]", err=True)

    def error(self, message: str, actions: list[str]) -> None:
        click.echo(f"Error: {message}", err=True)
        if actions:
            click.echo(f"  next steps: {', '.join(actions)}", err=True)

    def cache_status_changed(self, enabled: bool) -> None:
        click.echo(f"cache {'enabled' if enabled else 'disabled'}", err=True)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """DepSentinel — dependency health scan orchestration."""
    setup_logging(level="DEBUG" if verbose else None)


@main.command()
@click.option(
    "--factory",
    envvar="DEPSENTINEL_FACTORY",
    required=True,
    help="module:callable returning the scan collaborators",
)
@click.option("--bypass-cache", is_flag=True, help="Fetch live data even if cached")
@click.option("--json", "as_json", is_flag=True, help="Print the outcome as JSON")
def scan(factory: str, bypass_cache: bool, as_json: bool) -> None:
    """Run one scan of the current workspace."""
    try:
        make = load_factory(factory)
    except (ImportError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    settings = ScanSettings.from_env()
    outcome = asyncio.run(_scan(make, settings, bypass_cache or None))

    if as_json:
        click.echo(json.dumps(_outcome_to_dict(outcome), indent=2, default=str))
    elif outcome.status is ScanStatus.SKIPPED_BUSY:
        click.echo("A scan is already in progress", err=True)
    sys.exit(_EXIT_CODES[outcome.status])


async def _scan(make, settings: ScanSettings, bypass_cache: bool | None) -> ScanOutcome:
    runtime = build_runtime(make(settings), settings, listeners=[ConsoleObserver()])
    try:
        await create_all(runtime.engine)
        return await runtime.coordinator.run(ScanTrigger.COMMAND, bypass_cache=bypass_cache)
    finally:
        await runtime.close()


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print the stored result as JSON")
def show(as_json: bool) -> None:
    """Print the persisted analysis for this project."""
    settings = ScanSettings.from_env()
    result = asyncio.run(_load(settings))
    if result is None:
        click.echo(f"No analysis stored for {settings.project_key}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(_result_adapter.dump_json(result, indent=2).decode())
        return

    summary = result.summary
    click.echo(f"Project: {settings.project_key}")
    click.echo(f"Scanned at: {result.timestamp.isoformat()}")
    click.echo(f"Health score: {result.health_score.overall:.1f}")
    click.echo(
        f"Dependencies: {summary.total_dependencies} "
        f"({summary.analyzed_dependencies} analyzed, {summary.failed_dependencies} failed)"
    )
    click.echo(
        f"Issues: {summary.critical_issues} critical, {summary.high_issues} high, "
        f"{summary.warnings} warnings, {summary.healthy} healthy"
    )


async def _load(settings: ScanSettings) -> AnalysisResult | None:
    engine = create_engine(settings.database_url)
    try:
        await create_all(engine)
        store = DatabaseSnapshotStore(
            create_session_factory(engine), SnapshotService(SnapshotDAO())
        )
        return await store.load(settings.project_key)
    finally:
        await engine.dispose()


@main.command()
def clear() -> None:
    """Drop the persisted analysis so the next scan starts from scratch."""
    settings = ScanSettings.from_env()
    removed = asyncio.run(_clear(settings))
    if removed:
        click.echo(f"Cleared stored analysis for {settings.project_key}")
    else:
        click.echo(f"No analysis stored for {settings.project_key}")


async def _clear(settings: ScanSettings) -> bool:
    engine = create_engine(settings.database_url)
    try:
        await create_all(engine)
        store = DatabaseSnapshotStore(
            create_session_factory(engine), SnapshotService(SnapshotDAO())
        )
        return await store.clear(settings.project_key)
    finally:
        await engine.dispose()


@main.command()
@click.option(
    "--factory",
    envvar="DEPSENTINEL_FACTORY",
    required=True,
    help="module:callable returning the scan collaborators",
)
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(factory: str, host: str, port: int) -> None:
    """Serve the HTTP API; start-up, file-change and periodic scans follow the settings."""
    import uvicorn

    from depsentinel.api import create_app

    try:
        make = load_factory(factory)
    except (ImportError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    settings = ScanSettings.from_env()
    app = create_app(build_runtime(make(settings), settings))
    uvicorn.run(app, host=host, port=port, log_config=None)


def _outcome_to_dict(outcome: ScanOutcome) -> dict:
    data: dict = {
        "status": outcome.status.value,
        "trigger": outcome.trigger.value,
        "strategy": outcome.strategy.value,
        "cached": outcome.cached,
        "cache_age_minutes": outcome.cache_age_minutes,
        "message": outcome.message,
        "remediation": outcome.remediation,
        "error": str(outcome.error) if outcome.error is not None else None,
    }
    if outcome.result is not None:
        data["result"] = _result_adapter.dump_python(outcome.result, mode="json")
    if outcome.metrics is not None:
        data["metrics"] = {
            "scan_duration_ms": outcome.metrics.scan_duration_ms,
            "current_bytes": outcome.metrics.memory.current_bytes,
            "peak_bytes": outcome.metrics.memory.peak_bytes,
            "dependency_count": outcome.metrics.dependency_count,
        }
    return data


if __name__ == "__main__":
    main()
