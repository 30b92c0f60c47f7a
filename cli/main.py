"""Command line interface for the tag manager event monitor."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from consumers import ConsoleReporter, EventLog
from hosts import MemoryHost
from monitor import __version__
from monitor.config import ConfigManager, MonitorConfig
from monitor.engine import EventEngine
from monitor.exceptions import MonitorError
from monitor.logger import setup_logging
from monitor.scheduler import ManualScheduler
from monitor.session import MonitorSession


def _load_config(config_path: str | None, overrides: dict[str, Any] | None = None) -> MonitorConfig:
    manager = ConfigManager()
    try:
        if config_path is not None:
            return manager.load(config_path)
        return manager.from_dict(overrides or {})
    except MonitorError as exc:
        raise click.ClickException(str(exc)) from exc


def _load_fixture(path: str) -> dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid fixture {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise click.ClickException(f"Fixture {path} must contain a JSON object")
    return data


def _apply_push(host: MemoryHost, push: dict[str, Any], default_collection: str) -> None:
    name = push.get("collection", default_collection)
    if push.get("replace"):
        host.replace_collection(name, push.get("entries", []))
        return
    collection = host.collection(name, create=True)
    if push.get("direct"):
        collection.items.append(push.get("entry"))
    else:
        collection.push(push.get("entry"))


@click.group()
@click.version_option(version=__version__, prog_name="mtm-monitor")
def cli() -> None:
    """Tag Manager Event Monitor CLI"""


@cli.command()
@click.argument("fixture", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.option("--console", is_flag=True, help="Log each event as it is dispatched")
@click.option("--settle", default=2.0, show_default=True, help="Seconds to run after the last push")
def replay(
    fixture: str,
    config: str | None,
    json_logs: bool,
    console: bool,
    settle: float,
) -> None:
    """Replay a recorded page FIXTURE and print the dispatched events"""
    data = _load_fixture(fixture)
    monitor_config = _load_config(config, data.get("config"))

    log_config = monitor_config.logging
    if json_logs:
        log_config = log_config.model_copy(update={"json_format": True})
    setup_logging(log_config)

    host = MemoryHost.from_fixture(data)
    scheduler = ManualScheduler(start=data.get("startTime"))
    bus = EventEngine()
    event_log = EventLog.from_config(monitor_config, clock=scheduler.now)
    event_log.attach(bus)
    if console or monitor_config.event_log.console_logging:
        ConsoleReporter().attach(bus)

    session = MonitorSession(host, monitor_config, scheduler, bus)
    session.start()

    elapsed = 0.0
    pushes = sorted(data.get("pushes", []), key=lambda p: float(p.get("at", 0.0)))
    for push in pushes:
        at = float(push.get("at", 0.0))
        if at > elapsed:
            scheduler.advance(at - elapsed)
            elapsed = at
        if push.get("clear"):
            session.clear()
            continue
        _apply_push(host, push, monitor_config.collections.primary)

    scheduler.advance(settle)
    session.stop()

    for record in event_log.to_list():
        click.echo(json.dumps(record, ensure_ascii=False, default=str))
    stats = session.get_stats()
    click.echo(
        f"{len(event_log)} events, {event_log.suppressed} duplicates hidden, "
        f"{stats['duplicates_suppressed']} suppressed at intake",
        err=True,
    )


@cli.group(name="config")
def config_group() -> None:
    """Configuration commands"""


@config_group.command()
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
def show(config: str | None) -> None:
    """Print the effective configuration"""
    monitor_config = _load_config(config)
    click.echo(json.dumps(monitor_config.model_dump(mode="json", by_alias=True), indent=2))


if __name__ == "__main__":
    cli()
