"""CLI entry-point for instance-monitor."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from instance_monitor import __version__
from instance_monitor.catalog import MetricCatalog
from instance_monitor.config import Settings
from instance_monitor.dashboard import CardResult, InstanceMonitor, MonitorSnapshot
from instance_monitor.errors import CatalogError
from instance_monitor.models import TIME_RANGES, MonitorState
from instance_monitor.prometheus import PrometheusClient
from instance_monitor.units import suitable_value

console = Console()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _load(settings: Settings) -> tuple[PrometheusClient, MetricCatalog]:
    try:
        settings.validate_prometheus_url()
        catalog = settings.load_catalog()
    except (ValueError, CatalogError) as exc:
        console.print(f"[red bold]Error:[/red bold] {exc}")
        sys.exit(1)
    client = PrometheusClient(
        settings.prometheus_url,
        ca_cert=settings.ca_cert,
        timeout=settings.timeout_seconds,
        time_range=settings.resolved_time_range,
    )
    return client, catalog


def _exit_on_error(state: MonitorState) -> None:
    if state.is_error:
        console.print(Panel(escape(state.error_message or "unknown error"), title="Monitoring Error", style="red"))
        sys.exit(1)
    if state.advisory:
        console.print(f"[yellow]Warning:[/yellow] {escape(state.advisory)}")


_settings_options = [
    click.option(
        "--prometheus-url", default="", help="Prometheus URL (or set PROMETHEUS_URL env var)."
    ),
    click.option("--ca-cert", default="", help="CA bundle for TLS verification."),
    click.option(
        "--catalog-file", default="", help="YAML metric catalog (or set INSTANCE_MONITOR_CATALOG)."
    ),
    click.option("--device-label", default="device", help="Label carrying the device name."),
    click.option("--verbose", "-v", is_flag=True, help="Enable debug logging."),
]


def settings_options(func):
    for option in reversed(_settings_options):
        func = option(func)
    return func


def _settings(prometheus_url: str, ca_cert: str, catalog_file: str, device_label: str, verbose: bool, **extra) -> Settings:
    settings = Settings(ca_cert=ca_cert, device_label=device_label, verbose=verbose, **extra)
    if prometheus_url:
        settings.prometheus_url = prometheus_url
    if catalog_file:
        settings.catalog_file = catalog_file
    return settings


@click.group()
@click.version_option(version=__version__, prog_name="instance-monitor")
def main() -> None:
    """Instance monitor: libvirt domain metrics from Prometheus."""


@main.command()
@click.argument("instance_id")
@settings_options
@click.option(
    "--range", "time_range", default="1h", type=click.Choice(list(TIME_RANGES)), help="Trend window."
)
@click.option("--device", default="all", help="Only show this disk device on disk charts.")
@click.option("--synthetic-fallback", is_flag=True, help="Draw a placeholder CPU chart when there is no data.")
@click.option("--json", "as_json", is_flag=True, help="Print the snapshot as JSON.")
def show(
    instance_id: str,
    prometheus_url: str,
    ca_cert: str,
    catalog_file: str,
    device_label: str,
    verbose: bool,
    time_range: str,
    device: str,
    synthetic_fallback: bool,
    as_json: bool,
) -> None:
    """Show current values and trends for INSTANCE_ID."""
    _configure_logging(verbose)
    settings = _settings(
        prometheus_url,
        ca_cert,
        catalog_file,
        device_label,
        verbose,
        time_range=time_range,
        synthetic_fallback=synthetic_fallback,
    )
    client, metric_catalog = _load(settings)
    snapshot = asyncio.run(_show(client, metric_catalog, settings, instance_id, device))
    _exit_on_error(snapshot.state)

    if as_json:
        click.echo(json.dumps(snapshot.model_dump(mode="json"), indent=2))
        return
    _print_snapshot(snapshot)


async def _show(
    client: PrometheusClient,
    metric_catalog: MetricCatalog,
    settings: Settings,
    instance_id: str,
    device: str,
) -> MonitorSnapshot:
    async with client:
        monitor = InstanceMonitor(
            client,
            metric_catalog,
            device_label=settings.device_label,
            synthetic_fallback=settings.synthetic_fallback,
        )
        state = await monitor.open(instance_id)
        if state.is_ready and device != "all":
            if device in await monitor.wait_devices():
                monitor.select_device(device)
            else:
                console.print(f"[yellow]Unknown device {escape(repr(device))}, showing all devices.[/yellow]")
        return await monitor.snapshot(settings.resolved_time_range)


def _print_snapshot(snapshot: MonitorSnapshot) -> None:
    state = snapshot.state
    console.print(
        Panel(
            f"Instance [bold]{state.instance_id}[/bold]  domain [bold]{state.domain}[/bold]",
            style="bold cyan",
        )
    )
    if snapshot.devices:
        console.print(f"  Devices: {', '.join(snapshot.devices)}  (selected: {snapshot.selected_device})")

    table = Table(title="Current", show_lines=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for result in snapshot.top:
        table.add_row(result.card.title, _card_value(result))
    console.print(table)

    trends = Table(title="Trends", show_lines=True)
    trends.add_column("Chart", style="bold")
    trends.add_column("Series")
    trends.add_column("Points", justify="right")
    trends.add_column("Latest", justify="right")
    for result in snapshot.trends:
        if not result.ok:
            trends.add_row(result.card.title, "[red]failed[/red]", "", escape(result.error or ""))
            continue
        series_set = result.series
        if series_set is None or series_set.is_empty:
            trends.add_row(result.card.title, "[dim]no data[/dim]", "0", "-")
            continue
        presentation = result.card.presentation
        title = result.card.title
        if series_set.synthetic:
            title += " [yellow](synthetic)[/yellow]"
        for series in series_set.series:
            latest = series.latest
            trends.add_row(
                title,
                series.label,
                str(len(series.points)),
                suitable_value(latest.y if latest else None, presentation.unit, presentation.decimals),
            )
            title = ""
    console.print(trends)


def _card_value(result: CardResult) -> str:
    if not result.ok:
        return f"[red]{escape(result.error or '')}[/red]"
    presentation = result.card.presentation
    return suitable_value(result.value, presentation.unit, presentation.decimals)


@main.command()
@click.argument("instance_id")
@settings_options
def devices(
    instance_id: str,
    prometheus_url: str,
    ca_cert: str,
    catalog_file: str,
    device_label: str,
    verbose: bool,
) -> None:
    """List the disk devices of INSTANCE_ID."""
    _configure_logging(verbose)
    settings = _settings(prometheus_url, ca_cert, catalog_file, device_label, verbose)
    client, metric_catalog = _load(settings)
    state, found = asyncio.run(_devices(client, metric_catalog, settings, instance_id))
    _exit_on_error(state)
    if not found:
        console.print(f"[yellow]No devices found for domain {state.domain}.[/yellow]")
        return
    for name in sorted(found):
        console.print(f"  • {name}")


async def _devices(
    client: PrometheusClient,
    metric_catalog: MetricCatalog,
    settings: Settings,
    instance_id: str,
) -> tuple[MonitorState, set[str]]:
    async with client:
        monitor = InstanceMonitor(client, metric_catalog, device_label=settings.device_label)
        state = await monitor.open(instance_id)
        return state, await monitor.wait_devices()


@main.command()
@click.option("--catalog-file", default="", help="YAML metric catalog to show instead of the built-in one.")
@click.option("--domain", default="", help="Render the templates for this domain.")
def catalog(catalog_file: str, domain: str) -> None:
    """Print the metric catalog."""
    settings = Settings()
    if catalog_file:
        settings.catalog_file = catalog_file
    try:
        metric_catalog = settings.load_catalog()
    except CatalogError as exc:
        console.print(f"[red bold]Error:[/red bold] {exc}")
        sys.exit(1)

    table = Table(title="Metric Catalog", show_lines=True)
    table.add_column("Key", style="bold")
    table.add_column("Queries")
    params = {"domain": domain} if domain else {}
    for key in metric_catalog:
        table.add_row(key, escape("\n".join(metric_catalog.render(key, params))))
    console.print(table)


if __name__ == "__main__":
    main()
