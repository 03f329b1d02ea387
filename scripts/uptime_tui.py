#!/usr/bin/env python3
"""
Uptime TUI - terminal view of a Service's uptime and live replicas.

Uses the same client resolution and status derivation as the HTTP page,
so what you see here is what GET / would render.
"""

import argparse
import asyncio
import sys
import time
from typing import Optional

from rich import box
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from service_uptime import (
    ClusterClient,
    Healthy,
    StatusOutcome,
    Target,
    UptimeSettings,
    derive_status,
    detect_namespace,
    error_message,
    format_duration,
    format_replicas,
    resolve_cluster_client,
)


def render_panel(outcome: StatusOutcome, target: Target) -> Panel:
    """Build the panel for one outcome."""
    if not isinstance(outcome, Healthy):
        # plain Text, never markup: names and causes come from the user and the API server
        body = Text(error_message(outcome), style="bold red")
        return Panel(body, title=Text(f"{target.namespace}/{target.name}"), border_style="red")

    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Service:", Text(outcome.service_name))
    table.add_row("Namespace:", Text(outcome.namespace))
    table.add_row("Up for:", format_duration(outcome.uptime))
    replicas = Text(format_replicas(outcome.replicas))
    if outcome.replicas is None:
        replicas.stylize("yellow")
    elif outcome.replicas == 0:
        replicas.stylize("red")
    else:
        replicas.stylize("green")
    table.add_row("Replicas alive:", replicas)
    table.add_row("Created at:", Text(outcome.created_at))
    return Panel(table, title="Service Uptime", border_style="blue")


def snapshot(client: ClusterClient, target: Target, timeout: Optional[float]) -> Panel:
    outcome = asyncio.run(derive_status(client, target, request_timeout=timeout))
    return render_panel(outcome, target)


def main():
    """Main entry point."""
    settings = UptimeSettings()
    parser = argparse.ArgumentParser(description="Show uptime and live replicas of a Service")
    parser.add_argument("--namespace", default=None, help="Namespace of the Service")
    parser.add_argument("--service", default=settings.service_name, help="Name of the Service")
    parser.add_argument(
        "--interval",
        type=float,
        default=0,
        help="Refresh every N seconds (0 renders once and exits)",
    )
    args = parser.parse_args()

    target = Target(
        namespace=args.namespace or detect_namespace(settings),
        name=args.service,
    )
    client = resolve_cluster_client()
    console = Console()
    timeout = settings.request_timeout_seconds

    if args.interval <= 0:
        console.print(snapshot(client, target, timeout))
        return

    try:
        with Live(console=console, refresh_per_second=4, screen=True) as live:
            while True:
                live.update(snapshot(client, target, timeout))
                time.sleep(args.interval)
    except KeyboardInterrupt:
        console.print("\n[yellow]Exiting...[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
