"""Unit tests for scripts/uptime_tui.py rendering."""
import importlib.util
from datetime import timedelta
from pathlib import Path

import pytest
from rich.console import Console

from service_uptime import ClientUnavailable, Healthy, ServiceFetchFailed, Target

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "uptime_tui.py"


@pytest.fixture(scope="module")
def tui():
    spec = importlib.util.spec_from_file_location("uptime_tui", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def plain(renderable) -> str:
    console = Console(width=120, record=True, color_system=None)
    console.print(renderable)
    return console.export_text()


@pytest.mark.unit
class TestRenderPanel:
    """Test render_panel function."""

    def test_healthy(self, tui):
        outcome = Healthy("checkout", timedelta(hours=25), 3, "2024-01-01T00:00:00+00:00", "prod")
        text = plain(tui.render_panel(outcome, Target("prod", "checkout")))
        assert "Service Uptime" in text
        assert "1day 1h" in text
        assert "Replicas alive:" in text
        assert "2024-01-01T00:00:00+00:00" in text

    def test_unknown_replicas(self, tui):
        outcome = Healthy("checkout", timedelta(0), None, "2024-01-01T00:00:00+00:00", "prod")
        assert "Unavailable" in plain(tui.render_panel(outcome, Target("prod", "checkout")))

    def test_error_is_not_markup(self, tui):
        outcome = ServiceFetchFailed("checkout", "[bold]boom[/bold]")
        text = plain(tui.render_panel(outcome, Target("prod", "checkout")))
        assert "[bold]boom[/bold]" in text
        assert "prod/checkout" in text

    def test_names_are_not_markup(self, tui):
        target = Target("prod", "[red]api[/red]")
        error = plain(tui.render_panel(ServiceFetchFailed(target.name, "boom"), target))
        assert "prod/[red]api[/red]" in error
        outcome = Healthy("[red]api[/red]", timedelta(0), 1, "2024-01-01T00:00:00+00:00", "[b]ns[/b]")
        healthy = plain(tui.render_panel(outcome, target))
        assert "[red]api[/red]" in healthy
        assert "[b]ns[/b]" in healthy

    def test_snapshot_without_client(self, tui):
        panel = tui.snapshot(tui.ClusterClient(error="offline"), Target("prod", "checkout"), None)
        assert "Details: offline" in plain(panel)

    def test_snapshot_with_client(self, tui, cluster_client, target):
        text = plain(tui.snapshot(cluster_client, target, 1))
        assert "checkout" in text
        assert "4" in text


@pytest.mark.unit
def test_error_message_matches_page(tui):
    outcome = ClientUnavailable("offline")
    assert tui.error_message(outcome).endswith("Details: offline")
