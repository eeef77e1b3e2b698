"""
Tests for the CLI output helpers.
"""

import json
from datetime import date

import httpx
from httpx_sse import ServerSentEvent
from typer.testing import CliRunner

from teampulse import cli
from teampulse.cli import _format_stats, _handle_sse_event, app
from teampulse.models import SentimentDataPoint
from teampulse.sentiment import summarize


def make_stats():
    return summarize(
        [
            SentimentDataPoint(date=date(2025, 1, 1), happy=10),
            SentimentDataPoint(date=date(2025, 1, 2), sad=10),
        ],
        team_count=2,
        active_member_total=10,
    )


class TestOutput:
    def test_format_stats(self):
        line = _format_stats(make_stats())
        assert line.startswith("Moderate (2.00) ↓ -66.7%")
        assert "2 teams, 10 members, 20 responses" in line

    def test_handle_stats_event(self, capsys):
        data = json.dumps(make_stats().model_dump(mode="json", by_alias=True))
        _handle_sse_event(ServerSentEvent(data=data))
        assert "Moderate" in capsys.readouterr().out

    def test_handle_error_event(self, capsys):
        _handle_sse_event(ServerSentEvent(event="error", data='{"error": "boom"}'))
        assert capsys.readouterr().out.strip() == "Server error: boom"

    def test_handle_garbage(self, capsys):
        _handle_sse_event(ServerSentEvent(data="not json"))
        assert "Could not parse SSE data" in capsys.readouterr().out


class TestCommands:
    def test_unreachable_server_exits_with_error(self):
        runner = CliRunner()
        result = runner.invoke(app, ["stats", "--url", "http://127.0.0.1:9"])
        assert result.exit_code == 1
        assert "Could not connect" in result.output

    def test_rejects_unknown_sentiment(self):
        runner = CliRunner()
        result = runner.invoke(app, ["set-sentiment", "abc", "angry"])
        assert result.exit_code != 0

    def test_logs_out_after_command(self, monkeypatch):
        """Each command ends its session, even when the command fails."""
        requests: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(f"{request.method} {request.url.path}")
            if request.url.path == "/dashboard/stats":
                return httpx.Response(500)
            return httpx.Response(200, json={"success": True})

        real_client = httpx.AsyncClient

        def client_factory(**kwargs):
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr(cli.httpx, "AsyncClient", client_factory)

        result = CliRunner().invoke(app, ["stats"])

        assert result.exit_code == 1
        assert "HTTP 500" in result.output
        assert requests == [
            "POST /auth/login",
            "GET /dashboard/stats",
            "POST /auth/logout",
        ]
