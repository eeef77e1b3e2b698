"""
Command-line interface tools for the TeamPulse service.
"""

import asyncio
import contextlib
import json
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, Optional

import httpx
import typer
from httpx_sse import ServerSentEvent, aconnect_sse

from .config import get_settings
from .models import Sentiment, SentimentStats, TeamSummary

DEFAULT_BASE_URL = "http://localhost:8000"

app = typer.Typer(help="TeamPulse CLI tools")

BaseUrlOption = typer.Option(
    DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the TeamPulse service"
)
EmailOption = typer.Option(None, "--email", "-e", help="Login email")
PasswordOption = typer.Option(None, "--password", "-p", help="Login password")


# MARK: - Commands


@app.command()
def stats(
    base_url: str = BaseUrlOption,
    email: Optional[str] = EmailOption,
    password: Optional[str] = PasswordOption,
    days: Optional[int] = typer.Option(
        None, "--days", "-d", help="Limit to the last N days"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
) -> None:
    """Show dashboard statistics."""

    async def _stats(client: httpx.AsyncClient) -> None:
        params = {"days": days} if days else None
        response = await client.get("/dashboard/stats", params=params)
        response.raise_for_status()
        result = response.json()

        if json_output:
            print(json.dumps(result, indent=2))
            return

        print(_format_stats(SentimentStats.model_validate(result)))

    _run_with_error_handling(_with_session(base_url, email, password, _stats), base_url)


@app.command()
def teams(
    base_url: str = BaseUrlOption,
    email: Optional[str] = EmailOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """List teams with their sentiment breakdown."""

    async def _teams(client: httpx.AsyncClient) -> None:
        response = await client.get("/teams")
        response.raise_for_status()
        summaries = [TeamSummary.model_validate(t) for t in response.json()]

        if not summaries:
            print("No teams")
            return

        for team in summaries:
            print(
                f"{team.id}  {team.name}: {team.member_count} members, "
                f"{team.counts.happy} happy / {team.counts.neutral} neutral / "
                f"{team.counts.sad} sad ({team.sentiment_data.label})"
            )

    _run_with_error_handling(_with_session(base_url, email, password, _teams), base_url)


@app.command()
def set_sentiment(
    member_id: str = typer.Argument(..., help="ID of the member to update"),
    sentiment: Sentiment = typer.Argument(
        ..., help="HAPPY, NEUTRAL or SAD", case_sensitive=False
    ),
    base_url: str = BaseUrlOption,
    email: Optional[str] = EmailOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """Set a member's sentiment."""

    async def _set_sentiment(client: httpx.AsyncClient) -> None:
        response = await client.put(
            f"/members/{member_id}", json={"sentiment": sentiment.value}
        )
        response.raise_for_status()
        result = response.json()
        print(f"{result['name']} is now {result['sentiment']}")

    _run_with_error_handling(
        _with_session(base_url, email, password, _set_sentiment), base_url
    )


@app.command()
def stream(
    base_url: str = BaseUrlOption,
    email: Optional[str] = EmailOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """Stream dashboard statistics in real-time."""

    async def _stream(client: httpx.AsyncClient) -> None:
        print(f"Streaming from {base_url}/dashboard/stream... (Ctrl+C to stop)")
        async with aconnect_sse(client, "GET", "/dashboard/stream") as event_source:
            async for sse in event_source.aiter_sse():
                _handle_sse_event(sse)

    _run_with_error_handling(
        _with_session(base_url, email, password, _stream, timeout=None), base_url
    )


# MARK: - Private Helpers


def _format_stats(stats: SentimentStats) -> str:
    arrows = {"up": "↑", "down": "↓", "stable": "→"}
    return (
        f"{stats.sentiment_data.label} ({stats.avg_sentiment:.2f}) "
        f"{arrows[stats.sentiment_trend]} {stats.weekly_change:+.1f}% | "
        f"{stats.total_teams} teams, {stats.active_members} members, "
        f"{stats.total_responses} responses"
    )


async def _with_session(
    base_url: str,
    email: str | None,
    password: str | None,
    action: Callable[[httpx.AsyncClient], Awaitable[None]],
    timeout: float | None = 5.0,
) -> None:
    """Log in, then run ``action`` with a client carrying the session cookie."""
    settings = get_settings()
    credentials = {
        "email": email or settings.admin_email,
        "password": password or settings.admin_password,
    }
    async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
        response = await client.post("/auth/login", json=credentials)
        response.raise_for_status()
        try:
            await action(client)
        finally:
            with contextlib.suppress(httpx.HTTPError):
                await client.post("/auth/logout")


def _handle_sse_event(sse: ServerSentEvent) -> None:
    """Handle a single SSE event."""
    try:
        if sse.event == "error":
            error_data = json.loads(sse.data)
            print(f"Server error: {error_data.get('error', 'Unknown error')}")
            return

        stats = SentimentStats.model_validate(json.loads(sse.data))
        print(_format_stats(stats))

    except json.JSONDecodeError as e:
        print(f"Warning: Could not parse SSE data: {sse.data} - {e}")
    except Exception as e:
        print(f"Warning: Error processing stats data: {e}")


def _run_with_error_handling(coro: Coroutine[Any, Any, Any], base_url: str) -> None:
    """Run an async coroutine with standardized error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        print("\nStopped")
        raise typer.Exit(0)
    except httpx.ConnectError:
        print(f"Error: Could not connect to {base_url}")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        print(f"Error: HTTP {e.response.status_code}")
        raise typer.Exit(1)
    except Exception as e:
        error_msg = str(e) if str(e) else f"Unknown error of type {type(e).__name__}"
        print(f"Error: {error_msg}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
