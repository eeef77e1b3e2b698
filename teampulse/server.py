"""
FastAPI server for the TeamPulse service.

This module implements the HTTP API for managing teams and members, the
dashboard statistics endpoints, and a Server-Sent Events stream that pushes
fresh statistics whenever the store changes.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from . import __version__
from .auth import SessionRegistry, authenticate
from .config import Settings, get_settings
from .errors import (
    DuplicateMemberError,
    InvalidTeamNameError,
    MemberNotFoundError,
    TeamFullError,
    TeamNotFoundError,
    TeamPulseError,
)
from .models import (
    AppSettings,
    AppSettingsUpdate,
    AuthResult,
    LoginRequest,
    Member,
    MemberCreate,
    MemberUpdate,
    SentimentStats,
    Team,
    TeamCreate,
    TeamDetail,
    TeamSummary,
    TrendRow,
)
from .sentiment import (
    classify,
    count_sentiments,
    summarize,
    team_trend_rows,
    weighted_average,
)
from .store import TeamStore

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[TeamPulseError], int] = {
    TeamNotFoundError: 404,
    MemberNotFoundError: 404,
    DuplicateMemberError: 409,
    TeamFullError: 409,
    InvalidTeamNameError: 422,
}


def _team_summary(team: Team, members: list[Member]) -> TeamSummary:
    counts = count_sentiments(member.sentiment for member in members)
    return TeamSummary(
        **team.model_dump(),
        member_count=len(members),
        counts=counts,
        sentiment_data=classify(weighted_average(counts)),
    )


async def build_stats(store: TeamStore, days: int | None = None) -> SentimentStats:
    """Compute dashboard statistics from the store's recorded history."""
    points = await store.data_points(days=days)
    teams = await store.list_teams()
    members = await store.all_members()
    return summarize(points, team_count=len(teams), active_member_total=len(members))


def create_app(
    store: TeamStore,
    sessions: SessionRegistry | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Create a FastAPI application around the given stores.

    Args:
        store: The TeamStore holding teams, members and settings
        sessions: Session registry; a new one is created if omitted
        settings: Runtime settings; the process settings are used if omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    sessions = sessions or SessionRegistry(max_age=settings.session_max_age)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for FastAPI application."""
        logger.info("TeamPulse %s starting", __version__)
        yield
        logger.info("TeamPulse shutting down")

    app = FastAPI(
        title="TeamPulse",
        description="Team sentiment tracking service",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(TeamPulseError)
    async def handle_store_error(request: Request, exc: TeamPulseError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), 400)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    def current_session(request: Request) -> AuthResult:
        return sessions.lookup(request.cookies.get(settings.session_cookie_name))

    def require_auth(
        session: Annotated[AuthResult, Depends(current_session)],
    ) -> AuthResult:
        if not session.authenticated:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return session

    protected = [Depends(require_auth)]

    # MARK: - Public

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "teampulse"}

    @app.post("/auth/login")
    async def login(credentials: LoginRequest, response: Response) -> dict:
        """
        Log in with the admin credentials and set the session cookie.

        Returns:
            A success message; 400 for missing fields, 401 for bad credentials
        """
        if not credentials.email or not credentials.password:
            raise HTTPException(
                status_code=400, detail="Email and password are required"
            )

        if not authenticate(credentials.email, credentials.password, settings):
            logger.warning("Failed login attempt for %s", credentials.email)
            raise HTTPException(status_code=401, detail="Invalid email or password")

        token = sessions.create(credentials.email)
        response.set_cookie(
            key=settings.session_cookie_name,
            value=token,
            max_age=settings.session_max_age,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
        )
        return {"success": True, "message": "Login successful"}

    @app.post("/auth/logout")
    async def logout(request: Request, response: Response) -> dict:
        sessions.destroy(request.cookies.get(settings.session_cookie_name))
        response.delete_cookie(settings.session_cookie_name)
        return {"success": True}

    @app.get("/auth/session")
    async def session_status(
        session: Annotated[AuthResult, Depends(current_session)],
    ) -> AuthResult:
        """Report whether the caller holds a valid session."""
        return session

    # MARK: - Teams

    @app.get("/teams", dependencies=protected)
    async def list_teams() -> list[TeamSummary]:
        teams = await store.list_teams()
        return [
            _team_summary(team, await store.list_members(team.id)) for team in teams
        ]

    @app.post("/teams", status_code=201, dependencies=protected)
    async def create_team(payload: TeamCreate) -> Team:
        return await store.create_team(payload.name)

    @app.get("/teams/{team_id}", dependencies=protected)
    async def get_team(team_id: str) -> TeamDetail:
        team = await store.get_team(team_id)
        members = await store.list_members(team_id)
        return TeamDetail(
            **_team_summary(team, members).model_dump(), members=members
        )

    @app.delete("/teams/{team_id}", status_code=204, dependencies=protected)
    async def delete_team(team_id: str) -> Response:
        await store.delete_team(team_id)
        return Response(status_code=204)

    @app.post("/teams/{team_id}/members", status_code=201, dependencies=protected)
    async def add_member(team_id: str, payload: MemberCreate) -> Member:
        return await store.add_member(
            team_id, name=payload.name, email=payload.email, sentiment=payload.sentiment
        )

    # MARK: - Members

    @app.put("/members/{member_id}", dependencies=protected)
    async def update_member(member_id: str, payload: MemberUpdate) -> Member:
        """
        Update a member's details or sentiment.

        Args:
            member_id: The member to update
            payload: Fields to change; omitted fields are kept

        Returns:
            The updated member
        """
        return await store.update_member(
            member_id,
            name=payload.name,
            email=payload.email,
            sentiment=payload.sentiment,
        )

    @app.delete("/members/{member_id}", status_code=204, dependencies=protected)
    async def delete_member(member_id: str) -> Response:
        await store.delete_member(member_id)
        return Response(status_code=204)

    # MARK: - Dashboard

    @app.get("/dashboard/stats", dependencies=protected)
    async def dashboard_stats(
        days: Annotated[int | None, Query(gt=0)] = None,
    ) -> SentimentStats:
        """Aggregate statistics over the recorded sentiment history."""
        return await build_stats(store, days=days)

    @app.get("/sentiment-trends", dependencies=protected)
    async def sentiment_trends(
        days: Annotated[int | None, Query(gt=0)] = None,
    ) -> list[TrendRow]:
        """Average score per team for each day in the trend window."""
        points = await store.data_points(days=days or settings.trend_days)
        return team_trend_rows(points)

    @app.get("/dashboard/stream", dependencies=protected)
    async def stream_stats() -> StreamingResponse:
        """
        Stream dashboard statistics via Server-Sent Events.

        The current statistics are sent immediately upon connection, then
        again after every change to the store.

        Returns:
            StreamingResponse with text/event-stream content type
        """

        async def event_generator() -> AsyncGenerator[str, None]:
            try:
                async with store.stream() as changes:
                    async for _ in changes:
                        stats = await build_stats(store)
                        data = json.dumps(stats.model_dump(mode="json", by_alias=True))
                        yield f"data: {data}\n\n"
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.exception("Stats stream failed")
                error_data = json.dumps({"error": str(e)})
                yield f"event: error\ndata: {error_data}\n\n"

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    # MARK: - Settings

    @app.get("/settings", dependencies=protected)
    async def read_settings() -> AppSettings:
        return await store.read_settings()

    @app.put("/settings", dependencies=protected)
    async def update_settings(update: AppSettingsUpdate) -> AppSettings:
        return await store.update_settings(update)

    return app


# Default app instance for `uvicorn teampulse.server:app`
app = create_app(TeamStore())


def main() -> None:
    """Main entry point for the server."""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "teampulse.server:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
