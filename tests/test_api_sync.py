"""
End-to-end tests for the TeamPulse API endpoints.

These tests verify login and session handling, team and member management,
dashboard statistics and the Server-Sent Events stats stream.
"""

import asyncio
import contextlib
import json
import socket
import threading
import time

import httpx
import uvicorn
from fastapi.testclient import TestClient
from httpx_sse import aconnect_sse

from teampulse.auth import SessionRegistry
from teampulse.config import Settings
from teampulse.server import create_app
from teampulse.store import TeamStore

CREDENTIALS = {"email": "admin@example.com", "password": "s3cret"}


def make_settings() -> Settings:
    return Settings(
        admin_email=CREDENTIALS["email"], admin_password=CREDENTIALS["password"]
    )


# MARK: - Auth


class TestAuth:
    """Tests for the login, logout and session endpoints."""

    def setup_method(self):
        self.store = TeamStore()
        self.app = create_app(self.store, settings=make_settings())

    def test_health_check_is_public(self):
        with TestClient(self.app) as client:
            response = client.get("/")
            assert response.status_code == 200
            assert response.json()["service"] == "teampulse"

    def test_protected_routes_require_login(self):
        with TestClient(self.app) as client:
            protected = ("/teams", "/dashboard/stats", "/sentiment-trends", "/settings")
            for path in protected:
                assert client.get(path).status_code == 401, path

    def test_login_validation(self):
        with TestClient(self.app) as client:
            missing = client.post("/auth/login", json={"email": CREDENTIALS["email"]})
            assert missing.status_code == 400

            wrong = client.post(
                "/auth/login", json={**CREDENTIALS, "password": "nope"}
            )
            assert wrong.status_code == 401
            assert "auth_session" not in client.cookies

    def test_login_session_logout(self):
        """Test the complete session flow: login -> session -> logout."""
        with TestClient(self.app) as client:
            before = client.get("/auth/session").json()
            assert before == {"authenticated": False, "user": None}

            login = client.post("/auth/login", json=CREDENTIALS)
            assert login.status_code == 200
            assert login.json()["success"] is True
            assert "auth_session" in client.cookies

            session = client.get("/auth/session").json()
            assert session["authenticated"] is True
            assert session["user"]["email"] == CREDENTIALS["email"]
            assert client.get("/teams").status_code == 200

            token = client.cookies["auth_session"]
            assert client.post("/auth/logout").status_code == 200

            # The old token no longer works even if replayed
            replay = client.get("/teams", headers={"Cookie": f"auth_session={token}"})
            assert replay.status_code == 401


# MARK: - Sync


class TestAPISync:
    """Integration tests covering the complete application flow using HTTP
    synchronous request/response flow."""

    def setup_method(self):
        """Set up a fresh app with a new store for each test."""
        self.store = TeamStore()
        self.sessions = SessionRegistry(max_age=3600)
        self.app = create_app(self.store, self.sessions, make_settings())

    def _login(self, client: TestClient) -> None:
        assert client.post("/auth/login", json=CREDENTIALS).status_code == 200

    def test_complete_workflow(self):
        """Test create team -> add members -> update sentiment -> dashboard."""
        with TestClient(self.app) as client:
            self._login(client)

            # 1. Empty dashboard
            empty = client.get("/dashboard/stats").json()
            assert empty["totalDataPoints"] == 0
            assert empty["sentimentTrend"] == "stable"
            assert empty["sentimentData"]["label"] == "Critical"

            # 2. Create a team
            created = client.post("/teams", json={"name": "Platform"})
            assert created.status_code == 201
            team_id = created.json()["id"]

            # 3. Add members
            ada = client.post(
                f"/teams/{team_id}/members",
                json={"name": "Ada", "email": "ada@example.com", "sentiment": "HAPPY"},
            )
            assert ada.status_code == 201
            assert ada.json()["sentiment"] == "HAPPY"
            assert ada.json()["teamId"] == team_id

            bob = client.post(
                f"/teams/{team_id}/members",
                json={"name": "Bob", "email": "bob@example.com"},
            )
            assert bob.json()["sentiment"] == "NEUTRAL"

            # 4. Update a sentiment, lower case is accepted
            bob_id = bob.json()["id"]
            updated = client.put(f"/members/{bob_id}", json={"sentiment": "sad"})
            assert updated.status_code == 200
            assert updated.json()["sentiment"] == "SAD"
            assert updated.json()["name"] == "Bob"

            # 5. Team detail reflects the members
            detail = client.get(f"/teams/{team_id}").json()
            assert detail["memberCount"] == 2
            assert detail["counts"] == {"happy": 1, "neutral": 0, "sad": 1}
            assert detail["sentimentData"]["label"] == "Moderate"
            assert [m["name"] for m in detail["members"]] == ["Ada", "Bob"]

            summaries = client.get("/teams").json()
            assert [t["name"] for t in summaries] == ["Platform"]

            # 6. Dashboard statistics come from today's snapshot
            stats = client.get("/dashboard/stats").json()
            assert stats["totalDataPoints"] == 1
            assert stats["totalResponses"] == 2
            assert stats["avgSentiment"] == 2
            assert stats["totalTeams"] == 1
            assert stats["activeMembers"] == 2
            assert stats["sentimentTrend"] == "stable"
            assert stats["weeklyChange"] == 0

            trends = client.get("/sentiment-trends").json()
            assert len(trends) == 1
            assert trends[0]["scores"] == {"Platform": 2}

            # 7. Delete the team
            assert client.delete(f"/teams/{team_id}").status_code == 204
            assert client.get(f"/teams/{team_id}").status_code == 404
            assert client.get("/dashboard/stats").json()["totalTeams"] == 0

    def test_invalid_input(self):
        with TestClient(self.app) as client:
            self._login(client)
            team_id = client.post("/teams", json={"name": "Platform"}).json()["id"]

            assert client.post("/teams", json={"name": "  "}).status_code == 422

            bad_sentiment = client.post(
                f"/teams/{team_id}/members",
                json={"name": "Ada", "email": "ada@example.com", "sentiment": "ANGRY"},
            )
            assert bad_sentiment.status_code == 422

            blank_name = client.post(
                f"/teams/{team_id}/members",
                json={"name": "  ", "email": "ada@example.com"},
            )
            assert blank_name.status_code == 422

            assert (
                client.post(
                    "/teams/missing/members",
                    json={"name": "Ada", "email": "ada@example.com"},
                ).status_code
                == 404
            )
            assert client.put("/members/missing", json={"name": "X"}).status_code == 404

            ada_id = client.post(
                f"/teams/{team_id}/members",
                json={"name": "Ada", "email": "ada@example.com"},
            ).json()["id"]
            blanked = client.put(
                f"/members/{ada_id}", json={"name": "   ", "email": ""}
            )
            assert blanked.status_code == 422
            detail = client.get(f"/teams/{team_id}").json()
            assert detail["members"][0]["name"] == "Ada"
            assert detail["members"][0]["email"] == "ada@example.com"

            renamed = client.put(f"/members/{ada_id}", json={"name": "  Ada L  "})
            assert renamed.json()["name"] == "Ada L"

    def test_settings_and_team_size_limit(self):
        with TestClient(self.app) as client:
            self._login(client)

            settings = client.get("/settings").json()
            assert settings == {
                "notificationEnabled": True,
                "autoSurveyFrequency": "weekly",
                "teamSizeLimit": 50,
                "dataRetention": 365,
            }

            updated = client.put("/settings", json={"teamSizeLimit": 1})
            assert updated.status_code == 200
            assert updated.json()["teamSizeLimit"] == 1
            assert updated.json()["autoSurveyFrequency"] == "weekly"

            invalid = client.put("/settings", json={"autoSurveyFrequency": "hourly"})
            assert invalid.status_code == 422

            team_id = client.post("/teams", json={"name": "Tiny"}).json()["id"]
            first = client.post(
                f"/teams/{team_id}/members",
                json={"name": "Ada", "email": "ada@example.com"},
            )
            assert first.status_code == 201
            second = client.post(
                f"/teams/{team_id}/members",
                json={"name": "Bob", "email": "bob@example.com"},
            )
            assert second.status_code == 409

    def test_duplicate_member_email(self):
        with TestClient(self.app) as client:
            self._login(client)
            team_id = client.post("/teams", json={"name": "Platform"}).json()["id"]
            payload = {"name": "Ada", "email": "ada@example.com"}
            response = client.post(f"/teams/{team_id}/members", json=payload)
            assert response.status_code == 201
            response = client.post(f"/teams/{team_id}/members", json=payload)
            assert response.status_code == 409


# MARK: - Streaming


class TestAPIStream:
    """Integration tests covering the stats stream using SSE."""

    def setup_method(self):
        """Set up a fresh app with a new store for each test."""
        self.store = TeamStore()
        self.app = create_app(self.store, settings=make_settings())

    async def test_streaming_api(self):
        """Test that the stats stream pushes fresh statistics after writes."""

        # Start a real HTTP server in a background thread on a free port
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        host, port = sock.getsockname()
        sock.close()
        base_url = f"http://{host}:{port}"

        config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            loop="asyncio",
            lifespan="on",
            log_level="warning",
            ws="none",
        )
        server = uvicorn.Server(config)

        def run_server() -> None:
            asyncio.run(server.serve())

        thread = threading.Thread(target=run_server, daemon=True)
        thread.start()

        # Wait for server to be ready
        start = time.time()
        while time.time() - start < 5.0:
            try:
                r = httpx.get(base_url + "/", timeout=0.2)
                if r.status_code == 200:
                    break
            except Exception:
                pass
            time.sleep(0.05)
        else:
            server.should_exit = True
            thread.join(timeout=1.0)
            assert False, "Server did not start in time"

        async with httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(5.0, read=None)
        ) as client:
            login = await client.post("/auth/login", json=CREDENTIALS)
            assert login.status_code == 200

            received: list[dict] = []
            got_initial_stats = asyncio.Event()

            async def consume() -> None:
                async with aconnect_sse(client, "GET", "/dashboard/stream") as es:
                    assert es.response.status_code == 200
                    content_type = es.response.headers.get("content-type", "")
                    assert content_type.startswith("text/event-stream")

                    async for sse in es.aiter_sse():
                        if sse.event == "error":
                            assert False, f"SSE error event: {sse.data}"

                        payload = json.loads(sse.data)
                        received.append(payload)
                        got_initial_stats.set()

                        if payload["activeMembers"] == 1:
                            break

            consumer_task = asyncio.create_task(consume())

            try:
                await asyncio.wait_for(got_initial_stats.wait(), timeout=3.0)
            except TimeoutError:
                consumer_task.cancel()
                with contextlib.suppress(Exception):
                    await consumer_task
                server.should_exit = True
                thread.join(timeout=1.0)
                assert False, "Consumer did not receive initial stats in time"

            team = await client.post("/teams", json={"name": "Platform"})
            assert team.status_code == 201
            member = await client.post(
                f"/teams/{team.json()['id']}/members",
                json={"name": "Ada", "email": "ada@example.com", "sentiment": "HAPPY"},
            )
            assert member.status_code == 201

            try:
                await asyncio.wait_for(consumer_task, timeout=3.0)
            except TimeoutError:
                consumer_task.cancel()
                with contextlib.suppress(Exception):
                    await consumer_task
                server.should_exit = True
                thread.join(timeout=1.0)
                assert False, f"Streaming test timed out. Received: {received}"

            assert received[0]["totalTeams"] == 0
            assert received[0]["sentimentData"]["label"] == "Critical"
            assert received[-1]["totalTeams"] == 1
            assert received[-1]["sentimentData"]["label"] == "Excellent"

        server.should_exit = True
        thread.join(timeout=2.0)
