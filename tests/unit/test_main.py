"""Unit tests for the wiring in src/main.py.

Covers build_pipeline assembly and run_release_check end to end against a
mocked httpx client, so no real network calls or tokens are required.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.config.settings import Settings
from src.main import build_pipeline, run_release_check
from src.models.run import RunPhase, RunProgress
from src.pipeline.orchestrator import ReleaseAggregationPipeline
from src.utils.errors import ConfigurationError, UnauthorizedError
from tests.conftest import FIXED_NOW, days_ago

_BASE = "https://api.example.test/v1"


def _routed_client(routes: dict[str, dict[str, Any] | httpx.Response]) -> MagicMock:
    """Mock AsyncClient whose ``get`` answers by URL path."""

    async def get(url: str, params: dict[str, Any] | None = None, **kwargs: Any) -> httpx.Response:
        path = url.removeprefix(f"{_BASE}/")
        answer = routes.get(path, {"items": [], "total": 0})
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)

    client = MagicMock(spec=httpx.AsyncClient)
    client.get = AsyncMock(side_effect=get)
    client.aclose = AsyncMock()
    return client


def _library_routes() -> dict[str, Any]:
    return {
        "me/following": {
            "artists": {
                "items": [{"id": "a1", "name": "Alpha", "genres": ["techno"], "popularity": 40}],
                "total": 1,
                "next": None,
                "cursors": {"after": None},
            }
        },
        "me/tracks": {
            "items": [{"track": {"artists": [{"id": "a1", "name": "Alpha"},
                                             {"id": "b2", "name": "Beta"}]}}],
            "total": 1,
            "next": None,
        },
        "artists/a1/albums": {
            "items": [
                {
                    "id": "new-lp",
                    "name": "Fresh LP",
                    "album_type": "album",
                    "release_date": days_ago(3),
                    "total_tracks": 9,
                    "artists": [{"id": "a1", "name": "Alpha"}],
                },
                {
                    "id": "old-lp",
                    "name": "Old LP",
                    "album_type": "album",
                    "release_date": days_ago(200),
                    "total_tracks": 9,
                    "artists": [{"id": "a1", "name": "Alpha"}],
                },
            ],
            "total": 2,
        },
        "artists/b2/albums": {
            "items": [
                {
                    "id": "b-single",
                    "name": "Just a Single",
                    "album_type": "single",
                    "release_date": days_ago(1),
                    "total_tracks": 1,
                    "artists": [{"id": "b2", "name": "Beta"}],
                },
            ],
            "total": 1,
        },
    }


# ======================================================================
# build_pipeline
# ======================================================================


class TestBuildPipeline:
    def test_returns_pipeline(self, settings: Settings) -> None:
        pipeline = build_pipeline(settings, MagicMock(spec=httpx.AsyncClient))
        assert isinstance(pipeline, ReleaseAggregationPipeline)
        assert pipeline.progress_tracker is not None

    def test_scheduler_reflects_settings(self, settings: Settings) -> None:
        custom = settings.model_copy(
            update={"recency_window_days": 30, "use_search_optimization": True}
        )
        pipeline = build_pipeline(custom, MagicMock(spec=httpx.AsyncClient))
        scheduler = pipeline._scheduler
        assert scheduler.window_days == 30
        assert scheduler.use_optimized_search is True


# ======================================================================
# run_release_check
# ======================================================================


class TestRunReleaseCheck:
    @pytest.mark.asyncio
    async def test_missing_token_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            await run_release_check(Settings(_env_file=None, spotify_access_token=""))

    @pytest.mark.asyncio
    async def test_end_to_end_with_injected_client(self, settings: Settings) -> None:
        client = _routed_client(_library_routes())

        report = await run_release_check(settings, http_client=client, now=FIXED_NOW)

        assert [r.id for r in report.releases] == ["new-lp"]
        assert report.summary.total_artists == 2
        assert report.summary.succeeded_artists == 2
        assert report.summary.total_releases_found == 1
        assert {a.id for a in report.artists} == {"a1", "b2"}
        # Injected clients belong to the caller.
        client.aclose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_progress_listener_sees_every_phase(self, settings: Settings) -> None:
        client = _routed_client(_library_routes())
        phases: list[RunPhase] = []

        def listener(run_id: str, progress: RunProgress) -> None:
            if not phases or phases[-1] != progress.phase:
                phases.append(progress.phase)

        await run_release_check(
            settings, http_client=client, now=FIXED_NOW, progress_listener=listener
        )

        assert phases == list(RunPhase)

    @pytest.mark.asyncio
    async def test_unauthorized_propagates(self, settings: Settings) -> None:
        client = _routed_client({"me/following": httpx.Response(401)})

        with pytest.raises(UnauthorizedError):
            await run_release_check(settings, http_client=client, now=FIXED_NOW)

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self, settings: Settings) -> None:
        client = _routed_client(_library_routes())

        with patch("src.main.httpx.AsyncClient", return_value=client):
            await run_release_check(settings, now=FIXED_NOW)

        client.aclose.assert_awaited_once()
