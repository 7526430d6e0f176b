"""
Tests for the Celery ingestion task.

Validates that ``_execute_ingestion`` builds a task-local engine, runs the
pipeline with the given options and always disposes the engine, and that the
synchronous Celery entry point manages its event loop correctly.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from sechub.ingestion.base import IngestionOptions, IngestionProgress, IngestionStatus


def _patched_runtime(pipeline: MagicMock):
    """Patch engine construction and pipeline wiring used by the task."""
    mock_engine = MagicMock()
    mock_engine.dispose = AsyncMock()
    return mock_engine, (
        patch("sechub.core.database.build_engine", return_value=mock_engine),
        patch("sechub.core.database.build_session_factory", return_value=MagicMock()),
        patch("sechub.core.database.init_models", new_callable=AsyncMock),
        patch(
            "sechub.ingestion.pipeline.IngestionPipeline.from_settings",
            return_value=pipeline,
        ),
    )


# ---------------------------------------------------------------------------
# Test: _execute_ingestion runs the pipeline
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_execute_ingestion_runs_pipeline() -> None:
    pipeline = MagicMock()
    pipeline.run = AsyncMock(
        return_value=IngestionProgress(
            total_cves=10,
            processed_cves=5,
            status=IngestionStatus.COMPLETED,
        )
    )
    mock_engine, patches = _patched_runtime(pipeline)

    with patches[0], patches[1], patches[2] as mock_init, patches[3]:
        from sechub.tasks.ingestion_tasks import _execute_ingestion

        result = await _execute_ingestion(
            {"max_cves": 5, "start_year": 2023, "end_year": 2024}
        )

    pipeline.run.assert_awaited_once_with(
        IngestionOptions(max_cves=5, start_year=2023, end_year=2024)
    )
    mock_init.assert_awaited_once_with(mock_engine)
    mock_engine.dispose.assert_awaited_once()
    assert result["status"] == "completed"
    assert result["processed_cves"] == 5


@pytest.mark.asyncio
async def test_execute_ingestion_disposes_engine_on_failure() -> None:
    pipeline = MagicMock()
    pipeline.run = AsyncMock(side_effect=RuntimeError("Connection lost"))
    mock_engine, patches = _patched_runtime(pipeline)

    with patches[0], patches[1], patches[2], patches[3]:
        from sechub.tasks.ingestion_tasks import _execute_ingestion

        with pytest.raises(RuntimeError, match="Connection lost"):
            await _execute_ingestion({"max_cves": 5})

    mock_engine.dispose.assert_awaited_once()


@pytest.mark.asyncio
async def test_execute_ingestion_rejects_invalid_options() -> None:
    with patch("sechub.core.database.build_engine") as mock_build:
        from sechub.tasks.ingestion_tasks import _execute_ingestion

        with pytest.raises(ValidationError):
            await _execute_ingestion({"concurrency": 0})

    mock_build.assert_not_called()


# ---------------------------------------------------------------------------
# Test: synchronous run_ingestion Celery task
# ---------------------------------------------------------------------------

def test_run_ingestion_celery_task_success() -> None:
    """The synchronous task creates an event loop and returns the progress dict."""
    summary = {"processed_cves": 3, "status": "completed"}

    with patch(
        "sechub.tasks.ingestion_tasks._execute_ingestion",
        new_callable=MagicMock,
    ), patch(
        "sechub.tasks.ingestion_tasks.configure_logging",
    ) as mock_configure, patch(
        "sechub.tasks.ingestion_tasks.asyncio",
    ) as mock_asyncio:
        mock_loop = MagicMock()
        mock_loop.run_until_complete.return_value = summary
        mock_asyncio.new_event_loop.return_value = mock_loop

        from sechub.tasks.ingestion_tasks import run_ingestion

        result = run_ingestion({"max_cves": 3})

    assert result == summary
    mock_configure.assert_called_once_with()
    mock_asyncio.new_event_loop.assert_called_once()
    mock_asyncio.set_event_loop.assert_called_once_with(mock_loop)
    mock_loop.run_until_complete.assert_called_once()
    mock_loop.close.assert_called_once()


def test_run_ingestion_closes_loop_on_failure() -> None:
    with patch(
        "sechub.tasks.ingestion_tasks._execute_ingestion",
        new_callable=MagicMock,
    ), patch(
        "sechub.tasks.ingestion_tasks.asyncio",
    ) as mock_asyncio:
        mock_loop = MagicMock()
        mock_loop.run_until_complete.side_effect = RuntimeError("Ingestion exploded")
        mock_asyncio.new_event_loop.return_value = mock_loop

        from sechub.tasks.ingestion_tasks import run_ingestion

        with pytest.raises(RuntimeError, match="Ingestion exploded"):
            run_ingestion({"max_cves": 3})

    mock_loop.close.assert_called_once()


def test_task_is_registered_with_celery() -> None:
    from sechub.core.celery_app import celery
    from sechub.tasks.ingestion_tasks import run_ingestion

    assert run_ingestion.name == "sechub.run_ingestion"
    assert "sechub.run_ingestion" in celery.tasks
