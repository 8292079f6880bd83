"""
Tests for log context binding.
"""
import pytest
import structlog
from fastapi import HTTPException

from agrimarket.app.api.deps import run_service
from agrimarket.app.core.exceptions import NotFoundError
from agrimarket.app.core.logging import log_context
from agrimarket.app.services.maintenance import run_maintenance


def test_log_context_binds_and_clears():
    with log_context(operation="confirm_order", order_id=7):
        ctx = structlog.contextvars.get_contextvars()
        assert ctx["operation"] == "confirm_order"
        assert ctx["order_id"] == 7
    ctx = structlog.contextvars.get_contextvars()
    assert "operation" not in ctx
    assert "order_id" not in ctx


def test_nested_log_context_restores_outer_values():
    with log_context(operation="maintenance"):
        with log_context(operation="cleanup", batch=1):
            assert structlog.contextvars.get_contextvars()["operation"] == "cleanup"
        ctx = structlog.contextvars.get_contextvars()
        assert ctx["operation"] == "maintenance"
        assert "batch" not in ctx


def test_log_context_cleared_after_exception():
    with pytest.raises(ValueError):
        with log_context(operation="cancel_order"):
            raise ValueError("boom")
    assert "operation" not in structlog.contextvars.get_contextvars()


async def test_run_service_binds_operation_name(db_session):
    seen = {}

    async def operation():
        seen.update(structlog.contextvars.get_contextvars())
        return "ok"

    assert await run_service(db_session, operation, name="get_order") == "ok"
    assert seen["operation"] == "get_order"
    assert "operation" not in structlog.contextvars.get_contextvars()


async def test_run_service_error_still_clears_context(db_session):
    async def operation():
        raise NotFoundError("Order 123 not found")

    with pytest.raises(HTTPException) as exc_info:
        await run_service(db_session, operation, name="get_order")
    assert exc_info.value.status_code == 404
    assert "operation" not in structlog.contextvars.get_contextvars()


async def test_maintenance_runs_under_its_own_operation(session_factory, monkeypatch):
    seen = {}

    from agrimarket.app.services import maintenance

    original = maintenance.CleanupService.run

    async def recording_run(self):
        seen.update(structlog.contextvars.get_contextvars())
        return await original(self)

    monkeypatch.setattr(maintenance.CleanupService, "run", recording_run)

    cleanup, report = await run_maintenance(session_factory)
    assert cleanup is not None
    assert report.error is None
    assert seen["operation"] == "maintenance"
    assert "operation" not in structlog.contextvars.get_contextvars()
