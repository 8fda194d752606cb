"""Tests for health endpoints."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


@pytest.mark.asyncio
async def test_health(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_detail(async_client):
    response = await async_client.get("/health/detail")
    assert response.status_code == 200
    data = response.json()
    assert data["sweeper"] in ("running", "stopped")
    assert data["pending_deliveries"] == 0


@pytest.mark.asyncio
async def test_health_reports_unreachable_database(async_client):
    from phoneauth.main import app

    broken = create_async_engine("sqlite+aiosqlite:////nonexistent-dir/phoneauth.db")
    app.state.session_maker = async_sessionmaker(broken, class_=AsyncSession)
    try:
        response = await async_client.get("/health")
    finally:
        await broken.dispose()

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"
