"""Tests for the job scheduler and its health endpoints."""

from unittest.mock import MagicMock

import pytest
from aiohttp import test_utils

from jobs import health


@pytest.fixture
async def health_client():
    client = test_utils.TestClient(test_utils.TestServer(health.create_health_app()))
    await client.start_server()
    yield client
    await client.close()
    health.set_scheduler(None)


def fake_scheduler(running: bool) -> MagicMock:
    job = MagicMock()
    job.id = "dispatch_outbox"
    job.name = "Dispatch lifecycle events"
    job.next_run_time = None
    scheduler = MagicMock()
    scheduler.running = running
    scheduler.get_jobs.return_value = [job]
    return scheduler


class TestHealthEndpoints:
    """Tests for the scheduler health server."""

    async def test_unhealthy_without_scheduler(self, health_client):
        health.set_scheduler(None)

        resp = await health_client.get("/health")

        assert resp.status == 503
        assert (await resp.json())["status"] == "unhealthy"

    async def test_healthy_lists_jobs(self, health_client):
        health.set_scheduler(fake_scheduler(running=True))

        resp = await health_client.get("/health")
        body = await resp.json()

        assert resp.status == 200
        assert body["jobs_count"] == 1
        assert body["jobs"][0]["id"] == "dispatch_outbox"

    async def test_stopped_scheduler_not_ready(self, health_client):
        health.set_scheduler(fake_scheduler(running=False))

        health_resp = await health_client.get("/health")
        ready_resp = await health_client.get("/readiness")

        assert health_resp.status == 503
        assert ready_resp.status == 503

    async def test_liveness(self, health_client):
        resp = await health_client.get("/liveness")
        assert resp.status == 200


class TestScheduler:
    """Tests for create_scheduler."""

    def test_jobs_registered(self):
        from jobs.scheduler import create_scheduler

        scheduler = create_scheduler()
        jobs = {job.id: job for job in scheduler.get_jobs()}

        assert set(jobs) == {
            "expire_referrals",
            "process_due_payouts",
            "dispatch_outbox",
        }
        assert jobs["expire_referrals"].func.__self__.actor_name == "expire_referrals_task"
