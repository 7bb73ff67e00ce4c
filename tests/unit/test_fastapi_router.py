"""Unit tests for FastAPI routers."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from bizzin_jobs.auth import AdminVerifier
from bizzin_jobs.errors import AuthTokenError, RemoteHttpError
from bizzin_jobs.fastapi_router import create_email_queue_router, create_grace_period_router
from bizzin_jobs.grace_period import GracePeriodManager
from bizzin_jobs.models import EmailJobStatus, PaymentStatus, PlanType
from bizzin_jobs.service import EmailQueueService

AUTH = {"Authorization": "Bearer admin-token"}


@pytest.fixture
def verifier():
    """Create a verifier that accepts every caller as admin."""
    verifier = MagicMock(spec=AdminVerifier)
    verifier.verify = AsyncMock(return_value={"id": "admin-1"})
    return verifier


@pytest.fixture
def manager(config, clock, plan_store):
    manager = GracePeriodManager(config, MagicMock(), clock=clock)
    manager.store = plan_store
    return manager


@pytest.fixture
def service(config, clock, job_store, content_store):
    service = EmailQueueService(config, MagicMock(), clock=clock)
    service.store = job_store
    service.content_store = content_store
    return service


@pytest.fixture
def app(manager, service, verifier):
    """Create FastAPI app with both routers."""
    app = FastAPI()
    app.include_router(create_grace_period_router(lambda: manager, verifier), prefix="/api")
    app.include_router(create_email_queue_router(lambda: service, verifier), prefix="/api")
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


def test_unauthenticated_request_is_401(client, verifier):
    verifier.verify.side_effect = AuthTokenError("Missing bearer token")

    response = client.get("/api/grace-period/overview")

    assert response.status_code == 401


def test_non_admin_is_403(client, verifier):
    verifier.verify.side_effect = PermissionError("not an admin")

    response = client.get("/api/email-queue/stats", headers=AUTH)

    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"


def test_auth_provider_down_is_502(client, verifier):
    verifier.verify.side_effect = RemoteHttpError(503, "unavailable")

    response = client.get("/api/grace-period/health", headers=AUTH)

    assert response.status_code == 502


def test_start_grace_period(client, plan_store, verifier):
    plan_store.add_plan("user-1")

    response = client.post(
        "/api/grace-period/start/user-1",
        json={"failure_reason": "Card declined"},
        headers=AUTH,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["failed_payment_count"] == 1
    assert plan_store.plans["user-1"].payment_status == PaymentStatus.GRACE_PERIOD
    verifier.verify.assert_awaited_with("Bearer admin-token")


def test_start_grace_period_without_body(client, plan_store):
    plan_store.add_plan("user-1")

    response = client.post("/api/grace-period/start/user-1", headers=AUTH)

    assert response.status_code == 200
    (txn,) = plan_store.transactions_of_type("grace_period_start")
    assert txn.failure_reason == "Admin triggered grace period"


def test_start_grace_period_free_plan_is_400(client, plan_store):
    plan_store.add_plan("user-1", plan_type=PlanType.FREE)

    response = client.post("/api/grace-period/start/user-1", headers=AUTH)

    assert response.status_code == 400
    assert "premium" in response.json()["detail"]


def test_process_expired(client, plan_store, clock):
    plan_store.add_plan(
        "user-1",
        payment_status=PaymentStatus.GRACE_PERIOD,
        grace_period_end=clock() - timedelta(hours=1),
    )

    response = client.post("/api/grace-period/process-expired", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["suspended"] == 1


def test_restore(client, plan_store):
    plan_store.add_plan("user-1", payment_status=PaymentStatus.SUSPENDED)

    response = client.post("/api/grace-period/restore/user-1", headers=AUTH)

    assert response.status_code == 200
    assert plan_store.plans["user-1"].payment_status == PaymentStatus.ACTIVE


def test_restore_missing_plan_is_400(client):
    response = client.post("/api/grace-period/restore/ghost", headers=AUTH)

    assert response.status_code == 400


def test_extend(client, plan_store, clock):
    plan_store.add_plan(
        "user-1",
        payment_status=PaymentStatus.GRACE_PERIOD,
        grace_period_end=clock() + timedelta(days=1),
    )

    response = client.post(
        "/api/grace-period/extend/user-1", json={"additional_days": 3}, headers=AUTH
    )

    assert response.status_code == 200
    assert plan_store.plans["user-1"].grace_period_end == clock() + timedelta(days=4)


@pytest.mark.parametrize("days", [0, -1])
def test_extend_rejects_non_positive_days(client, plan_store, days):
    plan_store.add_plan("user-1")

    response = client.post(
        "/api/grace-period/extend/user-1", json={"additional_days": days}, headers=AUTH
    )

    assert response.status_code == 400


def test_status(client, plan_store, clock):
    plan_store.add_plan(
        "user-1",
        payment_status=PaymentStatus.GRACE_PERIOD,
        grace_period_end=clock() + timedelta(days=3),
        failed_payment_count=2,
    )

    response = client.get("/api/grace-period/status/user-1", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["is_in_grace_period"] is True
    assert data["days_remaining"] == 3
    assert data["failed_payment_count"] == 2


def test_overview(client, plan_store, clock):
    plan_store.add_plan("user-1", payment_status=PaymentStatus.SUSPENDED)

    response = client.get("/api/grace-period/overview", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["suspended_accounts"] == 1
    assert data["total_affected"] == 1
    assert data["grace_period_details"] == []


def test_health(client, plan_store):
    plan_store.add_plan("user-1")

    response = client.get("/api/grace-period/health", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["healthy"] == 1


def test_manager_error_is_500(client, manager):
    manager.get_overview = AsyncMock(side_effect=RuntimeError("db down"))

    response = client.get("/api/grace-period/overview", headers=AUTH)

    assert response.status_code == 500


def test_queue_stats(client, job_store):
    job_store.add()

    response = client.get("/api/email-queue/stats", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["queue"]["pending_jobs"] == 1
    assert data["max_concurrent_jobs"] == 2


def test_queue_user(client, job_store):
    response = client.post(
        "/api/email-queue/queue-user",
        json={"user_id": "user-1", "user_email": "user1@example.com", "job_type": "goal_reminder"},
        headers=AUTH,
    )

    assert response.status_code == 200
    (job,) = job_store.jobs.values()
    assert response.json()["job_id"] == str(job.id)
    assert job.priority == 8
    assert job.job_type == "goal_reminder"


def test_queue_user_invalid_email_is_400(client, job_store):
    response = client.post(
        "/api/email-queue/queue-user",
        json={"user_id": "user-1", "user_email": "nope"},
        headers=AUTH,
    )

    assert response.status_code == 400
    assert job_store.jobs == {}


def test_queue_user_unknown_type_is_422(client):
    response = client.post(
        "/api/email-queue/queue-user",
        json={"user_id": "user-1", "user_email": "user1@example.com", "job_type": "weekly"},
        headers=AUTH,
    )

    assert response.status_code == 422


def test_queue_all(client, content_store, job_store):
    content_store.settings = [
        {"user_id": "a", "email": "a@example.com", "send_time": "08:00", "timezone": "UTC"},
        {"user_id": "b", "email": "b@example.com", "send_time": "18:00", "timezone": "UTC"},
    ]

    response = client.post("/api/email-queue/queue-all", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"queued": 2}
    assert len(job_store.jobs) == 2


def test_create_hourly_jobs_queues_only_due_users(client, content_store, job_store):
    # clock is 09:00 UTC
    content_store.settings = [
        {"user_id": "a", "email": "a@example.com", "send_time": "09:00", "timezone": "UTC"},
        {"user_id": "b", "email": "b@example.com", "send_time": "18:00", "timezone": "UTC"},
    ]

    response = client.post("/api/email-queue/create-hourly-jobs", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"queued": 1}
    (job,) = job_store.jobs.values()
    assert job.user_id == "a"


def test_get_job(client, job_store):
    job = job_store.add(status=EmailJobStatus.COMPLETED, processing_time=42)

    response = client.get(f"/api/email-queue/jobs/{job.id}", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == str(job.id)
    assert data["status"] == "completed"
    assert data["processing_time"] == 42


def test_get_job_not_found(client):
    response = client.get(f"/api/email-queue/jobs/{uuid4()}", headers=AUTH)

    assert response.status_code == 404


def test_get_job_invalid_id(client):
    response = client.get("/api/email-queue/jobs/not-a-uuid", headers=AUTH)

    assert response.status_code == 400


def test_list_jobs(client, job_store):
    job_store.add(user_id="u1")
    job_store.add(user_id="u2", status=EmailJobStatus.FAILED)

    response = client.get("/api/email-queue/jobs?status=failed", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert [job["user_id"] for job in data] == ["u2"]
