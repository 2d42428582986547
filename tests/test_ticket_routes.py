from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from pms.dependencies.auth import Role, User, get_current_user
from pms.dependencies.services import get_notification_service, get_ticket_service
from pms.main import create_app
from pms.notifications import NotificationType, build_notification
from pms.tickets import (
    Actor,
    HistoryEntry,
    InvalidTicketTransitionError,
    NotificationNotFoundError,
    Ticket,
    TicketAccessDeniedError,
    TicketAction,
    TicketConflictError,
    TicketNotFoundError,
    TicketPriority,
    TicketStatus,
    TicketType,
    TicketValidationError,
)

ADMIN = User("admin-1", Role.ADMIN)
REQUESTER = User("requester-1", Role.END_USER)
DEVELOPER = User("developer-1", Role.DEVELOPER)


def _make_ticket(*, status: TicketStatus = TicketStatus.OPEN, version: int = 1) -> Ticket:
    now = datetime.now(timezone.utc)
    return Ticket(
        id="t-1",
        project_id="project-1",
        title="Login broken",
        description="SSO loop",
        type=TicketType.BUG,
        priority=TicketPriority.HIGH,
        status=status,
        created_by=REQUESTER.user_id,
        created_at=now,
        updated_at=now,
        version=version,
    )


@pytest.fixture
def api():
    app = create_app()
    ticket_service = AsyncMock()
    notification_service = AsyncMock()
    caller = {"user": ADMIN}

    async def override_ticket_service():
        return ticket_service

    async def override_notification_service():
        return notification_service

    app.dependency_overrides[get_ticket_service] = override_ticket_service
    app.dependency_overrides[get_notification_service] = override_notification_service
    app.dependency_overrides[get_current_user] = lambda: caller["user"]

    client = TestClient(app)
    try:
        yield client, ticket_service, notification_service, caller
    finally:
        app.dependency_overrides.clear()


def test_create_ticket_returns_created(api):
    client, service, _, caller = api
    caller["user"] = REQUESTER
    service.create_ticket = AsyncMock(return_value=_make_ticket())

    response = client.post("/tickets", json={"project_id": "project-1", "title": "Login broken"})

    assert response.status_code == 201
    body = response.json()
    assert body["id"] == "t-1"
    assert body["status"] == "open"
    assert body["version"] == 1
    args, kwargs = service.create_ticket.await_args
    assert args[0] == Actor("requester-1", Role.END_USER)
    assert kwargs["type"] == "bug"


def test_developer_cannot_create_tickets(api):
    client, service, _, caller = api
    caller["user"] = DEVELOPER

    response = client.post("/tickets", json={"project_id": "project-1", "title": "Nope"})

    assert response.status_code == 403
    service.create_ticket.assert_not_awaited()


def test_only_admins_reach_assignment(api):
    client, service, _, caller = api
    caller["user"] = REQUESTER

    response = client.patch("/tickets/t-1/assign", json={"developer_id": "developer-1"})

    assert response.status_code == 403
    service.assign.assert_not_awaited()


def test_assign_passes_developer_id(api):
    client, service, _, _ = api
    service.assign = AsyncMock(return_value=_make_ticket(status=TicketStatus.IN_PROGRESS, version=2))

    response = client.patch("/tickets/t-1/assign", json={"developer_id": "developer-1"})

    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"
    service.assign.assert_awaited_once_with(ADMIN.actor, "t-1", "developer-1")


@pytest.mark.parametrize(
    "error,status_code",
    [
        (TicketNotFoundError("Ticket t-1 not found"), 404),
        (TicketAccessDeniedError("Access to ticket t-1 is forbidden"), 403),
        (InvalidTicketTransitionError("Role developer cannot move a ticket from open to closed"), 400),
        (TicketValidationError("Invalid status"), 400),
        (TicketConflictError("Ticket t-1 was modified concurrently"), 409),
    ],
)
def test_status_change_maps_service_errors(api, error, status_code):
    client, service, _, caller = api
    caller["user"] = DEVELOPER
    service.change_status = AsyncMock(side_effect=error)

    response = client.patch("/tickets/t-1/status", json={"status": "closed"})

    assert response.status_code == status_code
    assert response.json()["detail"] == str(error)


def test_close_forwards_satisfaction(api):
    client, service, _, caller = api
    caller["user"] = REQUESTER
    service.close = AsyncMock(return_value=_make_ticket(status=TicketStatus.CLOSED, version=4))

    response = client.patch("/tickets/t-1/close", json={"satisfaction_score": 4, "satisfaction_comment": "Fine"})

    assert response.status_code == 200
    service.close.assert_awaited_once_with(
        REQUESTER.actor,
        "t-1",
        comment=None,
        satisfaction_score=4,
        satisfaction_comment="Fine",
    )


def test_ticket_response_carries_lifecycle_fields(api):
    client, service, _, caller = api
    caller["user"] = REQUESTER
    closed = _make_ticket(status=TicketStatus.CLOSED, version=5)
    closed = replace(
        closed,
        assigned_to=DEVELOPER.user_id,
        assigned_at=closed.created_at,
        closed_at=closed.updated_at,
        reopen_count=1,
        satisfaction_score=5,
        satisfaction_comment="Quick fix",
        rated_at=closed.updated_at,
    )
    service.get_ticket = AsyncMock(return_value=closed)

    response = client.get("/tickets/t-1")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "closed"
    assert body["type"] == "bug"
    assert body["priority"] == "high"
    assert body["assigned_to"] == DEVELOPER.user_id
    assert body["reopen_count"] == 1
    assert body["satisfaction_score"] == 5
    assert body["satisfaction_comment"] == "Quick fix"
    assert body["closed_at"] is not None
    assert body["resolved_at"] is None
    assert body["is_archived"] is False
    assert body["version"] == 5


def test_reopen_without_comment_is_bad_request(api):
    client, service, _, caller = api
    caller["user"] = REQUESTER
    service.reopen = AsyncMock(side_effect=TicketValidationError("Comment is required when reopening a ticket"))

    response = client.patch("/tickets/t-1/reopen", json={})

    assert response.status_code == 400
    service.reopen.assert_awaited_once_with(REQUESTER.actor, "t-1", "")


def test_history_endpoint_serialises_entries(api):
    client, service, _, _ = api
    entry = HistoryEntry(
        id="h-1",
        ticket_id="t-1",
        action=TicketAction.CREATED,
        old_value=None,
        new_value="open",
        comment="Ticket created",
        actor_id="requester-1",
        created_at=datetime.now(timezone.utc),
    )
    service.get_history = AsyncMock(return_value=[entry])

    response = client.get("/tickets/t-1/history")

    assert response.status_code == 200
    assert response.json()[0]["action"] == "created"
    assert response.json()[0]["new_value"] == "open"


def test_list_tickets_forwards_archive_flag(api):
    client, service, _, _ = api
    service.list_tickets = AsyncMock(return_value=[_make_ticket()])

    response = client.get("/tickets", params={"include_archived": "true"})

    assert response.status_code == 200
    assert [ticket["id"] for ticket in response.json()] == ["t-1"]
    service.list_tickets.assert_awaited_once_with(ADMIN.actor, include_archived=True)


def test_attachments_endpoint_records_history(api):
    client, service, _, caller = api
    caller["user"] = REQUESTER
    service.record_attachments = AsyncMock(
        return_value=HistoryEntry(
            id="h-2",
            ticket_id="t-1",
            action=TicketAction.ATTACHMENT_ADDED,
            old_value=None,
            new_value="trace.log",
            comment="1 file(s) attached",
            actor_id="requester-1",
            created_at=datetime.now(timezone.utc),
        )
    )

    response = client.post("/tickets/t-1/attachments", json={"file_names": ["trace.log"]})

    assert response.status_code == 201
    assert response.json()["action"] == "attachment_added"


def test_notification_endpoints(api):
    client, _, notifications, caller = api
    caller["user"] = DEVELOPER
    notification = build_notification(
        recipient_id="developer-1",
        type=NotificationType.TICKET_ASSIGNED,
        ticket_id="t-1",
        ticket_title="Login broken",
        created_at=datetime.now(timezone.utc),
    )
    notifications.list_notifications = AsyncMock(return_value=[notification])
    notifications.unread_count = AsyncMock(return_value=1)
    notifications.mark_all_read = AsyncMock(return_value=1)
    notifications.mark_read = AsyncMock(side_effect=NotificationNotFoundError("Notification n-9 not found"))

    listed = client.get("/notifications")
    assert listed.status_code == 200
    assert listed.json()[0]["message"] == "Ticket assigned to you: Login broken"
    notifications.list_notifications.assert_awaited_once_with("developer-1")

    assert client.get("/notifications/unread-count").json() == {"count": 1}
    assert client.patch("/notifications/read-all").json() == {"updated": 1}
    assert client.patch("/notifications/n-9/read").status_code == 404


def test_missing_service_returns_service_unavailable():
    app = create_app()
    app.dependency_overrides[get_current_user] = lambda: ADMIN
    client = TestClient(app)

    assert client.get("/tickets").status_code == 503
    assert client.get("/notifications").status_code == 503


def test_requests_without_credentials_are_unauthorised():
    app = create_app()
    app.state.ticket_service = AsyncMock()
    client = TestClient(app)

    assert client.get("/tickets").status_code == 401
    assert client.get("/ping").json() == {"status": "ok"}
