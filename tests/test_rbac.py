import json
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from pms.dependencies.auth import Role, User, resolve_user_from_token, role_required
from pms.main import create_app

TOKENS = {
    "admin-token": "admin-1:admin",
    "dev-token": "developer-1:developer",
    "broken-token": "someone:superuser",
}


@pytest.fixture
def token_env(monkeypatch):
    monkeypatch.setenv("AUTH_TOKENS", json.dumps(TOKENS))


@pytest.mark.asyncio
async def test_role_required_allows_authorized_user():
    dependency = role_required(Role.ADMIN, Role.END_USER)
    user = User("alice", Role.END_USER)
    result = await dependency(user)  # type: ignore[arg-type]
    assert result.user_id == "alice"


@pytest.mark.asyncio
async def test_role_required_rejects_unauthorized_user():
    dependency = role_required(Role.ADMIN)
    user = User("bob", Role.DEVELOPER)
    with pytest.raises(HTTPException) as exc:
        await dependency(user)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


def test_resolve_user_from_token():
    user = resolve_user_from_token("dev-token", TOKENS)
    assert user is not None
    assert user.user_id == "developer-1"
    assert user.role is Role.DEVELOPER
    assert user.actor.role is Role.DEVELOPER
    assert resolve_user_from_token(None, TOKENS) is None

    for token in ("unknown", "broken-token"):
        with pytest.raises(HTTPException) as exc:
            resolve_user_from_token(token, TOKENS)
        assert exc.value.status_code == 401


def test_middleware_resolves_bearer_tokens_from_settings(token_env):
    app = create_app()
    app.state.ticket_service = AsyncMock()
    app.state.ticket_service.list_tickets = AsyncMock(return_value=[])
    client = TestClient(app)
    payload = {"project_id": "project-1", "title": "Login broken"}

    response = client.get("/tickets", headers={"Authorization": "Bearer dev-token"})
    assert response.status_code == 200
    assert response.json() == []
    actor = app.state.ticket_service.list_tickets.await_args.args[0]
    assert (actor.id, actor.role) == ("developer-1", Role.DEVELOPER)

    assert client.post("/tickets", json=payload, headers={"Authorization": "Bearer dev-token"}).status_code == 403
    assert client.get("/tickets", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get("/tickets", headers={"Authorization": "Basic abc"}).status_code == 401
    assert client.get("/tickets").status_code == 401
    assert client.get("/ping").json() == {"status": "ok"}
