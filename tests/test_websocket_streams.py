import asyncio

import pytest
from fastapi.websockets import WebSocketDisconnect

from app.api import websocket as websocket_api
from app.modules.collaboration.schemas import CollaborationCreate, CollaborationUpdate
from app.services.collaboration import CollaborationService, InvitationWorkflow
from tests.helpers import make_user


def _seed(store):
    return CollaborationService(store).create(
        CollaborationCreate(title="Live", description="d", genre="blues"),
        make_user("creator"),
    )


def test_collaboration_stream_pushes_changes(client, store):
    collab = _seed(store)
    service = CollaborationService(store)

    with client.websocket_connect(
        f"/ws/collaborations/{collab.id}", headers={"X-User-Id": "ann"}
    ) as websocket:
        first = websocket.receive_json()
        assert first["collaboration"]["title"] == "Live"

        service.update(collab.id, CollaborationUpdate(title="Live at Nine"))
        assert websocket.receive_json()["collaboration"]["title"] == "Live at Nine"

        service.delete(collab.id)
        assert websocket.receive_json() == {"collaboration": None}


def test_invitation_stream_lists_pending_invitations(client, store):
    collab = _seed(store)
    workflow = InvitationWorkflow(store)

    with client.websocket_connect(
        "/ws/users/ann/invitations", headers={"X-User-Id": "ann"}
    ) as websocket:
        assert websocket.receive_json() == {"invitations": []}
        workflow.invite(collab.id, from_user_id="creator", to_user_id="ann")
        frame = websocket.receive_json()
        assert [i["collaborationId"] for i in frame["invitations"]] == [collab.id]


def test_invitation_stream_is_private(client):
    with client.websocket_connect(
        "/ws/users/ann/invitations", headers={"X-User-Id": "bob"}
    ) as websocket:
        with pytest.raises(WebSocketDisconnect) as excinfo:
            websocket.receive_json()
    assert excinfo.value.code == 4403


def test_stream_requires_identity(client, store):
    collab = _seed(store)
    with client.websocket_connect(f"/ws/collaborations/{collab.id}") as websocket:
        with pytest.raises(WebSocketDisconnect) as excinfo:
            websocket.receive_json()
    assert excinfo.value.code == 4401


def test_stream_token_is_verified_off_the_event_loop(client, store, monkeypatch):
    collab = _seed(store)
    calls = []

    def verify(token):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            calls.append("worker")
        else:
            calls.append("loop")
        return make_user("ann")

    monkeypatch.setattr(websocket_api.settings, "auth_disabled", False)
    monkeypatch.setattr(websocket_api, "verify_firebase_token", verify)

    with client.websocket_connect(
        f"/ws/collaborations/{collab.id}?token=id-token"
    ) as websocket:
        assert websocket.receive_json()["collaboration"]["id"] == collab.id
    assert calls == ["worker"]
