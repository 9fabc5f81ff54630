"""Tests for the /privacy account deletion endpoints."""

from __future__ import annotations

import re
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from tests.conftest import create_session, create_user


async def _login(app) -> tuple[dict[str, str], uuid.UUID]:
    database = app.state.database
    user_id = await create_user(database, email="ana@example.co")
    token = await create_session(database, user_id)
    return {"Authorization": f"Bearer {token}"}, user_id


class TestAuthentication:
    @pytest.mark.asyncio()
    async def test_401_without_session(self, client):
        resp = await client.get("/privacy/delete-account")
        assert resp.status_code == 401
        assert resp.json() == {"error": "No autenticado"}

    @pytest.mark.asyncio()
    async def test_401_with_unknown_token(self, client):
        resp = await client.post("/privacy/delete-account", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    @pytest.mark.asyncio()
    async def test_401_with_expired_session(self, app, client):
        user_id = await create_user(app.state.database)
        token = await create_session(app.state.database, user_id, valid_for=timedelta(minutes=-1))

        resp = await client.get("/privacy/delete-account", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    @pytest.mark.asyncio()
    async def test_session_cookie_accepted(self, app, client):
        user_id = await create_user(app.state.database)
        token = await create_session(app.state.database, user_id)

        resp = await client.get("/privacy/delete-account", headers={"Cookie": f"ule_session={token}"})
        assert resp.status_code == 200


class TestDeletionFlow:
    @pytest.mark.asyncio()
    async def test_no_active_request(self, app, client):
        headers, _ = await _login(app)

        resp = await client.get("/privacy/delete-account", headers=headers)

        assert resp.status_code == 200
        assert resp.json() == {"solicitud": None, "tieneSolicitudActiva": False}

    @pytest.mark.asyncio()
    async def test_request_confirm_cancel(self, app, client):
        headers, _ = await _login(app)

        resp = await client.post(
            "/privacy/delete-account",
            json={"motivoEliminacion": "Ya no lo necesito"},
            headers=headers,
        )
        assert resp.status_code == 200
        token = resp.json()["token"]
        assert re.fullmatch(r"[0-9a-f]{64}", token)

        resp = await client.get("/privacy/delete-account", headers=headers)
        data = resp.json()
        assert data["tieneSolicitudActiva"] is True
        assert data["solicitud"]["estado"] == "PENDIENTE"
        assert data["solicitud"]["motivoEliminacion"] == "Ya no lo necesito"
        assert data["solicitud"]["fechaEjecucion"] is None

        resp = await client.post(
            "/privacy/delete-account", params={"action": "confirm"}, json={"token": token}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["fechaEjecucion"].startswith("2026-03-31T12:00:00")

        resp = await client.get("/privacy/delete-account", headers=headers)
        assert resp.json()["solicitud"]["estado"] == "EN_PERIODO_GRACIA"

        resp = await client.delete("/privacy/delete-account", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Solicitud de eliminación cancelada"}

        resp = await client.get("/privacy/delete-account", headers=headers)
        assert resp.json()["tieneSolicitudActiva"] is False

    @pytest.mark.asyncio()
    async def test_duplicate_request_returns_same_token(self, app, client):
        headers, _ = await _login(app)

        first = await client.post("/privacy/delete-account", headers=headers)
        second = await client.post("/privacy/delete-account", headers=headers)

        assert first.json()["token"] == second.json()["token"]
        assert second.json()["message"].startswith("Ya existe una solicitud pendiente")

    @pytest.mark.asyncio()
    async def test_request_during_grace_period_sends_no_new_link(self, app, client):
        notifier = AsyncMock()
        app.state.notifier = notifier
        headers, _ = await _login(app)

        created = await client.post("/privacy/delete-account", headers=headers)
        token = created.json()["token"]
        await client.post(
            "/privacy/delete-account", params={"action": "confirm"}, json={"token": token}, headers=headers
        )
        repeated = await client.post("/privacy/delete-account", headers=headers)

        assert repeated.status_code == 200
        body = repeated.json()
        assert "token" not in body
        assert body["estado"] == "EN_PERIODO_GRACIA"
        assert body["message"] != created.json()["message"]
        assert "31/03/2026" in body["message"]
        assert body["fechaEjecucion"].startswith("2026-03-31T12:00:00")
        notifier.send_confirmation_link.assert_awaited_once_with("ana@example.co", token)
        notifier.send_grace_period_started.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_confirm_with_wrong_token(self, app, client):
        headers, _ = await _login(app)
        await client.post("/privacy/delete-account", headers=headers)

        resp = await client.post(
            "/privacy/delete-account", params={"action": "confirm"}, json={"token": "f" * 64}, headers=headers
        )

        assert resp.status_code == 400
        assert resp.json() == {"error": "Token inválido o solicitud no encontrada"}

    @pytest.mark.asyncio()
    async def test_confirm_without_token_is_invalid_data(self, app, client):
        headers, _ = await _login(app)

        resp = await client.post(
            "/privacy/delete-account", params={"action": "confirm"}, json={}, headers=headers
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "Datos inválidos"
        assert resp.json()["details"]

    @pytest.mark.asyncio()
    async def test_reason_too_long_is_invalid_data(self, app, client):
        headers, _ = await _login(app)

        resp = await client.post(
            "/privacy/delete-account", json={"motivoEliminacion": "x" * 1001}, headers=headers
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "Datos inválidos"

    @pytest.mark.asyncio()
    async def test_unknown_action_is_invalid_data(self, app, client):
        headers, _ = await _login(app)

        resp = await client.post("/privacy/delete-account", params={"action": "explode"}, headers=headers)

        assert resp.status_code == 400

    @pytest.mark.asyncio()
    async def test_cancel_via_action_without_request(self, app, client):
        headers, _ = await _login(app)

        resp = await client.post("/privacy/delete-account", params={"action": "cancel"}, headers=headers)

        assert resp.status_code == 200
        assert resp.json()["message"] == "Solicitud de eliminación cancelada exitosamente"

    @pytest.mark.asyncio()
    async def test_history(self, app, client, clock):
        headers, _ = await _login(app)
        token = (await client.post("/privacy/delete-account", headers=headers)).json()["token"]
        clock.advance(minutes=1)
        await client.post(
            "/privacy/delete-account", params={"action": "confirm"}, json={"token": token}, headers=headers
        )

        resp = await client.get("/privacy/delete-account", params={"historial": "true"}, headers=headers)

        assert resp.status_code == 200
        actions = [entry["accion"] for entry in resp.json()["historial"]]
        assert actions == ["ELIMINACION_CONFIRMADA", "SOLICITUD_ELIMINACION"]
        assert resp.json()["historial"][0]["metadata"]["fecha_ejecucion"].startswith("2026-03-31")


class TestConfirmationLink:
    @pytest.mark.asyncio()
    async def test_confirms_without_session(self, app, client):
        headers, _ = await _login(app)
        token = (await client.post("/privacy/delete-account", headers=headers)).json()["token"]

        resp = await client.post("/privacy/confirm-deletion", json={"token": token})

        assert resp.status_code == 200
        assert resp.json()["success"] is True

        resp = await client.post("/privacy/confirm-deletion", json={"token": token})
        assert resp.status_code == 400

    @pytest.mark.asyncio()
    async def test_missing_body_is_invalid_data(self, client):
        resp = await client.post("/privacy/confirm-deletion", json={})

        assert resp.status_code == 400
        assert resp.json()["error"] == "Datos inválidos"


class TestHealth:
    @pytest.mark.asyncio()
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
