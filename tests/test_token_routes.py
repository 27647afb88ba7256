"""Tests for the token REST endpoints."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from secure_token.api import security
from secure_token.api.main import app
from secure_token.api.token_routes import set_vault
from secure_token.vault.encryption import CipherMode, CryptoCodec
from secure_token.vault.token_store import InMemoryTokenStore
from secure_token.vault.token_vault import TokenVault

API_KEY = "test-api-key"
HEADERS = {"X-API-Key": API_KEY}
CARD = "4111-1111-1111-1111"


@pytest.fixture
def store():
    return InMemoryTokenStore()


@pytest.fixture
def vault(store, encryption_key, clock, audit_logger):
    v = TokenVault(
        store=store,
        encryption_key=encryption_key,
        codec=CryptoCodec(CipherMode.GCM),
        audit_logger=audit_logger,
        clock=clock,
    )
    set_vault(v)
    return v


@pytest.fixture
def client(vault):
    security._API_KEY = API_KEY
    return TestClient(app)


def _tokenize(client, payload=CARD, **extra):
    resp = client.post("/api/tokens", json={"payload": payload, **extra}, headers=HEADERS)
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


class TestAuthentication:
    def test_missing_key(self, client):
        resp = client.post("/api/tokens", json={"payload": CARD})
        assert resp.status_code == 401

    def test_wrong_key(self, client):
        resp = client.post("/api/tokens", json={"payload": CARD}, headers={"X-API-Key": "nope"})
        assert resp.status_code == 401

    def test_unconfigured_key(self, vault):
        client = TestClient(app)
        resp = client.post("/api/tokens", json={"payload": CARD}, headers=HEADERS)
        assert resp.status_code == 503

    def test_health_needs_no_key(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestTokenize:
    def test_tokenize(self, client, vault, clock):
        resp = client.post("/api/tokens", json={"payload": CARD}, headers=HEADERS)
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["token"]) == 32
        assert body["expires_at"] is not None
        assert vault.get_record(body["token"]).expires_at == clock() + timedelta(days=30)

    def test_never_expires(self, client, vault):
        token = _tokenize(client, never_expires=True)
        assert vault.get_record(token).expires_at is None

    def test_explicit_expiry(self, client, vault):
        token = _tokenize(client, expires_at="2024-03-01T00:00:00Z")
        assert vault.get_record(token).expires_at.isoformat() == "2024-03-01T00:00:00+00:00"

    def test_empty_payload(self, client):
        resp = client.post("/api/tokens", json={"payload": ""}, headers=HEADERS)
        assert resp.status_code == 400
        assert "cannot be empty" in resp.json()["detail"]

    def test_lone_surrogate_payload(self, client, store):
        resp = client.post(
            "/api/tokens",
            content='{"payload": "x\\udcff"}',
            headers={**HEADERS, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert "valid text" in resp.json()["detail"]
        assert store.count() == 0

    def test_conflicting_expiry(self, client):
        resp = client.post(
            "/api/tokens",
            json={"payload": CARD, "expires_at": "2024-03-01T00:00:00Z", "never_expires": True},
            headers=HEADERS,
        )
        assert resp.status_code == 400


class TestDetokenize:
    def test_round_trip(self, client):
        token = _tokenize(client)
        resp = client.post("/api/tokens/detokenize", json={"token": token}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json() == {"payload": CARD}

    def test_unknown(self, client):
        resp = client.post("/api/tokens/detokenize", json={"token": "0" * 32}, headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Token not found"

    def test_malformed(self, client):
        resp = client.post("/api/tokens/detokenize", json={"token": "xyz"}, headers=HEADERS)
        assert resp.status_code == 400

    def test_expired(self, client, clock):
        token = _tokenize(client)
        clock.advance(days=31)
        resp = client.post("/api/tokens/detokenize", json={"token": token}, headers=HEADERS)
        assert resp.status_code == 410
        assert resp.json()["detail"] == "Token has expired"

    def test_revoked(self, client):
        token = _tokenize(client)
        client.post(f"/api/tokens/{token}/revoke", headers=HEADERS)
        resp = client.post("/api/tokens/detokenize", json={"token": token}, headers=HEADERS)
        assert resp.status_code == 410
        assert resp.json()["detail"] == "Token has been revoked"

    def test_revoked_hidden(self, client, vault):
        vault.distinguish_revoked = False
        token = _tokenize(client)
        client.post(f"/api/tokens/{token}/revoke", headers=HEADERS)
        resp = client.post("/api/tokens/detokenize", json={"token": token}, headers=HEADERS)
        assert resp.status_code == 404

    def test_corrupt_ciphertext_looks_like_not_found(self, client, store):
        token = _tokenize(client)
        store._records[token].ciphertext = "%%%"
        resp = client.post("/api/tokens/detokenize", json={"token": token}, headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Token not found"


class TestStatusAndUsage:
    def test_status(self, client):
        token = _tokenize(client)
        client.post("/api/tokens/detokenize", json={"token": token}, headers=HEADERS)
        resp = client.get(f"/api/tokens/{token}", headers=HEADERS)
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "active"
        assert body["expired"] is False
        assert body["usage_count"] == 1
        assert "payload" not in body
        assert "ciphertext" not in body

    def test_status_unknown(self, client):
        resp = client.get(f"/api/tokens/{'0' * 32}", headers=HEADERS)
        assert resp.status_code == 404

    def test_status_expired_flag(self, client, clock):
        token = _tokenize(client)
        clock.advance(days=31)
        body = client.get(f"/api/tokens/{token}", headers=HEADERS).json()
        assert body["expired"] is True

    def test_revoke_then_revoke_again(self, client):
        token = _tokenize(client)
        first = client.post(f"/api/tokens/{token}/revoke", headers=HEADERS)
        second = client.post(f"/api/tokens/{token}/revoke", headers=HEADERS)
        assert first.json() == {"revoked": True}
        assert second.json() == {"revoked": False}

    def test_revoke_unknown(self, client):
        resp = client.post(f"/api/tokens/{'0' * 32}/revoke", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json() == {"revoked": False}

    def test_track_usage(self, client, vault):
        token = _tokenize(client)
        resp = client.post(f"/api/tokens/{token}/usage", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert vault.get_record(token).usage_count == 1

    def test_track_usage_unknown(self, client):
        resp = client.post(f"/api/tokens/{'0' * 32}/usage", headers=HEADERS)
        assert resp.status_code == 404
