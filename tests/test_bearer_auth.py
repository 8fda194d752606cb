"""Tests for the bearer token authentication middleware."""

import pytest

from phoneauth.middleware.bearer_auth import (
    EXEMPT_PATHS,
    MALFORMED_HEADER_DETAIL,
    authenticate_request,
    is_exempt,
)
from phoneauth.services.results import FAILURE_MESSAGES, AuthFailure
from tests.conftest import bearer


class TestExemptPathMatching:
    """Tests for EXEMPT_PATHS matching logic."""

    def test_exact_and_subpaths_match(self):
        for exempt in EXEMPT_PATHS:
            assert is_exempt(exempt)
            assert is_exempt(exempt + "/anything")

    def test_similar_prefix_does_not_match(self):
        """/otpx must not ride on the /otp exemption."""
        for path in ("/otpx", "/healthz", "/internal-admin", "/session/me"):
            assert not is_exempt(path), path

    def test_logout_all_stays_protected(self):
        assert is_exempt("/session/logout")
        assert not is_exempt("/session/logout-all")


class TestAuthenticateRequest:
    @pytest.mark.asyncio
    async def test_no_header_is_anonymous(self, token_engine):
        outcome = await authenticate_request(None, token_engine)
        assert outcome.anonymous

    @pytest.mark.asyncio
    async def test_non_bearer_scheme_is_rejected(self, token_engine):
        outcome = await authenticate_request("Basic dXNlcjpwYXNz", token_engine)
        assert outcome.rejection == MALFORMED_HEADER_DETAIL

    @pytest.mark.asyncio
    async def test_empty_bearer_is_rejected(self, token_engine):
        outcome = await authenticate_request("Bearer ", token_engine)
        assert outcome.rejection == MALFORMED_HEADER_DETAIL

    @pytest.mark.asyncio
    async def test_invalid_token_is_rejected_with_reason(self, token_engine):
        outcome = await authenticate_request("Bearer nope", token_engine)
        assert outcome.rejection == FAILURE_MESSAGES[AuthFailure.INVALID_SIGNATURE]
        assert outcome.context is None

    @pytest.mark.asyncio
    async def test_valid_token_binds_context(self, token_engine, principal):
        issued = await token_engine.issue_token(principal)

        outcome = await authenticate_request(f"bearer {issued.token}", token_engine)

        assert outcome.rejection is None
        assert outcome.context.principal_id == principal.id
        assert outcome.context.token == issued.token
        assert outcome.context.claims["jti"] == issued.session_token.jti


class TestMiddleware:
    @pytest.mark.asyncio
    async def test_protected_route_without_header(self, async_client):
        response = await async_client.get("/session/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    @pytest.mark.asyncio
    async def test_malformed_header(self, async_client):
        response = await async_client.get("/session/me", headers={"Authorization": "Token abc"})
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["detail"] == MALFORMED_HEADER_DETAIL

    @pytest.mark.asyncio
    async def test_invalid_token(self, async_client):
        response = await async_client.get("/session/me", headers=bearer("garbage"))
        assert response.status_code == 401
        assert response.json()["detail"] == FAILURE_MESSAGES[AuthFailure.INVALID_SIGNATURE]

    @pytest.mark.asyncio
    async def test_valid_token(self, async_client, login, principal):
        response = await async_client.get("/session/me", headers=bearer(login))
        assert response.status_code == 200
        assert response.json()["id"] == str(principal.id)

    @pytest.mark.asyncio
    async def test_exempt_paths_ignore_bad_tokens(self, async_client):
        """A stale token must not block getting a new one."""
        response = await async_client.post(
            "/otp/send", json={"phone": "9998887777"}, headers=bearer("stale")
        )
        assert response.status_code == 200

        response = await async_client.get("/health", headers=bearer("stale"))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_expired_token(self, async_client, login, clock):
        clock.advance(days=31)
        response = await async_client.get("/session/me", headers=bearer(login))
        assert response.status_code == 401
        assert response.json()["detail"] == FAILURE_MESSAGES[AuthFailure.REVOKED_OR_EXPIRED]

    @pytest.mark.asyncio
    async def test_deactivated_principal(self, async_client, login, principal, db_session):
        principal.is_active = False
        await db_session.commit()

        response = await async_client.get("/session/me", headers=bearer(login))
        assert response.status_code == 401
        assert response.json()["detail"] == "Account is deactivated"
