"""
Unit tests for bearer token verification and issuance.
"""

import time

import jwt as pyjwt
import pytest
from prometheus_client import CollectorRegistry

from service_gateway.app.auth import ClaimSet, TokenVerifier, extract_bearer_token
from shared.errors import (
    AuthenticationError,
    ExpiredTokenError,
    InvalidTokenPayloadError,
    MalformedTokenError,
    MissingTokenError,
)
from shared.metrics import MetricsCollector
from shared.test_helpers import TEST_JWT_SECRET, MockTokenGenerator, test_data_factory


class TestExtractBearerToken:
    """Test cases for header parsing."""

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "bearer abc", "Bearer ", "Bearer    "])
    def test_missing_or_wrong_scheme(self, header):
        with pytest.raises(MissingTokenError) as exc_info:
            extract_bearer_token(header)
        assert exc_info.value.code == "MISSING_TOKEN"
        assert exc_info.value.status_code == 401

    def test_returns_token(self):
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"


class TestTokenVerifier:
    """Test cases for TokenVerifier."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("gateway-test", registry=CollectorRegistry())

    @pytest.fixture
    def verifier(self, metrics):
        return TokenVerifier(TEST_JWT_SECRET, ["HS256"], metrics=metrics)

    @pytest.fixture
    def tokens(self):
        return MockTokenGenerator()

    @pytest.fixture
    def user(self):
        return test_data_factory.create_test_users()[0]

    def test_verify_returns_exact_claims(self, verifier, tokens, user):
        token = tokens.generate_access_token(user)

        claims = verifier.verify(token)

        assert isinstance(claims, ClaimSet)
        assert claims.id == user.id
        assert claims.email == user.email
        assert claims.profile_id == user.profile_id
        assert claims.profile_name == user.profile_name
        assert claims.exp > claims.iat

    @pytest.mark.parametrize("missing", ["id", "email", "profile_id", "profile_name"])
    def test_missing_required_claim(self, verifier, tokens, user, missing):
        token = tokens.generate_access_token(user, omit=(missing,))

        with pytest.raises(InvalidTokenPayloadError) as exc_info:
            verifier.verify(token)

        assert exc_info.value.code == "INVALID_TOKEN"
        assert exc_info.value.details["missing"] == [missing]

    def test_expired_token(self, verifier, tokens, user):
        with pytest.raises(ExpiredTokenError) as exc_info:
            verifier.verify(tokens.generate_expired_token(user))
        assert exc_info.value.code == "EXPIRED_TOKEN"

    def test_algorithm_outside_allow_list(self, verifier, tokens, user):
        token = tokens.generate_access_token(user, algorithm="HS512")

        with pytest.raises(MalformedTokenError) as exc_info:
            verifier.verify(token)
        assert exc_info.value.code == "MALFORMED_TOKEN"

    def test_algorithm_inside_allow_list(self, tokens, user):
        verifier = TokenVerifier(TEST_JWT_SECRET, ["HS256", "HS512"])
        token = tokens.generate_access_token(user, algorithm="HS512")

        assert verifier.verify(token).id == user.id

    def test_wrong_secret(self, verifier, tokens, user):
        token = tokens.generate_access_token(user, secret="another-secret-that-is-long-enough-too")

        with pytest.raises(MalformedTokenError):
            verifier.verify(token)

    def test_garbage_token(self, verifier):
        with pytest.raises(MalformedTokenError):
            verifier.verify("not-a-jwt")

    def test_unsigned_token_rejected(self, verifier, user):
        token = pyjwt.encode({**user.claims(), "exp": int(time.time()) + 60}, None, algorithm="none")

        with pytest.raises(MalformedTokenError):
            verifier.verify(token)

    def test_issue_round_trips_through_verify(self, verifier, user):
        now = int(time.time())
        token = verifier.issue(user.claims(), now=now)

        claims = verifier.verify(token)

        assert claims.iat == now
        assert claims.exp == now + verifier.expires_in
        assert claims.profile_name == user.profile_name

    def test_issue_signs_with_first_allowed_algorithm(self, user):
        verifier = TokenVerifier(TEST_JWT_SECRET, ["HS384", "HS256"])
        token = verifier.issue(user.claims())

        assert pyjwt.get_unverified_header(token)["alg"] == "HS384"

    def test_authenticate_success_is_audited(self, verifier, tokens, user, metrics):
        claims = verifier.authenticate(
            f"Bearer {tokens.generate_access_token(user)}",
            client_address="10.0.0.1",
            endpoint="/api/auth/me",
        )

        assert claims.id == user.id
        assert metrics.sample_value("auth_attempts_total", outcome="success") == 1

    def test_authenticate_failure_is_audited(self, verifier, metrics):
        with pytest.raises(AuthenticationError):
            verifier.authenticate(None, client_address="10.0.0.1", endpoint="/api/auth/me")

        assert metrics.sample_value("auth_attempts_total", outcome="missing_token") == 1

    def test_requires_an_algorithm(self):
        with pytest.raises(ValueError):
            TokenVerifier(TEST_JWT_SECRET, [])
