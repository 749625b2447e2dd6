"""Access token issue/verify tests."""

from datetime import timedelta

from jose import jwt

from headshot.core.timezone import utcnow
from headshot.services.auth_tokens import create_access_token, decode_access_token


def test_token_round_trips_user_id(settings):
    token = create_access_token(42, settings)

    assert decode_access_token(token, settings) == 42


def test_expired_token_is_rejected(settings):
    payload = {"sub": "42", "type": "access", "exp": utcnow() - timedelta(minutes=1)}
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    assert decode_access_token(token, settings) is None


def test_token_signed_with_other_secret_is_rejected(settings):
    token = jwt.encode({"sub": "42", "type": "access"}, "another-secret", algorithm="HS256")

    assert decode_access_token(token, settings) is None


def test_refresh_token_type_is_rejected(settings):
    token = jwt.encode(
        {"sub": "42", "type": "refresh"}, settings.jwt_secret, algorithm=settings.jwt_algorithm
    )

    assert decode_access_token(token, settings) is None


def test_non_numeric_subject_is_rejected(settings):
    token = jwt.encode(
        {"sub": "alice", "type": "access"}, settings.jwt_secret, algorithm=settings.jwt_algorithm
    )

    assert decode_access_token(token, settings) is None


def test_missing_secret_rejects_everything(settings):
    token = create_access_token(42, settings)
    unconfigured = settings.model_copy(update={"jwt_secret": ""})

    assert decode_access_token(token, unconfigured) is None
