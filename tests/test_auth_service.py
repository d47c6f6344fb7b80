from datetime import datetime, timedelta

import pytest
from jose import jwt

from marketplace.crud.crud_token import token as token_crud
from marketplace.services.auth_service import (
    TokenService,
    get_password_hash,
    verify_password,
)


def shifted_clock(**kwargs):
    return lambda: datetime.utcnow() + timedelta(**kwargs)


@pytest.fixture()
def service():
    return TokenService(secret="unit-secret", expire_minutes=60)


def test_password_hash_roundtrip():
    hashed = get_password_hash("Secret@123")
    assert hashed != "Secret@123"
    assert verify_password("Secret@123", hashed) is True
    assert verify_password("Wrong@123", hashed) is False


def test_verify_password_without_hash():
    assert verify_password("Secret@123", None) is False
    assert verify_password("Secret@123", "not-a-bcrypt-hash") is False


def test_missing_secret_is_rejected():
    with pytest.raises(RuntimeError):
        TokenService(secret="")


def test_issue_and_verify(db, service):
    token = service.issue(db, {"id": 5, "userType": "user"})

    claims = service.verify(db, token)
    assert claims["id"] == 5
    assert claims["userType"] == "user"
    assert claims["jti"]

    record = token_crud.get_by_jti(db, claims["jti"])
    assert record.subject_type == "user"
    assert record.subject_id == 5


def test_revoked_token_is_rejected(db, service):
    token = service.issue(db, {"id": 5, "userType": "user"})
    assert service.revoke(db, token) == 1
    assert service.verify(db, token) is None


def test_unknown_token_is_rejected(db, service):
    assert service.verify(db, "not-a-token") is None


def test_token_must_match_its_ledger_row(db, service):
    token = service.issue(db, {"id": 5, "userType": "user"})
    claims = jwt.get_unverified_claims(token)
    claims["id"] = 6
    altered = jwt.encode(claims, "unit-secret", algorithm="HS256")

    assert service.verify(db, altered) is None
    assert service.revoke(db, altered) == 0
    assert service.verify(db, token)["id"] == 5


def test_expired_ledger_row_is_rejected(db, service):
    token = service.issue(db, {"id": 5, "userType": "user"})
    later = TokenService(secret="unit-secret", expire_minutes=60, clock=shifted_clock(days=2))
    assert later.verify(db, token) is None


def test_signature_from_other_secret_is_rejected(db, service):
    token = service.issue(db, {"id": 5, "userType": "user"})
    other = TokenService(secret="other-secret")
    assert other.verify(db, token) is None


def test_revoke_all_only_touches_subject(db, service):
    first = service.issue(db, {"id": 5, "userType": "user"})
    second = service.issue(db, {"id": 5, "userType": "user"})
    provider = service.issue(db, {"id": 5, "userType": "provider"})

    assert service.revoke_all(db, "user", 5) == 2
    assert service.verify(db, first) is None
    assert service.verify(db, second) is None
    assert service.verify(db, provider) is not None


def test_purge_expired(db, service):
    service.issue(db, {"id": 1, "userType": "user"})
    service.issue(db, {"id": 2, "userType": "user"}, expire_minutes=60 * 24 * 7)

    later = TokenService(secret="unit-secret", clock=shifted_clock(days=2))
    assert later.purge_expired(db) == 1
