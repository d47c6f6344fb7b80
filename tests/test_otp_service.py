from datetime import datetime, timedelta

import pytest

from marketplace.crud.crud_otp import otp_verification as otp_crud
from marketplace.services.otp_service import (
    MESSAGE_INVALID,
    MESSAGE_NOT_FOUND,
    MESSAGE_TOO_MANY_ATTEMPTS,
    MESSAGE_VERIFIED,
    FixedCodeGenerator,
    OtpVerificationEngine,
    RandomCodeGenerator,
)


class FrozenClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0))


@pytest.fixture()
def engine(clock):
    return OtpVerificationEngine(code_generator=FixedCodeGenerator("1111"), clock=clock)


def test_random_code_generator_produces_digits():
    code = RandomCodeGenerator(6)()
    assert len(code) == 6
    assert code.isdigit()


def test_random_code_generator_rejects_bad_length():
    with pytest.raises(ValueError):
        RandomCodeGenerator(3)


def test_only_one_live_code_per_scope(db, engine, clock):
    for _ in range(3):
        engine.create_for_entity(db, "user", 1, "966500000001", "registration")

    assert otp_crud.count_live(db, "user", 1, "registration", clock()) == 1


def test_new_code_does_not_touch_other_purposes(db, engine, clock):
    engine.create_for_entity(db, "user", 1, "966500000001", "registration")
    engine.create_for_entity(db, "user", 1, "966500000001", "password_reset")

    assert otp_crud.count_live(db, "user", 1, "registration", clock()) == 1
    assert otp_crud.count_live(db, "user", 1, "password_reset", clock()) == 1


def test_correct_code_verifies_once(db, engine):
    engine.create_for_entity(db, "user", 1, "966500000001", "registration")

    result = engine.verify_for_entity(db, "user", 1, "1111", "registration")
    assert result.success is True
    assert result.message == MESSAGE_VERIFIED
    assert result.record.attempts == 1

    again = engine.verify_for_entity(db, "user", 1, "1111", "registration")
    assert again.success is False
    assert again.message == MESSAGE_NOT_FOUND


def test_attempt_cap_locks_the_code(db, engine):
    engine.create_for_entity(db, "user", 7, "966500000007", "registration")

    for _ in range(4):
        result = engine.verify_for_entity(db, "user", 7, "9999", "registration")
        assert result.success is False
        assert result.message == MESSAGE_INVALID

    fifth = engine.verify_for_entity(db, "user", 7, "9999", "registration")
    assert fifth.message == MESSAGE_TOO_MANY_ATTEMPTS

    correct = engine.verify_for_entity(db, "user", 7, "1111", "registration")
    assert correct.success is False
    assert correct.message == MESSAGE_NOT_FOUND


def test_fresh_code_after_lockout_works(db, engine):
    engine.create_for_entity(db, "user", 7, "966500000007", "registration")
    for _ in range(5):
        engine.verify_for_entity(db, "user", 7, "9999", "registration")

    engine.create_for_entity(db, "user", 7, "966500000007", "registration")
    assert engine.verify_for_entity(db, "user", 7, "1111", "registration").success is True


def test_expired_code_is_not_found(db, engine, clock):
    engine.create_for_entity(db, "provider", 3, "966555000003", "registration")
    clock.advance(minutes=6)

    result = engine.verify_for_entity(db, "provider", 3, "1111", "registration")
    assert result.success is False
    assert result.message == MESSAGE_NOT_FOUND


def test_code_valid_just_before_expiry(db, engine, clock):
    engine.create_for_entity(db, "provider", 3, "966555000003", "registration")
    clock.advance(minutes=4, seconds=59)

    assert engine.verify_for_entity(db, "provider", 3, "1111", "registration").success is True


def test_purge_keeps_only_live_codes(db, engine, clock):
    engine.create_for_entity(db, "user", 1, "966500000001", "registration")
    engine.create_for_entity(db, "user", 1, "966500000001", "registration")
    engine.create_for_entity(db, "user", 2, "966500000002", "registration")
    engine.verify_for_entity(db, "user", 2, "1111", "registration")
    clock.advance(minutes=3)
    engine.create_for_entity(db, "user", 3, "966500000003", "password_reset")

    clock.advance(minutes=3)
    # Both codes of user 1 (one replaced, one expired) and the consumed one of user 2.
    assert engine.purge_stale(db) == 3
    assert engine.find_valid_for_entity(db, "user", 3, "password_reset") is not None
    assert engine.purge_stale(db) == 0
