import asyncio
from datetime import datetime, timedelta

from marketplace.models.otp_verification import OtpVerification
from marketplace.models.token import Token
from marketplace.services import cleanup_service
from marketplace.services.auth_service import token_service
from marketplace.services.otp_service import otp_engine


def test_sweep_removes_expired_tokens_and_used_codes(db):
    live_token = token_service.issue(db, {"id": 1, "userType": "user"})
    token_service.issue(db, {"id": 2, "userType": "user"})
    db.query(Token).filter(Token.subject_id == 2).update({Token.expires_at: datetime.utcnow() - timedelta(minutes=1)})
    db.commit()

    otp_engine.create_for_entity(db, "user", 1, "966500000001", "registration")
    live_code = otp_engine.create_for_entity(db, "user", 1, "966500000001", "registration")

    assert cleanup_service.sweep(db) == {"tokens": 1, "otps": 1}
    assert token_service.verify(db, live_token)["id"] == 1
    assert [row.id for row in db.query(OtpVerification).all()] == [live_code.id]


def test_disabled_sweeper_never_starts():
    sweeper = cleanup_service.ExpiredRecordSweeper(interval_minutes=5, enabled=False)

    asyncio.run(sweeper.start())
    assert sweeper._task is None


def test_sweeper_runs_once_and_stops(monkeypatch):
    runs = []
    monkeypatch.setattr(cleanup_service.ExpiredRecordSweeper, "_sweep_once", staticmethod(lambda: runs.append(1)))

    async def cycle():
        sweeper = cleanup_service.ExpiredRecordSweeper(interval_minutes=5)
        await sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()

    asyncio.run(cycle())
    assert runs == [1]
