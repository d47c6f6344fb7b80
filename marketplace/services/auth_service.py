import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.crud.crud_token import token as token_crud

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


class TokenService:
    """Signed tokens backed by a ledger so they can be revoked before expiry.

    Rows are looked up by the token's ``jti`` claim. A token is accepted
    only while its ledger row exists, the row's ``expires_at`` is in the
    future and the signature verifies.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        if not secret:
            raise RuntimeError("JWT_SECRET is not configured")
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes
        self.clock = clock

    def issue(self, db: Session, claims: dict, expire_minutes: Optional[int] = None) -> str:
        now = self.clock()
        expires_at = now + timedelta(minutes=expire_minutes or self.expire_minutes)
        jti = str(uuid.uuid4())
        payload = dict(claims)
        payload.update({"iat": now, "exp": expires_at, "jti": jti})
        encoded = jwt.encode(payload, self.secret, algorithm=self.algorithm)

        subject_id = claims.get("user_id") or claims.get("id")
        token_crud.create(
            db,
            token=encoded,
            jti=jti,
            expires_at=expires_at,
            subject_type=claims.get("userType"),
            subject_id=subject_id,
        )
        return encoded

    @staticmethod
    def _jti_of(token: str) -> Optional[str]:
        try:
            return jwt.get_unverified_claims(token).get("jti")
        except JWTError:
            return None

    def _find_record(self, db: Session, token: str):
        jti = self._jti_of(token)
        if not jti:
            return None
        record = token_crud.get_by_jti(db, jti)
        if record is None or record.token != token:
            return None
        return record

    def verify(self, db: Session, token: str) -> Optional[dict]:
        record = self._find_record(db, token)
        if record is None:
            return None
        if self.clock() > record.expires_at:
            return None
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as exc:
            logger.info("Rejected token jti=%s: %s", record.jti, exc)
            return None

    def revoke(self, db: Session, token: str) -> int:
        record = self._find_record(db, token)
        if record is None:
            return 0
        return token_crud.delete_by_jti(db, record.jti)

    def revoke_all(self, db: Session, subject_type: str, subject_id: int) -> int:
        return token_crud.delete_for_subject(db, subject_type, subject_id)

    def purge_expired(self, db: Session) -> int:
        return token_crud.delete_expired(db, self.clock())


token_service = TokenService(
    secret=settings.JWT_SECRET,
    algorithm=settings.ALGORITHM,
    expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
)


def create_access_token(db: Session, claims: dict) -> str:
    return token_service.issue(db, claims)
