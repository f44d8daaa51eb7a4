import uuid
from dataclasses import dataclass
from typing import Optional

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings


class InvalidToken(Exception):
    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    email: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="access-token")


def issue_token(user_id: uuid.UUID, email: str) -> str:
    return _serializer().dumps({"u": str(user_id), "e": email})


def verify_token(token: str, max_age_minutes: Optional[int] = None) -> TokenClaims:
    if max_age_minutes is None:
        max_age_minutes = get_settings().token_max_age_minutes
    try:
        data = _serializer().loads(token, max_age=max_age_minutes * 60)
    except SignatureExpired as exc:
        raise InvalidToken("token has expired") from exc
    except BadSignature as exc:
        raise InvalidToken("invalid token") from exc

    try:
        return TokenClaims(user_id=uuid.UUID(data["u"]), email=data["e"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidToken("invalid token claims") from exc
