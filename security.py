# Хеширование паролей и JWT-токены. Здесь нет обращений к БД и к app.state:
# секрет и срок жизни всегда передаются явно.
from datetime import datetime, timedelta, UTC
from functools import lru_cache

from jose import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError

BCRYPT_ROUNDS = 10

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


@lru_cache
def _context_for(rounds: int) -> CryptContext:
    if rounds == BCRYPT_ROUNDS:
        return pwd_context
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


class TokenClaims(BaseModel):
    """Данные пользователя, зашитые в токен в момент логина."""
    id: int
    username: str


def get_password_hash(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Хеширует пароль (bcrypt, соль генерируется автоматически)."""
    return _context_for(rounds).hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Проверяет, соответствует ли обычный пароль хешированному."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Битый хеш в базе - это просто "неверный пароль"
        return False


def create_access_token(*, user_id: int, username: str, secret: str,
                        expires_in: timedelta, algorithm: str = 'HS256') -> str:
    now = datetime.now(UTC)
    to_encode = {
        'id': user_id,
        'username': username,
        'iat': now,
        'exp': now + expires_in,
    }
    return jwt.encode(to_encode, secret, algorithm=algorithm)


def decode_access_token(token: str, *, secret: str, algorithm: str = 'HS256') -> TokenClaims:
    """
    Проверяет подпись и срок действия токена.
    JWTError - подпись неверна, токен битый или истек; ValueError - нет нужных полей.
    """
    payload = jwt.decode(token, secret, algorithms=[algorithm])
    try:
        return TokenClaims(id=payload.get('id'), username=payload.get('username'))
    except ValidationError as e:
        raise ValueError('token claims are incomplete') from e
