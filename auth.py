# auth.py
import logging
from typing import Optional

import asyncpg
from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from pydantic import BaseModel

import crud
from config import Settings
from database import get_pool, get_settings
from errors import ConflictError, ForbiddenError, InternalError, MissingFieldsError, UnauthorizedError
from security import TokenClaims, create_access_token, decode_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

# auto_error=False: ответ на отсутствие токена формируем сами (401, а не 403 от FastAPI)
security = HTTPBearer(auto_error=False)

router = APIRouter(tags=['Authentication'])

INVALID_CREDENTIALS = 'Invalid username or password'


# --- 1. Модели Pydantic ---
# Поля необязательны на уровне схемы: отсутствие проверяем сами и отвечаем 400
class RegisterRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UserOut(BaseModel):
    id: int
    username: str
    email: str


class TokenOut(BaseModel):
    token: str


def require_fields(payload: BaseModel, *fields: str) -> None:
    """Бросает MissingFieldsError, если какое-то поле не пришло или пустое."""
    missing = [name for name in fields if getattr(payload, name) in (None, '')]
    if missing:
        raise MissingFieldsError.for_fields(missing)


# --- 2. Зависимость: проверка токена ---
async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> TokenClaims:
    """
    Достает Bearer-токен из заголовка Authorization и проверяет его.
    Нет токена - 401, токен поддельный или истек - 403. В базу не ходит.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError('Token missing')

    try:
        claims = decode_access_token(
            credentials.credentials,
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
    except (JWTError, ValueError) as e:
        logger.info('Rejected token: %s', e)
        raise ForbiddenError('Invalid token')

    request.state.user = claims
    return claims


# --- 3. Эндпоинты ---

@router.post('/register', response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(
    user_in: RegisterRequest,
    pool: asyncpg.Pool = Depends(get_pool),
    settings: Settings = Depends(get_settings),
):
    """Создает пользователя. Пароль сохраняется только в виде bcrypt-хеша."""
    require_fields(user_in, 'username', 'password', 'email')

    try:
        # bcrypt грузит CPU, поэтому считаем его в пуле потоков
        hashed_password = await run_in_threadpool(get_password_hash, user_in.password, settings.bcrypt_rounds)
        user_id = await crud.create_user(pool, user_in.username, hashed_password, user_in.email)
    except asyncpg.UniqueViolationError:
        raise ConflictError('Username already taken')
    except Exception:
        logger.exception('Registration failed for %r', user_in.username)
        raise InternalError()

    logger.info('Registered user %r (id=%s)', user_in.username, user_id)
    return UserOut(id=user_id, username=user_in.username, email=user_in.email)


@router.post('/login', response_model=TokenOut)
async def login(
    credentials: LoginRequest,
    pool: asyncpg.Pool = Depends(get_pool),
    settings: Settings = Depends(get_settings),
):
    """Выдает токен. Неизвестный логин и неверный пароль неотличимы для клиента."""
    require_fields(credentials, 'username', 'password')

    try:
        user = await crud.get_user_by_username(pool, credentials.username)
        valid = user is not None and await run_in_threadpool(
            verify_password, credentials.password, user['password']
        )
    except Exception:
        logger.exception('Login lookup failed for %r', credentials.username)
        raise InternalError()

    if not valid:
        raise UnauthorizedError(INVALID_CREDENTIALS)

    token = create_access_token(
        user_id=user['id'],
        username=user['username'],
        secret=settings.jwt_secret,
        expires_in=settings.jwt_expires_in,
        algorithm=settings.jwt_algorithm,
    )
    logger.info('User %r logged in', user['username'])
    return TokenOut(token=token)

