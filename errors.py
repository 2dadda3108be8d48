# Ошибки API. Каждый класс - это HTTPException с фиксированным статусом,
# поэтому FastAPI сам превращает их в ответ через наш обработчик в main.py.
import logging

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = 'Server error'

    def __init__(self, message: str | None = None, headers: dict | None = None):
        super().__init__(status_code=self.status_code, detail=message or self.message, headers=headers)


class MissingFieldsError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = 'Required fields are missing'

    @classmethod
    def for_fields(cls, fields: list[str]) -> 'MissingFieldsError':
        return cls(f"Missing required fields: {', '.join(fields)}")


class UnauthorizedError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = 'Token missing'

    def __init__(self, message: str | None = None):
        super().__init__(message, headers={'WWW-Authenticate': 'Bearer'})


class ForbiddenError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    message = 'Invalid token'


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    message = 'Product not found'


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    message = 'Username already taken'


class InternalError(ApiError):
    pass


# --- Обработчики исключений: все ошибки отдаются как {"error": <сообщение>} ---

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={'error': exc.detail},
        headers=getattr(exc, 'headers', None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    # Кривой id в пути не может совпасть ни с одним продуктом
    if any(err.get('loc', ())[:1] == ('path',) for err in errors):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={'error': NotFoundError.message})

    problems = []
    for err in errors:
        loc = [str(part) for part in err.get('loc', ()) if part != 'body']
        field = '.'.join(loc) or 'body'
        problems.append(f"{field}: {err.get('msg', 'invalid value')}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'error': 'Invalid request body' + (f" ({'; '.join(problems)})" if problems else '')},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error('Unhandled error on %s %s', request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'error': InternalError.message},
    )
