import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# --- 1. Импортируем наши модули ---
# ВАЖНО: config должен импортироваться первым, он сам загрузит .env или .env.test
from config import load_settings, setup_logging
from database import AppContext, connect_to_db, close_db_connection
from errors import http_exception_handler, validation_exception_handler, unhandled_exception_handler
from auth import router as auth_router
from routers.products import router as products_router

logger = logging.getLogger(__name__)


# --- 2. Управление жизненным циклом приложения ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Создает AppContext один раз при старте и закрывает пул при остановке.
    С TESTING=True к базе не подключаемся: тесты подменяют get_context.
    """
    settings = load_settings()
    setup_logging(settings.log_level)
    ctx = AppContext(settings=settings)

    if settings.testing:
        logger.info('TESTING mode: skipping DB connect')
    else:
        ctx.pool = await connect_to_db(settings)
    app.state.ctx = ctx

    yield

    logger.info('Shutting down')
    if ctx.pool is not None:
        await close_db_connection(ctx.pool)


# --- 3. Создаем и настраиваем приложение ---
app = FastAPI(
    title='Products API',
    description='Registration, JWT login and CRUD over products.',
    version='1.0.0',
    lifespan=lifespan,
)

# Все ошибки отдаем в одном формате: {"error": "..."}
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


# --- 4. Подключаем роутеры ---
app.include_router(auth_router)
app.include_router(products_router)


# --- 5. Корневой эндпоинт: документация API ---
API_DOCS_HTML = """<!DOCTYPE html>
<html lang="en">
    <head><meta charset="UTF-8"><title>API Documentation</title></head>
    <body>
        <h1>REST API Documentation</h1>
        <ul>
            <li><strong>POST</strong> /register - Create a user account</li>
            <li><strong>POST</strong> /login - Log in and receive a JWT token</li>
            <li><strong>GET</strong> /products - List all products (requires JWT)</li>
            <li><strong>GET</strong> /products/:id - Get a single product (requires JWT)</li>
            <li><strong>POST</strong> /products - Create a product (requires JWT)</li>
            <li><strong>PUT</strong> /products/:id - Update a product (requires JWT)</li>
            <li><strong>DELETE</strong> /products/:id - Delete a product (requires JWT)</li>
        </ul>
    </body>
</html>
"""


@app.get('/', tags=['Root'], response_class=HTMLResponse)
def read_root():
    """HTML-страница со списком эндпоинтов."""
    return API_DOCS_HTML


if __name__ == '__main__':
    import uvicorn

    settings = load_settings()
    uvicorn.run('main:app', host=settings.host, port=settings.port)
