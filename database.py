# Управление соединением с базой данных и общий контекст приложения.
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import asyncpg
from fastapi import Depends, Request

from config import Settings

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """
    Всё, что создается один раз при старте: настройки и пул соединений.
    Живет в app.state.ctx, в эндпоинты попадает только через зависимости.
    """
    settings: Settings
    pool: Optional[asyncpg.Pool] = None


# Вызывается один раз при старте приложения
async def connect_to_db(settings: Settings) -> asyncpg.Pool:
    """Создает пул соединений. Повторяет попытки, пока база поднимается."""
    retries = max(1, settings.db_connect_retries)

    for attempt in range(1, retries + 1):
        pool = None
        try:
            logger.info('Connecting to database (attempt %d/%d)', attempt, retries)
            pool = await asyncpg.create_pool(
                dsn=settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
            )
            logger.info('Database connection pool created')
            await create_tables(pool)
            return pool
        except (OSError, asyncpg.PostgresError) as e:
            # Пул мог создаться, а упасть create_tables: закрываем его перед новой попыткой
            if pool is not None:
                await pool.close()
            if attempt < retries:
                logger.warning('Connection failed: %s. Retrying in %s seconds', e, settings.db_connect_retry_delay)
                # asyncio.sleep не блокирует сервер, только эту задачу
                await asyncio.sleep(settings.db_connect_retry_delay)
            else:
                logger.error('Could not connect to database after %d attempts', retries)
                raise


async def create_tables(pool: asyncpg.Pool) -> None:
    """Создает таблицы, если их нет. Полноценные миграции - в alembic/."""
    async with pool.acquire() as conn:
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id SERIAL PRIMARY KEY,
                username TEXT NOT NULL UNIQUE,
                password TEXT NOT NULL,
                email TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS products (
                id SERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                price NUMERIC NOT NULL
            );
        ''')
    logger.info('Tables are ready')


# Вызывается 1 раз при остановке приложения
async def close_db_connection(pool: asyncpg.Pool) -> None:
    logger.info('Closing database connection pool')
    await pool.close()


# --- Зависимости (Dependency) ---

def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


def get_settings(ctx: AppContext = Depends(get_context)) -> Settings:
    return ctx.settings


def get_pool(ctx: AppContext = Depends(get_context)) -> asyncpg.Pool:
    # Пула нет, если приложение запущено с TESTING=True без подмены зависимостей
    if ctx.pool is None:
        raise RuntimeError('Database pool is not initialized')
    return ctx.pool
