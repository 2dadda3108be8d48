# Доступ к таблицам users и products.
# Каждая функция берет одно соединение из пула на один запрос и сразу его возвращает.
from decimal import Decimal
from typing import Any, Optional

import asyncpg

# Колонки products, которые разрешено менять через UPDATE
UPDATABLE_PRODUCT_FIELDS = ('name', 'price')


def to_numeric(value: float) -> Decimal:
    # price хранится как NUMERIC без ограничения точности
    return Decimal(str(value))


def affected_rows(command_status: str) -> int:
    """Количество строк из статуса asyncpg: 'UPDATE 1' -> 1, 'DELETE 0' -> 0."""
    try:
        return int(command_status.rsplit(' ', 1)[-1])
    except (AttributeError, ValueError):
        return 0


# --- Пользователи ---

async def create_user(pool: asyncpg.Pool, username: str, password_hash: str, email: str) -> int:
    """Добавляет пользователя. При повторе username asyncpg бросит UniqueViolationError."""
    async with pool.acquire() as conn:
        return await conn.fetchval(
            'INSERT INTO users (username, password, email) VALUES ($1, $2, $3) RETURNING id',
            username, password_hash, email
        )


async def get_user_by_username(pool: asyncpg.Pool, username: str) -> Optional[dict]:
    async with pool.acquire() as conn:
        user = await conn.fetchrow(
            'SELECT id, username, password, email FROM users WHERE username = $1',
            username
        )
    return dict(user) if user else None


# --- Продукты ---

async def list_products(pool: asyncpg.Pool) -> list[dict]:
    async with pool.acquire() as conn:
        rows = await conn.fetch('SELECT id, name, price FROM products')
    return [dict(row) for row in rows]


async def get_product(pool: asyncpg.Pool, product_id: int) -> Optional[dict]:
    async with pool.acquire() as conn:
        row = await conn.fetchrow('SELECT id, name, price FROM products WHERE id = $1', product_id)
    return dict(row) if row else None


async def create_product(pool: asyncpg.Pool, name: str, price: float) -> dict:
    """Добавляет продукт и возвращает строку в том виде, в каком ее сохранила база."""
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            'INSERT INTO products (name, price) VALUES ($1, $2) RETURNING id, name, price',
            name, to_numeric(price)
        )
    return dict(row)


def build_product_update(product_id: int, fields: dict[str, Any]) -> tuple[str, list]:
    """Строит UPDATE только по переданным колонкам. Значения идут параметрами $n."""
    unknown = set(fields) - set(UPDATABLE_PRODUCT_FIELDS)
    if unknown:
        raise ValueError(f'Unknown product fields: {sorted(unknown)}')
    if not fields:
        raise ValueError('Nothing to update')

    columns = [col for col in UPDATABLE_PRODUCT_FIELDS if col in fields]
    sets = ', '.join(f'{col} = ${i}' for i, col in enumerate(columns, start=1))
    params = [fields[col] for col in columns] + [product_id]
    return f'UPDATE products SET {sets} WHERE id = ${len(params)}', params


async def update_product(pool: asyncpg.Pool, product_id: int, fields: dict[str, Any]) -> bool:
    """Частичное обновление. False - строки с таким id нет."""
    if fields.get('price') is not None:
        fields = {**fields, 'price': to_numeric(fields['price'])}
    query, params = build_product_update(product_id, fields)
    async with pool.acquire() as conn:
        result = await conn.execute(query, *params)
    return affected_rows(result) > 0


async def delete_product(pool: asyncpg.Pool, product_id: int) -> bool:
    async with pool.acquire() as conn:
        result = await conn.execute('DELETE FROM products WHERE id = $1', product_id)
    return affected_rows(result) > 0
