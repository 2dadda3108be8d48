# conftest.py - глобальный файл конфигурации pytest.
# Фикстуры, объявленные здесь, доступны во всех тестах без импортов.
import os
import re
from datetime import timedelta

import asyncpg
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from starlette import status

# --- 1. Настройка тестового окружения ---
# Ставим TESTING ДО импорта приложения: lifespan не будет подключаться к БД
os.environ['TESTING'] = 'True'
os.environ.setdefault('JWT_SECRET', 'test-secret')

from config import Settings  # noqa: E402
from database import AppContext, get_context  # noqa: E402
from main import app  # noqa: E402

TEST_PASSWORD = 'strongpassword123'


# --- 2. Фейковый пул asyncpg ---
# Хранит таблицы users и products в памяти и понимает ровно те SQL-запросы, что шлет crud.py
class FakeDatabase:
    def __init__(self):
        self.users: dict[int, dict] = {}
        self.products: dict[int, dict] = {}
        self._next_user_id = 1
        self._next_product_id = 1
        self.fail = False  # True - любой запрос падает, как при обрыве связи с БД
        self.queries: list[str] = []


class FakeConnection:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def _check(self, query):
        self.db.queries.append(query)
        if self.db.fail:
            raise ConnectionRefusedError('database is down')

    async def fetchval(self, query, *args):
        self._check(query)
        db = self.db
        if query.startswith('INSERT INTO users'):
            username, password, email = args
            if any(u['username'] == username for u in db.users.values()):
                raise asyncpg.UniqueViolationError('duplicate key value violates unique constraint "users_username_key"')
            user_id = db._next_user_id
            db._next_user_id += 1
            db.users[user_id] = {'id': user_id, 'username': username, 'password': password, 'email': email}
            return user_id
        raise AssertionError(f'Unexpected fetchval: {query}')

    async def fetchrow(self, query, *args):
        self._check(query)
        db = self.db
        if query.startswith('INSERT INTO products') and query.endswith('RETURNING id, name, price'):
            name, price = args
            product_id = db._next_product_id
            db._next_product_id += 1
            db.products[product_id] = {'id': product_id, 'name': name, 'price': price}
            return dict(db.products[product_id])
        if 'FROM users WHERE username = $1' in query:
            return next((dict(u) for u in self.db.users.values() if u['username'] == args[0]), None)
        if 'FROM products WHERE id = $1' in query:
            product = self.db.products.get(args[0])
            return dict(product) if product else None
        raise AssertionError(f'Unexpected fetchrow: {query}')

    async def fetch(self, query, *args):
        self._check(query)
        if query == 'SELECT id, name, price FROM products':
            return [dict(p) for p in self.db.products.values()]
        raise AssertionError(f'Unexpected fetch: {query}')

    async def execute(self, query, *args):
        self._check(query)
        if query.startswith('UPDATE products SET'):
            match = re.match(r'UPDATE products SET (.+) WHERE id = \$(\d+)$', query)
            product = self.db.products.get(args[int(match.group(2)) - 1])
            if product is None:
                return 'UPDATE 0'
            for column, index in re.findall(r'(\w+) = \$(\d+)', match.group(1)):
                product[column] = args[int(index) - 1]
            return 'UPDATE 1'
        if query.startswith('DELETE FROM products'):
            removed = self.db.products.pop(args[0], None)
            return f'DELETE {1 if removed else 0}'
        raise AssertionError(f'Unexpected execute: {query}')

    # async with pool.acquire() as conn
    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


class FakePool:
    def __init__(self, db: FakeDatabase):
        self.db = db

    def acquire(self):
        return FakeConnection(self.db)


# --- 3. Фикстуры ---

@pytest.fixture
def settings() -> Settings:
    # 4 раунда bcrypt - минимум, чтобы тесты не тормозили
    return Settings(
        jwt_secret='test-secret',
        jwt_expires_in=timedelta(minutes=30),
        bcrypt_rounds=4,
        testing=True,
    )


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def app_context(settings, fake_db):
    """Подменяем контекст приложения: настройки для тестов + пул в памяти."""
    ctx = AppContext(settings=settings, pool=FakePool(fake_db))
    app.dependency_overrides[get_context] = lambda: ctx
    yield ctx
    app.dependency_overrides = {}


@pytest.fixture
def client(app_context):
    # with запускает lifespan приложения
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def ac(app_context):
    """Асинхронный клиент поверх ASGI-приложения (без реальной сети)."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as async_client:
        yield async_client


@pytest.fixture
def register_user(client: TestClient):
    def _register(username='test_user', password=TEST_PASSWORD, email=None):
        response = client.post('/register', json={
            'username': username,
            'password': password,
            'email': email or f'{username}@example.com',
        })
        assert response.status_code == status.HTTP_201_CREATED, response.text
        return response.json()
    return _register


@pytest.fixture
def auth_headers(client: TestClient, register_user):
    """Регистрирует 'test_user', логинится и возвращает готовый заголовок Authorization."""
    register_user()
    response = client.post('/login', json={'username': 'test_user', 'password': TEST_PASSWORD})
    assert response.status_code == status.HTTP_200_OK
    return {'Authorization': f"Bearer {response.json()['token']}"}
