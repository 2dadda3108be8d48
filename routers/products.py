import logging
from typing import List, Optional

import asyncpg
from fastapi import APIRouter, Depends, Path, status
from pydantic import BaseModel, Field

import crud
from auth import get_current_user
from database import get_pool
from errors import ApiError, InternalError, MissingFieldsError, NotFoundError

logger = logging.getLogger(__name__)

# Максимум для SERIAL (int4)
MAX_PRODUCT_ID = 2**31 - 1

router = APIRouter(
    prefix='/products',
    tags=['Products'],
    dependencies=[Depends(get_current_user)]  # ЗАЩИЩАЕМ ВСЕ ЭНДПОИНТЫ ЗДЕСЬ
)


# --- Модели Pydantic ---
class Product(BaseModel):
    id: int
    name: str
    price: float


class ProductCreate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, allow_inf_nan=False)


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, allow_inf_nan=False)

    def changes(self) -> dict:
        """Только реально переданные поля (None = поле не передано)."""
        return {field: value for field, value in self.model_dump().items() if value is not None}


class Message(BaseModel):
    message: str


def _store_failure(action: str) -> InternalError:
    logger.exception('Failed to %s', action)
    return InternalError()


# --- Эндпоинты ---

@router.get('', response_model=List[Product])
async def get_products(pool: asyncpg.Pool = Depends(get_pool)):
    """Возвращает все продукты (порядок не гарантируется)."""
    try:
        return await crud.list_products(pool)
    except Exception:
        raise _store_failure('list products')


@router.get('/{product_id}', response_model=Product)
async def get_product(product_id: int = Path(gt=0, le=MAX_PRODUCT_ID), pool: asyncpg.Pool = Depends(get_pool)):
    try:
        product = await crud.get_product(pool, product_id)
    except Exception:
        raise _store_failure(f'read product {product_id}')
    if product is None:
        raise NotFoundError()
    return product


@router.post('', response_model=Product, status_code=status.HTTP_201_CREATED)
async def create_product(product_data: ProductCreate, pool: asyncpg.Pool = Depends(get_pool)):
    # price = 0 допустим, пустое имя - нет
    missing = []
    if not (product_data.name or '').strip():
        missing.append('name')
    if product_data.price is None:
        missing.append('price')
    if missing:
        raise MissingFieldsError.for_fields(missing)

    try:
        product = await crud.create_product(pool, product_data.name, product_data.price)
    except Exception:
        raise _store_failure('create product')

    logger.info('Created product %s', product['id'])
    return product


@router.put('/{product_id}', response_model=Product)
async def update_product(
    product_data: ProductUpdate,
    product_id: int = Path(gt=0, le=MAX_PRODUCT_ID),
    pool: asyncpg.Pool = Depends(get_pool),
):
    """Частичное обновление: непереданные поля остаются как были."""
    changes = product_data.changes()
    if not changes:
        raise MissingFieldsError('At least one of name, price is required')
    if 'name' in changes and not changes['name'].strip():
        raise MissingFieldsError('name must not be empty')

    try:
        if not await crud.update_product(pool, product_id, changes):
            raise NotFoundError()
        product = await crud.get_product(pool, product_id)
    except ApiError:
        raise
    except Exception:
        raise _store_failure(f'update product {product_id}')

    # Продукт могли удалить между UPDATE и SELECT
    if product is None:
        raise NotFoundError()
    return product


@router.delete('/{product_id}', response_model=Message)
async def delete_product(product_id: int = Path(gt=0, le=MAX_PRODUCT_ID), pool: asyncpg.Pool = Depends(get_pool)):
    try:
        deleted = await crud.delete_product(pool, product_id)
    except Exception:
        raise _store_failure(f'delete product {product_id}')
    if not deleted:
        raise NotFoundError()

    logger.info('Deleted product %s', product_id)
    return Message(message='Product deleted')
