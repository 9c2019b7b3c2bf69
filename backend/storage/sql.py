# storage/sql.py - Relational storage on SQLAlchemy's async ORM
# PostgreSQL (asyncpg) in production, SQLite (aiosqlite) in tests.

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import delete, inspect, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import close_db, create_engine_from_settings, create_session_maker, init_db
from errors import AppError, translate_db_error
from models import TABLES
from storage.base import Filters, MULTI_VALUE_TYPES, Record


def _aware(value):
    # SQLite hands back naive datetimes; everything stored is UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(obj) -> Record:
    return {attr.key: _aware(getattr(obj, attr.key)) for attr in inspect(obj).mapper.column_attrs}


def _model(entity: str):
    try:
        return TABLES[entity]
    except KeyError:
        raise ValueError(f"Unknown entity: {entity}") from None


def _conditions(model, filters: Optional[Filters]) -> list:
    conditions = []
    for field, expected in (filters or {}).items():
        column = getattr(model, field)
        if isinstance(expected, MULTI_VALUE_TYPES):
            conditions.append(column.in_(list(expected)))
        elif expected is None:
            conditions.append(column.is_(None))
        else:
            conditions.append(column == expected)
    return conditions


class SqlTransaction:
    """Storage operations bound to one session inside one database transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list(self, entity: str, filters: Optional[Filters] = None, order_by: Sequence[str] = ()) -> List[Record]:
        model = _model(entity)
        stmt = select(model).where(*_conditions(model, filters))
        for key in order_by:
            column = getattr(model, key.lstrip("-"))
            stmt = stmt.order_by(column.desc().nulls_last() if key.startswith("-") else column.asc().nulls_last())
        result = await self.session.execute(stmt)
        return [_to_record(obj) for obj in result.scalars().all()]

    async def get(self, entity: str, record_id: str) -> Optional[Record]:
        obj = await self.session.get(_model(entity), record_id)
        return _to_record(obj) if obj is not None else None

    async def insert(self, entity: str, values: Record) -> Record:
        obj = _model(entity)(**values)
        self.session.add(obj)
        await self.session.flush()
        return _to_record(obj)

    async def update(self, entity: str, record_id: str, changes: Record) -> Optional[Record]:
        obj = await self.session.get(_model(entity), record_id)
        if obj is None:
            return None
        for field, value in changes.items():
            setattr(obj, field, value)
        await self.session.flush()
        return _to_record(obj)

    async def delete(self, entity: str, record_id: str) -> bool:
        obj = await self.session.get(_model(entity), record_id)
        if obj is None:
            return False
        await self.session.delete(obj)
        await self.session.flush()
        return True

    async def update_where(self, entity: str, filters: Filters, changes: Record) -> int:
        model = _model(entity)
        stmt = (
            update(model)
            .where(*_conditions(model, filters))
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def delete_where(self, entity: str, filters: Filters) -> int:
        model = _model(entity)
        stmt = (
            delete(model)
            .where(*_conditions(model, filters))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0


class SqlStorage:
    name = "sql"

    def __init__(self, settings):
        self.engine = create_engine_from_settings(settings)
        self.session_maker = create_session_maker(self.engine)

    async def init(self) -> None:
        try:
            await init_db(self.engine)
        except (SQLAlchemyError, OSError) as e:
            raise translate_db_error(e) from e

    async def close(self) -> None:
        await close_db(self.engine)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError):
            return False

    @asynccontextmanager
    async def transaction(self):
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    yield SqlTransaction(session)
        except AppError:
            raise
        except (SQLAlchemyError, OSError) as e:
            raise translate_db_error(e) from e
