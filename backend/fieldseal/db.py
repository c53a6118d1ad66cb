from __future__ import annotations

from collections.abc import Generator

from sqlmodel import Session, create_engine

from fieldseal.config import get_settings
from fieldseal.models.schema import Schema


def _connect_args(db_url: str) -> dict:
    if db_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


_db_url = get_settings().db_url

engine = create_engine(
    _db_url,
    echo=False,
    connect_args=_connect_args(_db_url),
)


def create_db_and_tables(schema: Schema) -> None:
    schema.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
