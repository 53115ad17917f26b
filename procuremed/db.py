from __future__ import annotations

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from procuremed.config import settings
from procuremed.models import Base


def build_engine(database_url: str | None = None) -> Engine:
    url = database_url or settings.database_url_normalized
    if not url.startswith('sqlite'):
        return create_engine(url, pool_pre_ping=True)

    kwargs: dict = {'connect_args': {'check_same_thread': False}}
    if ':memory:' in url or url.rstrip('/') in {'sqlite:', 'sqlite+pysqlite:'}:
        # One shared connection, otherwise every checkout sees an empty database.
        kwargs['poolclass'] = StaticPool
    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, 'connect')
    def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def make_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    # Store handles keep returning rows after each commit.
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_session_factory(database_url: str | None = None) -> sessionmaker[Session]:
    engine = build_engine(database_url)
    init_db(engine)
    return make_sessionmaker(engine)


engine = build_engine()
SessionLocal = make_sessionmaker(engine)
