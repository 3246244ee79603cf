from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Build the SQLAlchemy engine for `database_url`.

    In-memory SQLite (tests, local runs without Postgres) gets a StaticPool so every
    session sees the same database.
    """
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> "sessionmaker[Session]":
    return sessionmaker(autoflush=False, bind=engine, expire_on_commit=False)
