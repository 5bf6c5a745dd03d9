from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine
from finboard.core.config import settings


def build_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory SQLite needs one shared connection or every session sees an empty db
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False, pool_pre_ping=True)


# echo=True will log SQL queries for debugging
engine = build_engine(settings.DATABASE_URL)


def init_db(bind=None):
    # Import models so their tables are registered on the metadata
    from finboard import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
