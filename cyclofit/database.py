from sqlmodel import SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from .config import settings

# Choose engine options based on database scheme
db_url = settings.DATABASE_URL
engine_kwargs = {}

if db_url.startswith("sqlite"):
    # Dispatcher tasks and threadpool requests share the engine
    engine_kwargs.update({
        "connect_args": {"check_same_thread": False}
    })
    if ":memory:" in db_url or db_url in ("sqlite://", "sqlite:///"):
        # One connection, otherwise every checkout sees an empty database
        engine_kwargs["poolclass"] = StaticPool
else:
    # Better resiliency for managed Postgres
    engine_kwargs.update({
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
    })

engine = create_engine(db_url, echo=settings.DEBUG, **engine_kwargs)


def create_db_and_tables(bind=None):
    # Register table metadata before create_all
    from .db import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)