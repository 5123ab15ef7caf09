from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from backoffice.core.config import settings

database_url = settings.database_url
is_sqlite = database_url.lower().startswith("sqlite")

engine_kwargs: dict[str, object] = {"pool_pre_ping": True}

if is_sqlite:
    # Request handlers run in a threadpool.
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    engine_kwargs.update(
        {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_timeout": settings.db_pool_timeout_seconds,
            "pool_recycle": settings.db_pool_recycle_seconds,
            # Stock rows are guarded by FOR UPDATE plus a compare-and-set write;
            # a locked row is re-read after the holder commits.
            "isolation_level": "READ COMMITTED",
        }
    )

engine = create_engine(database_url, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
