from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from splitstats.models.orm.base import Base


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine. The engine manages the connection pool and
    dialect; SQLite connections may be shared with the lookup worker threads.
    """
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    # Each engine call (and each lookup worker) gets its own session.
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create any missing tables."""
    # Importing the models registers them on Base.metadata
    from splitstats.models.orm import cache, event, experiment, participant, result  # noqa: F401

    Base.metadata.create_all(bind=engine)
