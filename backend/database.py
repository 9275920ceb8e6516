import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from config import settings

log = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(url: str = None):
    """Create an engine for the pattern store database."""
    url = url or settings.PATTERN_DB_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, echo=False)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine) -> None:
    """Create the pattern tables if they do not exist yet."""
    import models  # noqa: F401 (registers tables with Base)
    Base.metadata.create_all(bind=engine)
    log.info("Pattern store tables ready (%s)", engine.url.render_as_string(hide_password=True))
