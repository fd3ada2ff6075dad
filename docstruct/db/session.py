"""Engine and session factory setup."""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from docstruct.utils.config import DatabaseConfig
from docstruct.utils.logger import get_logger

from .models import Base

logger = get_logger(__name__)


def create_session_factory(config: DatabaseConfig) -> sessionmaker[Session]:
    """Create the engine, ensure tables exist, and return a session factory.

    File-backed SQLite databases get their parent directory created.
    """
    url = make_url(config.url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(config.url, echo=config.echo, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    logger.info("Database ready at %s", url.render_as_string(hide_password=True))
    return sessionmaker(bind=engine, expire_on_commit=False)
