"""Engine, session factory and schema checks"""

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Any, Dict, Generator, Optional
from farmauth.config import settings, BACKEND_DIR
import logging

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.DEBUG}
    if url.startswith("sqlite"):
        # Request handlers run in a threadpool
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_recycle=1800,
            pool_pre_ping=True,
        )
    return options


_database_url = settings.get_database_url()
engine = create_engine(_database_url, **_engine_options(_database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Register models on Base.metadata
from farmauth import models  # noqa: E402,F401


def get_db() -> Generator[Session, None, None]:
    """
    Request-scoped database session

    Yields:
        Session: Database session, closed when the request finishes
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _applied_revision(conn: Connection) -> Optional[str]:
    if not inspect(conn).has_table("alembic_version"):
        return None
    return conn.execute(text("SELECT version_num FROM alembic_version")).scalar()


def _head_revision() -> Optional[str]:
    from alembic.config import Config
    from alembic.script import ScriptDirectory

    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    return ScriptDirectory.from_config(config).get_current_head()


def init_db() -> None:
    """
    Prepare or check the schema according to DB_INIT_MODE.

      - migrate: the database must carry Alembic history (at head when DB_REQUIRE_HEAD)
      - create_all: create missing tables from the models (local development)
      - off: do nothing
    """
    mode = settings.DB_INIT_MODE.lower().strip()
    if mode == "off":
        logger.info("Schema check skipped (DB_INIT_MODE=off)")
        return

    if mode == "create_all":
        Base.metadata.create_all(bind=engine)
        logger.warning("Tables created from models; use Alembic migrations outside local development.")
        return

    if mode != "migrate":
        raise RuntimeError(f"Unknown DB_INIT_MODE: {settings.DB_INIT_MODE}")

    with engine.connect() as conn:
        applied = _applied_revision(conn)
    if applied is None:
        raise RuntimeError("Database has no migration history. Run `alembic upgrade head` from backend/.")
    if settings.DB_REQUIRE_HEAD:
        head = _head_revision()
        if applied != head:
            raise RuntimeError(f"Database is at revision {applied}, expected {head}. Run `alembic upgrade head`.")
    logger.info(f"Database schema at revision {applied}")
