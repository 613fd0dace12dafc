import logging
import unicodedata
from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from pontocarro.core.config import Settings


logger = logging.getLogger(__name__)

Base = declarative_base()


def strip_accents(value: Optional[str]) -> Optional[str]:
    """Remove diacritics: "São Paulo" -> "Sao Paulo"."""
    if value is None:
        return None
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _register_sqlite_functions(dbapi_connection, connection_record) -> None:
    # PostgreSQL gets unaccent() from the extension, SQLite from here
    dbapi_connection.create_function("unaccent", 1, strip_accents, deterministic=True)


class Database:
    """Engine and session factory owned by the application lifespan."""

    def __init__(self, url: str, echo: bool = False) -> None:
        engine_kwargs = {"pool_pre_ping": True, "echo": echo}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool

        self.url = url
        self.engine: Engine = create_engine(url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _register_sqlite_functions)

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.DATABASE_URL)

    def create_all(self) -> None:
        # Import models so every table is registered on Base.metadata
        from pontocarro.models import image, user, vehicle  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def run_simple_migrations(self) -> None:
        """
        Idempotent DDL that create_all cannot express.
        Only PostgreSQL needs anything: the unaccent extension used by search.
        """
        if self.engine.dialect.name != "postgresql":
            return

        ddl_statements = [
            "CREATE EXTENSION IF NOT EXISTS unaccent",
        ]

        with self.engine.begin() as conn:
            for ddl in ddl_statements:
                conn.execute(text(ddl))

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database engine disposed")


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
