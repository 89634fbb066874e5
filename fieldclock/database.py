import logging
import os
from typing import Callable, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from fieldclock.core.errors import StoreConflict, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()

DATABASE_URL = ""
engine = None
_configured_database_url = None


def _get_database_url() -> str:
    return os.getenv("DATABASE_URL", "postgresql://localhost/fieldclock")


def _store_timeout_seconds() -> float:
    try:
        return float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
    except ValueError:
        return 5.0


def _conflict_retries() -> int:
    try:
        return max(1, int(os.getenv("STORE_CONFLICT_RETRIES", "3")))
    except ValueError:
        return 3


def _engine_kwargs(database_url: str) -> dict:
    timeout = _store_timeout_seconds()
    url = make_url(database_url)

    if url.drivername.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout, "check_same_thread": False}}

    if url.drivername.startswith("postgresql"):
        timeout_ms = int(timeout * 1000)
        return {
            "pool_pre_ping": True,
            "pool_timeout": timeout,
            "connect_args": {
                "connect_timeout": max(1, int(timeout)),
                "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
            },
        }

    return {"pool_pre_ping": True}


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _warn_unless_postgres(dialect_name: str) -> None:
    if dialect_name != "postgresql":
        logger.warning(
            "Store is not PostgreSQL; row locks, sweeper advisory lock and audit triggers are inactive",
            extra={"dialect": dialect_name},
        )


def configure_database() -> None:
    global DATABASE_URL, engine, _configured_database_url

    database_url = _get_database_url()

    if engine is not None and _configured_database_url == database_url:
        return

    engine = create_engine(database_url, **_engine_kwargs(database_url))
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    _warn_unless_postgres(engine.dialect.name)

    SessionLocal.configure(bind=engine)
    DATABASE_URL = database_url
    _configured_database_url = database_url


configure_database()


def get_db():
    configure_database()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_in_transaction(work: Callable[[Session], T], *, attempts: Optional[int] = None) -> T:
    """
    Run work(db) in a fresh session and commit.

    A uniqueness violation or a stale versioned update means a concurrent
    writer won the race; the work is re-run so it observes the committed row
    (idempotent replay or typed conflict).
    Timeouts and dropped connections surface as StoreUnavailable.
    """
    configure_database()
    max_attempts = attempts if attempts is not None else _conflict_retries()

    for attempt in range(1, max_attempts + 1):
        db = SessionLocal()
        try:
            result = work(db)
            db.commit()
            return result
        except (IntegrityError, StaleDataError) as exc:
            db.rollback()
            logger.warning(
                "Store write conflict; retrying",
                extra={"attempt": attempt, "max_attempts": max_attempts, "reason": str(getattr(exc, "orig", exc))},
            )
            if attempt >= max_attempts:
                raise StoreConflict("Concurrent write conflict; retry the request") from exc
        except OperationalError as exc:
            db.rollback()
            logger.warning(
                "Store unavailable",
                extra={"attempt": attempt, "reason": str(exc.orig)},
            )
            raise StoreUnavailable("Store timed out or is unavailable; retry the request") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    raise StoreConflict("Concurrent write conflict; retry the request")
