import asyncio
import logging
import os

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from fieldclock.core.errors import StoreConflict, StoreUnavailable
from fieldclock.core.settings import _env_bool, _env_int, load_settings
from fieldclock.core.timeutil import utcnow
from fieldclock.database import SessionLocal, configure_database, run_in_transaction
from fieldclock.services import idempotency
from fieldclock.services.auto_clockout import run_auto_clockout

logger = logging.getLogger(__name__)


def sweeper_enabled() -> bool:
    # Disabled under pytest to keep tests deterministic.
    if os.getenv("PYTEST_CURRENT_TEST"):
        return False
    return _env_bool("SWEEPER_ENABLED", True)


def try_acquire_sweeper_lock(db: Session) -> bool:
    if db.get_bind().dialect.name != "postgresql":
        return True
    res = db.execute(text("select pg_try_advisory_lock(5151, 5152)")).scalar()
    return bool(res)


def release_sweeper_lock(db: Session) -> None:
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(text("select pg_advisory_unlock(5151, 5152)"))


def sweep_tick() -> int:
    """One sweep plus idempotency garbage collection. Returns entries closed."""
    settings = load_settings()
    now = utcnow()

    result = run_auto_clockout(settings=settings, now=now)
    purged = run_in_transaction(lambda session: idempotency.purge_expired(session, now))

    logger.info(
        "Sweeper tick",
        extra={"processed_count": result.processed_count, "idempotency_purged": purged},
    )
    return result.processed_count


async def sweeper_worker_loop(*, interval_seconds: float = 900.0) -> None:
    """
    Single-sweeper loop.

    Never crashes the server on store failures; the advisory lock keeps a
    second process (uvicorn --reload, extra replicas) from sweeping concurrently.
    """
    logger.info("Sweeper worker started", extra={"interval_seconds": float(interval_seconds)})
    configure_database()

    while True:
        lock_db: Session = SessionLocal()
        have_lock = False

        try:
            have_lock = try_acquire_sweeper_lock(lock_db)
            if not have_lock:
                logger.info("Sweeper lock held elsewhere; skipping tick")
            else:
                try:
                    await asyncio.to_thread(sweep_tick)
                except (StoreUnavailable, StoreConflict):
                    logger.exception(
                        "Sweeper tick failed",
                        extra={"component": "sweeper_worker", "reason": "store_error"},
                    )

        except asyncio.CancelledError:
            logger.info("Sweeper worker cancelled; shutting down")
            raise

        except (OperationalError, DBAPIError):
            logger.exception(
                "Sweeper lock connection failed",
                extra={"component": "sweeper_worker", "reason": "lock_dbapi_error"},
            )
            try:
                engine = lock_db.get_bind()
                if engine is not None and hasattr(engine, "dispose"):
                    engine.dispose()
            except Exception:
                logger.debug("engine dispose failed", exc_info=True)

        except Exception:
            logger.exception(
                "Sweeper worker crashed",
                extra={"component": "sweeper_worker", "reason": "unexpected"},
            )

        finally:
            try:
                if have_lock:
                    release_sweeper_lock(lock_db)
            except Exception:
                logger.debug("sweeper lock release failed", exc_info=True)
            lock_db.close()

        await asyncio.sleep(interval_seconds)


def start_sweeper_task() -> asyncio.Task | None:
    if not sweeper_enabled():
        logger.info("Sweeper worker disabled")
        return None

    interval = float(_env_int("SWEEPER_INTERVAL_SECONDS", 900))
    return asyncio.create_task(sweeper_worker_loop(interval_seconds=interval))
