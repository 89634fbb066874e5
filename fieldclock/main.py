from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fieldclock import database
from fieldclock.core.logging import configure_logging
from fieldclock.services.immutability import install_audit_log_immutability
from fieldclock.services.sweeper_worker import start_sweeper_task
from fieldclock.models import assignment, audit_log, employee, idempotency_record, invoice, job, time_entry  # noqa: F401
from fieldclock.routers.approvals import router as approvals_router
from fieldclock.routers.assignments import router as assignments_router
from fieldclock.routers.audit import router as audit_router
from fieldclock.routers.auth import router as auth_router
from fieldclock.routers.employees import router as employees_router
from fieldclock.routers.invoices import router as invoices_router
from fieldclock.routers.jobs import router as jobs_router
from fieldclock.routers.sweeps import router as sweeps_router
from fieldclock.routers.time_entries import router as time_entries_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    database.configure_database()
    install_audit_log_immutability(database.engine)

    task = start_sweeper_task()
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Sweeper worker failed during shutdown")


app = FastAPI(
    title="fieldclock",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception", extra={"path": request.url.path, "method": request.method})
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(time_entries_router)
app.include_router(approvals_router)
app.include_router(invoices_router)
app.include_router(sweeps_router)
app.include_router(audit_router)
app.include_router(employees_router)
app.include_router(jobs_router)
app.include_router(assignments_router)


@app.get("/")
def root():
    return {"status": "fieldclock running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }
