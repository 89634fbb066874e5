from sqlalchemy import inspect, text

from fieldclock.core.errors import LockedEntry
from fieldclock.models.time_entry import TimeEntry


def ensure_mutable(entry: TimeEntry, *, force: bool = False) -> None:
    """
    Reject mutation of an approved or invoiced entry.

    force is reserved for privileged correction workflows; callers passing it
    must write an audit record explaining the override.
    """
    if force:
        return

    if entry.invoice_id is not None:
        raise LockedEntry(
            f"Cannot modify invoiced time entry (invoice: {entry.invoice_id})",
            time_entry_id=entry.time_entry_id,
            invoice_id=entry.invoice_id,
        )

    if entry.approved:
        raise LockedEntry(
            "Cannot modify approved time entry",
            time_entry_id=entry.time_entry_id,
        )


def table_exists(engine, table_name: str) -> bool:
    if engine is None:
        return False
    return inspect(engine).has_table(table_name)


def install_audit_log_immutability(engine) -> None:
    """
    Postgres-only: install triggers to block UPDATE/DELETE on audit_log.
    Safe to run multiple times (idempotent).
    """
    if engine is None:
        return

    dialect = getattr(engine, "dialect", None)
    if dialect is None or getattr(dialect, "name", "") != "postgresql":
        return

    if not table_exists(engine, "audit_log"):
        return

    ddl = """
    CREATE OR REPLACE FUNCTION audit_log_block_mutation()
    RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION 'audit_log is append-only';
    END;
    $$ LANGUAGE plpgsql;

    DROP TRIGGER IF EXISTS trg_audit_log_block_update ON audit_log;
    CREATE TRIGGER trg_audit_log_block_update
    BEFORE UPDATE ON audit_log
    FOR EACH ROW
    EXECUTE FUNCTION audit_log_block_mutation();

    DROP TRIGGER IF EXISTS trg_audit_log_block_delete ON audit_log;
    CREATE TRIGGER trg_audit_log_block_delete
    BEFORE DELETE ON audit_log
    FOR EACH ROW
    EXECUTE FUNCTION audit_log_block_mutation();
    """

    with engine.begin() as conn:
        conn.execute(text(ddl))
