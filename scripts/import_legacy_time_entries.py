#!/usr/bin/env python3
"""
Import a JSON export of legacy time entries into the time_entries table.

Usage:
  python3 scripts/import_legacy_time_entries.py export.json [--dry-run]

The export is a JSON array of entry objects using any of the legacy field
names (clockIn, at, geoOk, exception, ...). Entries whose id already exists
are skipped, so the import can be re-run.
"""
import argparse
import json
import logging
import sys
from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from fieldclock.core.logging import configure_logging  # noqa: E402
from fieldclock.core.settings import load_settings  # noqa: E402
from fieldclock.database import SessionLocal, configure_database  # noqa: E402
from fieldclock.services.schema_normalizer import import_legacy_time_entries  # noqa: E402

logger = logging.getLogger("import_legacy_time_entries")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("export", type=Path, help="JSON array of legacy entries")
    parser.add_argument("--dry-run", action="store_true", help="Normalize and validate, then roll back")
    args = parser.parse_args(argv)

    configure_logging()
    configure_database()

    records = json.loads(args.export.read_text(encoding="utf-8"))
    if not isinstance(records, list):
        logger.error("Export must be a JSON array", extra={"path": str(args.export)})
        return 2

    settings = load_settings()
    db = SessionLocal()
    try:
        counts = import_legacy_time_entries(db, records, default_radius_m=settings.geofence_default_radius_m)
        if args.dry_run:
            db.rollback()
        else:
            db.commit()
    except Exception:
        db.rollback()
        logger.exception("Legacy import failed", extra={"path": str(args.export)})
        return 1
    finally:
        db.close()

    print(json.dumps({**counts, "dry_run": bool(args.dry_run)}))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
