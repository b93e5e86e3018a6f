# import_csv.py
from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path

from sqlalchemy.orm import Session

import crud
from bridge import derive_headers, import_grid
from db import SessionLocal
from errors import TrackerError
from spreadsheet import read_grid


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Import a CSV or XLSX file into a tracker's rows.")
    ap.add_argument("path")
    ap.add_argument("--tracker", required=True, type=int)
    ap.add_argument("--dry", action="store_true", help="Roll back instead of committing")
    ap.add_argument("--print-headers", action="store_true", help="Print the derived column keys and exit")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    path = Path(args.path)
    if not path.is_file():
        print(f"No such file: {path}", file=sys.stderr)
        return 1

    db: Session = SessionLocal()
    try:
        grid = read_grid(path.read_bytes(), path.name)
        if args.print_headers:
            print("header columns:")
            for i, h in enumerate(derive_headers(grid[0] if grid else [])):
                print(f"  [{i}] {h.label!r} -> {h.key}")
            return 0

        tracker = crud.get_tracker(db, args.tracker)
        result = import_grid(db, tracker.id, grid, commit=not args.dry)
        if args.dry:
            db.rollback()
    except TrackerError as exc:
        print(exc.message, file=sys.stderr)
        return 1
    finally:
        db.close()

    for err in result.errors:
        print(f"  line {err.row}: {err.error}")
    if args.dry:
        print(f"DRY RUN: would import {result.imported} of {result.attempted} rows")
    else:
        print(f"Imported: {result.imported} of {result.attempted} rows into tracker id={args.tracker}")
    return 0 if not result.errors else 2


if __name__ == "__main__":
    sys.exit(main())
