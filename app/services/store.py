"""Durable key-value stores for profile records.

Both backends speak plain dicts keyed by identity key, each value the
camelCase JSON form of a ``ProfileRecord``. The registry never sees the
storage format beyond that.
"""
from __future__ import annotations

import json
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.core.db import init_db, make_engine, make_session_factory
from app.core.errors import StoreCorrupt, StoreWriteFailure
from app.models.profile import ProfileRow

Records = Dict[str, Dict[str, Any]]


# ---------------------------
# JSON file
# ---------------------------

class JsonFileStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"JsonFileStore({str(self.path)!r})"

    def load(self) -> Records:
        if not self.path.exists():
            logger.info(f"No store at {self.path}, starting empty")
            return {}

        # UnicodeDecodeError is a ValueError; deep nesting raises RecursionError
        try:
            raw = self.path.read_text(encoding="utf-8")
            # a zero-byte file is what a crash mid-truncate leaves behind
            if not raw.strip():
                return {}
            data = json.loads(raw)
        except (OSError, ValueError, RecursionError) as e:
            raise StoreCorrupt(f"cannot decode {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreCorrupt(f"expected an object in {self.path}, got {type(data).__name__}")

        return data

    def backup(self) -> Path | None:
        """Copy the current file aside before it is overwritten."""
        if not self.path.exists():
            return None
        target = self.path.with_name(f"{self.path.name}.bak")
        try:
            shutil.copy2(self.path, target)
        except OSError as e:
            raise StoreWriteFailure(f"cannot back up {self.path}: {e}") from e
        return target

    def save(self, records: Records) -> None:
        tmp = self.path.with_name(f".{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(records, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_err:
                logger.debug(f"Could not remove {tmp}: {cleanup_err}")
            raise StoreWriteFailure(f"cannot write {self.path}: {e}") from e


# ---------------------------
# SQL (SQLAlchemy)
# ---------------------------

def _row_to_record(row: ProfileRow) -> Dict[str, Any]:
    position = None
    if row.pos_x is not None and row.pos_y is not None and row.pos_z is not None:
        position = {"x": row.pos_x, "y": row.pos_y, "z": row.pos_z}

    return {
        "identityKey": row.identity_key,
        "displayName": row.display_name,
        "region": row.region,
        "timezone": row.timezone,
        "firstSeenAt": row.first_seen_at.isoformat() if row.first_seen_at else None,
        "lastSeenAt": row.last_seen_at.isoformat() if row.last_seen_at else None,
        "lastPosition": position,
    }


def _record_to_row(key: str, rec: Dict[str, Any]) -> ProfileRow:
    position = rec.get("lastPosition") or {}
    return ProfileRow(
        identity_key=key,
        display_name=rec.get("displayName", ""),
        region=rec.get("region", ""),
        timezone=rec.get("timezone", ""),
        first_seen_at=datetime.fromisoformat(rec["firstSeenAt"]),
        last_seen_at=datetime.fromisoformat(rec["lastSeenAt"]),
        pos_x=position.get("x"),
        pos_y=position.get("y"),
        pos_z=position.get("z"),
    )


class SqlRecordStore:
    def __init__(self, url: str):
        self.url = url
        self.engine = make_engine(url)
        self.SessionLocal = make_session_factory(self.engine)
        init_db(self.engine)

    def __repr__(self) -> str:
        return f"SqlRecordStore({self.engine.url.render_as_string(hide_password=True)!r})"

    def load(self) -> Records:
        try:
            with self.SessionLocal() as db:
                rows = db.query(ProfileRow).all()
                return {row.identity_key: _row_to_record(row) for row in rows}
        except SQLAlchemyError as e:
            raise StoreCorrupt(f"cannot read profiles table: {e}") from e

    def backup(self) -> None:
        # save() only upserts, so rows skipped on load stay in the table
        return None

    def save(self, records: Records) -> None:
        try:
            with self.SessionLocal() as db:
                with db.begin():
                    for key, rec in records.items():
                        db.merge(_record_to_row(key, rec))
        except (SQLAlchemyError, KeyError, ValueError) as e:
            raise StoreWriteFailure(f"cannot write profiles table: {e}") from e


def open_store(users_file: str, store_url: str = ""):
    if store_url:
        return SqlRecordStore(store_url)
    return JsonFileStore(users_file)
