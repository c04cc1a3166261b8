from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from gamehost.models.system_setting import SystemSetting


def _typed(value: str | None, data_type: str | None):
    if value is None:
        return None
    dt = str(data_type or "string").strip().lower()
    if dt == "integer":
        return int(value)
    if dt == "float":
        return float(value)
    if dt == "boolean":
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    if dt == "json":
        return json.loads(value)
    return value


def get_setting(db: Session, category: str, name: str, default=None):
    row = db.scalar(
        select(SystemSetting).where(SystemSetting.category == category, SystemSetting.name == name)
    )
    if row is None or row.value is None or str(row.value).strip() == "":
        return default
    return _typed(row.value, row.data_type)


def set_setting(db: Session, category: str, name: str, value, *, data_type: str = "string") -> SystemSetting:
    row = db.scalar(
        select(SystemSetting).where(SystemSetting.category == category, SystemSetting.name == name)
    )
    raw = json.dumps(value) if data_type == "json" else (None if value is None else str(value))
    if row is None:
        row = SystemSetting(category=category, name=name, value=raw, data_type=data_type)
        db.add(row)
    else:
        row.value = raw
        row.data_type = data_type
        row.updated_at = datetime.utcnow()
    db.flush()
    return row
