"""
Change logger: before/after snapshots of mutated rows in ``change_log``.

Best effort: every entry point swallows and logs its own failures so the
primary write is never affected. Rows are added inside a savepoint and are
committed together with the caller's transaction.

Usage:
    before = sanitize_for_change_log(tc.snapshot())
    ... mutate tc ...
    log_update("test_cases", tc.id, before, sanitize_for_change_log(tc.snapshot()), user_id=uid)
"""

import json
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal

from qahub.models import db
from qahub.models.audit import ChangeLog

logger = logging.getLogger(__name__)

DEFAULT_SENSITIVE_FIELDS = ("password", "token", "secret")
REDACTED = "[REDACTED]"


def new_transaction_id():
    return uuid.uuid4().hex


def _json_safe(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return value


def sanitize_for_change_log(values, sensitive=DEFAULT_SENSITIVE_FIELDS):
    """JSON-safe copy of ``values`` with sensitive keys replaced by ``[REDACTED]``.

    A key is sensitive when any entry of ``sensitive`` appears in it
    (case-insensitive), so ``password_hash`` and ``api_token`` are both caught.
    """
    if values is None:
        return None
    if not isinstance(values, dict):
        return _json_safe(values)
    needles = [s.lower() for s in sensitive]
    clean = {}
    for key, value in values.items():
        if any(n in str(key).lower() for n in needles):
            clean[key] = REDACTED
        else:
            clean[key] = _json_safe(value)
    return clean


def extract_changed_fields(old_values, new_values):
    """``{field: {"old": ..., "new": ...}}`` for every key whose JSON value differs."""
    old_values = old_values or {}
    new_values = new_values or {}
    changed = {}
    for key in sorted(set(old_values) | set(new_values)):
        old = old_values.get(key)
        new = new_values.get(key)
        if json.dumps(_json_safe(old), sort_keys=True) != json.dumps(_json_safe(new), sort_keys=True):
            changed[key] = {"old": _json_safe(old), "new": _json_safe(new)}
    return changed


def log_change(
    table_name,
    record_id,
    change_type,
    old_values=None,
    new_values=None,
    user_id=None,
    transaction_id=None,
    source="api",
):
    """Record one change row. Never raises; returns the row or None."""
    if change_type not in ("insert", "update", "delete"):
        logger.warning("Ignoring change log entry with unknown change_type=%s", change_type)
        return None
    try:
        old_clean = sanitize_for_change_log(old_values)
        new_clean = sanitize_for_change_log(new_values)
        changed = extract_changed_fields(old_clean, new_clean) if change_type == "update" else None
        with db.session.begin_nested():
            entry = ChangeLog(
                table_name=table_name,
                record_id=str(record_id),
                change_type=change_type,
                old_values=old_clean,
                new_values=new_clean,
                changed_fields=changed,
                user_id=user_id,
                transaction_id=transaction_id or new_transaction_id(),
                source=source,
            )
            db.session.add(entry)
        return entry
    except Exception:
        logger.error(
            "Change log write failed table=%s record=%s type=%s",
            table_name, record_id, change_type, exc_info=True,
        )
        return None


def log_insert(table_name, record_id, new_values, user_id=None, transaction_id=None, source="api"):
    return log_change(table_name, record_id, "insert", None, new_values, user_id, transaction_id, source)


def log_update(table_name, record_id, old_values, new_values, user_id=None, transaction_id=None, source="api"):
    return log_change(table_name, record_id, "update", old_values, new_values, user_id, transaction_id, source)


def log_delete(table_name, record_id, old_values, user_id=None, transaction_id=None, source="api"):
    return log_change(table_name, record_id, "delete", old_values, None, user_id, transaction_id, source)
