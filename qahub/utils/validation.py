"""Request body validation with field-level error details.

Usage
-----
    v = Validator(request.get_json(silent=True) or {})
    v.string("title", required=True, max_length=255)
    v.integer("priority", min_value=1, max_value=5, default=2)
    v.check()                       # raises ValidationError(details=[...])
    service.create(v.cleaned)

With ``partial=True`` (PATCH bodies) absent fields are skipped entirely, so
``v.cleaned`` only holds the keys the client actually sent.
"""

import re
from urllib.parse import urlparse

from qahub.core.exceptions import ValidationError
from qahub.utils.helpers import parse_date, parse_datetime

_MISSING = object()


class Validator:
    def __init__(self, data, *, partial=False):
        self.data = data if isinstance(data, dict) else {}
        self.partial = partial
        self.errors = []
        self.cleaned = {}

    # ── plumbing ─────────────────────────────────────────────────────────

    def error(self, field, message):
        self.errors.append({"field": field, "message": message})

    def _take(self, field, required, default):
        if field in self.data:
            value = self.data[field]
            if value is None and required:
                self.error(field, f"{field} is required")
                return _MISSING
            return value
        if self.partial:
            return _MISSING
        if required:
            self.error(field, f"{field} is required")
            return _MISSING
        return default

    def _store(self, field, value):
        self.cleaned[field] = value
        return value

    def check(self, message="Invalid input data"):
        if self.errors:
            raise ValidationError(message, details=self.errors)
        return self.cleaned

    # ── field types ──────────────────────────────────────────────────────

    def string(self, field, *, required=False, max_length=None, min_length=None,
               default=None, pattern=None, pattern_message=None):
        value = self._take(field, required, default)
        if value is _MISSING:
            return None
        if value is None:
            return self._store(field, None)
        if not isinstance(value, str):
            self.error(field, f"{field} must be a string")
            return None
        value = value.strip()
        if required and not value:
            self.error(field, f"{field} is required")
            return None
        if min_length is not None and len(value) < min_length:
            self.error(field, f"{field} must be at least {min_length} characters")
            return None
        if max_length is not None and len(value) > max_length:
            self.error(field, f"{field} must be at most {max_length} characters")
            return None
        if pattern and value and not re.match(pattern, value):
            self.error(field, pattern_message or f"{field} has an invalid format")
            return None
        return self._store(field, value)

    def integer(self, field, *, required=False, min_value=None, max_value=None, default=None):
        value = self._take(field, required, default)
        if value is _MISSING:
            return None
        if value is None:
            return self._store(field, None)
        if isinstance(value, bool):
            self.error(field, f"{field} must be an integer")
            return None
        try:
            number = int(value)
        except (TypeError, ValueError):
            self.error(field, f"{field} must be an integer")
            return None
        if isinstance(value, float) and not value.is_integer():
            self.error(field, f"{field} must be an integer")
            return None
        if min_value is not None and number < min_value:
            self.error(field, f"{field} must be >= {min_value}")
            return None
        if max_value is not None and number > max_value:
            self.error(field, f"{field} must be <= {max_value}")
            return None
        return self._store(field, number)

    def number(self, field, *, required=False, min_value=None, default=None):
        value = self._take(field, required, default)
        if value is _MISSING:
            return None
        if value is None:
            return self._store(field, None)
        if isinstance(value, bool):
            self.error(field, f"{field} must be a number")
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            self.error(field, f"{field} must be a number")
            return None
        if min_value is not None and number < min_value:
            self.error(field, f"{field} must be >= {min_value}")
            return None
        return self._store(field, number)

    def boolean(self, field, *, required=False, default=None):
        value = self._take(field, required, default)
        if value is _MISSING:
            return None
        if value is None or isinstance(value, bool):
            return self._store(field, value)
        if isinstance(value, str) and value.lower() in ("true", "false", "1", "0"):
            return self._store(field, value.lower() in ("true", "1"))
        self.error(field, f"{field} must be a boolean")
        return None

    def choice(self, field, choices, *, required=False, default=None):
        value = self._take(field, required, default)
        if value is _MISSING:
            return None
        if value is None:
            return self._store(field, None)
        if value not in choices:
            self.error(field, f"{field} must be one of: {', '.join(sorted(choices))}")
            return None
        return self._store(field, value)

    def url(self, field, *, required=False, max_length=None, must_contain=None):
        value = self.string(field, required=required, max_length=max_length)
        if not value:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            self.error(field, f"{field} must be a valid URL")
            self.cleaned.pop(field, None)
            return None
        if must_contain and must_contain not in parsed.netloc:
            self.error(field, f"{field} must be a {must_contain} URL")
            self.cleaned.pop(field, None)
            return None
        return value

    def date(self, field, *, required=False):
        value = self._take(field, required, None)
        if value is _MISSING:
            return None
        if value is None or value == "":
            return self._store(field, None)
        parsed = parse_date(value)
        if parsed is None:
            self.error(field, f"{field} must be a date (YYYY-MM-DD)")
            return None
        return self._store(field, parsed)

    def datetime(self, field, *, required=False):
        value = self._take(field, required, None)
        if value is _MISSING:
            return None
        if value is None or value == "":
            return self._store(field, None)
        parsed = parse_datetime(value)
        if parsed is None:
            self.error(field, f"{field} must be an ISO-8601 datetime")
            return None
        return self._store(field, parsed)

    def json(self, field, *, required=False, default=None):
        value = self._take(field, required, default)
        if value is _MISSING:
            return None
        return self._store(field, value)

    def id_list(self, field, *, required=False, min_items=0):
        value = self._take(field, required, None if required else [])
        if value is _MISSING:
            return None
        if not isinstance(value, list) or any(isinstance(i, bool) or not isinstance(i, int) for i in value):
            self.error(field, f"{field} must be a list of integer ids")
            return None
        if len(value) < min_items:
            self.error(field, f"{field} must contain at least {min_items} item(s)")
            return None
        return self._store(field, value)
