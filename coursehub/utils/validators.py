from datetime import datetime, timezone
from flask import current_app
from coursehub.errors import ValidationError


class FieldErrors:
    """Collects per-field problems and raises them together."""

    def __init__(self):
        self.errors = []

    def add(self, field, message):
        self.errors.append({"field": field, "message": message})

    def raise_if_any(self, message="Invalid data"):
        if self.errors:
            raise ValidationError(message, errors=self.errors)


def is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_int(value, field):
    if isinstance(value, bool):
        raise ValidationError.for_field(field, f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError.for_field(field, f"{field} must be an integer")


def text_value(errors, data, field):
    """Stripped string at ``data[field]``.

    Returns ``""`` when the key is missing or null, and ``None`` (after
    recording the problem) when the value is not a string.
    """
    value = data.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        errors.add(field, f"{field} must be a string")
        return None
    return value.strip()


def optional_text(errors, data, field):
    """Raw string at ``data[field]`` or None; other types are recorded."""
    value = data.get(field)
    if value is not None and not isinstance(value, str):
        errors.add(field, f"{field} must be a string")
        return None
    return value


def is_id_list(value):
    return isinstance(value, list) and all(isinstance(v, int) and not isinstance(v, bool) for v in value)


def parse_datetime(value, field):
    """Parse an ISO-8601 string into a naive UTC datetime.

    Values carrying an offset are converted to UTC; naive values are taken
    to be UTC already.
    """
    if value is None or value == "":
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError.for_field(field, f"{field} must be an ISO-8601 datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_pagination(args):
    """Read ``page`` and ``limit`` query parameters, clamped to config bounds."""
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 10)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)

    page = args.get("page", 1, type=int) or 1
    limit = args.get("limit", default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), max_limit)


def paginated(pagination, serializer):
    return {
        "items": [serializer(item) for item in pagination.items],
        "total": pagination.total,
        "page": pagination.page,
        "total_pages": pagination.pages,
    }
