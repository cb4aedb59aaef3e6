import os

DEFAULT_LIMIT = int(os.getenv('PAGE_DEFAULT_LIMIT', '50'))
MAX_LIMIT = int(os.getenv('PAGE_MAX_LIMIT', '200'))


def _as_int(raw, name: str, fallback: int) -> int:
    if raw is None or raw == '':
        return fallback
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f'{name} must be int')


def normalize_pagination(limit_raw, offset_raw):
    """Clamp limit to [1, MAX_LIMIT] and offset to >= 0; ValueError on non-integers."""
    limit = _as_int(limit_raw, 'limit', DEFAULT_LIMIT)
    offset = _as_int(offset_raw, 'offset', 0)
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)
