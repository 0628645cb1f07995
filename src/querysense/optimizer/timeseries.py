"""Time-series specific rewrites.

* Time-range normalization: ``now()-1h`` becomes ``now() - 1h`` and
  ``time BETWEEN a AND b`` becomes ``time >= a AND time <= b``.
* Time-bucket normalization: ``time(60s)`` becomes ``time(1m)``, using the
  largest unit that divides the interval evenly.
"""

import re

_RELATIVE_TIME = re.compile(r"now\(\)\s*-\s*(\d+)\s*([a-z]+)\b", re.IGNORECASE)
_TIME_BETWEEN = re.compile(
    r"\btime\s+between\s+('[^']*'|\S+)\s+and\s+('[^']*'|\S+)",
    re.IGNORECASE,
)
_TIME_BUCKET = re.compile(r"\btime\(\s*(\d+)\s*(s|m|h|d)\s*\)", re.IGNORECASE)

_UNIT_SECONDS = (("d", 86400), ("h", 3600), ("m", 60), ("s", 1))


def normalize_time_range(query: str) -> str:
    """Canonical spacing of relative bounds and expanded BETWEEN filters."""
    rewritten = _RELATIVE_TIME.sub(
        lambda m: f"now() - {m.group(1)}{m.group(2).lower()}", query
    )
    return _TIME_BETWEEN.sub(
        lambda m: f"time >= {m.group(1)} AND time <= {m.group(2)}", rewritten
    )


def _bucket(amount: int, unit: str) -> str:
    seconds = amount * dict(_UNIT_SECONDS)[unit.lower()]
    if seconds == 0:
        return f"time({amount}{unit.lower()})"
    for name, size in _UNIT_SECONDS:
        if seconds % size == 0:
            return f"time({seconds // size}{name})"
    return f"time({seconds}s)"


def normalize_time_buckets(query: str) -> str:
    """Express ``time(N<unit>)`` group-by buckets in their largest exact unit."""
    return _TIME_BUCKET.sub(lambda m: _bucket(int(m.group(1)), m.group(2)), query)


def has_time_filter(query: str) -> bool:
    text = query.lower()
    return "where" in text and "time" in text


def has_time_grouping(query: str) -> bool:
    return re.search(r"group\s+by\s+time\b", query, re.IGNORECASE) is not None
