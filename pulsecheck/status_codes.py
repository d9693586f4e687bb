"""Accepted status code ranges."""

MIN_STATUS_CODE = 100
MAX_STATUS_CODE = 599


class StatusRangeError(ValueError):
    """Raised when an accepted status code spec cannot be parsed."""

    pass


def _parse_code(raw: str, spec: str) -> int:
    try:
        code = int(raw.strip())
    except ValueError:
        raise StatusRangeError(f"Invalid status code '{raw.strip()}' in '{spec}'")
    if not (MIN_STATUS_CODE <= code <= MAX_STATUS_CODE):
        raise StatusRangeError(
            f"Invalid HTTP status code: {code} in '{spec}' (must be {MIN_STATUS_CODE}-{MAX_STATUS_CODE})"
        )
    return code


def parse_status_range(range_spec: str) -> list[tuple[int, int]]:
    """Parse an accepted status code spec into inclusive (start, end) ranges.

    Accepts comma-separated ranges and single codes, e.g. "200-299, 301".

    Args:
        range_spec: Human-authored spec string.

    Returns:
        List of inclusive (start, end) tuples; single codes map to (code, code).

    Raises:
        StatusRangeError: If the spec is empty or any entry is malformed.
    """
    if range_spec is None or not str(range_spec).strip():
        raise StatusRangeError("Accepted status codes cannot be empty")

    ranges: list[tuple[int, int]] = []
    for item in str(range_spec).split(","):
        item = item.strip()
        if not item:
            raise StatusRangeError(f"Empty entry in status code spec '{range_spec}'")

        if "-" in item:
            parts = item.split("-")
            if len(parts) != 2:
                raise StatusRangeError(f"Invalid range format: '{item}'")
            start = _parse_code(parts[0], range_spec)
            end = _parse_code(parts[1], range_spec)
            if start > end:
                raise StatusRangeError(f"Invalid range: '{item}' (start must be <= end)")
            ranges.append((start, end))
        else:
            code = _parse_code(item, range_spec)
            ranges.append((code, code))

    return ranges


def classify(status_code: int, range_spec: str) -> bool:
    """Check whether a status code falls inside the accepted ranges.

    Raises:
        StatusRangeError: If ``range_spec`` is malformed.
    """
    for start, end in parse_status_range(range_spec):
        if start <= status_code <= end:
            return True
    return False
