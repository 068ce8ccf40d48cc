def to_uppercase(value: str | None) -> str | None:
    """
    Converts a string to uppercase if it's not None.
    """
    if value is None:
        return None
    return value.upper()


def to_lowercase(value: str | None) -> str | None:
    """
    Converts a string to lowercase if it's not None.
    """
    if value is None:
        return None
    return value.lower()


def ensure_at_least_one(value: float) -> float:
    """
    Reject multipliers below 1 (a shrinking backoff would retry faster and faster).
    """
    if value < 1:
        raise ValueError(f"must be >= 1, got {value}")
    return value
