"""Pure formatting helpers for human-readable reports.

All functions are stateless with no side effects.
"""

# Binary unit constants (1024-based)
_KB = 1024
_MB = _KB * 1024  # 1,048,576
_GB = _MB * 1024  # 1,073,741,824

_MILLISECOND = 0.001


def format_size(bytes: int, *, precision: int = 2) -> str:
    """Convert a byte count to a human-readable size.

    Uses binary units (1024-based), the same units the interpreter's
    allocator works in.

    Args:
        bytes: Number of bytes to format (must be non-negative)
        precision: Decimal places for KB and larger units

    Returns:
        Human-readable string representation of the size.

    Examples:
        >>> format_size(96)
        '96 bytes'
        >>> format_size(1536)
        '1.50 KB'
        >>> format_size(5242880)
        '5.00 MB'
    """
    if bytes < 0:
        msg = "bytes must be non-negative"
        raise ValueError(msg)

    if bytes >= _GB:
        return f"{bytes / _GB:.{precision}f} GB"
    if bytes >= _MB:
        return f"{bytes / _MB:.{precision}f} MB"
    if bytes >= _KB:
        return f"{bytes / _KB:.{precision}f} KB"
    if bytes == 1:
        return "1 byte"
    return f"{bytes} bytes"


def format_elapsed(seconds: float) -> str:
    """Convert an elapsed time to milliseconds or seconds.

    Args:
        seconds: Duration in seconds (must be non-negative)

    Returns:
        ``"N.N ms"`` below one second, ``"N.NN s"`` otherwise

    Examples:
        >>> format_elapsed(0.0042)
        '4.2 ms'
        >>> format_elapsed(2.5)
        '2.50 s'
    """
    if seconds < 0:
        msg = "seconds must be non-negative"
        raise ValueError(msg)

    if seconds < 1:
        return f"{seconds / _MILLISECOND:.1f} ms"
    return f"{seconds:.2f} s"
