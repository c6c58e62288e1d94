"""
common.utils

Utility helper functions.
"""
def strip_0x(s: str) -> str:
    return s[2:] if isinstance(s, str) and s[:2].lower() == "0x" else s


def to_int(value) -> int:
    """
    Accepts native ints, 0x hex strings (optionally negative) and decimal strings.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    if value is None:
        raise ValueError("cannot convert None to int")
    s = str(value).strip().lower()
    neg = s.startswith("-")
    if neg:
        s = s[1:]
    n = int(s, 16) if s.startswith("0x") else int(s)
    return -n if neg else n


def to_hex(n: int) -> str:
    """0x hex rendering that keeps the sign in front of the prefix."""
    return "-0x%x" % -n if n < 0 else "0x%x" % n
