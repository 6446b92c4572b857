REFERRAL_CODE_PREFIX = "hs_"
REFERRAL_CODE_LENGTH = 6
BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(number: int) -> str:
    """Render a non-negative integer in lowercase base 36."""
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_hash(value: str) -> int:
    """Signed 32-bit rolling hash ``h = h * 31 + c`` over UTF-16 code units."""
    encoded = value.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = _to_int32(h * 31 + code_unit)
    return h


def generate_referral_code(email: str) -> str:
    """
    Derive the referral code for an email address.

    Pure and total: the same normalized email always yields the same code,
    across processes and restarts. Codes for different emails may collide.

    Args:
        email: Email address; trimmed and lowercased before hashing.

    Returns:
        ``hs_`` followed by six base-36 characters, right-padded with ``0``.
    """
    normalized = (email or "").strip().lower()
    digits = to_base36(abs(string_hash(normalized)))[:REFERRAL_CODE_LENGTH]
    return REFERRAL_CODE_PREFIX + digits.ljust(REFERRAL_CODE_LENGTH, "0")
