"""
Token amount codec.

Amounts travel as non-negative integers in the token's smallest unit. On the
wire they are decimal strings; in hash inputs they are 32-byte big-endian
words; in signing messages they are rendered with at most six fractional
digits (half-up, trailing zeros stripped). The display rule is shared with
the backend verifier, so any drift here invalidates signatures.
"""

from __future__ import annotations

from collections.abc import Iterable

from enclave_sdk.core.errors import ValidationError

MAX_UINT256 = (1 << 256) - 1
DISPLAY_DECIMALS = 6

AmountLike = int | str


def amount_to_int(value: AmountLike, field: str = "amount") -> int:
    """
    Normalize an amount to a Python int.

    Accepts ints, decimal strings ("1000") and 0x-prefixed hex strings.

    Raises:
        ValidationError: for negative, non-integral or out-of-range values.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer amount, got bool", field)
    if isinstance(value, int):
        n = value
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValidationError(f"{field} must not be empty", field)
        try:
            n = int(s, 16) if s.lower().startswith("0x") else int(s, 10)
        except ValueError:
            raise ValidationError(f"{field} is not a valid integer amount: {value!r}", field) from None
    else:
        raise ValidationError(f"{field} must be int or str, got {type(value).__name__}", field)

    if n < 0:
        raise ValidationError(f"{field} must be non-negative", field)
    if n > MAX_UINT256:
        raise ValidationError(f"{field} exceeds 256 bits", field)
    return n


def amount_to_bytes32(value: AmountLike) -> bytes:
    """Encode an amount as a 32-byte big-endian word."""
    return amount_to_int(value).to_bytes(32, "big")


def bytes32_to_int(data: bytes) -> int:
    if len(data) != 32:
        raise ValidationError(f"Expected 32 bytes, got {len(data)}", "bytes32")
    return int.from_bytes(data, "big")


def parse_amount(value: str, decimals: int = 18) -> int:
    """
    Convert a human-readable amount ("1.5") into smallest units.

    Raises:
        ValidationError: if the string has more fractional digits than `decimals`.
    """
    s = value.strip()
    if not s or s.startswith("-"):
        raise ValidationError(f"Invalid amount: {value!r}", "amount")
    whole, _, frac = s.partition(".")
    if not (whole or frac) or not (whole or "0").isdigit() or (frac and not frac.isdigit()):
        raise ValidationError(f"Invalid amount: {value!r}", "amount")
    if len(frac) > decimals:
        raise ValidationError(
            f"Amount {value!r} has more than {decimals} decimal places", "amount"
        )
    return int(whole or "0") * 10**decimals + int(frac.ljust(decimals, "0") or "0")


def format_units(amount: AmountLike, decimals: int = 18) -> str:
    """Exact decimal rendering, trailing zeros stripped ("1.5", "2")."""
    n = amount_to_int(amount)
    if decimals == 0:
        return str(n)
    whole, frac = divmod(n, 10**decimals)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{frac_str}" if frac_str else str(whole)


def format_display_amount(
    amount: AmountLike,
    decimals: int,
    symbol: str | None = None,
    max_decimals: int = DISPLAY_DECIMALS,
) -> str:
    """
    Render an amount the way signing messages show it.

    At most `max_decimals` fractional digits, rounded half-up, trailing zeros
    stripped; no decimal point when the fraction rounds to zero.

        format_display_amount(10**18, 18, "USDT")               -> "1 USDT"
        format_display_amount(1234567890000000000, 18, "USDT")  -> "1.234568 USDT"
    """
    n = amount_to_int(amount)
    if decimals < 0:
        raise ValidationError("decimals must be non-negative", "decimals")

    shown = min(decimals, max_decimals)
    drop = decimals - shown
    if drop:
        # half-up on the first dropped digit
        scaled, remainder = divmod(n, 10**drop)
        if remainder * 2 >= 10**drop:
            scaled += 1
    else:
        scaled = n

    whole, frac = divmod(scaled, 10**shown) if shown else (scaled, 0)
    frac_str = str(frac).rjust(shown, "0").rstrip("0") if shown else ""
    text = f"{whole}.{frac_str}" if frac_str else str(whole)
    return f"{text} {symbol}" if symbol else text


# ------------------------------------------------------------------
# Arithmetic
# ------------------------------------------------------------------


def add_amounts(a: AmountLike, b: AmountLike) -> str:
    return str(amount_to_int(a) + amount_to_int(b))


def subtract_amounts(a: AmountLike, b: AmountLike) -> str:
    x, y = amount_to_int(a), amount_to_int(b)
    if x < y:
        raise ValidationError("Cannot subtract: result would be negative", "amount")
    return str(x - y)


def sum_amounts(amounts: Iterable[AmountLike]) -> int:
    return sum(amount_to_int(a) for a in amounts)


def compare_amounts(a: AmountLike, b: AmountLike) -> int:
    """Return -1, 0 or 1."""
    x, y = amount_to_int(a), amount_to_int(b)
    return (x > y) - (x < y)
