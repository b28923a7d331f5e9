"""Deterministic transaction identifiers used as the primary key of stored transactions."""

import base64
import re
import struct
from decimal import ROUND_HALF_UP, Decimal

_WHITESPACE = re.compile(r"\s+")
_INT32_MASK = 0xFFFFFFFF
_ENCODED_PREFIX_LEN = 20
# Match the scale of the Numeric amount columns.
AMOUNT_QUANTUM = Decimal("0.01")
REWARD_QUANTUM = Decimal("0.00000001")


def normalize_merchant(name: str) -> str:
    """Lower-case a merchant name and collapse its whitespace."""
    return _WHITESPACE.sub(" ", name.strip().lower())


def format_decimal(value: Decimal | float | int | str) -> str:
    """Render a number without exponent or trailing zeros (`5.60` -> `5.6`, `500` -> `500`)."""
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    text = format(number.normalize(), "f")
    return "0" if text in ("-0", "") else text


def rolling_hash32(text: str) -> int:
    """Signed 32-bit `h = h * 31 + unit` hash over the UTF-16 code units of `text`."""
    data = text.encode("utf-16-le")
    value = 0
    for (unit,) in struct.iter_unpack("<H", data):
        value = (value * 31 + unit) & _INT32_MASK
    if value & 0x80000000:
        value -= 1 << 32
    return value


def fingerprint(
    owner: str,
    merchant_name: str,
    normalized_date: str,
    amount: Decimal | float | int | str,
    reward: Decimal | float | int | str,
) -> str:
    """Derive the stable identifier of a transaction.

    Identical logical inputs give identical output on every platform and run; merchant names that
    differ only by case or whitespace fingerprint alike.
    """
    data = ":".join(
        [owner, normalize_merchant(merchant_name), normalized_date, format_decimal(amount), format_decimal(reward)]
    )
    digest = f"{abs(rolling_hash32(data)):08x}"
    encoded = base64.b64encode(data.encode("utf-8")).decode("ascii")[:_ENCODED_PREFIX_LEN]
    return f"{digest}-{encoded}"


def quantize_amount(value: Decimal) -> Decimal:
    """Round a spent amount to the cents stored in `transactions.amount_spent`."""
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_reward(value: Decimal) -> Decimal:
    """Round a reward to the precision stored in `transactions.rewards`."""
    return value.quantize(REWARD_QUANTUM, rounding=ROUND_HALF_UP)
