"""Decimal amount parsing for the vault asset.

Amounts arrive as user-entered decimal strings and are converted to integer
base units with the asset's fixed precision. Nothing is ever rounded: an
input with more fractional digits than the asset supports is rejected.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Optional, Union

from vaultflow.errors import ValidationError

MAX_UINT256 = 2**256 - 1

USDC_DECIMALS = 6


@dataclass(frozen=True)
class AmountRequest:
    """A validated amount in both display and base-unit form."""

    text: str
    decimals: int
    base_units: int

    @property
    def value(self) -> Decimal:
        with localcontext() as ctx:
            ctx.prec = 100
            return Decimal(self.base_units).scaleb(-self.decimals)

    def __str__(self) -> str:
        return format_units(self.base_units, self.decimals)


def parse_amount(
    text: Union[str, int, Decimal],
    decimals: int = USDC_DECIMALS,
    *,
    allow_zero: bool = False,
    max_whole_units: Optional[int] = None,
) -> AmountRequest:
    """Parse a decimal amount into base units.

    Raises:
        ValidationError: if the amount is empty, not a finite number,
            negative, too precise, or out of range.
    """
    raw = str(text).strip() if text is not None else ""
    if not raw:
        raise ValidationError("Amount is required")

    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"Amount must be a number, got {raw!r}")

    if not value.is_finite():
        raise ValidationError("Amount must be a finite number")
    if value < 0:
        raise ValidationError("Amount must be a non-negative number")
    if value == 0 and not allow_zero:
        raise ValidationError("Amount must be a positive number")

    exponent = value.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -decimals:
        # Trailing zeros past the precision are harmless ("1.5000000")
        normalized = value.normalize()
        n_exp = normalized.as_tuple().exponent
        if isinstance(n_exp, int) and n_exp < -decimals:
            raise ValidationError(
                f"Amount has more than {decimals} decimal places"
            )

    if max_whole_units is not None and value > max_whole_units:
        raise ValidationError("Amount is too large")
    if value.adjusted() + decimals > 78:
        raise ValidationError("Amount exceeds the representable range")

    with localcontext() as ctx:
        ctx.prec = 100
        base_units = int(value.scaleb(decimals))
    if base_units > MAX_UINT256:
        raise ValidationError("Amount exceeds the representable range")

    return AmountRequest(text=raw, decimals=decimals, base_units=base_units)


def to_base_units(text: Union[str, int, Decimal], decimals: int = USDC_DECIMALS) -> int:
    """Convert a decimal amount to base units (zero allowed)."""
    return parse_amount(text, decimals, allow_zero=True).base_units


def format_units(base_units: int, decimals: int = USDC_DECIMALS) -> str:
    """Render base units as a plain decimal string without trailing zeros."""
    with localcontext() as ctx:
        ctx.prec = 100
        value = Decimal(base_units).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
