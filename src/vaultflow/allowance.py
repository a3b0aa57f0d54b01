"""Spend-authorization check for deposits."""

from typing import Optional, Union

from vaultflow.amounts import USDC_DECIMALS, AmountRequest, to_base_units


class AllowanceGate:
    """Decides whether the vault may already pull the requested amount.

    Pure comparison in base units. Decimal-string amounts are converted with
    the asset's fixed precision; nothing is rounded.
    """

    def __init__(self, decimals: int = USDC_DECIMALS):
        self.decimals = decimals

    def to_base_units(self, amount: Union[AmountRequest, str, int]) -> int:
        if isinstance(amount, AmountRequest):
            if amount.decimals != self.decimals:
                return to_base_units(amount.text, self.decimals)
            return amount.base_units
        if isinstance(amount, int):
            return amount
        return to_base_units(amount, self.decimals)

    def has_sufficient_allowance(
        self,
        amount: Union[AmountRequest, str, int],
        current_allowance: Optional[int],
    ) -> bool:
        """True when current_allowance covers amount (unknown allowance counts as zero)."""
        return (current_allowance or 0) >= self.to_base_units(amount)

    def needs_approval(
        self,
        amount: Union[AmountRequest, str, int],
        current_allowance: Optional[int],
    ) -> bool:
        return not self.has_sufficient_allowance(amount, current_allowance)
