from typing import Any
from storefront.common.utils import finite_or_zero


def payable_total(subtotal_after_discount: Any, shipping: Any, wallet_amount: Any = 0,
                  affiliate_wallet_amount: Any = 0) -> float:
    """Final amount due; wallet deductions that are not finite numbers count as zero."""
    total = (finite_or_zero(subtotal_after_discount) + finite_or_zero(shipping)
             - finite_or_zero(wallet_amount) - finite_or_zero(affiliate_wallet_amount))
    return max(0.0, total)
