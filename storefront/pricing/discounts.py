from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional
from storefront.checkout.models import AffiliateState, CartItem, GiftMilestone, PromoApplication
from storefront.common.utils import finite_or_zero, round_currency


@dataclass
class DiscountBreakdown:
    cart_subtotal: float = 0
    product_discount: float = 0
    subtotal_after_product_discount: float = 0
    affiliate_discount: float = 0
    promo_discount: float = 0
    gift_milestone_discount: float = 0
    gift_milestone_cashback: float = 0
    subtotal_after_discount: float = 0
    applied_milestone: Optional[GiftMilestone] = None

    @property
    def has_active_discount(self) -> bool:
        return self.affiliate_discount > 0 or self.promo_discount > 0 or self.gift_milestone_discount > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["applied_milestone"] = self.applied_milestone.dump() if self.applied_milestone else None
        data["has_active_discount"] = self.has_active_discount
        return data


def cart_subtotal(items: Iterable[CartItem]) -> float:
    total = 0.0
    for item in items:
        unit = item.original_unit_price if item.original_unit_price is not None else item.unit_price
        total += unit * item.quantity
    return total


def product_discount(items: Iterable[CartItem]) -> float:
    total = 0.0
    for item in items:
        original = item.original_unit_price
        if original is None:
            continue
        total += (original - item.unit_price) * item.quantity
    return total


def affiliate_discount(items: Iterable[CartItem], affiliate: Optional[AffiliateState]) -> float:
    """Stored amount when the cart carried one, otherwise the commission recomputation."""
    if affiliate is None or not affiliate.code:
        return 0.0
    stored = finite_or_zero(affiliate.discount_amount)
    if affiliate.discount_amount is not None and stored > 0:
        return stored
    total = 0.0
    for item in items:
        pct = finite_or_zero(item.affiliate_commission)
        if pct <= 0:
            continue
        total += item.unit_price * item.quantity * pct / 100
    return float(round_currency(total))


def select_milestone(milestones: Iterable[GiftMilestone], subtotal: float) -> Optional[GiftMilestone]:
    """Highest threshold not above the subtotal, None when no tier qualifies."""
    applied = None
    for milestone in sorted(milestones, key=lambda m: m.min_amount):
        if milestone.min_amount <= subtotal:
            applied = milestone
        else:
            break
    return applied


def milestone_discount(milestone: Optional[GiftMilestone], base: float) -> float:
    if milestone is None:
        return 0.0
    if milestone.discount_type == "percentage":
        return float(round_currency(base * milestone.discount_value / 100))
    if milestone.discount_type == "flat":
        return float(round_currency(milestone.discount_value))
    return 0.0


def milestone_cashback(milestone: Optional[GiftMilestone], base: float) -> float:
    if milestone is None or milestone.cashback_percentage <= 0:
        return 0.0
    return float(round_currency(base * milestone.cashback_percentage / 100))


def aggregate_discounts(items: List[CartItem], affiliate: Optional[AffiliateState] = None,
                        promo: Optional[PromoApplication] = None,
                        milestones: Optional[Iterable[GiftMilestone]] = None) -> DiscountBreakdown:
    """
    Apply the discount pipeline in order: product markdowns, affiliate, promo, then the
    gift milestone chosen against the subtotal left after affiliate and promo.

    Missing or non numeric inputs count as zero. The result never goes below zero.
    """
    out = DiscountBreakdown()
    out.cart_subtotal = cart_subtotal(items)
    out.product_discount = product_discount(items)
    out.subtotal_after_product_discount = out.cart_subtotal - out.product_discount

    out.affiliate_discount = max(0.0, affiliate_discount(items, affiliate))
    out.promo_discount = max(0.0, finite_or_zero(promo.discount_amount)) if promo else 0.0

    milestone_base = max(0.0, out.subtotal_after_product_discount - out.affiliate_discount - out.promo_discount)
    out.applied_milestone = select_milestone(milestones or [], milestone_base)
    out.gift_milestone_discount = milestone_discount(out.applied_milestone, milestone_base)
    out.gift_milestone_cashback = milestone_cashback(out.applied_milestone, milestone_base)

    out.subtotal_after_discount = max(
        0.0,
        out.subtotal_after_product_discount - out.affiliate_discount - out.promo_discount - out.gift_milestone_discount,
    )
    return out
