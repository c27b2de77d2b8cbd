from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from storefront.addresses.normalize import normalize_address
from storefront.addresses.services import list_user_addresses
from storefront.checkout.flow import (
    CheckoutStep, check_address_exit, effective_address, next_step, previous_step,
)
from storefront.checkout.models import (
    CartItem, CheckoutFormState, CheckoutMode, DeliveryAddress, GiftMilestone, MultiAddress,
    PaymentMethod, SingleAddress, milestone_list_adapter,
)
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.custom_exceptions import AddressAssignmentRequired, CheckoutError, CollaboratorError
from storefront.common.logging_setup import get_logger
from storefront.fulfillment.expander import ExpansionResult, expand_multi_address, expand_single_address
from storefront.pricing.discounts import DiscountBreakdown, aggregate_discounts
from storefront.pricing.totals import payable_total
from storefront.session.checkout_session import CheckoutSession
from storefront.shipping.resolver import ShippingQuote, resolve_shipping
from storefront.wallet.reservation import WalletManager

logger = get_logger("storefront.checkout")


@dataclass
class CheckoutSummary:
    items: List[CartItem]
    mode: CheckoutMode
    form: CheckoutFormState
    address: Optional[DeliveryAddress]
    discounts: DiscountBreakdown
    shipping: ShippingQuote
    wallet_amount: float
    affiliate_wallet_amount: float
    total: float
    fulfillment: ExpansionResult

    @property
    def is_multi_address(self) -> bool:
        return isinstance(self.mode, MultiAddress)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.dump() for item in self.items],
            "is_multi_address": self.is_multi_address,
            "address": self.address.dump() if self.address else None,
            "discounts": self.discounts.to_dict(),
            "shipping": self.shipping.to_dict(),
            "wallet_amount": self.wallet_amount,
            "affiliate_wallet_amount": self.affiliate_wallet_amount,
            "total": self.total,
            "fulfillment": {
                "complete": self.fulfillment.complete,
                "missing": self.fulfillment.missing,
                "items": self.fulfillment.order_items(),
            },
        }


async def load_gift_milestones(client: StorefrontApiClient, session: CheckoutSession) -> List[GiftMilestone]:
    """Fresh milestones when the storefront answers, the last known list otherwise."""
    try:
        raw = await client.get_gift_milestones()
    except CollaboratorError:
        logger.warning("checkout.milestones_unavailable", extra={"user_id": session.user_id})
        return await session.gift_milestones()
    milestones = milestone_list_adapter.validate_python([m for m in raw if isinstance(m, dict)])
    await session.set_gift_milestones(milestones)
    return milestones


async def compute_summary(client: StorefrontApiClient, session: CheckoutSession, strict: bool = False) -> CheckoutSummary:
    """
    Price the current cart and lay out its fulfillment.

    With strict=True a multi-address cart whose mapping does not cover every unit raises
    AddressAssignmentRequired; otherwise the gaps are reported in the result.
    """
    items = await session.cart()
    discounts = aggregate_discounts(
        items,
        affiliate=await session.affiliate(),
        promo=await session.promo(),
        milestones=await load_gift_milestones(client, session),
    )

    mode = await session.mode()
    form = await session.form()
    if isinstance(mode, MultiAddress):
        addresses = await list_user_addresses(client, session)
        expansion_mode = mode if not strict else MultiAddress(mapping=mode.mapping, assignment_active=False)
        fulfillment = expand_multi_address(items, expansion_mode, addresses)
        # the parcel rate is quoted against the first resolved destination
        address = next((r.address for r in fulfillment.records if r.address is not None), None)
    else:
        address = effective_address(await session.selected_address(), form)
        fulfillment = expand_single_address(items, address, form)

    wallet_amount = await WalletManager(session).active_amount()
    affiliate_wallet_amount = (await session.affiliate()).wallet_amount
    cod = form.payment_method == PaymentMethod.COD

    quantity = sum(item.quantity for item in items)
    shipping = await resolve_shipping(client, discounts, address.pincode if address else None, quantity, cod)
    total = payable_total(discounts.subtotal_after_discount, shipping.shipping_cost, wallet_amount, affiliate_wallet_amount)

    return CheckoutSummary(
        items=items, mode=mode, form=form, address=address, discounts=discounts, shipping=shipping,
        wallet_amount=wallet_amount, affiliate_wallet_amount=affiliate_wallet_amount, total=total,
        fulfillment=fulfillment,
    )


async def advance_step(client: StorefrontApiClient, session: CheckoutSession) -> CheckoutStep:
    current = CheckoutStep(await session.step())
    target = next_step(current)

    if current == CheckoutStep.ADDRESS:
        mode = await session.mode()
        items = await session.cart()
        addresses = await list_user_addresses(client, session) if isinstance(mode, MultiAddress) else []
        try:
            check_address_exit(mode, await session.selected_address(), await session.form(), items, addresses)
        except AddressAssignmentRequired:
            # hand the assignment flow what it needs and keep the user on the address step
            await session.set_cart_snapshot(items)
            await session.set_mode(MultiAddress(mapping=mode.mapping, assignment_active=True))
            logger.info("checkout.assignment_redirect", extra={"user_id": session.user_id})
            raise

    await session.set_step(target)
    logger.info("checkout.step_advanced", extra={"user_id": session.user_id, "step": target.value})
    return target


async def go_back(session: CheckoutSession, target: Optional[int] = None) -> CheckoutStep:
    step = previous_step(await session.step(), target)
    await session.set_step(step)
    return step


async def preview_fulfillment(client: StorefrontApiClient, session: CheckoutSession) -> ExpansionResult:
    items = await session.cart()
    mode = await session.mode()
    if isinstance(mode, MultiAddress):
        addresses = await list_user_addresses(client, session)
        return expand_multi_address(items, mode, addresses)
    form = await session.form()
    return expand_single_address(items, effective_address(await session.selected_address(), form), form)


async def apply_session_update(client: StorefrontApiClient, session: CheckoutSession, update) -> None:
    """Write the fields present in a SessionUpdate into the session."""
    sent = update.model_fields_set

    if "cart" in sent:
        await session.set_cart(update.cart or [])
    if "profile" in sent:
        await session.set_profile(update.profile)
    if "mode" in sent:
        await session.set_mode(update.mode or SingleAddress())
    if "promo" in sent:
        await session.set_promo(update.promo)

    if "affiliate" in sent:
        affiliate = update.affiliate
        if affiliate is not None and "wallet_amount" not in affiliate.model_fields_set:
            affiliate.wallet_amount = (await session.affiliate()).wallet_amount
        await session.set_affiliate(affiliate)

    if "form" in sent:
        current = await session.form()
        if update.form is None:
            await session.set_form(CheckoutFormState())
        else:
            changes = {name: getattr(update.form, name) for name in update.form.model_fields_set}
            await session.set_form(current.model_copy(update=changes))

    if "selected_address" in sent:
        await session.set_selected_address(normalize_address(update.selected_address) if update.selected_address else None)
    elif "selected_address_id" in sent:
        if update.selected_address_id is None:
            await session.set_selected_address(None)
        else:
            addresses = await list_user_addresses(client, session)
            chosen = next((a for a in addresses if a.id == update.selected_address_id), None)
            if chosen is None:
                raise CheckoutError("Unknown delivery address", details={"address_id": update.selected_address_id},
                                    status_code=404)
            await session.set_selected_address(chosen)
