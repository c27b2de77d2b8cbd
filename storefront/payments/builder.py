from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional
from storefront.checkout.models import (
    AffiliateState, CheckoutFormState, DeliveryAddress, MultiAddress, PaymentMethod, PromoApplication, UserProfile,
)
from storefront.checkout.services import CheckoutSummary
from storefront.common.constants import CURRENCY
from storefront.common.utils import now_ms, round_currency
from storefront.config.settings import config_settings
from storefront.payments.constants import COD_LABEL, ORDER_STATUS_CONFIRMED
from storefront.payments.validation import clean_phone, is_valid_email, is_valid_phone


@dataclass
class ContactDetails:
    customer_id: str
    name: str
    email: str
    phone: str

    def to_gateway(self) -> Dict[str, str]:
        return {
            "customerId": self.customer_id,
            "customerName": self.name,
            "customerEmail": self.email,
            "customerPhone": self.phone,
        }


def _first(candidates: Iterable[Optional[str]], accept: Callable[[str], bool], default: str) -> str:
    for value in candidates:
        if value and value.strip() and accept(value.strip()):
            return value.strip()
    return default


def _ten_digits(phone: str) -> str:
    digits = clean_phone(phone)
    return digits[-10:] if len(digits) > 10 else digits


def resolve_contact(user_id: int, address: Optional[DeliveryAddress], form: CheckoutFormState,
                    profile: Optional[UserProfile]) -> ContactDetails:
    """
    Contact fields for the gateway: selected address, then form, then profile, then
    configured placeholders. Each field falls through independently past unusable values.
    """
    name = _first(
        (address.recipient_name if address else None, form.full_name, profile.display_name if profile else None),
        lambda v: True, config_settings.PLACEHOLDER_CUSTOMER_NAME)
    email = _first(
        (form.email, profile.email if profile else None),
        is_valid_email, config_settings.PLACEHOLDER_EMAIL)
    phone = _first(
        (address.phone_number if address else None, form.phone, profile.phone if profile else None),
        is_valid_phone, config_settings.PLACEHOLDER_PHONE)
    return ContactDetails(customer_id=str(user_id), name=name, email=email, phone=_ten_digits(phone))


def order_reference(user_id: int, clock: Callable[[], int] = now_ms) -> str:
    return f"ORD-{clock()}-{user_id}"


def shipping_address_text(address: Optional[DeliveryAddress], form: CheckoutFormState) -> str:
    if address is not None:
        return address.full_address
    return form.shipping_address_text


def build_order_data(user_id: int, reference: str, summary: CheckoutSummary, contact: ContactDetails,
                     payment_method: PaymentMethod, promo: Optional[PromoApplication],
                     affiliate: AffiliateState) -> Dict[str, Any]:
    discounts = summary.discounts
    milestone = discounts.applied_milestone
    address = summary.address
    mode = summary.mode
    return {
        "userId": user_id,
        "orderReference": reference,
        "totalAmount": round_currency(summary.total),
        "paymentMethod": payment_method.value,
        "customerName": contact.name,
        "customerEmail": contact.email,
        "customerPhone": contact.phone,
        "shippingAddress": shipping_address_text(address, summary.form),
        "deliveryAddressId": address.id if address and not summary.is_multi_address else None,
        "deliveryInstructions": summary.form.delivery_instructions or None,
        "saturdayDelivery": summary.form.saturday_delivery,
        "sundayDelivery": summary.form.sunday_delivery,
        "cartSubtotal": discounts.cart_subtotal,
        "productDiscount": discounts.product_discount,
        "subtotalAfterProductDiscount": discounts.subtotal_after_product_discount,
        "affiliateCode": affiliate.code,
        "affiliateDiscount": discounts.affiliate_discount,
        "promoCode": promo.code if promo else None,
        "promoDiscount": discounts.promo_discount,
        "giftMilestoneId": milestone.id if milestone else None,
        "giftMilestoneDiscount": discounts.gift_milestone_discount,
        "giftMilestoneCashback": discounts.gift_milestone_cashback,
        "giftCount": milestone.gift_count if milestone else 0,
        "shippingCost": summary.shipping.shipping_cost,
        "shippingCourier": summary.shipping.courier.courier_name,
        "manualFulfillment": summary.shipping.courier.manual,
        "cashbackWalletAmount": summary.wallet_amount,
        "affiliateWalletAmount": summary.affiliate_wallet_amount,
        "isMultiAddressOrder": summary.is_multi_address,
        "addressMapping": mode.mapping if isinstance(mode, MultiAddress) else None,
        "items": summary.fulfillment.order_items(),
    }


def build_gateway_request(reference: str, order_data: Dict[str, Any], contact: ContactDetails) -> Dict[str, Any]:
    return {
        "amount": order_data["totalAmount"],
        "orderId": reference,
        "currency": CURRENCY,
        "customerDetails": contact.to_gateway(),
        "orderNote": config_settings.ORDER_NOTE,
        "orderData": order_data,
    }


def build_cod_order(order_data: Dict[str, Any]) -> Dict[str, Any]:
    return {**order_data, "status": ORDER_STATUS_CONFIRMED, "paymentMethod": COD_LABEL}


def return_url(reference: str) -> str:
    return f"{config_settings.PUBLIC_BASE_URL.rstrip('/')}/checkout?payment=processing&orderId={reference}"
