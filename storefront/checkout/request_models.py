from typing import Any, Dict, List, Literal, Optional
from pydantic import Field
from storefront.checkout.models import (
    AffiliateState, CamelRecord, CartItem, CheckoutFormState, CheckoutMode, PaymentMethod, PromoApplication,
    UserProfile, camel_alias,
)
from storefront.checkout.runtime import LOOKUP, NEW_ADDRESS


class SessionUpdate(CamelRecord):
    """Partial update; a field sent as null clears it, an omitted field is left alone."""
    cart: Optional[List[CartItem]] = None
    profile: Optional[UserProfile] = None
    selected_address_id: Optional[int] = Field(None, **camel_alias("selectedAddressId", "selected_address_id"))
    selected_address: Optional[Dict[str, Any]] = Field(None, **camel_alias("selectedAddress", "selected_address"))
    mode: Optional[CheckoutMode] = None
    promo: Optional[PromoApplication] = None
    affiliate: Optional[AffiliateState] = None
    form: Optional[CheckoutFormState] = None


class WalletReserveRequest(CamelRecord):
    amount: float


class AffiliateWalletRequest(CamelRecord):
    amount: float = Field(..., ge=0)


class PincodeCheckRequest(CamelRecord):
    pincode: str
    purpose: Literal["lookup", "new_address"] = LOOKUP


class StepBackRequest(CamelRecord):
    target: Optional[int] = Field(None, ge=1, le=3)


class SubmitRequest(CamelRecord):
    payment_method: Optional[PaymentMethod] = Field(None, **camel_alias("paymentMethod", "payment_method"))


PINCODE_PURPOSES = (LOOKUP, NEW_ADDRESS)
