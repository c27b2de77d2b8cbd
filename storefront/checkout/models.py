from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from storefront.common.utils import finite_or_zero, parse_price


def camel_alias(camel: str, snake: str) -> Dict[str, Any]:
    return {"validation_alias": AliasChoices(camel, snake), "serialization_alias": camel}


class CamelRecord(BaseModel):
    # storefront api and browser storage speak camelCase, python code speaks snake_case
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PaymentMethod(str, Enum):
    CASHFREE = "cashfree"
    COD = "cod"


class CartItem(CamelRecord):
    id: Union[int, str]
    item_key: Optional[str] = Field(None, **camel_alias("itemKey", "item_key"))
    name: str = ""
    image: Optional[str] = None
    price: Union[str, float, int] = 0
    original_price: Optional[Union[str, float, int]] = Field(None, **camel_alias("originalPrice", "original_price"))
    quantity: int = Field(1, ge=1)
    is_combo: bool = Field(False, **camel_alias("isCombo", "is_combo"))
    is_offer_item: bool = Field(False, **camel_alias("isOfferItem", "is_offer_item"))
    selected_shade: Optional[Any] = Field(None, **camel_alias("selectedShade", "selected_shade"))
    selected_shades: Optional[List[Any]] = Field(None, **camel_alias("selectedShades", "selected_shades"))
    affiliate_commission: Optional[float] = Field(None, **camel_alias("affiliateCommission", "affiliate_commission"))
    affiliate_user_discount: Optional[float] = Field(None, **camel_alias("affiliateUserDiscount", "affiliate_user_discount"))
    cashback_price: Optional[Union[str, float, int]] = Field(None, **camel_alias("cashbackPrice", "cashback_price"))
    cashback_percentage: Optional[float] = Field(None, **camel_alias("cashbackPercentage", "cashback_percentage"))

    @field_validator("affiliate_commission", "affiliate_user_discount", "cashback_percentage", mode="before")
    @classmethod
    def _lenient_number(cls, v):
        if v is None or v == "":
            return None
        return finite_or_zero(v)

    @property
    def base_key(self) -> str:
        return str(self.item_key) if self.item_key not in (None, "") else str(self.id)

    @property
    def unit_price(self) -> float:
        return parse_price(self.price)

    @property
    def original_unit_price(self) -> Optional[float]:
        """Pre-discount unit price, only when it is actually above the current price."""
        if self.original_price in (None, ""):
            return None
        original = parse_price(self.original_price)
        if original <= self.unit_price:
            return None
        return original


class DeliveryAddress(CamelRecord):
    id: int
    recipient_name: str = Field("", **camel_alias("recipientName", "recipient_name"))
    address_line1: str = Field("", **camel_alias("addressLine1", "address_line1"))
    address_line2: Optional[str] = Field(None, **camel_alias("addressLine2", "address_line2"))
    landmark: Optional[str] = None
    city: str = ""
    state: str = ""
    pincode: str = ""
    country: str = "India"
    phone_number: str = Field("", **camel_alias("phoneNumber", "phone_number"))
    delivery_instructions: Optional[str] = Field(None, **camel_alias("deliveryInstructions", "delivery_instructions"))
    saturday_delivery: bool = Field(False, **camel_alias("saturdayDelivery", "saturday_delivery"))
    sunday_delivery: bool = Field(False, **camel_alias("sundayDelivery", "sunday_delivery"))
    is_default: bool = Field(False, **camel_alias("isDefault", "is_default"))

    @field_validator("pincode", "phone_number", "recipient_name", "address_line1", "city", "state", mode="before")
    @classmethod
    def _stringify(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("saturday_delivery", "sunday_delivery", "is_default", mode="before")
    @classmethod
    def _none_is_false(cls, v):
        return False if v is None else v

    @property
    def full_address(self) -> str:
        line = self.address_line1
        if self.address_line2:
            line = f"{line}, {self.address_line2}"
        if self.landmark:
            line = f"{line}, {self.landmark}"
        return f"{line}, {self.city}, {self.state} - {self.pincode}, {self.country}"


class UserProfile(CamelRecord):
    id: Union[int, str]
    first_name: str = Field("", **camel_alias("firstName", "first_name"))
    last_name: str = Field("", **camel_alias("lastName", "last_name"))
    email: str = ""
    phone: str = ""
    address: str = ""

    @field_validator("first_name", "last_name", "email", "phone", "address", mode="before")
    @classmethod
    def _none_is_blank(cls, v):
        return "" if v is None else str(v)

    @property
    def display_name(self) -> str:
        return f"{self.first_name.strip()} {self.last_name.strip()}".strip()


class PromoApplication(CamelRecord):
    code: str
    discount_amount: float = Field(0, **camel_alias("discountAmount", "discount_amount"))

    @field_validator("discount_amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return finite_or_zero(v)


class GiftMilestone(CamelRecord):
    id: Optional[Union[int, str]] = None
    min_amount: float = Field(0, **camel_alias("minAmount", "min_amount"))
    discount_type: Literal["none", "percentage", "flat"] = Field("none", **camel_alias("discountType", "discount_type"))
    discount_value: float = Field(0, **camel_alias("discountValue", "discount_value"))
    cashback_percentage: float = Field(0, **camel_alias("cashbackPercentage", "cashback_percentage"))
    gift_count: int = Field(0, **camel_alias("giftCount", "gift_count"))

    @field_validator("min_amount", "discount_value", "cashback_percentage", mode="before")
    @classmethod
    def _number(cls, v):
        return finite_or_zero(v)

    @field_validator("gift_count", mode="before")
    @classmethod
    def _count(cls, v):
        return int(finite_or_zero(v))

    @field_validator("discount_type", mode="before")
    @classmethod
    def _kind(cls, v):
        kind = str(v or "none").strip().lower()
        return kind if kind in ("percentage", "flat") else "none"


class AffiliateState(CamelRecord):
    code: Optional[str] = None
    # value stored while the cart was assembled, preferred over a live recomputation
    discount_amount: Optional[float] = Field(None, **camel_alias("discountAmount", "discount_amount"))
    wallet_amount: float = Field(0, **camel_alias("walletAmount", "wallet_amount"))


class WalletState(str, Enum):
    IDLE = "idle"
    RESERVED = "reserved"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class WalletReservation(CamelRecord):
    amount: float = 0
    expires_at: Optional[datetime] = Field(None, **camel_alias("expiresAt", "expires_at"))
    state: WalletState = WalletState.IDLE


class CheckoutFormState(CamelRecord):
    first_name: str = Field("", **camel_alias("firstName", "first_name"))
    last_name: str = Field("", **camel_alias("lastName", "last_name"))
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = Field("", validation_alias=AliasChoices("zipCode", "zip_code", "pincode"), serialization_alias="zipCode")
    payment_method: Optional[PaymentMethod] = Field(None, **camel_alias("paymentMethod", "payment_method"))
    delivery_instructions: str = Field("", **camel_alias("deliveryInstructions", "delivery_instructions"))
    saturday_delivery: bool = Field(False, **camel_alias("saturdayDelivery", "saturday_delivery"))
    sunday_delivery: bool = Field(False, **camel_alias("sundayDelivery", "sunday_delivery"))

    @property
    def full_name(self) -> str:
        return f"{self.first_name.strip()} {self.last_name.strip()}".strip()

    @property
    def shipping_address_text(self) -> str:
        return f"{self.address}, {self.city}, {self.state} {self.zip_code}".strip()


class SingleAddress(CamelRecord):
    kind: Literal["single"] = "single"


class MultiAddress(CamelRecord):
    kind: Literal["multi"] = "multi"
    # instance key ("{itemKeyOrId}-{unitIndex}") or base key -> delivery address id
    mapping: Dict[str, int] = Field(default_factory=dict)
    assignment_active: bool = Field(False, **camel_alias("assignmentActive", "assignment_active"))


CheckoutMode = Annotated[Union[SingleAddress, MultiAddress], Field(discriminator="kind")]

checkout_mode_adapter = TypeAdapter(CheckoutMode)
cart_adapter = TypeAdapter(List[CartItem])
address_list_adapter = TypeAdapter(List[DeliveryAddress])
milestone_list_adapter = TypeAdapter(List[GiftMilestone])
