from typing import Optional
from pydantic import Field
from storefront.checkout.models import CamelRecord, camel_alias


class AddressCreate(CamelRecord):
    recipient_name: str = Field(..., min_length=1, **camel_alias("recipientName", "recipient_name"))
    address_line1: str = Field(..., min_length=1, **camel_alias("addressLine1", "address_line1"))
    address_line2: Optional[str] = Field(None, **camel_alias("addressLine2", "address_line2"))
    landmark: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str
    country: str = "India"
    phone_number: str = Field(..., min_length=1, **camel_alias("phoneNumber", "phone_number"))
    delivery_instructions: Optional[str] = Field(None, **camel_alias("deliveryInstructions", "delivery_instructions"))
    saturday_delivery: bool = Field(False, **camel_alias("saturdayDelivery", "saturday_delivery"))
    sunday_delivery: bool = Field(False, **camel_alias("sundayDelivery", "sunday_delivery"))
    is_default: bool = Field(False, **camel_alias("isDefault", "is_default"))
    # make the new address the single-address selection
    select: bool = True
