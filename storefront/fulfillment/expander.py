from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from storefront.checkout.models import CartItem, CheckoutFormState, DeliveryAddress, MultiAddress
from storefront.common.custom_exceptions import AddressAssignmentRequired
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.fulfillment")

ASSIGNMENT_REDIRECT = "address-assignment"


def instance_key(base_key: str, unit_index: int) -> str:
    return f"{base_key}-{unit_index}"


def reciprocal_key(base_key: str, unit_index: int) -> str:
    return f"{unit_index}-{base_key}"


@dataclass
class FulfillmentRecord:
    item: CartItem
    quantity: int
    address: Optional[DeliveryAddress]
    unit_index: Optional[int] = None
    mapping_key: Optional[str] = None

    def to_order_item(self) -> Dict[str, Any]:
        addr = self.address
        return {
            "productId": self.item.id,
            "itemKey": self.item.base_key,
            "productName": self.item.name,
            "productImage": self.item.image,
            "quantity": self.quantity,
            "price": self.item.price,
            "unitIndex": self.unit_index,
            "isCombo": self.item.is_combo,
            "selectedShade": self.item.selected_shade,
            "selectedShades": self.item.selected_shades,
            "deliveryAddressId": addr.id if addr else None,
            "recipientName": addr.recipient_name if addr else None,
            "recipientPhone": addr.phone_number if addr else None,
            "deliveryAddress": addr.full_address if addr else None,
            "deliveryInstructions": addr.delivery_instructions if addr else None,
            "saturdayDelivery": addr.saturday_delivery if addr else False,
            "sundayDelivery": addr.sunday_delivery if addr else False,
        }


@dataclass
class ExpansionResult:
    records: List[FulfillmentRecord] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing

    def order_items(self) -> List[Dict[str, Any]]:
        return [r.to_order_item() for r in self.records]


def resolve_unit(mapping: Mapping[str, int], base_key: str, unit_index: int) -> Tuple[Optional[int], Optional[str]]:
    """Address id for one unit: instance key, then its reciprocal form, then the item-level key."""
    for key in (instance_key(base_key, unit_index), reciprocal_key(base_key, unit_index), base_key):
        if key in mapping:
            return mapping[key], key
    return None, None


def has_instance_keys(mapping: Mapping[str, int], base_key: str, quantity: int) -> bool:
    return any(
        instance_key(base_key, i) in mapping or reciprocal_key(base_key, i) in mapping
        for i in range(quantity)
    )


def expand_multi_address(items: Iterable[CartItem], mode: MultiAddress,
                         addresses: Iterable[DeliveryAddress]) -> ExpansionResult:
    """
    One record per unit with its own address. An item mapped only at item level stays a
    single record with its full quantity.

    Units whose mapping is absent or points at an unknown address are reported as missing.
    Outside active assignment that raises AddressAssignmentRequired; during assignment the
    partial result is returned as a preview.
    """
    by_id = {addr.id: addr for addr in addresses}
    mapping = mode.mapping
    result = ExpansionResult()

    for item in items:
        key = item.base_key
        if not has_instance_keys(mapping, key, item.quantity) and key in mapping:
            address = by_id.get(mapping[key])
            if address is None:
                result.missing.append(key)
            result.records.append(FulfillmentRecord(item, item.quantity, address, mapping_key=key))
            continue

        for i in range(item.quantity):
            address_id, used_key = resolve_unit(mapping, key, i)
            address = by_id.get(address_id) if address_id is not None else None
            if address is None:
                result.missing.append(instance_key(key, i))
            result.records.append(FulfillmentRecord(item, 1, address, unit_index=i, mapping_key=used_key))

    if result.missing and not mode.assignment_active:
        logger.info("fulfillment.assignment_incomplete", extra={"missing": result.missing})
        raise AddressAssignmentRequired(
            "Some items still need a delivery address",
            details={"missing": result.missing, "redirect": ASSIGNMENT_REDIRECT},
        )
    return result


def expand_single_address(items: Iterable[CartItem], address: Optional[DeliveryAddress],
                          form: Optional[CheckoutFormState] = None) -> ExpansionResult:
    """All items ship to one address with their quantities unchanged; form contact fields win."""
    if address is not None and form is not None:
        address = _form_overlay(address, form)
    return ExpansionResult(records=[FulfillmentRecord(item, item.quantity, address) for item in items])


def _form_overlay(address: Optional[DeliveryAddress], form: CheckoutFormState) -> Optional[DeliveryAddress]:
    if address is None:
        return None
    updates = {}
    if form.full_name:
        updates["recipient_name"] = form.full_name
    if form.phone.strip():
        updates["phone_number"] = form.phone.strip()
    if form.delivery_instructions:
        updates["delivery_instructions"] = form.delivery_instructions
    if form.saturday_delivery or form.sunday_delivery:
        updates["saturday_delivery"] = form.saturday_delivery
        updates["sunday_delivery"] = form.sunday_delivery
    return address.model_copy(update=updates) if updates else address
