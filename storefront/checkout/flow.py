import enum
from typing import Iterable, List, Optional
from storefront.addresses.normalize import PROFILE_ADDRESS_ID
from storefront.checkout.models import (
    CartItem, CheckoutFormState, CheckoutMode, DeliveryAddress, MultiAddress,
)
from storefront.common.custom_exceptions import AddressIncomplete, StepTransitionError
from storefront.fulfillment.expander import expand_multi_address
from storefront.location.resolver import is_valid_pincode_format


class CheckoutStep(enum.IntEnum):
    ADDRESS = 1
    REVIEW = 2
    PAYMENT = 3


def form_address(form: CheckoutFormState) -> Optional[DeliveryAddress]:
    """Address typed straight into the checkout form, if any was."""
    if not form.address.strip():
        return None
    return DeliveryAddress(
        id=PROFILE_ADDRESS_ID,
        recipient_name=form.full_name,
        address_line1=form.address,
        city=form.city,
        state=form.state,
        pincode=form.zip_code,
        phone_number=form.phone,
        delivery_instructions=form.delivery_instructions or None,
        saturday_delivery=form.saturday_delivery,
        sunday_delivery=form.sunday_delivery,
    )


def effective_address(selected: Optional[DeliveryAddress], form: CheckoutFormState) -> Optional[DeliveryAddress]:
    if selected is not None:
        return selected
    return form_address(form)


def missing_address_fields(address: Optional[DeliveryAddress], form: Optional[CheckoutFormState] = None) -> List[str]:
    """Fields that keep the address step from completing; empty means the gate is open."""
    if address is None:
        return ["name", "phone", "address", "city", "state", "pincode"]

    name = address.recipient_name
    phone = address.phone_number
    if form is not None:
        name = name or form.full_name
        phone = phone or form.phone

    missing = []
    if not name.strip():
        missing.append("name")
    if not phone.strip():
        missing.append("phone")
    if not address.address_line1.strip():
        missing.append("address")
    if not address.city.strip():
        missing.append("city")
    if not address.state.strip():
        missing.append("state")
    if not is_valid_pincode_format(address.pincode):
        missing.append("pincode")
    return missing


def check_address_exit(mode: CheckoutMode, selected: Optional[DeliveryAddress], form: CheckoutFormState,
                       items: Iterable[CartItem], addresses: Iterable[DeliveryAddress]) -> CheckoutStep:
    """
    Single address: the chosen (or typed) address must be complete.
    Multi address: every unit must resolve to a known address, otherwise
    AddressAssignmentRequired is raised for the caller to redirect.
    """
    if isinstance(mode, MultiAddress):
        # coverage is always enforced on exit, also while assignment is in progress
        expand_multi_address(items, MultiAddress(mapping=mode.mapping, assignment_active=False), addresses)
        return CheckoutStep.REVIEW

    address = effective_address(selected, form)
    missing = missing_address_fields(address, form)
    if missing:
        raise AddressIncomplete("Delivery address is incomplete", details={"fields": missing})
    return CheckoutStep.REVIEW


def check_payment_exit(form: CheckoutFormState, pincode_check_in_flight: bool):
    if form.payment_method is None:
        raise StepTransitionError("Choose a payment method", details={"step": CheckoutStep.PAYMENT.value})
    if pincode_check_in_flight:
        raise StepTransitionError("Pincode check still running, try again in a moment",
                                  details={"step": CheckoutStep.PAYMENT.value})


def next_step(current: int) -> CheckoutStep:
    step = CheckoutStep(current)
    if step == CheckoutStep.PAYMENT:
        raise StepTransitionError("Already at payment, submit the order to continue",
                                  details={"step": step.value})
    return CheckoutStep(step + 1)


def previous_step(current: int, target: Optional[int] = None) -> CheckoutStep:
    step = CheckoutStep(current)
    if target is None:
        return CheckoutStep(max(CheckoutStep.ADDRESS, step - 1))
    wanted = CheckoutStep(target)
    if wanted > step:
        raise StepTransitionError("Cannot move forward with back navigation",
                                  details={"step": step.value, "target": wanted.value})
    return wanted
