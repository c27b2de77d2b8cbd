import pytest
from storefront.checkout.flow import (
    CheckoutStep, check_address_exit, check_payment_exit, missing_address_fields, next_step, previous_step,
)
from storefront.checkout.models import (
    CartItem, CheckoutFormState, DeliveryAddress, MultiAddress, PaymentMethod, SingleAddress,
)
from storefront.common.custom_exceptions import AddressAssignmentRequired, AddressIncomplete, StepTransitionError

COMPLETE = dict(recipient_name="Ravi", phone_number="9876543210", address_line1="5 Park St",
                city="Kolkata", state="West Bengal", pincode="700016")


def _address(**overrides):
    return DeliveryAddress(id=1, **{**COMPLETE, **overrides})


@pytest.mark.parametrize("overrides,missing", [
    ({}, []),
    ({"recipient_name": " "}, ["name"]),
    ({"phone_number": ""}, ["phone"]),
    ({"address_line1": ""}, ["address"]),
    ({"city": ""}, ["city"]),
    ({"state": ""}, ["state"]),
    ({"pincode": "70001"}, ["pincode"]),
    ({"pincode": "7000166"}, ["pincode"]),
    ({"pincode": "70O016"}, ["pincode"]),
])
def test_address_gate(overrides, missing):
    assert missing_address_fields(_address(**overrides)) == missing


def test_form_name_fills_a_nameless_address():
    form = CheckoutFormState(last_name="Sen")
    assert missing_address_fields(_address(recipient_name=""), form) == []


def test_single_address_exit_uses_typed_form_address():
    form = CheckoutFormState(first_name="Ravi", phone="9876543210", address="5 Park St", city="Kolkata",
                             state="West Bengal", zipCode="700016")
    assert check_address_exit(SingleAddress(), None, form, [], []) == CheckoutStep.REVIEW


def test_single_address_exit_reports_fields():
    with pytest.raises(AddressIncomplete) as exc:
        check_address_exit(SingleAddress(), _address(city="", pincode="12"), CheckoutFormState(), [], [])
    assert exc.value.details["fields"] == ["city", "pincode"]


def test_multi_address_exit_is_strict_even_while_assigning():
    items = [CartItem(id=7, quantity=2)]
    mode = MultiAddress(mapping={"7-0": 1}, assignment_active=True)
    with pytest.raises(AddressAssignmentRequired):
        check_address_exit(mode, None, CheckoutFormState(), items, [_address()])

    mode = MultiAddress(mapping={"7-0": 1, "7-1": 1})
    assert check_address_exit(mode, None, CheckoutFormState(), items, [_address()]) == CheckoutStep.REVIEW


def test_payment_exit_needs_method_and_settled_pincode():
    with pytest.raises(StepTransitionError):
        check_payment_exit(CheckoutFormState(), False)
    form = CheckoutFormState(payment_method=PaymentMethod.COD)
    with pytest.raises(StepTransitionError):
        check_payment_exit(form, True)
    check_payment_exit(form, False)


def test_step_navigation():
    assert next_step(1) == CheckoutStep.REVIEW
    assert next_step(2) == CheckoutStep.PAYMENT
    with pytest.raises(StepTransitionError):
        next_step(3)

    assert previous_step(3) == CheckoutStep.REVIEW
    assert previous_step(1) == CheckoutStep.ADDRESS
    assert previous_step(3, 1) == CheckoutStep.ADDRESS
    with pytest.raises(StepTransitionError):
        previous_step(1, 2)
