import json
from datetime import timedelta
import httpx
import pytest
from storefront.addresses.normalize import normalize_address
from storefront.checkout.models import (
    AffiliateState, CartItem, CheckoutFormState, PaymentMethod, UserProfile, WalletReservation, WalletState,
)
from storefront.checkout.runtime import CheckoutRuntime
from storefront.common.custom_exceptions import (
    CheckoutError, OrderCreationError, PaymentGatewayError, StepTransitionError, SubmissionInProgress,
)
from storefront.common.utils import now
from storefront.payments.builder import order_reference, resolve_contact
from storefront.payments.repository import get_submission
from storefront.payments.services import handle_payment_return, submit_checkout
from storefront.payments.validation import advisory_warnings, is_valid_phone
from storefront.schema.checkout_submission import SubmissionStatus
from storefront.session.checkout_session import CheckoutSession
from tests.conftest import SAVED_ADDRESSES, USER_ID


@pytest.fixture
async def runtime(storefront_client):
    runtime = CheckoutRuntime(storefront_client, debounce=0, poll_interval=0.05)
    yield runtime
    await runtime.shutdown()


async def prime_checkout(session, method=PaymentMethod.COD, **form_overrides):
    await session.set_cart([CartItem(id=1, name="Serum", price="₹500", original_price="₹600", quantity=2)])
    await session.set_selected_address(normalize_address(SAVED_ADDRESSES[0]))
    form = {"first_name": "Asha", "last_name": "Rao", "email": "asha@example.com", "phone": "9876543210",
            "payment_method": method, **form_overrides}
    await session.set_form(CheckoutFormState(**form))
    await session.set_step(3)


def gateway_accepts(fake_storefront, session_id="sess_123", environment="production"):
    def handler(request):
        sent = json.loads(request.content)
        return httpx.Response(200, json={"orderId": sent["orderId"], "paymentSessionId": session_id,
                                         "environment": environment})
    fake_storefront.on("POST", "/payments/cashfree/create-order", handler=handler)


async def _ledger_row(db_sessionmaker, reference):
    async with db_sessionmaker() as db:
        return await get_submission(db, reference)


# contact details and advisory validation

@pytest.mark.parametrize("phone,ok", [
    ("9876543210", True), ("+91 98765-43210", True), ("919876543210", True), ("5876543210", False),
    ("98765", False), ("", False),
])
def test_phone_rule(phone, ok):
    assert is_valid_phone(phone) is ok


def test_advisory_warnings_name_fields():
    warnings = advisory_warnings("12345", "not-an-email", "short", "1234")
    assert [w["field"] for w in warnings] == ["phone", "email", "address", "pincode"]
    assert advisory_warnings("9876543210", "a@example.com", "12 MG Road, Bengaluru", "560001") == []


def test_contact_falls_through_each_source():
    profile = UserProfile(id=USER_ID, first_name="Profile", email="p@example.com", phone="9000000000")
    form = CheckoutFormState(email="broken", phone="+91 91234 56789")

    contact = resolve_contact(USER_ID, None, form, profile)
    assert contact.name == "Profile"
    assert contact.email == "p@example.com"
    assert contact.phone == "9123456789"
    assert contact.customer_id == str(USER_ID)


def test_contact_uses_placeholders_when_nothing_is_usable():
    contact = resolve_contact(USER_ID, None, CheckoutFormState(), None)
    assert contact.name
    assert contact.email
    assert is_valid_phone(contact.phone)


def test_order_reference_format():
    assert order_reference(42, clock=lambda: 1700000000000) == "ORD-1700000000000-42"


# cash on delivery

async def test_cod_places_order_and_clears_checkout(storefront_client, fake_storefront, checkout_session, runtime,
                                                   db_session, db_sessionmaker):
    fake_storefront.on("POST", "/orders", status=201, body={"orderId": "SRV-9"})
    await prime_checkout(checkout_session)
    await checkout_session.set_wallet(WalletReservation(
        amount=100, expires_at=now() + timedelta(minutes=5), state=WalletState.RESERVED))

    result = await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    assert result["order_id"] == "SRV-9"
    assert result["amount"] == 700
    assert result["events"] == ["cartUpdated", "walletUpdated"]
    assert result["warnings"] == []

    order = fake_storefront.calls_to("POST", "/orders")[0]["json"]
    assert order["status"] == "confirmed"
    assert order["paymentMethod"] == "Cash on Delivery"
    assert order["totalAmount"] == 700
    assert order["cashbackWalletAmount"] == 100
    assert order["productDiscount"] == 200
    assert order["shippingCost"] == 0
    assert order["customerPhone"] == "9876543210"
    assert [i["quantity"] for i in order["items"]] == [2]

    assert await checkout_session.cart() == []
    assert await checkout_session.step() == 1
    assert (await checkout_session.wallet()).state == WalletState.IDLE

    row = await _ledger_row(db_sessionmaker, result["order_reference"])
    assert row.status == SubmissionStatus.PLACED
    assert row.server_order_id == "SRV-9"
    assert row.amount == 700


async def test_cod_logs_affiliate_wallet_usage(storefront_client, fake_storefront, checkout_session, runtime,
                                              db_session):
    fake_storefront.on("POST", "/orders", body={"orderId": "SRV-10"})
    fake_storefront.on("POST", "/affiliate/transactions", body={"ok": True})
    await prime_checkout(checkout_session)
    await checkout_session.set_affiliate(AffiliateState(code="AFF", wallet_amount=50))

    result = await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    assert result["amount"] == 750
    logged = fake_storefront.calls_to("POST", "/affiliate/transactions")[0]["json"]
    assert logged == {"userId": USER_ID, "amount": 50, "type": "debit",
                      "description": "Used in order SRV-10", "orderId": "SRV-10"}


async def test_invalid_contact_details_do_not_block_the_order(storefront_client, fake_storefront, checkout_session,
                                                             runtime, db_session):
    fake_storefront.on("POST", "/orders", body={"orderId": "SRV-11"})
    await prime_checkout(checkout_session, email="nope", phone="12345")

    result = await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    assert {w["field"] for w in result["warnings"]} == {"phone", "email"}
    assert result["order_id"] == "SRV-11"


async def test_failed_cod_order_keeps_checkout(storefront_client, fake_storefront, checkout_session, runtime,
                                              db_session, db_sessionmaker):
    fake_storefront.on("POST", "/orders", status=500, body={"error": "db down"})
    await prime_checkout(checkout_session)

    with pytest.raises(OrderCreationError) as exc:
        await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    reference = exc.value.details["order_reference"]
    assert len(await checkout_session.cart()) == 1
    row = await _ledger_row(db_sessionmaker, reference)
    assert row.status == SubmissionStatus.FAILED
    # lock released, a retry is possible
    assert await checkout_session.acquire_processing("retry")


async def test_concurrent_submission_is_rejected(storefront_client, checkout_session, runtime, db_session):
    await prime_checkout(checkout_session)
    assert await checkout_session.acquire_processing("first-click")

    with pytest.raises(SubmissionInProgress):
        await submit_checkout(storefront_client, checkout_session, db_session, runtime)


async def test_submit_requires_payment_step(storefront_client, checkout_session, runtime, db_session):
    await prime_checkout(checkout_session)
    await checkout_session.set_step(2)
    with pytest.raises(StepTransitionError):
        await submit_checkout(storefront_client, checkout_session, db_session, runtime)


async def test_submit_requires_payment_method(storefront_client, checkout_session, runtime, db_session):
    await prime_checkout(checkout_session, payment_method=None)
    with pytest.raises(StepTransitionError):
        await submit_checkout(storefront_client, checkout_session, db_session, runtime)


async def test_empty_cart_is_refused(storefront_client, checkout_session, runtime, db_session):
    await prime_checkout(checkout_session)
    await checkout_session.set_cart([])
    with pytest.raises(CheckoutError):
        await submit_checkout(storefront_client, checkout_session, db_session, runtime)


# online payment

async def test_gateway_session_is_returned_for_online_payment(storefront_client, fake_storefront, checkout_session,
                                                             runtime, db_session, db_sessionmaker):
    gateway_accepts(fake_storefront)
    await prime_checkout(checkout_session, method=PaymentMethod.COD)

    result = await submit_checkout(storefront_client, checkout_session, db_session, runtime,
                                   payment_method=PaymentMethod.CASHFREE)

    assert result["payment_method"] == "cashfree"
    assert result["payment_session_id"] == "sess_123"
    assert result["environment"] == "production"
    assert result["sdk_url"].startswith("https://")
    assert result["return_url"].endswith(f"orderId={result['order_id']}")
    assert result["order_id"].startswith("ORD-")

    sent = fake_storefront.calls_to("POST", "/payments/cashfree/create-order")[0]["json"]
    assert sent["amount"] == 800
    assert sent["currency"] == "INR"
    assert sent["customerDetails"]["customerPhone"] == "9876543210"
    assert sent["orderData"]["paymentMethod"] == "cashfree"

    pending = await checkout_session.pending_order()
    assert pending["orderId"] == result["order_id"]
    assert pending["paymentSessionId"] == "sess_123"
    assert (await checkout_session.form()).payment_method == PaymentMethod.CASHFREE
    # cart stays until the gateway confirms
    assert len(await checkout_session.cart()) == 1

    row = await _ledger_row(db_sessionmaker, result["order_id"])
    assert row.status == SubmissionStatus.SESSION_CREATED
    assert row.payment_session_id == "sess_123"


@pytest.mark.parametrize("status,body,kind", [
    (500, {"error": "Cashfree credentials missing", "configError": True}, PaymentGatewayError.NOT_CONFIGURED),
    (400, {"error": "amount mismatch"}, PaymentGatewayError.REJECTED),
    (400, {"error": {"code": "order_amount_invalid", "message": "amount too low"}}, PaymentGatewayError.REJECTED),
    (200, {"orderId": "x"}, PaymentGatewayError.MISSING_SESSION),
])
async def test_gateway_failures_are_classified(storefront_client, fake_storefront, checkout_session, runtime,
                                               db_session, status, body, kind):
    fake_storefront.on("POST", "/payments/cashfree/create-order", status=status, body=body)
    await prime_checkout(checkout_session, method=PaymentMethod.CASHFREE)

    with pytest.raises(PaymentGatewayError) as exc:
        await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    assert exc.value.kind == kind
    assert exc.value.details["kind"] == kind
    assert isinstance(exc.value.message, str)
    assert await checkout_session.pending_order() is None


async def test_unverified_payment_restores_cart(storefront_client, fake_storefront, checkout_session, runtime,
                                                db_session, db_sessionmaker):
    gateway_accepts(fake_storefront)
    fake_storefront.on("POST", "/payments/cashfree/verify", body={"verified": False})
    await prime_checkout(checkout_session, method=PaymentMethod.CASHFREE)
    submitted = await submit_checkout(storefront_client, checkout_session, db_session, runtime)
    await checkout_session.set_cart([])

    result = await handle_payment_return(storefront_client, checkout_session, db_session, runtime,
                                         submitted["order_id"])

    assert result == {"verified": False, "order_id": submitted["order_id"], "cart_restored": True}
    assert [i.quantity for i in await checkout_session.cart()] == [2]
    assert await checkout_session.pending_order() is None
    row = await _ledger_row(db_sessionmaker, submitted["order_id"])
    assert row.status == SubmissionStatus.FAILED


async def test_verified_payment_clears_checkout(storefront_client, fake_storefront, checkout_session, runtime,
                                                db_session, db_sessionmaker):
    gateway_accepts(fake_storefront)
    fake_storefront.on("POST", "/payments/cashfree/verify", body={"verified": True})
    await prime_checkout(checkout_session, method=PaymentMethod.CASHFREE)
    submitted = await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    result = await handle_payment_return(storefront_client, checkout_session, db_session, runtime,
                                         submitted["order_id"])

    assert result["verified"] is True
    assert await checkout_session.cart() == []
    assert await checkout_session.pending_order() is None
    row = await _ledger_row(db_sessionmaker, submitted["order_id"])
    assert row.status == SubmissionStatus.PAID


async def test_verification_outage_is_reported(storefront_client, fake_storefront, checkout_session, runtime,
                                               db_session):
    fake_storefront.on("POST", "/payments/cashfree/verify", status=503, body={"error": "down"})
    with pytest.raises(PaymentGatewayError) as exc:
        await handle_payment_return(storefront_client, checkout_session, db_session, runtime, "ORD-1-42")
    assert exc.value.kind == PaymentGatewayError.VERIFICATION_FAILED


async def test_return_for_another_users_order_leaves_it_alone(storefront_client, fake_storefront, checkout_session,
                                                              store, runtime, db_session, db_sessionmaker):
    gateway_accepts(fake_storefront)
    fake_storefront.on("POST", "/payments/cashfree/verify", body={"verified": False})
    await prime_checkout(checkout_session, method=PaymentMethod.CASHFREE)
    submitted = await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    other = CheckoutSession(store, 999)
    result = await handle_payment_return(storefront_client, other, db_session, runtime, submitted["order_id"])

    assert result["cart_restored"] is False
    assert await other.cart() == []
    row = await _ledger_row(db_sessionmaker, submitted["order_id"])
    assert row.status == SubmissionStatus.SESSION_CREATED
    assert (await checkout_session.pending_order())["orderId"] == submitted["order_id"]


async def test_ledger_rows_only_move_for_their_owner(storefront_client, fake_storefront, checkout_session, store,
                                                     runtime, db_session, db_sessionmaker):
    gateway_accepts(fake_storefront)
    fake_storefront.on("POST", "/payments/cashfree/verify", body={"verified": True})
    await prime_checkout(checkout_session, method=PaymentMethod.CASHFREE)
    submitted = await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    await handle_payment_return(storefront_client, CheckoutSession(store, 999), db_session, runtime,
                                submitted["order_id"])

    row = await _ledger_row(db_sessionmaker, submitted["order_id"])
    assert row.status == SubmissionStatus.SESSION_CREATED


async def test_placed_order_releases_checkout_tasks(storefront_client, fake_storefront, checkout_session, runtime,
                                                    db_session):
    fake_storefront.on("POST", "/orders", status=201, body={"orderId": "SRV-3"})
    await prime_checkout(checkout_session)
    await checkout_session.set_wallet(WalletReservation(
        amount=100, expires_at=now() + timedelta(minutes=5), state=WalletState.RESERVED))
    runtime.watch_wallet(checkout_session)
    validator = runtime.validator(USER_ID, "lookup")
    validator.submit("560001")
    await validator.wait()
    assert runtime.active_users == 1

    await submit_checkout(storefront_client, checkout_session, db_session, runtime)

    assert runtime.active_users == 0
    assert runtime.existing_validator(USER_ID, "lookup") is None
