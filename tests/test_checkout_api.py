from datetime import timedelta
from storefront.checkout.models import WalletReservation, WalletState
from storefront.common.utils import now
from storefront.session.checkout_session import CheckoutSession
from tests.conftest import HEADERS, USER_ID, url_prefix

checkout = f"{url_prefix}/checkout"

CART = [{"id": 1, "name": "Serum", "price": "₹500", "originalPrice": "₹600", "quantity": 2}]
FORM = {"firstName": "Asha", "lastName": "Rao", "email": "asha@example.com", "phone": "9876543210",
        "paymentMethod": "cod"}


async def _start(ac_client, **extra):
    body = {"cart": CART, "form": FORM, "selectedAddressId": 11, **extra}
    res = await ac_client.put(f"{checkout}/session", json=body, headers=HEADERS)
    assert res.status_code == 200, res.text
    return res.json()["data"]


async def test_requests_without_user_are_rejected(ac_client):
    res = await ac_client.get(f"{checkout}/session")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "HTTP_401"


async def test_session_update_and_summary(ac_client):
    state = await _start(ac_client)
    assert state["selectedAddress"]["id"] == 11
    assert state["form"]["paymentMethod"] == "cod"

    res = await ac_client.get(f"{checkout}/summary", headers=HEADERS)
    assert res.status_code == 200
    summary = res.json()["data"]
    assert summary["discounts"]["product_discount"] == 200
    assert summary["shipping"]["shipping_cost"] == 0
    assert summary["total"] == 800


async def test_promo_brings_back_shipping(ac_client):
    await _start(ac_client, promo={"code": "SAVE10", "discountAmount": 80})
    summary = (await ac_client.get(f"{checkout}/summary", headers=HEADERS)).json()["data"]
    assert summary["shipping"]["shipping_cost"] == 60
    assert summary["shipping"]["courier_name"] == "Xpressbees"
    assert summary["total"] == 780


async def test_partial_form_update_merges(ac_client):
    await _start(ac_client)
    res = await ac_client.put(f"{checkout}/session", json={"form": {"phone": "9123456780"}}, headers=HEADERS)
    form = res.json()["data"]["form"]
    assert form["phone"] == "9123456780"
    assert form["firstName"] == "Asha"
    assert res.json()["data"]["selectedAddress"]["id"] == 11


async def test_unknown_address_id_is_404(ac_client):
    res = await ac_client.put(f"{checkout}/session", json={"selectedAddressId": 999}, headers=HEADERS)
    assert res.status_code == 404
    assert res.json()["error"]["details"]["address_id"] == 999


async def test_full_cod_checkout(ac_client, fake_storefront):
    fake_storefront.on("POST", "/orders", status=201, body={"orderId": "SRV-1"})
    await _start(ac_client)

    for expected in (2, 3):
        res = await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)
        assert res.status_code == 200, res.text
        assert res.json()["data"]["step"] == expected

    res = await ac_client.post(f"{checkout}/submit", json={"paymentMethod": "cod"}, headers=HEADERS)
    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["order_id"] == "SRV-1"
    assert data["events"] == ["cartUpdated", "walletUpdated"]

    state = (await ac_client.get(f"{checkout}/session", headers=HEADERS)).json()["data"]
    assert state["cart"] == []
    assert state["step"] == 1


async def test_incomplete_address_blocks_review(ac_client):
    await ac_client.put(f"{checkout}/session", json={"cart": CART, "form": {"firstName": "Asha", "address": "x"}},
                        headers=HEADERS)
    res = await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)
    assert res.status_code == 422
    error = res.json()["error"]
    assert error["code"] == "ADDRESS_INCOMPLETE"
    assert set(error["details"]["fields"]) == {"phone", "city", "state", "pincode"}


async def test_uncovered_multi_address_cart_redirects_to_assignment(ac_client, store):
    cart = [{"id": 7, "name": "Kit", "price": 400, "quantity": 3}]
    mode = {"kind": "multi", "mapping": {"7-0": 11, "7-1": 12}}
    await ac_client.put(f"{checkout}/session", json={"cart": cart, "mode": mode}, headers=HEADERS)

    res = await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)
    assert res.status_code == 409
    error = res.json()["error"]
    assert error["code"] == "ADDRESS_ASSIGNMENT_REQUIRED"
    assert error["details"]["missing"] == ["7-2"]
    assert error["details"]["redirect"] == "address-assignment"

    state = (await ac_client.get(f"{checkout}/session", headers=HEADERS)).json()["data"]
    assert state["step"] == 1
    assert state["mode"]["assignmentActive"] is True
    snapshot = await store.get("sf:checkout:42:checkout_cart_items")
    assert snapshot[0]["itemKey"] == "7"

    preview = (await ac_client.get(f"{checkout}/fulfillment", headers=HEADERS)).json()["data"]
    assert preview["complete"] is False
    assert [i["deliveryAddressId"] for i in preview["items"]] == [11, 12, None]
    assert [i["quantity"] for i in preview["assignment_cart"]] == [3]

    # finishing the assignment lets the checkout move on
    mode["mapping"]["7-2"] = 11
    await ac_client.put(f"{checkout}/session", json={"mode": mode}, headers=HEADERS)
    res = await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)
    assert res.status_code == 200
    assert res.json()["data"]["step"] == 2


async def test_step_back(ac_client):
    await _start(ac_client)
    await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)
    await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)

    res = await ac_client.post(f"{checkout}/step/back", json={"target": 1}, headers=HEADERS)
    assert res.json()["data"]["step"] == 1
    res = await ac_client.post(f"{checkout}/step/back", json={"target": 2}, headers=HEADERS)
    assert res.status_code == 409


async def test_submit_before_payment_step_is_refused(ac_client):
    await _start(ac_client)
    res = await ac_client.post(f"{checkout}/submit", headers=HEADERS)
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "STEP_NOT_ALLOWED"


async def test_online_payment_not_configured(ac_client, fake_storefront):
    fake_storefront.on("POST", "/payments/cashfree/create-order", status=500,
                       body={"error": "Cashfree not configured", "configError": True})
    await _start(ac_client)
    await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)
    await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)

    res = await ac_client.post(f"{checkout}/submit", json={"paymentMethod": "cashfree"}, headers=HEADERS)
    assert res.status_code == 502
    error = res.json()["error"]
    assert error["code"] == "PAYMENT_GATEWAY_ERROR"
    assert error["details"]["kind"] == "gateway_not_configured"


async def test_wallet_reserve_and_release(ac_client, fake_storefront):
    fake_storefront.on("POST", "/wallet/reserve", body={"success": True, "expiresAt": "2099-01-01T00:00:00Z"})
    await _start(ac_client)

    res = await ac_client.post(f"{checkout}/wallet/reserve", json={"amount": 100}, headers=HEADERS)
    assert res.status_code == 200, res.text
    assert res.json()["data"]["state"] == "reserved"

    summary = (await ac_client.get(f"{checkout}/summary", headers=HEADERS)).json()["data"]
    assert summary["wallet_amount"] == 100
    assert summary["total"] == 700

    res = await ac_client.delete(f"{checkout}/wallet/reservation", headers=HEADERS)
    assert res.json()["data"]["state"] == "idle"

    res = await ac_client.post(f"{checkout}/wallet/reserve", json={"amount": 9000}, headers=HEADERS)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "WALLET_RESERVATION_FAILED"


async def test_affiliate_wallet_amount_survives_affiliate_update(ac_client):
    await _start(ac_client)
    res = await ac_client.post(f"{checkout}/affiliate-wallet", json={"amount": 120}, headers=HEADERS)
    assert res.json()["data"]["walletAmount"] == 120

    res = await ac_client.put(f"{checkout}/session", json={"affiliate": {"code": "AFF"}}, headers=HEADERS)
    assert res.json()["data"]["affiliate"]["walletAmount"] == 120

    res = await ac_client.post(f"{checkout}/affiliate-wallet", json={"amount": -1}, headers=HEADERS)
    assert res.status_code == 422


async def test_reading_pincode_checks_keeps_no_state(ac_client, app):
    res = await ac_client.get(f"{checkout}/pincode-checks", headers=HEADERS)
    checks = res.json()["data"]["checks"]
    assert checks["lookup"] == {"pincode": None, "status": None, "generation": 0, "in_flight": False}
    assert app.state.checkout_runtime.active_users == 0


async def test_pincode_checks_settle(ac_client):
    res = await ac_client.post(f"{checkout}/pincode-checks", json={"pincode": "560001"}, headers=HEADERS)
    assert res.status_code == 202
    assert res.json()["data"]["generation"] == 1

    res = await ac_client.get(f"{checkout}/pincode-checks", params={"wait": "true"}, headers=HEADERS)
    checks = res.json()["data"]
    assert checks["checks"]["lookup"]["status"] == "valid"
    assert checks["busy"] is False

    res = await ac_client.post(f"{checkout}/pincode-checks", json={"pincode": "12", "purpose": "new_address"},
                               headers=HEADERS)
    assert res.json()["data"]["status"] == "invalid"


async def test_addresses_listing_and_creation(ac_client, fake_storefront):
    res = await ac_client.get(f"{checkout}/addresses", headers=HEADERS)
    assert [a["id"] for a in res.json()["data"]["addresses"]] == [11, 12]

    fake_storefront.on("POST", "/delivery-addresses", status=201, body={
        "id": 30, "recipientName": "Meera", "addressLine1": "9 Hill Rd", "city": "Mumbai",
        "state": "Maharashtra", "pincode": "400050", "phoneNumber": "9898989898"})
    res = await ac_client.post(f"{checkout}/addresses", headers=HEADERS, json={
        "recipientName": "Meera", "addressLine1": "9 Hill Rd", "city": "Mumbai", "state": "Maharashtra",
        "pincode": "400050", "phoneNumber": "9898989898"})
    assert res.status_code == 201
    assert res.json()["data"]["id"] == 30

    res = await ac_client.get(f"{checkout}/addresses", headers=HEADERS)
    assert res.json()["data"]["selected_address_id"] == 30


async def test_end_session_clears_everything(ac_client):
    await _start(ac_client)
    res = await ac_client.delete(f"{checkout}/session", headers=HEADERS)
    assert res.json()["data"] == {"cleared": True}
    state = (await ac_client.get(f"{checkout}/session", headers=HEADERS)).json()["data"]
    assert state["cart"] == [] and state["selectedAddress"] is None


async def test_health(ac_client):
    res = await ac_client.get(f"{url_prefix}/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


async def test_expired_cashback_notice_is_delivered_once(ac_client, store):
    session = CheckoutSession(store, USER_ID)
    await session.set_wallet(WalletReservation(amount=100, expires_at=now() - timedelta(seconds=1),
                                               state=WalletState.RESERVED))

    res = await ac_client.get(f"{checkout}/notices", headers=HEADERS)
    notices = res.json()["data"]["notices"]
    assert [n["title"] for n in notices] == ["Cashback Expired"]

    res = await ac_client.get(f"{checkout}/notices", headers=HEADERS)
    assert res.json()["data"]["notices"] == []
    state = (await ac_client.get(f"{checkout}/session", headers=HEADERS)).json()["data"]
    assert state["wallet"]["amount"] == 0


async def test_current_step_and_payment_return(ac_client, fake_storefront):
    fake_storefront.on("POST", "/payments/cashfree/create-order",
                       body={"orderId": "ORD-5-42", "paymentSessionId": "sess_9"})
    fake_storefront.on("POST", "/payments/cashfree/verify", body={"verified": False})
    await _start(ac_client)
    await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)
    await ac_client.post(f"{checkout}/step/advance", headers=HEADERS)
    res = await ac_client.get(f"{checkout}/step", headers=HEADERS)
    assert res.json()["data"]["step"] == 3

    res = await ac_client.post(f"{checkout}/submit", json={"paymentMethod": "cashfree"}, headers=HEADERS)
    assert res.json()["data"]["order_id"] == "ORD-5-42"

    res = await ac_client.get(f"{checkout}/payment-return", params={"orderId": "ORD-5-42"}, headers=HEADERS)
    assert res.status_code == 200
    assert res.json()["data"]["verified"] is False
    assert res.json()["data"]["cart_restored"] is True
