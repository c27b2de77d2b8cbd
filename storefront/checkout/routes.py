from fastapi import APIRouter, Depends, status
from storefront.addresses.models import AddressCreate
from storefront.addresses.services import create_user_address, list_user_addresses
from storefront.checkout.dependencies import get_checkout_runtime, get_checkout_session
from storefront.checkout.request_models import (
    PINCODE_PURPOSES, AffiliateWalletRequest, PincodeCheckRequest, SessionUpdate, StepBackRequest,
    WalletReserveRequest,
)
from storefront.checkout.runtime import CheckoutRuntime
from storefront.checkout.services import (
    advance_step, apply_session_update, compute_summary, go_back, preview_fulfillment,
)
from storefront.clients.collaborator import StorefrontApiClient
from storefront.clients.dependencies import get_storefront_client
from storefront.common.utils import success_response
from storefront.session.checkout_session import CheckoutSession
from storefront.wallet.reservation import WalletManager, apply_affiliate_wallet

checkout_router = APIRouter()


@checkout_router.get("/session")
async def get_checkout_state(session: CheckoutSession = Depends(get_checkout_session)):
    await WalletManager(session).check_expiry()
    return success_response(await session.snapshot())


@checkout_router.put("/session")
async def update_checkout_state(payload: SessionUpdate,
                                session: CheckoutSession = Depends(get_checkout_session),
                                client: StorefrontApiClient = Depends(get_storefront_client)):
    await apply_session_update(client, session, payload)
    return success_response(await session.snapshot())


@checkout_router.delete("/session")
async def end_checkout_session(session: CheckoutSession = Depends(get_checkout_session),
                               runtime: CheckoutRuntime = Depends(get_checkout_runtime)):
    await runtime.end_session(session.user_id)
    await session.clear()
    return success_response({"cleared": True})


@checkout_router.get("/summary")
async def get_summary(session: CheckoutSession = Depends(get_checkout_session),
                      client: StorefrontApiClient = Depends(get_storefront_client)):
    summary = await compute_summary(client, session)
    return success_response(summary.to_dict())


# addresses

@checkout_router.get("/addresses")
async def get_addresses(session: CheckoutSession = Depends(get_checkout_session),
                        client: StorefrontApiClient = Depends(get_storefront_client)):
    addresses = await list_user_addresses(client, session)
    selected = await session.selected_address()
    return success_response({
        "addresses": [a.dump() for a in addresses],
        "selected_address_id": selected.id if selected else None,
    })


@checkout_router.post("/addresses")
async def add_address(payload: AddressCreate,
                      session: CheckoutSession = Depends(get_checkout_session),
                      client: StorefrontApiClient = Depends(get_storefront_client)):
    address = await create_user_address(client, session, payload)
    return success_response(address.dump(), status_code=status.HTTP_201_CREATED)


@checkout_router.get("/fulfillment")
async def get_fulfillment(session: CheckoutSession = Depends(get_checkout_session),
                          client: StorefrontApiClient = Depends(get_storefront_client)):
    result = await preview_fulfillment(client, session)
    return success_response({
        "complete": result.complete,
        "missing": result.missing,
        "items": result.order_items(),
        # cart as it stood when the assignment flow was entered
        "assignment_cart": await session.cart_snapshot(),
    })


# wallets

@checkout_router.post("/wallet/reserve")
async def reserve_cashback(payload: WalletReserveRequest,
                           session: CheckoutSession = Depends(get_checkout_session),
                           client: StorefrontApiClient = Depends(get_storefront_client),
                           runtime: CheckoutRuntime = Depends(get_checkout_runtime)):
    reservation = await WalletManager(session, client).reserve(payload.amount)
    runtime.watch_wallet(session)
    return success_response(reservation.dump())


@checkout_router.delete("/wallet/reservation")
async def release_cashback(session: CheckoutSession = Depends(get_checkout_session),
                           runtime: CheckoutRuntime = Depends(get_checkout_runtime)):
    await runtime.stop_wallet_watch(session.user_id)
    reservation = await WalletManager(session).release()
    return success_response(reservation.dump())


@checkout_router.post("/affiliate-wallet")
async def use_affiliate_wallet(payload: AffiliateWalletRequest,
                               session: CheckoutSession = Depends(get_checkout_session),
                               client: StorefrontApiClient = Depends(get_storefront_client)):
    affiliate = await apply_affiliate_wallet(client, session, payload.amount)
    return success_response(affiliate.dump())


@checkout_router.get("/notices")
async def get_notices(session: CheckoutSession = Depends(get_checkout_session)):
    await WalletManager(session).check_expiry()
    return success_response({"notices": await session.pop_notices()})


# pincode checks

@checkout_router.post("/pincode-checks", status_code=status.HTTP_202_ACCEPTED)
async def start_pincode_check(payload: PincodeCheckRequest,
                              session: CheckoutSession = Depends(get_checkout_session),
                              runtime: CheckoutRuntime = Depends(get_checkout_runtime)):
    validator = runtime.validator(session.user_id, payload.purpose)
    generation = validator.submit(payload.pincode)
    result = validator.result
    return success_response({
        "purpose": payload.purpose,
        "generation": generation,
        "in_flight": validator.in_flight,
        "status": result.status.value if result and result.status else None,
    }, status_code=status.HTTP_202_ACCEPTED)


@checkout_router.get("/pincode-checks")
async def get_pincode_checks(wait: bool = False,
                             session: CheckoutSession = Depends(get_checkout_session),
                             runtime: CheckoutRuntime = Depends(get_checkout_runtime)):
    checks = {}
    for purpose in PINCODE_PURPOSES:
        validator = runtime.existing_validator(session.user_id, purpose)
        if validator is None:
            checks[purpose] = {"pincode": None, "status": None, "generation": 0, "in_flight": False}
            continue
        result = await validator.wait() if wait else validator.result
        checks[purpose] = {
            "pincode": result.pincode if result else None,
            "status": result.status.value if result and result.status else None,
            "generation": validator.generation,
            "in_flight": validator.in_flight,
        }
    return success_response({"checks": checks, "busy": runtime.pincode_busy(session.user_id)})


# steps

@checkout_router.get("/step")
async def get_step(session: CheckoutSession = Depends(get_checkout_session)):
    step = await session.step()
    return success_response({"step": step})


@checkout_router.post("/step/advance")
async def advance(session: CheckoutSession = Depends(get_checkout_session),
                  client: StorefrontApiClient = Depends(get_storefront_client)):
    step = await advance_step(client, session)
    return success_response({"step": step.value})


@checkout_router.post("/step/back")
async def back(payload: StepBackRequest | None = None,
               session: CheckoutSession = Depends(get_checkout_session)):
    step = await go_back(session, payload.target if payload else None)
    return success_response({"step": step.value})
