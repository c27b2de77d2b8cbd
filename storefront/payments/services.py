import uuid
from typing import Any, Awaitable, Callable, Dict, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.checkout.flow import CheckoutStep, check_payment_exit
from storefront.checkout.models import CartItem, PaymentMethod
from storefront.checkout.runtime import CheckoutRuntime
from storefront.checkout.services import CheckoutSummary, compute_summary
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.custom_exceptions import (
    CheckoutError, CollaboratorError, OrderCreationError, PaymentGatewayError, StepTransitionError,
    SubmissionInProgress,
)
from storefront.common.utils import now
from storefront.config.settings import config_settings
from storefront.payments.builder import (
    build_cod_order, build_gateway_request, build_order_data, order_reference, resolve_contact, return_url,
    shipping_address_text,
)
from storefront.payments.constants import (
    CLIENT_EVENTS, GATEWAY_MISSING_SESSION_MESSAGE, GATEWAY_NOT_CONFIGURED_MESSAGE, ORDER_FAILED_MESSAGE,
    VERIFY_FAILED_MESSAGE, logger,
)
from storefront.payments.repository import record_submission, update_submission
from storefront.payments.validation import advisory_warnings
from storefront.schema.checkout_submission import SubmissionStatus
from storefront.session.checkout_session import CheckoutSession
from storefront.wallet.reservation import WalletManager


async def _ledger(db: AsyncSession, op: Callable[..., Awaitable[Any]], *args, **kwargs):
    # the ledger mirrors the storefront, a write failure never blocks the customer
    try:
        await op(db, *args, **kwargs)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("payments.ledger_write_failed", extra={"operation": op.__name__})


async def submit_checkout(client: StorefrontApiClient, session: CheckoutSession, db: AsyncSession,
                          runtime: CheckoutRuntime, payment_method: Optional[PaymentMethod] = None) -> Dict[str, Any]:
    """
    Place the order for the current checkout, online through the gateway or cash on delivery.

    One submission per session at a time; a concurrent attempt gets SubmissionInProgress.
    Failures are not retried here, the customer resubmits.
    """
    token = uuid.uuid4().hex
    if not await session.acquire_processing(token):
        raise SubmissionInProgress("Your order is already being processed")

    try:
        if await session.step() != CheckoutStep.PAYMENT:
            raise StepTransitionError("Complete the previous checkout steps first",
                                      details={"step": await session.step()})

        form = await session.form()
        if payment_method is not None and form.payment_method != payment_method:
            form.payment_method = payment_method
            await session.set_form(form)
        check_payment_exit(form, runtime.pincode_busy(session.user_id))

        summary = await compute_summary(client, session, strict=True)
        if not summary.items:
            raise CheckoutError("Your cart is empty")

        profile = await session.profile()
        contact = resolve_contact(session.user_id, summary.address, form, profile)
        pincode = summary.address.pincode if summary.address else form.zip_code
        warnings = advisory_warnings(
            form.phone or (summary.address.phone_number if summary.address else None),
            form.email or (profile.email if profile else None),
            shipping_address_text(summary.address, form),
            pincode,
        )
        if warnings:
            logger.info("payments.advisory_warnings",
                        extra={"user_id": session.user_id, "fields": [w["field"] for w in warnings]})

        reference = order_reference(session.user_id)
        order_data = build_order_data(session.user_id, reference, summary, contact, form.payment_method,
                                      await session.promo(), await session.affiliate())
        await _ledger(db, record_submission, reference, session.user_id, form.payment_method.value,
                      order_data["totalAmount"], summary.is_multi_address, order_data)

        if form.payment_method == PaymentMethod.CASHFREE:
            result = await _submit_gateway(client, session, db, reference, summary, contact, order_data)
        else:
            result = await _submit_cod(client, session, db, runtime, reference, summary, order_data)
        result["warnings"] = warnings
        return result
    finally:
        await session.release_processing(token)


async def _submit_gateway(client, session: CheckoutSession, db, reference: str, summary: CheckoutSummary,
                          contact, order_data: Dict[str, Any]) -> Dict[str, Any]:
    payload = build_gateway_request(reference, order_data, contact)
    try:
        body = await client.create_cashfree_order(payload)
    except CollaboratorError as exc:
        upstream = exc.body if isinstance(exc.body, dict) else {}
        if upstream.get("configError"):
            kind, message = PaymentGatewayError.NOT_CONFIGURED, GATEWAY_NOT_CONFIGURED_MESSAGE
        else:
            kind = PaymentGatewayError.REJECTED
            err = upstream.get("error")
            message = err if isinstance(err, str) and err else f"Payment setup failed ({exc.upstream_status})"
        logger.error("payments.gateway_failed",
                     extra={"order_reference": reference, "kind": kind, "upstream_status": exc.upstream_status})
        await _ledger(db, update_submission, reference, session.user_id, SubmissionStatus.FAILED, last_error=message[:512])
        raise PaymentGatewayError(kind, message, details={"order_reference": reference}) from exc

    session_id = (body or {}).get("paymentSessionId")
    if not session_id:
        logger.error("payments.gateway_missing_session", extra={"order_reference": reference})
        await _ledger(db, update_submission, reference, session.user_id, SubmissionStatus.FAILED, last_error="missing payment session id")
        raise PaymentGatewayError(PaymentGatewayError.MISSING_SESSION, GATEWAY_MISSING_SESSION_MESSAGE,
                                  details={"order_reference": reference})

    order_id = body.get("orderId") or reference
    environment = body.get("environment") or "sandbox"
    wallet_used = await WalletManager(session).consume()

    await session.set_pending_order({
        "orderId": order_id,
        "paymentSessionId": session_id,
        "customerData": summary.form.dump(),
        "cartItems": [item.dump() for item in summary.items],
        "totalAmount": order_data["totalAmount"],
        "walletAmount": wallet_used,
        "createdAt": now().isoformat(),
    })
    await _ledger(db, update_submission, reference, session.user_id, SubmissionStatus.SESSION_CREATED,
                  payment_session_id=session_id, gateway_environment=environment, server_order_id=order_id)
    logger.info("payments.gateway_session_created", extra={"order_reference": reference, "environment": environment})

    return {
        "payment_method": PaymentMethod.CASHFREE.value,
        "order_id": order_id,
        "payment_session_id": session_id,
        "environment": environment,
        "sdk_url": config_settings.CASHFREE_SDK_URL,
        "return_url": return_url(order_id),
        "amount": order_data["totalAmount"],
    }


async def _submit_cod(client, session: CheckoutSession, db, runtime: CheckoutRuntime, reference: str,
                      summary: CheckoutSummary, order_data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        body = await client.create_order(build_cod_order(order_data))
    except CollaboratorError as exc:
        logger.error("payments.order_create_failed",
                     extra={"order_reference": reference, "upstream_status": exc.upstream_status})
        await _ledger(db, update_submission, reference, session.user_id, SubmissionStatus.FAILED, last_error=str(exc.message)[:512])
        raise OrderCreationError(ORDER_FAILED_MESSAGE, details={"order_reference": reference}) from exc

    server_order_id = str((body or {}).get("orderId") or reference)
    await WalletManager(session).consume()

    affiliate = await session.affiliate()
    if affiliate.wallet_amount > 0:
        await _log_affiliate_usage(client, session.user_id, affiliate.wallet_amount, server_order_id)

    await _ledger(db, update_submission, reference, session.user_id, SubmissionStatus.PLACED, server_order_id=server_order_id)
    await session.clear_order_state()
    await runtime.end_session(session.user_id)
    logger.info("payments.order_placed", extra={"order_reference": reference, "order_id": server_order_id})

    return {
        "payment_method": PaymentMethod.COD.value,
        "order_id": server_order_id,
        "order_reference": reference,
        "amount": order_data["totalAmount"],
        "events": list(CLIENT_EVENTS),
    }


async def _log_affiliate_usage(client: StorefrontApiClient, user_id: int, amount: float, order_id: str):
    try:
        await client.log_affiliate_transaction({
            "userId": user_id,
            "amount": amount,
            "type": "debit",
            "description": f"Used in order {order_id}",
            "orderId": order_id,
        })
    except CollaboratorError as exc:
        # the order already exists, nothing to roll back
        logger.warning("payments.affiliate_log_failed", extra={"order_id": order_id, "upstream_status": exc.upstream_status})


async def handle_payment_return(client: StorefrontApiClient, session: CheckoutSession, db: AsyncSession,
                                runtime: CheckoutRuntime, order_id: str) -> Dict[str, Any]:
    """Reconcile a gateway redirect: confirm the payment, or put the cart back for another try."""
    try:
        body = await client.verify_cashfree_payment(order_id)
    except CollaboratorError as exc:
        logger.error("payments.verify_failed", extra={"order_id": order_id, "upstream_status": exc.upstream_status})
        raise PaymentGatewayError(PaymentGatewayError.VERIFICATION_FAILED, VERIFY_FAILED_MESSAGE,
                                  details={"order_id": order_id}) from exc

    pending = await session.pending_order() or {}
    owns_order = pending.get("orderId") == order_id
    if isinstance(body, dict) and body.get("verified"):
        await _ledger(db, update_submission, order_id, session.user_id, SubmissionStatus.PAID)
        await session.clear_order_state()
        await runtime.end_session(session.user_id)
        logger.info("payments.payment_verified", extra={"order_id": order_id})
        return {"verified": True, "order_id": order_id, "events": list(CLIENT_EVENTS)}

    restored = False
    if owns_order:
        await _ledger(db, update_submission, order_id, session.user_id, SubmissionStatus.FAILED,
                      last_error="payment not verified")
        if pending.get("cartItems"):
            await session.set_cart([CartItem.model_validate(item) for item in pending["cartItems"]])
            restored = True
        await session.set_pending_order(None)
    else:
        logger.warning("payments.return_for_unknown_order",
                       extra={"order_id": order_id, "user_id": session.user_id})
    logger.info("payments.payment_not_verified", extra={"order_id": order_id, "cart_restored": restored})
    return {"verified": False, "order_id": order_id, "cart_restored": restored}
