from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.checkout.dependencies import get_checkout_runtime, get_checkout_session
from storefront.checkout.request_models import SubmitRequest
from storefront.checkout.runtime import CheckoutRuntime
from storefront.clients.collaborator import StorefrontApiClient
from storefront.clients.dependencies import get_storefront_client
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.payments.services import handle_payment_return, submit_checkout
from storefront.session.checkout_session import CheckoutSession

payments_router = APIRouter()


# final step: online payment hands back a gateway session, cod places the order directly
@payments_router.post("/submit")
async def submit(payload: SubmitRequest | None = None,
                 session: CheckoutSession = Depends(get_checkout_session),
                 client: StorefrontApiClient = Depends(get_storefront_client),
                 runtime: CheckoutRuntime = Depends(get_checkout_runtime),
                 db: AsyncSession = Depends(get_session)):
    result = await submit_checkout(client, session, db, runtime, payload.payment_method if payload else None)
    return success_response(result)


# gateway redirects the browser back with the order reference
@payments_router.get("/payment-return")
async def payment_return(orderId: str,
                         session: CheckoutSession = Depends(get_checkout_session),
                         client: StorefrontApiClient = Depends(get_storefront_client),
                         runtime: CheckoutRuntime = Depends(get_checkout_runtime),
                         db: AsyncSession = Depends(get_session)):
    result = await handle_payment_return(client, session, db, runtime, orderId)
    return success_response(result)
