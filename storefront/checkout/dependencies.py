from fastapi import Depends, Header, HTTPException, Request, status
from storefront.checkout.runtime import CheckoutRuntime
from storefront.common.constants import USER_ID_HEADER
from storefront.session.checkout_session import CheckoutSession
from storefront.session.store import CheckoutSessionStore


def get_user_id(x_user_id: str | None = Header(default=None, alias=USER_ID_HEADER)) -> int:
    # identity is asserted by the upstream gateway
    if not x_user_id or not x_user_id.strip().isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not identified")
    return int(x_user_id.strip())


def get_session_store(request: Request) -> CheckoutSessionStore:
    return request.app.state.session_store


def get_checkout_runtime(request: Request) -> CheckoutRuntime:
    return request.app.state.checkout_runtime


def get_checkout_session(user_id: int = Depends(get_user_id),
                         store: CheckoutSessionStore = Depends(get_session_store)) -> CheckoutSession:
    return CheckoutSession(store, user_id)
