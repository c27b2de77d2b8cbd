import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar
from pydantic import BaseModel, ValidationError
from storefront.checkout.models import (
    AffiliateState, CartItem, CheckoutFormState, CheckoutMode, DeliveryAddress, GiftMilestone,
    PromoApplication, SingleAddress, UserProfile, WalletReservation, cart_adapter,
    checkout_mode_adapter, milestone_list_adapter,
)
from storefront.common.logging_setup import get_logger
from storefront.common.utils import now
from storefront.config.settings import config_settings
from storefront.session.store import CheckoutSessionStore
from storefront.session.utils import KEY_PREFIX, build_key

logger = get_logger("storefront.session")

M = TypeVar("M", bound=BaseModel)

# logical keys, one stored json value each
CART = "cart"
PROFILE = "profile"
SELECTED_ADDRESS = "selected_address"
MODE = "mode"
PROMO = "promo"
AFFILIATE = "affiliate"
GIFT_MILESTONES = "gift_milestones"
WALLET = "wallet"
FORM = "form"
STEP = "step"
NOTICES = "notices"
PENDING_ORDER = "pending_order"
CART_SNAPSHOT = "checkout_cart_items"
PROCESSING = "processing"
NOTICES_LOCK = "notices_lock"
WALLET_EXPIRY_EVENT = "wallet_expiry"

NOTICES_LOCK_SECONDS = 5
NOTICES_LOCK_POLL = 0.01

ALL_KEYS = (CART, PROFILE, SELECTED_ADDRESS, MODE, PROMO, AFFILIATE, GIFT_MILESTONES, WALLET,
            FORM, STEP, NOTICES, PENDING_ORDER, CART_SNAPSHOT)

# state that belongs to one checkout attempt and goes away once an order exists
ORDER_SCOPED_KEYS = (CART, MODE, PROMO, AFFILIATE, WALLET, STEP, CART_SNAPSHOT, PENDING_ORDER, SELECTED_ADDRESS)


class CheckoutSession:
    """Typed view over one user's checkout state in a CheckoutSessionStore."""

    def __init__(self, store: CheckoutSessionStore, user_id: int, ttl: Optional[int] = None):
        self.store = store
        self.user_id = user_id
        self.ttl = ttl if ttl is not None else config_settings.SESSION_TTL_SECONDS

    def key(self, name: str) -> str:
        return build_key(KEY_PREFIX, self.user_id, name)

    async def _get_raw(self, name: str) -> Any:
        return await self.store.get(self.key(name))

    async def _set_raw(self, name: str, value: Any) -> None:
        await self.store.set(self.key(name), value, ttl=self.ttl)

    async def _get_model(self, name: str, model: Type[M]) -> Optional[M]:
        raw = await self._get_raw(name)
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except ValidationError:
            # unreadable state is dropped rather than blocking checkout
            logger.warning("session.invalid_value", extra={"user_id": self.user_id, "session_key": name})
            await self.store.remove(self.key(name))
            return None

    async def _set_model(self, name: str, value: Optional[BaseModel]) -> None:
        if value is None:
            await self.store.remove(self.key(name))
            return
        await self._set_raw(name, value.model_dump(mode="json", by_alias=True))

    # cart
    async def cart(self) -> List[CartItem]:
        raw = await self._get_raw(CART)
        if not raw:
            return []
        try:
            return cart_adapter.validate_python(raw)
        except ValidationError:
            logger.warning("session.invalid_value", extra={"user_id": self.user_id, "session_key": CART})
            return []

    async def set_cart(self, items: List[CartItem]) -> None:
        await self._set_raw(CART, [item.dump() for item in items])

    async def cart_snapshot(self) -> List[Dict[str, Any]]:
        return await self._get_raw(CART_SNAPSHOT) or []

    async def set_cart_snapshot(self, items: List[CartItem]) -> None:
        # minimal shape consumed by the address assignment flow
        snapshot = [
            {"id": item.id, "itemKey": item.base_key, "name": item.name, "image": item.image,
             "quantity": item.quantity, "price": item.price}
            for item in items
        ]
        await self._set_raw(CART_SNAPSHOT, snapshot)

    # profile and addresses
    async def profile(self) -> Optional[UserProfile]:
        return await self._get_model(PROFILE, UserProfile)

    async def set_profile(self, profile: Optional[UserProfile]) -> None:
        await self._set_model(PROFILE, profile)

    async def selected_address(self) -> Optional[DeliveryAddress]:
        return await self._get_model(SELECTED_ADDRESS, DeliveryAddress)

    async def set_selected_address(self, address: Optional[DeliveryAddress]) -> None:
        await self._set_model(SELECTED_ADDRESS, address)

    async def mode(self) -> CheckoutMode:
        raw = await self._get_raw(MODE)
        if raw is None:
            return SingleAddress()
        try:
            return checkout_mode_adapter.validate_python(raw)
        except ValidationError:
            logger.warning("session.invalid_value", extra={"user_id": self.user_id, "session_key": MODE})
            return SingleAddress()

    async def set_mode(self, mode: CheckoutMode) -> None:
        await self._set_raw(MODE, checkout_mode_adapter.dump_python(mode, mode="json", by_alias=True))

    # discounts
    async def promo(self) -> Optional[PromoApplication]:
        return await self._get_model(PROMO, PromoApplication)

    async def set_promo(self, promo: Optional[PromoApplication]) -> None:
        await self._set_model(PROMO, promo)

    async def affiliate(self) -> AffiliateState:
        return await self._get_model(AFFILIATE, AffiliateState) or AffiliateState()

    async def set_affiliate(self, affiliate: Optional[AffiliateState]) -> None:
        await self._set_model(AFFILIATE, affiliate)

    async def gift_milestones(self) -> List[GiftMilestone]:
        raw = await self._get_raw(GIFT_MILESTONES)
        if not raw:
            return []
        try:
            return milestone_list_adapter.validate_python(raw)
        except ValidationError:
            return []

    async def set_gift_milestones(self, milestones: List[GiftMilestone]) -> None:
        await self._set_raw(GIFT_MILESTONES, [m.dump() for m in milestones])

    # wallet
    async def wallet(self) -> WalletReservation:
        return await self._get_model(WALLET, WalletReservation) or WalletReservation()

    async def set_wallet(self, reservation: Optional[WalletReservation]) -> None:
        await self._set_model(WALLET, reservation)

    # form and step
    async def form(self) -> CheckoutFormState:
        return await self._get_model(FORM, CheckoutFormState) or CheckoutFormState()

    async def set_form(self, form: CheckoutFormState) -> None:
        await self._set_model(FORM, form)

    async def step(self) -> int:
        raw = await self._get_raw(STEP)
        return int(raw) if isinstance(raw, int) else 1

    async def set_step(self, step: int) -> None:
        await self._set_raw(STEP, int(step))

    # notices
    async def notices(self) -> List[Dict[str, Any]]:
        return await self._get_raw(NOTICES) or []

    @asynccontextmanager
    async def _notices_locked(self):
        token = uuid.uuid4().hex
        while not await self.store.acquire_flag(self.key(NOTICES_LOCK), token, NOTICES_LOCK_SECONDS):
            await asyncio.sleep(NOTICES_LOCK_POLL)
        try:
            yield
        finally:
            await self.store.release_flag(self.key(NOTICES_LOCK), token)

    async def push_notice(self, kind: str, title: str, message: str) -> None:
        async with self._notices_locked():
            notices = await self.notices()
            notices.append({"kind": kind, "title": title, "message": message, "at": now().isoformat()})
            await self._set_raw(NOTICES, notices)

    async def pop_notices(self) -> List[Dict[str, Any]]:
        async with self._notices_locked():
            notices = await self.notices()
            if notices:
                await self.store.remove(self.key(NOTICES))
        return notices

    async def claim_wallet_expiry(self, expires_at: datetime) -> bool:
        """True for exactly one caller per reservation expiry, across requests and workers."""
        event = f"{WALLET_EXPIRY_EVENT}:{int(expires_at.timestamp() * 1000)}"
        return await self.store.acquire_flag(self.key(event), "1", self.ttl)

    # gateway resumption
    async def pending_order(self) -> Optional[Dict[str, Any]]:
        return await self._get_raw(PENDING_ORDER)

    async def set_pending_order(self, descriptor: Optional[Dict[str, Any]]) -> None:
        if descriptor is None:
            await self.store.remove(self.key(PENDING_ORDER))
            return
        await self._set_raw(PENDING_ORDER, descriptor)

    # submission lock
    async def acquire_processing(self, token: str, ttl: Optional[int] = None) -> bool:
        return await self.store.acquire_flag(
            self.key(PROCESSING), token, ttl or config_settings.SUBMISSION_LOCK_SECONDS)

    async def release_processing(self, token: str) -> bool:
        return await self.store.release_flag(self.key(PROCESSING), token)

    async def clear_order_state(self) -> None:
        await self.store.remove(*(self.key(name) for name in ORDER_SCOPED_KEYS))

    async def clear(self) -> None:
        await self.store.remove(*(self.key(name) for name in ALL_KEYS))

    async def snapshot(self) -> Dict[str, Any]:
        selected = await self.selected_address()
        profile = await self.profile()
        promo = await self.promo()
        mode = await self.mode()
        return {
            "cart": [item.dump() for item in await self.cart()],
            "profile": profile.dump() if profile else None,
            "selectedAddress": selected.dump() if selected else None,
            "mode": checkout_mode_adapter.dump_python(mode, mode="json", by_alias=True),
            "promo": promo.dump() if promo else None,
            "affiliate": (await self.affiliate()).dump(),
            "wallet": (await self.wallet()).dump(),
            "form": (await self.form()).dump(),
            "step": await self.step(),
            "pendingOrder": await self.pending_order(),
        }
