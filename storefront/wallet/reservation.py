from datetime import datetime
from typing import Callable, Optional
from fastapi import status
from storefront.checkout.models import AffiliateState, WalletReservation, WalletState
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.custom_exceptions import CollaboratorError, WalletReservationError
from storefront.common.logging_setup import get_logger
from storefront.common.utils import finite_or_zero, now, parse_timestamp
from storefront.config.settings import config_settings
from storefront.session.checkout_session import CheckoutSession

logger = get_logger("storefront.wallet")

EXPIRED_NOTICE_TITLE = "Cashback Expired"
EXPIRED_NOTICE_MESSAGE = "Your cashback reservation has expired. Please apply it again."


class WalletManager:
    """
    Cashback redemption for one checkout session.

    idle -> reserved -> consumed | expired. The reservation lives in the session store so
    it survives across requests; expiry is checked lazily and by the ExpiryWatcher.
    """

    def __init__(self, session: CheckoutSession, client: Optional[StorefrontApiClient] = None,
                 clock: Callable[[], datetime] = now):
        self.session = session
        self.client = client
        self._clock = clock

    def _require_client(self) -> StorefrontApiClient:
        if self.client is None:
            raise RuntimeError("wallet operation needs a storefront client")
        return self.client

    async def cashback_balance(self) -> float:
        try:
            body = await self._require_client().get_wallet(self.session.user_id)
        except CollaboratorError as exc:
            raise WalletReservationError("Could not read wallet balance",
                                         status_code=status.HTTP_502_BAD_GATEWAY) from exc
        return finite_or_zero((body or {}).get("cashbackBalance"))

    async def reserve(self, amount: float) -> WalletReservation:
        amount = finite_or_zero(amount)
        if amount <= 0:
            raise WalletReservationError("Redemption amount must be positive", details={"amount": amount})

        balance = await self.cashback_balance()
        if amount > balance:
            raise WalletReservationError("Redemption exceeds cashback balance",
                                         details={"amount": amount, "balance": balance})

        try:
            body = await self._require_client().reserve_wallet(
                self.session.user_id, amount, config_settings.WALLET_RESERVE_DESCRIPTION)
        except CollaboratorError as exc:
            logger.error("wallet.reserve_failed", extra={"user_id": self.session.user_id, "upstream_status": exc.upstream_status})
            raise WalletReservationError("Cashback could not be reserved",
                                         status_code=status.HTTP_502_BAD_GATEWAY) from exc

        expires_at = parse_timestamp((body or {}).get("expiresAt"))
        if expires_at is None:
            raise WalletReservationError("Reservation was not confirmed", status_code=status.HTTP_502_BAD_GATEWAY)

        reservation = WalletReservation(amount=amount, expires_at=expires_at, state=WalletState.RESERVED)
        await self.session.set_wallet(reservation)
        logger.info("wallet.reserved", extra={"user_id": self.session.user_id, "amount": amount,
                                              "expires_at": expires_at.isoformat()})
        return reservation

    async def release(self) -> WalletReservation:
        reservation = WalletReservation()
        await self.session.set_wallet(reservation)
        return reservation

    async def check_expiry(self, at: Optional[datetime] = None) -> bool:
        """
        Void a reservation whose expiry has passed. Returns True only on the check that
        performed the transition, so the notice is pushed once per expiry.
        """
        reservation = await self.session.wallet()
        if reservation.state != WalletState.RESERVED or reservation.expires_at is None:
            return False
        current = at or self._clock()
        if current < reservation.expires_at:
            return False
        if not await self.session.claim_wallet_expiry(reservation.expires_at):
            return False

        await self.session.set_wallet(WalletReservation(amount=0, expires_at=None, state=WalletState.EXPIRED))
        await self.session.push_notice("wallet_expired", EXPIRED_NOTICE_TITLE, EXPIRED_NOTICE_MESSAGE)
        logger.info("wallet.reservation_expired", extra={"user_id": self.session.user_id})
        return True

    async def active_amount(self, at: Optional[datetime] = None) -> float:
        await self.check_expiry(at)
        reservation = await self.session.wallet()
        if reservation.state != WalletState.RESERVED:
            return 0.0
        return finite_or_zero(reservation.amount)

    async def consume(self) -> float:
        amount = await self.active_amount()
        if amount > 0:
            await self.session.set_wallet(WalletReservation(amount=amount, state=WalletState.CONSUMED))
        return amount


async def apply_affiliate_wallet(client: StorefrontApiClient, session: CheckoutSession, amount: float) -> AffiliateState:
    """Flat deduction from the affiliate commission balance, no reservation involved."""
    amount = finite_or_zero(amount)
    affiliate = await session.affiliate()
    if amount <= 0:
        affiliate.wallet_amount = 0
        await session.set_affiliate(affiliate)
        return affiliate

    try:
        body = await client.get_affiliate_wallet(session.user_id)
    except CollaboratorError as exc:
        raise WalletReservationError("Could not read affiliate wallet",
                                     status_code=status.HTTP_502_BAD_GATEWAY) from exc

    balance = finite_or_zero((body or {}).get("commissionBalance"))
    if amount > balance:
        raise WalletReservationError("Amount exceeds affiliate wallet balance",
                                     details={"amount": amount, "balance": balance})
    affiliate.wallet_amount = amount
    await session.set_affiliate(affiliate)
    return affiliate
