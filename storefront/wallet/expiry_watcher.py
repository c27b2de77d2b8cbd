import asyncio
from typing import Optional
from storefront.checkout.models import WalletState
from storefront.common.logging_setup import get_logger
from storefront.config.settings import config_settings
from storefront.wallet.reservation import WalletManager

logger = get_logger("storefront.wallet")


class ExpiryWatcher:
    """
    Polls a session's cashback reservation and expires it on time.

    The loop ends by itself once no reservation is held. stop() (or leaving the async
    context) cancels it; both are safe to call more than once.
    """

    def __init__(self, manager: WalletManager, interval: Optional[float] = None):
        self.manager = manager
        self.interval = config_settings.WALLET_POLL_INTERVAL_SECONDS if interval is None else interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if not self.running:
            self._task = asyncio.create_task(self._loop())

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "ExpiryWatcher":
        self.start()
        return self

    async def __aexit__(self, *exc):
        await self.stop()

    async def _loop(self):
        user_id = self.manager.session.user_id
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.manager.check_expiry()
                reservation = await self.manager.session.wallet()
            except Exception:
                logger.exception("wallet.expiry_check_failed", extra={"user_id": user_id})
                continue
            if reservation.state != WalletState.RESERVED:
                logger.debug("wallet.watcher_done", extra={"user_id": user_id})
                return
