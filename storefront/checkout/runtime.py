import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.logging_setup import get_logger
from storefront.location.validator import PincodeValidator
from storefront.session.checkout_session import CheckoutSession
from storefront.wallet.expiry_watcher import ExpiryWatcher
from storefront.wallet.reservation import WalletManager

logger = get_logger("storefront.checkout")

# which input a pincode check belongs to
LOOKUP = "lookup"
NEW_ADDRESS = "new_address"


@dataclass
class UserRuntime:
    validators: Dict[str, PincodeValidator] = field(default_factory=dict)
    watcher: Optional[ExpiryWatcher] = None

    @property
    def pincode_busy(self) -> bool:
        return any(v.in_flight for v in self.validators.values())

    async def close(self):
        if self.watcher is not None:
            await self.watcher.stop()
            self.watcher = None
        for validator in self.validators.values():
            await validator.close()
        self.validators.clear()


class CheckoutRuntime:
    """
    In-process tasks tied to a user's checkout: debounced pincode validators and the
    cashback expiry watcher. Torn down per user on session end and for everyone on shutdown.
    """

    def __init__(self, client: StorefrontApiClient, debounce: Optional[float] = None,
                 poll_interval: Optional[float] = None):
        self.client = client
        self.debounce = debounce
        self.poll_interval = poll_interval
        self._users: Dict[int, UserRuntime] = {}

    def for_user(self, user_id: int) -> UserRuntime:
        runtime = self._users.get(user_id)
        if runtime is None:
            runtime = self._users[user_id] = UserRuntime()
        return runtime

    def validator(self, user_id: int, purpose: str) -> PincodeValidator:
        runtime = self.for_user(user_id)
        validator = runtime.validators.get(purpose)
        if validator is None:
            validator = runtime.validators[purpose] = PincodeValidator(self.client, debounce=self.debounce)
        return validator

    def existing_validator(self, user_id: int, purpose: str) -> Optional[PincodeValidator]:
        runtime = self._users.get(user_id)
        return runtime.validators.get(purpose) if runtime is not None else None

    @property
    def active_users(self) -> int:
        return len(self._users)

    def pincode_busy(self, user_id: int) -> bool:
        runtime = self._users.get(user_id)
        return runtime is not None and runtime.pincode_busy

    def watch_wallet(self, session: CheckoutSession) -> ExpiryWatcher:
        runtime = self.for_user(session.user_id)
        if runtime.watcher is None or not runtime.watcher.running:
            runtime.watcher = ExpiryWatcher(WalletManager(session), interval=self.poll_interval)
            runtime.watcher.start()
        return runtime.watcher

    async def stop_wallet_watch(self, user_id: int):
        runtime = self._users.get(user_id)
        if runtime is not None and runtime.watcher is not None:
            await runtime.watcher.stop()
            runtime.watcher = None

    async def end_session(self, user_id: int):
        runtime = self._users.pop(user_id, None)
        if runtime is not None:
            await runtime.close()

    async def shutdown(self):
        users = list(self._users)
        if users:
            logger.info("checkout.runtime_shutdown", extra={"users": len(users)})
        await asyncio.gather(*(self.end_session(uid) for uid in users), return_exceptions=True)
