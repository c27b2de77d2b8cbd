import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.logging_setup import get_logger
from storefront.config.settings import config_settings
from storefront.location.constants import PincodeStatus
from storefront.location.resolver import check_pincode, is_valid_pincode_format

logger = get_logger("storefront.location")


@dataclass
class PincodeCheck:
    pincode: str
    status: Optional[PincodeStatus]
    generation: int


class PincodeValidator:
    """
    Debounced pincode validation for one input field.

    Each submit bumps a generation counter. A submit during the debounce window cancels
    the pending timer; once the lookup has been dispatched it runs to completion and its
    result is discarded if a newer generation exists by then.
    """

    def __init__(self, client: StorefrontApiClient, debounce: Optional[float] = None,
                 on_result: Optional[Callable[[PincodeCheck], Awaitable[None]]] = None):
        self._client = client
        self._debounce = config_settings.PINCODE_DEBOUNCE_SECONDS if debounce is None else debounce
        self._on_result = on_result
        self._generation = 0
        self._latest: Optional[asyncio.Task] = None
        self._latest_gen = 0
        self._dispatched: Set[int] = set()
        self._tasks: Set[asyncio.Task] = set()
        self.result: Optional[PincodeCheck] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def in_flight(self) -> bool:
        return self._latest is not None and not self._latest.done()

    def submit(self, pincode: str) -> int:
        self._generation += 1
        gen = self._generation
        pincode = str(pincode or "").strip()

        # still inside its debounce window, nothing has been sent yet
        if self._latest is not None and not self._latest.done() and self._latest_gen not in self._dispatched:
            self._latest.cancel()

        if not is_valid_pincode_format(pincode):
            self._latest = None
            self.result = PincodeCheck(pincode, PincodeStatus.INVALID, gen)
            return gen

        self.result = PincodeCheck(pincode, None, gen)
        task = asyncio.create_task(self._run(gen, pincode))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._latest = task
        self._latest_gen = gen
        return gen

    async def _run(self, gen: int, pincode: str) -> Optional[PincodeStatus]:
        await asyncio.sleep(self._debounce)
        self._dispatched.add(gen)
        try:
            status = await check_pincode(self._client, pincode)
        finally:
            self._dispatched.discard(gen)

        if gen != self._generation:
            logger.debug("pincode.result_superseded", extra={"pincode": pincode, "generation": gen})
            return status

        self.result = PincodeCheck(pincode, status, gen)
        if self._on_result is not None:
            await self._on_result(self.result)
        return status

    async def wait(self) -> Optional[PincodeCheck]:
        """Wait for the latest submission to settle, used by callers that need a final answer."""
        task = self._latest
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return self.result

    async def close(self):
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._latest = None
