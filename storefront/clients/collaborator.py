from typing import Any, Dict, List, Optional
import httpx
from storefront.common.custom_exceptions import CollaboratorError
from storefront.common.logging_setup import get_logger
from storefront.config.settings import config_settings

logger = get_logger("storefront.clients")


class StorefrontApiClient:
    """
    Thin async client for the storefront REST api (addresses, wallets, shipping,
    payments and orders).

    Every failure, transport or non 2xx, is raised as CollaboratorError carrying the
    endpoint, upstream status and decoded body. Callers decide whether to degrade.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(
            base_url=(base_url or config_settings.STOREFRONT_API_BASE).rstrip("/"),
            timeout=timeout or config_settings.STOREFRONT_API_TIMEOUT,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> "StorefrontApiClient":
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return {"raw": resp.text[:500]}

    async def _request(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None,
                       json: Any = None) -> Any:
        endpoint = f"{method} {path}"
        try:
            resp = await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.warning("collaborator.transport_error", extra={"endpoint": endpoint, "error": str(exc)})
            raise CollaboratorError(endpoint, message=f"{endpoint} unreachable: {exc.__class__.__name__}") from exc

        body = self._decode(resp)
        if resp.is_success:
            return body

        logger.warning("collaborator.bad_status", extra={"endpoint": endpoint, "status": resp.status_code})
        message = body.get("error") if isinstance(body, dict) else None
        raise CollaboratorError(endpoint, status_code=resp.status_code, body=body, message=message)

    # addresses
    async def list_addresses(self, user_id: int) -> List[Dict[str, Any]]:
        body = await self._request("GET", "/delivery-addresses", params={"userId": user_id})
        return body if isinstance(body, list) else []

    async def create_address(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/delivery-addresses", json=payload)

    # pincode and shipping
    async def validate_pincode(self, pincode: str) -> Dict[str, Any]:
        return await self._request("GET", "/pincode/validate", params={"pincode": pincode})

    async def check_pincode(self, pincode: str) -> Dict[str, Any]:
        return await self._request("GET", "/check-pincode", params={"pincode": pincode})

    async def serviceability(self, delivery_pincode: str, weight: float, cod: bool,
                             pickup_pincode: Optional[str] = None) -> Dict[str, Any]:
        params = {"deliveryPincode": delivery_pincode, "weight": weight, "cod": "1" if cod else "0"}
        if pickup_pincode:
            params["pickupPincode"] = pickup_pincode
        return await self._request("GET", "/shiprocket/serviceability", params=params)

    # wallets and milestones
    async def get_wallet(self, user_id: int) -> Dict[str, Any]:
        return await self._request("GET", "/wallet", params={"userId": user_id})

    async def reserve_wallet(self, user_id: int, amount: float, description: str) -> Dict[str, Any]:
        return await self._request("POST", "/wallet/reserve",
                                   json={"userId": user_id, "amount": amount, "description": description})

    async def get_affiliate_wallet(self, user_id: int) -> Dict[str, Any]:
        return await self._request("GET", "/affiliate/wallet", params={"userId": user_id})

    async def get_gift_milestones(self) -> List[Dict[str, Any]]:
        body = await self._request("GET", "/gift-milestones")
        return body if isinstance(body, list) else []

    # payments and orders
    async def create_cashfree_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/payments/cashfree/create-order", json=payload)

    async def verify_cashfree_payment(self, order_id: str) -> Dict[str, Any]:
        return await self._request("POST", "/payments/cashfree/verify", json={"orderId": order_id})

    async def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/orders", json=payload)

    async def log_affiliate_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/affiliate/transactions", json=payload)
