import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.circuit_breaker import CircuitBreaker, CircuitOpenError
from storefront.common.custom_exceptions import CollaboratorError
from storefront.common.logging_setup import get_logger
from storefront.config.settings import config_settings
from storefront.location.resolver import is_valid_pincode_format
from storefront.pricing.discounts import DiscountBreakdown
from storefront.shipping.constants import MANUAL_ADVISORY, MANUAL_COURIER, shipping_circuit

logger = get_logger("storefront.shipping")


@dataclass
class CourierRate:
    rate: float
    courier_name: Optional[str] = None
    manual: bool = False
    trackable: bool = True
    advisory: Optional[str] = None
    estimated_days: Optional[str] = None


@dataclass
class ShippingQuote:
    shipping_cost: float
    courier: CourierRate
    free_shipping: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"shipping_cost": self.shipping_cost, "free_shipping": self.free_shipping, **asdict(self.courier)}


def manual_fallback() -> CourierRate:
    return CourierRate(
        rate=config_settings.DEFAULT_SHIPPING_RATE,
        courier_name=MANUAL_COURIER,
        manual=True,
        trackable=False,
        advisory=MANUAL_ADVISORY,
        estimated_days="5-7",
    )


def parcel_weight(total_quantity: int) -> float:
    return round(config_settings.PARCEL_WEIGHT_PER_UNIT * max(1, int(total_quantity)), 2)


def cheapest_courier(body: Any) -> Optional[CourierRate]:
    data = body.get("data") if isinstance(body, dict) else None
    companies: List[Dict[str, Any]] = (data or {}).get("available_courier_companies") or []
    best: Optional[CourierRate] = None
    for company in companies:
        if not isinstance(company, dict):
            continue
        raw_rate = company.get("rate")
        # a free courier is still a courier, a missing or junk rate is not
        if raw_rate is None or raw_rate == "" or isinstance(raw_rate, bool):
            continue
        try:
            rate = float(raw_rate)
        except (TypeError, ValueError):
            continue
        if not math.isfinite(rate) or rate < 0:
            continue
        if best is None or rate < best.rate:
            etd = company.get("estimated_delivery_days") or company.get("etd")
            best = CourierRate(rate=rate, courier_name=company.get("courier_name"),
                               estimated_days=str(etd) if etd else None)
    return best


async def resolve_courier_rate(client: StorefrontApiClient, pincode: str, total_quantity: int, cod: bool,
                               breaker: CircuitBreaker = shipping_circuit) -> CourierRate:
    """
    Cheapest courier for the destination, or the manual India Post route when the
    pincode is not courier-served, no courier quotes, or any lookup fails.
    """
    try:
        availability = await breaker.call(client.check_pincode, pincode)
        if not (isinstance(availability, dict) and availability.get("available")):
            logger.info("shipping.manual_routing", extra={"pincode": pincode})
            return manual_fallback()

        body = await breaker.call(client.serviceability, pincode, parcel_weight(total_quantity), cod,
                                  config_settings.PICKUP_PINCODE)
    except CircuitOpenError:
        logger.warning("shipping.circuit_open", extra={"pincode": pincode})
        return manual_fallback()
    except CollaboratorError as exc:
        logger.warning("shipping.rate_lookup_failed",
                       extra={"pincode": pincode, "endpoint": exc.endpoint, "upstream_status": exc.upstream_status})
        return manual_fallback()

    courier = cheapest_courier(body)
    if courier is None:
        logger.info("shipping.no_courier", extra={"pincode": pincode})
        return manual_fallback()
    return courier


def shipping_for(discounts: DiscountBreakdown, courier_rate: float) -> float:
    """Any active discount pays the courier rate, otherwise free above the threshold."""
    if discounts.has_active_discount:
        return courier_rate
    if discounts.subtotal_after_product_discount > config_settings.FREE_SHIPPING_THRESHOLD:
        return 0.0
    return courier_rate


async def resolve_shipping(client: StorefrontApiClient, discounts: DiscountBreakdown, pincode: Optional[str],
                           total_quantity: int, cod: bool = False) -> ShippingQuote:
    if is_valid_pincode_format(pincode):
        courier = await resolve_courier_rate(client, str(pincode).strip(), total_quantity, cod)
    else:
        # no destination yet, quote the default rate without a partner
        courier = CourierRate(rate=config_settings.DEFAULT_SHIPPING_RATE)

    cost = shipping_for(discounts, courier.rate)
    return ShippingQuote(shipping_cost=cost, courier=courier, free_shipping=cost == 0)
