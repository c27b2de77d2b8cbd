from typing import List
from storefront.addresses.models import AddressCreate
from storefront.addresses.normalize import normalize_address, normalize_addresses, profile_address
from storefront.checkout.models import DeliveryAddress
from storefront.clients.collaborator import StorefrontApiClient
from storefront.common.custom_exceptions import AddressIncomplete, CollaboratorError
from storefront.common.logging_setup import get_logger
from storefront.location.constants import PincodeStatus
from storefront.location.resolver import check_pincode, is_valid_pincode_format
from storefront.session.checkout_session import CheckoutSession

logger = get_logger("storefront.addresses")


async def list_user_addresses(client: StorefrontApiClient, session: CheckoutSession,
                              include_profile: bool = True) -> List[DeliveryAddress]:
    """Saved addresses for the user, with the profile-derived address appended when there is one."""
    records = await client.list_addresses(session.user_id)
    addresses = normalize_addresses(records)
    if include_profile:
        derived = profile_address(await session.profile())
        if derived is not None:
            addresses.append(derived)
    return addresses


async def create_user_address(client: StorefrontApiClient, session: CheckoutSession,
                              payload: AddressCreate) -> DeliveryAddress:
    pincode = payload.pincode.strip()
    if not is_valid_pincode_format(pincode):
        raise AddressIncomplete("Pincode must be 6 digits", details={"fields": ["pincode"]})

    # only a definite INVALID blocks, a failed lookup lets the user continue
    if await check_pincode(client, pincode) == PincodeStatus.INVALID:
        raise AddressIncomplete("Pincode is not serviceable", details={"fields": ["pincode"]})

    body = payload.model_dump(mode="json", by_alias=True, exclude={"select"})
    body["pincode"] = pincode
    body["userId"] = session.user_id
    try:
        created = await client.create_address(body)
    except CollaboratorError as exc:
        logger.error("address.create_failed", extra={"user_id": session.user_id, "upstream_status": exc.upstream_status})
        raise

    address = normalize_address(created)
    logger.info("address.created", extra={"user_id": session.user_id, "address_id": address.id})
    if payload.select:
        await session.set_selected_address(address)
    return address
