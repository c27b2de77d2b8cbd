from fastapi import APIRouter, Depends, HTTPException, status
from storefront.clients.collaborator import StorefrontApiClient
from storefront.clients.dependencies import get_storefront_client
from storefront.common.utils import success_response
from storefront.location.data import STATES
from storefront.location.resolver import check_pincode, cities_for_state, is_valid_pincode_format, resolve_city

locations_router = APIRouter()


@locations_router.get("/states")
async def list_states():
    return success_response({"states": STATES})


@locations_router.get("/cities")
async def list_cities(state: str):
    return success_response({"state": state, "cities": cities_for_state(state)})


@locations_router.get("/cities/{city}")
async def get_city(city: str):
    resolved = resolve_city(city)
    if resolved is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown city {city!r}")
    return success_response(resolved)


@locations_router.get("/pincode/{pincode}")
async def lookup_pincode(pincode: str, client: StorefrontApiClient = Depends(get_storefront_client)):
    result = await check_pincode(client, pincode)
    return success_response({
        "pincode": pincode,
        "format_valid": is_valid_pincode_format(pincode),
        "status": result.value,
    })
