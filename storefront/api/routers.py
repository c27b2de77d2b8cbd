from fastapi import APIRouter
from storefront.api import version_prefix
from storefront.checkout.routes import checkout_router
from storefront.location.routes import locations_router
from storefront.payments.routes import payments_router
from storefront.common.routes import home_router


public_routers = APIRouter(prefix=version_prefix)

public_routers.include_router(checkout_router, prefix="/checkout", tags=["checkout"])
public_routers.include_router(payments_router, prefix="/checkout", tags=["payments"])
public_routers.include_router(locations_router, prefix="/locations", tags=["locations"])
public_routers.include_router(home_router, tags=["home"])
