from fastapi import Request
from storefront.clients.collaborator import StorefrontApiClient


def get_storefront_client(request: Request) -> StorefrontApiClient:
    return request.app.state.storefront_client
