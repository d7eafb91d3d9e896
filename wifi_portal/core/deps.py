from fastapi import Request
from wifi_portal.services.session_registry import SessionRegistry
from wifi_portal.services.purchase import PurchaseFlow


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_purchase_flow(request: Request) -> PurchaseFlow:
    return request.app.state.purchase_flow
