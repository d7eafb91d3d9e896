# API endpoints package
from wifi_portal.api.auth_routes import router as auth_router
from wifi_portal.api.package_routes import router as package_router
from wifi_portal.api.session_routes import router as session_router
from wifi_portal.api.admin_routes import router as admin_router

__all__ = ['auth_router', 'package_router', 'session_router', 'admin_router']
