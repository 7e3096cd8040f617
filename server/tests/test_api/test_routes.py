# Route registration tests

import inspect

from fastapi.routing import APIRoute

from api.main import app

DATABASE_PREFIXES = ("/api/auth", "/api/orders", "/api/admin", "/api/payments", "/api/addresses",
                     "/api/menus", "/api/pricing")


class TestRouteEndpoints:
    def test_database_routes_run_in_threadpool(self):
        """Endpoints that block on sqlite or order locks must not run on the event loop"""
        blocking = [
            route.path for route in app.routes
            if isinstance(route, APIRoute) and route.path.startswith(DATABASE_PREFIXES)
            and inspect.iscoroutinefunction(route.endpoint)
        ]
        assert blocking == []

    def test_webhook_route_registered(self):
        paths = {route.path for route in app.routes if isinstance(route, APIRoute)}
        assert "/api/payments/webhook" in paths
