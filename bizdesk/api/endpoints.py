"""Named backend endpoints."""

import re
from urllib.parse import quote

API_ENDPOINTS: dict[str, str] = {
    # Health
    "HEALTH": "/api/health",
    "HEALTH_DB": "/api/health/db",

    # Authentication
    "AUTH_REGISTER": "/api/auth/register",
    "AUTH_LOGIN": "/api/auth/login",
    "AUTH_LOGOUT": "/api/auth/logout",
    "AUTH_ME": "/api/auth/me",
    "AUTH_UPDATE_PASSWORD": "/api/auth/update-password",

    # Business
    "BUSINESS_PROFILE": "/api/business/profile",
    "BUSINESS_PREFERENCES": "/api/business/preferences",

    # Products / inventory
    "PRODUCTS_LIST": "/api/products",
    "PRODUCTS_CREATE": "/api/products",
    "PRODUCTS_GET": "/api/products/:id",
    "PRODUCTS_UPDATE": "/api/products/:id",
    "PRODUCTS_DELETE": "/api/products/:id",
    "PRODUCTS_STOCK_UPDATE": "/api/products/:id/stock",
    "PRODUCTS_STATS": "/api/products/stats",
    "PRODUCTS_LOW_STOCK": "/api/products/low-stock",

    # Sales
    "SALES_CREATE": "/api/sales",
    "SALES_LIST": "/api/sales",
    "SALES_GET": "/api/sales/:id",
    "SALES_UPDATE_PAYMENT": "/api/sales/:id/payment",
    "SALES_CANCEL": "/api/sales/:id/cancel",
    "SALES_STATS": "/api/sales/stats",
    "SALES_TODAY": "/api/sales/today",

    # Transactions
    "TRANSACTIONS_CREATE": "/api/transactions",
    "TRANSACTIONS_LIST": "/api/transactions",
    "TRANSACTIONS_GET": "/api/transactions/:id",
    "TRANSACTIONS_UPDATE": "/api/transactions/:id",
    "TRANSACTIONS_DELETE": "/api/transactions/:id",
    "TRANSACTIONS_SUMMARY": "/api/transactions/summary",
    "TRANSACTIONS_TRENDS": "/api/transactions/trends",
    "TRANSACTIONS_TODAY": "/api/transactions/today",

    # Notifications
    "NOTIFICATIONS_LIST": "/api/notifications",
    "NOTIFICATIONS_GET": "/api/notifications/:id",
    "NOTIFICATIONS_READ": "/api/notifications/:id/read",
    "NOTIFICATIONS_READ_ALL": "/api/notifications/read-all",
    "NOTIFICATIONS_DELETE": "/api/notifications/:id",
    "NOTIFICATIONS_SEND": "/api/notifications/send",
    "NOTIFICATIONS_STATS": "/api/notifications/stats",

    # Services
    "SERVICES_LIST": "/api/services",
    "SERVICES_GET": "/api/services/:id",
    "SERVICES_CREATE": "/api/services",
    "SERVICES_UPDATE": "/api/services/:id",
    "SERVICES_DELETE": "/api/services/:id",

    # Bookings
    "BOOKINGS_CREATE": "/api/bookings",
    "BOOKINGS_LIST": "/api/bookings",
    "BOOKINGS_UPDATE": "/api/bookings/:id",

    # Payments
    "PAYMENT_VERIFY": "/api/payments/verify",
    "PAYMENTS_WEBHOOK": "/api/payments/webhook",
}

_PLACEHOLDER_RE = re.compile(r":([a-zA-Z_]+)")


def resolve(name: str, **params: object) -> str:
    """
    Build the path for a named endpoint.

    Args:
        name: Key in API_ENDPOINTS (case-insensitive).
        **params: Values for ``:placeholder`` segments.

    Raises:
        KeyError: Unknown endpoint name.
        ValueError: A placeholder has no value.
    """
    template = API_ENDPOINTS[name.upper()]

    def _fill(match: re.Match) -> str:
        key = match.group(1)
        if key not in params:
            raise ValueError(f"Endpoint {name} needs a value for '{key}'")
        return quote(str(params[key]), safe="")

    return _PLACEHOLDER_RE.sub(_fill, template)
