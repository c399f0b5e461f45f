import pytest

from bizdesk.api.endpoints import API_ENDPOINTS, resolve


def test_static_endpoint():
    assert resolve("HEALTH") == "/api/health"
    assert resolve("sales_today") == "/api/sales/today"


def test_placeholder_is_filled_and_quoted():
    assert resolve("PRODUCTS_STOCK_UPDATE", id=42) == "/api/products/42/stock"
    assert resolve("SALES_GET", id="a/b c") == "/api/sales/a%2Fb%20c"


def test_missing_placeholder_value():
    with pytest.raises(ValueError, match="'id'"):
        resolve("BOOKINGS_UPDATE")


def test_unknown_endpoint():
    with pytest.raises(KeyError):
        resolve("NOPE")


def test_all_paths_are_api_rooted():
    assert all(path.startswith("/api/") for path in API_ENDPOINTS.values())
