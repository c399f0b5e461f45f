"""bizdesk - async client for the small-business management API."""

__version__ = "0.3.0"
__logo__ = "🧾"
