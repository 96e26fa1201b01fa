"""
Shared service instances for the API routers.
"""
from typing import Optional

from ..config.settings import Settings, get_settings
from ..engine.pricing_engine import PricingEngine
from ..services.pricing_service import PricingService
from ..services.tax_service import TaxService


class AppState:
    """Services built over one data directory."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.pricing_service = PricingService(self.settings)
        self.engine = PricingEngine(self.pricing_service, self.settings)
        self.tax_service = TaxService(self.settings)


_state: Optional[AppState] = None


def get_state() -> AppState:
    """Get the shared state, building it from the current settings on first use."""
    global _state
    if _state is None:
        _state = AppState()
    return _state


def reset_state(settings: Optional[Settings] = None) -> AppState:
    """Rebuild the shared state (used after settings change)."""
    global _state
    _state = AppState(settings)
    return _state
