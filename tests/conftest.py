import pytest
import sys
import os

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from payroll_pricing.config.settings import Settings, reset_settings
from payroll_pricing.engine.pricing_engine import PricingEngine
from payroll_pricing.services.pricing_service import PricingService
from payroll_pricing.services.tax_service import TaxService


@pytest.fixture
def settings(tmp_path):
    """Settings over an empty data directory, installed as the global settings."""
    s = Settings.load(data_dir=tmp_path / 'data')
    reset_settings(s)
    yield s
    reset_settings(None)


@pytest.fixture
def pricing_service(settings):
    return PricingService(settings)


@pytest.fixture
def seeded_service(pricing_service):
    """Pricing service with the standard tiers, features and mapping."""
    pricing_service.initialize_defaults()
    return pricing_service


@pytest.fixture
def engine(seeded_service, settings):
    return PricingEngine(seeded_service, settings)


@pytest.fixture
def tax_service(settings):
    service = TaxService(settings)
    service.initialize_defaults()
    return service
