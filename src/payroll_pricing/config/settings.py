"""
Centralized settings and path configuration for the payroll pricing service.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional


DATA_DIR_ENV = 'PAYROLL_PRICING_DATA_DIR'
LOG_LEVEL_ENV = 'PAYROLL_PRICING_LOG_LEVEL'


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 4 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class DefaultRates:
    """Rates used when neither a merchant override nor a starter tier supplies one."""
    base_price: Decimal = Decimal('15.00')
    per_employee_price: Decimal = Decimal('3.00')
    per_contractor_price: Decimal = Decimal('1.00')
    free_contractors: int = 10
    global_payroll_per_employee_price: Decimal = Decimal('8.00')
    on_demand_pay_fee: Decimal = Decimal('0.50')


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    project_root: Path
    data_dir: Path

    # Pricing tables
    tiers_csv: Path
    merchant_pricing_csv: Path
    features_csv: Path
    feature_availability_csv: Path

    # Tax tables
    jurisdictions_csv: Path
    tax_tables_csv: Path
    tax_brackets_csv: Path
    tax_calculations_csv: Path
    tax_update_log_csv: Path

    # Output of the seed build
    build_report: Path

    default_rates: DefaultRates = field(default_factory=DefaultRates)
    default_tier: str = 'starter'
    annual_allowance_amount: Decimal = Decimal('4300')
    # Filing status assumed for employees without a W-4 election
    default_filing_status: str = 'single'
    log_level: str = 'INFO'

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> 'Settings':
        """Load settings, resolving every table under the data directory."""
        root = get_project_root()
        env_dir = os.environ.get(DATA_DIR_ENV)
        data = Path(data_dir or env_dir or root / 'data')

        return cls(
            project_root=root,
            data_dir=data,
            tiers_csv=data / 'payroll_pricing.csv',
            merchant_pricing_csv=data / 'merchant_payroll_pricing.csv',
            features_csv=data / 'payroll_pricing_features.csv',
            feature_availability_csv=data / 'payroll_pricing_feature_availability.csv',
            jurisdictions_csv=data / 'tax_jurisdictions.csv',
            tax_tables_csv=data / 'tax_tables.csv',
            tax_brackets_csv=data / 'tax_brackets.csv',
            tax_calculations_csv=data / 'payroll_tax_calculations.csv',
            tax_update_log_csv=data / 'tax_update_logs.csv',
            build_report=data / 'build_report.json',
            log_level=os.environ.get(LOG_LEVEL_ENV, 'INFO').upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings(settings: Optional[Settings] = None):
    """Replace (or clear) the global settings instance."""
    global _settings
    _settings = settings
