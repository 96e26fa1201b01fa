"""
Data models for the payroll pricing engine.

Uses dataclasses for table rows and results; each table row converts to and
from the string-only CSV representation the stores persist.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from .parsing import (
    fmt, parse_bool, parse_list, parse_optional_date, parse_optional_datetime,
    parse_optional_decimal, parse_optional_int, parse_optional_str,
)

PRODUCT_TIERS = ('starter', 'professional', 'enterprise', 'custom')
BILLING_CYCLES = ('monthly', 'quarterly', 'annual', 'custom')


@dataclass
class TraceStep:
    """A single step in the price resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class PricingTier:
    """A standard pricing bundle (row of ``payroll_pricing``)."""
    id: int
    tier: str
    name: str
    base_price: Decimal
    per_employee_price: Decimal
    description: Optional[str] = None
    per_contractor_price: Optional[Decimal] = None
    free_contractors: int = 0
    global_payroll_per_employee_price: Optional[Decimal] = None
    on_demand_pay_fee: Optional[Decimal] = None
    min_employees: int = 1
    max_employees: Optional[int] = None
    is_active: bool = True
    included_features: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    COLUMNS = [
        'id', 'tier', 'name', 'description', 'base_price', 'per_employee_price',
        'per_contractor_price', 'free_contractors', 'global_payroll_per_employee_price',
        'on_demand_pay_fee', 'min_employees', 'max_employees', 'is_active',
        'included_features', 'created_at', 'updated_at',
    ]

    def covers(self, employees: int) -> bool:
        """True when the head-count fits the tier's employee range."""
        if employees < self.min_employees:
            return False
        return self.max_employees is None or employees <= self.max_employees

    def to_row(self) -> dict:
        return {col: fmt(getattr(self, col)) for col in self.COLUMNS}

    @classmethod
    def from_row(cls, row: dict) -> 'PricingTier':
        return cls(
            id=int(row['id']),
            tier=row.get('tier') or 'custom',
            name=row.get('name', ''),
            description=parse_optional_str(row.get('description')),
            base_price=parse_optional_decimal(row.get('base_price')) or Decimal('0'),
            per_employee_price=parse_optional_decimal(row.get('per_employee_price')) or Decimal('0'),
            per_contractor_price=parse_optional_decimal(row.get('per_contractor_price')),
            free_contractors=parse_optional_int(row.get('free_contractors')) or 0,
            global_payroll_per_employee_price=parse_optional_decimal(
                row.get('global_payroll_per_employee_price')
            ),
            on_demand_pay_fee=parse_optional_decimal(row.get('on_demand_pay_fee')),
            min_employees=parse_optional_int(row.get('min_employees')) or 1,
            max_employees=parse_optional_int(row.get('max_employees')),
            is_active=parse_bool(row.get('is_active'), default=True),
            included_features=parse_list(row.get('included_features')),
            created_at=parse_optional_datetime(row.get('created_at')),
            updated_at=parse_optional_datetime(row.get('updated_at')),
        )


@dataclass
class MerchantPricing:
    """Merchant-specific override (row of ``merchant_payroll_pricing``)."""
    id: int
    merchant_id: int
    base_pricing_id: Optional[int] = None
    custom_base_price: Optional[Decimal] = None
    custom_per_employee_price: Optional[Decimal] = None
    custom_per_contractor_price: Optional[Decimal] = None
    custom_free_contractors: Optional[int] = None
    custom_global_payroll_per_employee_price: Optional[Decimal] = None
    custom_on_demand_pay_fee: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None
    discount_start_date: Optional[date] = None
    discount_end_date: Optional[date] = None
    billing_cycle: str = 'monthly'
    next_billing_date: Optional[date] = None
    special_terms: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    COLUMNS = [
        'id', 'merchant_id', 'base_pricing_id', 'custom_base_price',
        'custom_per_employee_price', 'custom_per_contractor_price',
        'custom_free_contractors', 'custom_global_payroll_per_employee_price',
        'custom_on_demand_pay_fee', 'discount_percentage', 'discount_start_date',
        'discount_end_date', 'billing_cycle', 'next_billing_date', 'special_terms',
        'is_active', 'created_at', 'updated_at',
    ]

    def discount_active_on(self, as_of: date) -> bool:
        """
        True when a positive discount applies on ``as_of``.

        The window is inclusive at both ends and an unset bound is open.
        """
        if not self.discount_percentage or self.discount_percentage <= 0:
            return False
        if self.discount_start_date and as_of < self.discount_start_date:
            return False
        if self.discount_end_date and as_of > self.discount_end_date:
            return False
        return True

    def to_row(self) -> dict:
        return {col: fmt(getattr(self, col)) for col in self.COLUMNS}

    @classmethod
    def from_row(cls, row: dict) -> 'MerchantPricing':
        return cls(
            id=int(row['id']),
            merchant_id=int(row['merchant_id']),
            base_pricing_id=parse_optional_int(row.get('base_pricing_id')),
            custom_base_price=parse_optional_decimal(row.get('custom_base_price')),
            custom_per_employee_price=parse_optional_decimal(row.get('custom_per_employee_price')),
            custom_per_contractor_price=parse_optional_decimal(row.get('custom_per_contractor_price')),
            custom_free_contractors=parse_optional_int(row.get('custom_free_contractors')),
            custom_global_payroll_per_employee_price=parse_optional_decimal(
                row.get('custom_global_payroll_per_employee_price')
            ),
            custom_on_demand_pay_fee=parse_optional_decimal(row.get('custom_on_demand_pay_fee')),
            discount_percentage=parse_optional_decimal(row.get('discount_percentage')),
            discount_start_date=parse_optional_date(row.get('discount_start_date')),
            discount_end_date=parse_optional_date(row.get('discount_end_date')),
            billing_cycle=parse_optional_str(row.get('billing_cycle')) or 'monthly',
            next_billing_date=parse_optional_date(row.get('next_billing_date')),
            special_terms=parse_optional_str(row.get('special_terms')),
            is_active=parse_bool(row.get('is_active'), default=True),
            created_at=parse_optional_datetime(row.get('created_at')),
            updated_at=parse_optional_datetime(row.get('updated_at')),
        )


@dataclass
class PricingFeature:
    """A sellable payroll feature."""
    id: int
    key: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    is_standard: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    COLUMNS = ['id', 'key', 'name', 'description', 'category', 'is_standard',
               'created_at', 'updated_at']

    def to_row(self) -> dict:
        return {col: fmt(getattr(self, col)) for col in self.COLUMNS}

    @classmethod
    def from_row(cls, row: dict) -> 'PricingFeature':
        return cls(
            id=int(row['id']),
            key=row.get('key', ''),
            name=row.get('name', ''),
            description=parse_optional_str(row.get('description')),
            category=parse_optional_str(row.get('category')),
            is_standard=parse_bool(row.get('is_standard')),
            created_at=parse_optional_datetime(row.get('created_at')),
            updated_at=parse_optional_datetime(row.get('updated_at')),
        )


@dataclass
class FeatureAvailability:
    """How a feature is offered on one tier."""
    id: int
    pricing_id: int
    feature_id: int
    is_included: bool = False
    additional_cost: Optional[Decimal] = None
    is_limited: bool = False
    limit_details: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    COLUMNS = ['id', 'pricing_id', 'feature_id', 'is_included', 'additional_cost',
               'is_limited', 'limit_details', 'created_at', 'updated_at']

    @property
    def purchasable(self) -> bool:
        return self.is_included or self.additional_cost is not None

    def to_row(self) -> dict:
        return {col: fmt(getattr(self, col)) for col in self.COLUMNS}

    @classmethod
    def from_row(cls, row: dict) -> 'FeatureAvailability':
        return cls(
            id=int(row['id']),
            pricing_id=int(row['pricing_id']),
            feature_id=int(row['feature_id']),
            is_included=parse_bool(row.get('is_included')),
            additional_cost=parse_optional_decimal(row.get('additional_cost')),
            is_limited=parse_bool(row.get('is_limited')),
            limit_details=parse_optional_str(row.get('limit_details')),
            created_at=parse_optional_datetime(row.get('created_at')),
            updated_at=parse_optional_datetime(row.get('updated_at')),
        )


@dataclass
class PriceRequest:
    """A price calculation request for one merchant."""
    merchant_id: int
    employees: int = 0
    contractors: int = 0
    global_employees: int = 0

    # Feature keys the merchant wants priced on top of the tier
    features: list[str] = field(default_factory=list)
    on_demand_payments: int = 0

    # Date used for the discount window; today when omitted
    as_of: Optional[date] = None


@dataclass
class EffectiveRates:
    """Per-unit rates after merchant override / tier / default resolution."""
    base_price: Decimal
    per_employee_price: Decimal
    per_contractor_price: Decimal
    free_contractors: int
    global_payroll_per_employee_price: Decimal
    on_demand_pay_fee: Decimal
    source: str  # "merchant_tier", "merchant_custom", "standard_tier", "default"
    tier: Optional[PricingTier] = None
    discount_percentage: Decimal = Decimal('0')


@dataclass
class PriceBreakdown:
    """Complete result of a price calculation."""
    merchant_id: int
    source: str
    tier_id: Optional[int]
    tier_name: Optional[str]
    base_price: Decimal
    per_employee_price: Decimal
    total_employees_cost: Decimal
    per_contractor_price: Decimal
    paid_contractors: int
    total_contractors_cost: Decimal
    global_payroll_per_employee_price: Decimal
    global_employees_cost: Decimal
    additional_costs: dict[str, Decimal] = field(default_factory=dict)
    subtotal: Decimal = Decimal('0.00')
    discount_percentage: Decimal = Decimal('0')
    discount_amount: Decimal = Decimal('0.00')
    total_price: Decimal = Decimal('0.00')
    unavailable_features: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        if warning not in self.warnings:
            self.warnings.append(warning)

    def line_items(self) -> dict[str, Decimal]:
        """Every amount that makes up the subtotal."""
        items = {
            'base': self.base_price,
            'employees': self.total_employees_cost,
            'contractors': self.total_contractors_cost,
            'global_employees': self.global_employees_cost,
        }
        for name, cost in self.additional_costs.items():
            items[f'additional:{name}'] = cost
        return items

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)
