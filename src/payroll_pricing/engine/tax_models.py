"""
Data models for payroll tax calculation.
"""
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from .parsing import (
    fmt, parse_bool, parse_optional_date, parse_optional_datetime,
    parse_optional_decimal, parse_optional_int, parse_optional_str,
)

JURISDICTION_TYPES = ('federal', 'state', 'local', 'county', 'city')
TAX_TYPES = (
    'income', 'social_security', 'medicare', 'sui', 'sdi',
    'futa', 'suta', 'local_income', 'transit', 'occupational',
)
CALCULATION_METHODS = ('flat_rate', 'progressive', 'fixed_amount', 'percentage_with_cap', 'wage_base')
FILING_STATUSES = (
    'single', 'married_filing_jointly', 'married_filing_separately',
    'head_of_household', 'qualifying_widow_widower',
)
PAY_FREQUENCIES = ('weekly', 'biweekly', 'semimonthly', 'monthly', 'quarterly', 'annually')


def effective_during(effective: Optional[date], expiration: Optional[date],
                     period_start: date, period_end: date) -> bool:
    """True when [effective, expiration] overlaps the pay period; unset bounds are open."""
    if effective and effective > period_end:
        return False
    if expiration and expiration < period_start:
        return False
    return True


@dataclass
class TaxJurisdiction:
    id: int
    name: str
    code: str
    type: str
    parent_jurisdiction_id: Optional[int] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None
    is_active: bool = True

    COLUMNS = ['id', 'name', 'code', 'type', 'parent_jurisdiction_id',
               'effective_date', 'expiration_date', 'is_active']

    def to_row(self) -> dict:
        return {col: fmt(getattr(self, col)) for col in self.COLUMNS}

    @classmethod
    def from_row(cls, row: dict) -> 'TaxJurisdiction':
        return cls(
            id=int(row['id']),
            name=row.get('name', ''),
            code=row.get('code', ''),
            type=row.get('type', ''),
            parent_jurisdiction_id=parse_optional_int(row.get('parent_jurisdiction_id')),
            effective_date=parse_optional_date(row.get('effective_date')),
            expiration_date=parse_optional_date(row.get('expiration_date')),
            is_active=parse_bool(row.get('is_active'), default=True),
        )


@dataclass
class TaxTable:
    """Rate definition for one tax type in one jurisdiction."""
    id: int
    jurisdiction_id: int
    tax_type: str
    calculation_method: str
    filing_status: Optional[str] = None
    pay_frequency: Optional[str] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None
    tax_rate: Optional[Decimal] = None
    wage_base: Optional[Decimal] = None
    wage_base_period: str = 'annually'
    fixed_amount: Optional[Decimal] = None
    is_active: bool = True

    COLUMNS = ['id', 'jurisdiction_id', 'tax_type', 'calculation_method', 'filing_status',
               'pay_frequency', 'effective_date', 'expiration_date', 'tax_rate', 'wage_base',
               'wage_base_period', 'fixed_amount', 'is_active']

    def to_row(self) -> dict:
        return {col: fmt(getattr(self, col)) for col in self.COLUMNS}

    @classmethod
    def from_row(cls, row: dict) -> 'TaxTable':
        return cls(
            id=int(row['id']),
            jurisdiction_id=int(row['jurisdiction_id']),
            tax_type=row.get('tax_type', ''),
            calculation_method=row.get('calculation_method', ''),
            filing_status=parse_optional_str(row.get('filing_status')),
            pay_frequency=parse_optional_str(row.get('pay_frequency')),
            effective_date=parse_optional_date(row.get('effective_date')),
            expiration_date=parse_optional_date(row.get('expiration_date')),
            tax_rate=parse_optional_decimal(row.get('tax_rate')),
            wage_base=parse_optional_decimal(row.get('wage_base')),
            wage_base_period=parse_optional_str(row.get('wage_base_period')) or 'annually',
            fixed_amount=parse_optional_decimal(row.get('fixed_amount')),
            is_active=parse_bool(row.get('is_active'), default=True),
        )


@dataclass
class TaxBracket:
    id: int
    tax_table_id: int
    lower_bound: Decimal
    rate: Decimal
    upper_bound: Optional[Decimal] = None
    fixed_amount: Optional[Decimal] = None

    COLUMNS = ['id', 'tax_table_id', 'lower_bound', 'upper_bound', 'rate', 'fixed_amount']

    def to_row(self) -> dict:
        return {col: fmt(getattr(self, col)) for col in self.COLUMNS}

    @classmethod
    def from_row(cls, row: dict) -> 'TaxBracket':
        return cls(
            id=int(row['id']),
            tax_table_id=int(row['tax_table_id']),
            lower_bound=parse_optional_decimal(row.get('lower_bound')) or Decimal('0'),
            upper_bound=parse_optional_decimal(row.get('upper_bound')),
            rate=parse_optional_decimal(row.get('rate')) or Decimal('0'),
            fixed_amount=parse_optional_decimal(row.get('fixed_amount')),
        )


@dataclass
class TaxElection:
    """An employee's W-4 style election for one jurisdiction and tax type."""
    jurisdiction_id: int
    tax_type: str
    filing_status: Optional[str] = None
    allowances: int = 0
    additional_withholding: Decimal = Decimal('0')
    exemption: bool = False
    exemption_reason: Optional[str] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None


@dataclass
class SpecialTaxSituation:
    situation_type: str
    description: Optional[str] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None


@dataclass
class TaxContext:
    """Everything the calculator needs for one employee and one pay period."""
    employee_id: int
    payroll_run_id: int
    gross_income: Decimal
    pay_period_start: date
    pay_period_end: date
    pay_frequency: str = 'biweekly'
    elections: list[TaxElection] = field(default_factory=list)
    special_situations: list[SpecialTaxSituation] = field(default_factory=list)
    ytd_earnings: Decimal = Decimal('0')

    # (jurisdiction_id, tax_type) -> tax withheld so far this year
    ytd_withholding: dict[tuple[int, str], Decimal] = field(default_factory=dict)

    def active_elections(self) -> list[TaxElection]:
        return [
            e for e in self.elections
            if effective_during(e.effective_date, e.expiration_date,
                                self.pay_period_start, self.pay_period_end)
        ]

    def election_for(self, jurisdiction_id: int, tax_type: str) -> Optional[TaxElection]:
        for election in self.active_elections():
            if election.jurisdiction_id == jurisdiction_id and election.tax_type == tax_type:
                return election
        return None


@dataclass
class TaxCalculation:
    """One computed tax line (row of the calculation ledger)."""
    payroll_run_id: int
    employee_id: int
    jurisdiction_id: int
    tax_table_id: int
    tax_type: str
    gross_income: Decimal
    taxable_income: Decimal
    tax_amount: Decimal
    ytd_earnings: Decimal = Decimal('0')
    ytd_tax_withheld: Decimal = Decimal('0')
    calculation_details: dict = field(default_factory=dict)
    pay_period_end: Optional[date] = None
    calculated_at: Optional[datetime] = None
    id: Optional[int] = None

    COLUMNS = ['id', 'payroll_run_id', 'employee_id', 'jurisdiction_id', 'tax_table_id',
               'tax_type', 'gross_income', 'taxable_income', 'tax_amount', 'ytd_earnings',
               'ytd_tax_withheld', 'calculation_details', 'pay_period_end', 'calculated_at']

    @property
    def method(self) -> Optional[str]:
        return self.calculation_details.get('method')

    def to_row(self) -> dict:
        row = {col: fmt(getattr(self, col)) for col in self.COLUMNS}
        row['calculation_details'] = json.dumps(self.calculation_details, default=str, sort_keys=True)
        return row

    @classmethod
    def from_row(cls, row: dict) -> 'TaxCalculation':
        details = parse_optional_str(row.get('calculation_details'))
        return cls(
            id=parse_optional_int(row.get('id')),
            payroll_run_id=int(row['payroll_run_id']),
            employee_id=int(row['employee_id']),
            jurisdiction_id=int(row['jurisdiction_id']),
            tax_table_id=int(row['tax_table_id']),
            tax_type=row.get('tax_type', ''),
            gross_income=parse_optional_decimal(row.get('gross_income')) or Decimal('0'),
            taxable_income=parse_optional_decimal(row.get('taxable_income')) or Decimal('0'),
            tax_amount=parse_optional_decimal(row.get('tax_amount')) or Decimal('0'),
            ytd_earnings=parse_optional_decimal(row.get('ytd_earnings')) or Decimal('0'),
            ytd_tax_withheld=parse_optional_decimal(row.get('ytd_tax_withheld')) or Decimal('0'),
            calculation_details=json.loads(details) if details else {},
            pay_period_end=parse_optional_date(row.get('pay_period_end')),
            calculated_at=parse_optional_datetime(row.get('calculated_at')),
        )


@dataclass
class TaxUpdateLog:
    id: int
    update_type: str
    source: str
    affected_tables: str
    change_description: Optional[str] = None
    change_details: dict = field(default_factory=dict)
    performed_by: Optional[int] = None
    is_automatic: bool = False
    performed_at: Optional[datetime] = None

    COLUMNS = ['id', 'update_type', 'source', 'affected_tables', 'change_description',
               'change_details', 'performed_by', 'is_automatic', 'performed_at']

    def to_row(self) -> dict:
        row = {col: fmt(getattr(self, col)) for col in self.COLUMNS}
        row['change_details'] = json.dumps(self.change_details, default=str, sort_keys=True)
        return row

    @classmethod
    def from_row(cls, row: dict) -> 'TaxUpdateLog':
        details = parse_optional_str(row.get('change_details'))
        return cls(
            id=int(row['id']),
            update_type=row.get('update_type', ''),
            source=row.get('source', ''),
            affected_tables=row.get('affected_tables', ''),
            change_description=parse_optional_str(row.get('change_description')),
            change_details=json.loads(details) if details else {},
            performed_by=parse_optional_int(row.get('performed_by')),
            is_automatic=parse_bool(row.get('is_automatic')),
            performed_at=parse_optional_datetime(row.get('performed_at')),
        )


@dataclass
class EmployeeTaxRequest:
    """Input for one employee in one payroll run; the work location selects jurisdictions."""
    employee_id: int
    payroll_run_id: int
    gross_income: Decimal
    pay_period_start: date
    pay_period_end: date
    pay_frequency: str = 'biweekly'
    work_state: Optional[str] = None
    work_city: Optional[str] = None
    work_county: Optional[str] = None
    elections: list[TaxElection] = field(default_factory=list)
    special_situations: list[SpecialTaxSituation] = field(default_factory=list)

    # Read from the calculation ledger when not supplied
    ytd_earnings: Optional[Decimal] = None


@dataclass
class EmployeeTaxResult:
    employee_id: int
    payroll_run_id: int
    gross_income: Decimal
    jurisdictions: list[TaxJurisdiction]
    calculations: list[TaxCalculation]

    @property
    def total_tax(self) -> Decimal:
        return sum((c.tax_amount for c in self.calculations), Decimal('0'))

    @property
    def net_pay(self) -> Decimal:
        return self.gross_income - self.total_tax
