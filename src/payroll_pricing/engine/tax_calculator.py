"""
Tax Calculator - evaluates jurisdiction tax tables for one employee pay period.

Supported calculation methods:
- flat_rate:            gross × rate
- progressive:          bracket-by-bracket over taxable income (after allowances)
- fixed_amount:         a fixed amount per period
- percentage_with_cap:  gross × rate, up to a year-to-date wage base
- wage_base:            same cap rule, used for Social Security style taxes

Every method adds the employee's additional withholding election. Special tax
situations are applied after all tables have been evaluated.
"""
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..config.settings import Settings, get_settings
from ..errors import TaxConfigurationError
from .parsing import money
from .tax_models import (
    TaxBracket, TaxCalculation, TaxContext, TaxElection, TaxJurisdiction, TaxTable,
    effective_during,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

# Fraction of a year covered by one pay period
PERIOD_FACTORS = {
    'weekly': Decimal(1) / Decimal(52),
    'biweekly': Decimal(1) / Decimal(26),
    'semimonthly': Decimal(1) / Decimal(24),
    'monthly': Decimal(1) / Decimal(12),
    'quarterly': Decimal(1) / Decimal(4),
    'annually': Decimal(1),
}

REDUCED_WITHHOLDING_FACTOR = Decimal('0.5')


def pay_period_factor(pay_frequency: Optional[str]) -> Decimal:
    """Allowance adjustment factor for a pay frequency; unknown values count as biweekly."""
    return PERIOD_FACTORS.get(pay_frequency or '', PERIOD_FACTORS['biweekly'])


class TaxCalculator:
    """Evaluates tax tables and brackets held in memory."""

    def __init__(self, tables: list[TaxTable], brackets: list[TaxBracket],
                 settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.tables = list(tables)
        self.brackets: dict[int, list[TaxBracket]] = defaultdict(list)
        for bracket in brackets:
            self.brackets[bracket.tax_table_id].append(bracket)
        for table_brackets in self.brackets.values():
            table_brackets.sort(key=lambda b: b.lower_bound)

    def filing_status(self, jurisdiction_id: int, tax_type: str, context: TaxContext) -> str:
        """Elected filing status, or the configured default when none was elected."""
        election = context.election_for(jurisdiction_id, tax_type)
        if election and election.filing_status:
            return election.filing_status
        return self.settings.default_filing_status

    def applicable_tables(self, jurisdiction: TaxJurisdiction, context: TaxContext) -> list[TaxTable]:
        """Active tables of a jurisdiction that apply to this pay period and employee."""
        tables = []
        for table in self.tables:
            if table.jurisdiction_id != jurisdiction.id or not table.is_active:
                continue
            if not effective_during(table.effective_date, table.expiration_date,
                                    context.pay_period_start, context.pay_period_end):
                continue
            if table.pay_frequency and table.pay_frequency != context.pay_frequency:
                continue
            if table.filing_status:
                if self.filing_status(jurisdiction.id, table.tax_type, context) != table.filing_status:
                    continue
            tables.append(table)
        return sorted(tables, key=lambda t: t.id)

    def calculate(self, context: TaxContext, jurisdictions: list[TaxJurisdiction]) -> list[TaxCalculation]:
        """Compute every applicable tax for the employee's pay period."""
        calculations = []

        for jurisdiction in jurisdictions:
            for table in self.applicable_tables(jurisdiction, context):
                election = context.election_for(jurisdiction.id, table.tax_type)

                if election and election.exemption:
                    calculations.append(self._exempt(context, table, {
                        'method': 'exempt',
                        'reason': election.exemption_reason or 'Employee exemption',
                    }))
                    continue

                method = table.calculation_method
                if method == 'flat_rate':
                    calc = self._flat_rate(context, table, election)
                elif method == 'progressive':
                    calc = self._progressive(context, table, election)
                elif method == 'fixed_amount':
                    calc = self._fixed_amount(context, table, election)
                elif method in ('percentage_with_cap', 'wage_base'):
                    calc = self._capped(context, table, election)
                else:
                    raise TaxConfigurationError(f"Unsupported tax calculation method: {method}")

                calculations.append(calc)

        self._apply_special_situations(context, calculations)
        return calculations

    def _record(self, context: TaxContext, table: TaxTable, taxable: Decimal,
                tax: Decimal, details: dict) -> TaxCalculation:
        ytd_withheld = context.ytd_withholding.get((table.jurisdiction_id, table.tax_type), ZERO)
        return TaxCalculation(
            payroll_run_id=context.payroll_run_id,
            employee_id=context.employee_id,
            jurisdiction_id=table.jurisdiction_id,
            tax_table_id=table.id,
            tax_type=table.tax_type,
            gross_income=money(context.gross_income),
            taxable_income=money(taxable),
            tax_amount=money(tax),
            ytd_earnings=money(context.ytd_earnings),
            ytd_tax_withheld=money(ytd_withheld),
            calculation_details=details,
            pay_period_end=context.pay_period_end,
            calculated_at=datetime.now(),
        )

    def _exempt(self, context: TaxContext, table: TaxTable, details: dict) -> TaxCalculation:
        return self._record(context, table, ZERO, ZERO, details)

    @staticmethod
    def _additional(election: Optional[TaxElection]) -> Decimal:
        if election and election.additional_withholding:
            return election.additional_withholding
        return ZERO

    def _flat_rate(self, context, table, election) -> TaxCalculation:
        if table.tax_rate is None:
            raise TaxConfigurationError(f"Tax rate not defined for tax table ID {table.id}")

        additional = self._additional(election)
        tax = context.gross_income * table.tax_rate + additional
        return self._record(context, table, context.gross_income, tax, {
            'method': 'flat_rate',
            'rate': str(table.tax_rate),
            'additional_withholding': str(additional),
        })

    def _progressive(self, context, table, election) -> TaxCalculation:
        brackets = self.brackets.get(table.id)
        if not brackets:
            raise TaxConfigurationError(f"No tax brackets found for tax table ID {table.id}")

        taxable = context.gross_income
        allowances = election.allowances if election else 0
        allowance_deduction = ZERO

        # Allowances only reduce income tax, never below zero
        if allowances and table.tax_type == 'income':
            factor = pay_period_factor(table.pay_frequency or context.pay_frequency)
            allowance_deduction = self.settings.annual_allowance_amount * allowances * factor
            taxable = max(ZERO, taxable - allowance_deduction)

        tax = ZERO
        applied = []
        for bracket in brackets:
            if taxable < bracket.lower_bound:
                continue

            top = bracket.upper_bound
            within = top is None or taxable <= top
            amount = ((taxable if within else top) - bracket.lower_bound) * bracket.rate
            if bracket.fixed_amount:
                amount += bracket.fixed_amount

            applied.append({
                'bracket_id': bracket.id,
                'lower_bound': str(bracket.lower_bound),
                'upper_bound': str(top) if top is not None else 'unlimited',
                'rate': str(bracket.rate),
                'amount': str(money(amount)),
            })
            tax += amount
            if within:
                break

        additional = self._additional(election)
        tax += additional
        return self._record(context, table, taxable, tax, {
            'method': 'progressive',
            'brackets': applied,
            'filing_status': table.filing_status,
            'allowances': allowances,
            'allowance_deduction': str(money(allowance_deduction)),
            'additional_withholding': str(additional),
        })

    def _fixed_amount(self, context, table, election) -> TaxCalculation:
        if table.fixed_amount is None:
            raise TaxConfigurationError(f"Fixed amount not defined for tax table ID {table.id}")

        additional = self._additional(election)
        return self._record(context, table, context.gross_income, table.fixed_amount + additional, {
            'method': 'fixed_amount',
            'fixed_amount': str(table.fixed_amount),
            'additional_withholding': str(additional),
        })

    def _capped(self, context, table, election) -> TaxCalculation:
        """Tax up to the wage base left for the year (percentage_with_cap and wage_base)."""
        if table.tax_rate is None or table.wage_base is None:
            raise TaxConfigurationError(f"Tax rate or wage base not defined for tax table ID {table.id}")

        ytd = context.ytd_earnings
        if ytd >= table.wage_base:
            return self._exempt(context, table, {
                'method': table.calculation_method,
                'rate': str(table.tax_rate),
                'wage_base': str(table.wage_base),
                'ytd_earnings': str(ytd),
                'reason': 'YTD earnings exceed wage base',
            })

        remaining = max(ZERO, table.wage_base - ytd)
        effective = min(context.gross_income, remaining)
        additional = self._additional(election)
        tax = effective * table.tax_rate + additional

        details = {
            'method': table.calculation_method,
            'rate': str(table.tax_rate),
            'wage_base': str(table.wage_base),
            'remaining_before_cap': str(remaining),
            'additional_withholding': str(additional),
            'partial_application': effective != context.gross_income,
        }
        if table.calculation_method == 'wage_base':
            details['wage_base_period'] = table.wage_base_period
        return self._record(context, table, effective, tax, details)

    def _apply_special_situations(self, context: TaxContext, calculations: list[TaxCalculation]):
        situations = [
            s for s in context.special_situations
            if effective_during(s.effective_date, s.expiration_date,
                                context.pay_period_start, context.pay_period_end)
        ]

        for situation in situations:
            marker = {'type': situation.situation_type, 'description': situation.description}

            if situation.situation_type == 'tax_exempt':
                for calc in calculations:
                    calc.taxable_income = money(ZERO)
                    calc.tax_amount = money(ZERO)
                    calc.calculation_details = {**calc.calculation_details, 'special_situation': marker}

            elif situation.situation_type == 'reduced_withholding':
                for calc in calculations:
                    if calc.tax_amount:
                        calc.tax_amount = money(calc.tax_amount * REDUCED_WITHHOLDING_FACTOR)
                        calc.calculation_details = {
                            **calc.calculation_details,
                            'special_situation': {**marker, 'reduction_factor': str(REDUCED_WITHHOLDING_FACTOR)},
                        }

            else:
                logger.warning("Unhandled special tax situation: %s", situation.situation_type)
