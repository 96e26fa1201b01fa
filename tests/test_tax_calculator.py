"""
Tax calculator tests over the seeded 2024 tables (biweekly pay, single filer).
"""
import logging
from datetime import date
from decimal import Decimal

import pytest

from payroll_pricing.engine.tax_calculator import TaxCalculator, pay_period_factor
from payroll_pricing.engine.tax_models import (
    SpecialTaxSituation, TaxBracket, TaxContext, TaxElection, TaxJurisdiction, TaxTable,
)
from payroll_pricing.errors import TaxConfigurationError

START = date(2024, 3, 1)
END = date(2024, 3, 14)

FEDERAL = 1
PENNSYLVANIA = 2


def D(value):
    return Decimal(value)


@pytest.fixture
def calculator(tax_service):
    return tax_service.calculator()


@pytest.fixture
def federal(tax_service):
    return tax_service.resolve_jurisdictions()


@pytest.fixture
def philadelphia(tax_service):
    return tax_service.resolve_jurisdictions('PA', 'Philadelphia')


def context(gross='2000.00', **kwargs):
    return TaxContext(
        employee_id=100,
        payroll_run_id=1,
        gross_income=D(gross),
        pay_period_start=START,
        pay_period_end=END,
        **kwargs,
    )


def by_type(calculations):
    return {c.tax_type: c for c in calculations}


def test_federal_taxes(calculator, federal):
    taxes = by_type(calculator.calculate(context(), federal))

    assert set(taxes) == {'social_security', 'medicare', 'income'}
    assert taxes['social_security'].tax_amount == D('124.00')
    assert taxes['medicare'].tax_amount == D('29.00')
    # 446.15 × 10% + 1367.31 × 12% + 186.54 × 22%
    assert taxes['income'].tax_amount == D('249.73')
    assert len(taxes['income'].calculation_details['brackets']) == 3


def test_income_at_bracket_boundary_stops_in_lower_bracket(calculator, federal):
    taxes = by_type(calculator.calculate(context('446.15'), federal))

    assert taxes['income'].tax_amount == D('44.62')
    assert len(taxes['income'].calculation_details['brackets']) == 1


def test_allowances_reduce_income_tax(calculator, federal):
    elections = [TaxElection(jurisdiction_id=FEDERAL, tax_type='income', filing_status='single', allowances=2)]
    taxes = by_type(calculator.calculate(context(elections=elections), federal))

    # 4300 × 2 / 26 = 330.77 deducted
    assert taxes['income'].taxable_income == D('1669.23')
    assert taxes['income'].tax_amount == D('191.38')
    # Allowances never touch payroll taxes
    assert taxes['social_security'].taxable_income == D('2000.00')


def test_allowances_floor_taxable_income_at_zero(calculator, federal):
    elections = [TaxElection(jurisdiction_id=FEDERAL, tax_type='income', allowances=10)]
    taxes = by_type(calculator.calculate(context('100.00', elections=elections), federal))

    assert taxes['income'].taxable_income == D('0.00')
    assert taxes['income'].tax_amount == D('0.00')


def test_additional_withholding(calculator, federal):
    elections = [TaxElection(jurisdiction_id=FEDERAL, tax_type='income', additional_withholding=D('25'))]
    taxes = by_type(calculator.calculate(context(elections=elections), federal))

    assert taxes['income'].tax_amount == D('274.73')


def test_state_and_local_taxes(calculator, philadelphia):
    calculations = calculator.calculate(context(), philadelphia)
    local = {(c.jurisdiction_id, c.tax_type): c.tax_amount for c in calculations}

    assert len(calculations) == 7
    assert local[(PENNSYLVANIA, 'income')] == D('61.40')
    assert local[(PENNSYLVANIA, 'sui')] == D('1.40')
    assert local[(3, 'local_income')] == D('75.00')
    assert local[(3, 'occupational')] == D('2.00')


def test_wage_base_partially_applied(calculator, philadelphia):
    calculations = calculator.calculate(context(ytd_earnings=D('168000')), philadelphia)
    taxes = {(c.jurisdiction_id, c.tax_type): c for c in calculations}

    social_security = taxes[(FEDERAL, 'social_security')]
    assert social_security.taxable_income == D('600.00')
    assert social_security.tax_amount == D('37.20')
    assert social_security.calculation_details['partial_application'] is True

    # PA SUI wage base of 10,000 is long exhausted
    sui = taxes[(PENNSYLVANIA, 'sui')]
    assert sui.tax_amount == D('0.00')
    assert sui.calculation_details['reason'] == 'YTD earnings exceed wage base'


def test_wage_base_reached(calculator, federal):
    taxes = by_type(calculator.calculate(context(ytd_earnings=D('168600')), federal))

    assert taxes['social_security'].tax_amount == D('0.00')
    assert taxes['social_security'].taxable_income == D('0.00')
    assert taxes['medicare'].tax_amount == D('29.00')


def test_exemption_election(calculator, federal):
    elections = [TaxElection(jurisdiction_id=FEDERAL, tax_type='income', exemption=True,
                             exemption_reason='No liability last year')]
    taxes = by_type(calculator.calculate(context(elections=elections), federal))

    assert taxes['income'].tax_amount == D('0.00')
    assert taxes['income'].method == 'exempt'
    assert taxes['income'].calculation_details['reason'] == 'No liability last year'
    assert taxes['medicare'].tax_amount == D('29.00')


def test_expired_election_is_ignored(calculator, federal):
    elections = [TaxElection(jurisdiction_id=FEDERAL, tax_type='income', exemption=True,
                             expiration_date=date(2024, 1, 31))]
    taxes = by_type(calculator.calculate(context(elections=elections), federal))

    assert taxes['income'].tax_amount == D('249.73')


def test_filing_status_selects_tables(calculator, federal):
    elections = [TaxElection(jurisdiction_id=FEDERAL, tax_type='income',
                             filing_status='married_filing_jointly')]
    taxes = by_type(calculator.calculate(context(elections=elections), federal))

    # Only a single-filer table is seeded
    assert 'income' not in taxes


def test_pay_frequency_selects_tables(calculator, federal):
    taxes = by_type(calculator.calculate(context(pay_frequency='weekly'), federal))

    assert 'income' not in taxes
    assert 'medicare' in taxes


def test_tax_exempt_situation_zeroes_everything(calculator, philadelphia):
    situations = [SpecialTaxSituation(situation_type='tax_exempt', description='Treaty')]
    calculations = calculator.calculate(context(special_situations=situations), philadelphia)

    assert calculations
    for calc in calculations:
        assert calc.tax_amount == D('0.00')
        assert calc.taxable_income == D('0.00')
        assert calc.calculation_details['special_situation']['type'] == 'tax_exempt'


def test_reduced_withholding_halves_tax(calculator, federal):
    situations = [SpecialTaxSituation(situation_type='reduced_withholding')]
    taxes = by_type(calculator.calculate(context(special_situations=situations), federal))

    assert taxes['social_security'].tax_amount == D('62.00')
    assert taxes['medicare'].tax_amount == D('14.50')
    assert taxes['income'].tax_amount == D('124.87')


def test_situation_outside_period_is_ignored(calculator, federal):
    situations = [SpecialTaxSituation(situation_type='tax_exempt', effective_date=date(2024, 6, 1))]
    taxes = by_type(calculator.calculate(context(special_situations=situations), federal))

    assert taxes['medicare'].tax_amount == D('29.00')


def test_unknown_situation_is_logged(calculator, federal, caplog):
    situations = [SpecialTaxSituation(situation_type='clergy_housing')]
    with caplog.at_level(logging.WARNING):
        taxes = by_type(calculator.calculate(context(special_situations=situations), federal))

    assert taxes['medicare'].tax_amount == D('29.00')
    assert "clergy_housing" in caplog.text


def test_ytd_withholding_is_recorded(calculator, federal):
    ytd = {(FEDERAL, 'medicare'): D('58.00')}
    taxes = by_type(calculator.calculate(context(ytd_withholding=ytd), federal))

    assert taxes['medicare'].ytd_tax_withheld == D('58.00')
    assert taxes['income'].ytd_tax_withheld == D('0.00')


def _single_table_calculator(settings, **table_fields):
    table = TaxTable(id=1, jurisdiction_id=1, tax_type='income', **table_fields)
    return TaxCalculator([table], [], settings)


@pytest.mark.parametrize("table_fields", [
    {'calculation_method': 'flat_rate'},
    {'calculation_method': 'progressive'},
    {'calculation_method': 'fixed_amount'},
    {'calculation_method': 'wage_base', 'tax_rate': D('0.01')},
    {'calculation_method': 'lottery'},
])
def test_misconfigured_tables_raise(settings, table_fields):
    calculator = _single_table_calculator(settings, **table_fields)
    jurisdiction = TaxJurisdiction(id=1, name='United States', code='US', type='federal')

    with pytest.raises(TaxConfigurationError):
        calculator.calculate(context(), [jurisdiction])


def test_bracket_fixed_amounts_are_added(settings):
    table = TaxTable(id=1, jurisdiction_id=1, tax_type='income', calculation_method='progressive')
    brackets = [
        TaxBracket(id=2, tax_table_id=1, lower_bound=D('1000'), rate=D('0.20'), fixed_amount=D('5')),
        TaxBracket(id=1, tax_table_id=1, lower_bound=D('0'), upper_bound=D('1000'), rate=D('0.10')),
    ]
    calculator = TaxCalculator([table], brackets, settings)
    jurisdiction = TaxJurisdiction(id=1, name='United States', code='US', type='federal')

    [calc] = calculator.calculate(context('1500.00'), [jurisdiction])

    # 1000 × 10% + 500 × 20% + 5
    assert calc.tax_amount == D('205.00')


def test_pay_period_factor():
    assert pay_period_factor('monthly') == Decimal(1) / Decimal(12)
    assert pay_period_factor('annually') == Decimal(1)
    assert pay_period_factor('fortnightly') == pay_period_factor('biweekly')
    assert pay_period_factor(None) == pay_period_factor('biweekly')


def test_missing_filing_status_uses_default_status_table(settings):
    tables = [
        TaxTable(id=1, jurisdiction_id=1, tax_type='income', calculation_method='flat_rate',
                 filing_status='single', tax_rate=D('0.10')),
        TaxTable(id=2, jurisdiction_id=1, tax_type='income', calculation_method='flat_rate',
                 filing_status='married_filing_jointly', tax_rate=D('0.05')),
    ]
    calculator = TaxCalculator(tables, [], settings)
    jurisdiction = TaxJurisdiction(id=1, name='United States', code='US', type='federal')

    # No election at all, then an election without a status: only the single table applies
    [calc] = calculator.calculate(context(), [jurisdiction])
    assert calc.tax_table_id == 1
    assert calc.tax_amount == D('200.00')

    elections = [TaxElection(jurisdiction_id=1, tax_type='income', allowances=1)]
    [calc] = calculator.calculate(context(elections=elections), [jurisdiction])
    assert calc.tax_table_id == 1

    elections = [TaxElection(jurisdiction_id=1, tax_type='income', filing_status='married_filing_jointly')]
    [calc] = calculator.calculate(context(elections=elections), [jurisdiction])
    assert calc.tax_table_id == 2
    assert calc.tax_amount == D('100.00')
