from datetime import date, datetime
from decimal import Decimal

import pytest

from payroll_pricing.engine.tax_models import EmployeeTaxRequest, TaxCalculation, TaxElection
from payroll_pricing.errors import NotFoundError, TaxConfigurationError
from payroll_pricing.services.tax_service import TaxService


def D(value):
    return Decimal(value)


def request(run=1, start=date(2024, 1, 1), end=date(2024, 1, 12), gross='2000.00', **kwargs):
    return EmployeeTaxRequest(
        employee_id=100,
        payroll_run_id=run,
        gross_income=D(gross),
        pay_period_start=start,
        pay_period_end=end,
        **kwargs,
    )


def test_resolve_jurisdictions(tax_service):
    assert [j.code for j in tax_service.resolve_jurisdictions()] == ['US']
    assert [j.code for j in tax_service.resolve_jurisdictions('PA')] == ['US', 'PA']
    assert [j.code for j in tax_service.resolve_jurisdictions('PA', work_county='Philadelphia')] == \
        ['US', 'PA', 'PA-PHL']
    # Philadelphia is under PA, not TX
    assert [j.code for j in tax_service.resolve_jurisdictions('TX', 'Philadelphia')] == ['US', 'TX']
    assert [j.code for j in tax_service.resolve_jurisdictions('ZZ')] == ['US']


def test_missing_federal_jurisdiction(settings):
    service = TaxService(settings)
    with pytest.raises(TaxConfigurationError, match="Federal"):
        service.calculate_employee_taxes(request())


def test_calculate_employee_taxes_totals(tax_service):
    result = tax_service.calculate_employee_taxes(request(work_state='TX'))

    # 124.00 + 29.00 + 249.73, no Texas income tax
    assert result.total_tax == D('402.73')
    assert result.net_pay == D('1597.27')
    assert [j.code for j in result.jurisdictions] == ['US', 'TX']
    assert all(c.id is not None for c in result.calculations)


def test_calculations_are_written_to_ledger(tax_service, settings):
    tax_service.calculate_employee_taxes(request())

    reopened = TaxService(settings)
    rows = [TaxCalculation.from_row(r) for r in reopened.calculations.rows()]
    assert len(rows) == 3
    income = next(c for c in rows if c.tax_type == 'income')
    assert income.calculation_details['method'] == 'progressive'
    assert income.pay_period_end == date(2024, 1, 12)


def test_ytd_comes_from_ledger(tax_service):
    tax_service.calculate_employee_taxes(request(run=1))
    result = tax_service.calculate_employee_taxes(
        request(run=2, start=date(2024, 1, 13), end=date(2024, 1, 26))
    )

    medicare = next(c for c in result.calculations if c.tax_type == 'medicare')
    assert medicare.ytd_earnings == D('2000.00')
    assert medicare.ytd_tax_withheld == D('29.00')


def test_ytd_counts_each_run_once_and_skips_prior_years(tax_service):
    prior_year = TaxCalculation(
        payroll_run_id=50, employee_id=100, jurisdiction_id=1, tax_table_id=2,
        tax_type='medicare', gross_income=D('9000.00'), taxable_income=D('9000.00'),
        tax_amount=D('130.50'), pay_period_end=date(2023, 12, 29), calculated_at=datetime(2023, 12, 29),
    )
    tax_service.calculations.insert(prior_year.to_row())
    tax_service.calculate_employee_taxes(request(run=1))

    # Run 1 wrote three rows for the same 2000.00
    assert tax_service.get_ytd_earnings(100, date(2024, 2, 1)) == D('2000.00')
    assert tax_service.get_ytd_earnings(100, date(2024, 2, 1), exclude_run=1) == D('0')
    assert tax_service.get_ytd_earnings(100, date(2023, 12, 31)) == D('9000.00')


def test_rerunning_a_payroll_run_replaces_its_rows(tax_service):
    tax_service.calculate_employee_taxes(request(run=1))
    result = tax_service.calculate_employee_taxes(request(run=1, gross='1000.00'))

    assert len(tax_service.calculations) == 3
    medicare = next(c for c in result.calculations if c.tax_type == 'medicare')
    assert medicare.ytd_earnings == D('0.00')
    assert medicare.tax_amount == D('14.50')


def test_supplied_ytd_earnings_override_ledger(tax_service):
    result = tax_service.calculate_employee_taxes(request(ytd_earnings=D('168600')))

    social_security = next(c for c in result.calculations if c.tax_type == 'social_security')
    assert social_security.tax_amount == D('0.00')


def test_elections_flow_through(tax_service):
    elections = [TaxElection(jurisdiction_id=1, tax_type='income', exemption=True)]
    result = tax_service.calculate_employee_taxes(request(elections=elections))

    assert result.total_tax == D('153.00')


def test_invalid_request(tax_service):
    with pytest.raises(TaxConfigurationError):
        tax_service.calculate_employee_taxes(request(gross='-1'))
    with pytest.raises(TaxConfigurationError):
        tax_service.calculate_employee_taxes(request(start=date(2024, 2, 1), end=date(2024, 1, 1)))


def test_update_tax_tables(tax_service):
    log = tax_service.update_tax_tables('IRS', {
        'description': '2024 Medicare correction',
        'tax_tables': [{'id': 2, 'tax_rate': '0.02', 'tax_type': 'ignored'}],
    }, performed_by=7)

    assert log.affected_tables == 'tax_tables'
    assert log.is_automatic is False
    assert log.performed_by == 7
    assert len(tax_service.update_log) == 1
    assert log.change_details['tax_tables'] == [{'id': 2, 'tax_rate': '0.02', 'tax_type': 'ignored'}]

    medicare = next(t for t in tax_service.get_tax_tables() if t.id == 2)
    assert medicare.tax_rate == D('0.02')
    assert medicare.tax_type == 'medicare'

    result = tax_service.calculate_employee_taxes(request())
    assert next(c for c in result.calculations if c.tax_type == 'medicare').tax_amount == D('40.00')


def test_update_tax_tables_inserts_rows(tax_service):
    log = tax_service.update_tax_tables('state feed', {
        'jurisdictions': [{'name': 'New York', 'code': 'NY', 'type': 'state', 'parent_jurisdiction_id': 1}],
        'tax_tables': [{'jurisdiction_id': 5, 'tax_type': 'income', 'calculation_method': 'progressive',
                        'effective_date': '2024-01-01'}],
        'tax_brackets': [{'tax_table_id': 8, 'lower_bound': '0', 'rate': '0.04'}],
    })

    assert log.is_automatic is True
    assert log.affected_tables == 'tax_jurisdictions,tax_tables,tax_brackets'

    result = tax_service.calculate_employee_taxes(request(work_state='NY'))
    ny = next(c for c in result.calculations if c.jurisdiction_id == 5)
    assert ny.tax_amount == D('80.00')


@pytest.mark.parametrize("update,error", [
    ({'tax_tables': [{'id': 99, 'tax_rate': '0.1'}]}, NotFoundError),
    ({'tax_tables': [{'jurisdiction_id': 1, 'tax_type': 'income', 'calculation_method': 'lottery'}]},
     TaxConfigurationError),
    ({'tax_tables': [{'jurisdiction_id': 1, 'tax_type': 'poll', 'calculation_method': 'flat_rate'}]},
     TaxConfigurationError),
    ({'jurisdictions': [{'name': 'Dup', 'code': 'US', 'type': 'federal'}]}, TaxConfigurationError),
    ({'tax_brackets': [{'tax_table_id': 3, 'lower_bound': '10', 'upper_bound': '5', 'rate': '0.1'}]},
     TaxConfigurationError),
    ({'tax_brackets': [{'tax_table_id': 3, 'lower_bound': 'ten', 'rate': '0.1'}]}, TaxConfigurationError),
])
def test_update_tax_tables_rejects_bad_rows(tax_service, update, error):
    with pytest.raises(error):
        tax_service.update_tax_tables('manual', update)
    assert len(tax_service.update_log) == 0


MARRIED_FEDERAL_INCOME = {
    'jurisdiction_id': 1, 'tax_type': 'income', 'calculation_method': 'flat_rate',
    'filing_status': 'married_filing_jointly', 'tax_rate': '0.05', 'effective_date': '2024-01-01',
}


def test_one_income_table_per_filing_status(tax_service):
    tax_service.update_tax_tables('IRS', {'tax_tables': [MARRIED_FEDERAL_INCOME]})

    result = tax_service.calculate_employee_taxes(request())
    income = [c for c in result.calculations if c.tax_type == 'income']
    assert [(c.tax_table_id, c.tax_amount) for c in income] == [(3, D('249.73'))]

    married = [TaxElection(jurisdiction_id=1, tax_type='income', filing_status='married_filing_jointly')]
    result = tax_service.calculate_employee_taxes(request(run=2, elections=married))
    income = [c for c in result.calculations if c.tax_type == 'income']
    assert [(c.tax_table_id, c.tax_amount) for c in income] == [(8, D('100.00'))]


def test_failed_update_rolls_back_earlier_items(tax_service, settings):
    update = {'tax_tables': [
        {'id': 2, 'tax_rate': '0.99'},
        {'jurisdiction_id': 1, 'tax_type': 'bogus', 'calculation_method': 'flat_rate'},
    ]}
    with pytest.raises(TaxConfigurationError):
        tax_service.update_tax_tables('manual', update)

    assert next(t for t in tax_service.get_tax_tables() if t.id == 2).tax_rate == D('0.0145')
    reopened = TaxService(settings)
    assert next(t for t in reopened.get_tax_tables() if t.id == 2).tax_rate == D('0.0145')
    assert len(reopened.tax_tables) == 7
    assert len(reopened.update_log) == 0


def test_update_log_keeps_change_details(tax_service, settings):
    tax_service.update_tax_tables('IRS', {'tax_tables': [{'id': 2, 'tax_rate': '0.02'}]}, performed_by=7)
    tax_service.update_tax_tables('IRS', {'tax_tables': [{'id': 2, 'tax_rate': '0.0145'}]})

    logs = TaxService(settings).get_update_logs()
    assert [log.id for log in logs] == [2, 1]
    assert logs[1].change_details == {'tax_tables': [{'id': 2, 'tax_rate': '0.02'}]}
    assert logs[1].performed_by == 7
    assert logs[0].is_automatic is True


def test_tax_data_for_year(tax_service):
    data = tax_service.get_tax_data_for_year(2024)

    assert len(data['tax_tables']) == 7
    assert len(data['tax_brackets']) == 7
    assert {b.tax_table_id for b in data['tax_brackets']} == {3}
    assert tax_service.get_tax_data_for_year(2023)['tax_tables'] == []
    assert tax_service.get_most_recent_tax_year() == 2024


def test_most_recent_tax_year_without_data(settings):
    assert TaxService(settings).get_most_recent_tax_year() is None


def test_clone_tax_year(tax_service, settings):
    log = tax_service.clone_tax_year(2024, 2025, performed_by=1)

    assert log.update_type == 'tax_year_clone'
    assert log.change_details['tax_tables'] == 7
    assert log.change_details['tax_brackets'] == 7
    assert tax_service.get_most_recent_tax_year() == 2025

    # Each year sees exactly one version of every table
    old = tax_service.get_tax_data_for_year(2024)['tax_tables']
    new = tax_service.get_tax_data_for_year(2025)['tax_tables']
    assert [t.id for t in old] == [1, 2, 3, 4, 5, 6, 7]
    assert all(t.expiration_date == date(2024, 12, 31) for t in old)
    assert len(new) == 7 and all(t.effective_date == date(2025, 1, 1) for t in new)

    result = tax_service.calculate_employee_taxes(
        request(start=date(2025, 1, 1), end=date(2025, 1, 10), work_state='TX')
    )
    assert result.total_tax == D('402.73')
    assert all(c.tax_table_id > 7 for c in result.calculations)

    assert len(TaxService(settings).update_log) == 1


def test_clone_tax_year_rejects_bad_years(tax_service):
    with pytest.raises(NotFoundError):
        tax_service.clone_tax_year(2020, 2021)
    with pytest.raises(TaxConfigurationError):
        tax_service.clone_tax_year(2024, 2024)

    tax_service.clone_tax_year(2024, 2025)
    with pytest.raises(TaxConfigurationError, match='already exists'):
        tax_service.clone_tax_year(2024, 2025)
    assert len(tax_service.update_log) == 1


def test_initialize_defaults_refuses_existing(tax_service):
    with pytest.raises(TaxConfigurationError):
        tax_service.initialize_defaults()

    counts = tax_service.initialize_defaults(force=True)
    assert counts['jurisdictions'] == len(tax_service.jurisdictions)
