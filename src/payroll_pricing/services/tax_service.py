"""
Tax Service - jurisdiction lookup, year-to-date ledger and tax table updates.
Wraps the TaxCalculator with the tax CSV tables.
"""
import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from ..config.settings import Settings, get_settings
from ..data.defaults import TAX_BRACKETS, TAX_JURISDICTIONS, TAX_TABLES
from ..engine.parsing import fmt
from ..engine.tax_calculator import TaxCalculator
from ..engine.tax_models import (
    CALCULATION_METHODS, JURISDICTION_TYPES, TAX_TYPES,
    EmployeeTaxRequest, EmployeeTaxResult, TaxBracket, TaxCalculation, TaxContext,
    TaxJurisdiction, TaxTable, TaxUpdateLog, effective_during,
)
from ..errors import NotFoundError, TaxConfigurationError
from .csv_store import CsvTable

logger = logging.getLogger(__name__)

FEDERAL_CODE = 'US'

# Columns an update may change on an existing row
UPDATABLE = {
    'jurisdictions': ['name', 'code', 'is_active', 'expiration_date'],
    'tax_tables': ['tax_rate', 'wage_base', 'fixed_amount', 'is_active', 'expiration_date'],
    'tax_brackets': ['lower_bound', 'upper_bound', 'rate', 'fixed_amount'],
}

# Log label for each updatable table
TABLE_NAMES = {
    'jurisdictions': 'tax_jurisdictions',
    'tax_tables': 'tax_tables',
    'tax_brackets': 'tax_brackets',
}


class TaxService:
    """Service for payroll tax calculation over the tax tables."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.jurisdictions = CsvTable(self.settings.jurisdictions_csv, TaxJurisdiction.COLUMNS)
        self.tax_tables = CsvTable(self.settings.tax_tables_csv, TaxTable.COLUMNS)
        self.tax_brackets = CsvTable(self.settings.tax_brackets_csv, TaxBracket.COLUMNS)
        self.calculations = CsvTable(self.settings.tax_calculations_csv, TaxCalculation.COLUMNS)
        self.update_log = CsvTable(self.settings.tax_update_log_csv, TaxUpdateLog.COLUMNS)

    def reload_data(self):
        """Reload all tables from disk."""
        for table in (self.jurisdictions, self.tax_tables, self.tax_brackets,
                      self.calculations, self.update_log):
            table.reload()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_jurisdictions(self, include_inactive: bool = False) -> list[TaxJurisdiction]:
        jurisdictions = [TaxJurisdiction.from_row(row) for row in self.jurisdictions.rows()]
        if not include_inactive:
            jurisdictions = [j for j in jurisdictions if j.is_active]
        return sorted(jurisdictions, key=lambda j: j.id)

    def get_tax_tables(self) -> list[TaxTable]:
        return [TaxTable.from_row(row) for row in self.tax_tables.rows()]

    def get_tax_brackets(self, tax_table_id: Optional[int] = None) -> list[TaxBracket]:
        rows = self.tax_brackets.find(tax_table_id=tax_table_id) if tax_table_id else self.tax_brackets.rows()
        return [TaxBracket.from_row(row) for row in rows]

    def resolve_jurisdictions(self, work_state: Optional[str] = None, work_city: Optional[str] = None,
                              work_county: Optional[str] = None) -> list[TaxJurisdiction]:
        """
        Jurisdictions that tax an employee working at the given location.

        Federal is always included. The state is matched by code; local
        jurisdictions are children of the state whose name is the work city
        or county.
        """
        active = self.get_jurisdictions()

        federal = next((j for j in active if j.type == 'federal' and j.code == FEDERAL_CODE), None)
        if federal is None:
            raise TaxConfigurationError("Federal tax jurisdiction not found")
        result = [federal]

        if not work_state:
            return result

        state = next((j for j in active if j.type == 'state' and j.code == work_state), None)
        if state is None:
            logger.warning("No active tax jurisdiction for work state %s", work_state)
            return result
        result.append(state)

        names = {n for n in (work_city, work_county) if n}
        if names:
            result.extend(j for j in active if j.parent_jurisdiction_id == state.id and j.name in names)
        return result

    # ------------------------------------------------------------------
    # Year-to-date ledger
    # ------------------------------------------------------------------

    def _ledger_for_year(self, employee_id: int, as_of: date,
                         exclude_run: Optional[int] = None) -> list[TaxCalculation]:
        """Ledger rows for the employee from January 1st up to ``as_of``."""
        start = date(as_of.year, 1, 1)
        rows = [TaxCalculation.from_row(row) for row in self.calculations.find(employee_id=employee_id)]
        return [
            c for c in rows
            if c.pay_period_end and start <= c.pay_period_end <= as_of
            and c.payroll_run_id != exclude_run
        ]

    def get_ytd_earnings(self, employee_id: int, as_of: date,
                         exclude_run: Optional[int] = None) -> Decimal:
        """Gross income earned this calendar year, counted once per payroll run."""
        gross_by_run = {}
        for calc in self._ledger_for_year(employee_id, as_of, exclude_run):
            gross_by_run.setdefault(calc.payroll_run_id, calc.gross_income)
        return sum(gross_by_run.values(), Decimal('0'))

    def get_ytd_withholding(self, employee_id: int, as_of: date,
                            exclude_run: Optional[int] = None) -> dict[tuple[int, str], Decimal]:
        """Tax withheld this calendar year per (jurisdiction_id, tax_type)."""
        totals = defaultdict(lambda: Decimal('0'))
        for calc in self._ledger_for_year(employee_id, as_of, exclude_run):
            totals[(calc.jurisdiction_id, calc.tax_type)] += calc.tax_amount
        return dict(totals)

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculator(self) -> TaxCalculator:
        return TaxCalculator(self.get_tax_tables(), self.get_tax_brackets(), self.settings)

    def calculate_employee_taxes(self, request: EmployeeTaxRequest) -> EmployeeTaxResult:
        """
        Calculate and record all payroll taxes for one employee in one run.

        Re-running the same payroll run replaces its earlier ledger rows.
        """
        if request.gross_income < 0:
            raise TaxConfigurationError("gross_income must not be negative")
        if request.pay_period_start > request.pay_period_end:
            raise TaxConfigurationError("pay_period_start must not be after pay_period_end")

        jurisdictions = self.resolve_jurisdictions(request.work_state, request.work_city, request.work_county)

        ytd_earnings = request.ytd_earnings
        if ytd_earnings is None:
            ytd_earnings = self.get_ytd_earnings(request.employee_id, request.pay_period_end,
                                                 exclude_run=request.payroll_run_id)

        context = TaxContext(
            employee_id=request.employee_id,
            payroll_run_id=request.payroll_run_id,
            gross_income=request.gross_income,
            pay_period_start=request.pay_period_start,
            pay_period_end=request.pay_period_end,
            pay_frequency=request.pay_frequency,
            elections=request.elections,
            special_situations=request.special_situations,
            ytd_earnings=ytd_earnings,
            ytd_withholding=self.get_ytd_withholding(request.employee_id, request.pay_period_end,
                                                     exclude_run=request.payroll_run_id),
        )
        calculations = self.calculator().calculate(context, jurisdictions)

        replaced = self.calculations.delete(employee_id=request.employee_id,
                                            payroll_run_id=request.payroll_run_id)
        if replaced:
            logger.info("Replaced %d ledger rows for employee %d in run %d",
                        replaced, request.employee_id, request.payroll_run_id)
        for calc in calculations:
            saved = self.calculations.insert(calc.to_row())
            calc.id = int(saved['id'])

        result = EmployeeTaxResult(
            employee_id=request.employee_id,
            payroll_run_id=request.payroll_run_id,
            gross_income=request.gross_income,
            jurisdictions=jurisdictions,
            calculations=calculations,
        )
        logger.info("Employee %d run %d: %d taxes, total %s",
                    request.employee_id, request.payroll_run_id, len(calculations), result.total_tax)
        return result

    # ------------------------------------------------------------------
    # Table maintenance
    # ------------------------------------------------------------------

    def _upsert(self, key: str, table: CsvTable, model, item: dict):
        item = {k: v for k, v in item.items() if k not in ('created_at', 'updated_at')}
        row_id = item.get('id')

        if row_id:
            existing = table.get(int(row_id))
            if existing is None:
                raise NotFoundError(f"{TABLE_NAMES[key]} row {row_id} not found")
            row = {**existing, **{k: fmt(item[k]) for k in UPDATABLE[key] if k in item}}
        else:
            row = {'is_active': 'true', 'effective_date': fmt(date.today()),
                   **{k: fmt(v) for k, v in item.items() if k in model.COLUMNS and k != 'id'}}
            if key == 'tax_tables':
                row.setdefault('wage_base_period', 'annually')

        try:
            parsed = model.from_row({**row, 'id': row.get('id') or '0'})
        except (ValueError, KeyError, ArithmeticError) as e:
            raise TaxConfigurationError(f"Invalid {TABLE_NAMES[key]} data: {e}")
        self._validate(key, parsed)

        if row_id:
            table.replace(int(row_id), row)
        else:
            table.insert(row)

    def _validate(self, key: str, parsed):
        if key == 'jurisdictions':
            if not parsed.name or not parsed.code:
                raise TaxConfigurationError("Jurisdiction name and code are required")
            if parsed.type not in JURISDICTION_TYPES:
                raise TaxConfigurationError(f"Jurisdiction type must be one of {', '.join(JURISDICTION_TYPES)}")
            duplicate = [r for r in self.jurisdictions.find(code=parsed.code) if int(r['id']) != parsed.id]
            if duplicate:
                raise TaxConfigurationError(f"Jurisdiction code '{parsed.code}' already exists")
        elif key == 'tax_tables':
            if parsed.tax_type not in TAX_TYPES:
                raise TaxConfigurationError(f"Unknown tax type: {parsed.tax_type}")
            if parsed.calculation_method not in CALCULATION_METHODS:
                raise TaxConfigurationError(f"Unsupported tax calculation method: {parsed.calculation_method}")
            if self.jurisdictions.get(parsed.jurisdiction_id) is None:
                raise NotFoundError(f"Jurisdiction {parsed.jurisdiction_id} not found")
        elif key == 'tax_brackets':
            if self.tax_tables.get(parsed.tax_table_id) is None:
                raise NotFoundError(f"Tax table {parsed.tax_table_id} not found")
            if parsed.upper_bound is not None and parsed.upper_bound < parsed.lower_bound:
                raise TaxConfigurationError("Bracket upper_bound must not be below lower_bound")

    def update_tax_tables(self, source: str, update: dict,
                          performed_by: Optional[int] = None) -> TaxUpdateLog:
        """
        Apply jurisdiction, tax table and bracket changes and log the update.

        Items with an ``id`` update that row (only rate-style fields change);
        items without one are inserted. Each section is applied in order, so
        a new table may be followed by brackets that reference it. Any failing
        item rolls the whole update back.
        """
        affected = []
        sections = [
            ('jurisdictions', self.jurisdictions, TaxJurisdiction),
            ('tax_tables', self.tax_tables, TaxTable),
            ('tax_brackets', self.tax_brackets, TaxBracket),
        ]
        with self._all_or_nothing(self.jurisdictions, self.tax_tables, self.tax_brackets, self.update_log):
            for key, table, model in sections:
                items = update.get(key)
                if not items:
                    continue
                for item in items:
                    self._upsert(key, table, model, item)
                affected.append(TABLE_NAMES[key])

            log = self._log('tax_table_update', source, affected,
                            update.get('description') or 'Tax tables update', update, performed_by)

        logger.info("Tax tables updated from %s: %s", source, log.affected_tables or 'no changes')
        return log

    @contextmanager
    def _all_or_nothing(self, *tables: CsvTable):
        """Restore every table to its prior contents when the block raises."""
        snapshots = [(table, table.snapshot()) for table in tables]
        try:
            yield
        except Exception:
            for table, df in snapshots:
                table.restore(df)
            raise

    def _log(self, update_type: str, source: str, affected: list[str], description: str,
             details: dict, performed_by: Optional[int]) -> TaxUpdateLog:
        log = TaxUpdateLog(
            id=self.update_log.next_id(),
            update_type=update_type,
            source=source,
            affected_tables=','.join(affected),
            change_description=description,
            change_details=details,
            performed_by=performed_by,
            is_automatic=performed_by is None,
            performed_at=datetime.now(),
        )
        self.update_log.insert(log.to_row())
        return log

    def get_update_logs(self) -> list[TaxUpdateLog]:
        """Audit trail of tax data changes, newest first."""
        logs = [TaxUpdateLog.from_row(row) for row in self.update_log.rows()]
        return sorted(logs, key=lambda log: log.id, reverse=True)

    # ------------------------------------------------------------------
    # Tax years
    # ------------------------------------------------------------------

    def get_tax_data_for_year(self, year: int) -> dict:
        """Tax tables in effect at any point of ``year`` and their brackets."""
        start, end = date(year, 1, 1), date(year, 12, 31)
        tables = [
            t for t in self.get_tax_tables()
            if effective_during(t.effective_date, t.expiration_date, start, end)
        ]
        table_ids = {t.id for t in tables}
        brackets = [b for b in self.get_tax_brackets() if b.tax_table_id in table_ids]
        return {
            'year': year,
            'tax_tables': sorted(tables, key=lambda t: (t.jurisdiction_id, t.id)),
            'tax_brackets': sorted(brackets, key=lambda b: (b.tax_table_id, b.lower_bound)),
        }

    def get_most_recent_tax_year(self) -> Optional[int]:
        """Latest year any tax table takes effect, or None without tax data."""
        years = [t.effective_date.year for t in self.get_tax_tables() if t.effective_date]
        return max(years) if years else None

    def clone_tax_year(self, source_year: int, target_year: int,
                       performed_by: Optional[int] = None) -> TaxUpdateLog:
        """
        Copy the active tables of ``source_year`` and their brackets into ``target_year``.

        Copies take effect on January 1st of the target year and stay open
        ended. Source tables still open at that point expire the day before,
        so only one version of each table applies to any pay period.
        """
        if target_year <= source_year:
            raise TaxConfigurationError("Target year must be after the source year")

        data = self.get_tax_data_for_year(source_year)
        source_tables = [t for t in data['tax_tables'] if t.is_active]
        if not source_tables:
            raise NotFoundError(f"No tax data found for source year: {source_year}")

        existing = [t for t in self.get_tax_tables()
                    if t.is_active and t.effective_date and t.effective_date.year >= target_year]
        if existing:
            raise TaxConfigurationError(f"Tax data already exists for {target_year}")

        starts = date(target_year, 1, 1)
        closes = starts - timedelta(days=1)
        brackets = defaultdict(list)
        for bracket in data['tax_brackets']:
            brackets[bracket.tax_table_id].append(bracket)

        copied_brackets = 0
        with self._all_or_nothing(self.tax_tables, self.tax_brackets, self.update_log):
            for table in source_tables:
                copy = self.tax_tables.insert({
                    **table.to_row(), 'id': '', 'effective_date': fmt(starts), 'expiration_date': '',
                })
                for bracket in brackets[table.id]:
                    self.tax_brackets.insert({**bracket.to_row(), 'id': '', 'tax_table_id': copy['id']})
                    copied_brackets += 1

                if table.expiration_date is None or table.expiration_date > closes:
                    self.tax_tables.replace(table.id, {**table.to_row(), 'expiration_date': fmt(closes)})

            log = self._log(
                'tax_year_clone', str(source_year), ['tax_tables', 'tax_brackets'],
                f"Cloned tax year {source_year} to {target_year}",
                {'source_year': source_year, 'target_year': target_year,
                 'tax_tables': len(source_tables), 'tax_brackets': copied_brackets},
                performed_by,
            )

        logger.info("Cloned %d tax tables and %d brackets from %d to %d",
                    len(source_tables), copied_brackets, source_year, target_year)
        return log

    def initialize_defaults(self, force: bool = False) -> dict:
        """Seed the default jurisdictions, tables and brackets."""
        if len(self.jurisdictions) > 0 and not force:
            raise TaxConfigurationError(
                f"Found {len(self.jurisdictions)} existing jurisdictions; pass force=True to reseed"
            )
        if force:
            for table in (self.jurisdictions, self.tax_tables, self.tax_brackets):
                table.delete()

        for row in TAX_JURISDICTIONS:
            self.jurisdictions.insert(TaxJurisdiction.from_row({k: fmt(v) for k, v in row.items()}).to_row())
        for row in TAX_TABLES:
            self.tax_tables.insert(TaxTable.from_row({k: fmt(v) for k, v in row.items()}).to_row())
        for row in TAX_BRACKETS:
            self.tax_brackets.insert(TaxBracket.from_row({k: fmt(v) for k, v in row.items()}).to_row())

        logger.info("Seeded %d jurisdictions, %d tax tables, %d brackets",
                    len(TAX_JURISDICTIONS), len(TAX_TABLES), len(TAX_BRACKETS))
        return {
            'jurisdictions': len(TAX_JURISDICTIONS),
            'tax_tables': len(TAX_TABLES),
            'tax_brackets': len(TAX_BRACKETS),
        }
