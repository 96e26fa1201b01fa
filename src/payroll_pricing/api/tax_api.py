"""
Tax API - FastAPI router for payroll tax calculation and tax table maintenance.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from ..engine.tax_models import EmployeeTaxRequest, SpecialTaxSituation, TaxElection
from .auth import CurrentUser, check_merchant_access, get_current_user, require_admin
from .state import AppState, get_state

router = APIRouter(prefix="/api/payroll/tax", tags=["payroll-tax"])


class ElectionModel(BaseModel):
    jurisdiction_id: int
    tax_type: str
    filing_status: Optional[str] = None
    allowances: int = 0
    additional_withholding: Decimal = Decimal('0')
    exemption: bool = False
    exemption_reason: Optional[str] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None


class SpecialSituationModel(BaseModel):
    situation_type: str
    description: Optional[str] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None


class TaxCalculationRequest(BaseModel):
    """Request model for one employee's taxes in one payroll run."""
    merchant_id: int
    employee_id: int
    payroll_run_id: int
    gross_income: Decimal
    pay_period_start: date
    pay_period_end: date
    pay_frequency: str = "biweekly"
    work_state: Optional[str] = None
    work_city: Optional[str] = None
    work_county: Optional[str] = None
    elections: list[ElectionModel] = []
    special_situations: list[SpecialSituationModel] = []
    ytd_earnings: Optional[Decimal] = None


class TaxTablesUpdate(BaseModel):
    """Request model for a tax table update; rows with an id are updated in place."""
    source: str
    description: Optional[str] = None
    jurisdictions: list[dict[str, Any]] = []
    tax_tables: list[dict[str, Any]] = []
    tax_brackets: list[dict[str, Any]] = []


class TaxYearClone(BaseModel):
    target_year: int


@router.get("/jurisdictions")
async def list_jurisdictions(include_inactive: bool = False,
                             user: CurrentUser = Depends(get_current_user),
                             state: AppState = Depends(get_state)):
    return jsonable_encoder(state.tax_service.get_jurisdictions(include_inactive))


@router.post("/calculate")
async def calculate_taxes(req: TaxCalculationRequest,
                          user: CurrentUser = Depends(get_current_user),
                          state: AppState = Depends(get_state)):
    """Calculate, record and return all taxes for an employee's pay period."""
    check_merchant_access(user, req.merchant_id)

    request = EmployeeTaxRequest(
        **req.model_dump(exclude={'merchant_id', 'elections', 'special_situations'}),
        elections=[TaxElection(**e.model_dump()) for e in req.elections],
        special_situations=[SpecialTaxSituation(**s.model_dump()) for s in req.special_situations],
    )
    result = state.tax_service.calculate_employee_taxes(request)

    return {
        "employee_id": result.employee_id,
        "payroll_run_id": result.payroll_run_id,
        "gross_income": jsonable_encoder(result.gross_income),
        "total_tax": jsonable_encoder(result.total_tax),
        "net_pay": jsonable_encoder(result.net_pay),
        "jurisdictions": jsonable_encoder(result.jurisdictions),
        "calculations": jsonable_encoder(result.calculations),
    }


@router.post("/tables/update")
async def update_tax_tables(update: TaxTablesUpdate,
                            user: CurrentUser = Depends(require_admin),
                            state: AppState = Depends(get_state)):
    """Apply a tax rate update and log it against the calling admin."""
    data = update.model_dump(exclude={'source'})
    log = state.tax_service.update_tax_tables(update.source, data, performed_by=user.id)
    return {"success": True, "log": jsonable_encoder(log)}


@router.get("/updates")
async def list_updates(user: CurrentUser = Depends(require_admin),
                       state: AppState = Depends(get_state)):
    return jsonable_encoder(state.tax_service.get_update_logs())


@router.get("/years/latest")
async def latest_tax_year(user: CurrentUser = Depends(get_current_user),
                          state: AppState = Depends(get_state)):
    return {"year": state.tax_service.get_most_recent_tax_year()}


@router.get("/years/{year}")
async def tax_year(year: int,
                   user: CurrentUser = Depends(get_current_user),
                   state: AppState = Depends(get_state)):
    """Tax tables and brackets in effect during a year."""
    return jsonable_encoder(state.tax_service.get_tax_data_for_year(year))


@router.post("/years/{source_year}/clone")
async def clone_tax_year(source_year: int, req: TaxYearClone,
                         user: CurrentUser = Depends(require_admin),
                         state: AppState = Depends(get_state)):
    """Roll a year's tax tables forward into a new year."""
    log = state.tax_service.clone_tax_year(source_year, req.target_year, performed_by=user.id)
    return {"success": True, "log": jsonable_encoder(log)}
