"""
Pricing API - FastAPI router for payroll pricing tiers, features and merchant overrides.
"""
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from ..engine.models import PriceRequest
from .auth import CurrentUser, check_merchant_access, get_current_user, require_admin
from .state import AppState, get_state

router = APIRouter(prefix="/api/payroll/pricing", tags=["payroll-pricing"])


# Pydantic models for API
class TierCreate(BaseModel):
    """Request model for creating a pricing tier."""
    tier: str
    name: str
    description: Optional[str] = None
    base_price: Decimal
    per_employee_price: Decimal
    per_contractor_price: Optional[Decimal] = None
    free_contractors: int = 0
    global_payroll_per_employee_price: Optional[Decimal] = None
    on_demand_pay_fee: Optional[Decimal] = None
    min_employees: int = 1
    max_employees: Optional[int] = None
    is_active: bool = True
    included_features: list[str] = []


class TierUpdate(BaseModel):
    """Request model for updating a pricing tier."""
    tier: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    base_price: Optional[Decimal] = None
    per_employee_price: Optional[Decimal] = None
    per_contractor_price: Optional[Decimal] = None
    free_contractors: Optional[int] = None
    global_payroll_per_employee_price: Optional[Decimal] = None
    on_demand_pay_fee: Optional[Decimal] = None
    min_employees: Optional[int] = None
    max_employees: Optional[int] = None
    is_active: Optional[bool] = None
    included_features: Optional[list[str]] = None


class MerchantPricingUpdate(BaseModel):
    """Request model for creating or updating a merchant's pricing."""
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
    billing_cycle: Optional[str] = None
    next_billing_date: Optional[date] = None
    special_terms: Optional[str] = None
    is_active: Optional[bool] = None


class FeatureCreate(BaseModel):
    key: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    is_standard: bool = False


class FeatureAvailabilityUpdate(BaseModel):
    is_included: Optional[bool] = None
    additional_cost: Optional[Decimal] = None
    is_limited: Optional[bool] = None
    limit_details: Optional[str] = None


class CalculateRequest(BaseModel):
    """Request model for a price calculation; merchant defaults to the caller's."""
    merchant_id: Optional[int] = None
    employees: int = 0
    contractors: int = 0
    global_employees: int = 0
    features: list[str] = []
    on_demand_payments: int = 0
    as_of: Optional[date] = None


# Endpoints

@router.get("/tiers")
async def list_tiers(include_inactive: bool = False,
                     user: CurrentUser = Depends(get_current_user),
                     state: AppState = Depends(get_state)):
    """List standard pricing tiers."""
    return jsonable_encoder(state.pricing_service.get_standard_pricing_tiers(include_inactive))


@router.get("/tiers/{tier_id}")
async def get_tier(tier_id: int,
                   user: CurrentUser = Depends(get_current_user),
                   state: AppState = Depends(get_state)):
    tier = state.pricing_service.get_standard_pricing_tier(tier_id)
    if not tier:
        raise HTTPException(status_code=404, detail="Pricing tier not found")
    return jsonable_encoder(tier)


@router.post("/tiers", status_code=201)
async def create_tier(tier_data: TierCreate,
                      user: CurrentUser = Depends(require_admin),
                      state: AppState = Depends(get_state)):
    """Create a new standard pricing tier."""
    created = state.pricing_service.create_standard_pricing_tier(tier_data.model_dump())
    return jsonable_encoder(created)


@router.put("/tiers/{tier_id}")
async def update_tier(tier_id: int, updates: TierUpdate,
                      user: CurrentUser = Depends(require_admin),
                      state: AppState = Depends(get_state)):
    """Update a tier; only fields present in the body change."""
    updated = state.pricing_service.update_standard_pricing_tier(
        tier_id, updates.model_dump(exclude_unset=True)
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Pricing tier not found")
    return jsonable_encoder(updated)


@router.delete("/tiers/{tier_id}")
async def delete_tier(tier_id: int,
                      user: CurrentUser = Depends(require_admin),
                      state: AppState = Depends(get_state)):
    """Deactivate a tier."""
    if not state.pricing_service.delete_standard_pricing_tier(tier_id):
        raise HTTPException(status_code=404, detail="Pricing tier not found")
    return {"success": True}


@router.get("/tiers/{tier_id}/features")
async def get_tier_features(tier_id: int,
                            user: CurrentUser = Depends(get_current_user),
                            state: AppState = Depends(get_state)):
    """Features configured on a tier, with their availability."""
    if state.pricing_service.get_standard_pricing_tier(tier_id) is None:
        raise HTTPException(status_code=404, detail="Pricing tier not found")
    return [
        {**jsonable_encoder(availability), "feature": jsonable_encoder(feature)}
        for availability, feature in state.pricing_service.get_pricing_tier_features(tier_id)
    ]


@router.put("/tiers/{tier_id}/features/{feature_id}")
async def set_tier_feature(tier_id: int, feature_id: int, data: FeatureAvailabilityUpdate,
                           user: CurrentUser = Depends(require_admin),
                           state: AppState = Depends(get_state)):
    availability = state.pricing_service.set_feature_availability(
        tier_id, feature_id, data.model_dump(exclude_unset=True)
    )
    return jsonable_encoder(availability)


@router.get("/features")
async def list_features(user: CurrentUser = Depends(get_current_user),
                        state: AppState = Depends(get_state)):
    return jsonable_encoder(state.pricing_service.get_pricing_features())


@router.post("/features", status_code=201)
async def create_feature(feature_data: FeatureCreate,
                         user: CurrentUser = Depends(require_admin),
                         state: AppState = Depends(get_state)):
    created = state.pricing_service.create_pricing_feature(feature_data.model_dump(exclude_none=True))
    return jsonable_encoder(created)


@router.get("/merchant/{merchant_id}")
async def get_merchant_pricing(merchant_id: int,
                               user: CurrentUser = Depends(get_current_user),
                               state: AppState = Depends(get_state)):
    check_merchant_access(user, merchant_id)
    pricing = state.pricing_service.get_merchant_pricing(merchant_id)
    if not pricing:
        raise HTTPException(status_code=404, detail="Merchant pricing not found")
    return jsonable_encoder(pricing)


@router.put("/merchant/{merchant_id}")
async def set_merchant_pricing(merchant_id: int, data: MerchantPricingUpdate,
                               user: CurrentUser = Depends(get_current_user),
                               state: AppState = Depends(get_state)):
    """Create or update a merchant's custom pricing."""
    check_merchant_access(user, merchant_id)
    pricing = state.pricing_service.set_merchant_pricing(merchant_id, data.model_dump(exclude_unset=True))
    return jsonable_encoder(pricing)


@router.delete("/merchant/{merchant_id}")
async def delete_merchant_pricing(merchant_id: int,
                                  user: CurrentUser = Depends(require_admin),
                                  state: AppState = Depends(get_state)):
    if not state.pricing_service.delete_merchant_pricing(merchant_id):
        raise HTTPException(status_code=404, detail="Merchant pricing not found")
    return {"success": True}


@router.post("/initialize-defaults")
async def initialize_defaults(force: bool = False,
                              user: CurrentUser = Depends(require_admin),
                              state: AppState = Depends(get_state)):
    """Seed the standard tiers, features and feature mapping."""
    seeded = state.pricing_service.initialize_defaults(force=force)
    return {
        "success": True,
        "message": "Default payroll pricing initialized",
        "tiers": jsonable_encoder(seeded["tiers"]),
        "features": jsonable_encoder(seeded["features"]),
        "availability_count": seeded["availability_count"],
    }


@router.post("/calculate")
async def calculate_price(req: CalculateRequest,
                          user: CurrentUser = Depends(get_current_user),
                          state: AppState = Depends(get_state)):
    """Calculate payroll pricing for a merchant with a full trace."""
    merchant_id = req.merchant_id if req.merchant_id is not None else user.merchant_id
    if merchant_id is None:
        raise HTTPException(status_code=400, detail="Missing merchant_id")
    check_merchant_access(user, merchant_id)

    result = state.engine.calculate(PriceRequest(**{**req.model_dump(), 'merchant_id': merchant_id}))
    return jsonable_encoder(result)


@router.get("/recommend")
async def recommend_tier(employees: int,
                         user: CurrentUser = Depends(get_current_user),
                         state: AppState = Depends(get_state)):
    """Cheapest active tier covering the head-count."""
    tier = state.engine.recommend_tier(employees)
    return {"employees": employees, "tier": jsonable_encoder(tier) if tier else None}


@router.get("/stats")
async def get_stats(user: CurrentUser = Depends(require_admin),
                    state: AppState = Depends(get_state)):
    return state.pricing_service.get_stats()
