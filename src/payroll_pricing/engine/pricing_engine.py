"""
Pricing Engine - resolves a merchant's payroll price with traceability.

Resolution order:
1. Active merchant override built on a standard tier (custom fields win)
2. Active merchant override without a tier (fully custom, defaults fill gaps)
3. The active starter tier
4. Hard-coded default rates

Then per-unit rates are extended, requested features are priced from the
tier's feature availability, and a time-windowed merchant discount is applied.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from ..config.settings import Settings, get_settings
from ..errors import PricingError
from .models import EffectiveRates, MerchantPricing, PriceBreakdown, PriceRequest, PricingTier
from .parsing import money

if TYPE_CHECKING:
    from ..services.pricing_service import PricingService

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def _first(*values):
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


class PricingEngine:
    """Core pricing engine over the tables held by a PricingService."""

    def __init__(self, service: 'PricingService', settings: Optional[Settings] = None):
        self.service = service
        self.settings = settings or service.settings or get_settings()

    def resolve_rates(self, merchant_id: int, as_of: Optional[date] = None,
                      result: Optional[PriceBreakdown] = None) -> EffectiveRates:
        """
        Resolve the per-unit rates for a merchant.

        When ``result`` is given, every resolution step is recorded on its trace
        and fallbacks are added to its warnings.
        """
        as_of = as_of or date.today()
        defaults = self.settings.default_rates

        def trace(step, description, value=None):
            if result is not None:
                result.add_trace(step, description, value)

        def warn(message):
            logger.warning("Merchant %s: %s", merchant_id, message)
            if result is not None:
                result.add_warning(message)

        trace("Merchant Lookup", f"Resolving payroll pricing for merchant {merchant_id}")
        override = self.service.get_merchant_pricing(merchant_id)

        if override and override.is_active:
            rates = self._rates_from_override(override, trace, warn)

            if override.discount_active_on(as_of):
                rates.discount_percentage = override.discount_percentage
                trace("Discount", f"Merchant discount active on {as_of.isoformat()}",
                      f"{override.discount_percentage}%")
            elif override.discount_percentage and override.discount_percentage > 0:
                trace("Discount", f"Merchant discount outside its window on {as_of.isoformat()}")
            return rates

        if override:
            trace("Merchant Override", "Merchant pricing is inactive, ignoring it")
        else:
            trace("Merchant Override", "No merchant pricing found")

        tier = self.service.get_default_tier()
        if tier:
            trace("Default Tier", f"Using {tier.tier} tier '{tier.name}'", str(tier.id))
            return EffectiveRates(
                base_price=tier.base_price,
                per_employee_price=tier.per_employee_price,
                per_contractor_price=_first(tier.per_contractor_price, defaults.per_contractor_price),
                free_contractors=tier.free_contractors,
                global_payroll_per_employee_price=_first(
                    tier.global_payroll_per_employee_price, defaults.global_payroll_per_employee_price
                ),
                on_demand_pay_fee=_first(tier.on_demand_pay_fee, defaults.on_demand_pay_fee),
                source="standard_tier",
                tier=tier,
            )

        trace("Fallback", f"No active {self.settings.default_tier} tier, using default rates")
        return self._default_rates("default")

    def _default_rates(self, source: str) -> EffectiveRates:
        defaults = self.settings.default_rates
        return EffectiveRates(
            base_price=defaults.base_price,
            per_employee_price=defaults.per_employee_price,
            per_contractor_price=defaults.per_contractor_price,
            free_contractors=defaults.free_contractors,
            global_payroll_per_employee_price=defaults.global_payroll_per_employee_price,
            on_demand_pay_fee=defaults.on_demand_pay_fee,
            source=source,
        )

    def _rates_from_override(self, override: MerchantPricing, trace, warn) -> EffectiveRates:
        tier: Optional[PricingTier] = None
        if override.base_pricing_id is not None:
            tier = self.service.get_standard_pricing_tier(override.base_pricing_id)
            if tier is None:
                warn(f"Base pricing tier {override.base_pricing_id} not found, using custom pricing")

        if tier:
            trace("Merchant Override", f"Custom pricing on tier '{tier.name}'", str(tier.id))
            return EffectiveRates(
                base_price=_first(override.custom_base_price, tier.base_price),
                per_employee_price=_first(override.custom_per_employee_price, tier.per_employee_price),
                per_contractor_price=_first(override.custom_per_contractor_price,
                                            tier.per_contractor_price, ZERO),
                free_contractors=_first(override.custom_free_contractors, tier.free_contractors, 0),
                global_payroll_per_employee_price=_first(
                    override.custom_global_payroll_per_employee_price,
                    tier.global_payroll_per_employee_price, ZERO,
                ),
                on_demand_pay_fee=_first(override.custom_on_demand_pay_fee, tier.on_demand_pay_fee, ZERO),
                source="merchant_tier",
                tier=tier,
            )

        trace("Merchant Override", "Fully custom merchant pricing")
        rates = self._default_rates("merchant_custom")
        rates.base_price = _first(override.custom_base_price, rates.base_price)
        rates.per_employee_price = _first(override.custom_per_employee_price, rates.per_employee_price)
        rates.per_contractor_price = _first(override.custom_per_contractor_price, rates.per_contractor_price)
        rates.free_contractors = _first(override.custom_free_contractors, rates.free_contractors)
        rates.global_payroll_per_employee_price = _first(
            override.custom_global_payroll_per_employee_price, rates.global_payroll_per_employee_price
        )
        rates.on_demand_pay_fee = _first(override.custom_on_demand_pay_fee, rates.on_demand_pay_fee)
        return rates

    def calculate(self, request: PriceRequest) -> PriceBreakdown:
        """
        Calculate the price for a merchant.

        Args:
            request: PriceRequest with head-counts and requested features

        Returns:
            PriceBreakdown whose total equals the sum of its line items less the discount
        """
        for name in ('employees', 'contractors', 'global_employees', 'on_demand_payments'):
            if getattr(request, name) < 0:
                raise PricingError(f"{name} must not be negative")

        as_of = request.as_of or date.today()
        result = PriceBreakdown(
            merchant_id=request.merchant_id,
            source="",
            tier_id=None,
            tier_name=None,
            base_price=ZERO,
            per_employee_price=ZERO,
            total_employees_cost=ZERO,
            per_contractor_price=ZERO,
            paid_contractors=0,
            total_contractors_cost=ZERO,
            global_payroll_per_employee_price=ZERO,
            global_employees_cost=ZERO,
        )
        rates = self.resolve_rates(request.merchant_id, as_of, result)

        result.source = rates.source
        if rates.tier:
            result.tier_id = rates.tier.id
            result.tier_name = rates.tier.name
            if not rates.tier.covers(request.employees):
                upper = rates.tier.max_employees if rates.tier.max_employees is not None else "unlimited"
                result.add_warning(
                    f"{request.employees} employees is outside the {rates.tier.name} range "
                    f"({rates.tier.min_employees}-{upper})"
                )

        result.base_price = money(rates.base_price)
        result.per_employee_price = rates.per_employee_price
        result.total_employees_cost = money(request.employees * rates.per_employee_price)
        result.add_trace("Employees", f"{request.employees} × ${rates.per_employee_price}",
                         f"${result.total_employees_cost}")

        # First N contractors are free
        result.per_contractor_price = rates.per_contractor_price
        result.paid_contractors = max(0, request.contractors - rates.free_contractors)
        result.total_contractors_cost = money(result.paid_contractors * rates.per_contractor_price)
        result.add_trace(
            "Contractors",
            f"{request.contractors} contractors, {rates.free_contractors} free, "
            f"{result.paid_contractors} × ${rates.per_contractor_price}",
            f"${result.total_contractors_cost}",
        )

        result.global_payroll_per_employee_price = rates.global_payroll_per_employee_price
        result.global_employees_cost = money(
            request.global_employees * rates.global_payroll_per_employee_price
        )
        if request.global_employees:
            result.add_trace("Global Employees",
                             f"{request.global_employees} × ${rates.global_payroll_per_employee_price}",
                             f"${result.global_employees_cost}")

        self._price_features(request, rates, result)

        if request.on_demand_payments:
            fee = money(request.on_demand_payments * rates.on_demand_pay_fee)
            result.additional_costs['on_demand_pay_fees'] = fee
            result.add_trace("On-Demand Pay",
                             f"{request.on_demand_payments} payments × ${rates.on_demand_pay_fee}", f"${fee}")

        result.subtotal = sum(result.line_items().values(), ZERO)
        result.discount_percentage = rates.discount_percentage
        result.discount_amount = money(result.subtotal * rates.discount_percentage / Decimal('100'))
        result.total_price = result.subtotal - result.discount_amount

        result.add_trace("Subtotal", "Sum of line items", f"${result.subtotal}")
        if result.discount_amount:
            result.add_trace("Discount", f"{rates.discount_percentage}% of ${result.subtotal}",
                             f"-${result.discount_amount}")
        result.add_trace("Total", "Subtotal less discount", f"${result.total_price}")

        logger.debug("Priced merchant %s: %s", request.merchant_id, result.total_price)
        return result

    def _price_features(self, request: PriceRequest, rates: EffectiveRates, result: PriceBreakdown):
        """Add the cost of each requested feature from the tier's availability rows."""
        if not request.features:
            return

        if rates.tier is None:
            result.unavailable_features.extend(dict.fromkeys(request.features))
            result.add_warning("Custom pricing has no tier; requested features cannot be priced")
            return

        for key in dict.fromkeys(request.features):
            feature = self.service.get_feature_by_key(key)
            availability = (
                self.service.get_feature_availability(rates.tier.id, feature.id) if feature else None
            )

            if availability is None and key in rates.tier.included_features:
                result.add_trace("Feature", f"{key} included in {rates.tier.name}", "$0.00")
                continue

            if availability is None or not availability.purchasable:
                result.unavailable_features.append(key)
                result.add_warning(f"Feature '{key}' is not available on {rates.tier.name}")
                continue

            if availability.is_included:
                result.add_trace("Feature", f"{key} included in {rates.tier.name}", "$0.00")
                continue

            cost = money(availability.additional_cost)
            result.additional_costs[key] = cost
            result.add_trace("Feature", f"{key} add-on on {rates.tier.name}", f"${cost}")

    def recommend_tier(self, employees: int) -> Optional[PricingTier]:
        """Cheapest active tier whose employee range covers the head-count."""
        if employees < 0:
            raise PricingError("employees must not be negative")
        return self.service.recommend_tier(employees)
