"""
Pricing Service - CRUD operations for tiers, merchant pricing and features.
Handles reading/writing the pricing CSV tables.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from ..config.settings import Settings, get_settings
from ..data.defaults import FEATURE_MAPPING, STANDARD_FEATURES, STANDARD_TIERS
from ..engine.models import (
    BILLING_CYCLES, PRODUCT_TIERS, FeatureAvailability, MerchantPricing,
    PricingFeature, PricingTier,
)
from ..engine.parsing import fmt, slugify
from ..errors import NotFoundError, PricingError
from .csv_store import CsvTable

logger = logging.getLogger(__name__)

# Fields a caller may never set directly
PROTECTED_FIELDS = {'id', 'created_at', 'updated_at'}


@dataclass
class ValidationResult:
    """Result of row validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def fail(self, message: str):
        self.errors.append(message)
        self.valid = False


def _cells(data: dict, columns: list[str]) -> dict:
    """Keep known, caller-settable columns and format them as CSV cells."""
    return {
        key: fmt(value)
        for key, value in data.items()
        if key in columns and key not in PROTECTED_FIELDS
    }


def _check_amounts(result: ValidationResult, obj, names: list[str]):
    for name in names:
        value = getattr(obj, name)
        if value is not None and value < 0:
            result.fail(f"{name} must not be negative")


class PricingService:
    """Service for managing payroll pricing tables."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.tiers = CsvTable(self.settings.tiers_csv, PricingTier.COLUMNS)
        self.merchant_pricing = CsvTable(self.settings.merchant_pricing_csv, MerchantPricing.COLUMNS)
        self.features = CsvTable(self.settings.features_csv, PricingFeature.COLUMNS)
        self.availability = CsvTable(self.settings.feature_availability_csv, FeatureAvailability.COLUMNS)

    def reload_data(self):
        """Reload all tables from disk."""
        for table in (self.tiers, self.merchant_pricing, self.features, self.availability):
            table.reload()

    # ------------------------------------------------------------------
    # Standard pricing tiers
    # ------------------------------------------------------------------

    def get_standard_pricing_tiers(self, include_inactive: bool = False) -> list[PricingTier]:
        """Active tiers ordered by base price."""
        tiers = [PricingTier.from_row(row) for row in self.tiers.rows()]
        if not include_inactive:
            tiers = [t for t in tiers if t.is_active]
        return sorted(tiers, key=lambda t: (t.base_price, t.id))

    def get_standard_pricing_tier(self, tier_id: int) -> Optional[PricingTier]:
        row = self.tiers.get(tier_id)
        return PricingTier.from_row(row) if row else None

    def get_default_tier(self, tier: Optional[str] = None) -> Optional[PricingTier]:
        """First active tier of the given kind (the starter tier by default)."""
        tier = tier or self.settings.default_tier
        tiers = [PricingTier.from_row(row) for row in self.tiers.find(tier=tier)]
        active = sorted((t for t in tiers if t.is_active), key=lambda t: t.id)
        return active[0] if active else None

    def validate_tier(self, tier: PricingTier) -> ValidationResult:
        """Validate a tier before saving."""
        result = ValidationResult(valid=True)

        if not tier.name:
            result.fail("Name is required")
        if tier.tier not in PRODUCT_TIERS:
            result.fail(f"tier must be one of {', '.join(PRODUCT_TIERS)}")

        _check_amounts(result, tier, [
            'base_price', 'per_employee_price', 'per_contractor_price',
            'global_payroll_per_employee_price', 'on_demand_pay_fee',
        ])
        if tier.free_contractors < 0:
            result.fail("free_contractors must not be negative")
        if tier.max_employees is not None and tier.max_employees < tier.min_employees:
            result.fail("max_employees must not be below min_employees")

        # Unknown feature keys are allowed but flagged
        known = {f.key for f in self.get_pricing_features()}
        for key in tier.included_features:
            if known and key not in known:
                result.warnings.append(f"Feature '{key}' is not in the feature list")

        return result

    def _parse_tier(self, row: dict) -> PricingTier:
        try:
            tier = PricingTier.from_row({**row, 'id': row.get('id') or '0'})
        except (ValueError, KeyError) as e:
            raise PricingError(f"Invalid pricing tier data: {e}")
        validation = self.validate_tier(tier)
        if not validation.valid:
            raise PricingError("Invalid pricing tier data: " + "; ".join(validation.errors))
        for warning in validation.warnings:
            logger.warning("Tier %s: %s", tier.name, warning)
        return tier

    def create_standard_pricing_tier(self, data: dict) -> PricingTier:
        """Create a new standard pricing tier."""
        if not data.get('base_price') and data.get('base_price') != 0:
            raise PricingError("Invalid pricing tier data: base_price is required")
        if not data.get('per_employee_price') and data.get('per_employee_price') != 0:
            raise PricingError("Invalid pricing tier data: per_employee_price is required")

        now = datetime.now()
        row = {'is_active': 'true', **_cells(data, PricingTier.COLUMNS),
               'created_at': fmt(now), 'updated_at': fmt(now)}
        self._parse_tier(row)

        created = PricingTier.from_row(self.tiers.insert(row))
        logger.info("Created pricing tier %s (ID: %d)", created.name, created.id)
        return created

    def update_standard_pricing_tier(self, tier_id: int, data: dict) -> Optional[PricingTier]:
        """Update a standard pricing tier; None when it does not exist."""
        existing = self.tiers.get(tier_id)
        if existing is None:
            return None

        row = {**existing, **_cells(data, PricingTier.COLUMNS), 'updated_at': fmt(datetime.now())}
        self._parse_tier(row)
        return PricingTier.from_row(self.tiers.replace(tier_id, row))

    def delete_standard_pricing_tier(self, tier_id: int) -> bool:
        """Mark a tier inactive; False when it does not exist."""
        updated = self.update_standard_pricing_tier(tier_id, {'is_active': False})
        if updated:
            logger.info("Deactivated pricing tier %d", tier_id)
        return updated is not None

    def recommend_tier(self, employees: int) -> Optional[PricingTier]:
        """Cheapest active tier whose employee range covers the head-count."""
        for tier in self.get_standard_pricing_tiers():
            if tier.covers(employees):
                return tier
        return None

    # ------------------------------------------------------------------
    # Merchant pricing
    # ------------------------------------------------------------------

    def get_merchant_pricing(self, merchant_id: int) -> Optional[MerchantPricing]:
        matches = self.merchant_pricing.find(merchant_id=merchant_id)
        return MerchantPricing.from_row(matches[0]) if matches else None

    def validate_merchant_pricing(self, pricing: MerchantPricing, check_base_tier: bool = True) -> ValidationResult:
        """Validate a merchant override before saving; the base tier is checked only when it changes."""
        result = ValidationResult(valid=True)

        _check_amounts(result, pricing, [
            'custom_base_price', 'custom_per_employee_price', 'custom_per_contractor_price',
            'custom_global_payroll_per_employee_price', 'custom_on_demand_pay_fee',
        ])
        if pricing.custom_free_contractors is not None and pricing.custom_free_contractors < 0:
            result.fail("custom_free_contractors must not be negative")

        if pricing.discount_percentage is not None:
            if not Decimal('0') <= pricing.discount_percentage <= Decimal('100'):
                result.fail("discount_percentage must be between 0 and 100")

        if pricing.discount_start_date and pricing.discount_end_date:
            if pricing.discount_start_date > pricing.discount_end_date:
                result.fail("Discount start date must be before end date")

        if pricing.billing_cycle not in BILLING_CYCLES:
            result.fail(f"billing_cycle must be one of {', '.join(BILLING_CYCLES)}")

        if check_base_tier and pricing.base_pricing_id is not None:
            if self.get_standard_pricing_tier(pricing.base_pricing_id) is None:
                result.fail(f"Pricing tier {pricing.base_pricing_id} not found")

        # Warn if the discount window is in the past
        if pricing.discount_end_date and pricing.discount_end_date < date.today():
            result.warnings.append("Discount has expired (end date is in the past)")

        return result

    def set_merchant_pricing(self, merchant_id: int, data: dict) -> MerchantPricing:
        """Create or update merchant-specific pricing."""
        data = {k: v for k, v in data.items() if k != 'merchant_id'}
        now = fmt(datetime.now())
        existing = self.merchant_pricing.find(merchant_id=merchant_id)

        if existing:
            row = {**existing[0], **_cells(data, MerchantPricing.COLUMNS), 'updated_at': now}
        else:
            row = {'is_active': 'true', 'billing_cycle': 'monthly',
                   **_cells(data, MerchantPricing.COLUMNS),
                   'merchant_id': str(merchant_id), 'created_at': now, 'updated_at': now}

        try:
            candidate = MerchantPricing.from_row({**row, 'id': row.get('id') or '0'})
        except (ValueError, KeyError) as e:
            raise PricingError(f"Invalid merchant pricing data: {e}")
        validation = self.validate_merchant_pricing(
            candidate, check_base_tier=not existing or 'base_pricing_id' in data,
        )
        if not validation.valid:
            raise PricingError("Invalid merchant pricing data: " + "; ".join(validation.errors))
        for warning in validation.warnings:
            logger.warning("Merchant %d pricing: %s", merchant_id, warning)

        if existing:
            saved = self.merchant_pricing.replace(int(existing[0]['id']), row)
            logger.info("Updated payroll pricing for merchant %d", merchant_id)
        else:
            saved = self.merchant_pricing.insert(row)
            logger.info("Created payroll pricing for merchant %d", merchant_id)
        return MerchantPricing.from_row(saved)

    def delete_merchant_pricing(self, merchant_id: int) -> bool:
        """Mark merchant pricing inactive; False when the merchant has none."""
        existing = self.merchant_pricing.find(merchant_id=merchant_id)
        if not existing:
            return False
        row = {**existing[0], 'is_active': 'false', 'updated_at': fmt(datetime.now())}
        self.merchant_pricing.replace(int(row['id']), row)
        logger.info("Deactivated payroll pricing for merchant %d", merchant_id)
        return True

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    def get_pricing_features(self) -> list[PricingFeature]:
        """All features ordered by category, then name."""
        features = [PricingFeature.from_row(row) for row in self.features.rows()]
        return sorted(features, key=lambda f: (f.category or '', f.name))

    def get_pricing_feature(self, feature_id: int) -> Optional[PricingFeature]:
        row = self.features.get(feature_id)
        return PricingFeature.from_row(row) if row else None

    def get_feature_by_key(self, key: str) -> Optional[PricingFeature]:
        matches = self.features.find(key=key)
        return PricingFeature.from_row(matches[0]) if matches else None

    def create_pricing_feature(self, data: dict) -> PricingFeature:
        """Create a new pricing feature; the key is derived from the name when absent."""
        name = (data.get('name') or '').strip()
        if not name:
            raise PricingError("Invalid pricing feature data: name is required")

        key = data.get('key') or slugify(name)
        if self.get_feature_by_key(key):
            raise PricingError(f"Feature with key '{key}' already exists")

        now = fmt(datetime.now())
        row = {**_cells(data, PricingFeature.COLUMNS), 'key': key, 'name': name,
               'created_at': now, 'updated_at': now}
        return PricingFeature.from_row(self.features.insert(row))

    # ------------------------------------------------------------------
    # Feature availability
    # ------------------------------------------------------------------

    def get_feature_availability(self, pricing_id: int, feature_id: int) -> Optional[FeatureAvailability]:
        matches = self.availability.find(pricing_id=pricing_id, feature_id=feature_id)
        return FeatureAvailability.from_row(matches[0]) if matches else None

    def get_pricing_tier_features(self, pricing_id: int) -> list[tuple[FeatureAvailability, PricingFeature]]:
        """Availability rows of a tier joined with their feature."""
        features = {f.id: f for f in self.get_pricing_features()}
        joined = []
        for row in self.availability.find(pricing_id=pricing_id):
            availability = FeatureAvailability.from_row(row)
            feature = features.get(availability.feature_id)
            if feature is None:
                logger.warning("Availability %d references missing feature %d",
                               availability.id, availability.feature_id)
                continue
            joined.append((availability, feature))
        return joined

    def set_feature_availability(self, pricing_id: int, feature_id: int, data: dict) -> FeatureAvailability:
        """Create or update a feature's availability on a tier."""
        if self.get_standard_pricing_tier(pricing_id) is None:
            raise NotFoundError(f"Pricing tier {pricing_id} not found")
        if self.get_pricing_feature(feature_id) is None:
            raise NotFoundError(f"Pricing feature {feature_id} not found")

        data = {k: v for k, v in data.items() if k not in ('pricing_id', 'feature_id')}
        now = fmt(datetime.now())
        existing = self.availability.find(pricing_id=pricing_id, feature_id=feature_id)

        if existing:
            row = {**existing[0], **_cells(data, FeatureAvailability.COLUMNS), 'updated_at': now}
        else:
            row = {**_cells(data, FeatureAvailability.COLUMNS),
                   'pricing_id': str(pricing_id), 'feature_id': str(feature_id),
                   'created_at': now, 'updated_at': now}

        try:
            candidate = FeatureAvailability.from_row({**row, 'id': row.get('id') or '0'})
        except (ValueError, KeyError) as e:
            raise PricingError(f"Invalid feature availability data: {e}")
        if candidate.additional_cost is not None and candidate.additional_cost < 0:
            raise PricingError("Invalid feature availability data: additional_cost must not be negative")

        if existing:
            saved = self.availability.replace(int(existing[0]['id']), row)
        else:
            saved = self.availability.insert(row)
        return FeatureAvailability.from_row(saved)

    # ------------------------------------------------------------------
    # Seeding and stats
    # ------------------------------------------------------------------

    def initialize_defaults(self, force: bool = False) -> dict:
        """
        Seed the standard tiers, features and per-tier feature mapping.

        Refuses to run over existing tiers unless ``force`` is set; features that
        already exist (by key) are reused rather than duplicated.
        """
        if len(self.tiers) > 0 and not force:
            raise PricingError(
                f"Found {len(self.tiers)} existing pricing tiers; pass force=True to add defaults anyway"
            )

        tiers = [self.create_standard_pricing_tier(tier) for tier in STANDARD_TIERS]

        features = {}
        for feature in STANDARD_FEATURES:
            existing = self.get_feature_by_key(slugify(feature['name']))
            features[feature['name']] = existing or self.create_pricing_feature(feature)

        availability_count = 0
        for tier in tiers:
            for feature_name, is_included, additional_cost in FEATURE_MAPPING.get(tier.tier, []):
                self.set_feature_availability(tier.id, features[feature_name].id, {
                    'is_included': is_included,
                    'additional_cost': additional_cost,
                })
                availability_count += 1

        logger.info("Initialized %d tiers, %d features, %d availability rows",
                    len(tiers), len(features), availability_count)
        return {
            'tiers': tiers,
            'features': list(features.values()),
            'availability_count': availability_count,
        }

    def get_stats(self, as_of: Optional[date] = None) -> dict:
        """Get statistics about the pricing tables."""
        as_of = as_of or date.today()
        tiers = self.get_standard_pricing_tiers(include_inactive=True)
        overrides = [MerchantPricing.from_row(r) for r in self.merchant_pricing.rows()]
        active_overrides = [o for o in overrides if o.is_active]

        return {
            'tiers': len(tiers),
            'active_tiers': sum(1 for t in tiers if t.is_active),
            'features': len(self.features),
            'merchant_overrides': len(active_overrides),
            'active_discounts': sum(1 for o in active_overrides if o.discount_active_on(as_of)),
        }
