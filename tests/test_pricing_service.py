from datetime import date
from decimal import Decimal

import pytest

from payroll_pricing.data.defaults import FEATURE_MAPPING, STANDARD_FEATURES, STANDARD_TIERS
from payroll_pricing.errors import NotFoundError, PricingError
from payroll_pricing.services.pricing_service import PricingService


def test_initialize_defaults(pricing_service):
    seeded = pricing_service.initialize_defaults()

    assert [t.tier for t in seeded["tiers"]] == ['starter', 'professional', 'enterprise']
    assert len(seeded["features"]) == len(STANDARD_FEATURES)
    assert seeded["availability_count"] == sum(len(rows) for rows in FEATURE_MAPPING.values())


def test_initialize_defaults_refuses_existing_tiers(seeded_service):
    with pytest.raises(PricingError):
        seeded_service.initialize_defaults()

    seeded = seeded_service.initialize_defaults(force=True)
    assert len(seeded["tiers"]) == len(STANDARD_TIERS)
    # Features are reused by key, not duplicated
    assert len(seeded_service.get_pricing_features()) == len(STANDARD_FEATURES)


def test_tables_persist_to_csv(seeded_service, settings):
    assert settings.tiers_csv.exists()
    reopened = PricingService(settings)

    assert len(reopened.get_standard_pricing_tiers()) == 3
    starter = reopened.get_default_tier()
    assert starter.base_price == Decimal("15.00")
    assert 'direct_deposit' in starter.included_features


def test_tiers_sorted_by_base_price(seeded_service):
    prices = [t.base_price for t in seeded_service.get_standard_pricing_tiers()]
    assert prices == sorted(prices)


def test_create_tier_requires_prices(pricing_service):
    with pytest.raises(PricingError, match="base_price"):
        pricing_service.create_standard_pricing_tier({'tier': 'custom', 'name': 'X', 'per_employee_price': 1})
    with pytest.raises(PricingError, match="per_employee_price"):
        pricing_service.create_standard_pricing_tier({'tier': 'custom', 'name': 'X', 'base_price': 1})


def test_create_tier_validates(pricing_service):
    with pytest.raises(PricingError):
        pricing_service.create_standard_pricing_tier({
            'tier': 'platinum', 'name': 'Bad', 'base_price': 1, 'per_employee_price': 1,
        })
    with pytest.raises(PricingError):
        pricing_service.create_standard_pricing_tier({
            'tier': 'custom', 'name': 'Bad', 'base_price': -5, 'per_employee_price': 1,
        })
    with pytest.raises(PricingError):
        pricing_service.create_standard_pricing_tier({
            'tier': 'custom', 'name': 'Bad', 'base_price': 5, 'per_employee_price': 1,
            'min_employees': 10, 'max_employees': 5,
        })


def test_create_and_update_tier(pricing_service):
    tier = pricing_service.create_standard_pricing_tier({
        'tier': 'custom', 'name': 'Nonprofit', 'base_price': Decimal('10'),
        'per_employee_price': Decimal('2.50'), 'free_contractors': 3,
    })
    assert tier.id == 1
    assert tier.is_active
    assert tier.created_at is not None

    updated = pricing_service.update_standard_pricing_tier(tier.id, {'base_price': Decimal('12'), 'id': 99})
    assert updated.id == tier.id
    assert updated.base_price == Decimal('12')
    assert updated.per_employee_price == Decimal('2.50')


def test_update_missing_tier_returns_none(pricing_service):
    assert pricing_service.update_standard_pricing_tier(404, {'name': 'x'}) is None
    assert pricing_service.delete_standard_pricing_tier(404) is False


def test_delete_tier_is_soft(seeded_service):
    assert seeded_service.delete_standard_pricing_tier(2) is True

    assert seeded_service.get_standard_pricing_tier(2).is_active is False
    assert 2 not in [t.id for t in seeded_service.get_standard_pricing_tiers()]
    assert 2 in [t.id for t in seeded_service.get_standard_pricing_tiers(include_inactive=True)]


def test_set_merchant_pricing_upserts(seeded_service):
    created = seeded_service.set_merchant_pricing(11, {'base_pricing_id': 1, 'special_terms': 'Pilot'})
    updated = seeded_service.set_merchant_pricing(11, {'custom_base_price': '9.99'})

    assert updated.id == created.id
    assert updated.base_pricing_id == 1
    assert updated.custom_base_price == Decimal('9.99')
    assert updated.special_terms == 'Pilot'
    assert updated.billing_cycle == 'monthly'


@pytest.mark.parametrize("data", [
    {'discount_percentage': '150'},
    {'discount_percentage': '-1'},
    {'discount_start_date': date(2025, 6, 1), 'discount_end_date': date(2025, 1, 1)},
    {'base_pricing_id': 99},
    {'billing_cycle': 'weekly'},
    {'custom_per_employee_price': '-2'},
])
def test_invalid_merchant_pricing_rejected(seeded_service, data):
    with pytest.raises(PricingError):
        seeded_service.set_merchant_pricing(11, data)
    assert seeded_service.get_merchant_pricing(11) is None


def test_delete_merchant_pricing(seeded_service):
    assert seeded_service.delete_merchant_pricing(11) is False

    seeded_service.set_merchant_pricing(11, {'base_pricing_id': 1})
    assert seeded_service.delete_merchant_pricing(11) is True
    assert seeded_service.get_merchant_pricing(11).is_active is False



def test_override_on_removed_tier_can_still_change(seeded_service):
    seeded_service.set_merchant_pricing(7, {'base_pricing_id': 1})
    seeded_service.tiers.delete(id=1)

    updated = seeded_service.set_merchant_pricing(7, {'special_terms': 'Legacy'})
    assert updated.base_pricing_id == 1
    with pytest.raises(PricingError, match='Pricing tier 99 not found'):
        seeded_service.set_merchant_pricing(7, {'base_pricing_id': 99})

    assert seeded_service.delete_merchant_pricing(7) is True
    assert seeded_service.get_merchant_pricing(7).is_active is False


@pytest.mark.parametrize("flag", ['0', 'no', 'off'])
def test_default_tier_skips_inactive_spellings(seeded_service, flag):
    seeded_service.tiers.replace(1, {**seeded_service.tiers.get(1), 'is_active': flag})

    assert seeded_service.get_default_tier() is None
    assert seeded_service.get_default_tier('professional').id == 2


def test_create_feature_derives_key(pricing_service):
    feature = pricing_service.create_pricing_feature({'name': 'Garnishment Handling', 'category': 'compliance'})
    assert feature.key == 'garnishment_handling'

    with pytest.raises(PricingError, match="already exists"):
        pricing_service.create_pricing_feature({'name': 'Garnishment handling'})
    with pytest.raises(PricingError):
        pricing_service.create_pricing_feature({'name': '  '})


def test_tier_features_join(seeded_service):
    joined = seeded_service.get_pricing_tier_features(1)

    assert len(joined) == len(FEATURE_MAPPING['starter'])
    by_key = {feature.key: availability for availability, feature in joined}
    assert by_key['direct_deposit'].is_included
    assert by_key['time_tracking'].additional_cost == Decimal('5.00')
    assert not by_key['global_payroll'].purchasable


def test_set_feature_availability(seeded_service):
    feature = seeded_service.get_feature_by_key('global_payroll')
    availability = seeded_service.set_feature_availability(1, feature.id, {'additional_cost': Decimal('12.00')})

    assert availability.purchasable
    again = seeded_service.set_feature_availability(1, feature.id, {'is_limited': True})
    assert again.id == availability.id
    assert again.additional_cost == Decimal('12.00')
    assert again.is_limited


def test_set_feature_availability_unknown_rows(seeded_service):
    with pytest.raises(NotFoundError):
        seeded_service.set_feature_availability(99, 1, {'is_included': True})
    with pytest.raises(NotFoundError):
        seeded_service.set_feature_availability(1, 99, {'is_included': True})
    with pytest.raises(PricingError):
        seeded_service.set_feature_availability(1, 1, {'additional_cost': '-1'})


def test_stats(seeded_service):
    seeded_service.set_merchant_pricing(1, {'discount_percentage': '5'})
    seeded_service.set_merchant_pricing(2, {'discount_percentage': '5', 'discount_end_date': date(2020, 1, 1)})
    stats = seeded_service.get_stats(as_of=date(2025, 1, 1))

    assert stats == {
        'tiers': 3,
        'active_tiers': 3,
        'features': len(STANDARD_FEATURES),
        'merchant_overrides': 2,
        'active_discounts': 1,
    }
