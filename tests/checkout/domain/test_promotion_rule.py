"""Tests for the PromotionRule aggregate: creation, activity window, usage and duplication."""

from datetime import UTC, datetime, timedelta

import pytest
from checkout.promotion.events import PromotionActivationChanged, PromotionRedeemed, PromotionRuleCreated
from checkout.promotion.rule import CustomerEligibility, PromotionRule, TargetScope
from protean.exceptions import ValidationError


def _make_rule(**overrides):
    defaults = {"name": "Spring Sale", "value_type": "Percentage", "value": 10.0}
    defaults.update(overrides)
    return PromotionRule.create(**defaults)


class TestPromotionRuleCreation:
    def test_defaults_to_everyone_and_everything(self):
        rule = _make_rule()
        assert rule.customer_eligibility == CustomerEligibility.ALL.value
        assert rule.target_scope == TargetScope.ALL_PRODUCTS.value
        assert rule.usage_count == 0
        assert rule.is_active is True
        assert not rule.is_coded

    def test_raises_created_event(self):
        rule = _make_rule()
        assert len(rule._events) == 1
        assert isinstance(rule._events[0], PromotionRuleCreated)
        assert rule._events[0].promotion_id == str(rule.id)

    def test_code_is_normalized(self):
        rule = _make_rule(code="  spring10 ")
        assert rule.code == "SPRING10"
        assert rule.is_coded

    def test_customer_list_makes_rule_specific(self):
        rule = _make_rule(eligible_customers=["Cust-001", "VIP@example.com"])
        assert rule.customer_eligibility == CustomerEligibility.SPECIFIC.value
        assert rule.customers == {"cust-001", "vip@example.com"}

    def test_product_list_makes_rule_targeted(self):
        rule = _make_rule(target_product_ids=["lst-001", "lst-002"])
        assert rule.target_scope == TargetScope.SPECIFIC_PRODUCTS.value
        assert rule.product_ids == {"lst-001", "lst-002"}

    def test_percentage_above_one_hundred_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _make_rule(value=120.0)
        assert "value" in exc.value.messages

    def test_fixed_amount_above_one_hundred_allowed(self):
        rule = _make_rule(value_type="Fixed", value=150.0, currency="usd")
        assert rule.value == 150.0
        assert rule.currency == "USD"

    def test_unknown_value_type_rejected(self):
        with pytest.raises(ValidationError):
            _make_rule(value_type="Bogus")

    def test_window_must_be_ordered(self):
        start = datetime(2026, 3, 1, tzinfo=UTC)
        with pytest.raises(ValidationError) as exc:
            _make_rule(starts_at=start, ends_at=start - timedelta(days=1))
        assert "ends_at" in exc.value.messages

    def test_merchant_rule_needs_owner(self):
        with pytest.raises(ValidationError) as exc:
            _make_rule(owner_type="Merchant")
        assert "owner_id" in exc.value.messages


class TestPromotionRuleActivity:
    def test_live_rule_has_no_inactive_reason(self):
        assert _make_rule().inactive_reason() is None

    def test_deactivated_rule(self):
        assert _make_rule(is_active=False).inactive_reason() == "This promotion is not active"

    def test_not_started(self):
        now = datetime(2026, 3, 1, tzinfo=UTC)
        rule = _make_rule(starts_at=now + timedelta(days=1))
        assert rule.inactive_reason(now) == "This promotion has not started yet"
        assert not rule.is_within_window(now)

    def test_expired_at_end_instant(self):
        now = datetime(2026, 3, 1, tzinfo=UTC)
        rule = _make_rule(ends_at=now)
        assert rule.inactive_reason(now) == "This promotion has expired"

    def test_naive_window_treated_as_utc(self):
        rule = _make_rule(starts_at=datetime(2026, 3, 1), ends_at=datetime(2026, 4, 1))
        assert rule.is_within_window(datetime(2026, 3, 15, tzinfo=UTC))

    def test_usage_limit_reached(self):
        rule = _make_rule(usage_limit=1)
        rule.redeem("chk-001")
        assert rule.inactive_reason() == "This promotion has reached its usage limit"


class TestPromotionRuleMutations:
    def test_redeem_increments_usage(self):
        rule = _make_rule(usage_limit=3)
        rule.redeem("chk-001")
        assert rule.usage_count == 1
        event = rule._events[-1]
        assert isinstance(event, PromotionRedeemed)
        assert event.checkout_id == "chk-001"
        assert event.usage_count == 1

    def test_redeem_past_limit_rejected(self):
        rule = _make_rule(usage_limit=1)
        rule.redeem("chk-001")
        with pytest.raises(ValidationError):
            rule.redeem("chk-002")
        assert rule.usage_count == 1

    def test_set_active_raises_event_only_on_change(self):
        rule = _make_rule()
        rule.set_active(True)
        assert len(rule._events) == 1

        rule.set_active(False)
        assert rule.is_active is False
        assert isinstance(rule._events[-1], PromotionActivationChanged)

    def test_duplicate_is_inactive_and_codeless(self):
        rule = _make_rule(code="SPRING10", usage_limit=5, target_product_ids=["lst-001"])
        rule.redeem("chk-001")

        copy = rule.duplicate()
        assert copy.id != rule.id
        assert copy.name == "Spring Sale (copy)"
        assert copy.code is None
        assert copy.is_active is False
        assert copy.usage_count == 0
        assert copy.usage_limit == 5
        assert copy.product_ids == {"lst-001"}
