"""Tests for leave policy parsing."""

from datetime import date
from decimal import Decimal

import pytest

from leave_ledger.policy import (
    DEFAULT_LEGAL_INFO_URL,
    HolidayRule,
    LeavePayMethod,
    LeavePayPolicy,
    LeavePolicy,
    find_holiday_for_date,
    to_decimal,
)


class TestToDecimal:
    @pytest.mark.parametrize("value,expected", [(3, Decimal("3")), ("2.5", Decimal("2.5")), (1.5, Decimal("1.5"))])
    def test_numbers(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize("value", [None, True, "", "abc", "nan", [], {}])
    def test_rejects_non_numbers(self, value):
        assert to_decimal(value) is None


class TestLeavePolicy:
    """Test LeavePolicy sanitization."""

    def test_defaults(self):
        policy = LeavePolicy.from_mapping(None)

        assert policy.allow_half_day is False
        assert policy.allow_negative_balance is False
        assert policy.negative_floor == Decimal("0")
        assert policy.holiday_rules == ()

    def test_from_json_string(self):
        policy = LeavePolicy.from_mapping(
            '{"allow_half_day": true, "carryover_enabled": true, "carryover_max_days": "5"}'
        )

        assert policy.allow_half_day is True
        assert policy.carryover_enabled is True
        assert policy.carryover_max_days == Decimal("5")

    def test_invalid_json_falls_back_to_defaults(self, caplog):
        """Malformed JSON is logged and treated as empty."""
        policy = LeavePolicy.from_mapping("{not json")

        assert policy == LeavePolicy()
        assert "Failed to parse leave policy JSON" in caplog.text

    def test_positive_floor_is_negated(self):
        policy = LeavePolicy.from_mapping({"allow_negative_balance": True, "negative_floor_days": 3})

        assert policy.negative_floor == Decimal("-3")

    def test_negative_carryover_cap_clamped(self):
        policy = LeavePolicy(carryover_max_days=Decimal("-4"))

        assert policy.carryover_max_days == Decimal("0")

    def test_holiday_rules_parsed(self):
        """Rules without a usable date are dropped."""
        policy = LeavePolicy.from_mapping(
            {
                "holiday_rules": [
                    {"name": "New Year", "date": "2025-01-01", "type": "system_paid", "recurrence": "yearly"},
                    {"name": "Eve", "start_date": "2025-04-12", "end_date": "2025-04-12", "type": "half_day"},
                    {"name": "Broken"},
                    "junk",
                ]
            }
        )

        assert len(policy.holiday_rules) == 2
        assert policy.holiday_rules[0].id == "rule-0"
        assert policy.holiday_rules[1].half_day is True


class TestHolidayRule:
    """Test holiday matching."""

    def test_absolute_range(self):
        rule = HolidayRule(id="h", start_date=date(2025, 4, 12), end_date=date(2025, 4, 19))

        assert rule.matches(date(2025, 4, 15))
        assert not rule.matches(date(2026, 4, 15))

    def test_yearly_recurrence(self):
        rule = HolidayRule(id="h", start_date=date(2020, 1, 1), end_date=date(2020, 1, 1), recurrence="yearly")

        assert rule.matches(date(2027, 1, 1))
        assert not rule.matches(date(2027, 1, 2))

    def test_leap_day_skipped_in_common_year(self):
        rule = HolidayRule(id="h", start_date=date(2024, 2, 29), end_date=date(2024, 2, 29), recurrence="yearly")

        assert not rule.matches(date(2025, 2, 28))

    def test_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            HolidayRule(id="h", start_date=date(2025, 1, 2), end_date=date(2025, 1, 1))

    def test_find_holiday_for_date(self):
        rule = HolidayRule(id="h", name="Day", start_date=date(2025, 5, 1), end_date=date(2025, 5, 1))
        policy = LeavePolicy(holiday_rules=(rule,))

        assert find_holiday_for_date(policy, date(2025, 5, 1)) is rule
        assert find_holiday_for_date(policy, date(2025, 5, 2)) is None


class TestLeavePayPolicy:
    """Test LeavePayPolicy sanitization."""

    def test_defaults(self):
        policy = LeavePayPolicy.from_mapping({})

        assert policy.default_method == LeavePayMethod.LEGAL
        assert policy.lookback_months == 3
        assert policy.fallback_day_hours == Decimal("8")
        assert policy.legal_info_url == DEFAULT_LEGAL_INFO_URL

    def test_bad_values_are_sanitized(self):
        policy = LeavePayPolicy.from_mapping(
            {
                "default_method": "unknown",
                "lookback_months": -2,
                "fixed_rate_default": -10,
                "legal_info_url": "   ",
            }
        )

        assert policy.default_method == LeavePayMethod.LEGAL
        assert policy.lookback_months == 3
        assert policy.fixed_rate_default is None
        assert policy.legal_info_url == DEFAULT_LEGAL_INFO_URL

    def test_valid_values_kept(self):
        policy = LeavePayPolicy.from_mapping(
            {
                "default_method": "fixed_rate",
                "lookback_months": "6",
                "legal_allow_12m_if_better": True,
                "fixed_rate_default": "320.50",
            }
        )

        assert policy.default_method == LeavePayMethod.FIXED_RATE
        assert policy.lookback_months == 6
        assert policy.legal_allow_12m_if_better is True
        assert policy.fixed_rate_default == Decimal("320.50")

    def test_direct_construction_validates(self):
        with pytest.raises(ValueError):
            LeavePayPolicy(lookback_months=0)
