"""
Tests for reviewflow/schemas/followup_settings.py - settings schema and save-time validation.

Covers:
- defaults (stage delays, channels, timing tables)
- validate_settings(): every ConfigurationError case
- stage accessors
"""
from decimal import Decimal

import pytest

from reviewflow.schemas.followup_settings import (
    ConfigurationError,
    ReviewFollowUpSettings,
    validate_settings,
)


class TestDefaults:
    def test_default_stage_delays(self):
        settings = ReviewFollowUpSettings()
        assert settings.initial_delay_days == 2
        assert settings.stage_delay_days("first_follow_up") == 3
        assert settings.stage_delay_days("second_follow_up") == 5
        assert settings.stage_delay_days("final_follow_up") == 7

    def test_default_enabled_stages(self):
        settings = ReviewFollowUpSettings()
        assert settings.stage_enabled("initial")
        assert settings.stage_enabled("first_follow_up")
        assert settings.stage_enabled("second_follow_up")
        assert not settings.stage_enabled("final_follow_up")

    def test_default_channels(self):
        settings = ReviewFollowUpSettings()
        assert settings.email_enabled is True
        assert settings.sms_enabled is False

    def test_timing_tables(self):
        factors = ReviewFollowUpSettings().timing_factors
        assert len(factors.day_of_week) == 7
        assert len(factors.hour_of_day) == 24
        assert max(factors.hour_of_day) == factors.hour_of_day[19]

    def test_send_hour_minute(self):
        assert ReviewFollowUpSettings(preferred_send_time="09:45").send_hour_minute == (9, 45)

    def test_defaults_validate(self):
        assert validate_settings({}).is_active is True

    def test_json_round_trip_through_validation(self):
        stored = ReviewFollowUpSettings(target_minimum_invoice_amount=Decimal("150")).model_dump(mode="json")
        assert validate_settings(stored).target_minimum_invoice_amount == Decimal("150")


class TestValidation:
    def test_negative_delay_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_settings({"initial_delay_days": -1})
        assert any("initial_delay_days" in p for p in exc.value.problems)

    def test_zero_follow_up_delay_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_settings({"first_follow_up": {"enabled": True, "delay_days": 0}})
        assert any("first_follow_up.delay_days" in p for p in exc.value.problems)

    def test_zero_delay_allowed_on_disabled_stage(self):
        settings = validate_settings({"final_follow_up": {"enabled": False, "delay_days": 0}})
        assert not settings.stage_enabled("final_follow_up")

    @pytest.mark.parametrize("value", ["25:00", "9:00", "10:60", "noon"])
    def test_bad_send_time(self, value):
        with pytest.raises(ConfigurationError):
            validate_settings({"preferred_send_time": value})

    def test_unknown_timezone(self):
        with pytest.raises(ConfigurationError):
            validate_settings({"timezone": "Mars/Olympus_Mons"})

    def test_no_channel_enabled(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_settings({"email_enabled": False, "sms_enabled": False})
        assert "channel" in str(exc.value)

    def test_unbalanced_braces(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_settings({"initial": {
                "subject_template": "Thanks!",
                "message_template": "Hi {{customerName, please review us: {{reviewLink}}",
                "sms_template": "",
            }})
        assert any("unbalanced" in p for p in exc.value.problems)

    def test_unknown_placeholder(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_settings({"initial": {
                "subject_template": "Thanks!",
                "message_template": "Hi {{firstName}}, please review us: {{reviewLink}}",
                "sms_template": "",
            }})
        assert any("firstName" in p for p in exc.value.problems)

    def test_short_message_template(self):
        with pytest.raises(ConfigurationError):
            validate_settings({"initial": {
                "subject_template": "Thanks!",
                "message_template": "Hi",
                "sms_template": "",
            }})

    def test_sms_template_required_when_sms_enabled(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_settings({
                "sms_enabled": True,
                "initial": {
                    "subject_template": "Thanks!",
                    "message_template": "Please review us: {{reviewLink}}",
                    "sms_template": "",
                },
            })
        assert any("initial.sms_template" in p for p in exc.value.problems)

    def test_disabled_stage_templates_not_checked(self):
        settings = validate_settings({"final_follow_up": {
            "enabled": False, "delay_days": 7, "message_template": "{{bad",
        }})
        assert settings.final_follow_up.message_template == "{{bad"

    def test_incentive_details_required(self):
        with pytest.raises(ConfigurationError):
            validate_settings({"enable_incentives": True})
        assert validate_settings({"enable_incentives": True, "incentive_details": "10% off"}).enable_incentives

    def test_preferred_days_out_of_range(self):
        with pytest.raises(ConfigurationError):
            validate_settings({"smart_timing": {"enabled": True, "preferred_days_of_week": [7]}})

    def test_preferred_days_normalized(self):
        settings = validate_settings({"smart_timing": {"preferred_days_of_week": [5, 1, 1, 3]}})
        assert settings.smart_timing.preferred_days_of_week == [1, 3, 5]

    def test_timing_table_size(self):
        with pytest.raises(ConfigurationError):
            validate_settings({"timing_factors": {"day_of_week": [1.0] * 6}})

    def test_negative_minimum_invoice(self):
        with pytest.raises(ConfigurationError):
            validate_settings({"target_minimum_invoice_amount": "-5"})

    def test_all_problems_reported(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_settings({
                "first_follow_up": {"enabled": True, "delay_days": 0},
                "enable_incentives": True,
            })
        assert len(exc.value.problems) >= 2

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)
