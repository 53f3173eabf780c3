"""
Tests for rule, log and settings models
"""
import pytest

from models import (
    DEFAULT_APP_SETTINGS,
    DeliveryResult,
    Destination,
    LogEntry,
    Message,
    MessageType,
    PayloadFormat,
    Rule,
    TriggerKind,
)


def _destination(url: str = "https://hooks.example.com/in") -> Destination:
    return Destination(url=url, label="Hook")


class TestRule:
    """Rule invariants and store layout"""

    def test_create_content_change_rule(self):
        rule = Rule.create(
            name="  Price  ",
            trigger="dom_change",
            url_pattern="https://shop.example.com/*",
            destination=_destination(),
            selector="#price",
        )

        assert rule.id
        assert rule.name == "Price"
        assert rule.trigger is TriggerKind.DOM_CHANGE
        assert rule.enabled is True
        assert rule.created_at == rule.updated_at

    @pytest.mark.parametrize("trigger", [TriggerKind.DOM_CHANGE, TriggerKind.CLICK, TriggerKind.FORM_SUBMIT])
    def test_element_triggers_require_selector(self, trigger):
        with pytest.raises(ValueError, match="selector"):
            Rule.create("Rule", trigger, "https://a.example/*", _destination())

    @pytest.mark.parametrize("trigger", [TriggerKind.PAGE_VISIT, TriggerKind.PERIODIC_CHECK])
    def test_non_element_triggers_reject_selector(self, trigger):
        with pytest.raises(ValueError):
            Rule.create(
                "Rule", trigger, "https://a.example/*", _destination(),
                selector="#x", interval_minutes=5,
            )

    def test_periodic_check_requires_positive_interval(self):
        with pytest.raises(ValueError, match="interval"):
            Rule.create("Rule", TriggerKind.PERIODIC_CHECK, "*", _destination())
        with pytest.raises(ValueError, match="interval"):
            Rule.create("Rule", TriggerKind.PERIODIC_CHECK, "*", _destination(), interval_minutes=0)

        rule = Rule.create("Rule", TriggerKind.PERIODIC_CHECK, "*", _destination(), interval_minutes=15)
        assert rule.interval_minutes == 15

    def test_interval_only_for_periodic_check(self):
        with pytest.raises(ValueError, match="interval"):
            Rule.create("Rule", TriggerKind.PAGE_VISIT, "*", _destination(), interval_minutes=5)

    def test_name_and_pattern_are_required(self):
        with pytest.raises(ValueError, match="name"):
            Rule.create("   ", TriggerKind.PAGE_VISIT, "*", _destination())
        with pytest.raises(ValueError, match="100"):
            Rule.create("x" * 101, TriggerKind.PAGE_VISIT, "*", _destination())
        with pytest.raises(ValueError, match="pattern"):
            Rule.create("Rule", TriggerKind.PAGE_VISIT, " ", _destination())

    @pytest.mark.parametrize("url", ["", "ftp://hooks.example.com", "not a url"])
    def test_destination_url_must_be_http(self, url):
        with pytest.raises(ValueError):
            Rule.create("Rule", TriggerKind.PAGE_VISIT, "*", _destination(url))

    def test_store_layout_uses_camel_case(self):
        rule = Rule.create(
            "Signup",
            TriggerKind.FORM_SUBMIT,
            "https://a.example/signup",
            Destination(
                url="https://hooks.example.com/in",
                label="Slack",
                format=PayloadFormat.TEXT,
                headers={"X-Token": "abc"},
            ),
            selector="form#signup",
        )

        data = rule.to_dict()

        assert data["urlPattern"] == "https://a.example/signup"
        assert data["trigger"] == "form_submit"
        assert data["destination"]["type"] == "text"
        assert data["destination"]["headers"] == {"X-Token": "abc"}
        assert "intervalMinutes" not in data
        assert Rule.from_dict(data) == rule

    def test_from_dict_defaults_destination_format(self):
        rule = Rule.from_dict(
            {
                "id": "r1",
                "name": "Visit",
                "enabled": False,
                "trigger": "page_visit",
                "urlPattern": "*",
                "destination": {"id": "d1", "url": "https://hooks.example.com", "label": ""},
            }
        )

        assert rule.destination.format is PayloadFormat.JSON
        assert rule.enabled is False

    def test_from_dict_rejects_unknown_trigger(self):
        with pytest.raises(ValueError):
            Rule.from_dict(
                {"id": "r1", "trigger": "hover", "destination": {"url": "https://h.example"}}
            )


class TestLogEntry:
    def test_round_trip_keeps_optional_fields_out(self):
        entry = LogEntry(
            rule_id="r1",
            rule_name="Price",
            event="dom_change",
            status="success",
            destination_url="https://hooks.example.com",
            status_code=204,
        )

        data = entry.to_dict()

        assert data["statusCode"] == 204
        assert "error" not in data
        assert LogEntry.from_dict(data) == entry
        assert entry.succeeded


class TestDeliveryResult:
    def test_responses(self):
        assert DeliveryResult(success=True, status_code=200).to_response() == {"success": True}
        assert DeliveryResult(success=False, error="boom").to_response() == {"success": False}
        assert DeliveryResult.skip().to_response() == {"skipped": True}


class TestAppSettings:
    def test_defaults(self):
        assert DEFAULT_APP_SETTINGS.enable_notifications is True
        assert DEFAULT_APP_SETTINGS.max_log_entries == 500

    def test_merge_accepts_store_and_attribute_keys(self):
        merged = DEFAULT_APP_SETTINGS.merged({"maxLogEntries": "20", "unknown": 1})
        assert merged.max_log_entries == 20
        assert merged.enable_notifications is True

        merged_again = merged.merged({"enable_notifications": False})
        assert merged_again.enable_notifications is False
        assert merged_again.max_log_entries == 20
        assert DEFAULT_APP_SETTINGS.max_log_entries == 500

    def test_to_dict(self):
        assert DEFAULT_APP_SETTINGS.to_dict() == {"enableNotifications": True, "maxLogEntries": 500}


class TestMessage:
    def test_from_dict(self):
        message = Message.from_dict({"type": "PAGE_VISITED", "payload": {"ruleId": "r1"}})
        assert message.type is MessageType.PAGE_VISITED
        assert message.to_dict() == {"type": "PAGE_VISITED", "payload": {"ruleId": "r1"}}

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown message type"):
            Message.from_dict({"type": "HOVER"})
