"""
Tests for segment testing, campaign creation/sending and the generic
pass-through dispatcher.
"""
import pytest

from chimplet.errors import MailchimpError, InvalidSegmentError, UnsupportedOperationError


SEGMENT = {"match": "all", "conditions": [{"condition_type": "TextMerge", "field": "FNAME",
                                            "op": "is", "value": "Ann"}]}

CAMPAIGN = {
    "type": "regular",
    "options": {"subject_line": "Hello", "from_name": "Team", "reply_to": "team@example.com"},
    "content": {"html": "<p>Hi</p>"},
    "segment_opts": SEGMENT,
    "type_opts": None,
}


class TestSegmentTest:

    def test_total_is_returned(self, list_facade, connection):
        connection.segment_test.return_value = {"total": 12}

        result = list_facade.test_segment(SEGMENT)

        assert result.value == {"total": 12}
        connection.segment_test.assert_called_once_with("abc123", SEGMENT)

    def test_missing_total_is_a_failure(self, list_facade, connection):
        connection.segment_test.return_value = {"members": []}

        result = list_facade.test_segment(SEGMENT)

        assert not result
        assert result.error.kind == "segment_test_failed"

    def test_rejected_segment(self, list_facade, connection):
        connection.segment_test.side_effect = InvalidSegmentError("Invalid Resource: bad condition", code=400)

        result = list_facade.test_segment(SEGMENT)

        assert result.error.kind == "invalid_segment"
        assert result.error.code == 400


class TestCreateCampaign:

    def test_empty_segment_blocks_creation(self, list_facade, connection):
        connection.segment_test.return_value = {"total": 0}

        result = list_facade.create_campaign(CAMPAIGN)

        assert not result
        assert result.error.kind == "empty_segment"
        assert "0 recipients" in result.error.message
        connection.campaign_create.assert_not_called()
        connection.campaign_send.assert_not_called()

    def test_failed_segment_test_propagates(self, list_facade, connection):
        connection.segment_test.side_effect = MailchimpError("Internal Server Error", code=500)

        result = list_facade.create_campaign(CAMPAIGN)

        assert result.error.kind == "service_error"
        assert result.error.code == 500
        connection.campaign_create.assert_not_called()

    def test_created_and_sent(self, list_facade, connection):
        connection.segment_test.return_value = {"total": 3}
        connection.campaign_create.return_value = {"id": "c1", "type": "regular"}
        connection.campaign_send.return_value = {"complete": True}

        result = list_facade.create_campaign(CAMPAIGN)

        assert result.ok
        assert result.value == {"id": "c1", "type": "regular", "is_broadcast": True}
        connection.campaign_create.assert_called_once_with(
            "regular",
            {"subject_line": "Hello", "from_name": "Team", "reply_to": "team@example.com", "list_id": "abc123"},
            {"html": "<p>Hi</p>"},
            SEGMENT,
            None,
        )
        connection.campaign_send.assert_called_once_with("c1")

    def test_send_failure_is_flagged(self, list_facade, connection):
        connection.segment_test.return_value = {"total": 3}
        connection.campaign_create.return_value = {"id": "c1", "type": "regular"}
        connection.campaign_send.side_effect = MailchimpError("Bad Request: not ready", code=400)

        result = list_facade.create_campaign(CAMPAIGN)

        assert result.ok
        assert result.value["is_broadcast"] is False

    def test_without_segment_skips_segment_test(self, list_facade, connection):
        connection.campaign_create.return_value = {"id": "c2", "type": "regular"}
        connection.campaign_send.return_value = {"complete": True}
        campaign = dict(CAMPAIGN, segment_opts=None)

        result = list_facade.create_campaign(campaign)

        assert result.ok
        connection.segment_test.assert_not_called()
        assert connection.campaign_create.call_args.args[3] is None

    def test_create_error_result(self, list_facade, connection):
        connection.segment_test.return_value = {"total": 3}
        connection.campaign_create.side_effect = MailchimpError("Invalid Resource: missing subject", code=400)

        result = list_facade.create_campaign(CAMPAIGN)

        assert not result
        assert result.error.message == "Invalid Resource: missing subject"
        connection.campaign_send.assert_not_called()

    def test_caller_options_are_not_mutated(self, list_facade, connection):
        connection.segment_test.return_value = {"total": 3}
        connection.campaign_create.return_value = {}

        list_facade.create_campaign(CAMPAIGN)

        assert "list_id" not in CAMPAIGN["options"]


class TestSendCampaign:

    def test_complete_flag(self, facade, connection):
        connection.campaign_send.return_value = {"complete": True}
        assert facade.send_campaign("c1") is True

    @pytest.mark.parametrize("campaign_type", ["regular", "rss"])
    def test_missing_complete_flag_fails(self, facade, connection, campaign_type, caplog):
        connection.campaign_send.return_value = {}

        assert facade.send_campaign("c1", campaign_type) is False
        expected = "RSS campaign could not be started" if campaign_type == "rss" else "campaign could not be sent"
        assert expected in caplog.text

    def test_service_error(self, facade, connection):
        connection.campaign_send.side_effect = MailchimpError("Forbidden", code=403)
        assert facade.send_campaign("c1") is False


class TestPassThrough:

    def test_complete_is_unwrapped(self, facade, connection):
        connection.campaign_delete.return_value = {"complete": True, "id": "c1"}

        assert facade.call("campaign_delete", "c1") is True
        connection.campaign_delete.assert_called_once_with("c1")

    def test_raw_response_returned(self, facade, connection):
        connection.campaigns.return_value = {"campaigns": [], "total_items": 0}

        assert facade.call("campaigns", {"status": "sent"}) == {"campaigns": [], "total_items": 0}

    def test_service_error_is_false(self, facade, connection):
        connection.campaign_schedule.side_effect = MailchimpError("Bad Request", code=400)

        assert facade.call("campaign_schedule", "c1", "2026-01-01T10:00:00+00:00") is False

    def test_unknown_operation_raises(self, facade):
        with pytest.raises(UnsupportedOperationError) as exc:
            facade.call("delete_everything")
        assert exc.value.operation == "delete_everything"
        assert isinstance(exc.value, LookupError)
