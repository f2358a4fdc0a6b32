"""
Unit tests for the in-process realtime feed.
"""
from qc_checkin.services.realtime import DELETE, INSERT, UPDATE, RealtimeFeed


class TestRealtimeFeed:
    """Test subscribe/publish scoping."""

    def test_delivers_to_matching_table_and_couple(self):
        feed = RealtimeFeed()
        seen = []
        feed.subscribe("check_ins", "c1", on_update=seen.append)

        delivered = feed.publish("check_ins", UPDATE, {"id": "x", "couple_id": "c1"})

        assert delivered == 1
        assert seen == [{"id": "x", "couple_id": "c1"}]

    def test_other_couple_and_table_are_filtered(self):
        feed = RealtimeFeed()
        seen = []
        feed.subscribe("check_ins", "c1", on_update=seen.append)

        feed.publish("check_ins", UPDATE, {"id": "x", "couple_id": "c2"})
        feed.publish("notes", UPDATE, {"id": "y", "couple_id": "c1"})

        assert seen == []

    def test_event_types_route_to_their_handlers(self):
        feed = RealtimeFeed()
        events = []
        feed.subscribe(
            "session_settings_proposals", "c1",
            on_insert=lambda r: events.append(("insert", r["id"])),
            on_delete=lambda r: events.append(("delete", r["id"])),
        )

        feed.publish("session_settings_proposals", INSERT, {"id": "p1", "couple_id": "c1"})
        feed.publish("session_settings_proposals", UPDATE, {"id": "p1", "couple_id": "c1"})
        feed.publish("session_settings_proposals", DELETE, {"id": "p1", "couple_id": "c1"})

        assert events == [("insert", "p1"), ("delete", "p1")]

    def test_unsubscribe(self):
        feed = RealtimeFeed()
        seen = []
        sub = feed.subscribe("check_ins", "c1", on_update=seen.append)

        sub.unsubscribe()
        sub.unsubscribe()
        feed.publish("check_ins", UPDATE, {"id": "x", "couple_id": "c1"})

        assert seen == []
        assert not sub.active
        assert feed.subscriber_count() == 0

    def test_failing_handler_does_not_block_others(self):
        feed = RealtimeFeed()
        seen = []

        def broken(record):
            raise RuntimeError("boom")

        feed.subscribe("check_ins", "c1", on_update=broken)
        feed.subscribe("check_ins", "c1", on_update=seen.append)

        delivered = feed.publish("check_ins", UPDATE, {"id": "x", "couple_id": "c1"})

        assert delivered == 1
        assert len(seen) == 1

    def test_subscriber_count_by_table(self):
        feed = RealtimeFeed()
        feed.subscribe("check_ins", "c1")
        feed.subscribe("check_ins", "c2")
        feed.subscribe("notes", "c1")

        assert feed.subscriber_count() == 3
        assert feed.subscriber_count("check_ins") == 2
