"""Tests for event parsing, acknowledgments and recurrence resolution.

All recurrence tests pin ``now`` so that weekdays are known:
2025-03-03 is a Monday and 2025-03-05 a Wednesday.
"""

from datetime import date, datetime

import pytest

from notekeeper.events.models import EventFields, RecurrenceKind
from notekeeper.events.tools import (
    acknowledge_occurrence,
    calculate_next_occurrence,
    extract_acknowledged_dates,
    find_upcoming_events,
    next_occurrence_for,
    normalize_date_string,
    parse_event,
    parse_event_datetime,
    serialize_event,
)
from notekeeper.notes.models import Note

MONDAY = datetime(2025, 3, 3, 9, 0)
WEDNESDAY = datetime(2025, 3, 5, 9, 0)

# =============================================================================
# Date Normalization Tests
# =============================================================================


class TestDateNormalization:
    """Tests for the date canonicalizer."""

    def test_canonical_string_passes_through(self) -> None:
        assert normalize_date_string("2025-03-05") == "2025-03-05"

    def test_date_and_datetime_values(self) -> None:
        assert normalize_date_string(date(2025, 3, 5)) == "2025-03-05"
        assert normalize_date_string(datetime(2025, 3, 5, 23, 59)) == "2025-03-05"

    def test_timestamp_string(self) -> None:
        assert normalize_date_string("2025-03-05T18:30:00") == "2025-03-05"

    def test_invalid_values_are_none(self) -> None:
        """Test that unparseable input is dropped rather than raised."""
        assert normalize_date_string("2025-02-30") is None
        assert normalize_date_string("not a date") is None
        assert normalize_date_string("") is None
        assert normalize_date_string(None) is None

    def test_date_only_gets_noon(self) -> None:
        assert parse_event_datetime("2025-03-05") == datetime(2025, 3, 5, 12, 0)
        assert parse_event_datetime(date(2025, 3, 5)) == datetime(2025, 3, 5, 12, 0)

    def test_explicit_time_is_kept(self) -> None:
        assert parse_event_datetime("2025-03-05T08:15") == datetime(2025, 3, 5, 8, 15)


# =============================================================================
# Acknowledgment Tests
# =============================================================================


class TestAcknowledgments:
    """Tests for acknowledgment extraction and recording."""

    def test_extracts_marker_lines(self) -> None:
        content = (
            "Standup\n"
            "event_date:2025-03-01\n"
            "meta::meeting_acknowledge::2025-03-03\n"
            "  meta::meeting_acknowledge::2025-03-04T16:00:00\n"
        )
        assert extract_acknowledged_dates(content) == {"2025-03-03", "2025-03-04"}

    def test_malformed_dates_are_skipped(self) -> None:
        content = "meta::meeting_acknowledge::whenever\nmeta::meeting_acknowledge::2025-03-03"
        assert extract_acknowledged_dates(content) == {"2025-03-03"}

    def test_no_markers(self) -> None:
        assert extract_acknowledged_dates("Just a note\nevent_date:2025-03-03") == set()

    def test_acknowledge_appends_line(self) -> None:
        result = acknowledge_occurrence("Standup\nevent_date:2025-03-01", "2025-03-05")
        assert result.endswith("\nmeta::meeting_acknowledge::2025-03-05")
        assert extract_acknowledged_dates(result) == {"2025-03-05"}

    def test_acknowledge_is_idempotent(self) -> None:
        content = "Standup\nmeta::meeting_acknowledge::2025-03-05"
        assert acknowledge_occurrence(content, date(2025, 3, 5)) == content

    def test_acknowledge_defaults_to_today(self) -> None:
        result = acknowledge_occurrence("Standup", now=WEDNESDAY)
        assert "meta::meeting_acknowledge::2025-03-05" in result

    def test_acknowledge_rejects_non_dates(self) -> None:
        with pytest.raises(ValueError):
            acknowledge_occurrence("Standup", "someday")


# =============================================================================
# Recurrence Tests
# =============================================================================


class TestDailyRecurrence:
    """Tests for daily recurrence."""

    def test_base_today_unacknowledged_returns_today(self) -> None:
        base = datetime(2025, 3, 5, 12, 0)
        assert calculate_next_occurrence(base, "daily", now=WEDNESDAY) == base

    def test_today_acknowledged_returns_tomorrow(self) -> None:
        result = calculate_next_occurrence(
            "2025-03-05", "daily", acknowledged_dates={"2025-03-05"}, now=WEDNESDAY
        )
        assert result == datetime(2025, 3, 6, 12, 0)

    def test_today_and_tomorrow_acknowledged(self) -> None:
        result = calculate_next_occurrence(
            "2025-03-05",
            "daily",
            acknowledged_dates={"2025-03-05", "2025-03-06"},
            now=WEDNESDAY,
        )
        assert result == datetime(2025, 3, 7, 12, 0)

    def test_past_base_uses_tomorrow_at_base_time(self) -> None:
        result = calculate_next_occurrence("2025-01-10T07:30", "daily", now=WEDNESDAY)
        assert result == datetime(2025, 3, 6, 7, 30)


class TestPeriodicRecurrence:
    """Tests for weekly, monthly and yearly recurrence."""

    def test_weekly_from_last_monday(self) -> None:
        """Test base last Monday, today Wednesday gives next Monday."""
        result = calculate_next_occurrence("2025-03-03", "weekly", now=WEDNESDAY)
        assert result == datetime(2025, 3, 10, 12, 0)

    def test_weekly_skips_acknowledged(self) -> None:
        result = calculate_next_occurrence(
            "2025-03-03", "weekly", acknowledged_dates=["2025-03-10"], now=WEDNESDAY
        )
        assert result == datetime(2025, 3, 17, 12, 0)

    def test_weekly_today_is_not_next(self) -> None:
        result = calculate_next_occurrence("2025-02-26", "weekly", now=WEDNESDAY)
        assert result == datetime(2025, 3, 12, 12, 0)

    def test_future_base_is_returned(self) -> None:
        result = calculate_next_occurrence("2025-04-01", "weekly", now=WEDNESDAY)
        assert result == datetime(2025, 4, 1, 12, 0)

    def test_monthly_clamps_month_end(self) -> None:
        """Test that a 31st base date lands on the last day of short months."""
        feb = datetime(2025, 2, 10, 9, 0)
        assert calculate_next_occurrence("2025-01-31", "monthly", now=feb) == datetime(
            2025, 2, 28, 12, 0
        )
        # Stepping is measured from the base, so March is back on the 31st.
        assert calculate_next_occurrence(
            "2025-01-31", "monthly", acknowledged_dates={"2025-02-28"}, now=feb
        ) == datetime(2025, 3, 31, 12, 0)

    def test_yearly(self) -> None:
        result = calculate_next_occurrence("2020-06-15", "yearly", now=WEDNESDAY)
        assert result == datetime(2025, 6, 15, 12, 0)

    def test_yearly_skips_acknowledged(self) -> None:
        result = calculate_next_occurrence(
            "2020-06-15", "yearly", acknowledged_dates={"2025-06-15"}, now=WEDNESDAY
        )
        assert result == datetime(2026, 6, 15, 12, 0)

    @pytest.mark.parametrize("kind", ["fortnightly", None, "", "none"])
    def test_unknown_or_unset_kind_is_yearly(self, kind: str | None) -> None:
        result = calculate_next_occurrence("2020-06-15", kind, now=WEDNESDAY)
        assert result == datetime(2025, 6, 15, 12, 0)

    def test_malformed_base_date(self) -> None:
        assert calculate_next_occurrence("soon", "weekly", now=WEDNESDAY) is None


class TestCustomRecurrence:
    """Tests for custom weekday recurrence."""

    def test_nearest_weekday(self) -> None:
        """Test Wednesday/Friday from a Monday gives this Wednesday."""
        result = calculate_next_occurrence(
            "2025-01-01", "custom", custom_days=["wednesday", "friday"], now=MONDAY
        )
        assert result == datetime(2025, 3, 5, 12, 0)

    def test_acknowledged_day_skips_a_week(self) -> None:
        """Test that an acknowledged Wednesday moves to next Wednesday, not Friday."""
        result = calculate_next_occurrence(
            "2025-01-01",
            "custom",
            custom_days=["wednesday", "friday"],
            acknowledged_dates={"2025-03-05"},
            now=MONDAY,
        )
        assert result == datetime(2025, 3, 12, 12, 0)

    def test_today_is_excluded(self) -> None:
        result = calculate_next_occurrence("2025-01-01", "custom", custom_days=["monday"], now=MONDAY)
        assert result == datetime(2025, 3, 10, 12, 0)

    def test_wraps_around_week(self) -> None:
        result = calculate_next_occurrence(
            "2025-01-01T18:00", "custom", custom_days=["Tuesday"], now=WEDNESDAY
        )
        assert result == datetime(2025, 3, 11, 18, 0)

    def test_empty_days_has_no_occurrence(self) -> None:
        assert calculate_next_occurrence("2025-01-01", "custom", now=MONDAY) is None
        assert (
            calculate_next_occurrence("2025-01-01", "custom", custom_days=["someday"], now=MONDAY)
            is None
        )


class TestRecurrenceGuarantees:
    """Tests that results are never past or acknowledged."""

    @pytest.mark.parametrize("kind", ["weekly", "monthly", "yearly", "custom"])
    def test_result_is_future_and_unacknowledged(self, kind: str) -> None:
        acked = {"2025-03-06", "2025-03-07", "2025-03-10", "2025-04-03", "2026-03-03"}
        result = calculate_next_occurrence(
            "2024-03-03",
            kind,
            custom_days=["thursday", "friday"],
            acknowledged_dates=acked,
            now=WEDNESDAY,
        )
        assert result is not None
        assert result.date() > WEDNESDAY.date()
        assert result.date().isoformat() not in acked


# =============================================================================
# Event Schema Tests
# =============================================================================


class TestParseEvent:
    """Tests for event note parsing."""

    def test_prefixed_fields(self) -> None:
        content = (
            "event_description:Dentist\n"
            "event_date:2025-03-20T09:30\n"
            "event_location:Main St\n"
            "event_recurring_type:yearly\n"
            "event_tags:health, personal\n"
            "event_notes:Bring card\n"
            "meta::event::2025-01-01T00:00:00Z\n"
            "meta::meeting_acknowledge::2025-03-20"
        )
        fields = parse_event(content)

        assert fields.description == "Dentist"
        assert fields.base_date == datetime(2025, 3, 20, 9, 30)
        assert fields.location == "Main St"
        assert fields.recurrence_kind is RecurrenceKind.YEARLY
        assert fields.tags == ["health", "personal"]
        assert fields.notes == "Bring card"
        assert fields.is_event
        assert fields.acknowledged_dates == {"2025-03-20"}

    def test_legacy_layout(self) -> None:
        """Test description on the first line and date on the second."""
        content = "Birthday party\n2025-05-10T12:00\nLocation: Park\nmeta::event::"
        fields = parse_event(content)

        assert fields.description == "Birthday party"
        assert fields.base_date == datetime(2025, 5, 10, 12, 0)
        assert fields.location == "Park"
        assert fields.recurrence_kind is None

    def test_legacy_recurrence_line_with_days(self) -> None:
        content = "Gym\n2025-03-03T18:00\nmeta::event::\nmeta::event_recurrence::custom::Monday,thursday"
        fields = parse_event(content)

        assert fields.recurrence_kind is RecurrenceKind.CUSTOM
        assert fields.custom_days == ["monday", "thursday"]

    def test_malformed_date_leaves_base_unset(self) -> None:
        fields = parse_event("event_description:Thing\nevent_date:sometime\nmeta::event::")
        assert fields.base_date is None
        assert next_occurrence_for(fields, now=WEDNESDAY) is None

    def test_markers(self) -> None:
        fields = parse_event("Deadline\n2025-03-09\nmeta::event::\nmeta::event_deadline\nmeta::event_hidden")
        assert fields.is_deadline
        assert fields.is_hidden

    def test_serialize_then_parse(self) -> None:
        fields = EventFields(
            description="Gym",
            base_date=datetime(2025, 3, 3, 18, 0),
            recurrence_kind=RecurrenceKind.CUSTOM,
            custom_days=["monday", "thursday"],
            acknowledged_dates={"2025-03-03"},
            location="Downtown",
            tags=["health"],
            is_event=True,
        )
        assert parse_event(serialize_event(fields)) == fields


class TestNextOccurrenceFor:
    """Tests for resolving the displayed date of an event."""

    def test_unset_kind_uses_base_date(self) -> None:
        fields = EventFields(description="Once", base_date=datetime(2025, 1, 1, 12, 0))
        assert next_occurrence_for(fields, now=WEDNESDAY) == datetime(2025, 1, 1, 12, 0)

    def test_none_kind_uses_base_date(self) -> None:
        fields = EventFields(
            base_date=datetime(2025, 1, 1, 12, 0), recurrence_kind=RecurrenceKind.NONE
        )
        assert next_occurrence_for(fields, now=WEDNESDAY) == datetime(2025, 1, 1, 12, 0)

    def test_recurring_kind_resolves(self) -> None:
        fields = EventFields(
            base_date=datetime(2025, 3, 3, 12, 0),
            recurrence_kind=RecurrenceKind.WEEKLY,
            acknowledged_dates={"2025-03-10"},
        )
        assert next_occurrence_for(fields, now=WEDNESDAY) == datetime(2025, 3, 17, 12, 0)


# =============================================================================
# Upcoming Events Tests
# =============================================================================


class TestUpcomingEvents:
    """Tests for the upcoming events window."""

    def test_window_filters_and_sorts(self) -> None:
        notes = [
            Note(id="later", content="Review\nevent_date:2025-03-10\nmeta::event::"),
            Note(id="soon", content="Call\nevent_date:2025-03-06\nmeta::event::"),
            Note(id="far", content="Trip\nevent_date:2025-05-01\nmeta::event::"),
            Note(id="past", content="Done\nevent_date:2025-03-01\nmeta::event::"),
            Note(id="plain", content="Shopping list\n2025-03-06"),
            Note(
                id="weekly",
                content="Sync\nevent_date:2025-02-24\nevent_recurring_type:weekly\nmeta::event::",
            ),
        ]
        result = find_upcoming_events(notes, now=WEDNESDAY, window_days=7)

        assert [e.id for e in result] == ["soon", "later", "weekly"]
        assert result[2].date == datetime(2025, 3, 10, 12, 0)

    def test_deadlines_and_purchases_excluded(self) -> None:
        notes = [
            Note(id="deadline", content="Taxes\nevent_date:2025-03-06\nmeta::event::\nmeta::event_deadline"),
            Note(id="purchase", content="Shoes\nevent_date:2025-03-06\nevent_tags:Purchase\nmeta::event::"),
            Note(id="ok", content="Lunch\nevent_date:2025-03-06\nmeta::event::"),
        ]
        assert [e.id for e in find_upcoming_events(notes, now=WEDNESDAY)] == ["ok"]
