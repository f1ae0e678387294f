"""Unit tests for date helpers."""

from datetime import date, datetime, timezone

import pytest

from claims_rpa.core.time_utils import (
    clinic_today,
    ensure_utc,
    format_portal_date,
    is_iso_date,
    parse_date,
    utc_now,
)


@pytest.mark.unit
class TestTimeUtils:
    """Test timestamp and date formatting helpers."""

    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None

    def test_ensure_utc(self):
        naive = datetime(2026, 1, 20, 8, 30)
        assert ensure_utc(naive).tzinfo == timezone.utc

    @pytest.mark.parametrize("value,expected", [
        ("2026-01-20", date(2026, 1, 20)),
        ("20/01/2026", date(2026, 1, 20)),
        ("02/03/2026", date(2026, 3, 2)),
        (datetime(2026, 1, 20, 10, 0), date(2026, 1, 20)),
        (date(2026, 1, 20), date(2026, 1, 20)),
        (None, None),
        ("", None),
    ])
    def test_parse_date(self, value, expected):
        assert parse_date(value) == expected

    @pytest.mark.parametrize("value,expected", [
        (date(2026, 1, 5), "05/01/2026"),
        ("2026-01-05", "05/01/2026"),
        ("05/01/2026", "05/01/2026"),
        (None, None),
    ])
    def test_format_portal_date(self, value, expected):
        assert format_portal_date(value) == expected

    def test_is_iso_date(self):
        assert is_iso_date("2026-01-20")
        assert not is_iso_date("20/01/2026")
        assert not is_iso_date(None)

    def test_clinic_today(self):
        assert isinstance(clinic_today("Asia/Singapore"), date)
