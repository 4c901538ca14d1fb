"""Tests for share_bridge/models.py - value types for Share data."""

from datetime import datetime, timezone

import pytest

from share_bridge.models import (
    AccountCredentials,
    ConnectionReport,
    ConnectionStatus,
    GlucoseReading,
    Region,
    ShareTimestamp,
    SyncResult,
)

# ============== TEST CLASSES ==============


class TestRegion:
    """Tests for Region parsing and base URLs."""

    def test_parse_lowercase(self):
        assert Region.parse("us") is Region.US

    def test_parse_is_case_insensitive(self):
        assert Region.parse("OUS") is Region.OUS
        assert Region.parse(" Jp ") is Region.JP

    def test_parse_passes_region_through(self):
        assert Region.parse(Region.JP) is Region.JP

    def test_parse_unknown_region_raises(self):
        with pytest.raises(ValueError, match="Unsupported region: eu"):
            Region.parse("eu")

    def test_us_base_url(self):
        assert Region.US.base_url == "https://share2.dexcom.com"

    def test_ous_and_jp_share_base_url(self):
        assert Region.OUS.base_url == "https://shareous1.dexcom.com"
        assert Region.JP.base_url == Region.OUS.base_url


class TestAccountCredentials:
    """Tests for AccountCredentials."""

    def test_region_string_is_parsed(self):
        creds = AccountCredentials(username="bob", password="pw", region="US")
        assert creds.region is Region.US
        assert creds.base_url == "https://share2.dexcom.com"

    def test_default_region_is_ous(self):
        creds = AccountCredentials(username="bob", password="pw")
        assert creds.region is Region.OUS

    def test_is_immutable(self):
        creds = AccountCredentials(username="bob", password="pw")
        with pytest.raises(AttributeError):
            creds.username = "eve"  # type: ignore[misc]

    def test_password_not_in_repr(self):
        creds = AccountCredentials(username="bob", password="hunter2")
        assert "hunter2" not in repr(creds)
        assert "bob" in repr(creds)


class TestShareTimestamp:
    """Tests for the Share wire timestamp type."""

    def test_parse_slashed_format(self):
        ts = ShareTimestamp.parse("/Date(1736935800000)/")
        assert ts.epoch_ms == 1736935800000

    def test_parse_with_offset_uses_first_digits(self):
        ts = ShareTimestamp.parse("Date(1736935800000-0500)")
        assert ts.epoch_ms == 1736935800000

    def test_str_returns_raw_text(self):
        raw = "Date(1736935800000+0100)"
        assert str(ShareTimestamp.parse(raw)) == raw

    def test_parse_without_digits_raises(self):
        with pytest.raises(ValueError, match="No epoch value"):
            ShareTimestamp.parse("Date()")

    def test_parse_non_string_raises(self):
        with pytest.raises(ValueError):
            ShareTimestamp.parse(1736935800000)  # type: ignore[arg-type]

    def test_from_epoch_ms(self):
        ts = ShareTimestamp.from_epoch_ms(1736935800000)
        assert ts.raw == "/Date(1736935800000)/"

    def test_from_epoch_ms_negative_offset(self):
        ts = ShareTimestamp.from_epoch_ms(1736935800000, offset_minutes=-300)
        assert ts.raw == "/Date(1736935800000-0500)/"

    def test_from_epoch_ms_positive_offset_with_minutes(self):
        ts = ShareTimestamp.from_epoch_ms(1736935800000, offset_minutes=330)
        assert ts.raw == "/Date(1736935800000+0530)/"

    def test_formatted_value_parses_back(self):
        ts = ShareTimestamp.from_epoch_ms(1736935800000, offset_minutes=60)
        assert ShareTimestamp.parse(ts.raw).epoch_ms == 1736935800000

    def test_to_datetime_is_utc(self):
        ts = ShareTimestamp.parse("Date(1736935800000)")
        assert ts.to_datetime() == datetime(2025, 1, 15, 10, 10, tzinfo=timezone.utc)


class TestGlucoseReading:
    """Tests for GlucoseReading parsing and projection."""

    def test_from_share(self, make_share_entry):
        r = GlucoseReading.from_share(make_share_entry(1736935800000, value=142, trend="SingleUp"))
        assert r.value == 142
        assert r.trend == "SingleUp"
        assert r.key == 1736935800000
        assert r.display_time.raw == "Date(1736935800000-0500)"

    def test_numeric_trend_is_mapped_to_label(self, make_share_entry):
        entry = make_share_entry(1736935800000)
        entry["Trend"] = 4
        assert GlucoseReading.from_share(entry).trend == "Flat"

    def test_unknown_numeric_trend_raises(self, make_share_entry):
        entry = make_share_entry(1736935800000)
        entry["Trend"] = 42
        with pytest.raises(ValueError, match="Unknown trend code"):
            GlucoseReading.from_share(entry)

    def test_missing_field_raises(self, make_share_entry):
        entry = make_share_entry(1736935800000)
        del entry["WT"]
        with pytest.raises(ValueError, match="missing field"):
            GlucoseReading.from_share(entry)

    def test_non_numeric_value_raises(self, make_share_entry):
        entry = make_share_entry(1736935800000)
        entry["Value"] = "high"
        with pytest.raises(ValueError, match="Invalid glucose value"):
            GlucoseReading.from_share(entry)

    def test_non_object_raises(self):
        with pytest.raises(ValueError, match="must be an object"):
            GlucoseReading.from_share(["not", "a", "reading"])  # type: ignore[arg-type]

    def test_key_comes_from_received_time(self, make_share_entry):
        entry = make_share_entry(1736935800000)
        entry["ST"] = "Date(1736935700000)"
        r = GlucoseReading.from_share(entry)
        assert r.key == 1736935800000

    def test_transfer_record_fields(self, make_share_entry):
        r = GlucoseReading.from_share(make_share_entry(1736935800000, value=99, trend="FortyFiveDown"))
        assert r.to_transfer_record() == {
            "Trend": "FortyFiveDown",
            "ST": "Date(1736935800000)",
            "DT": "Date(1736935800000-0500)",
            "Value": 99,
        }

    def test_transfer_record_drops_received_time(self, make_share_entry):
        r = GlucoseReading.from_share(make_share_entry(1736935800000))
        assert "WT" not in r.to_transfer_record()

    def test_trend_arrow(self, make_share_entry):
        r = GlucoseReading.from_share(make_share_entry(1736935800000, trend="DoubleDown"))
        assert r.trend_arrow == "↓↓"

    def test_trend_arrow_unknown_label(self, make_share_entry):
        r = GlucoseReading.from_share(make_share_entry(1736935800000, trend="Sideways"))
        assert r.trend_arrow == ""

    def test_to_dict(self, make_share_entry):
        r = GlucoseReading.from_share(make_share_entry(1736935800000, value=110))
        data = r.to_dict()
        assert data["value"] == 110
        assert data["key"] == 1736935800000
        assert data["timestamp"] == "2025-01-15T10:10:00+00:00"

    def test_str_contains_value_and_trend(self, make_share_entry):
        r = GlucoseReading.from_share(make_share_entry(1736935800000, value=110, trend="Flat"))
        assert str(r).startswith("110 mg/dL → (Flat) at ")

    def test_str_without_arrow(self, make_share_entry):
        r = GlucoseReading.from_share(make_share_entry(1736935800000, value=110, trend="None"))
        assert str(r).startswith("110 mg/dL (None) at ")


class TestSyncResult:
    """Tests for SyncResult."""

    def test_defaults(self):
        result = SyncResult()
        assert result.success is False
        assert result.errors == []
        assert result.latest is None

    def test_errors_not_shared_between_instances(self):
        first = SyncResult()
        first.errors.append("boom")
        assert SyncResult().errors == []

    def test_to_dict(self):
        result = SyncResult(success=True, read_count=5, write_count=3, skipped_count=2)
        assert result.to_dict() == {
            "success": True,
            "readCount": 5,
            "writeCount": 3,
            "skippedCount": 2,
            "errors": [],
        }


class TestConnectionReport:
    """Tests for ConnectionReport."""

    def test_ok_when_both_succeed(self):
        report = ConnectionReport(
            source=ConnectionStatus(success=True),
            destination=ConnectionStatus(success=True),
        )
        assert report.ok

    def test_not_ok_when_one_fails(self):
        report = ConnectionReport(
            source=ConnectionStatus(success=True),
            destination=ConnectionStatus(success=False, error="Invalid credentials"),
        )
        assert not report.ok
