"""
Tests for archive_spine.archiving.freshness.

Covers the permanence rule, the re-archive interval for in-progress
periods, debug overrides and plugin grouping.
"""

from datetime import UTC, date, datetime, timedelta

import pytest

from archive_spine.archiving.freshness import (
    ALL_PLUGINS,
    CORE_METRICS_PLUGIN,
    ProcessingRules,
    ReArchiveIntervalPolicy,
    determine_if_archive_permanent,
    is_archiving_forced,
    min_acceptable_timestamp,
)
from archive_spine.archiving.params import Parameters, Period
from archive_spine.core.settings import ArchivingSettings

NOW = datetime(2024, 4, 1, 12, 0, 0, tzinfo=UTC)


class TestPermanentPeriods:
    def test_finished_day_is_permanent(self):
        period = Period.day(date(2024, 3, 10))
        assert determine_if_archive_permanent(period, NOW) == datetime(
            2024, 3, 10, 23, 59, 59, tzinfo=UTC
        )

    def test_today_is_not_permanent(self):
        assert determine_if_archive_permanent(Period.day(NOW.date()), NOW) is None

    def test_end_instant_itself_is_not_past(self):
        period = Period.day(date(2024, 3, 10))
        assert determine_if_archive_permanent(period, period.end_utc) is None
        assert determine_if_archive_permanent(period, period.end_utc + timedelta(seconds=1)) is not None

    def test_naive_now_treated_as_utc(self):
        period = Period.day(date(2024, 3, 10))
        assert determine_if_archive_permanent(period, datetime(2024, 4, 1)) == period.end_utc

    def test_min_timestamp_is_period_end(self):
        params = Parameters(site_id=1, period=Period.month(2024, 1))
        assert min_acceptable_timestamp(params, now=NOW) == datetime(
            2024, 1, 31, 23, 59, 59, tzinfo=UTC
        )

    def test_min_timestamp_stable_as_time_passes(self):
        params = Parameters(site_id=1, period=Period.month(2024, 1))
        later = NOW + timedelta(days=400)
        assert min_acceptable_timestamp(params, now=NOW) == min_acceptable_timestamp(
            params, now=later
        )


class TestInProgressPeriods:
    def test_today_uses_today_ttl(self):
        params = Parameters(site_id=1, period=Period.day(NOW.date()))
        assert min_acceptable_timestamp(params, now=NOW) == NOW - timedelta(seconds=900)

    def test_current_month_uses_today_ttl(self):
        params = Parameters(site_id=1, period=Period.month(2024, 4))
        assert min_acceptable_timestamp(params, now=NOW) == NOW - timedelta(seconds=900)

    def test_open_range_uses_range_ttl(self):
        params = Parameters(site_id=1, period=Period.range(date(2024, 3, 1), NOW.date()))
        assert min_acceptable_timestamp(params, now=NOW) == NOW - timedelta(seconds=3600)

    def test_policy_reads_settings(self):
        policy = ReArchiveIntervalPolicy(ArchivingSettings(today_archive_ttl=60))
        params = Parameters(site_id=1, period=Period.day(NOW.date()))
        assert min_acceptable_timestamp(params, now=NOW, policy=policy) == NOW - timedelta(seconds=60)

    def test_custom_policy(self):
        class Never:
            def min_time_processed(self, params, now):
                return now

        params = Parameters(site_id=1, period=Period.day(NOW.date()))
        assert min_acceptable_timestamp(params, now=NOW, policy=Never()) == NOW

    def test_custom_policy_ignored_for_finished_period(self):
        class Never:
            def min_time_processed(self, params, now):
                raise AssertionError("not consulted for finished periods")

        params = Parameters(site_id=1, period=Period.day(date(2024, 3, 10)))
        assert min_acceptable_timestamp(params, now=NOW, policy=Never()) == params.period.end_utc


class TestForcedArchiving:
    @pytest.mark.parametrize(
        "setting, period, expected",
        [
            ("always_archive_data_day", Period.day(date(2024, 3, 10)), True),
            ("always_archive_data_day", Period.week(date(2024, 3, 10)), False),
            ("always_archive_data_period", Period.week(date(2024, 3, 10)), True),
            ("always_archive_data_period", Period.month(2024, 3), True),
            ("always_archive_data_period", Period.year(2024), True),
            ("always_archive_data_period", Period.day(date(2024, 3, 10)), False),
            ("always_archive_data_range", Period.range(date(2024, 3, 1), date(2024, 3, 2)), True),
            ("always_archive_data_range", Period.month(2024, 3), False),
        ],
    )
    def test_setting_per_granularity(self, setting, period, expected):
        settings = ArchivingSettings(**{setting: True})
        assert is_archiving_forced(period, settings) is expected

    def test_nothing_forced_by_default(self):
        settings = ArchivingSettings()
        assert not is_archiving_forced(Period.day(date(2024, 3, 10)), settings)


class TestProcessingRules:
    def test_no_segment_processes_everything(self):
        rules = ProcessingRules(ArchivingSettings())
        params = Parameters(site_id=1, period=Period.year(2024), requested_plugin="Goals")
        assert rules.should_process_all_plugins(params)
        assert rules.plugin_group(params) == ALL_PLUGINS
        assert rules.includes_core_metrics(params)

    def test_segment_is_per_plugin(self):
        rules = ProcessingRules(ArchivingSettings())
        params = Parameters(
            site_id=1, period=Period.year(2024), segment="country==fr", requested_plugin="Goals"
        )
        assert not rules.should_process_all_plugins(params)
        assert rules.plugin_group(params) == "Goals"
        assert not rules.includes_core_metrics(params)

    def test_segment_core_metrics_plugin(self):
        rules = ProcessingRules(ArchivingSettings())
        params = Parameters(
            site_id=1,
            period=Period.year(2024),
            segment="country==fr",
            requested_plugin=CORE_METRICS_PLUGIN,
        )
        assert rules.includes_core_metrics(params)

    def test_segment_with_all_plugins_setting(self):
        rules = ProcessingRules(ArchivingSettings(process_all_plugins_for_segments=True))
        params = Parameters(
            site_id=1, period=Period.year(2024), segment="country==fr", requested_plugin="Goals"
        )
        assert rules.plugin_group(params) == ALL_PLUGINS
        assert rules.includes_core_metrics(params)
