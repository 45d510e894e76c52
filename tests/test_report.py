import unittest
from datetime import datetime, timedelta, timezone

from sharedmetrics.metrics.persistence import PerUserMetrics
from sharedmetrics.metrics.report import (
    SANCTIONED_COUNTRIES,
    HourlyServerMetricsReport,
    HourlyUserMetricsReport,
    get_hourly_server_metrics_report,
    get_hourly_user_metrics_report,
    without_sanctioned_reports,
)

from tests.fakes import FakeIpLocation

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
END = START + timedelta(hours=1)


class SanctionsFilterTests(unittest.TestCase):
    def test_sanctioned_set(self):
        self.assertEqual(SANCTIONED_COUNTRIES, {"CU", "IR", "KP", "SY"})

    def test_removes_sanctioned_countries_and_empty_users(self):
        reports = [
            HourlyUserMetricsReport("a", 1, ["US", "IR"]),
            HourlyUserMetricsReport("b", 2, ["KP", "CU", "SY"]),
            HourlyUserMetricsReport("c", 3, ["DE"]),
        ]
        filtered = without_sanctioned_reports(reports)
        self.assertEqual(
            filtered,
            [HourlyUserMetricsReport("a", 1, ["US"]), HourlyUserMetricsReport("c", 3, ["DE"])],
        )

    def test_is_idempotent(self):
        reports = [
            HourlyUserMetricsReport("a", 1, ["US", "SY", "ERROR"]),
            HourlyUserMetricsReport("b", 2, ["IR"]),
        ]
        once = without_sanctioned_reports(reports)
        self.assertEqual(without_sanctioned_reports(once), once)

    def test_does_not_mutate_input(self):
        report = HourlyUserMetricsReport("a", 1, ["US", "IR"])
        without_sanctioned_reports([report])
        self.assertEqual(report.countries, ["US", "IR"])


class ReportBuilderTests(unittest.IsolatedAsyncioTestCase):
    async def test_user_with_sanctioned_country_keeps_the_rest(self):
        lookup = FakeIpLocation({"1.1.1.0": "US", "2.2.2.0": "IR"})
        report = await get_hourly_server_metrics_report(
            "server-1",
            START,
            END,
            {"u1": PerUserMetrics(100, {"1.1.1.0", "2.2.2.0"})},
            lookup,
        )
        self.assertIsNotNone(report)
        assert report is not None
        self.assertEqual(report.server_id, "server-1")
        self.assertEqual(report.start_utc_ms, int(START.timestamp() * 1000))
        self.assertEqual(report.end_utc_ms, int(END.timestamp() * 1000))
        self.assertEqual(report.user_reports, [HourlyUserMetricsReport("u1", 100, ["US"])])

    async def test_empty_metrics_resolve_to_none(self):
        lookup = FakeIpLocation({})
        report = await get_hourly_server_metrics_report("s", START, END, {}, lookup)
        self.assertIsNone(report)
        self.assertEqual(lookup.calls, [])

    async def test_all_sanctioned_users_resolve_to_none(self):
        lookup = FakeIpLocation({"1.1.1.0": "CU", "2.2.2.0": "KP"})
        report = await get_hourly_server_metrics_report(
            "s",
            START,
            END,
            {"a": PerUserMetrics(1, {"1.1.1.0"}), "b": PerUserMetrics(2, {"2.2.2.0"})},
            lookup,
        )
        self.assertIsNone(report)

    async def test_sanctioned_only_user_is_absent(self):
        lookup = FakeIpLocation({"1.1.1.0": "SY", "3.3.3.0": "FR"})
        report = await get_hourly_server_metrics_report(
            "s",
            START,
            END,
            {"a": PerUserMetrics(1, {"1.1.1.0"}), "b": PerUserMetrics(2, {"3.3.3.0"})},
            lookup,
        )
        assert report is not None
        self.assertEqual([r.user_id for r in report.user_reports], ["b"])

    async def test_user_without_addresses_is_dropped(self):
        lookup = FakeIpLocation({"3.3.3.0": "FR"})
        report = await get_hourly_server_metrics_report(
            "s",
            START,
            END,
            {"a": PerUserMetrics(10, set()), "b": PerUserMetrics(2, {"3.3.3.0"})},
            lookup,
        )
        assert report is not None
        self.assertEqual([r.user_id for r in report.user_reports], ["b"])

    async def test_lookup_failure_becomes_error_country(self):
        lookup = FakeIpLocation({"1.1.1.0": "US"})
        with self.assertLogs("sharedmetrics.metrics.report", level="WARNING"):
            user_report = await get_hourly_user_metrics_report(
                "u", PerUserMetrics(5, {"1.1.1.0", "9.9.9.0"}), lookup
            )
        self.assertEqual(sorted(user_report.countries), ["ERROR", "US"])

    async def test_countries_are_deduplicated(self):
        lookup = FakeIpLocation({"1.1.1.0": "US", "1.1.2.0": "US", "1.1.3.0": "CA"})
        user_report = await get_hourly_user_metrics_report(
            "u", PerUserMetrics(5, {"1.1.1.0", "1.1.2.0", "1.1.3.0"}), lookup
        )
        self.assertEqual(sorted(user_report.countries), ["CA", "US"])
        self.assertEqual(len(lookup.calls), 3)

    async def test_does_not_mutate_metrics(self):
        metrics = {"u": PerUserMetrics(5, {"1.1.1.0"})}
        await get_hourly_server_metrics_report(
            "s", START, END, metrics, FakeIpLocation({"1.1.1.0": "IR"})
        )
        self.assertEqual(metrics, {"u": PerUserMetrics(5, {"1.1.1.0"})})


class WireFormatTests(unittest.TestCase):
    def test_report_to_dict(self):
        report = HourlyServerMetricsReport(
            server_id="srv",
            start_utc_ms=1,
            end_utc_ms=2,
            user_reports=[HourlyUserMetricsReport("u1", 100, ["US"])],
        )
        self.assertEqual(
            report.to_dict(),
            {
                "serverId": "srv",
                "startUtcMs": 1,
                "endUtcMs": 2,
                "userReports": [{"userId": "u1", "bytesTransferred": 100, "countries": ["US"]}],
            },
        )


if __name__ == "__main__":
    unittest.main()
