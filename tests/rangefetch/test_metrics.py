"""Tests for Prometheus metric helpers."""

from prometheus_client import REGISTRY

from rangefetch import metrics


def sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetrics:
    def test_record_download_success_observes_duration(self):
        before_count = sample("rangefetch_downloads_total", {"status": "success"})
        before_obs = sample("rangefetch_download_duration_seconds_count")

        metrics.record_download("success", 1.5)

        assert sample("rangefetch_downloads_total", {"status": "success"}) == before_count + 1
        assert sample("rangefetch_download_duration_seconds_count") == before_obs + 1

    def test_record_download_failure_skips_duration(self):
        before_obs = sample("rangefetch_download_duration_seconds_count")

        metrics.record_download("failed", 3.0)

        assert sample("rangefetch_download_duration_seconds_count") == before_obs

    def test_part_counters(self):
        before_attempts = sample("rangefetch_part_attempts_total", {"outcome": "rejected"})
        before_retries = sample("rangefetch_part_retries_total")
        before_bytes = sample("rangefetch_bytes_downloaded_total")

        metrics.record_part_attempt("rejected")
        metrics.record_part_retry()
        metrics.record_bytes(2048)

        assert (
            sample("rangefetch_part_attempts_total", {"outcome": "rejected"})
            == before_attempts + 1
        )
        assert sample("rangefetch_part_retries_total") == before_retries + 1
        assert sample("rangefetch_bytes_downloaded_total") == before_bytes + 2048
