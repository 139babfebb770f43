from prometheus_client import CollectorRegistry

from studygen.metrics import GenerationMetrics
from studygen.models import UsageReport


class TestGenerationMetrics:
    def test_metric_families_registered(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        GenerationMetrics(registry=registry)
        # prometheus_client strips _total suffix from Counter family names
        metric_names = [m.name for m in registry.collect()]
        assert "studygen_generation_requests" in metric_names
        assert "studygen_tokens" in metric_names
        assert "studygen_generation_duration_seconds" in metric_names

    def test_observe_request_counts_outcomes(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        metrics = GenerationMetrics(registry=registry)
        metrics.observe_request("Flashcards", "success", 1.5)
        metrics.observe_request("Flashcards", "success", 0.5)
        metrics.observe_request("Flashcards", "BudgetExceeded", 0.01)

        assert (
            registry.get_sample_value(
                "studygen_generation_requests_total",
                {"kind": "Flashcards", "outcome": "success"},
            )
            == 2.0
        )
        assert (
            registry.get_sample_value(
                "studygen_generation_requests_total",
                {"kind": "Flashcards", "outcome": "BudgetExceeded"},
            )
            == 1.0
        )
        assert (
            registry.get_sample_value(
                "studygen_generation_duration_seconds_count", {"kind": "Flashcards"}
            )
            == 3.0
        )

    def test_add_usage_increments_token_counters(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        metrics = GenerationMetrics(registry=registry)
        metrics.add_usage(
            "anthropic",
            UsageReport(
                input_tokens=100,
                output_tokens=50,
                cache_read_tokens=900,
                cache_write_tokens=0,
            ),
        )
        metrics.add_usage("anthropic", UsageReport(input_tokens=10, output_tokens=5))

        def tokens(direction: "str") -> "float | None":
            return registry.get_sample_value(
                "studygen_tokens_total",
                {"provider": "anthropic", "direction": direction},
            )

        assert tokens("input") == 110.0
        assert tokens("output") == 55.0
        assert tokens("cache_read") == 900.0
        assert tokens("cache_write") == 0.0
