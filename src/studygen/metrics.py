from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from studygen.models import UsageReport


class GenerationMetrics:
    """
    records generation outcomes and provider token usage as
    Prometheus metrics.
     - generation_requests_total: generation calls by artifact kind
     and outcome (success, or the error class name).
     - tokens_total: tokens reported by providers, labeled by
     direction (input/output/cache_read/cache_write).
     - generation_duration_seconds: wall time of a generation call.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._requests: "Counter" = Counter(
            "studygen_generation_requests_total",
            "Total generation requests by artifact kind and outcome",
            ["kind", "outcome"],
            registry=registry,
        )
        self._tokens: "Counter" = Counter(
            "studygen_tokens_total",
            "Total tokens reported by providers",
            ["provider", "direction"],
            registry=registry,
        )
        self._duration: "Histogram" = Histogram(
            "studygen_generation_duration_seconds",
            "Duration of generation calls",
            ["kind"],
            registry=registry,
        )

    def observe_request(
        self, kind: "str", outcome: "str", duration_seconds: "float"
    ) -> "None":
        self._requests.labels(kind=kind, outcome=outcome).inc()
        self._duration.labels(kind=kind).observe(duration_seconds)

    def add_usage(self, provider: "str", usage: "UsageReport") -> "None":
        """
        updates the token counters from one provider response.
        """
        self._tokens.labels(provider=provider, direction="input").inc(
            usage.input_tokens
        )
        self._tokens.labels(provider=provider, direction="output").inc(
            usage.output_tokens
        )
        self._tokens.labels(provider=provider, direction="cache_read").inc(
            usage.cache_read_tokens
        )
        self._tokens.labels(provider=provider, direction="cache_write").inc(
            usage.cache_write_tokens
        )
