"""
Prometheus metrics for merchant onboarding monitoring.

Tracks:
- Merchant status transitions
- Tariff lookup cache hits and misses
- Cost materialization outcomes
- System fee writes and payment-time fee matching
"""
from prometheus_client import Counter, Histogram

merchant_status_transitions_total = Counter(
    "merchant_status_transitions_total",
    "Total merchant status transitions",
    ["from_status", "to_status"],
)

merchant_status_rejections_total = Counter(
    "merchant_status_rejections_total",
    "Total rejected merchant status changes",
    ["error_code"],
)

tariff_cache_lookups_total = Counter(
    "tariff_cache_lookups_total",
    "Total tariff lookups by cache outcome",
    ["result"],  # hit, miss
)

tariff_materializations_total = Counter(
    "tariff_materializations_total",
    "Total merchant tariff materializations",
    ["outcome"],  # success, rejected, failed
)

materialized_cost_records = Histogram(
    "materialized_cost_records",
    "Cost records created per materialization",
    ["kind"],  # payment_channel, money_back
    buckets=(1, 2, 5, 10, 25, 50, 100, 250, 500),
)

system_fees_writes_total = Counter(
    "system_fees_writes_total",
    "Total system fee write attempts",
    ["status"],
)

fee_match_total = Counter(
    "fee_match_total",
    "Total payment-time fee matches",
    ["result"],  # matched, not_found, no_min_amount
)


class OnboardingMetrics:
    """
    Centralized metrics recording for the onboarding core.

    Provides convenient methods for recording metrics.
    """

    @staticmethod
    def record_transition(from_status: int, to_status: int) -> None:
        """Record an applied merchant status transition."""
        merchant_status_transitions_total.labels(
            from_status=str(int(from_status)), to_status=str(int(to_status))
        ).inc()

    @staticmethod
    def record_rejected_transition(error_code: str) -> None:
        merchant_status_rejections_total.labels(error_code=error_code).inc()

    @staticmethod
    def record_tariff_lookup(hit: bool) -> None:
        tariff_cache_lookups_total.labels(result="hit" if hit else "miss").inc()

    @staticmethod
    def record_materialization(outcome: str, payment_costs: int = 0, money_back_costs: int = 0) -> None:
        """
        Record a materialization attempt.

        Args:
            outcome: success, rejected or failed
            payment_costs: Payment channel cost records created
            money_back_costs: Money back cost records created
        """
        tariff_materializations_total.labels(outcome=outcome).inc()
        if outcome == "success":
            materialized_cost_records.labels(kind="payment_channel").observe(payment_costs)
            materialized_cost_records.labels(kind="money_back").observe(money_back_costs)

    @staticmethod
    def record_system_fees_write(status: int) -> None:
        system_fees_writes_total.labels(status=str(int(status))).inc()

    @staticmethod
    def record_fee_match(result: str) -> None:
        fee_match_total.labels(result=result).inc()


metrics = OnboardingMetrics()
