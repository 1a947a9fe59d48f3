import pytest

from src.models.research import ProviderRole
from src.services.health.provider_health import ProviderHealthRegistry


def _registry(clock) -> ProviderHealthRegistry:
    return ProviderHealthRegistry(
        ewma_weight=0.3, error_rate_threshold=0.5, latency_ceiling_ms=30000, clock=clock
    )


def test_first_sample_seeds_latency(clock) -> None:
    registry = _registry(clock)
    health = registry.record(ProviderRole.PRIMARY, 1200, success=True)

    assert health.avg_latency_ms == 1200
    assert health.error_rate == 0
    assert health.samples == 1
    assert health.last_updated == clock.now


def test_latency_and_error_rate_are_exponentially_weighted(clock) -> None:
    registry = _registry(clock)
    registry.record(ProviderRole.PRIMARY, 1000, success=True)
    health = registry.record(ProviderRole.PRIMARY, 2000, success=False)

    assert health.avg_latency_ms == pytest.approx(0.3 * 2000 + 0.7 * 1000)
    assert health.error_rate == pytest.approx(0.3)


def test_two_consecutive_failures_trip_the_error_gate(clock) -> None:
    registry = _registry(clock)
    registry.record(ProviderRole.PRIMARY, 100, success=False)
    assert registry.unhealthy_reason(ProviderRole.PRIMARY) is None

    registry.record(ProviderRole.PRIMARY, 100, success=False)
    reason = registry.unhealthy_reason(ProviderRole.PRIMARY)
    assert reason is not None
    assert "error rate" in reason


def test_slow_provider_trips_the_latency_gate(clock) -> None:
    registry = _registry(clock)
    registry.record(ProviderRole.PRIMARY, 45000, success=True)

    reason = registry.unhealthy_reason(ProviderRole.PRIMARY)
    assert reason is not None
    assert "latency" in reason


def test_available_flag_follows_error_rate(clock) -> None:
    registry = _registry(clock)
    for _ in range(4):
        registry.record(ProviderRole.SECONDARY, 10, success=False)
    assert registry.get(ProviderRole.SECONDARY).available is True

    registry.record(ProviderRole.SECONDARY, 10, success=False)
    assert registry.get(ProviderRole.SECONDARY).available is False

    for _ in range(5):
        registry.record(ProviderRole.SECONDARY, 10, success=True)
    assert registry.get(ProviderRole.SECONDARY).available is True


def test_snapshots_are_detached_and_reset_clears(clock) -> None:
    registry = _registry(clock)
    snapshot = registry.get(ProviderRole.PRIMARY)
    snapshot.error_rate = 1.0
    assert registry.get(ProviderRole.PRIMARY).error_rate == 0

    registry.record(ProviderRole.PRIMARY, 100, success=False)
    registry.reset()
    assert registry.get(ProviderRole.PRIMARY).samples == 0
    assert set(registry.all()) == {ProviderRole.PRIMARY, ProviderRole.SECONDARY}


def test_mark_recovered_clears_error_rate_but_keeps_latency(clock) -> None:
    registry = _registry(clock)
    for _ in range(6):
        registry.record(ProviderRole.PRIMARY, 2000, success=False)
    assert registry.unhealthy_reason(ProviderRole.PRIMARY) is not None

    health = registry.mark_recovered(ProviderRole.PRIMARY)

    assert health.error_rate == 0
    assert health.available is True
    assert health.avg_latency_ms == 2000
    assert registry.unhealthy_reason(ProviderRole.PRIMARY) is None
