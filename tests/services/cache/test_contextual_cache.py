import pytest

from src.models.research import ContentClass, RequesterContext
from src.services.cache.contextual_cache import ContextualCache

TECH = RequesterContext(primary_domain="technology", platforms=("linkedin",))
FINANCE = RequesterContext(primary_domain="finance", platforms=("twitter",), target_audience="cfo")


def test_trending_ttl_end_to_end(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.set("ai agents", {"topics": [1]}, TECH, ContentClass.TRENDING, reliability=95)

    ttl = 2 * 60 * 60 * 0.5 * 0.8 * 1.5
    assert cache.calculate_ttl(ContentClass.TRENDING, TECH, 95) == pytest.approx(ttl)

    clock.advance(ttl * 0.9)
    assert cache.get("ai agents", TECH, ContentClass.TRENDING) == {"topics": [1]}

    clock.advance(ttl * 0.2)
    assert cache.get("ai agents", TECH, ContentClass.TRENDING) is None
    assert len(cache) == 0


def test_ttl_is_floored_at_minimum(clock) -> None:
    cache = ContextualCache(
        base_ttl_seconds={"general": 600},
        min_ttl_seconds=1800,
        clock=clock,
    )
    assert cache.calculate_ttl(ContentClass.GENERAL, FINANCE, 50) == 1800


def test_unknown_content_class_uses_general_ttl(clock) -> None:
    cache = ContextualCache(clock=clock)
    assert cache.calculate_ttl("podcasts", FINANCE, 80) == cache.calculate_ttl(
        ContentClass.GENERAL, FINANCE, 80
    )


def test_fast_moving_domain_match_is_case_insensitive(clock) -> None:
    cache = ContextualCache(clock=clock)
    ctx = RequesterContext(primary_domain="  Cryptocurrency ")
    slow_ctx = RequesterContext(primary_domain="gardening")
    assert cache.calculate_ttl(ContentClass.RESEARCH, ctx, 80) == pytest.approx(
        cache.calculate_ttl(ContentClass.RESEARCH, slow_ctx, 80) * 0.5
    )


def test_trending_in_fast_moving_domain_goes_stale_after_three_hours(clock) -> None:
    # 放大 TTL 下限，使智能失效先于 TTL 生效
    cache = ContextualCache(min_ttl_seconds=6 * 60 * 60, clock=clock)
    cache.set("q", "payload", TECH, ContentClass.TRENDING, reliability=95)

    clock.advance(3 * 60 * 60 - 1)
    assert cache.get("q", TECH, ContentClass.TRENDING) == "payload"

    clock.advance(2)
    assert cache.get("q", TECH, ContentClass.TRENDING) is None
    assert len(cache) == 0


def test_low_reliability_entry_goes_stale_after_two_hours(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.set("q", "cheap answer", FINANCE, ContentClass.GENERAL, reliability=50)

    clock.advance(60 * 60)
    assert cache.get("q", FINANCE, ContentClass.GENERAL) == "cheap answer"

    clock.advance(60 * 60 + 1)
    assert cache.get("q", FINANCE, ContentClass.GENERAL) is None


def test_key_ignores_platform_order(clock) -> None:
    cache = ContextualCache(clock=clock)
    a = RequesterContext(primary_domain="finance", platforms=("x", "linkedin"))
    b = RequesterContext(primary_domain="finance", platforms=("linkedin", "x"))
    cache.set("q", "v", a, ContentClass.RESEARCH)
    assert cache.get("q", b, ContentClass.RESEARCH) == "v"


def test_key_depends_on_audience_and_class(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.set("q", "v", FINANCE, ContentClass.RESEARCH)

    other_audience = RequesterContext(
        primary_domain="finance", platforms=("twitter",), target_audience="founders"
    )
    assert cache.get("q", other_audience, ContentClass.RESEARCH) is None
    assert cache.get("q", FINANCE, ContentClass.ANALYSIS) is None


def test_lru_evicts_oldest_last_accessed(clock) -> None:
    cache = ContextualCache(max_entries=3, clock=clock)
    for key in ("a", "b", "c"):
        cache.set(key, key, FINANCE, ContentClass.RESEARCH)
        clock.advance(1)

    assert cache.get("a", FINANCE, ContentClass.RESEARCH) == "a"
    clock.advance(1)
    cache.set("d", "d", FINANCE, ContentClass.RESEARCH)

    assert len(cache) == 3
    assert cache.peek("b", FINANCE, ContentClass.RESEARCH) is None
    for key in ("a", "c", "d"):
        assert cache.peek(key, FINANCE, ContentClass.RESEARCH) is not None


def test_capacity_is_never_exceeded(clock) -> None:
    cache = ContextualCache(max_entries=3, clock=clock)
    for i in range(10):
        cache.set(f"q{i}", i, FINANCE, ContentClass.RESEARCH)
        clock.advance(1)
        assert len(cache) <= 3

    assert cache.get("q9", FINANCE, ContentClass.RESEARCH) == 9
    assert cache.get("q6", FINANCE, ContentClass.RESEARCH) is None


def test_overwriting_existing_key_does_not_evict(clock) -> None:
    cache = ContextualCache(max_entries=2, clock=clock)
    cache.set("a", 1, FINANCE, ContentClass.RESEARCH)
    cache.set("b", 2, FINANCE, ContentClass.RESEARCH)
    cache.set("a", 3, FINANCE, ContentClass.RESEARCH)

    assert len(cache) == 2
    assert cache.get("a", FINANCE, ContentClass.RESEARCH) == 3
    assert cache.get("b", FINANCE, ContentClass.RESEARCH) == 2


def test_get_updates_access_bookkeeping(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.set("q", "v", FINANCE, ContentClass.RESEARCH)
    clock.advance(30)
    cache.get("q", FINANCE, ContentClass.RESEARCH)

    entry = cache.peek("q", FINANCE, ContentClass.RESEARCH)
    assert entry is not None
    assert entry.access_count == 2
    assert entry.last_accessed == clock.now


def test_invalidate_by_context_ignores_keywords(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.set("q1", 1, TECH, ContentClass.TRENDING)
    cache.set("q2", 2, TECH, ContentClass.RESEARCH)
    cache.set("q3", 3, FINANCE, ContentClass.RESEARCH)

    updated = RequesterContext(
        primary_domain="technology", platforms=("linkedin",), keywords=("llm",)
    )
    assert cache.invalidate_by_context(updated) == 2
    assert len(cache) == 1
    assert cache.get("q3", FINANCE, ContentClass.RESEARCH) == 3


def test_invalidate_by_content_class(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.set("q1", 1, TECH, ContentClass.TRENDING)
    cache.set("q2", 2, FINANCE, ContentClass.TRENDING)
    cache.set("q3", 3, FINANCE, ContentClass.RESEARCH)

    assert cache.invalidate_by_content_class(ContentClass.TRENDING) == 2
    assert cache.invalidate_by_content_class(ContentClass.TRENDING) == 0
    assert len(cache) == 1


def test_cleanup_expired_and_stats(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.set("short", 1, TECH, ContentClass.TRENDING, reliability=95)
    cache.set("long", 2, FINANCE, ContentClass.RESEARCH, reliability=95)

    cache.get("long", FINANCE, ContentClass.RESEARCH)
    cache.get("missing", FINANCE, ContentClass.RESEARCH)

    stats = cache.get_stats()
    assert stats.total_entries == 2
    assert stats.hit_rate == 50.0
    assert stats.miss_rate == 50.0
    assert stats.storage_size_kb == 4
    assert set(stats.top_content_classes) == {ContentClass.TRENDING, ContentClass.RESEARCH}

    clock.advance(5 * 60 * 60)
    assert cache.cleanup_expired() == 1
    assert len(cache) == 1


def test_clear_resets_counters(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.set("q", 1, FINANCE, ContentClass.RESEARCH)
    cache.get("q", FINANCE, ContentClass.RESEARCH)
    cache.clear()

    assert len(cache) == 0
    assert cache.hit_rate() == 0.0


@pytest.mark.asyncio
async def test_background_cleanup_can_be_closed(clock) -> None:
    cache = ContextualCache(clock=clock)
    cache.start_background_cleanup(interval_seconds=3600)
    assert cache._cleanup_task is not None

    await cache.close()
    assert cache._cleanup_task is None
