from unittest.mock import AsyncMock

import httpx
import pytest

from src.clients.http_client import HTTPClientPool
from src.models.research import AuthorityTier, ValidationResult
from src.services.reliability.scorer import (
    ProbeOutcome,
    ReliabilityScorer,
    estimate_content_quality,
)


def _ok_probe(latency_ms: float = 100.0) -> AsyncMock:
    return AsyncMock(return_value=ProbeOutcome(accessible=True, latency_ms=latency_ms))


def _scorer(clock, probe) -> ReliabilityScorer:
    return ReliabilityScorer(probe=probe, clock=clock, sleep=clock.sleep)


class TestValidate:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.facebook.com/some-post",
            "https://example.com/article",
            "http://localhost:8080/x",
            "https://reddit.com/r/python",
            "https://old.reddit.com/r/python",
            "https://m.facebook.com/some-post",
        ],
    )
    async def test_blacklisted_host_is_rejected_without_probe(self, clock, url: str) -> None:
        probe = _ok_probe()
        result = await _scorer(clock, probe).validate(url)

        assert result.is_valid is False
        assert result.reliability_score == 0
        assert "blacklisted" in (result.reason or "")
        assert probe.await_count == 0

    @pytest.mark.asyncio
    async def test_non_http_scheme_is_rejected_without_probe(self, clock) -> None:
        probe = _ok_probe()
        result = await _scorer(clock, probe).validate("ftp://files.stanford.edu/paper.pdf")

        assert result.is_valid is False
        assert result.reliability_score == 0
        assert probe.await_count == 0

    @pytest.mark.asyncio
    async def test_malformed_url_is_rejected(self, clock) -> None:
        probe = _ok_probe()
        result = await _scorer(clock, probe).validate("not a url")

        assert result.is_valid is False
        assert probe.await_count == 0

    @pytest.mark.asyncio
    async def test_high_authority_source_scores_high(self, clock) -> None:
        result = await _scorer(clock, _ok_probe()).validate("https://www.harvard.edu/research")

        assert result.is_valid is True
        assert result.is_accessible is True
        assert result.authority == AuthorityTier.HIGH
        assert result.reliability_score == 100

    @pytest.mark.asyncio
    async def test_unknown_host_gets_neutral_score(self, clock) -> None:
        result = await _scorer(clock, _ok_probe()).validate("http://somesite.com/a")

        # 60 + 3（响应快）
        assert result.authority == AuthorityTier.MEDIUM
        assert result.reliability_score == 63
        assert result.is_valid is True

    @pytest.mark.asyncio
    async def test_slow_response_is_penalised(self, clock) -> None:
        fast = await _scorer(clock, _ok_probe(100)).validate("https://forbes.com/a")
        slow = await _scorer(clock, _ok_probe(6000)).validate("https://forbes.com/a")

        assert fast.reliability_score - slow.reliability_score == 8

    @pytest.mark.asyncio
    async def test_inaccessible_source_is_penalised(self, clock) -> None:
        probe = AsyncMock(
            return_value=ProbeOutcome(accessible=False, latency_ms=8000, reason="Request timeout (8s)")
        )
        result = await _scorer(clock, probe).validate("https://unknown-host.io/page")

        assert result.is_accessible is False
        assert result.is_valid is False
        assert result.reliability_score == 30
        assert result.reason == "Request timeout (8s)"

    @pytest.mark.asyncio
    async def test_results_are_cached_for_a_day(self, clock) -> None:
        probe = _ok_probe()
        scorer = _scorer(clock, probe)

        await scorer.validate("https://hbr.org/x")
        await scorer.validate("https://hbr.org/x")
        assert probe.await_count == 1

        await scorer.validate("https://hbr.org/x", skip_cache=True)
        assert probe.await_count == 2

        clock.advance(24 * 60 * 60 + 1)
        await scorer.validate("https://hbr.org/x")
        assert probe.await_count == 3

        stats = scorer.get_cache_stats()
        assert stats["size"] == 1
        assert stats["hit_rate"] == pytest.approx(1 / 3, abs=1e-3)

        scorer.clear_cache()
        assert scorer.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_expired_entries_are_pruned_on_write(self, clock) -> None:
        scorer = _scorer(clock, _ok_probe())

        await scorer.validate("https://hbr.org/a")
        await scorer.validate("https://hbr.org/b")
        clock.advance(24 * 60 * 60 + 1)
        await scorer.validate("https://hbr.org/c")

        assert scorer.get_cache_stats()["size"] == 1

    @pytest.mark.asyncio
    async def test_cache_evicts_least_recently_used(self, clock) -> None:
        probe = _ok_probe()
        scorer = ReliabilityScorer(
            probe=probe, cache_max_entries=2, clock=clock, sleep=clock.sleep
        )

        await scorer.validate("https://hbr.org/a")
        await scorer.validate("https://hbr.org/b")
        await scorer.validate("https://hbr.org/a")
        await scorer.validate("https://hbr.org/c")
        assert probe.await_count == 3
        assert scorer.get_cache_stats()["size"] == 2

        await scorer.validate("https://hbr.org/a")
        assert probe.await_count == 3
        await scorer.validate("https://hbr.org/b")
        assert probe.await_count == 4


class TestBatch:
    @pytest.mark.asyncio
    async def test_batches_pause_and_sort_descending(self, clock) -> None:
        scorer = _scorer(clock, _ok_probe())
        urls = [
            "http://somesite.com/1",
            "https://harvard.edu/2",
            "https://facebook.com/3",
            "https://forbes.com/4",
            "https://mit.edu/5",
            "http://another.net/6",
            "https://reuters.com/7",
        ]

        results = await scorer.validate_batch(urls)

        assert len(results) == 7
        assert clock.sleeps == [1.0, 1.0]
        scores = [r.reliability_score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert results[-1].url == "https://facebook.com/3"

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_break_batch(self, clock) -> None:
        async def probe(url: str) -> ProbeOutcome:
            if "broken" in url:
                raise RuntimeError("boom")
            return ProbeOutcome(accessible=True, latency_ms=50)

        scorer = _scorer(clock, probe)
        results = await scorer.validate_batch(["https://broken.org/a", "https://wired.com/b"])

        by_url = {r.url: r for r in results}
        assert by_url["https://broken.org/a"].reason == "Validation failed"
        assert by_url["https://broken.org/a"].is_valid is False
        assert by_url["https://wired.com/b"].is_valid is True


class TestSummary:
    def _results(self) -> list[ValidationResult]:
        return [
            ValidationResult(
                url="https://hbr.org/a", is_valid=True, reliability_score=95, authority=AuthorityTier.HIGH
            ),
            ValidationResult(
                url="https://hbr.org/b", is_valid=True, reliability_score=85, authority=AuthorityTier.HIGH
            ),
            ValidationResult(
                url="http://somesite.com/c",
                is_valid=True,
                reliability_score=63,
                authority=AuthorityTier.MEDIUM,
            ),
            ValidationResult(
                url="https://low.example.org/d",
                is_valid=True,
                reliability_score=75,
                authority=AuthorityTier.LOW,
            ),
            ValidationResult(url="https://facebook.com/e"),
        ]

    def test_high_quality_sources(self) -> None:
        assert ReliabilityScorer.get_high_quality_sources(self._results()) == [
            "https://hbr.org/a",
            "https://hbr.org/b",
        ]

    def test_reliability_summary(self) -> None:
        summary = ReliabilityScorer.get_reliability_summary(self._results())

        assert summary.total_sources == 5
        assert summary.valid_sources == 4
        assert summary.high_quality_sources == 3
        assert summary.average_score == round((95 + 85 + 63 + 75) / 4)
        assert summary.top_domains[0] == "hbr.org"

    def test_empty_summary(self) -> None:
        summary = ReliabilityScorer.get_reliability_summary([])
        assert summary.valid_sources == 0
        assert summary.average_score == 0


def test_content_quality_heuristics() -> None:
    assert estimate_content_quality("cs.university.edu") == 95
    assert estimate_content_quality("cdc.gov") == 75
    assert estimate_content_quality("myblog.com") == 40
    assert estimate_content_quality("localnews.com") == 45


class TestHttpProbe:
    @pytest.mark.asyncio
    async def test_http_probe_uses_head_request(
        self, clock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.method)
            if request.url.path == "/missing":
                return httpx.Response(404)
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        monkeypatch.setattr(HTTPClientPool, "_probe_client", client)
        try:
            scorer = ReliabilityScorer(clock=clock, sleep=clock.sleep)
            ok = await scorer.validate("https://wired.com/story")
            missing = await scorer.validate("https://wired.com/missing")
        finally:
            await client.aclose()

        assert seen == ["HEAD", "HEAD"]
        assert ok.is_accessible is True
        assert ok.is_valid is True
        assert missing.is_accessible is False
        assert missing.reason == "HTTP 404 Not Found"

    @pytest.mark.asyncio
    async def test_http_probe_network_error_is_inaccessible(
        self, clock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        monkeypatch.setattr(HTTPClientPool, "_probe_client", client)
        try:
            result = await ReliabilityScorer(clock=clock).validate("https://ieee.org/x")
        finally:
            await client.aclose()

        assert result.is_accessible is False
        assert result.reliability_score == 89 - 30
        assert "connection refused" in (result.reason or "")
