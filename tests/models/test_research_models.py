from src.models.research import AuthorityTier, RequesterContext, ValidationResult


def test_context_from_camel_case_profile() -> None:
    context = RequesterContext.from_dict(
        {
            "primaryDomain": "Healthcare",
            "keywords": ["telemedicine"],
            "trustedSources": ["https://nejm.org"],
            "targetAudience": None,
            "platforms": ["linkedin", "newsletter"],
        }
    )

    assert context.primary_domain == "Healthcare"
    assert context.normalized_domain == "healthcare"
    assert context.keywords == ("telemedicine",)
    assert context.trusted_sources == ("https://nejm.org",)
    assert context.target_audience == ""
    assert context.platforms == ("linkedin", "newsletter")


def test_profile_hash_ignores_keywords_and_platform_order() -> None:
    a = RequesterContext(primary_domain="finance", keywords=("bonds",), platforms=("x", "linkedin"))
    b = RequesterContext(primary_domain="finance", keywords=("equities",), platforms=("linkedin", "x"))
    c = RequesterContext(primary_domain="finance", target_audience="CFOs")

    assert a.profile_hash() == b.profile_hash()
    assert a.profile_hash() != c.profile_hash()


def test_validation_result_to_dict() -> None:
    result = ValidationResult(
        url="https://hbr.org/a",
        is_valid=True,
        is_accessible=True,
        reliability_score=95,
        authority=AuthorityTier.HIGH,
        checked_at=0.0,
    )

    data = result.to_dict()
    assert data["authority"] == "high"
    assert data["checked_at"] == "1970-01-01T00:00:00+00:00"
    assert data["reason"] is None
