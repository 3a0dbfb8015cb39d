# tests/test_handoff.py
import pytest

from cap_quote_agent.adapters.pricing_rules import PricingRules
from cap_quote_agent.handoff import HandoffLog, check_pricing_consistency, estimate_logo_cost, select_tier
from cap_quote_agent.models import (
    HandoffRecord,
    HandoffType,
    LogoAnalysisResult,
    LogoMethodRecommendation,
    LogoMethod,
    ResolutionMethod,
)


def _analysis(analysis_id: str = "a-1", **pricing) -> LogoAnalysisResult:
    return LogoAnalysisResult(
        analysis_id=analysis_id,
        recommended_methods=[LogoMethodRecommendation(method=LogoMethod.EMBROIDERY_3D, pricing=pricing or {"price144": 1.0})],
    )


@pytest.mark.parametrize(
    "quantity, tier",
    [(1, 48), (48, 48), (49, 144), (144, 144), (145, 576), (1200, 2880), (20000, 20000), (25000, 20000)],
)
def test_select_tier(quantity, tier):
    assert select_tier(quantity) == tier


def test_unit_prices_accept_price_prefixed_keys():
    rec = LogoMethodRecommendation(method="3D Embroidery", pricing={"price48": 1.5, "144": 1.0, 576: 0.8})
    assert rec.pricing == {48: 1.5, 144: 1.0, 576: 0.8}


def test_estimate_logo_cost_uses_unit_times_quantity():
    assert estimate_logo_cost(_analysis(), 100) == (100.0, 144)
    assert estimate_logo_cost(_analysis(), 600) == (None, 1152)
    assert estimate_logo_cost(None, 100) == (None, 144)


# ----------------------------- consistency tolerance -----------------------------
def test_quote_within_tolerance_above_logo_estimate():
    result = check_pricing_consistency(_analysis(), 100, 104.0)
    assert result.logo_analysis_cost == 100.0
    assert result.discrepancy_found is False
    assert result.resolved_cost == 104.0
    assert result.confidence == 1.0
    assert result.resolution_method == ResolutionMethod.USE_QUOTE_CALCULATION


def test_quote_within_tolerance_below_logo_estimate():
    result = check_pricing_consistency(_analysis(), 100, 96.0)
    assert result.discrepancy_found is False
    assert result.resolved_cost == 96.0


def test_discrepancy_resolves_to_higher_estimate():
    result = check_pricing_consistency(_analysis(), 100, 80.0)
    assert result.discrepancy_found is True
    assert result.resolved_cost == 100.0
    assert result.confidence == 0.8
    assert result.resolution_method == ResolutionMethod.USE_LOGO_ANALYSIS
    assert result.discrepancy_amount == 20.0
    assert "5%" in result.discrepancy_reason
    assert result.tier == 144


def test_discrepancy_with_higher_quote_keeps_quote():
    result = check_pricing_consistency(_analysis(), 100, 130.0)
    assert result.discrepancy_found is True
    assert result.resolved_cost == 130.0
    assert result.resolution_method == ResolutionMethod.USE_QUOTE_CALCULATION


def test_no_analysis_returns_quote_unchallenged():
    result = check_pricing_consistency(None, 100, 80.0)
    assert result.discrepancy_found is False
    assert result.logo_analysis_cost == 0.0
    assert result.resolved_cost == 80.0
    assert result.tier is None


def test_tolerance_is_configurable():
    rules = PricingRules(tolerance=0.25, discrepancy_confidence=0.6)
    assert check_pricing_consistency(_analysis(), 100, 80.0, rules).discrepancy_found is False
    assert check_pricing_consistency(_analysis(), 100, 50.0, rules).confidence == 0.6


# ----------------------------- handoff log -----------------------------
def test_handoff_log_marks_ready_only_with_analysis():
    log = HandoffLog()
    log = log.append(HandoffRecord(from_agent="Support", to_agent="LogoAnalyzer", handoff_type=HandoffType.QUOTE_REFINEMENT))
    assert log.quote_generation_ready is False

    log = log.append(
        HandoffRecord(
            from_agent="LogoAnalyzer",
            to_agent="QuoteMaster",
            handoff_type=HandoffType.LOGO_TO_QUOTE,
            logo_analysis_result=_analysis("a-1"),
        )
    )
    log = log.append(HandoffRecord(from_agent="QuoteMaster", to_agent="Support", handoff_type="cost-verification"))
    assert log.quote_generation_ready is True
    assert [r.from_agent for r in log.records] == ["Support", "LogoAnalyzer", "QuoteMaster"]
    assert log.latest_analysis().analysis_id == "a-1"


def test_latest_analysis_is_most_recent():
    log = HandoffLog()
    for analysis_id in ("a-1", "a-2"):
        log = log.append(
            HandoffRecord(
                from_agent="LogoAnalyzer",
                to_agent="QuoteMaster",
                handoff_type=HandoffType.LOGO_TO_QUOTE,
                logo_analysis_result=_analysis(analysis_id),
            )
        )
    assert log.latest_analysis().analysis_id == "a-2"


def test_builder_validate_pricing_uses_recorded_analysis(builder):
    assert builder.validate_pricing(100, 80.0).discrepancy_found is False

    builder.record_handoff(
        {
            "fromAgent": "LogoAnalyzer",
            "toAgent": "QuoteMaster",
            "handoffType": "logo-to-quote",
            "logoAnalysisResult": {
                "analysisId": "a-9",
                "recommendedMethods": [{"method": "3D Embroidery", "pricing": {"price144": 1.0}}],
            },
        }
    )
    assert builder.is_ready_for_quote_generation is True

    result = builder.validate_pricing(100, 80.0)
    assert result.discrepancy_found is True
    assert result.resolved_cost == 100.0
    assert builder.handoffs.pricing_validated is False
