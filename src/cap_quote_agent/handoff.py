"""エージェント間ハンドオフの記録と、2 つの独立した見積額の整合性チェック。

ロゴ解析エージェントは数量帯ごとのロゴ単価を、見積エージェントは合計額を別々に計算する。
`check_pricing_consistency` は両者を突き合わせ、差が許容範囲を超えたら高い方を採用する。
結果は監査・表示用で、見積の発行を止めることはない。
"""

import logging
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .adapters.pricing_rules import DEFAULT_QUANTITY_BREAKPOINTS, PricingRules
from .models import ConsistencyCheckResult, HandoffRecord, LogoAnalysisResult, ResolutionMethod

logger = logging.getLogger(__name__)


class HandoffLog(BaseModel):
    """スレッドごとのハンドオフ履歴（追記のみ）。

    Attributes:
        records: 受け取った順の HandoffRecord。
        quote_generation_ready: ロゴ解析結果を伴うハンドオフを一度でも受け取ったか。
        pricing_validated: 直近の整合性チェックで不一致が無かったか（未実施なら None）。
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    records: List[HandoffRecord] = Field(default_factory=list)
    quote_generation_ready: bool = False
    pricing_validated: Optional[bool] = None

    def append(self, record: HandoffRecord) -> "HandoffLog":
        """record を末尾に追加した新しいログを返す。"""
        ready = self.quote_generation_ready or record.logo_analysis_result is not None
        logger.info(
            "handoff %s -> %s (%s) analysis=%s",
            record.from_agent,
            record.to_agent,
            record.handoff_type.value,
            record.logo_analysis_result.analysis_id if record.logo_analysis_result else None,
        )
        return self.model_copy(update={"records": [*self.records, record], "quote_generation_ready": ready})

    def latest_analysis(self) -> Optional[LogoAnalysisResult]:
        """ロゴ解析結果を持つ最新のハンドオフから、その結果を返す。"""
        for record in reversed(self.records):
            if record.logo_analysis_result is not None:
                return record.logo_analysis_result
        return None


def select_tier(quantity: int, breakpoints: Sequence[int] = DEFAULT_QUANTITY_BREAKPOINTS) -> int:
    """数量以上で最小のブレークポイントを返す。全てを超える数量なら最大のブレークポイント。"""
    ordered = sorted(breakpoints)
    for tier in ordered:
        if quantity <= tier:
            return tier
    return ordered[-1]


def estimate_logo_cost(
    analysis: Optional[LogoAnalysisResult],
    quantity: int,
    breakpoints: Sequence[int] = DEFAULT_QUANTITY_BREAKPOINTS,
) -> Tuple[Optional[float], int]:
    """ロゴ解析結果から `単価 × 数量` を求める。

    Returns:
        (見積額 or None, 使用したブレークポイント)。解析結果が無い、または該当帯の単価が無い場合は None。
    """
    tier = select_tier(quantity, breakpoints)
    if analysis is None:
        return None, tier
    unit = analysis.unit_price(tier)
    if unit is None:
        logger.debug("analysis %s has no unit price for tier %d", analysis.analysis_id, tier)
        return None, tier
    return round(unit * quantity, 2), tier


def check_pricing_consistency(
    analysis: Optional[LogoAnalysisResult],
    quantity: int,
    quote_cost: float,
    rules: Optional[PricingRules] = None,
) -> ConsistencyCheckResult:
    """ロゴ解析による見積額と見積エージェントの合計額を突き合わせる。

    振る舞い:
    - 相対差 = |差| / max(両者)。許容誤差（既定 5%）以内なら不一致なしで quote_cost を採用、信頼度 1.0。
    - 許容誤差を超えたら不一致ありとし、高い方を採用（過少見積を避ける）、信頼度は `rules.discrepancy_confidence`。
    - 解析結果または該当帯の単価が無ければ quote_cost をそのまま採用する。

    Args:
    - analysis: 直近のロゴ解析結果（無ければ None）。
    - quantity: 注文数量。
    - quote_cost: 見積エージェントが算出した額。
    - rules: 許容誤差などの業務定数（省略時は既定値）。

    Returns:
    - ConsistencyCheckResult: 毎回新しく作られる監査用の結果。
    """
    rules = rules or PricingRules()
    logo_cost, tier = estimate_logo_cost(analysis, quantity, rules.quantity_breakpoints)
    if logo_cost is None:
        result = ConsistencyCheckResult(
            logo_analysis_cost=0.0,
            quote_cost=quote_cost,
            discrepancy_found=False,
            resolved_cost=quote_cost,
            resolution_method=ResolutionMethod.USE_QUOTE_CALCULATION,
            confidence=1.0,
            quantity=quantity,
            tier=tier if analysis is not None else None,
        )
        logger.info("pricing check skipped: no logo estimate for quantity=%d", quantity)
        return result

    difference = abs(logo_cost - quote_cost)
    larger = max(logo_cost, quote_cost)
    relative = difference / larger if larger > 0 else 0.0

    if relative <= rules.tolerance:
        result = ConsistencyCheckResult(
            logo_analysis_cost=logo_cost,
            quote_cost=quote_cost,
            discrepancy_found=False,
            resolved_cost=quote_cost,
            resolution_method=ResolutionMethod.USE_QUOTE_CALCULATION,
            confidence=1.0,
            quantity=quantity,
            tier=tier,
        )
    else:
        result = ConsistencyCheckResult(
            logo_analysis_cost=logo_cost,
            quote_cost=quote_cost,
            discrepancy_found=True,
            resolved_cost=larger,
            resolution_method=(
                ResolutionMethod.USE_LOGO_ANALYSIS if logo_cost > quote_cost else ResolutionMethod.USE_QUOTE_CALCULATION
            ),
            confidence=rules.discrepancy_confidence,
            discrepancy_amount=round(difference, 2),
            discrepancy_reason=(
                f"Logo analysis and quote calculation differ by more than {rules.tolerance * 100:g}%"
            ),
            quantity=quantity,
            tier=tier,
        )
    logger.info(
        "pricing check: logo=%.2f quote=%.2f diff=%.1f%% -> discrepancy=%s resolved=%.2f",
        logo_cost,
        quote_cost,
        relative * 100,
        result.discrepancy_found,
        result.resolved_cost,
    )
    return result


__all__ = ["HandoffLog", "select_tier", "estimate_logo_cost", "check_pricing_consistency"]
