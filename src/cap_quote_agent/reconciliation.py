"""最大 3 つの候補仕様を 1 つにまとめるマージ規則。

ソースの優先度（項目グループ単位）:
- style / delivery / moldCharge: persisted > agent_structured > text_extracted（項目ごと）
- accessories: 名前で和集合（persisted → agent → text の順で安定）
- logos: persisted を丸ごと保持し、新しい (location, method) だけ後ろに追加
- pricing: 最新のソース（agent → text → persisted）で total を持つものをそのまま採用

I/O を持たない純関数。入力は変更しない。
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    STYLE_FIELDS,
    CustomizationSpec,
    DeliverySpec,
    LogoEntry,
    PricingSpec,
    ProductSpecification,
    StyleSpec,
)

logger = logging.getLogger(__name__)

DELIVERY_FIELDS = ("method", "lead_time", "cost")

# 確定済みの値を優先する順
CONFIRMED_FIRST = ("persisted", "agent_structured", "text_extracted")
# 新しい値を優先する順
LATEST_FIRST = ("agent_structured", "text_extracted", "persisted")


def _first_present(field: str, candidates: Sequence[Tuple[str, object]], *, group: str):
    for source, value in candidates:
        if value is None or value == []:
            continue
        logger.debug("merge %s.%s <- %s", group, field, source)
        return value
    return None


def _merge_style(sources: Dict[str, ProductSpecification]) -> StyleSpec:
    values = {}
    for field in STYLE_FIELDS:
        candidates = [(name, getattr(sources[name].style, field)) for name in CONFIRMED_FIRST if name in sources]
        value = _first_present(field, candidates, group="style")
        if value is not None:
            values[field] = value
    return StyleSpec(**values)


def _merge_delivery(sources: Dict[str, ProductSpecification]) -> DeliverySpec:
    values = {}
    for field in DELIVERY_FIELDS:
        candidates = [(name, getattr(sources[name].delivery, field)) for name in CONFIRMED_FIRST if name in sources]
        values[field] = _first_present(field, candidates, group="delivery")
    return DeliverySpec(**values)


def _union_accessories(sources: Dict[str, ProductSpecification]) -> List[str]:
    merged: List[str] = []
    for name in CONFIRMED_FIRST:
        if name not in sources:
            continue
        for accessory in sources[name].customization.accessories:
            if accessory not in merged:
                merged.append(accessory)
    return merged


def _merge_logos(sources: Dict[str, ProductSpecification]) -> List[LogoEntry]:
    merged: List[LogoEntry] = []
    seen = set()
    for name in CONFIRMED_FIRST:
        if name not in sources:
            continue
        for logo in sources[name].customization.logos:
            if logo.key in seen:
                continue
            if name != "persisted":
                logger.debug("merge logo appended from %s: %s %s", name, logo.location.value, logo.method.value)
            seen.add(logo.key)
            merged.append(logo)
    return merged


def _latest_pricing(sources: Dict[str, ProductSpecification]) -> Optional[PricingSpec]:
    for name in LATEST_FIRST:
        if name in sources and sources[name].pricing is not None:
            logger.debug("merge pricing <- %s (total=%s)", name, sources[name].pricing.total)
            return sources[name].pricing
    return None


def merge_specifications(
    agent_structured: Optional[ProductSpecification] = None,
    text_extracted: Optional[ProductSpecification] = None,
    persisted: Optional[ProductSpecification] = None,
) -> ProductSpecification:
    """3 つの候補仕様をマージして新しい ProductSpecification を返す。

    振る舞い:
    - 上位ソースにある項目は下位ソースで上書きされない（前のターンで確定した値は後退しない）。
    - 上位ソースで項目が「なし」のときだけ下位ソースの値を使う。
    - どのソースも無ければ空の仕様を返す。

    Args:
    - agent_structured: エージェントが直接返した構造化ペイロード（正規化済み）。
    - text_extracted: テキスト抽出の結果。
    - persisted: このスレッドで既に保存されている仕様。

    Returns:
    - ProductSpecification: マージ結果（入力とは別インスタンス）。
    """
    given = {
        "agent_structured": agent_structured,
        "text_extracted": text_extracted,
        "persisted": persisted,
    }
    sources = {name: spec for name, spec in given.items() if spec is not None}
    if not sources:
        return ProductSpecification()

    mold_candidates = [
        (name, sources[name].customization.mold_charge) for name in CONFIRMED_FIRST if name in sources
    ]
    merged = ProductSpecification(
        style=_merge_style(sources),
        customization=CustomizationSpec(
            logos=_merge_logos(sources),
            accessories=_union_accessories(sources),
            mold_charge=_first_present("mold_charge", mold_candidates, group="customization"),
        ),
        delivery=_merge_delivery(sources),
        pricing=_latest_pricing(sources),
    )
    logger.info(
        "merged %s: style=%d/%d logos=%d accessories=%d priced=%s",
        "+".join(sources),
        len(merged.style.present_fields()),
        len(STYLE_FIELDS),
        len(merged.customization.logos),
        len(merged.customization.accessories),
        merged.pricing is not None,
    )
    return merged


__all__ = ["merge_specifications", "CONFIRMED_FIRST", "LATEST_FIRST"]
