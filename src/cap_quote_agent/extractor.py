"""エージェントの自然文応答から製品構成の各項目を抽出する。

抽出は例外を投げない。一致しなかった項目は「なし」として返し、最悪でも空の仕様になる。
どのカスケードエントリがどの項目に一致したかは `ExtractionResult.matches` とログに残す。
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from . import normalizer as nz
from .models import (
    CustomizationSpec,
    DeliverySpec,
    LogoEntry,
    LogoLocation,
    PricingSpec,
    ProductSpecification,
    StyleSpec,
)
from .patterns import (
    ACCESSORY_KEYWORDS,
    ACCESSORY_LINE_CASCADE,
    ACCESSORY_SECTION,
    BASE_COST_CASCADE,
    COLOR_CASCADE,
    CUSTOMIZATION_COST_CASCADE,
    DEFAULT_MAX_CAPTURE_LENGTH,
    DELIVERY_COST_CASCADE,
    DELIVERY_METHOD_CASCADE,
    LEAD_TIME_CASCADE,
    LOGO_CASCADE,
    LOGO_FALLBACK_KEYWORDS,
    LOGO_FRAGMENT_SPLIT,
    MOLD_CHARGE_CASCADE,
    QUANTITY_CASCADE,
    STYLE_CASCADES,
    TOTAL_CASCADE,
    CascadeEntry,
    first_accepting_match,
)

logger = logging.getLogger(__name__)


class ExtractionResult(BaseModel):
    """テキスト抽出の結果。

    Attributes:
        specification: 抽出・正規化済みの部分仕様（どの項目も欠けていてよい）。
        matches: 項目名 → 採用されたカスケードエントリ名。
    """

    specification: ProductSpecification = Field(default_factory=ProductSpecification)
    matches: Dict[str, str] = Field(default_factory=dict)

    @property
    def logos(self) -> List[LogoEntry]:
        return list(self.specification.customization.logos)

    @property
    def accessories(self) -> List[str]:
        return list(self.specification.customization.accessories)


def _extract_logos(text: str) -> Tuple[List[LogoEntry], Optional[str]]:
    """位置と方法を同じ断片から束縛してロゴを集める。片側だけの一致は捨てる。"""
    logos: List[LogoEntry] = []
    used: List[str] = []
    seen = set()
    for fragment in LOGO_FRAGMENT_SPLIT.split(text):
        if not fragment or not fragment.strip():
            continue
        for name, pattern in LOGO_CASCADE:
            for m in pattern.finditer(fragment):
                groups = m.groupdict()
                desc = groups.get("desc")
                size = groups.get("size") or (nz.canonical_logo_size(desc) if desc else None)
                logo = nz.make_logo(groups.get("location"), groups.get("method") or desc, size)
                if logo is None:
                    logger.debug("logos: %s could not bind location and method in %r", name, fragment.strip()[:60])
                    continue
                if logo.key in seen:
                    continue
                seen.add(logo.key)
                logos.append(logo)
                used.append(name)
                logger.debug("logos <- %s: %s %s %s", name, logo.size.value, logo.method.value, logo.location.value)
    if logos:
        return logos, "+".join(dict.fromkeys(used))

    # 全文キーワードによる保守的なフォールバック（1 件・Front）
    for pattern, method in LOGO_FALLBACK_KEYWORDS:
        if pattern.search(text):
            logo = nz.make_logo(LogoLocation.FRONT, method)
            logger.debug("logos <- fallback_keyword: %s", method.value)
            return [logo], "fallback_keyword"
    logger.debug("logos: no match")
    return [], None


def _extract_accessories(text: str, max_length: int) -> Tuple[List[str], Optional[str]]:
    """付属品セクションの行項目から名前を集める。行項目が取れなければ固定キーワードで判定。"""
    section = ACCESSORY_SECTION.search(text)
    if section:
        body = section.group("body").replace("**", "")
        found: List[str] = []
        used: List[str] = []
        for entry in ACCESSORY_LINE_CASCADE:
            hit = first_accepting_match(body, (entry,), field="accessories", max_length=max_length)
            if hit is None:
                continue
            used.append(entry.name)
            for name in hit.value:
                if name not in found:
                    found.append(name)
        if found:
            return found, "section:" + "+".join(used)

    found = [name for name, pattern in ACCESSORY_KEYWORDS if pattern.search(text)]
    if found:
        logger.debug("accessories <- keyword_fallback: %r", found)
        return found, "keyword_fallback"
    return [], None


def extract_fields(text: Optional[str], *, max_capture_length: int = DEFAULT_MAX_CAPTURE_LENGTH) -> ExtractionResult:
    """テキストから部分的な ProductSpecification を抽出する。

    振る舞い:
    - style / delivery の各項目はカスケードの最初に受理された一致を採用する。
    - ロゴは位置と方法を同じ断片から束縛する。何も束縛できない場合のみ全文キーワードで Front に 1 件。
    - 付属品は区切られたセクションの行項目から、無ければ固定キーワードから。
    - 価格は合計と数量の両方が取れた場合のみブロックとして返す（片方だけなら丸ごと捨てる）。

    Args:
    - text: エージェントの応答テキスト。
    - max_capture_length: キャプチャ長の上限（超えたものは不正キャプチャ扱い）。

    Returns:
    - ExtractionResult: 抽出済み仕様と、項目ごとの採用エントリ名。
    """
    if not text or not text.strip():
        logger.debug("empty text, nothing to extract")
        return ExtractionResult()

    matches: Dict[str, str] = {}

    def run(field: str, cascade: Sequence[CascadeEntry]):
        hit = first_accepting_match(text, cascade, field=field, max_length=max_capture_length)
        if hit is None:
            return None
        matches[field] = hit.entry
        return hit.value

    style_values = {name: run(name, cascade) for name, cascade in STYLE_CASCADES.items()}
    style_values["color"] = run("color", COLOR_CASCADE) or []

    logos, logo_source = _extract_logos(text)
    if logo_source:
        matches["logos"] = logo_source
    accessories, accessory_source = _extract_accessories(text, max_capture_length)
    if accessory_source:
        matches["accessories"] = accessory_source

    delivery_cost = run("delivery_cost", DELIVERY_COST_CASCADE)
    delivery = DeliverySpec(
        method=run("delivery_method", DELIVERY_METHOD_CASCADE),
        lead_time=run("lead_time", LEAD_TIME_CASCADE),
        cost=delivery_cost,
    )

    spec = ProductSpecification(
        style=StyleSpec(**style_values),
        customization=CustomizationSpec(
            logos=logos,
            accessories=accessories,
            mold_charge=run("mold_charge", MOLD_CHARGE_CASCADE),
        ),
        delivery=delivery,
        pricing=_extract_pricing(run, delivery_cost),
    )
    logger.info("extracted fields: %s", ", ".join(f"{k}={v}" for k, v in matches.items()) or "none")
    return ExtractionResult(specification=spec, matches=matches)


def _extract_pricing(run: Callable, delivery_cost: Optional[float]) -> Optional[PricingSpec]:
    total = run("total", TOTAL_CASCADE)
    quantity = run("quantity", QUANTITY_CASCADE)
    if total is None or quantity is None:
        if total is not None or quantity is not None:
            logger.info("pricing discarded: total=%s quantity=%s (both are required)", total, quantity)
        return None
    return PricingSpec(
        total=total,
        quantity=quantity,
        base_cost=run("base_cost", BASE_COST_CASCADE) or 0.0,
        customization_cost=run("customization_cost", CUSTOMIZATION_COST_CASCADE) or 0.0,
        delivery_cost=delivery_cost or 0.0,
    )


def extract_specification(text: Optional[str], **kwargs) -> ProductSpecification:
    """`extract_fields` の仕様部分だけを返す簡易版。"""
    return extract_fields(text, **kwargs).specification


__all__ = ["ExtractionResult", "extract_fields", "extract_specification"]
