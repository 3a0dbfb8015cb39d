"""抽出値の正規化（固定語彙へのマッピング）と既定値テーブル。

- 正規化はテーブル駆動: (必須部分文字列のタプル, 正規ラベル) を上から順に評価し、最初に全て含むものを採用。
  大文字小文字は無視し、複数語の組み合わせを単語より先に置く（例: "laser cut + polyester" → "Polyester/Laser Cut"）。
- 列挙型の項目（サイズ・プロファイル等）は語彙外なら None、自由記述の項目（生地・色・付属品）は整形した値を返す。
- 既定値は完了状態の計算にだけ使い、レコードには書き込まない。ロゴ・付属品・価格は決して補完しない。
"""

import logging
import math
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from .models import (
    CustomizationSpec,
    DeliverySpec,
    LogoEntry,
    LogoLocation,
    LogoMethod,
    LogoSize,
    PricingSpec,
    ProductSpecification,
    StyleSpec,
)

logger = logging.getLogger(__name__)

Table = Sequence[Tuple[Tuple[str, ...], Any]]

FABRIC_TABLE: Table = (
    (("polyester", "laser cut"), "Polyester/Laser Cut"),
    (("acrylic", "air mesh"), "Acrylic/Air Mesh"),
    (("duck camo", "air mesh"), "Duck Camo/Air Mesh"),
    (("chino twill", "trucker mesh"), "Chino Twill/Trucker Mesh"),
    (("cotton", "polyester"), "Cotton Polyester Mix"),
    (("suede",), "Suede Cotton"),
    (("leather",), "Genuine Leather"),
    (("chino",), "Chino Twill"),
    (("trucker mesh",), "Trucker Mesh"),
    (("micro mesh",), "Micro Mesh"),
    (("air mesh",), "Air Mesh"),
    (("laser cut",), "Laser Cut"),
    (("acrylic",), "Acrylic"),
    (("duck camo",), "Duck Camo"),
    (("ripstop",), "Ripstop"),
    (("polyester",), "Polyester"),
    (("cotton",), "Cotton"),
)

SIZE_TABLE: Table = (
    (("xxl",), "XXL"),
    (("xl",), "XL"),
    (("one size",), "One Size"),
    (("osfa",), "One Size"),
    (("adjustable",), "One Size"),
    (("small",), "Small"),
    (("medium",), "Medium"),
    (("large",), "Large"),
)

PROFILE_TABLE: Table = (
    (("high",), "High"),
    (("tall",), "High"),
    (("mid",), "Mid"),
    (("medium",), "Mid"),
    (("low",), "Low"),
)

BILL_SHAPE_TABLE: Table = (
    (("slight", "curved"), "Curved"),
    (("flat",), "Flat"),
    (("curved",), "Curved"),
    (("curve",), "Curved"),
)

STRUCTURE_TABLE: Table = (
    (("unstructured",), "Unstructured"),
    (("semi",), "Semi-Structured"),
    (("structured",), "Structured"),
)

CLOSURE_TABLE: Table = (
    (("fitted",), "Fitted"),
    (("snapback",), "Snapback"),
    (("snap back",), "Snapback"),
    (("adjustable",), "Adjustable"),
    (("velcro",), "Velcro"),
    (("buckle",), "Buckle"),
    (("elastic",), "Elastic"),
)

STITCHING_TABLE: Table = (
    (("contrast",), "Contrast"),
    (("contrasting",), "Contrast"),
    (("matching",), "Matching"),
    (("match",), "Matching"),
)

DELIVERY_METHOD_TABLE: Table = (
    (("priority",), "Priority Delivery"),
    (("express",), "Express Delivery"),
    (("air freight",), "Air Freight"),
    (("sea freight",), "Sea Freight"),
    (("ocean",), "Sea Freight"),
    (("regular",), "Regular Delivery"),
    (("standard",), "Regular Delivery"),
)

LOGO_LOCATION_TABLE: Table = (
    (("upper bill",), LogoLocation.UPPER_BILL),
    (("under bill",), LogoLocation.UNDER_BILL),
    (("underbill",), LogoLocation.UNDER_BILL),
    (("front",), LogoLocation.FRONT),
    (("back",), LogoLocation.BACK),
    (("left",), LogoLocation.LEFT),
    (("right",), LogoLocation.RIGHT),
)

LOGO_METHOD_TABLE: Table = (
    (("3d", "embroidery"), LogoMethod.EMBROIDERY_3D),
    (("puff", "embroidery"), LogoMethod.EMBROIDERY_3D),
    (("flat", "embroidery"), LogoMethod.FLAT_EMBROIDERY),
    (("embroidery",), LogoMethod.FLAT_EMBROIDERY),
    (("screen print",), LogoMethod.SCREEN_PRINT),
    (("screen printed",), LogoMethod.SCREEN_PRINT),
    (("screen",), LogoMethod.SCREEN_PRINT),
    (("sublimation",), LogoMethod.SUBLIMATION),
    (("sublimated",), LogoMethod.SUBLIMATION),
    (("leather",), LogoMethod.LEATHER_PATCH),
    (("rubber",), LogoMethod.RUBBER_PATCH),
    (("pvc",), LogoMethod.RUBBER_PATCH),
)

LOGO_SIZE_TABLE: Table = (
    (("small",), LogoSize.SMALL),
    (("medium",), LogoSize.MEDIUM),
    (("large",), LogoSize.LARGE),
)

ACCESSORY_TABLE: Table = (
    (("hang tag",), "Hang Tag"),
    (("inside label",), "Inside Label"),
    (("b tape",), "B-Tape Print"),
    (("sticker",), "Sticker"),
    (("eyelet",), "Metal Eyelet"),
    (("rope",), "Rope"),
    (("label",), "Inside Label"),
)

# サイズ未記載のロゴは位置で決める（正面は大、それ以外は小）
LOGO_SIZE_BY_LOCATION: Dict[LogoLocation, LogoSize] = {
    LogoLocation.FRONT: LogoSize.LARGE,
    LogoLocation.BACK: LogoSize.SMALL,
    LogoLocation.LEFT: LogoSize.SMALL,
    LogoLocation.RIGHT: LogoSize.SMALL,
    LogoLocation.UPPER_BILL: LogoSize.SMALL,
    LogoLocation.UNDER_BILL: LogoSize.SMALL,
}

# 色として扱わない語（生地名の一部）
_NON_COLOR_WORDS = ("camo", "mesh", "fabric", "twill", "suede", "leather")

_HAT_SIZE_RE = re.compile(r"\b(7)\s*(1/8|1/4|3/8|1/2|5/8|3/4|7/8)\b|\b(8)\b")
_RANGE_RE = re.compile(r"(\d+)\s*-\s*(\d+)")
_NUMBER_RE = re.compile(r"\d+")
_AMOUNT_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")

# 完了状態の計算用の既定値。ロゴ・付属品・価格は含めない。
DEFAULT_SPECIFICATION = ProductSpecification(
    style=StyleSpec(
        size="Medium",
        color=["Black"],
        profile="High",
        bill_shape="Curved",
        structure="Structured",
        fabric="Chino Twill",
        closure="Snapback",
        stitching="Matching",
    ),
    delivery=DeliverySpec(method="Regular Delivery", lead_time="4-6 days", cost=0.0),
)


def _key(raw: str) -> str:
    """照合用キー: 小文字化・ハイフン/アンダースコアを空白へ・空白の連続を 1 つに。"""
    s = raw.lower().replace("airmesh", "air mesh").replace("3-d", "3d")
    s = re.sub(r"[-_+]+", " ", s)
    return re.sub(r"\s+", " ", s).strip()


def _contains(key: str, needle: str) -> bool:
    # 単語境界つきの部分一致（複数形の s / es も許す）
    pattern = r"(?<![a-z0-9])" + re.escape(needle) + r"(?:s|es)?(?![a-z0-9])"
    return re.search(pattern, key) is not None


def lookup(raw: Optional[str], table: Table) -> Any:
    """テーブルを上から評価して最初に一致した正規ラベルを返す。なければ None。"""
    if not raw:
        return None
    key = _key(str(raw))
    for needles, canonical in table:
        if all(_contains(key, n) for n in needles):
            return canonical
    return None


def _clean(raw: str) -> str:
    return re.sub(r"\s+", " ", str(raw)).strip(" \t-:;,.•*")


def _title(raw: str) -> str:
    # "3D" などの大文字混在はそのまま残す
    return " ".join(w if any(c.isupper() for c in w[1:]) else w[:1].upper() + w[1:].lower() for w in raw.split(" "))


def canonical_fabric(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    found = lookup(raw, FABRIC_TABLE)
    if found:
        return found
    cleaned = _clean(raw)
    if not re.fullmatch(r"[A-Za-z][A-Za-z /]*", cleaned):
        return None
    return "/".join(_title(part.strip()) for part in cleaned.split("/") if part.strip())


def canonical_color(raw: Optional[str]) -> Optional[str]:
    """色 1 件を整形する。スプリットカラーは "Red/White" のまま 1 件として返す。"""
    if not raw:
        return None
    cleaned = _clean(raw)
    if not re.fullmatch(r"[A-Za-z][A-Za-z /]*", cleaned):
        return None
    key = _key(cleaned)
    if any(_contains(key, w) for w in _NON_COLOR_WORDS):
        return None
    parts = [_title(p.strip()) for p in cleaned.split("/") if p.strip()]
    parts = ["Gray" if p == "Grey" else p for p in parts]
    return "/".join(parts) or None


def canonical_colors(raw: Any) -> List[str]:
    """文字列（"Black, Red & White"）またはリストを色のリストへ。"""
    if not raw:
        return []
    items = raw if isinstance(raw, (list, tuple)) else re.split(r"\s*(?:,|&|\band\b)\s*", str(raw))
    out: List[str] = []
    for item in items:
        color = canonical_color(item)
        if color and color not in out:
            out.append(color)
    return out


def canonical_size(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    m = _HAT_SIZE_RE.search(str(raw))
    if m:
        return f"7 {m.group(2)}" if m.group(1) else "8"
    return lookup(raw, SIZE_TABLE)


def canonical_profile(raw: Optional[str]) -> Optional[str]:
    return lookup(raw, PROFILE_TABLE)


def canonical_bill_shape(raw: Optional[str]) -> Optional[str]:
    return lookup(raw, BILL_SHAPE_TABLE)


def canonical_structure(raw: Optional[str]) -> Optional[str]:
    return lookup(raw, STRUCTURE_TABLE)


def canonical_closure(raw: Optional[str]) -> Optional[str]:
    return lookup(raw, CLOSURE_TABLE)


def canonical_stitching(raw: Optional[str]) -> Optional[str]:
    return lookup(raw, STITCHING_TABLE)


def canonical_delivery_method(raw: Optional[str]) -> Optional[str]:
    return lookup(raw, DELIVERY_METHOD_TABLE)


def canonical_lead_time(raw: Optional[str]) -> Optional[str]:
    """リードタイムを "4-6 days" / "10-14 business days" 形式へ。数値が無ければ None。"""
    if not raw:
        return None
    text = str(raw).replace("–", "-").replace("—", "-").lower()
    unit = "weeks" if "week" in text else "days"
    if unit == "days" and "business" in text:
        unit = "business days"
    m = _RANGE_RE.search(text)
    if m:
        return f"{m.group(1)}-{m.group(2)} {unit}"
    m = _NUMBER_RE.search(text)
    if m:
        return f"{m.group(0)} {unit}"
    return None


def canonical_accessory(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    found = lookup(raw, ACCESSORY_TABLE)
    if found:
        return found
    cleaned = _clean(re.sub(r"\([^)]*\)", "", str(raw)))
    if not re.fullmatch(r"[A-Za-z][A-Za-z \-]*", cleaned):
        return None
    return _title(cleaned)


def canonical_logo_location(raw: Any) -> Optional[LogoLocation]:
    if isinstance(raw, LogoLocation):
        return raw
    return lookup(raw, LOGO_LOCATION_TABLE)


def canonical_logo_method(raw: Any) -> Optional[LogoMethod]:
    if isinstance(raw, LogoMethod):
        return raw
    return lookup(raw, LOGO_METHOD_TABLE)


def canonical_logo_size(raw: Any) -> Optional[LogoSize]:
    if isinstance(raw, LogoSize):
        return raw
    return lookup(raw, LOGO_SIZE_TABLE)


def make_logo(location: Any, method: Any, size: Any = None) -> Optional[LogoEntry]:
    """位置と方法の両方が正規化できた場合のみ LogoEntry を作る。"""
    loc = canonical_logo_location(location)
    meth = canonical_logo_method(method)
    if loc is None or meth is None:
        return None
    sz = canonical_logo_size(size) or LOGO_SIZE_BY_LOCATION[loc]
    return LogoEntry(location=loc, method=meth, size=sz)


def parse_amount(value: Any) -> Optional[float]:
    """"$1,234.50" や数値を float へ。解釈できない値や有限でない値（NaN, inf）は None。"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            amount = float(value)
        except OverflowError:
            return None
        return amount if math.isfinite(amount) else None
    m = _AMOUNT_RE.search(str(value))
    if not m:
        return None
    try:
        amount = float(m.group(0).replace(",", ""))
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


# フィールド名 → 正規化関数（抽出カスケードと構造化ペイロードの両方で使う）
STYLE_CANONICALIZERS: Dict[str, Callable[[Optional[str]], Optional[str]]] = {
    "size": canonical_size,
    "profile": canonical_profile,
    "bill_shape": canonical_bill_shape,
    "structure": canonical_structure,
    "fabric": canonical_fabric,
    "closure": canonical_closure,
    "stitching": canonical_stitching,
}


def with_defaults(
    spec: ProductSpecification, defaults: ProductSpecification = DEFAULT_SPECIFICATION
) -> ProductSpecification:
    """未設定の style / delivery 項目だけを既定値で埋めた新しい仕様を返す。

    振る舞い:
    - 既に値がある項目は上書きしない。
    - customization（ロゴ・付属品・型代）と pricing はそのまま（補完しない）。

    Args:
    - spec: 対象の仕様。
    - defaults: 既定値テーブル（通常は `DEFAULT_SPECIFICATION`）。

    Returns:
    - ProductSpecification: 既定値を適用したコピー。
    """
    style_update = {
        name: getattr(defaults.style, name)
        for name in StyleSpec.model_fields
        if not spec.style.has(name) and defaults.style.has(name)
    }
    delivery_update = {
        name: getattr(defaults.delivery, name)
        for name in DeliverySpec.model_fields
        if getattr(spec.delivery, name) is None
    }
    return spec.model_copy(
        update={
            "style": spec.style.model_copy(update=style_update),
            "delivery": spec.delivery.model_copy(update=delivery_update),
        }
    )


def _pick(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return None


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> List[Any]:
    """単独の値（文字列・辞書・モデル）は 1 要素のリストとして扱う。"""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _normalize_logos(raw_logos: Any) -> List[LogoEntry]:
    logos: List[LogoEntry] = []
    for raw in _as_list(raw_logos):
        if isinstance(raw, LogoEntry):
            logos.append(raw)
            continue
        item = _as_mapping(raw)
        logo = make_logo(
            _pick(item, "location", "position"),
            _pick(item, "method", "type"),
            _pick(item, "size"),
        )
        if logo is None:
            logger.warning("dropping unmappable logo from structured payload: %r", raw)
            continue
        logos.append(logo)
    return logos


def _normalize_pricing(raw: Any) -> Optional[PricingSpec]:
    if isinstance(raw, PricingSpec):
        return raw
    data = _as_mapping(raw)
    total = parse_amount(_pick(data, "total"))
    if total is None:
        return None
    quantity = parse_amount(_pick(data, "quantity"))
    try:
        return PricingSpec(
            total=total,
            quantity=int(quantity) if quantity is not None else 0,
            base_cost=parse_amount(_pick(data, "base_cost", "baseCost", "baseProductCost")) or 0.0,
            customization_cost=parse_amount(_pick(data, "customization_cost", "customizationCost", "logosCost")) or 0.0,
            delivery_cost=parse_amount(_pick(data, "delivery_cost", "deliveryCost")) or 0.0,
        )
    except ValidationError as e:
        logger.warning("dropping invalid pricing block from structured payload: %s", e.errors())
        return None


def normalize_structured(payload: Any) -> Optional[ProductSpecification]:
    """エージェントが返した構造化ペイロードを固定語彙へ正規化する。

    振る舞い:
    - dict（camelCase / snake_case / 旧キー `capDetails` 等）または ProductSpecification を受け付ける。
    - 各文字列項目を抽出時と同じテーブルで正規化し、語彙外の列挙値は捨てる（例外は出さない）。
    - `quantity > 0` を満たさない価格ブロックは丸ごと捨てる。

    Args:
    - payload: 構造化された候補。None ならそのまま None。

    Returns:
    - ProductSpecification | None: 正規化済みの仕様。
    """
    if payload is None:
        return None
    if isinstance(payload, ProductSpecification):
        payload = payload.model_dump(mode="json")
    data = _as_mapping(payload)
    if not data:
        logger.warning("structured payload is not a mapping: %r", type(payload).__name__)
        return None

    style_raw = _as_mapping(_pick(data, "style", "capDetails"))
    style_values: Dict[str, Any] = {
        name: fn(_pick(style_raw, name, _camel(name), "stitch" if name == "stitching" else name))
        for name, fn in STYLE_CANONICALIZERS.items()
    }
    style_values["color"] = canonical_colors(_pick(style_raw, "color", "colors"))

    cust_raw = _as_mapping(_pick(data, "customization"))
    accessories = [a for a in (canonical_accessory(x) for x in _as_list(_pick(cust_raw, "accessories"))) if a]
    customization = CustomizationSpec(
        logos=_normalize_logos(_pick(cust_raw, "logos")),
        accessories=accessories,
        mold_charge=parse_amount(_pick(cust_raw, "mold_charge", "moldCharge", "moldCharges")),
    )

    delivery_raw = _as_mapping(_pick(data, "delivery"))
    delivery = DeliverySpec(
        method=canonical_delivery_method(_pick(delivery_raw, "method")),
        lead_time=canonical_lead_time(_pick(delivery_raw, "lead_time", "leadTime")),
        cost=parse_amount(_pick(delivery_raw, "cost", "totalCost")),
    )

    return ProductSpecification(
        style=StyleSpec(**style_values),
        customization=customization,
        delivery=delivery,
        pricing=_normalize_pricing(_pick(data, "pricing")),
    )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


__all__ = [
    "DEFAULT_SPECIFICATION",
    "LOGO_SIZE_BY_LOCATION",
    "STYLE_CANONICALIZERS",
    "lookup",
    "canonical_fabric",
    "canonical_color",
    "canonical_colors",
    "canonical_size",
    "canonical_profile",
    "canonical_bill_shape",
    "canonical_structure",
    "canonical_closure",
    "canonical_stitching",
    "canonical_delivery_method",
    "canonical_lead_time",
    "canonical_accessory",
    "canonical_logo_location",
    "canonical_logo_method",
    "canonical_logo_size",
    "make_logo",
    "parse_amount",
    "with_defaults",
    "normalize_structured",
]
