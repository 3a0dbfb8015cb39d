"""抽出カスケードの定義（データ）と、それを評価する汎用ループ。

各項目のカスケードは `CascadeEntry(name, pattern, canonicalizer)` の順序付きタプル。
組み合わせ（例: "Acrylic/Air Mesh"）を先、単語（"Acrylic"）を後に並べること。順序を入れ替えると
組み合わせが片側だけに切り詰められる。

キャプチャは `is_clean_capture` で検査し、"$" / "*" / 改行を含むものや長すぎるものは
不一致として扱って次のパターンへ進む（隣の価格行を貪欲に飲み込んだキャプチャ対策）。
"""

import logging
import re
from typing import Any, Callable, List, NamedTuple, Optional, Pattern, Sequence, Tuple

from . import normalizer as nz
from .models import LogoMethod

logger = logging.getLogger(__name__)

DEFAULT_MAX_CAPTURE_LENGTH = 50

_FLAGS = re.IGNORECASE | re.MULTILINE
_AMOUNT = r"\$\s*([\d,]+(?:\.\d+)?)"
_COLORS = (
    r"Black|White|Navy|Royal|Red|Blue|Gray|Grey|Charcoal|Heather|Green|Olive|Brown|Khaki|"
    r"Orange|Purple|Yellow|Pink|Maroon|Beige|Cream"
)


class CascadeEntry(NamedTuple):
    name: str
    pattern: Pattern[str]
    canonicalizer: Callable[[str], Any]
    find_all: bool = False


class CascadeHit(NamedTuple):
    value: Any
    entry: str
    raw: str


def _entry(name: str, pattern: str, canonicalizer: Callable[[str], Any], find_all: bool = False) -> CascadeEntry:
    return CascadeEntry(name, re.compile(pattern, _FLAGS), canonicalizer, find_all)


def is_clean_capture(value: str, max_length: int = DEFAULT_MAX_CAPTURE_LENGTH) -> bool:
    """キャプチャの健全性チェック。通貨記号・アスタリスク・改行・長さ超過は不正。"""
    return not ("$" in value or "*" in value or "\n" in value or len(value) > max_length)


def _capture(m: "re.Match[str]") -> str:
    groups = [g for g in m.groups() if g is not None]
    return (groups[0] if groups else m.group(0)).strip()


def first_accepting_match(
    text: str,
    cascade: Sequence[CascadeEntry],
    *,
    field: str,
    max_length: int = DEFAULT_MAX_CAPTURE_LENGTH,
) -> Optional[CascadeHit]:
    """カスケードを上から評価し、最初に受理されたマッチを返す。

    振る舞い:
    - 各パターンの出現を順に試し、`is_clean_capture` と正規化の両方を通ったものを採用する。
    - `find_all=True` のエントリは全出現を正規化して 1 つのリストにまとめる（色のキーワード走査など）。
    - 不正キャプチャは WARNING、採用は DEBUG でログに残す。どれも通らなければ None（ExtractionMiss）。

    Args:
    - text: 抽出対象のテキスト。
    - cascade: 評価順に並んだエントリ。
    - field: ログ用の項目名。
    - max_length: キャプチャ長の上限。

    Returns:
    - CascadeHit | None: 正規化済みの値・採用エントリ名・生キャプチャ。
    """
    for entry in cascade:
        collected: List[Any] = []
        for m in entry.pattern.finditer(text):
            raw = _capture(m)
            if not is_clean_capture(raw, max_length):
                logger.warning("%s: corrupted capture from %s rejected: %r", field, entry.name, raw[:max_length])
                continue
            value = entry.canonicalizer(raw)
            if value in (None, "", []):
                logger.debug("%s: %s captured %r outside vocabulary", field, entry.name, raw)
                continue
            if not entry.find_all:
                logger.debug("%s <- %s: %r", field, entry.name, value)
                return CascadeHit(value, entry.name, raw)
            for item in value if isinstance(value, list) else [value]:
                if item not in collected:
                    collected.append(item)
        if collected:
            logger.debug("%s <- %s: %r", field, entry.name, collected)
            return CascadeHit(collected, entry.name, ", ".join(map(str, collected)))
    logger.debug("%s: no match", field)
    return None


def _positive_int(raw: str) -> Optional[int]:
    amount = nz.parse_amount(raw)
    if amount is None or amount <= 0:
        return None
    return int(amount)


# ---------------------------------------------------------------------------
# style
# ---------------------------------------------------------------------------

FABRIC_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry(
        "combo_polyester_laser_cut",
        r"(Polyester\s*[/+]\s*Laser\s*Cut|Laser\s*Cut\s*[/+]\s*Polyester|Polyester\s+Laser\s*Cut|Laser\s*Cut\s+Polyester)",
        nz.canonical_fabric,
    ),
    _entry("combo_acrylic_air_mesh", r"(Acrylic\s*[/+]\s*Air\s*Mesh|Air\s*Mesh\s*[/+]\s*Acrylic)", nz.canonical_fabric),
    _entry(
        "combo_duck_camo_air_mesh",
        r"(Duck\s*Camo\s*[/+]\s*Air\s*Mesh|Air\s*Mesh\s*[/+]\s*Duck\s*Camo)",
        nz.canonical_fabric,
    ),
    _entry(
        "combo_chino_twill_trucker_mesh",
        r"(Chino\s*Twill\s*[/+]\s*Trucker\s*Mesh|Trucker\s*Mesh\s*[/+]\s*Chino\s*Twill)",
        nz.canonical_fabric,
    ),
    _entry("premium_fabric_section", r"Premium\s+Fabric\s*\(([^)\n]+)\)", nz.canonical_fabric),
    _entry(
        "labelled",
        r"\b(?:Fabric|Material)\s*:\**[ \t]*([A-Za-z][A-Za-z /+]*?)[ \t]*(?=$|[,.;(*])",
        nz.canonical_fabric,
    ),
    _entry("change_request", r"\bchang(?:e|ing)\b[^\n]*?\bfabric\b[^\n]*?\bto\s+([A-Za-z][^,\n.!?]*)", nz.canonical_fabric),
    _entry("suede_cotton", r"\b(Suede\s+Cotton|Cotton\s+Suede)\b", nz.canonical_fabric),
    _entry("genuine_leather", r"\b(Genuine\s+Leather|Real\s+Leather)\b", nz.canonical_fabric),
    _entry(
        "standalone",
        r"\b(Chino\s+Twill|Trucker\s+Mesh|Micro\s+Mesh|Laser\s+Cut|Air\s+Mesh|Duck\s+Camo|Acrylic|Suede|"
        r"Leather(?!\s+Patch)|Polyester|Ripstop|Cotton)\b",
        nz.canonical_fabric,
    ),
)

COLOR_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"\bColou?rs?\s*:\**[ \t]*([^\n$•|(*]+)", nz.canonical_colors),
    _entry(
        "bullet_line_item",
        rf"•[ \t]*((?:{_COLORS})(?:[ \t]*/[ \t]*(?:{_COLORS}))?)[ \t]*:[ \t]*\d[\d,]*[ \t]*pieces?",
        nz.canonical_colors,
    ),
    _entry("split_color", rf"\b((?:{_COLORS})[ \t]*/[ \t]*(?:{_COLORS}))\b", nz.canonical_colors),
    _entry(
        "keyword_sweep",
        rf"\b({_COLORS})\b(?![ \t]+(?:camo|mesh|fabric))",
        nz.canonical_colors,
        find_all=True,
    ),
)

SIZE_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"(?<!Logo )(?<!Patch )\bSize\s*:\**[ \t]*([^\n,$*]+)", nz.canonical_size),
    _entry("hat_size", r"\b(7\s*(?:1/8|1/4|3/8|1/2|5/8|3/4|7/8))\b", nz.canonical_size),
    _entry("one_size", r"\b(One\s+Size|OSFA)\b", nz.canonical_size),
    _entry("size_word_before", r"\b(XXL|XL|Small|Medium|Large)\s+(?:size|caps?|hats?)\b", nz.canonical_size),
    _entry("size_word_after", r"\bsize\s+(XXL|XL|Small|Medium|Large)\b", nz.canonical_size),
)

PROFILE_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"\bProfile\s*:\**[ \t]*([^\n,$*]+)", nz.canonical_profile),
    _entry("adjective", r"\b(High|Tall|Mid|Medium|Low)[ \t-]*Profile\b", nz.canonical_profile),
)

BILL_SHAPE_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry(
        "labelled",
        r"\b(?:Bill\s+Shape|Bill\s+Style|Visor\s+Shape|Shape)\s*:\**[ \t]*([^\n,$*]+)",
        nz.canonical_bill_shape,
    ),
    _entry("labelled_bill", r"(?<!Upper )(?<!Under )\bBill\s*:\**[ \t]*([^\n,$*]+)", nz.canonical_bill_shape),
    _entry(
        "change_request",
        r"\bchang(?:e|ing)\s+(?:the\s+)?(?:bill\s+)?shape\s+to\s+([^,\n.!?]+)",
        nz.canonical_bill_shape,
    ),
    _entry(
        "adjective",
        r"\b(Slight(?:ly)?\s+Curved|Curved|Flat)\s*(?:Bill|Brim|Visor|Peak)\b",
        nz.canonical_bill_shape,
    ),
)

STRUCTURE_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"\bStructure\s*:\**[ \t]*([^\n,$*]+)", nz.canonical_structure),
    _entry("keyword", r"\b(Unstructured|Semi[- ]Structured|Structured)\b", nz.canonical_structure),
)

CLOSURE_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"\b(?:Closure|Fit)(?:\s+Type)?\s*:\**[ \t]*([^\n,]+)", nz.canonical_closure),
    _entry("premium_closure", r"Premium\s+Closure\s*\(([^)\n]+)\)", nz.canonical_closure),
    _entry("keyword", r"\b(Fitted|Snap\s*back|Adjustable|Velcro|Buckle|Elastic)\b", nz.canonical_closure),
)

STITCHING_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"\bStitch(?:ing)?\s*:\**[ \t]*([^\n,$*]+)", nz.canonical_stitching),
    _entry("adjective", r"\b(Matching|Contrast(?:ing)?)\s+Stitch(?:ing)?\b", nz.canonical_stitching),
)

STYLE_CASCADES = {
    "size": SIZE_CASCADE,
    "profile": PROFILE_CASCADE,
    "bill_shape": BILL_SHAPE_CASCADE,
    "structure": STRUCTURE_CASCADE,
    "fabric": FABRIC_CASCADE,
    "closure": CLOSURE_CASCADE,
    "stitching": STITCHING_CASCADE,
}

# ---------------------------------------------------------------------------
# delivery
# ---------------------------------------------------------------------------

DELIVERY_METHOD_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"\b(?:Delivery|Shipping)(?:\s+Method)?\s*:\**[ \t]*([^\n,$*]+)", nz.canonical_delivery_method),
    _entry(
        "keyword",
        r"\b(Regular\s+Delivery|Priority\s+Delivery|Express\s+Delivery|Air\s+Freight|Sea\s+Freight)\b",
        nz.canonical_delivery_method,
    ),
)

LEAD_TIME_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"\bLead\s*Time\s*:\**[ \t]*([^\n,$*]+)", nz.canonical_lead_time),
    _entry("range_days", r"(\d+\s*[-–]\s*\d+\s*(?:business\s+|working\s+)?days)", nz.canonical_lead_time),
    _entry("range_weeks", r"(\d+\s*[-–]\s*\d+\s*weeks)", nz.canonical_lead_time),
    _entry("single_days", r"(\d+\s*(?:business\s+|working\s+)?days)", nz.canonical_lead_time),
)

# ---------------------------------------------------------------------------
# pricing
# ---------------------------------------------------------------------------

TOTAL_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("total_order", rf"\bTotal\s+Order\s*:\**\s*{_AMOUNT}", nz.parse_amount),
    _entry("grand_total", rf"\bGrand\s+Total\s*:\**\s*{_AMOUNT}", nz.parse_amount),
    _entry("total", rf"\bTotal(?:\s+(?:Cost|Investment|Price|Amount))?\s*:\**\s*{_AMOUNT}", nz.parse_amount),
)

QUANTITY_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("labelled", r"\bQuantity\s*:\**\s*([\d,]+)", _positive_int),
    _entry("pieces", r"\b([\d,]+)\s*(?:pieces?|pcs)\b", _positive_int),
    _entry("caps", r"\b([\d,]+)\s*(?:caps|hats|units)\b", _positive_int),
)

BASE_COST_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("blank_caps_subtotal", rf"\bBlank\s+Caps?[^\n]*?=\s*{_AMOUNT}", nz.parse_amount),
    _entry("blank_caps", rf"\bBlank\s+Caps?[^\n:]*:\**\s*{_AMOUNT}", nz.parse_amount),
    _entry("base_product", rf"\bBase\s+(?:Product\s+)?Cost[^\n:]*:\**\s*{_AMOUNT}", nz.parse_amount),
)

CUSTOMIZATION_COST_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("customization", rf"\bCustomization[^\n:]*:\**\s*{_AMOUNT}", nz.parse_amount),
    _entry("logos_total", rf"\bLogos?\s+(?:Cost|Total|Subtotal)\s*:\**\s*{_AMOUNT}", nz.parse_amount),
)

DELIVERY_COST_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("delivery", rf"\bDelivery[^\n:]*:\**\s*{_AMOUNT}", nz.parse_amount),
    _entry("shipping", rf"\bShipping[^\n:]*:\**\s*{_AMOUNT}", nz.parse_amount),
)

MOLD_CHARGE_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry("mold_charge", rf"\bMold\s+Charges?[^\n:]*:\**\s*{_AMOUNT}", nz.parse_amount),
)

# ---------------------------------------------------------------------------
# logos: 位置と方法を同じ断片から束縛する
# ---------------------------------------------------------------------------

_LOCATIONS = r"Upper\s+Bill|Under\s*Bill|Front|Back|Left(?:\s+Side)?|Right(?:\s+Side)?"
_METHODS = (
    r"3-?D\s+Embroidery|Puff\s+Embroidery|Flat\s+Embroidery|Screen\s+Print(?:ed|ing)?|Sublimat(?:ion|ed)|"
    r"Leather\s+Patch|Rubber\s+Patch|PVC\s+Patch|Embroidery"
)
_SIZES = r"Small|Medium|Large"

LOGO_FRAGMENT_SPLIT = re.compile(r"\n|•|;|(?<=[.!?])\s+")

LOGO_CASCADE: Tuple[Tuple[str, Pattern[str]], ...] = (
    (
        "size_method_location",
        re.compile(rf"\b(?P<size>{_SIZES})\s+(?P<method>{_METHODS})\s+(?P<location>{_LOCATIONS})\b", _FLAGS),
    ),
    (
        "method_at_location",
        re.compile(
            rf"\b(?:(?P<size>{_SIZES})\s+)?(?P<method>{_METHODS})\s+(?:logo\s+)?(?:on|at)\s+(?:the\s+)?"
            rf"(?P<location>{_LOCATIONS})\b",
            _FLAGS,
        ),
    ),
    (
        "location_label",
        re.compile(rf"\b(?P<location>{_LOCATIONS})(?:\s+Logo)?\s*:\s*(?P<desc>[^\n]+)", _FLAGS),
    ),
    (
        "location_with_method",
        re.compile(
            rf"\b(?P<location>{_LOCATIONS})\s+(?:logo\s+)?(?:with|in|using|as)\s+(?:an?\s+)?"
            rf"(?:(?P<size>{_SIZES})\s+)?(?P<method>{_METHODS})\b",
            _FLAGS,
        ),
    ),
)

# 何も束縛できなかった場合の全文キーワード（優先順）。採用は 1 件のみ、位置は Front。
LOGO_FALLBACK_KEYWORDS: Tuple[Tuple[Pattern[str], LogoMethod], ...] = (
    (re.compile(r"\b3-?D\s+Embroidery\b", _FLAGS), LogoMethod.EMBROIDERY_3D),
    (re.compile(r"\bLeather\s+Patch\b", _FLAGS), LogoMethod.LEATHER_PATCH),
    (re.compile(r"\bRubber\s+Patch\b", _FLAGS), LogoMethod.RUBBER_PATCH),
    (re.compile(r"\bFlat\s+Embroidery\b", _FLAGS), LogoMethod.FLAT_EMBROIDERY),
    (re.compile(r"\bScreen\s+Print", _FLAGS), LogoMethod.SCREEN_PRINT),
    (re.compile(r"\bSublimat(?:ion|ed)\b", _FLAGS), LogoMethod.SUBLIMATION),
)

# ---------------------------------------------------------------------------
# accessories
# ---------------------------------------------------------------------------

ACCESSORY_SECTION = re.compile(
    r"^[ \t]*(?:🎁[ \t]*)?\**[ \t]*Accessories\b[ \t*]*(?:\([^)\n]*\))?[ \t*]*:[ \t*]*"
    r"(?P<body>.*?)"
    r"(?=🚚|📦|💰|🧵|🏷|🎨|\n[ \t]*\*\*[A-Za-z]|\n[ \t]*#|"
    r"\n[ \t]*(?:Delivery|Shipping|Total|Subtotal|Cost\s+Breakdown|Lead\s+Time)\b|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)

ACCESSORY_LINE_CASCADE: Tuple[CascadeEntry, ...] = (
    _entry(
        "bullet_item",
        r"^[ \t]*[•\-][ \t]*([^:\n]+?)[ \t]*:[ \t]*\d[\d,]*[ \t]*(?:pieces?|pcs)\b",
        nz.canonical_accessory,
        find_all=True,
    ),
    _entry(
        "plain_item",
        r"^[ \t]*([A-Za-z][A-Za-z \-()]+?)[ \t]*:[ \t]*\d[\d,]*[ \t]*(?:pieces?|pcs)\b",
        nz.canonical_accessory,
        find_all=True,
    ),
    _entry(
        "bullet_quantity",
        r"^[ \t]*[•\-][ \t]*([^:\n(]+?)(?:[ \t]*\([^)\n]*\))?[ \t]*:[ \t]*\d",
        nz.canonical_accessory,
        find_all=True,
    ),
)

# 区切られたセクションが無い場合だけ使う固定キーワード（各 1 件まで）
ACCESSORY_KEYWORDS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("Hang Tag", re.compile(r"\bhang\s*tags?\b", _FLAGS)),
    ("Sticker", re.compile(r"\bstickers?\b", _FLAGS)),
    ("Inside Label", re.compile(r"\binside\s*labels?\b", _FLAGS)),
    ("B-Tape Print", re.compile(r"\bb[\s-]*tape(?:\s*print)?\b", _FLAGS)),
)


__all__ = [
    "DEFAULT_MAX_CAPTURE_LENGTH",
    "CascadeEntry",
    "CascadeHit",
    "is_clean_capture",
    "first_accepting_match",
    "FABRIC_CASCADE",
    "COLOR_CASCADE",
    "STYLE_CASCADES",
    "DELIVERY_METHOD_CASCADE",
    "LEAD_TIME_CASCADE",
    "TOTAL_CASCADE",
    "QUANTITY_CASCADE",
    "BASE_COST_CASCADE",
    "CUSTOMIZATION_COST_CASCADE",
    "DELIVERY_COST_CASCADE",
    "MOLD_CHARGE_CASCADE",
    "LOGO_FRAGMENT_SPLIT",
    "LOGO_CASCADE",
    "LOGO_FALLBACK_KEYWORDS",
    "ACCESSORY_SECTION",
    "ACCESSORY_LINE_CASCADE",
    "ACCESSORY_KEYWORDS",
]
