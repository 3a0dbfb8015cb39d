"""製品構成レコードとその周辺データのスキーマ（Pydantic モデル）。

Notes
-----
- すべてのモデルは frozen。更新は `model_copy(update=...)` で新しいスナップショットを作る。
- 外部（永続化・UI）へは `model_dump(mode="json", by_alias=True)` で camelCase のまま渡す。
- 「項目なし」は `None`（リストは空）で表す。
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class LogoLocation(str, Enum):
    FRONT = "Front"
    BACK = "Back"
    LEFT = "Left"
    RIGHT = "Right"
    UPPER_BILL = "Upper Bill"
    UNDER_BILL = "Under Bill"


class LogoMethod(str, Enum):
    FLAT_EMBROIDERY = "Flat Embroidery"
    EMBROIDERY_3D = "3D Embroidery"
    SCREEN_PRINT = "Screen Print"
    SUBLIMATION = "Sublimation"
    LEATHER_PATCH = "Leather Patch"
    RUBBER_PATCH = "Rubber Patch"


class LogoSize(str, Enum):
    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"


class LogoEntry(_WireModel):
    location: LogoLocation
    method: LogoMethod
    size: LogoSize

    @property
    def key(self) -> Tuple[LogoLocation, LogoMethod]:
        """一意性の判定に使う (location, method) の組。"""
        return (self.location, self.method)


STYLE_FIELDS = ("size", "color", "profile", "bill_shape", "structure", "fabric", "closure", "stitching")


class StyleSpec(_WireModel):
    """キャップ本体の仕様。

    Attributes:
        size: サイズ（例: "Medium", "7 1/4"）。
        color: 色のリスト。"Red/White" のようなスプリットカラーは 1 要素として保持。
        profile: "High" | "Mid" | "Low"。
        bill_shape: "Flat" | "Curved"。
        structure: "Structured" | "Unstructured" | "Semi-Structured"。
        fabric: 生地（例: "Acrylic/Air Mesh"）。
        closure: クロージャ（例: "Snapback", "Fitted"）。
        stitching: "Matching" | "Contrast"。
    """

    size: Optional[str] = None
    color: List[str] = Field(default_factory=list)
    profile: Optional[str] = None
    bill_shape: Optional[str] = None
    structure: Optional[str] = None
    fabric: Optional[str] = None
    closure: Optional[str] = None
    stitching: Optional[str] = None

    def has(self, name: str) -> bool:
        value = getattr(self, name)
        return bool(value) if isinstance(value, list) else value is not None

    def present_fields(self) -> List[str]:
        return [name for name in STYLE_FIELDS if self.has(name)]


class CustomizationSpec(_WireModel):
    logos: List[LogoEntry] = Field(default_factory=list)
    accessories: List[str] = Field(default_factory=list)
    mold_charge: Optional[float] = None

    @field_validator("logos")
    @classmethod
    def _unique_logos(cls, logos: List[LogoEntry]) -> List[LogoEntry]:
        # (location, method) が重複したら先勝ち
        seen = set()
        unique = []
        for logo in logos:
            if logo.key in seen:
                continue
            seen.add(logo.key)
            unique.append(logo)
        return unique

    @field_validator("accessories")
    @classmethod
    def _unique_accessories(cls, accessories: List[str]) -> List[str]:
        return list(dict.fromkeys(a for a in accessories if a))

    def is_empty(self) -> bool:
        return not self.logos and not self.accessories and self.mold_charge is None


class DeliverySpec(_WireModel):
    method: Optional[str] = None
    lead_time: Optional[str] = None
    cost: Optional[float] = None


class PricingSpec(_WireModel):
    """見積金額のスナップショット。

    `total` は上流エージェントの値をそのまま正とし、内訳の合計と一致することは要求しない。
    """

    base_cost: float = 0.0
    customization_cost: float = 0.0
    delivery_cost: float = 0.0
    total: float
    quantity: int = Field(gt=0)

    def dedup_key(self) -> Tuple[float, float, float]:
        """新バージョン判定用の (total, customizationCost, baseCost)。セント単位で丸める。"""
        return (round(self.total, 2), round(self.customization_cost, 2), round(self.base_cost, 2))


class ProductSpecification(_WireModel):
    style: StyleSpec = Field(default_factory=StyleSpec)
    customization: CustomizationSpec = Field(default_factory=CustomizationSpec)
    delivery: DeliverySpec = Field(default_factory=DeliverySpec)
    pricing: Optional[PricingSpec] = None

    def is_empty(self) -> bool:
        return (
            not self.style.present_fields()
            and self.customization.is_empty()
            and self.delivery == DeliverySpec()
            and self.pricing is None
        )


class QuoteVersion(_WireModel):
    id: str
    sequence_number: int
    created_at: datetime
    label: str
    specification: ProductSpecification

    @property
    def pricing(self) -> Optional[PricingSpec]:
        return self.specification.pricing


class OrderBuilderState(_WireModel):
    """構成スレッドのバージョン履歴。versions は追記のみ（挿入順 = 時系列）。"""

    versions: List[QuoteVersion] = Field(default_factory=list)
    selected_version_id: Optional[str] = None

    @model_validator(mode="after")
    def _selection_exists(self) -> "OrderBuilderState":
        if self.selected_version_id is not None and self.find(self.selected_version_id) is None:
            raise ValueError(f"selectedVersionId {self.selected_version_id!r} is not in versions")
        return self

    def find(self, version_id: str) -> Optional[QuoteVersion]:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None

    @property
    def selected(self) -> Optional[QuoteVersion]:
        return self.find(self.selected_version_id) if self.selected_version_id else None


class StyleStatus(str, Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"


class CustomizationStatus(str, Enum):
    EMPTY = "empty"
    YELLOW = "yellow"


class DeliveryStatus(str, Enum):
    RED = "red"
    GREEN = "green"


class CostBreakdownStatus(_WireModel):
    available: bool = False
    version_count: int = 0


class SectionStatuses(_WireModel):
    """仕様から毎回導出する完了状態。保存はしない。"""

    style: StyleStatus = StyleStatus.RED
    customization: CustomizationStatus = CustomizationStatus.EMPTY
    delivery: DeliveryStatus = DeliveryStatus.RED
    cost_breakdown: CostBreakdownStatus = Field(default_factory=CostBreakdownStatus)


class LogoMethodRecommendation(_WireModel):
    """ロゴ解析エージェントが推奨する加工方法と数量帯ごとの単価。

    `pricing` は {数量ブレークポイント: 単価}。"price144" 形式のキーも受け付ける。
    """

    method: LogoMethod
    recommended_size: Optional[LogoSize] = None
    locations: List[LogoLocation] = Field(default_factory=list)
    pricing: Dict[int, float] = Field(default_factory=dict)
    mold_charge: float = 0.0

    @field_validator("pricing", mode="before")
    @classmethod
    def _tier_keys(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        out = {}
        for key, price in value.items():
            k = str(key).strip().lower()
            if k.startswith("price"):
                k = k[len("price"):]
            out[int(k)] = price
        return out


class LogoAnalysisResult(_WireModel):
    analysis_id: str
    timestamp: Optional[datetime] = None
    recommended_methods: List[LogoMethodRecommendation] = Field(default_factory=list)

    def unit_price(self, tier: int) -> Optional[float]:
        """最上位の推奨方法について、指定ブレークポイントの単価を返す。"""
        if not self.recommended_methods:
            return None
        return self.recommended_methods[0].pricing.get(tier)


class HandoffType(str, Enum):
    LOGO_TO_QUOTE = "logo-to-quote"
    QUOTE_REFINEMENT = "quote-refinement"
    COST_VERIFICATION = "cost-verification"


class HandoffRecord(_WireModel):
    from_agent: str
    to_agent: str
    handoff_type: HandoffType
    logo_analysis_result: Optional[LogoAnalysisResult] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ResolutionMethod(str, Enum):
    USE_LOGO_ANALYSIS = "use-logo-analysis"
    USE_QUOTE_CALCULATION = "use-quote-calculation"


class ConsistencyCheckResult(_WireModel):
    """2 つの見積額の突き合わせ結果。監査用で、正の値として保存はしない。"""

    logo_analysis_cost: float
    quote_cost: float
    discrepancy_found: bool
    resolved_cost: float
    resolution_method: ResolutionMethod
    confidence: float
    discrepancy_amount: Optional[float] = None
    discrepancy_reason: Optional[str] = None
    quantity: int = 0
    tier: Optional[int] = None


__all__ = [
    "LogoLocation",
    "LogoMethod",
    "LogoSize",
    "LogoEntry",
    "STYLE_FIELDS",
    "StyleSpec",
    "CustomizationSpec",
    "DeliverySpec",
    "PricingSpec",
    "ProductSpecification",
    "QuoteVersion",
    "OrderBuilderState",
    "StyleStatus",
    "CustomizationStatus",
    "DeliveryStatus",
    "CostBreakdownStatus",
    "SectionStatuses",
    "LogoMethodRecommendation",
    "LogoAnalysisResult",
    "HandoffType",
    "HandoffRecord",
    "ResolutionMethod",
    "ConsistencyCheckResult",
]
