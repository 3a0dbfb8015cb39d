"""構成スレッドの状態機械: セクション状態の導出、見積バージョン管理、バージョン選択。

`OrderBuilder` は 1 つの構成スレッド（1 件の見積会話）を表すオブジェクトで、
`ingest` ごとに LangGraph のパイプライン（抽出 → 正規化 → マージ → バージョン → 状態）を 1 回実行する。
同じスレッドに対する `ingest` は呼び出し側で直列化すること（並行呼び出しのマージ結果は未定義）。
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from .adapters.pricing_rules import PricingRules
from .errors import InvalidVersionReference
from .handoff import HandoffLog, check_pricing_consistency
from .models import (
    ConsistencyCheckResult,
    CostBreakdownStatus,
    CustomizationStatus,
    DeliveryStatus,
    HandoffRecord,
    LogoLocation,
    OrderBuilderState,
    ProductSpecification,
    QuoteVersion,
    SectionStatuses,
    StyleStatus,
)
from .normalizer import DEFAULT_SPECIFICATION, with_defaults

logger = logging.getLogger(__name__)

# 必須の 3 項目（これが揃うと yellow）
COMPULSORY_STYLE_ITEMS = ("size", "color", "bill_shape")


def _style_items(spec: ProductSpecification) -> Dict[str, bool]:
    style = spec.style
    return {
        "size": style.has("size"),
        "color": style.has("color"),
        "profile": style.has("profile"),
        "bill_shape": style.has("bill_shape"),
        "structure": style.has("structure"),
        "fabric": style.has("fabric"),
        # 縫製かクロージャのどちらかがあれば満たす
        "stitch": style.has("stitching") or style.has("closure"),
    }


def compute_section_statuses(
    spec: ProductSpecification,
    state: Optional[OrderBuilderState] = None,
    *,
    apply_defaults: bool = False,
    defaults: ProductSpecification = DEFAULT_SPECIFICATION,
) -> SectionStatuses:
    """仕様の項目有無からセクションごとの完了状態を導出する。

    振る舞い:
    - style: 必須 3 項目（size, color, billShape）が欠けていれば red、7 項目すべてなら green、それ以外は yellow。
    - customization: ロゴ・付属品・型代のいずれかがあれば yellow、無ければ empty（green は無い）。
    - delivery: method と cost が両方あれば green、それ以外は red。
    - costBreakdown: バージョンが 1 つ以上あれば available。
    - `apply_defaults` が真かつ価格付きの仕様なら、未設定の style / delivery 項目を既定値で補ってから判定する
      （保存される仕様は変更しない）。

    Args:
    - spec: 判定対象の仕様。
    - state: バージョン履歴（costBreakdown 判定用、省略可）。
    - apply_defaults: 価格付き仕様で既定値を補うか。
    - defaults: 既定値テーブル。

    Returns:
    - SectionStatuses: 毎回新しく計算した状態。
    """
    if apply_defaults and spec.pricing is not None:
        spec = with_defaults(spec, defaults)

    items = _style_items(spec)
    if all(items.values()):
        style_status = StyleStatus.GREEN
    elif all(items[name] for name in COMPULSORY_STYLE_ITEMS):
        style_status = StyleStatus.YELLOW
    else:
        style_status = StyleStatus.RED

    customization_status = (
        CustomizationStatus.EMPTY if spec.customization.is_empty() else CustomizationStatus.YELLOW
    )
    delivery = spec.delivery
    delivery_status = (
        DeliveryStatus.GREEN if delivery.method is not None and delivery.cost is not None else DeliveryStatus.RED
    )
    version_count = len(state.versions) if state is not None else 0
    return SectionStatuses(
        style=style_status,
        customization=customization_status,
        delivery=delivery_status,
        cost_breakdown=CostBreakdownStatus(available=version_count > 0, version_count=version_count),
    )


def version_label(spec: ProductSpecification, sequence_number: int) -> str:
    """正面ロゴの加工方法からラベルを作る。正面ロゴが無ければ "Version N"。"""
    for logo in spec.customization.logos:
        if logo.location == LogoLocation.FRONT:
            return f"Version {sequence_number}: {logo.method.value}"
    return f"Version {sequence_number}"


def append_version(
    state: OrderBuilderState,
    spec: ProductSpecification,
    *,
    now: Optional[datetime] = None,
) -> Tuple[OrderBuilderState, bool]:
    """価格付きの仕様を新しい QuoteVersion として追加する（重複なら何もしない）。

    Behavior:
    - 重複判定は (total, customizationCost, baseCost) をセント単位で比較する。
    - 新規なら sequenceNumber = 件数 + 1 で追加し、そのバージョンを選択状態にする。
    - 既存と同じなら状態も選択もそのまま返す。

    Returns:
        (新しい状態, 追加したか)
    """
    if spec.pricing is None:
        return state, False
    key = spec.pricing.dedup_key()
    for version in state.versions:
        if version.pricing is not None and version.pricing.dedup_key() == key:
            logger.info("pricing %s matches version %d, no new version", key, version.sequence_number)
            return state, False

    sequence_number = len(state.versions) + 1
    version = QuoteVersion(
        id=str(uuid.uuid4()),
        sequence_number=sequence_number,
        created_at=now or datetime.now(timezone.utc),
        label=version_label(spec, sequence_number),
        specification=spec,
    )
    logger.info("created quote version %d (%s) total=%.2f", sequence_number, version.label, spec.pricing.total)
    return OrderBuilderState(versions=[*state.versions, version], selected_version_id=version.id), True


def select_version(state: OrderBuilderState, version_id: str) -> OrderBuilderState:
    """選択ポインタだけを付け替える。存在しない id なら InvalidVersionReference（状態は変わらない）。"""
    if state.find(version_id) is None:
        raise InvalidVersionReference(version_id)
    return state.model_copy(update={"selected_version_id": version_id})


def fresh_state() -> OrderBuilderState:
    return OrderBuilderState()


class IngestResult(BaseModel):
    """`OrderBuilder.ingest` の戻り値。"""

    merged_specification: ProductSpecification
    section_statuses: SectionStatuses
    new_version_created: bool
    selected_version: Optional[QuoteVersion] = None
    trace: List[str] = Field(default_factory=list)


class OrderBuilder:
    """1 つの構成スレッドの仕様・バージョン履歴・ハンドオフ履歴を保持する。

    Attributes:
        thread_id: 呼び出し側が与える不透明なスレッド識別子。
        specification: 直近にコミットされたマージ済み仕様（次の ingest の persisted ソース）。
        state: バージョン履歴と選択中のバージョン。
        handoffs: ハンドオフ履歴。
        rules: 業務定数。
    """

    def __init__(
        self,
        thread_id: str = "default",
        *,
        rules: Optional[PricingRules] = None,
        specification: Optional[ProductSpecification] = None,
        state: Optional[OrderBuilderState] = None,
        handoffs: Optional[HandoffLog] = None,
    ):
        from .graph import compile_app
        from .tools import query_pricing_rules

        self.thread_id = thread_id
        self.rules = rules or query_pricing_rules()
        self.specification = specification or ProductSpecification()
        self.state = state or fresh_state()
        self.handoffs = handoffs or HandoffLog()
        self._app = compile_app(checkpointer=None)

    def ingest(
        self,
        text: Optional[str],
        agent_structured: Any = None,
        persisted: Optional[ProductSpecification | Mapping[str, Any]] = None,
    ) -> IngestResult:
        """エージェントの応答 1 件を取り込み、スレッドの仕様と履歴を更新する。

        振る舞い:
        - `persisted` を省略するとスレッドが保持している直近の仕様を使う。
        - パイプラインの実行結果で `specification` と `state` を置き換える。

        Args:
        - text: エージェントの自然文応答。
        - agent_structured: エージェントが別経路で返した構造化ペイロード（dict / ProductSpecification）。
        - persisted: 永続化層から読み込んだ仕様（省略可）。

        Returns:
        - IngestResult: マージ済み仕様、セクション状態、新バージョンを作ったか。
        """
        if persisted is None:
            persisted_spec = None if self.specification.is_empty() else self.specification
        elif isinstance(persisted, ProductSpecification):
            persisted_spec = persisted
        else:
            persisted_spec = ProductSpecification.model_validate(persisted)

        result_state = self._app.invoke(
            {
                "thread_id": self.thread_id,
                "text": text or "",
                "agent_structured_raw": agent_structured,
                "persisted": persisted_spec,
                "order_state": self.state,
                "rules": self.rules,
                "trace": [],
                "errors": [],
            },
            config={"configurable": {"thread_id": self.thread_id}},
        )
        self.specification = result_state["merged"]
        self.state = result_state["order_state"]
        return IngestResult(
            merged_specification=self.specification,
            section_statuses=result_state["section_statuses"],
            new_version_created=result_state.get("new_version_created", False),
            selected_version=self.state.selected,
            trace=result_state.get("trace", []),
        )

    def select_version(self, version_id: str) -> QuoteVersion:
        """選択中のバージョンを切り替える。存在しない id なら InvalidVersionReference。"""
        self.state = select_version(self.state, version_id)
        return self.state.selected

    def reset(self) -> None:
        """スレッドを破棄して空の状態からやり直す（仕様・バージョン・ハンドオフをすべて捨てる）。"""
        logger.info("thread %s reset (%d versions discarded)", self.thread_id, len(self.state.versions))
        self.specification = ProductSpecification()
        self.state = fresh_state()
        self.handoffs = HandoffLog()

    def record_handoff(self, record: HandoffRecord | Mapping[str, Any]) -> HandoffLog:
        if not isinstance(record, HandoffRecord):
            record = HandoffRecord.model_validate(record)
        self.handoffs = self.handoffs.append(record)
        return self.handoffs

    def validate_pricing(self, quantity: int, quote_cost: float) -> ConsistencyCheckResult:
        """直近のロゴ解析結果と見積額を突き合わせる。結果は監査用で、状態には一致したかだけを残す。"""
        result = check_pricing_consistency(self.handoffs.latest_analysis(), quantity, quote_cost, self.rules)
        self.handoffs = self.handoffs.model_copy(update={"pricing_validated": not result.discrepancy_found})
        return result

    @property
    def section_statuses(self) -> SectionStatuses:
        return compute_section_statuses(
            self.specification, self.state, apply_defaults=self.rules.apply_defaults_when_priced
        )

    @property
    def selected_version(self) -> Optional[QuoteVersion]:
        return self.state.selected

    @property
    def is_ready_for_quote_generation(self) -> bool:
        return self.handoffs.quote_generation_ready

    def can_quote_order(self) -> bool:
        """style と delivery の両方が green なら注文見積を出せる。"""
        statuses = self.section_statuses
        return statuses.style == StyleStatus.GREEN and statuses.delivery == DeliveryStatus.GREEN

    def snapshot(self) -> Dict[str, Any]:
        """永続化層へ渡す JSON 互換の辞書（camelCase）。"""
        return {
            "threadId": self.thread_id,
            "specification": self.specification.model_dump(mode="json", by_alias=True),
            "orderBuilderState": self.state.model_dump(mode="json", by_alias=True),
            "sectionStatuses": self.section_statuses.model_dump(mode="json", by_alias=True),
            "handoffLog": self.handoffs.model_dump(mode="json", by_alias=True),
        }

    @classmethod
    def from_snapshot(cls, data: Mapping[str, Any], *, rules: Optional[PricingRules] = None) -> "OrderBuilder":
        """`snapshot()` の出力からスレッドを復元する。セクション状態は保存値を使わず再計算する。"""
        return cls(
            data.get("threadId", "default"),
            rules=rules,
            specification=ProductSpecification.model_validate(data.get("specification") or {}),
            state=OrderBuilderState.model_validate(data.get("orderBuilderState") or {}),
            handoffs=HandoffLog.model_validate(data.get("handoffLog") or {}),
        )

    def summary(self) -> Dict[str, Any]:
        selected = self.selected_version
        return {
            "thread_id": self.thread_id,
            "version_count": len(self.state.versions),
            "selected_version": selected.label if selected else None,
            "can_quote_order": self.can_quote_order(),
            "quote_generation_ready": self.is_ready_for_quote_generation,
            "handoff_count": len(self.handoffs.records),
        }


__all__ = [
    "COMPULSORY_STYLE_ITEMS",
    "compute_section_statuses",
    "version_label",
    "append_version",
    "select_version",
    "fresh_state",
    "IngestResult",
    "OrderBuilder",
]
