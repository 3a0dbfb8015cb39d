"""State schema for one ingest run of the cap quote agent.

Notes
-----
- 1 回の `ingest` = テキスト取り込み → 抽出 → 正規化 → マージ → (バージョン追加?) → 状態導出 → 提示
  のフローに対応するフィールドを保持します。
- 値は Pydantic モデルのまま保持し、永続化用の辞書化は presentation ノードで行います。
"""

from typing import Any, Dict, List, TypedDict

from .adapters.pricing_rules import PricingRules
from .models import OrderBuilderState, ProductSpecification, SectionStatuses


class IngestState(TypedDict, total=False):
    thread_id: str  # 構成スレッドの識別子（呼び出し側が与える）
    text: str  # エージェントの自然文応答
    agent_structured_raw: Any  # エージェントが別経路で返した構造化ペイロード（未正規化）
    persisted: ProductSpecification | None  # 直近にコミットされた仕様
    order_state: OrderBuilderState  # バージョン履歴（入力 → 更新後）
    rules: PricingRules  # 業務定数
    text_extracted: ProductSpecification  # Extractor の出力
    extraction_matches: Dict[str, str]  # 項目名 → 採用されたカスケードエントリ
    agent_structured: ProductSpecification | None  # 正規化済みの構造化ペイロード
    merged: ProductSpecification  # Reconciler の出力
    new_version_created: bool
    section_statuses: SectionStatuses
    presentation_payload: Dict[str, Any]  # 永続化/UI 向けのデータ
    errors: List[str]
    trace: List[str]  # 通過ノードの記録


__all__ = ["IngestState"]
