"""外部設定/サービスとの連携。

提供機能:
- 業務定数の参照ファサード: `query_pricing_rules()` → `adapters.pricing_rules` に委譲
- スレッドのスナップショット保存フック: `store_snapshot(payload)`（現在は no-op）

補足:
- `.env` の読み込みはエントリポイントで行い、本モジュールは環境変数を直接参照します。
"""

import logging
from typing import Any, Dict

from .adapters.pricing_rules import PricingRules

logger = logging.getLogger(__name__)


def query_pricing_rules() -> PricingRules:
    """業務定数（許容誤差・数量ブレークポイント等）を取得するファサード関数。

    実体は `adapters.pricing_rules.load_pricing_rules` に委譲します。呼び出し側は tools を
    経由することで、設定の読み込み元（ファイル/環境変数）の変更の影響を受けません。

    Returns:
        PricingRules: ファイル → 環境変数の順に重ねた業務定数。

    Raises:
        RuntimeError: 設定ファイルまたは環境変数の値が不正な場合。
    """
    from .adapters.pricing_rules import load_pricing_rules as _impl

    return _impl()


def store_snapshot(payload: Dict[str, Any]) -> None:
    """マージ済み仕様・バージョン履歴・セクション状態を永続化するためのフック関数（スタブ）。

    現状は no-op です。スレッド ID をキーに、受け取った辞書をそのまま保存してください
    （ファイル/DB/外部API など）。

    Args:
        payload: `presentation_node` が生成する辞書。
            "threadId", "specification", "orderBuilderState", "sectionStatuses", "selectedPricing" を含む。
    """
    logger.debug("store_snapshot: thread=%s (no-op)", payload.get("threadId"))
    return None


__all__ = ["query_pricing_rules", "store_snapshot"]
