from ..state import IngestState
from ..tools import store_snapshot
from ._utils import record_node_trace


def presentation_node(state: IngestState) -> IngestState:
    """マージ結果を永続化/UI 向けの辞書にまとめ、保存フックへ渡すノード。

    振る舞い:
    - マージ済み仕様・バージョン履歴・セクション状態・選択中バージョンの価格内訳を camelCase の辞書にする
    - 選択中バージョンがあれば価格内訳をログに表示、無ければ未見積である旨を表示
    - `presentation_payload` を生成し、`store_snapshot` に渡す（保存はスタブ）
    - トレースに "presentation" を追加

    Args:
    - state: エージェントの共有状態。

    Returns:
    - IngestState: 変更を反映した状態（`trace` と `presentation_payload` を更新）。
    """
    record_node_trace(state, "presentation")

    merged = state["merged"]
    order_state = state["order_state"]
    selected = order_state.selected
    pricing = selected.pricing if selected else None

    if pricing is not None:
        print(f"[presentation] {selected.label}: total=${pricing.total:.2f} quantity={pricing.quantity}")
        print(
            f"  内訳: base=${pricing.base_cost:.2f}, customization=${pricing.customization_cost:.2f}, "
            f"delivery=${pricing.delivery_cost:.2f}"
        )
    else:
        print("[presentation] 見積バージョンなし")
    errors = state.get("errors", []) or []
    if errors:
        print(f"[presentation] errors={errors}")

    state["presentation_payload"] = {
        "threadId": state.get("thread_id"),
        "specification": merged.model_dump(mode="json", by_alias=True),
        "orderBuilderState": order_state.model_dump(mode="json", by_alias=True),
        "sectionStatuses": state["section_statuses"].model_dump(mode="json", by_alias=True),
        "selectedPricing": pricing.model_dump(mode="json", by_alias=True) if pricing else None,
        "newVersionCreated": state.get("new_version_created", False),
        "errors": errors,
    }
    store_snapshot(state["presentation_payload"])
    return state


__all__ = ["presentation_node"]
