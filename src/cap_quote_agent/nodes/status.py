from ..models import OrderBuilderState
from ..order_builder import compute_section_statuses
from ..state import IngestState
from ._utils import record_node_trace


def status_node(state: IngestState) -> IngestState:
    """マージ結果とバージョン履歴からセクションごとの完了状態を導出するノード。

    振る舞い:
    - 状態は保存せず毎回 `compute_section_statuses` で計算する
    - 価格付きの仕様は `rules.apply_defaults_when_priced` に従って既定値を補ってから判定する
    - トレースに "status" を追加
    """
    record_node_trace(state, "status")
    state.setdefault("new_version_created", False)
    order_state = state.get("order_state") or OrderBuilderState()
    state["order_state"] = order_state
    statuses = compute_section_statuses(
        state["merged"],
        order_state,
        apply_defaults=state["rules"].apply_defaults_when_priced,
    )
    state["section_statuses"] = statuses
    print(
        "[node] status: "
        f"style={statuses.style.value} "
        f"customization={statuses.customization.value} "
        f"delivery={statuses.delivery.value} "
        f"cost_breakdown={statuses.cost_breakdown.available}"
    )
    return state


__all__ = ["status_node"]
