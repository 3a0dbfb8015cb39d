from ..models import OrderBuilderState
from ..order_builder import append_version
from ..state import IngestState
from ._utils import record_node_trace


def versioning_node(state: IngestState) -> IngestState:
    """価格付きのマージ結果を見積バージョンとして追加するノード。

    振る舞い:
    - (total, customizationCost, baseCost) が既存のどのバージョンとも異なるときだけ追加し、選択を移す
    - 同じ組み合わせが既にあれば履歴も選択も変えない
    - トレースに "versioning" を追加
    """
    record_node_trace(state, "versioning")
    order_state = state.get("order_state") or OrderBuilderState()
    order_state, created = append_version(order_state, state["merged"])
    state["order_state"] = order_state
    state["new_version_created"] = created
    selected = order_state.selected
    print(
        f"[node] versioning: created={created} versions={len(order_state.versions)} "
        f"selected={selected.label if selected else None}"
    )
    return state


__all__ = ["versioning_node"]
