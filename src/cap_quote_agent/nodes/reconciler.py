from ..models import STYLE_FIELDS
from ..reconciliation import merge_specifications
from ..state import IngestState
from ._utils import record_node_trace


def reconciler_node(state: IngestState) -> IngestState:
    """agent_structured / text_extracted / persisted の 3 候補をマージするノード。

    振る舞い:
    - `merge_specifications` の優先度規則で `merged` を作る（persisted の確定値は後退しない）
    - トレースに "reconciler" を追加
    """
    record_node_trace(state, "reconciler")
    merged = merge_specifications(
        agent_structured=state.get("agent_structured"),
        text_extracted=state.get("text_extracted"),
        persisted=state.get("persisted"),
    )
    state["merged"] = merged
    pricing = merged.pricing
    print(
        "[node] reconciler: "
        f"style={len(merged.style.present_fields())}/{len(STYLE_FIELDS)} "
        f"logos={len(merged.customization.logos)} "
        f"accessories={len(merged.customization.accessories)} "
        f"total={pricing.total if pricing else None}"
    )
    return state


__all__ = ["reconciler_node"]
