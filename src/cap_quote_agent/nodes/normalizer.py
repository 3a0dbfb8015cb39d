from ..normalizer import normalize_structured
from ..state import IngestState
from ._utils import record_node_error, record_node_trace


def normalizer_node(state: IngestState) -> IngestState:
    """エージェントの構造化ペイロードを、抽出結果と同じ固定語彙へ正規化するノード。

    振る舞い:
    - `agent_structured_raw` が無ければ `agent_structured=None`
    - 語彙外の値やスキーマ違反は捨て、残りだけを `agent_structured` に格納
    - トレースに "normalizer" を追加
    """
    raw = state.get("agent_structured_raw")
    try:
        structured = normalize_structured(raw)
    except Exception as e:
        record_node_error(state, "normalizer", e)
        print(f"[node] normalizer: 構造化ペイロードを破棄: {e}")
        structured = None

    record_node_trace(state, "normalizer")
    state["agent_structured"] = structured
    if structured is None:
        print("[node] normalizer: structured payload なし")
    else:
        print(
            "[node] normalizer: "
            f"style={structured.style.present_fields()} "
            f"logos={len(structured.customization.logos)} "
            f"priced={structured.pricing is not None}"
        )
    return state


__all__ = ["normalizer_node"]
