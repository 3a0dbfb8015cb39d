from ..state import IngestState
from ..tools import query_pricing_rules
from ._utils import record_node_trace


def ingestion_node(state: IngestState) -> IngestState:
    """エージェントの応答を受け取り、以降のノードが前提とする値を揃えるノード。

    振る舞い:
    - `text` が無ければ空文字、`errors` が無ければ空リストで初期化
    - `rules` が未指定なら `tools.query_pricing_rules()` で読み込む
    - トレースに "ingestion" を追加し、スレッド ID と入力の概要をログ出力

    Args:
    - state: エージェントの共有状態。

    Returns:
    - IngestState: 変更を反映した状態。
    """
    record_node_trace(state, "ingestion")
    state["text"] = state.get("text") or ""
    state["errors"] = list(state.get("errors") or [])
    if state.get("rules") is None:
        state["rules"] = query_pricing_rules()

    thread = state.get("thread_id", "UNKNOWN")
    has_structured = state.get("agent_structured_raw") is not None
    has_persisted = state.get("persisted") is not None
    print(
        f"[node] ingestion: thread={thread} chars={len(state['text'])} "
        f"structured={has_structured} persisted={has_persisted}"
    )
    return state


__all__ = ["ingestion_node"]
