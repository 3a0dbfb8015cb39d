from langgraph.graph import StateGraph, START, END

from .state import IngestState
from .nodes import (
    ingestion,
    extractor,
    normalizer,
    reconciler,
    versioning,
    status,
    presentation,
)


def _priced_router(state: IngestState):
    """reconciler のマージ結果から次の遷移先を返すルータ。

    振る舞い:
    - `state["merged"].pricing` があれば "PRICED"、無ければ "UNPRICED" を返す。
    - ルーティング結果をログに出力する。

    Args:
    - state: エージェントの共有状態。

    Returns:
    - str: 遷移ラベル（"PRICED" | "UNPRICED"）。
    """
    merged = state.get("merged")
    route = "PRICED" if merged is not None and merged.pricing is not None else "UNPRICED"
    print(f"[router] reconciler -> {route}")
    return route


def build_graph() -> StateGraph:
    """1 回分の取り込みフローのノードと遷移を定義してグラフを構築する。

    振る舞い:
    - ノード登録: ingestion → extractor → normalizer → reconciler → (versioning?) → status → presentation
    - 条件分岐: reconciler の結果を `_priced_router` で評価し、"PRICED" なら versioning、"UNPRICED" なら status へ遷移
    - 始端/終端: START から ingestion へ、presentation から END へ接続

    Returns:
    - StateGraph: 構築済みの状態グラフ（未コンパイル）
    """
    g = StateGraph(IngestState)

    # ノード登録
    g.add_node("ingestion", ingestion.ingestion_node)
    g.add_node("extractor", extractor.extractor_node)
    g.add_node("normalizer", normalizer.normalizer_node)
    g.add_node("reconciler", reconciler.reconciler_node)
    g.add_node("versioning", versioning.versioning_node)
    g.add_node("status", status.status_node)
    g.add_node("presentation", presentation.presentation_node)

    # エッジ設定
    g.add_edge(START, "ingestion")
    g.add_edge("ingestion", "extractor")
    g.add_edge("extractor", "normalizer")
    g.add_edge("normalizer", "reconciler")

    g.add_conditional_edges(
        "reconciler",
        _priced_router,
        {
            "PRICED": "versioning",
            "UNPRICED": "status",
        },
    )

    g.add_edge("versioning", "status")
    g.add_edge("status", "presentation")
    g.add_edge("presentation", END)

    return g


def compile_app(checkpointer=None):
    """LangGraph をコンパイルし、実行可能なアプリを返す。

    振る舞い:
    - `build_graph()` で取り込みフローのグラフを構築
    - `checkpointer` を指定するとグラフ状態の永続化を有効化（スレッドの仕様・履歴は OrderBuilder 側が保持する）

    Args:
    - checkpointer: LangGraph 互換のチェックポインタ（省略可）

    Returns:
    - コンパイル済みのグラフ実行体（呼び出し可能オブジェクト）
    """
    graph = build_graph()
    return graph.compile(checkpointer=checkpointer)


__all__ = ["build_graph", "compile_app"]
