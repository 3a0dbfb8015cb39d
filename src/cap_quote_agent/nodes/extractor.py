from ..extractor import ExtractionResult, extract_fields
from ..state import IngestState
from ._utils import record_node_error, record_node_trace


def extractor_node(state: IngestState) -> IngestState:
    """応答テキストから構成項目を抽出し、状態へ反映するノード。

    振る舞い:
    - `text` をパターンカスケードで解析し `text_extracted` に部分仕様を格納
    - どの項目がどのカスケードエントリで取れたかを `extraction_matches` に格納
    - 想定外の例外でも処理は止めず、空の仕様で続行（`errors` に記録）
    - トレースに "extractor" を追加

    Args:
    - state: エージェントの状態。

    Returns:
    - IngestState: 抽出結果を反映した状態。
    """
    rules = state["rules"]
    try:
        result = extract_fields(state.get("text"), max_capture_length=rules.max_capture_length)
    except Exception as e:
        record_node_error(state, "extractor", e)
        print(f"[node] extractor: 例外により抽出失敗: {e}")
        result = ExtractionResult()

    record_node_trace(state, "extractor")
    state["text_extracted"] = result.specification
    state["extraction_matches"] = result.matches

    spec = result.specification
    print(
        "[node] extractor: "
        f"style={spec.style.present_fields()} "
        f"logos={len(result.logos)} "
        f"accessories={result.accessories} "
        f"priced={spec.pricing is not None}"
    )
    return state


__all__ = ["extractor_node"]
