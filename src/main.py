from dotenv import load_dotenv
from cap_quote_agent.order_builder import OrderBuilder
import argparse
import json
import logging
import os
import sys


def _read_text(path: str | None) -> str:
    """`--text-file` を読み込む。省略または "-" なら標準入力から読む。"""
    if not path or path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def main() -> None:
    # .env をエントリポイントで読み込む（環境変数の統一管理）
    load_dotenv(override=True)
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--text-file",
        help="エージェント応答テキストのファイルパス（省略または - で標準入力）",
        default=None,
    )
    parser.add_argument(
        "--structured-file",
        help="エージェントの構造化ペイロード（JSON）のファイルパス（省略可）",
        default=None,
    )
    parser.add_argument(
        "--thread-id",
        help="構成スレッド ID",
        default="thread-001",
    )
    parser.add_argument(
        "--quote-cost",
        type=float,
        help="ロゴ解析との整合性チェックに使う見積額（--quantity と併用）",
        default=None,
    )
    parser.add_argument(
        "--quantity",
        type=int,
        help="整合性チェックに使う数量",
        default=None,
    )
    args = parser.parse_args()

    text = _read_text(args.text_file)
    structured = None
    if args.structured_file:
        if os.path.exists(args.structured_file):
            with open(args.structured_file, "r", encoding="utf-8") as f:
                structured = json.load(f)
        else:
            print(f"[main] 構造化ペイロードが見つかりません: {args.structured_file}. テキストのみで続行します。")

    builder = OrderBuilder(args.thread_id)
    result = builder.ingest(text, agent_structured=structured)

    # 通過ノードとサマリを表示
    print(f"[trace] path={' -> '.join(result.trace)}")
    statuses = result.section_statuses.model_dump(mode="json", by_alias=True)
    print(f"[result] statuses={statuses} new_version={result.new_version_created}")
    print(json.dumps(result.merged_specification.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))

    if args.quote_cost is not None and args.quantity:
        check = builder.validate_pricing(args.quantity, args.quote_cost)
        print(f"[consistency] {check.model_dump(mode='json', by_alias=True)}")
    print(f"[summary] {builder.summary()}")


if __name__ == "__main__":
    main()
