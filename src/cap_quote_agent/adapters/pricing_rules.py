import json
import os
from typing import Any, Dict, List

from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_QUANTITY_BREAKPOINTS = (48, 144, 576, 1152, 2880, 10000, 20000)


class PricingRules(BaseModel):
    """デプロイごとに変えられる業務定数。

    Attributes:
        tolerance: 価格整合性チェックの相対許容誤差（0.05 = 5%）。
        quantity_breakpoints: ロゴ単価の数量ブレークポイント（昇順に整列される）。
        discrepancy_confidence: 許容誤差を超えたときの信頼度。
        max_capture_length: 抽出キャプチャの最大長。
        apply_defaults_when_priced: 価格付きの仕様では未設定項目を既定値で補ってから状態を判定する。
    """

    tolerance: float = Field(default=0.05, ge=0.0)
    quantity_breakpoints: List[int] = Field(default_factory=lambda: list(DEFAULT_QUANTITY_BREAKPOINTS))
    discrepancy_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    max_capture_length: int = Field(default=50, gt=0)
    apply_defaults_when_priced: bool = True

    @field_validator("quantity_breakpoints")
    @classmethod
    def _sorted_breakpoints(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("quantity_breakpoints must not be empty")
        return sorted(set(value))


# 環境変数名 → PricingRules のフィールド名
ENV_OVERRIDES = {
    "PRICING_TOLERANCE": "tolerance",
    "PRICING_QUANTITY_BREAKPOINTS": "quantity_breakpoints",
    "PRICING_DISCREPANCY_CONFIDENCE": "discrepancy_confidence",
    "EXTRACTION_MAX_CAPTURE_LENGTH": "max_capture_length",
    "APPLY_DEFAULTS_WHEN_PRICED": "apply_defaults_when_priced",
}


def _pricing_rules_file_path() -> str | None:
    """業務定数 JSON ファイルのパスを返します。

    説明:
    - 環境変数 `PRICING_RULES_PATH` が設定されていればそのパス、未設定なら `None`（組み込みの既定値を使う）。
    """
    return os.getenv("PRICING_RULES_PATH") or None


def _load_pricing_rules_file() -> Dict[str, Any]:
    """業務定数の JSON ファイルを読み込みます（存在する場合）。

    戻り値:
    - `Dict[str, Any]`: ファイルの内容。パス未設定またはファイルが無い場合は空の辞書。

    例外:
    - `RuntimeError`: ファイルはあるが JSON として読めない、またはオブジェクトでない場合。
    """
    path = _pricing_rules_file_path()
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except Exception as e:
        raise RuntimeError(f"Failed to load pricing rules at {path}: {e}") from e
    if not isinstance(data, dict):
        raise RuntimeError(f"Pricing rules at {path} must be a JSON object")
    return data


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, field in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or not raw.strip():
            continue
        if field == "quantity_breakpoints":
            overrides[field] = [int(p) for p in raw.replace(" ", "").split(",") if p]
        elif field == "apply_defaults_when_priced":
            overrides[field] = raw.strip().lower() in {"1", "true", "yes", "on"}
        else:
            overrides[field] = raw.strip()
    return overrides


def load_pricing_rules() -> PricingRules:
    """ファイル → 環境変数の順に重ねて PricingRules を構築する。

    Behavior:
    - `PRICING_RULES_PATH` のファイルが無ければ組み込みの既定値から始める。
    - 個別の環境変数（`PRICING_TOLERANCE` など）はファイルの値より優先する。
    - 値が不正な場合は `RuntimeError` を送出する（起動時に気付けるように）。
    """
    values = _load_pricing_rules_file()
    try:
        values.update(_env_overrides())
        return PricingRules(**values)
    except (ValidationError, ValueError) as e:
        raise RuntimeError(f"Invalid pricing rules: {e}") from e


__all__ = ["PricingRules", "DEFAULT_QUANTITY_BREAKPOINTS", "load_pricing_rules"]
