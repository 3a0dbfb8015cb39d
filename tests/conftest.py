# cap-quote-agent/tests/conftest.py
import sys
from pathlib import Path

# src/ をパスに追加（editable install なしでも import できるように）
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

import pytest

from cap_quote_agent.adapters.pricing_rules import ENV_OVERRIDES, PricingRules


FULL_QUOTE = """Here's your updated quote!

🧢 **Cap Style:**
• Size: Large
• Color: Navy
• Profile: Mid
• Bill Shape: Flat
• Structure: Structured
• Fabric: Acrylic/Air Mesh
• Closure: Fitted
• Stitching: Contrast

🎨 **Logos:**
• Front: Large 3D Embroidery
• Left Side: Flat Embroidery

🎁 **Accessories:**
• Hang Tag: 144 pieces
• Inside Label: 144 pieces

🚚 **Delivery:**
• Method: Regular Delivery
• Lead Time: 4-6 days
• Delivery Cost: $30.00

💰 **Cost Breakdown:**
• Blank Caps: 144 × $2.08 = $300.00
• Customization Cost: $120.00
• Mold Charge: $0.00
• Total Order: $450.00
Quantity: 144 pieces
"""


def priced_text(total: str = "450.00", customization: str = "120.00", base: str = "300.00") -> str:
    return (
        "Quantity: 144 pieces\n"
        f"Blank Caps: 144 × $2.08 = ${base}\n"
        f"Customization Cost: ${customization}\n"
        f"Total Order: ${total}\n"
    )


@pytest.fixture(autouse=True)
def clean_pricing_env(monkeypatch):
    """Keep deployment overrides from leaking into tests."""
    monkeypatch.delenv("PRICING_RULES_PATH", raising=False)
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def rules() -> PricingRules:
    return PricingRules()


@pytest.fixture
def full_quote() -> str:
    return FULL_QUOTE


@pytest.fixture
def builder(rules):
    from cap_quote_agent.order_builder import OrderBuilder

    return OrderBuilder("thread-test", rules=rules)
