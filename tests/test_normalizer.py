# tests/test_normalizer.py
import logging

import pytest

from cap_quote_agent import normalizer as nz
from cap_quote_agent.models import (
    CustomizationSpec,
    LogoEntry,
    LogoLocation,
    LogoMethod,
    LogoSize,
    PricingSpec,
    ProductSpecification,
    StyleSpec,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("laser cut + polyester", "Polyester/Laser Cut"),
        ("polyester/laser cut", "Polyester/Laser Cut"),
        ("Polyester Laser Cut", "Polyester/Laser Cut"),
        ("AIRMESH / acrylic", "Acrylic/Air Mesh"),
        ("acrylic", "Acrylic"),
        ("Suede", "Suede Cotton"),
        ("bamboo", "Bamboo"),
        ("12% wool", None),
    ],
)
def test_canonical_fabric(raw, expected):
    assert nz.canonical_fabric(raw) == expected


def test_enumerated_fields_return_none_outside_vocabulary():
    assert nz.canonical_profile("Mid") == "Mid"
    assert nz.canonical_profile("gigantic") is None
    assert nz.canonical_bill_shape("slightly curved") == "Curved"
    assert nz.canonical_structure("semi-structured") == "Semi-Structured"
    assert nz.canonical_structure("unstructured") == "Unstructured"
    assert nz.canonical_closure("snap back") == "Snapback"
    assert nz.canonical_stitching("contrasting") == "Contrast"
    assert nz.canonical_delivery_method("standard shipping") == "Regular Delivery"
    assert nz.canonical_delivery_method("carrier pigeon") is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("7 1/4", "7 1/4"),
        ("7  3/8 fitted", "7 3/8"),
        ("XL", "XL"),
        ("one size fits all", "One Size"),
        ("medium", "Medium"),
        ("huge", None),
    ],
)
def test_canonical_size(raw, expected):
    assert nz.canonical_size(raw) == expected


def test_colours_split_and_title_cased():
    assert nz.canonical_colors("black, red & white") == ["Black", "Red", "White"]
    assert nz.canonical_colors(["navy", "Navy", "grey"]) == ["Navy", "Gray"]
    assert nz.canonical_colors("red/white") == ["Red/White"]
    assert nz.canonical_colors("duck camo") == []


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("4-6 days", "4-6 days"),
        ("4 – 6 days", "4-6 days"),
        ("7-10 business days", "7-10 business days"),
        ("2-3 weeks", "2-3 weeks"),
        ("about 10 days", "10 days"),
        ("soon", None),
    ],
)
def test_canonical_lead_time(raw, expected):
    assert nz.canonical_lead_time(raw) == expected


def test_accessory_vocabulary():
    assert nz.canonical_accessory("hang tags") == "Hang Tag"
    assert nz.canonical_accessory("B-Tape") == "B-Tape Print"
    assert nz.canonical_accessory("metal eyelets") == "Metal Eyelet"
    assert nz.canonical_accessory("Custom Box (premium)") == "Custom Box"


def test_make_logo_needs_both_location_and_method():
    assert nz.make_logo("front", "3-D embroidery") == LogoEntry(
        location=LogoLocation.FRONT, method=LogoMethod.EMBROIDERY_3D, size=LogoSize.LARGE
    )
    assert nz.make_logo("under bill", "sublimated", "medium").size == LogoSize.MEDIUM
    assert nz.make_logo("front", "hologram") is None
    assert nz.make_logo(None, "3D Embroidery") is None


@pytest.mark.parametrize("raw, expected", [("$1,234.50", 1234.5), (40, 40.0), ("n/a", None), (None, None), (True, None)])
def test_parse_amount(raw, expected):
    assert nz.parse_amount(raw) == expected


# ----------------------------- defaults -----------------------------
def test_with_defaults_only_fills_absent_fields():
    spec = ProductSpecification(style=StyleSpec(size="Large", color=["Navy"]))
    filled = nz.with_defaults(spec)

    assert filled.style.size == "Large"
    assert filled.style.color == ["Navy"]
    assert filled.style.fabric == "Chino Twill"
    assert filled.style.closure == "Snapback"
    assert filled.delivery.method == "Regular Delivery"
    assert filled.delivery.lead_time == "4-6 days"
    assert filled.delivery.cost == 0.0
    # 元の仕様は変わらない
    assert spec.style.fabric is None


def test_with_defaults_never_invents_customization_or_pricing():
    filled = nz.with_defaults(ProductSpecification())
    assert filled.customization == CustomizationSpec()
    assert filled.pricing is None


# ----------------------------- structured payloads -----------------------------
def test_normalize_structured_legacy_payload(caplog):
    payload = {
        "capDetails": {
            "size": "large",
            "colors": ["navy", "white"],
            "billShape": "flat bill",
            "fabric": "laser cut + polyester",
            "closure": "snap back",
        },
        "customization": {
            "logos": [
                {"position": "Front", "type": "3D Embroidery", "size": "Large"},
                {"location": "Back", "method": "Hologram"},
            ],
            "accessories": ["hang tags", "B-Tape"],
            "moldCharges": "$40",
        },
        "delivery": {"method": "priority", "leadTime": "2-3 weeks", "totalCost": 55},
        "pricing": {"total": 500, "quantity": 0},
    }
    with caplog.at_level(logging.WARNING, logger="cap_quote_agent.normalizer"):
        spec = nz.normalize_structured(payload)

    assert spec.style.size == "Large"
    assert spec.style.color == ["Navy", "White"]
    assert spec.style.bill_shape == "Flat"
    assert spec.style.fabric == "Polyester/Laser Cut"
    assert spec.style.closure == "Snapback"
    assert spec.customization.logos == [
        LogoEntry(location=LogoLocation.FRONT, method=LogoMethod.EMBROIDERY_3D, size=LogoSize.LARGE)
    ]
    assert spec.customization.accessories == ["Hang Tag", "B-Tape Print"]
    assert spec.customization.mold_charge == 40.0
    assert spec.delivery.method == "Priority Delivery"
    assert spec.delivery.lead_time == "2-3 weeks"
    assert spec.delivery.cost == 55.0
    # quantity = 0 の価格ブロックは丸ごと捨てる
    assert spec.pricing is None
    assert any("unmappable logo" in r.getMessage() for r in caplog.records)
    assert any("invalid pricing" in r.getMessage() for r in caplog.records)


def test_normalize_structured_accepts_camel_case_model_payload():
    payload = {
        "style": {"billShape": "curved", "color": "Black"},
        "pricing": {"total": "$450.00", "quantity": 144, "customizationCost": 120, "baseCost": 300},
    }
    spec = nz.normalize_structured(payload)
    assert spec.style.bill_shape == "Curved"
    assert spec.style.color == ["Black"]
    assert spec.pricing == PricingSpec(total=450.0, quantity=144, customization_cost=120.0, base_cost=300.0)


def test_normalize_structured_round_trips_a_specification():
    spec = ProductSpecification(
        style=StyleSpec(size="7 1/4", color=["Red/White"], fabric="Acrylic/Air Mesh"),
        customization=CustomizationSpec(
            logos=[LogoEntry(location=LogoLocation.LEFT, method=LogoMethod.LEATHER_PATCH, size=LogoSize.SMALL)],
            accessories=["Hang Tag"],
        ),
        pricing=PricingSpec(total=99.5, quantity=48),
    )
    assert nz.normalize_structured(spec) == spec


@pytest.mark.parametrize("payload", [None, "not a payload", 42])
def test_normalize_structured_never_raises(payload):
    assert nz.normalize_structured(payload) is None


@pytest.mark.parametrize("value", [float("nan"), float("inf"), -float("inf"), "9" * 400])
def test_parse_amount_rejects_non_finite_values(value):
    assert nz.parse_amount(value) is None


def test_bad_pricing_block_does_not_drop_the_rest_of_the_payload():
    payload = {
        "capDetails": {"size": "Large", "color": "Navy"},
        "pricing": {"total": 100, "quantity": float("nan")},
        "customization": {"moldCharge": float("inf")},
    }
    spec = nz.normalize_structured(payload)
    assert spec.style.size == "Large"
    assert spec.style.color == ["Navy"]
    assert spec.pricing is None
    assert spec.customization.mold_charge is None


def test_single_accessory_and_logo_are_not_split_apart():
    payload = {
        "customization": {
            "accessories": "Hang Tag",
            "logos": {"location": "Front", "method": "3D Embroidery"},
        }
    }
    spec = nz.normalize_structured(payload)
    assert spec.customization.accessories == ["Hang Tag"]
    assert spec.customization.logos == [
        LogoEntry(location=LogoLocation.FRONT, method=LogoMethod.EMBROIDERY_3D, size=LogoSize.LARGE)
    ]
