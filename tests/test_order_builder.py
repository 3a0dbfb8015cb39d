# tests/test_order_builder.py
from datetime import datetime, timezone

import pytest

from cap_quote_agent.adapters.pricing_rules import PricingRules
from cap_quote_agent.errors import InvalidVersionReference
from cap_quote_agent.models import (
    CustomizationSpec,
    CustomizationStatus,
    DeliverySpec,
    DeliveryStatus,
    LogoEntry,
    LogoLocation,
    LogoMethod,
    LogoSize,
    OrderBuilderState,
    PricingSpec,
    ProductSpecification,
    StyleSpec,
    StyleStatus,
)
from cap_quote_agent.order_builder import (
    OrderBuilder,
    append_version,
    compute_section_statuses,
    select_version,
    version_label,
)

from conftest import priced_text


def _priced_spec(total=450.0, customization=120.0, base=300.0, logos=()) -> ProductSpecification:
    return ProductSpecification(
        customization=CustomizationSpec(logos=list(logos)),
        pricing=PricingSpec(total=total, customization_cost=customization, base_cost=base, quantity=144),
    )


# ----------------------------- section statuses -----------------------------
def test_empty_specification_statuses():
    statuses = compute_section_statuses(ProductSpecification())
    assert statuses.style == StyleStatus.RED
    assert statuses.customization == CustomizationStatus.EMPTY
    assert statuses.delivery == DeliveryStatus.RED
    assert statuses.cost_breakdown.available is False


def test_style_yellow_needs_size_colour_and_bill_shape():
    two = ProductSpecification(style=StyleSpec(size="Medium", color=["Black"], fabric="Acrylic"))
    three = ProductSpecification(style=StyleSpec(size="Medium", color=["Black"], bill_shape="Flat"))
    assert compute_section_statuses(two).style == StyleStatus.RED
    assert compute_section_statuses(three).style == StyleStatus.YELLOW


def test_style_green_when_all_items_present():
    style = StyleSpec(
        size="Medium",
        color=["Black"],
        profile="High",
        bill_shape="Curved",
        structure="Structured",
        fabric="Chino Twill",
        closure="Snapback",
    )
    # 縫製の代わりにクロージャがあれば満たす
    assert compute_section_statuses(ProductSpecification(style=style)).style == StyleStatus.GREEN


def test_customization_yellow_with_any_item():
    assert compute_section_statuses(
        ProductSpecification(customization=CustomizationSpec(mold_charge=0.0))
    ).customization == CustomizationStatus.YELLOW
    assert compute_section_statuses(
        ProductSpecification(customization=CustomizationSpec(accessories=["Sticker"]))
    ).customization == CustomizationStatus.YELLOW


def test_delivery_green_needs_method_and_cost():
    method_only = ProductSpecification(delivery=DeliverySpec(method="Regular Delivery"))
    both = ProductSpecification(delivery=DeliverySpec(method="Regular Delivery", cost=0.0))
    assert compute_section_statuses(method_only).delivery == DeliveryStatus.RED
    assert compute_section_statuses(both).delivery == DeliveryStatus.GREEN


def test_defaults_applied_only_to_priced_specifications():
    priced = _priced_spec()
    assert compute_section_statuses(priced).style == StyleStatus.RED
    statuses = compute_section_statuses(priced, apply_defaults=True)
    assert statuses.style == StyleStatus.GREEN
    assert statuses.delivery == DeliveryStatus.GREEN
    # 既定値はロゴ等を作らない
    assert statuses.customization == CustomizationStatus.EMPTY

    unpriced = ProductSpecification(style=StyleSpec(size="Large"))
    assert compute_section_statuses(unpriced, apply_defaults=True).style == StyleStatus.RED


def test_cost_breakdown_available_with_versions():
    state, _ = append_version(OrderBuilderState(), _priced_spec())
    statuses = compute_section_statuses(ProductSpecification(), state)
    assert statuses.cost_breakdown.available is True
    assert statuses.cost_breakdown.version_count == 1


# ----------------------------- versioning -----------------------------
def test_version_label_uses_front_logo_method():
    front = LogoEntry(location=LogoLocation.FRONT, method=LogoMethod.LEATHER_PATCH, size=LogoSize.LARGE)
    back = LogoEntry(location=LogoLocation.BACK, method=LogoMethod.FLAT_EMBROIDERY, size=LogoSize.SMALL)
    assert version_label(_priced_spec(logos=[back, front]), 2) == "Version 2: Leather Patch"
    assert version_label(_priced_spec(logos=[back]), 3) == "Version 3"


def test_append_version_dedups_on_pricing_tuple():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    state, created = append_version(OrderBuilderState(), _priced_spec(), now=now)
    assert created is True
    first = state.versions[0]
    assert first.sequence_number == 1
    assert first.created_at == now
    assert state.selected_version_id == first.id

    same, created = append_version(state, _priced_spec(total=450.004))
    assert created is False
    assert same is state

    state, created = append_version(state, _priced_spec(total=460.0))
    assert created is True
    assert [v.sequence_number for v in state.versions] == [1, 2]
    assert state.selected_version_id == state.versions[1].id


def test_append_version_ignores_unpriced_specification():
    state, created = append_version(OrderBuilderState(), ProductSpecification())
    assert created is False
    assert state.versions == []


def test_select_version_is_a_pointer_change():
    state, _ = append_version(OrderBuilderState(), _priced_spec())
    state, _ = append_version(state, _priced_spec(total=460.0))
    first_id = state.versions[0].id

    moved = select_version(state, first_id)
    assert moved.selected_version_id == first_id
    assert moved.versions == state.versions


def test_select_unknown_version_raises_and_keeps_state():
    state, _ = append_version(OrderBuilderState(), _priced_spec())
    with pytest.raises(InvalidVersionReference) as exc:
        select_version(state, "missing")
    assert exc.value.version_id == "missing"
    assert state.selected_version_id == state.versions[0].id


def test_state_rejects_dangling_selection():
    with pytest.raises(ValueError):
        OrderBuilderState(selected_version_id="nowhere")


# ----------------------------- OrderBuilder -----------------------------
def test_ingest_same_pricing_twice_creates_one_version(builder):
    first = builder.ingest(priced_text())
    second = builder.ingest(priced_text())
    assert first.new_version_created is True
    assert second.new_version_created is False
    assert len(builder.state.versions) == 1

    third = builder.ingest(priced_text(total="460.00"))
    assert third.new_version_created is True
    assert len(builder.state.versions) == 2
    assert builder.state.selected_version_id == builder.state.versions[1].id
    assert third.selected_version.pricing.total == 460.0


def test_duplicate_ingest_keeps_manual_selection(builder):
    builder.ingest(priced_text())
    builder.ingest(priced_text(total="460.00"))
    first_id = builder.state.versions[0].id
    builder.select_version(first_id)

    builder.ingest(priced_text(total="460.00"))
    assert builder.state.selected_version_id == first_id


def test_style_status_only_moves_forward(builder):
    turns = [
        "Size: Medium",
        "Color: Black",
        "Bill Shape: Curved",
        "Profile: High",
        "Structure: Structured",
        "Fabric: Chino Twill",
        "Stitching: Matching",
    ]
    order = {StyleStatus.RED: 0, StyleStatus.YELLOW: 1, StyleStatus.GREEN: 2}
    seen = [order[builder.ingest(text).section_statuses.style] for text in turns]

    assert seen == sorted(seen)
    assert seen[1] == 0
    assert seen[2] == 1
    assert seen[-1] == 2


def test_later_turn_does_not_erase_confirmed_fields(builder):
    builder.ingest("Fabric: Suede Cotton\nColor: Navy")
    result = builder.ingest("Size: Large. Fabric: we also offer Polyester")
    spec = result.merged_specification
    assert spec.style.fabric == "Suede Cotton"
    assert spec.style.color == ["Navy"]
    assert spec.style.size == "Large"


def test_agent_structured_payload_is_merged(builder):
    result = builder.ingest(
        "Here is the quote for your caps.",
        agent_structured={"capDetails": {"size": "XL", "fabric": "acrylic"}, "customization": {"accessories": ["rope"]}},
    )
    assert result.merged_specification.style.size == "XL"
    assert result.merged_specification.style.fabric == "Acrylic"
    assert result.merged_specification.customization.accessories == ["Rope"]


def test_explicit_persisted_source_is_used(builder):
    persisted = {"style": {"fabric": "Genuine Leather"}}
    result = builder.ingest("Fabric: Polyester", persisted=persisted)
    assert result.merged_specification.style.fabric == "Genuine Leather"


def test_full_quote_can_be_ordered(builder, full_quote):
    result = builder.ingest(full_quote)
    assert result.section_statuses.style == StyleStatus.GREEN
    assert result.section_statuses.customization == CustomizationStatus.YELLOW
    assert result.section_statuses.delivery == DeliveryStatus.GREEN
    assert result.section_statuses.cost_breakdown.available is True
    assert result.selected_version.label == "Version 1: 3D Embroidery"
    assert builder.can_quote_order() is True


def test_priced_quote_without_style_uses_defaults_for_status(rules):
    builder = OrderBuilder("t-defaults", rules=rules)
    result = builder.ingest(priced_text())
    assert result.section_statuses.style == StyleStatus.GREEN
    # 保存される仕様には既定値を書き込まない
    assert result.merged_specification.style.fabric is None

    strict = OrderBuilder("t-strict", rules=PricingRules(apply_defaults_when_priced=False))
    assert strict.ingest(priced_text()).section_statuses.style == StyleStatus.RED


def test_select_unknown_version_on_builder(builder):
    builder.ingest(priced_text())
    before = builder.state
    with pytest.raises(KeyError):
        builder.select_version("does-not-exist")
    assert builder.state == before


def test_reset_discards_the_thread(builder, full_quote):
    builder.ingest(full_quote)
    builder.record_handoff(
        {"fromAgent": "LogoAnalyzer", "toAgent": "QuoteMaster", "handoffType": "logo-to-quote", "logoAnalysisResult": {"analysisId": "a-1"}}
    )
    builder.reset()
    assert builder.specification == ProductSpecification()
    assert builder.state.versions == []
    assert builder.state.selected_version_id is None
    assert builder.handoffs.records == []
    assert builder.is_ready_for_quote_generation is False


def test_snapshot_round_trip(builder, full_quote, rules):
    builder.ingest(full_quote)
    builder.ingest(priced_text(total="460.00"))
    snapshot = builder.snapshot()

    assert snapshot["threadId"] == "thread-test"
    assert snapshot["specification"]["style"]["billShape"] == "Flat"
    assert snapshot["sectionStatuses"]["costBreakdown"]["available"] is True
    assert len(snapshot["orderBuilderState"]["versions"]) == 2

    restored = OrderBuilder.from_snapshot(snapshot, rules=rules)
    assert restored.specification == builder.specification
    assert restored.state == builder.state
    assert restored.section_statuses == builder.section_statuses


def test_summary(builder, full_quote):
    builder.ingest(full_quote)
    summary = builder.summary()
    assert summary["thread_id"] == "thread-test"
    assert summary["version_count"] == 1
    assert summary["can_quote_order"] is True
    assert summary["handoff_count"] == 0
