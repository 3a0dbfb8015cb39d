# tests/test_graph.py
import pytest

from cap_quote_agent.graph import compile_app
from cap_quote_agent.models import OrderBuilderState, StyleStatus
from cap_quote_agent.nodes import extractor as extractor_node_module
from cap_quote_agent.nodes import presentation as presentation_node_module

from conftest import priced_text


@pytest.fixture
def app():
    return compile_app(checkpointer=None)


def _initial(text, rules, **extra):
    state = {
        "thread_id": "graph-test",
        "text": text,
        "order_state": OrderBuilderState(),
        "rules": rules,
        "trace": [],
        "errors": [],
    }
    state.update(extra)
    return state


def test_unpriced_response_skips_versioning(app, rules):
    out = app.invoke(_initial("Size: Medium\nColor: Black\nBill Shape: Flat", rules))
    assert out["trace"] == ["ingestion", "extractor", "normalizer", "reconciler", "status", "presentation"]
    assert out["new_version_created"] is False
    assert out["section_statuses"].style == StyleStatus.YELLOW
    assert out["extraction_matches"]["size"] == "labelled"


def test_priced_response_goes_through_versioning(app, rules):
    out = app.invoke(_initial(priced_text(), rules))
    assert "versioning" in out["trace"]
    assert out["new_version_created"] is True
    assert len(out["order_state"].versions) == 1


def test_presentation_hands_payload_to_store_hook(app, rules, monkeypatch):
    stored = []
    monkeypatch.setattr(presentation_node_module, "store_snapshot", stored.append)
    app.invoke(_initial(priced_text(), rules))

    assert len(stored) == 1
    payload = stored[0]
    assert payload["threadId"] == "graph-test"
    assert payload["selectedPricing"]["total"] == 450.0
    assert payload["sectionStatuses"]["costBreakdown"]["available"] is True
    assert payload["newVersionCreated"] is True


def test_extractor_failure_does_not_fail_the_run(app, rules, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("pattern table broken")

    monkeypatch.setattr(extractor_node_module, "extract_fields", boom)
    out = app.invoke(
        _initial("Size: Medium", rules, agent_structured_raw={"capDetails": {"size": "small"}})
    )
    assert out["errors"] == ["extractor: RuntimeError: pattern table broken"]
    assert out["merged"].style.size == "Small"
    assert out["trace"][-1] == "presentation"


def test_rules_loaded_when_not_supplied(app):
    state = _initial("", None)
    del state["rules"]
    out = app.invoke(state)
    assert out["rules"].tolerance == 0.05
    assert out["merged"].is_empty()


def test_reconciler_reports_style_completeness(app, rules, capsys):
    app.invoke(_initial("Size: Medium\nColor: Black\nBill Shape: Flat", rules))
    assert "[node] reconciler: style=3/8 " in capsys.readouterr().out
