"""Cap Quote Agent package.

Turns free-form agent responses about a customizable cap into one canonical,
versioned product configuration: pattern extraction, vocabulary normalization,
three-source reconciliation, section status and quote versioning, plus the
cross-agent pricing consistency check. The ingest flow runs as a LangGraph.
"""

from . import graph, nodes, state, tools
from .errors import InvalidVersionReference, QuoteAgentError
from .extractor import extract_fields
from .handoff import check_pricing_consistency
from .models import ProductSpecification
from .order_builder import OrderBuilder, compute_section_statuses
from .reconciliation import merge_specifications

__all__ = [
    "state",
    "tools",
    "nodes",
    "graph",
    "OrderBuilder",
    "ProductSpecification",
    "extract_fields",
    "merge_specifications",
    "compute_section_statuses",
    "check_pricing_consistency",
    "QuoteAgentError",
    "InvalidVersionReference",
]
