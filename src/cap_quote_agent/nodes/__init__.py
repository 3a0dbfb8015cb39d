from . import (
    extractor,
    ingestion,
    normalizer,
    presentation,
    reconciler,
    status,
    versioning,
)

__all__ = [
    "ingestion",
    "extractor",
    "normalizer",
    "reconciler",
    "versioning",
    "status",
    "presentation",
]
