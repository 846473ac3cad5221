"""Measurement sources for HealthSync.

Each source implements the MeasurementSource ABC and answers "which values
were available at this instant" for the sync scheduler.

Available sources:
    SampleSeriesSource     — In-memory per-field series (tests, dry runs)
    AppleHealthExportSource — Apple Health XML / JSON export
"""

from healthsync.sources.apple_health import AppleHealthExportSource
from healthsync.sources.base import SampleSeriesSource

__all__ = [
    "AppleHealthExportSource",
    "SampleSeriesSource",
]

# Registry: source_id → source class
SOURCE_REGISTRY: dict[str, type] = {
    "samples": SampleSeriesSource,
    "apple_health": AppleHealthExportSource,
}


def get_source(source_id: str) -> "type":
    """Return the source class for a given slug.

    Raises:
        KeyError: If the source_id is not registered.
    """
    if source_id not in SOURCE_REGISTRY:
        raise KeyError(
            f"No measurement source registered for '{source_id}'. "
            f"Available: {list(SOURCE_REGISTRY)}"
        )
    return SOURCE_REGISTRY[source_id]
