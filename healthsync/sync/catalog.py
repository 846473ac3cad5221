"""Load, validate, and reload the measurement catalog.

The catalog lives in ``measurement_catalog.yaml`` alongside this module and
describes, for every snapshot field, which health-store record feeds it and
how stale a sample may be.  It is loaded once and cached; call
``reload_measurement_catalog()`` to re-read it from disk.

Usage::

    from healthsync.sync.catalog import get_measurement_catalog

    catalog = get_measurement_catalog()
    catalog.field_for_hk_type("HKQuantityTypeIdentifierHeartRate")  # 'heart_rate'
    catalog.max_age("heart_rate")                                   # timedelta(minutes=15)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

import yaml

from healthsync.sync.base import MEASUREMENT_FIELDS

logger = logging.getLogger("healthsync.sync.catalog")

_CATALOG_PATH = Path(__file__).parent / "measurement_catalog.yaml"


class ConfigValidationError(ValueError):
    """Raised when measurement_catalog.yaml fails validation."""


@dataclass
class MeasurementKind:
    """One catalog entry."""

    field: str
    hk_type: str
    unit: str
    json_keys: list[str] = field(default_factory=list)
    max_age_minutes: int | None = None


@dataclass
class MeasurementCatalog:
    """Validated, in-memory form of measurement_catalog.yaml."""

    version: str
    kinds: dict[str, MeasurementKind]

    def field_for_hk_type(self, hk_type: str) -> str | None:
        for kind in self.kinds.values():
            if kind.hk_type == hk_type:
                return kind.field
        return None

    def field_for_json_key(self, key: str) -> str | None:
        for kind in self.kinds.values():
            if key == kind.field or key in kind.json_keys:
                return kind.field
        return None

    def max_age(self, field_name: str) -> timedelta | None:
        kind = self.kinds.get(field_name)
        if kind is None or kind.max_age_minutes is None:
            return None
        return timedelta(minutes=kind.max_age_minutes)


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Measurement catalog not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> MeasurementCatalog:
    """Validate the raw YAML dict and construct a MeasurementCatalog.

    Raises:
        ConfigValidationError: If entries are missing, unknown, or malformed.
    """
    errors: list[str] = []
    entries = raw.get("measurements") or {}
    if not isinstance(entries, dict) or not entries:
        errors.append("'measurements' section is missing or empty")
        entries = {}

    kinds: dict[str, MeasurementKind] = {}
    seen_hk_types: set[str] = set()
    for name, cfg in entries.items():
        if name not in MEASUREMENT_FIELDS:
            errors.append(f"measurements.{name} is not a known snapshot field")
            continue
        if not isinstance(cfg, dict):
            errors.append(f"measurements.{name} must be a mapping")
            continue
        hk_type = cfg.get("hk_type")
        if not hk_type:
            errors.append(f"measurements.{name}.hk_type is required")
            continue
        if hk_type in seen_hk_types:
            errors.append(f"measurements.{name}.hk_type {hk_type} is mapped twice")
        seen_hk_types.add(hk_type)

        max_age = cfg.get("max_age_minutes")
        if max_age is not None:
            try:
                max_age = int(max_age)
            except (TypeError, ValueError):
                errors.append(f"measurements.{name}.max_age_minutes must be an integer or null")
                continue
            if max_age <= 0:
                errors.append(f"measurements.{name}.max_age_minutes must be positive")
                continue

        kinds[name] = MeasurementKind(
            field=name,
            hk_type=hk_type,
            unit=str(cfg.get("unit", "")),
            json_keys=[str(k) for k in cfg.get("json_keys", [])],
            max_age_minutes=max_age,
        )

    if errors:
        raise ConfigValidationError(
            f"measurement_catalog.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return MeasurementCatalog(version=str(raw.get("version", "1.0")), kinds=kinds)


def load_measurement_catalog(path: Path | None = None) -> MeasurementCatalog:
    """Load and validate the catalog from disk (bundled file by default)."""
    target = path or _CATALOG_PATH
    catalog = _validate_and_build(_load_yaml(target))
    logger.info(
        "Loaded measurement catalog v%s (%d kinds) from %s",
        catalog.version, len(catalog.kinds), target,
    )
    return catalog


# ---------------------------------------------------------------------------
# Global singleton with reload support
# ---------------------------------------------------------------------------

_catalog: MeasurementCatalog | None = None
_catalog_lock = threading.Lock()


def get_measurement_catalog() -> MeasurementCatalog:
    """Return the process-wide catalog, loading it on first call."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:
                _catalog = load_measurement_catalog()
    return _catalog


def reload_measurement_catalog(path: Path | None = None) -> MeasurementCatalog:
    """Re-read the catalog; the old one is kept if validation fails."""
    global _catalog
    new_catalog = load_measurement_catalog(path)
    with _catalog_lock:
        _catalog = new_catalog
    return new_catalog
