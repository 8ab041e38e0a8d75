"""
SchemaNormalizer - Per-source Schema Harmonization

Projects raw source records onto the canonical cable schema using a
declarative column mapping, literal constants and value recode rules.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any, Optional

import geopandas as gpd
import numpy as np
import pandas as pd

from ..domain.enums import CableStatus, StatusPolicy
from ..domain.models import RecodeRule, SourceSpec
from ..types import SchemaError
from .source import SourceDataset

# Canonical attribute set, in output order (geometry and derived length follow)
CANONICAL_COLUMNS = (
    "country",
    "status",
    "name",
    "id",
    "owner",
    "technical_info",
    "voltage",
    "comment",
)

# Descriptive fields are carried as plain strings
TEXT_COLUMNS = ("name", "id", "owner", "technical_info", "voltage", "comment")


class SchemaNormalizer:
    """
    Schema normalization for one configured source.

    Applies the source's column mapping, constants and recode rules to every
    part of a SourceDataset.
    """

    def __init__(self, spec: SourceSpec, status_policy: StatusPolicy = StatusPolicy.PASSTHROUGH):
        """
        Initialize normalizer with source configuration.

        Args:
            spec: Source configuration containing mapping and recode rules
            status_policy: Handling of status values no rule covers
        """
        self.spec = spec
        self.status_policy = status_policy

    @property
    def constants(self) -> dict[str, Optional[str]]:
        """Literal values, with the source country unless a column supplies it."""
        constants: dict[str, Optional[str]] = {}
        if "country" not in self.spec.columns:
            constants["country"] = self.spec.country
        constants.update(self.spec.constants)
        return constants

    def normalize(self, dataset: SourceDataset) -> list[gpd.GeoDataFrame]:
        """
        Normalize every part of a dataset.

        Args:
            dataset: Raw dataset from a GeometrySource

        Returns:
            One canonical GeoDataFrame per part, each keeping the part's CRS
        """
        logging.info(f"Normalizing schema for {self.spec.name} ({dataset.record_count:,} features)")
        return [
            normalize(
                part,
                self.spec.columns,
                self.spec.recode,
                constants=self.constants,
                status_policy=self.status_policy,
                source_name=self.spec.name,
            )
            for part in dataset.parts
        ]


# ============================================================================
# Core normalization
# ============================================================================

def normalize(
    raw: gpd.GeoDataFrame,
    mapping: Mapping[str, str],
    recode_rules: Iterable[RecodeRule] = (),
    constants: Optional[Mapping[str, Any]] = None,
    status_policy: StatusPolicy = StatusPolicy.PASSTHROUGH,
    source_name: str = "<unnamed>",
) -> gpd.GeoDataFrame:
    """
    Project raw records onto the canonical schema.

    Mapped columns are renamed first, constants set, recode rules applied,
    then only the canonical fields are kept; canonical fields with no source
    are inserted as null columns. Extra raw columns are dropped.

    Args:
        raw: Raw GeoDataFrame with arbitrary column names
        mapping: Canonical field -> source column
        recode_rules: Value replacements on canonical fields
        constants: Canonical field -> literal value
        status_policy: Handling of status values no rule covers
        source_name: Name used in errors and logs

    Returns:
        GeoDataFrame with exactly the canonical columns plus geometry

    Raises:
        SchemaError: If the mapping references a missing source column or
            maps two canonical fields onto the same source column
    """
    _validate_mapping(raw, mapping, constants or {}, source_name)

    result = pd.DataFrame(index=raw.index)
    for canonical, source_column in mapping.items():
        result[canonical] = raw[source_column].map(_clean_value)

    for canonical, value in (constants or {}).items():
        result[canonical] = value

    result = apply_recode_rules(result, recode_rules)

    for column in CANONICAL_COLUMNS:
        if column not in result.columns:
            result[column] = None

    for column in TEXT_COLUMNS:
        result[column] = result[column].map(_to_text)
    result["country"] = result["country"].map(_to_text)

    if result["country"].isna().any():
        raise SchemaError(
            source_name,
            f"{int(result['country'].isna().sum())} records have no country; "
            "map a column or configure a constant"
        )

    result["status"] = result["status"].map(_to_text)
    unmapped = _apply_status_policy(result, status_policy, source_name)

    result = result[list(CANONICAL_COLUMNS)].copy()
    result["geometry"] = raw.geometry.values
    normalized = gpd.GeoDataFrame(result, geometry="geometry", crs=raw.crs).reset_index(drop=True)
    normalized.attrs["unmapped_status"] = unmapped

    logging.debug(f"{source_name}: normalized {len(normalized):,} records")
    return normalized


def apply_recode_rules(df: pd.DataFrame, recode_rules: Iterable[RecodeRule]) -> pd.DataFrame:
    """
    Replace source values with canonical values, column by column.

    Values match on their text form: surrounding whitespace is stripped and
    integral floats read back from numeric columns match their integer key
    (1.0 matches "1"). Unmatched values are left untouched.
    """
    tables: dict[str, dict[str, str]] = {}
    for rule in recode_rules:
        tables.setdefault(rule.column, {})[rule.source_value.strip()] = rule.canonical_value

    for column, table in tables.items():
        if column not in df.columns:
            continue
        df[column] = df[column].map(
            lambda v, table=table: table.get(_to_text(v), v) if _clean_value(v) is not None else None
        )
    return df


def _validate_mapping(
    raw: gpd.GeoDataFrame,
    mapping: Mapping[str, str],
    constants: Mapping[str, Any],
    source_name: str,
) -> None:
    """Fail fast when the mapping does not fit the raw schema."""
    unknown = [c for c in list(mapping) + list(constants) if c not in CANONICAL_COLUMNS]
    if unknown:
        raise SchemaError(source_name, f"unknown canonical fields: {', '.join(unknown)}")

    missing = [src for src in mapping.values() if src not in raw.columns]
    if missing:
        available = [c for c in raw.columns if c != raw.geometry.name]
        raise SchemaError(
            source_name,
            f"mapped source columns not found: {', '.join(missing)} "
            f"(available: {', '.join(map(str, available))})"
        )

    shared = sorted(str(src) for src, n in Counter(mapping.values()).items() if n > 1)
    if shared:
        raise SchemaError(source_name, f"source columns mapped to several canonical fields: {', '.join(shared)}")

    both = set(mapping) & set(constants)
    if both:
        raise SchemaError(source_name, f"fields both mapped and constant: {', '.join(sorted(both))}")


def _apply_status_policy(df: pd.DataFrame, policy: StatusPolicy, source_name: str) -> list[str]:
    """
    Handle status values outside the controlled vocabulary, in place.

    Spelling variants of a vocabulary member ("planned") count as known;
    they are recoded in the finalize stage.

    Returns:
        Sorted distinct status values no rule covered
    """
    unknown_mask = df["status"].map(lambda v: _clean_value(v) is not None and CableStatus.from_label(v) is None).astype(bool)
    unmapped = sorted(df.loc[unknown_mask, "status"].unique().tolist())

    if not unmapped:
        return unmapped

    if policy == StatusPolicy.REJECT:
        raise SchemaError(source_name, f"status values without recode rule: {', '.join(unmapped)}")

    if policy == StatusPolicy.NULL:
        logging.warning(f"{source_name}: nulling {int(unknown_mask.sum())} un-recoded status values: {unmapped}")
        df.loc[unknown_mask, "status"] = None
    else:
        logging.warning(f"{source_name}: passing through un-recoded status values: {unmapped}")
    return unmapped


# ============================================================================
# Helper functions for value conversion
# ============================================================================

def _clean_value(value: Any) -> Any:
    """Convert numpy scalars to Python values and missing markers to None."""
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        # Array-like values have no scalar NA test
        pass
    return value


def _to_text(value: Any) -> Optional[str]:
    """Render a cleaned value as a string; integral floats lose the '.0'."""
    value = _clean_value(value)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    return text or None
