"""
Dataset Loader Module

Reads labelled survey files (SPSS .sav through pyreadstat, or CSV) into
immutable SurveyDataset snapshots and coerces questionnaire items to the
numeric codes the fitting engine needs.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import pyreadstat

from .errors import ConfigurationError, FilesystemError

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = ('.sav', '.csv')


@dataclass(frozen=True)
class SurveyDataset:
    """
    A snapshot of a survey dataset.

    Snapshots are never edited in place: every pipeline stage takes one and
    returns a new one, so each scale's transformation can be checked on its
    own.

    Attributes:
        frame (pd.DataFrame): Respondent rows by named columns
        value_labels (Dict[str, Dict]): Column -> {code: label} from the source file
        column_labels (Dict[str, str]): Column -> variable label
        source (Optional[Path]): File the data was read from
    """

    frame: pd.DataFrame
    value_labels: Dict[str, Dict] = field(default_factory=dict)
    column_labels: Dict[str, str] = field(default_factory=dict)
    source: Optional[Path] = None

    @property
    def columns(self) -> List[str]:
        return list(self.frame.columns)

    @property
    def n_rows(self) -> int:
        return len(self.frame)

    def has_column(self, name: str) -> bool:
        return name in self.frame.columns

    def select(self, columns: Sequence[str]) -> pd.DataFrame:
        """Return a copy of the requested columns (raises on unknown names)."""
        missing = [col for col in columns if col not in self.frame.columns]
        if missing:
            raise ConfigurationError(f"Columns not found in dataset: {missing}",
                                     columns=missing)
        return self.frame.loc[:, list(columns)].copy()

    def with_frame(self, frame: pd.DataFrame) -> 'SurveyDataset':
        """New snapshot over ``frame``, keeping metadata for surviving columns."""
        kept = set(frame.columns)
        return SurveyDataset(
            frame=frame,
            value_labels={k: v for k, v in self.value_labels.items() if k in kept},
            column_labels={k: v for k, v in self.column_labels.items() if k in kept},
            source=self.source,
        )


def from_frame(frame: pd.DataFrame,
               value_labels: Optional[Dict[str, Dict]] = None,
               column_labels: Optional[Dict[str, str]] = None) -> SurveyDataset:
    """Wrap an in-memory DataFrame as a dataset snapshot."""
    return SurveyDataset(frame=frame.copy(),
                         value_labels=dict(value_labels or {}),
                         column_labels=dict(column_labels or {}))


def read_dataset(path: Union[str, Path]) -> SurveyDataset:
    """
    Read a survey file without any type coercion.

    Args:
        path (Union[str, Path]): .sav or .csv file

    Returns:
        SurveyDataset: Loaded snapshot
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ConfigurationError(
            f"Unsupported input format '{suffix}' (expected one of {SUPPORTED_SUFFIXES})")

    if not path.is_file():
        raise FilesystemError("Input file not found", path)

    try:
        if suffix == '.sav':
            # numeric codes are kept; user-defined missing codes become NaN
            frame, meta = pyreadstat.read_sav(str(path), user_missing=False)
            value_labels = dict(meta.variable_value_labels or {})
            column_labels = {
                name: label
                for name, label in zip(meta.column_names, meta.column_labels or [])
                if label
            }
        else:
            frame = pd.read_csv(path, encoding='utf-8-sig')
            value_labels, column_labels = {}, {}
    except (OSError, pyreadstat.ReadstatError) as e:
        logger.error(f"Failed to read {path}: {e}")
        raise FilesystemError(f"Cannot read input file ({e})", path) from e

    logger.info(f"Dataset loaded: {path.name} {frame.shape}")
    return SurveyDataset(frame=frame, value_labels=value_labels,
                         column_labels=column_labels, source=path)


def _columns_for(dataset: SurveyDataset, columns: Optional[Iterable[str]],
                 prefixes: Optional[Iterable[str]]) -> List[str]:
    selected = []
    for name in columns or []:
        if not dataset.has_column(name):
            raise ConfigurationError(f"Column '{name}' not found in dataset",
                                     columns=[name])
        if name not in selected:
            selected.append(name)

    for prefix in prefixes or []:
        matched = [col for col in dataset.columns if str(col).startswith(prefix)]
        if not matched:
            logger.warning(f"No columns start with prefix '{prefix}'")
        for col in matched:
            if col not in selected:
                selected.append(col)
    return selected


def _to_numeric(series: pd.Series, labels: Optional[Dict]) -> pd.Series:
    """
    Convert one labelled column to its numeric codes.

    Label text is mapped back to its code through the value-label table;
    missing stays missing.
    """
    if pd.api.types.is_bool_dtype(series):
        return series.astype(float)
    if pd.api.types.is_numeric_dtype(series):
        return series.astype(float)

    values = series.astype(object)
    if labels:
        inverse = {str(label): code for code, label in labels.items()}
        values = values.map(lambda v: inverse.get(str(v), v) if pd.notna(v) else np.nan)

    converted = pd.to_numeric(values, errors='coerce')
    bad = series.notna() & converted.isna()
    if bad.any():
        examples = sorted({str(v) for v in series[bad].head(5)})
        raise ConfigurationError(
            f"Column '{series.name}' has values that are not numeric codes: {examples}",
            columns=[series.name])
    return converted.astype(float)


def coerce_numeric(dataset: SurveyDataset,
                   columns: Optional[Iterable[str]] = None,
                   prefixes: Optional[Iterable[str]] = None) -> SurveyDataset:
    """
    Coerce the named columns and every column starting with a prefix to float.

    Args:
        dataset (SurveyDataset): Source snapshot
        columns (Optional[Iterable[str]]): Exact column names (must exist)
        prefixes (Optional[Iterable[str]]): Column name prefixes, e.g. "Q13_burnout_"

    Returns:
        SurveyDataset: New snapshot with coerced columns
    """
    targets = _columns_for(dataset, columns, prefixes)
    frame = dataset.frame.copy()
    for col in targets:
        frame[col] = _to_numeric(frame[col], dataset.value_labels.get(col))

    logger.info(f"Coerced {len(targets)} columns to numeric")
    return dataset.with_frame(frame)


def load_dataset(path: Union[str, Path],
                 numeric_columns: Optional[Iterable[str]] = None,
                 numeric_prefixes: Optional[Iterable[str]] = None) -> SurveyDataset:
    """
    Read a survey file and coerce questionnaire items to numeric codes.

    Args:
        path (Union[str, Path]): .sav or .csv file
        numeric_columns (Optional[Iterable[str]]): Columns that must exist and be numeric
        numeric_prefixes (Optional[Iterable[str]]): Prefixes of item blocks to coerce

    Returns:
        SurveyDataset: Loaded and coerced snapshot
    """
    dataset = read_dataset(path)
    if numeric_columns or numeric_prefixes:
        dataset = coerce_numeric(dataset, numeric_columns, numeric_prefixes)
    return dataset
