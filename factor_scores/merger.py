"""
Dataset Merger Module

Adds factor-score columns to a dataset snapshot. Rows are aligned by the
original row index and a name that already exists is never overwritten
or silently renamed.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional

import pandas as pd

from .data_loader import SurveyDataset
from .errors import ColumnCollisionError, ConfigurationError

logger = logging.getLogger(__name__)

POSITIONS = ('append', 'prepend')


def find_duplicate_columns(frame: pd.DataFrame) -> List[str]:
    """Column names that occur more than once, in first-seen order."""
    duplicated = frame.columns[frame.columns.duplicated()]
    return list(dict.fromkeys(duplicated))


def resolve_column_names(score_columns: List[str],
                         column_map: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Output name for every score column.

    Args:
        score_columns (List[str]): Factor names in declaration order
        column_map (Optional[Dict[str, str]]): factor -> output name overrides

    Returns:
        Dict[str, str]: factor -> output name, in ``score_columns`` order
    """
    column_map = dict(column_map or {})
    unknown = [key for key in column_map if key not in score_columns]
    if unknown:
        raise ConfigurationError(
            f"Column map names factors that are not in the score table: {unknown} "
            f"(score columns: {score_columns})", columns=unknown)

    resolved = {col: column_map.get(col, col) for col in score_columns}
    empty = [col for col, target in resolved.items() if not target]
    if empty:
        raise ConfigurationError(f"Empty output column name for {empty}", columns=empty)
    return resolved


def merge_scores(dataset: SurveyDataset, scores: pd.DataFrame,
                 column_map: Optional[Dict[str, str]] = None,
                 position: str = 'append',
                 labels: Optional[Dict[str, str]] = None) -> SurveyDataset:
    """
    Merge a factor score table into a dataset snapshot.

    Args:
        dataset (SurveyDataset): Current dataset (left unchanged)
        scores (pd.DataFrame): Score table indexed like the dataset
        column_map (Optional[Dict[str, str]]): Renames, e.g. {"F1": "TRIQ_Prom"}
        position (str): 'append' after or 'prepend' before existing columns
        labels (Optional[Dict[str, str]]): Variable labels for the new columns, by output name

    Returns:
        SurveyDataset: New snapshot with the score columns added

    Raises:
        ConfigurationError: Row index mismatch, bad column map or position
        ColumnCollisionError: An output name already exists or repeats
    """
    if position not in POSITIONS:
        raise ConfigurationError(f"Unsupported merge position: {position}")

    frame = dataset.frame
    if len(scores) != len(frame) or not scores.index.equals(frame.index):
        raise ConfigurationError(
            f"Score table rows do not match the dataset "
            f"({len(scores)} score rows, {len(frame)} dataset rows)")

    resolved = resolve_column_names(list(scores.columns), column_map)
    targets = list(resolved.values())

    collisions = [name for name in targets if name in frame.columns]
    collisions += [name for name in dict.fromkeys(targets)
                   if targets.count(name) > 1 and name not in collisions]
    if collisions:
        logger.warning(f"Score column names collide with existing columns: {collisions}")
        raise ColumnCollisionError(
            f"Score columns would overwrite or duplicate existing columns: {collisions}",
            columns=collisions)

    renamed = scores.rename(columns=resolved)
    if position == 'append':
        merged = pd.concat([frame, renamed], axis=1)
    else:
        merged = pd.concat([renamed, frame], axis=1)

    logger.info(f"Merged score columns {targets} ({position}); dataset now {merged.shape}")
    merged_dataset = dataset.with_frame(merged)
    if labels:
        new_labels = {name: label for name, label in labels.items() if name in targets}
        merged_dataset = replace(merged_dataset,
                                 column_labels={**merged_dataset.column_labels, **new_labels})
    return merged_dataset
