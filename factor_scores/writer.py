"""
Dataset Writer Module

Writes the final dataset snapshot once per run: SPSS .sav through
pyreadstat (variable and value labels preserved) or CSV.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

import pyreadstat

from .data_loader import SUPPORTED_SUFFIXES, SurveyDataset
from .errors import ConfigurationError, FilesystemError
from .merger import find_duplicate_columns

logger = logging.getLogger(__name__)


def write_dataset(dataset: SurveyDataset, path: Union[str, Path]) -> Path:
    """
    Persist a dataset snapshot.

    Args:
        dataset (SurveyDataset): Final dataset
        path (Union[str, Path]): Destination, .sav or .csv

    Returns:
        Path: The written file

    Raises:
        ConfigurationError: Unsupported suffix or duplicate column names
        FilesystemError: The file could not be written
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ConfigurationError(
            f"Unsupported output format '{suffix}' (expected one of {SUPPORTED_SUFFIXES})")

    frame = dataset.frame
    duplicates = find_duplicate_columns(frame)
    if duplicates:
        raise ConfigurationError(f"Dataset has duplicate column names: {duplicates}",
                                 columns=duplicates)

    temp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        # an existing output is replaced only once the new file is complete
        handle, temp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=suffix,
                                             dir=path.parent)
        os.close(handle)
        temp_path = Path(temp_name)

        if suffix == '.sav':
            _write_sav(dataset, temp_path)
        else:
            frame.to_csv(temp_path, index=False, encoding='utf-8-sig')
        os.chmod(temp_path, _default_file_mode())
        os.replace(temp_path, path)
        temp_path = None
    except (OSError, pyreadstat.ReadstatError, pyreadstat.PyreadstatError) as e:
        logger.error(f"Failed to write {path}: {e}")
        raise FilesystemError(f"Cannot write output file ({e})", path) from e
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink()

    logger.info(f"Dataset written: {path} {frame.shape}")
    return path


def _write_sav(dataset: SurveyDataset, path: Path) -> None:
    """SPSS file with variable and value labels."""
    frame = dataset.frame
    column_labels = [dataset.column_labels.get(col) for col in frame.columns]
    value_labels = {col: labels for col, labels in dataset.value_labels.items()
                    if col in frame.columns and labels}
    pyreadstat.write_sav(frame.reset_index(drop=True), str(path),
                         column_labels=column_labels,
                         variable_value_labels=value_labels or None)


def _default_file_mode() -> int:
    """Permissions a plain ``open(path, 'w')`` would give under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask
