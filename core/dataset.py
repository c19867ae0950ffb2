# core/dataset.py
"""
DriftFix PRO - Dataset boundary.

In-memory tabular input handed over by the data-parsing collaborator: rows of
float64 values plus column names, optionally reconciled against
``ModelMetadata.feature_names``. A ``Dataset`` is immutable; every accessor
returns a copy.

Column-name rules:
    1. ``metadata.feature_names`` of the right width override everything
    2. otherwise the given ``column_names`` are kept when their count matches
    3. otherwise names are regenerated as ``feature_<i>``
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from core.exceptions import DataValidationError

__all__ = ["Dataset", "ModelMetadata", "reconcile_column_names"]


class ModelMetadata(BaseModel):
    """Model-side description of the expected inputs and outputs."""

    model_config = ConfigDict(frozen=True)

    feature_names: List[str] = Field(default_factory=list)
    output_labels: List[str] = Field(default_factory=list)


def reconcile_column_names(
    column_names: Optional[Sequence[str]],
    width: int,
    metadata: Optional[ModelMetadata] = None
) -> List[str]:
    """Resolve final column names for a table of ``width`` columns."""
    if metadata is not None and metadata.feature_names:
        if len(metadata.feature_names) == width:
            return [str(n) for n in metadata.feature_names]
        logger.warning(
            f"⚠ ModelMetadata lists {len(metadata.feature_names)} features "
            f"but data has {width} columns - ignoring metadata names"
        )

    if column_names is not None and len(column_names) == width:
        return [str(n) for n in column_names]

    if column_names:
        logger.warning(
            f"⚠ {len(column_names)} column names for {width} columns - "
            f"regenerating as feature_<i>"
        )

    return [f"feature_{i}" for i in range(width)]


class Dataset:
    """
    📋 **Immutable float64 table**

    Usage:
```python
        ds = Dataset.from_rows([[1.0, 2.0], [3.0, 4.0]], ["age", "income"])
        ds.column(1)        # array([2., 4.])
        head, tail = ds.split(1)
```
    """

    __slots__ = ("_frame",)

    def __init__(self, frame: pd.DataFrame):
        self._frame = frame

    # ───────────────────────────────────────────────────────────────────
    # Constructors
    # ───────────────────────────────────────────────────────────────────

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Sequence[float]],
        column_names: Optional[Sequence[str]] = None,
        metadata: Optional[ModelMetadata] = None
    ) -> "Dataset":
        rows = [list(r) for r in rows]

        if rows:
            width = len(rows[0])
            ragged = [i for i, r in enumerate(rows) if len(r) != width]
            if ragged:
                raise DataValidationError(
                    "All rows must have identical length",
                    details={"expected_width": width, "ragged_rows": ragged[:10]}
                )
        else:
            width = len(column_names) if column_names else 0

        try:
            values = np.asarray(rows, dtype=np.float64).reshape(len(rows), width)
        except (TypeError, ValueError) as e:
            raise DataValidationError(
                "Rows must contain numeric values only",
                details={"original_error": str(e)},
                cause=e
            ) from e

        return cls.from_array(values, column_names, metadata)

    @classmethod
    def from_array(
        cls,
        values: np.ndarray,
        column_names: Optional[Sequence[str]] = None,
        metadata: Optional[ModelMetadata] = None
    ) -> "Dataset":
        arr = np.array(values, dtype=np.float64, copy=True)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2:
            raise DataValidationError(
                "Dataset values must be two-dimensional",
                details={"ndim": int(arr.ndim)}
            )

        names = reconcile_column_names(column_names, arr.shape[1], metadata)
        return cls(pd.DataFrame(arr, columns=names))

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        metadata: Optional[ModelMetadata] = None
    ) -> "Dataset":
        try:
            values = frame.to_numpy(dtype=np.float64, copy=True)
        except (TypeError, ValueError) as e:
            raise DataValidationError(
                "DataFrame must contain numeric columns only",
                details={"dtypes": {str(k): str(v) for k, v in frame.dtypes.items()}},
                cause=e
            ) from e
        return cls.from_array(values, [str(c) for c in frame.columns], metadata)

    # ───────────────────────────────────────────────────────────────────
    # Accessors
    # ───────────────────────────────────────────────────────────────────

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def values(self) -> np.ndarray:
        return self._frame.to_numpy(dtype=np.float64, copy=True)

    @property
    def column_names(self) -> List[str]:
        return [str(c) for c in self._frame.columns]

    @property
    def n_rows(self) -> int:
        return int(self._frame.shape[0])

    @property
    def n_features(self) -> int:
        return int(self._frame.shape[1])

    @property
    def rows(self) -> List[List[float]]:
        return self.values.tolist()

    def column(self, index: int) -> np.ndarray:
        return self._frame.iloc[:, index].to_numpy(dtype=np.float64, copy=True)

    def with_values(self, values: np.ndarray) -> "Dataset":
        """New dataset with the same column names and replaced values."""
        arr = np.asarray(values, dtype=np.float64)
        if arr.shape != self._frame.shape:
            raise DataValidationError(
                "Replacement values must keep the dataset shape",
                details={"expected": list(self._frame.shape), "got": list(arr.shape)}
            )
        return Dataset(pd.DataFrame(arr.copy(), columns=self._frame.columns))

    def split(self, k: int) -> Tuple["Dataset", "Dataset"]:
        """First ``k`` rows and the remaining rows."""
        k = max(0, min(int(k), self.n_rows))
        return (
            Dataset(self._frame.iloc[:k].reset_index(drop=True).copy()),
            Dataset(self._frame.iloc[k:].reset_index(drop=True).copy()),
        )

    def __len__(self) -> int:
        return self.n_rows

    def __repr__(self) -> str:
        return f"Dataset(rows={self.n_rows}, features={self.n_features})"
