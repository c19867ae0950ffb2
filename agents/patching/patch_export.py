# agents/patching/patch_export.py
"""
DriftFix PRO - Patched data export.

Runs a model's live configuration over a dataset and writes the result.
Row count, column count and column names are preserved; only columns with
installed value steps change.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Union

import pandas as pd

from agents.patching.patch_engine import PatchEngine
from config.logging_config import get_logger, log_execution_time
from core.dataset import Dataset
from core.exceptions import DataValidationError
from core.models import Patch

__all__ = ["export_patched_dataset", "write_dataset_csv", "read_dataset_csv", "export_patches_json"]

_log = get_logger(__name__, component="PatchExport")


def export_patched_dataset(engine: PatchEngine, dataset: Dataset) -> Dataset:
    """Apply the engine's live value steps to ``dataset``."""
    patched = engine.transform(dataset)

    if (patched.n_rows, patched.column_names) != (dataset.n_rows, dataset.column_names):
        raise DataValidationError(
            "Export changed the dataset layout",
            details={
                "rows": [dataset.n_rows, patched.n_rows],
                "features": [dataset.n_features, patched.n_features]
            }
        )

    _log.info(
        f"✓ Exported patched dataset | model={engine.model_id} | "
        f"{patched.n_rows} rows × {patched.n_features} features"
    )
    return patched


@log_execution_time
def write_dataset_csv(dataset: Dataset, path: Union[str, Path]) -> Path:
    """Write header + rows as CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    dataset.frame.to_csv(path, index=False, encoding="utf-8", float_format="%.17g")

    _log.info(f"✓ Dataset written to {path}")
    return path


def read_dataset_csv(path: Union[str, Path]) -> Dataset:
    """Read a CSV written by ``write_dataset_csv``."""
    return Dataset.from_frame(
        pd.read_csv(Path(path), encoding="utf-8", float_precision="round_trip")
    )


@log_execution_time
def export_patches_json(patches: Iterable[Patch], path: Union[str, Path]) -> Path:
    """Serialize patch records (with validation results) to JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    records = [p.model_dump(mode="json") for p in patches]
    data = {
        "metadata": {
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "total_patches": len(records)
        },
        "patches": records
    }

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    _log.info(f"✓ {len(records)} patch(es) exported to {path}")
    return path
