"""
DriftFix PRO - Unit Tests for Dataset and Patched Export
"""

import json

import numpy as np
import pandas as pd
import pytest

from agents.patching.patch_engine import PatchEngine
from agents.patching.patch_export import (
    export_patched_dataset,
    export_patches_json,
    read_dataset_csv,
    write_dataset_csv,
)
from conftest import make_validated_patch
from core.dataset import Dataset, ModelMetadata, reconcile_column_names
from core.exceptions import DataValidationError
from core.models import Clipping, PatchStatus, Reweighting


class TestDataset:
    """Tests for Dataset"""

    def test_from_rows(self):
        """Rows and names are kept"""
        ds = Dataset.from_rows([[1.0, 2.0], [3.0, 4.0]], ["age", "income"])

        assert ds.n_rows == 2
        assert ds.column_names == ["age", "income"]
        np.testing.assert_array_equal(ds.column(1), [2.0, 4.0])

    def test_ragged_rows(self):
        """Rows of different length are rejected"""
        with pytest.raises(DataValidationError) as exc_info:
            Dataset.from_rows([[1.0, 2.0], [3.0]])
        assert exc_info.value.details["ragged_rows"] == [1]

    def test_non_numeric_rows(self):
        """Non-numeric cells are rejected"""
        with pytest.raises(DataValidationError):
            Dataset.from_rows([["a", "b"]])

    def test_values_are_copies(self, sample_dataset):
        """Mutating an accessor result leaves the dataset intact"""
        values = sample_dataset.values
        values[:] = 0.0
        assert not np.all(sample_dataset.values == 0.0)

    def test_split(self, sample_dataset):
        """First k rows and the rest"""
        head, tail = sample_dataset.split(10)
        assert (head.n_rows, tail.n_rows) == (10, 40)
        assert head.column_names == sample_dataset.column_names

    def test_with_values_keeps_shape(self, sample_dataset):
        """Replacement values must match the shape"""
        with pytest.raises(DataValidationError):
            sample_dataset.with_values(np.zeros((3, 3)))


class TestColumnNames:
    """Tests for reconcile_column_names"""

    def test_metadata_wins(self):
        """Matching metadata names override the given names"""
        meta = ModelMetadata(feature_names=["a", "b"])
        assert reconcile_column_names(["x", "y"], 2, meta) == ["a", "b"]

    def test_metadata_of_wrong_width_ignored(self):
        """Metadata with another width falls back to the given names"""
        meta = ModelMetadata(feature_names=["a"])
        assert reconcile_column_names(["x", "y"], 2, meta) == ["x", "y"]

    def test_regenerated(self):
        """Mismatched or missing names → feature_<i>"""
        assert reconcile_column_names(["x"], 3) == ["feature_0", "feature_1", "feature_2"]
        assert reconcile_column_names(None, 2) == ["feature_0", "feature_1"]


class TestPatchedExport:
    """Tests for export_patched_dataset and file writers"""

    @pytest.mark.parametrize("n_features", [1, 500])
    def test_layout_preserved(self, rng, n_features):
        """Row count and column names survive export"""
        names = [f"col_{i}" for i in range(n_features)]
        ds = Dataset.from_array(rng.normal(size=(40, n_features)), names)

        engine = PatchEngine(model_id="model-a", n_features=n_features)
        engine.apply_patch(make_validated_patch(Clipping(per_feature_bounds={0: (-0.5, 0.5)})))

        patched = export_patched_dataset(engine, ds)

        assert patched.n_rows == 40
        assert patched.column_names == names
        assert patched.column(0).max() <= 0.5
        if n_features > 1:
            np.testing.assert_array_equal(patched.values[:, 1:], ds.values[:, 1:])

    def test_empty_configuration_is_identity(self, sample_dataset):
        """No value steps → identical values"""
        engine = PatchEngine(model_id="model-a", n_features=3)
        engine.apply_patch(make_validated_patch(Reweighting(per_feature_weight={0: 0.5})))

        patched = export_patched_dataset(engine, sample_dataset)
        np.testing.assert_array_equal(patched.values, sample_dataset.values)

    def test_csv_round_trip(self, sample_dataset, tmp_path):
        """Header and values survive CSV"""
        path = write_dataset_csv(sample_dataset, tmp_path / "out" / "patched.csv")

        assert pd.read_csv(path).columns.tolist() == ["age", "income", "tenure"]
        restored = read_dataset_csv(path)
        assert restored.column_names == sample_dataset.column_names
        np.testing.assert_array_equal(restored.values, sample_dataset.values)

    def test_csv_round_trip_is_bit_exact(self, tmp_path):
        """17-digit floats read back to the same doubles"""
        values = np.array([[0.30471707975443135, -1.0399841062404955], [1e-300, np.pi]])
        ds = Dataset.from_array(values, ["a", "b"])

        restored = read_dataset_csv(write_dataset_csv(ds, tmp_path / "exact.csv"))

        assert restored.values.tobytes() == ds.values.tobytes()

    def test_patches_json(self, tmp_path):
        """Patch records are written with metadata"""
        patch = make_validated_patch(Clipping(per_feature_bounds={0: (-1.0, 1.0)}))
        engine = PatchEngine(model_id="model-a", n_features=2)
        engine.apply_patch(patch)

        path = export_patches_json([patch], tmp_path / "patches.json")

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        assert data["metadata"]["total_patches"] == 1
        record = data["patches"][0]
        assert record["status"] == PatchStatus.APPLIED.value
        assert record["configuration"]["kind"] == "clipping"
        assert record["validation_result"]["acceptance_tier"] == "STANDARD"
