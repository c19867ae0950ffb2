# agents/patching/patch_engine.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Patch Engine v1.0                                         ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Per-model live configuration (value steps, weights, threshold)        ║
║  ✓ Snapshot-before-mutate with append-only snapshot log                  ║
║  ✓ Atomic apply under a re-entrant lock                                  ║
║  ✓ Exact rollback (LIFO per touched entry)                               ║
║  ✓ Dataset transform for export                                          ║
╚════════════════════════════════════════════════════════════════════════════╝

Live configuration entries:
```
    steps[i]     ordered value transforms on feature i   (appended)
    weights[i]   decision influence of feature i         (multiplied)
    threshold    decision threshold                      (delta added, clamped [0, 1])
```

A snapshot holds the pre-apply value of every entry a patch touches, with
``None`` marking an entry that did not exist. Rollback writes those values
back verbatim, so apply → rollback leaves the live configuration equal to
its pre-apply state.

A patch can only be rolled back while no later, still-applied patch touches
one of its entries.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import numpy as np
from loguru import logger

from agents.patching.transforms import apply_step, feature_params
from core.dataset import Dataset
from core.exceptions import (
    PatchApplicationError,
    RollbackInconsistencyError,
    exception_context,
)
from core.models import (
    Patch,
    PatchConfiguration,
    PatchSnapshot,
    PatchStatus,
    PatchType,
    Reweighting,
)

__all__ = ["FeatureStep", "LiveConfiguration", "PatchEngine"]
__version__ = "1.0.0"
__author__ = "DriftFix Team"

EntryKey = Tuple[str, int]
_THRESHOLD_KEY: EntryKey = ("threshold", -1)


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Live Configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FeatureStep:
    """One value transform installed on a feature."""

    patch_id: str
    patch_type: PatchType
    params: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patch_id": self.patch_id,
            "patch_type": self.patch_type.value,
            "params": dict(self.params)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureStep":
        return cls(
            patch_id=data["patch_id"],
            patch_type=PatchType(data["patch_type"]),
            params=dict(data.get("params", {}))
        )


@dataclass
class LiveConfiguration:
    """Runtime adjustments of one model's input pipeline and decision rule."""

    feature_steps: Dict[int, List[FeatureStep]] = field(default_factory=dict)
    feature_weights: Dict[int, float] = field(default_factory=dict)
    threshold: float = 0.5

    def copy(self) -> "LiveConfiguration":
        return copy.deepcopy(self)

    def weight(self, index: int) -> float:
        return self.feature_weights.get(index, 1.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature_steps": {
                str(i): [s.to_dict() for s in steps] for i, steps in self.feature_steps.items()
            },
            "feature_weights": {str(i): w for i, w in self.feature_weights.items()},
            "threshold": self.threshold
        }


def _touched_entries(config: PatchConfiguration) -> Set[EntryKey]:
    if config.touches_threshold:
        return {_THRESHOLD_KEY}
    kind = "weight" if isinstance(config, Reweighting) else "steps"
    return {(kind, i) for i in config.touched_features()}


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Patch Engine
# ═══════════════════════════════════════════════════════════════════════════

class PatchEngine:
    """
    🩹 **Patch Engine** (one per model)

    Usage:
```python
        engine = PatchEngine(model_id="churn-v2", n_features=12)
        engine.apply_patch(patch)          # VALIDATED → APPLIED
        patched = engine.transform(current)
        engine.rollback_patch(patch)       # APPLIED → ROLLED_BACK
```
    """

    def __init__(
        self,
        model_id: str,
        n_features: Optional[int] = None,
        base_threshold: float = 0.5
    ):
        self.model_id = model_id
        self.n_features = n_features
        self._live = LiveConfiguration(threshold=base_threshold)
        self._lock = threading.RLock()
        self._snapshots: List[PatchSnapshot] = []
        self._snapshot_index: Dict[str, PatchSnapshot] = {}
        self._entries: Dict[str, Set[EntryKey]] = {}
        self._apply_order: List[str] = []
        self._applied: Dict[str, Patch] = {}
        self._log = logger.bind(agent="PatchEngine", version=__version__, model_id=model_id)

    # ───────────────────────────────────────────────────────────────────
    # Read Access (copies only)
    # ───────────────────────────────────────────────────────────────────

    def live_configuration(self) -> LiveConfiguration:
        with self._lock:
            return self._live.copy()

    def snapshot_log(self) -> List[PatchSnapshot]:
        with self._lock:
            return list(self._snapshots)

    @property
    def decision_threshold(self) -> float:
        with self._lock:
            return self._live.threshold

    def feature_weights(self) -> Dict[int, float]:
        with self._lock:
            return dict(self._live.feature_weights)

    def applied_patches(self) -> List[Patch]:
        """Currently applied patches, in apply order."""
        with self._lock:
            return [self._applied[pid] for pid in self._apply_order if pid in self._applied]

    def applied_patch_ids(self) -> List[str]:
        return [p.id for p in self.applied_patches()]

    # ───────────────────────────────────────────────────────────────────
    # Apply
    # ───────────────────────────────────────────────────────────────────

    def apply_patch(self, patch: Patch) -> Patch:
        """
        Merge a validated patch into the live configuration.

        Raises:
            PatchApplicationError: patch not applicable, or the merge failed
                (the live configuration is restored and the patch is FAILED)
        """
        ctx = {"patch_id": patch.id, "model_id": self.model_id}

        if patch.status != PatchStatus.VALIDATED:
            raise PatchApplicationError(
                f"Only VALIDATED patches can be applied (status={patch.status.value})",
                context=ctx
            )

        if patch.validation_result is None or not patch.validation_result.is_valid:
            raise PatchApplicationError("Patch has no passing validation result", context=ctx)

        if patch.model_id != self.model_id:
            raise PatchApplicationError(
                "Patch belongs to another model",
                details={"patch_model_id": patch.model_id},
                context=ctx
            )

        config = patch.configuration
        out_of_range = [
            i for i in config.touched_features()
            if i < 0 or (self.n_features is not None and i >= self.n_features)
        ]
        if out_of_range:
            self._fail(patch, f"Feature indices out of range: {out_of_range}")
            raise PatchApplicationError(
                "Patch references features outside the model input",
                details={"indices": out_of_range, "n_features": self.n_features},
                context=ctx
            )

        with self._lock:
            entries = _touched_entries(config)
            snapshot = PatchSnapshot(patch_id=patch.id, pre_apply_state=self._capture(entries))
            self._snapshots.append(snapshot)

            try:
                with exception_context(
                    to=PatchApplicationError,
                    message="Live configuration update failed",
                    context=ctx
                ):
                    self._merge(patch.id, config)
            except PatchApplicationError as e:
                self._restore(snapshot.pre_apply_state)
                self._fail(patch, e.message)
                raise

            self._snapshot_index[patch.id] = snapshot
            self._entries[patch.id] = entries
            self._apply_order.append(patch.id)
            self._applied[patch.id] = patch

            patch.status = PatchStatus.APPLIED
            patch.applied_at = datetime.now(timezone.utc)

        self._log.success(
            f"🩹 Applied {patch.type.value} ({patch.priority.value}) | patch={patch.id[:8]} | "
            f"entries={len(entries)}"
        )
        return patch

    def _merge(self, patch_id: str, config: PatchConfiguration) -> None:
        live = self._live

        if config.touches_threshold:
            live.threshold = float(np.clip(live.threshold + config.delta, 0.0, 1.0))
            return

        if isinstance(config, Reweighting):
            for i, w in config.per_feature_weight.items():
                live.feature_weights[i] = live.weight(i) * float(w)
            return

        for i, params in feature_params(config).items():
            live.feature_steps.setdefault(i, []).append(
                FeatureStep(patch_id=patch_id, patch_type=config.patch_type, params=params)
            )

    def _fail(self, patch: Patch, reason: str) -> None:
        patch.status = PatchStatus.FAILED
        patch.failure_reason = reason
        self._log.error(f"❌ Patch {patch.id[:8]} failed: {reason}")

    # ───────────────────────────────────────────────────────────────────
    # Rollback
    # ───────────────────────────────────────────────────────────────────

    def rollback_patch(self, patch: Patch) -> bool:
        """
        Restore the entries captured before ``patch`` was applied.

        Returns:
            True when rolled back, False when it already was

        Raises:
            PatchApplicationError: patch is not APPLIED
            RollbackInconsistencyError: snapshot missing, or a later applied
                patch still depends on the same entries
        """
        ctx = {"patch_id": patch.id, "model_id": self.model_id}

        if patch.status == PatchStatus.ROLLED_BACK:
            self._log.warning(f"⚠ Patch {patch.id[:8]} already rolled back")
            return False

        if patch.status != PatchStatus.APPLIED:
            raise PatchApplicationError(
                f"Only APPLIED patches can be rolled back (status={patch.status.value})",
                context=ctx
            )

        with self._lock:
            snapshot = self._snapshot_index.get(patch.id)
            if snapshot is None or patch.id not in self._applied:
                raise RollbackInconsistencyError("No snapshot recorded for patch", context=ctx)

            entries = self._entries[patch.id]
            position = self._apply_order.index(patch.id)
            blocking = [
                pid for pid in self._apply_order[position + 1:]
                if pid in self._applied and self._entries[pid] & entries
            ]
            if blocking:
                raise RollbackInconsistencyError(
                    "Later applied patches modify the same entries; roll them back first",
                    details={"blocking_patches": blocking},
                    context=ctx
                )

            self._restore(snapshot.pre_apply_state)
            del self._applied[patch.id]

            patch.status = PatchStatus.ROLLED_BACK
            patch.rolled_back_at = datetime.now(timezone.utc)

        self._log.info(f"↩ Rolled back {patch.type.value} | patch={patch.id[:8]}")
        return True

    # ───────────────────────────────────────────────────────────────────
    # Snapshot Capture / Restore
    # ───────────────────────────────────────────────────────────────────

    def _capture(self, entries: Set[EntryKey]) -> Dict[str, Any]:
        live = self._live
        state: Dict[str, Any] = {"feature_steps": {}, "feature_weights": {}}

        for kind, i in sorted(entries):
            if kind == "threshold":
                state["threshold"] = live.threshold
            elif kind == "weight":
                state["feature_weights"][str(i)] = live.feature_weights.get(i)
            else:
                steps = live.feature_steps.get(i)
                state["feature_steps"][str(i)] = (
                    [s.to_dict() for s in steps] if steps is not None else None
                )

        return state

    def _restore(self, state: Dict[str, Any]) -> None:
        live = self._live

        if "threshold" in state:
            live.threshold = state["threshold"]

        for key, weight in state.get("feature_weights", {}).items():
            if weight is None:
                live.feature_weights.pop(int(key), None)
            else:
                live.feature_weights[int(key)] = weight

        for key, steps in state.get("feature_steps", {}).items():
            if steps is None:
                live.feature_steps.pop(int(key), None)
            else:
                live.feature_steps[int(key)] = [FeatureStep.from_dict(s) for s in steps]

    # ───────────────────────────────────────────────────────────────────
    # Transform
    # ───────────────────────────────────────────────────────────────────

    def transform(self, dataset: Dataset) -> Dataset:
        """Run the installed value steps over ``dataset``; untouched columns are kept."""
        live = self.live_configuration()
        values = dataset.values

        for i, steps in live.feature_steps.items():
            if not 0 <= i < dataset.n_features:
                self._log.warning(f"⚠ Step on feature {i} ignored, dataset has {dataset.n_features}")
                continue
            for step in steps:
                values[:, i] = apply_step(values[:, i], step.patch_type, step.params)

        return dataset.with_values(values)
