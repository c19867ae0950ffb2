# agents/patching/drift_fix_orchestrator.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Drift Fix Orchestrator v1.0                               ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Detect → generate → validate → apply pipeline per drift event         ║
║  ✓ Parallel validation, serial application in priority order             ║
║  ✓ Auto-apply gated on validity and safety                               ║
║  ✓ Cooperative cancellation between stages and before each apply         ║
║  ✓ One PatchEngine per model, independent models in parallel             ║
║  ✓ Structured PipelineReport for every run                               ║
╚════════════════════════════════════════════════════════════════════════════╝

Pipeline:
```
    STAGE 1  detect      DriftDetector        → DriftResult
    STAGE 2  generate    PatchGenerator       → [PatchCandidate]
    STAGE 3  validate    PatchValidator       → [ValidationResult]   (thread pool)
    STAGE 4  records     Patch.from_candidate → VALIDATED / FAILED
    STAGE 5  apply       PatchEngine          → APPLIED              (serial)
```

A feature-count mismatch ends the run with status "failed"; per-patch
errors are recorded and the batch continues ("partial").
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from loguru import logger

from agents.monitoring.drift_detector import DriftDetector, as_dataset
from agents.patching.patch_engine import PatchEngine
from agents.patching.patch_export import export_patched_dataset
from agents.patching.patch_generator import PatchGenerator
from agents.patching.patch_validator import PatchValidator
from config.logging_config import LogContext
from config.settings import Settings, get_settings
from core.base_agent import AgentResult, BaseAgent
from core.dataset import Dataset
from core.exceptions import (
    ConfigurationError,
    DataValidationError,
    DimensionMismatchError,
    DriftFixError,
    PatchApplicationError,
    PipelineCancelledError,
    RollbackInconsistencyError,
)
from core.models import Patch, PatchStatus, PipelineReport

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__all__ = ["OrchestratorConfig", "DriftFixOrchestrator"]
__version__ = "1.0.0"
__author__ = "DriftFix Team"


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class OrchestratorConfig:
    """
    🎛 **Pipeline Configuration**

    auto_apply: Apply accepted patches without a manual step (default: True)
    auto_apply_min_safety: Safety a valid patch must exceed (default: 0.70)
    ultra_aggressive: Always request ultra-aggressive candidates
    max_workers: Parallel models in ``run_many`` (default: 4)
    """

    auto_apply: bool = True
    auto_apply_min_safety: float = 0.70
    ultra_aggressive: bool = False
    max_workers: int = 4

    def __post_init__(self):
        if not 0 <= self.auto_apply_min_safety <= 1:
            raise ConfigurationError(
                f"auto_apply_min_safety must be in [0, 1], got {self.auto_apply_min_safety}"
            )
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "OrchestratorConfig":
        s = settings or get_settings()
        return cls(
            auto_apply_min_safety=s.AUTO_APPLY_SAFETY,
            max_workers=s.VALIDATION_WORKERS
        )

    @classmethod
    def create_strict(cls) -> "OrchestratorConfig":
        """Report-only: patches are validated but never applied."""
        return cls(auto_apply=False)

    @classmethod
    def create_lenient(cls) -> "OrchestratorConfig":
        return cls(auto_apply_min_safety=0.5, ultra_aggressive=True)


# ═══════════════════════════════════════════════════════════════════════════
# SECTION: Orchestrator
# ═══════════════════════════════════════════════════════════════════════════

class DriftFixOrchestrator(BaseAgent):
    """
    🎛 **Drift Fix Orchestrator**

    Usage:
```python
        orchestrator = DriftFixOrchestrator()
        report = orchestrator.run_pipeline(reference, current, model_id="churn-v2")

        print(report.status, report.drift_result.drift_type, report.applied_patch_ids)

        patched = orchestrator.export_patched("churn-v2", current)
        orchestrator.rollback_all("churn-v2")
```
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        *,
        detector: Optional[DriftDetector] = None,
        generator: Optional[PatchGenerator] = None,
        validator: Optional[PatchValidator] = None,
        on_progress=None
    ):
        super().__init__(
            name="DriftFixOrchestrator",
            description="Drift detection and patch lifecycle pipeline",
            version=__version__,
            on_progress=on_progress
        )
        self.config = config or OrchestratorConfig.from_settings()
        self.detector = detector or DriftDetector()
        self.generator = generator or PatchGenerator()
        self.validator = validator or PatchValidator()

        self._engines: Dict[str, PatchEngine] = {}
        self._engines_lock = threading.Lock()
        self._runs: Dict[str, Tuple[str, threading.Event]] = {}
        self._runs_lock = threading.Lock()
        self._log = logger.bind(agent="DriftFixOrchestrator", version=__version__)

    # ───────────────────────────────────────────────────────────────────
    # Engines & Cancellation
    # ───────────────────────────────────────────────────────────────────

    def engine_for(self, model_id: str, n_features: Optional[int] = None) -> PatchEngine:
        """The model's PatchEngine, created on first use."""
        with self._engines_lock:
            engine = self._engines.get(model_id)
            if engine is None:
                engine = PatchEngine(model_id=model_id, n_features=n_features)
                self._engines[model_id] = engine
            elif engine.n_features is None and n_features is not None:
                engine.n_features = n_features
            return engine

    def cancel(self, model_id: Optional[str] = None) -> int:
        """
        Request cancellation of the pipelines running right now.

        Only in-flight runs (of ``model_id`` if given) are signalled; runs
        started afterwards get a fresh token. Returns the number signalled.
        """
        with self._runs_lock:
            tokens = [
                token for owner, token in self._runs.values()
                if model_id is None or owner == model_id
            ]
        for token in tokens:
            token.set()

        self._log.warning(f"🛑 Cancellation requested | runs={len(tokens)}")
        return len(tokens)

    @staticmethod
    def _checkpoint(token: threading.Event, stage: str) -> None:
        if token.is_set():
            raise PipelineCancelledError(f"Pipeline cancelled before {stage}", context={"stage": stage})

    # ───────────────────────────────────────────────────────────────────
    # Agent Interface
    # ───────────────────────────────────────────────────────────────────

    def validate_input(self, **kwargs) -> bool:
        if kwargs.get("reference") is None or kwargs.get("current") is None:
            raise ValueError("'reference' and 'current' are required")
        return True

    def execute(self, reference: Any, current: Any, **kwargs: Any) -> AgentResult:
        """Run the pipeline and wrap the report into an AgentResult."""
        result = AgentResult(agent_name=self.name)
        report = self.run_pipeline(reference, current, **kwargs)

        result.add_data(report=report)
        result.add_metadata(
            model_id=report.model_id,
            run_id=report.run_id,
            pipeline_status=report.status,
            applied=len(report.applied_patch_ids)
        )

        if report.status == "failed":
            for error in report.errors:
                result.add_error(error)
        else:
            for warning in report.warnings + report.errors:
                result.add_warning(warning)

        return result

    # ───────────────────────────────────────────────────────────────────
    # Pipeline
    # ───────────────────────────────────────────────────────────────────

    def run_pipeline(
        self,
        reference: Any,
        current: Any,
        *,
        model_id: str = "default",
        reference_labels: Optional[Sequence[Any]] = None,
        current_labels: Optional[Sequence[Any]] = None,
        output_fn=None,
        predict_fn=None,
        auto_apply: Optional[bool] = None,
        ultra_aggressive: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> PipelineReport:
        """
        🚀 **Run the drift-event pipeline for one model**

        Never raises for data problems: they end up in ``report.errors``
        with status "failed".
        """
        cfg = self.config
        token = cancel_event or threading.Event()
        auto_apply = cfg.auto_apply if auto_apply is None else auto_apply
        ultra = cfg.ultra_aggressive if ultra_aggressive is None else ultra_aggressive

        report = PipelineReport(run_id=uuid4().hex, model_id=model_id)
        t_start = time.perf_counter()
        with self._runs_lock:
            self._runs[report.run_id] = (model_id, token)

        try:
            with LogContext(model_id=model_id, run_id=report.run_id):
                try:
                    self._run_stages(
                        report, reference, current,
                        reference_labels=reference_labels,
                        current_labels=current_labels,
                        output_fn=output_fn,
                        predict_fn=predict_fn,
                        auto_apply=auto_apply,
                        ultra=ultra,
                        token=token
                    )
                except PipelineCancelledError as e:
                    report.status = "cancelled"
                    report.warnings.append(e.message)
                    self._log.warning(f"🛑 {e.message} | model={model_id}")
                except (DimensionMismatchError, DataValidationError) as e:
                    report.status = "failed"
                    report.errors.append(str(e))
                    self._log.error(f"❌ Pipeline failed | model={model_id} | {e.message}")

                if report.status == "success" and report.errors:
                    report.status = "partial"

                report.finished_at = datetime.now(timezone.utc)
        finally:
            with self._runs_lock:
                self._runs.pop(report.run_id, None)

        self._log.info(
            f"✓ Pipeline {report.status} | model={model_id} | "
            f"candidates={len(report.candidates)} | applied={len(report.applied_patch_ids)} | "
            f"{time.perf_counter() - t_start:.2f}s"
        )
        return report

    def _run_stages(
        self,
        report: PipelineReport,
        reference: Any,
        current: Any,
        *,
        reference_labels,
        current_labels,
        output_fn,
        predict_fn,
        auto_apply: bool,
        ultra: bool,
        token: threading.Event
    ) -> None:
        model_id = report.model_id
        ref = as_dataset(reference)
        cur = as_dataset(current)

        # ═══════════════════════════════════════════════════════════
        # STAGE 1: Detect
        # ═══════════════════════════════════════════════════════════

        self._checkpoint(token, "detection")
        self._emit_progress("detect", extra={"model_id": model_id})

        drift = self.detector.detect(
            ref, cur,
            model_id=model_id,
            reference_labels=reference_labels,
            current_labels=current_labels,
            output_fn=output_fn
        )
        report.drift_result = drift
        report.warnings.extend(drift.warnings)

        # ═══════════════════════════════════════════════════════════
        # STAGE 2: Generate
        # ═══════════════════════════════════════════════════════════

        self._checkpoint(token, "generation")
        candidates = self.generator.generate(drift, ref, cur, ultra_aggressive=ultra)
        report.candidates = candidates

        if not candidates:
            return

        # ═══════════════════════════════════════════════════════════
        # STAGE 3: Validate (parallel)
        # ═══════════════════════════════════════════════════════════

        self._checkpoint(token, "validation")
        self._emit_progress("validate", extra={"model_id": model_id, "candidates": len(candidates)})

        results = self.validator.validate_many(
            candidates, ref, cur,
            current_labels=current_labels,
            predict_fn=predict_fn
        )
        report.validation_results = results

        # ═══════════════════════════════════════════════════════════
        # STAGE 4: Patch Records
        # ═══════════════════════════════════════════════════════════

        patches: List[Patch] = []
        for candidate, result in zip(candidates, results):
            patch = Patch.from_candidate(candidate)
            patch.validation_result = result
            if result.is_valid:
                patch.status = PatchStatus.VALIDATED
            else:
                patch.status = PatchStatus.FAILED
                patch.failure_reason = "; ".join(result.errors) or "validation rejected"
            patches.append(patch)

        report.patches = patches

        if not auto_apply:
            return

        # ═══════════════════════════════════════════════════════════
        # STAGE 5: Apply (serial, priority order)
        # ═══════════════════════════════════════════════════════════

        engine = self.engine_for(model_id, ref.n_features)
        threshold = self.config.auto_apply_min_safety

        for patch in sorted(patches, key=lambda p: p.priority.rank):
            if patch.status != PatchStatus.VALIDATED:
                continue
            if patch.validation_result.metrics.safety_score <= threshold:
                continue

            self._checkpoint(token, f"applying patch {patch.id[:8]}")
            try:
                engine.apply_patch(patch)
                report.applied_patch_ids.append(patch.id)
            except PatchApplicationError as e:
                report.errors.append(f"patch {patch.id}: {e.message}")

    # ───────────────────────────────────────────────────────────────────
    # Batch / Lifecycle Helpers
    # ───────────────────────────────────────────────────────────────────

    def run_many(
        self,
        jobs: Sequence[Dict[str, Any]],
        max_workers: Optional[int] = None
    ) -> List[PipelineReport]:
        """
        Run independent model pipelines in parallel.

        Each job holds the keyword arguments of ``run_pipeline`` (including
        ``reference`` and ``current``). Reports follow job order.
        """
        if not jobs:
            return []

        model_ids = [job.get("model_id", "default") for job in jobs]
        if len(set(model_ids)) != len(model_ids):
            raise DataValidationError(
                "run_many needs distinct model ids",
                details={"model_ids": model_ids}
            )

        workers = min(max_workers or self.config.max_workers, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="driftfix-model") as pool:
            futures = [pool.submit(self._run_job, dict(job)) for job in jobs]
            return [f.result() for f in futures]

    def _run_job(self, job: Dict[str, Any]) -> PipelineReport:
        reference = job.pop("reference")
        current = job.pop("current")
        return self.run_pipeline(reference, current, **job)

    def rollback_all(self, model_id: str) -> List[str]:
        """Roll back every applied patch of a model, newest first."""
        with self._engines_lock:
            engine = self._engines.get(model_id)
        if engine is None:
            return []

        rolled: List[str] = []
        for patch in reversed(engine.applied_patches()):
            try:
                if engine.rollback_patch(patch):
                    rolled.append(patch.id)
            except RollbackInconsistencyError as e:
                self._log.error(f"❌ Rollback stopped at {patch.id[:8]}: {e.message}")
                raise

        self._log.info(f"↩ Rolled back {len(rolled)} patch(es) | model={model_id}")
        return rolled

    def export_patched(self, model_id: str, dataset: Any) -> Dataset:
        """Dataset transformed by the model's live configuration."""
        ds = as_dataset(dataset)
        with self._engines_lock:
            engine = self._engines.get(model_id)
        if engine is None:
            raise DriftFixError(
                "No patch engine for model",
                context={"model_id": model_id}
            )
        return export_patched_dataset(engine, ds)
