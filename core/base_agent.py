# core/base_agent.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Base Agent v1.0                                           ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Abstract Base Agent Class                                             ║
║  ✓ Lifecycle Hooks (validate / before / after)                           ║
║  ✓ Progress Callbacks                                                    ║
╚════════════════════════════════════════════════════════════════════════════╝

Lifecycle:
```
    run() → validate_input()
          → before_execute()
          → execute()
          → measure time
          → after_execute()
          → return AgentResult   (never raises)
```

Usage:
```python
    from core.base_agent import BaseAgent, AgentResult

    class MyAgent(BaseAgent):
        def __init__(self):
            super().__init__(name="my_agent", description="Custom agent")

        def execute(self, **kwargs) -> AgentResult:
            result = AgentResult(agent_name=self.name)
            result.add_data(output=kwargs["value"] * 2)
            return result

    result = MyAgent().run(value=21)
```

Dependencies:
    • loguru
    • pydantic
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional

from loguru import logger
from pydantic import BaseModel, Field

from core.exceptions import DriftFixError

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__version__ = "1.0.0"
__author__ = "DriftFix Team"

__all__ = [
    "BaseAgent",
    "AgentResult",
    "AgentStatus"
]


AgentStatus = Literal["success", "failed", "partial"]


# ═══════════════════════════════════════════════════════════════════════════
# Agent Result
# ═══════════════════════════════════════════════════════════════════════════

class AgentResult(BaseModel):
    """
    📊 **Agent Execution Result**

    Standard result envelope with status, payload, warnings and errors.

    Attributes:
        agent_name: Name of the agent
        status: Execution status (success/failed/partial)
        execution_time: Duration in seconds
        data: Result data dictionary
        metadata: Additional metadata
        errors: List of error messages
        warnings: List of warning messages
    """

    agent_name: str
    status: AgentStatus = Field(default="success")

    # Timing
    execution_time: float = Field(default=0.0)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Payload
    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    # ───────────────────────────────────────────────────────────────────
    # Status Checks
    # ───────────────────────────────────────────────────────────────────

    def is_success(self) -> bool:
        return self.status == "success"

    def is_failed(self) -> bool:
        return self.status == "failed"

    def is_partial(self) -> bool:
        return self.status == "partial"

    # ───────────────────────────────────────────────────────────────────
    # Mutations
    # ───────────────────────────────────────────────────────────────────

    def add_error(self, error: str) -> None:
        """Add error and mark as failed."""
        self.errors.append(error)
        if self.status != "failed":
            self.status = "failed"

    def add_warning(self, warning: str) -> None:
        """Add warning and mark as partial if success."""
        self.warnings.append(warning)
        if self.status == "success":
            self.status = "partial"

    def add_data(self, **items: Any) -> None:
        self.data.update(items)

    def add_metadata(self, **items: Any) -> None:
        self.metadata.update(items)


# ═══════════════════════════════════════════════════════════════════════════
# Base Agent
# ═══════════════════════════════════════════════════════════════════════════

class BaseAgent(ABC):
    """
    🤖 **Base Agent Class**

    Abstract base class for all agents with lifecycle management.
    ``run()`` always returns an ``AgentResult``; failures become a failed
    result carrying the error message.
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        version: str = "1.0",
        *,
        on_progress: Optional[Callable[[Dict[str, Any]], None]] = None
    ):
        """
        Initialize base agent.

        Args:
            name: Agent name
            description: Agent description
            version: Agent version
            on_progress: Optional progress callback
        """
        self.name = name
        self.description = description
        self.version = version

        self.logger = logger.bind(
            agent=name,
            component="agent",
            version=version
        )

        self.on_progress = on_progress

    # ───────────────────────────────────────────────────────────────────
    # Abstract Methods
    # ───────────────────────────────────────────────────────────────────

    @abstractmethod
    def execute(self, **kwargs) -> AgentResult:
        """Execute agent logic. Must be implemented by subclasses."""
        raise NotImplementedError

    # ───────────────────────────────────────────────────────────────────
    # Lifecycle Hooks
    # ───────────────────────────────────────────────────────────────────

    def validate_input(self, **kwargs) -> bool:
        """
        Validate input before execution.

        Raises:
            ValueError: If validation fails
        """
        return True

    def before_execute(self, **kwargs) -> None:
        self._emit_progress("start", extra={"kwargs_keys": list(kwargs.keys())})
        self.logger.info(f"[{self.name}] Starting execution")

    def after_execute(self, result: AgentResult) -> None:
        self._emit_progress(
            "end",
            extra={
                "status": result.status,
                "execution_time": round(result.execution_time, 3)
            }
        )
        self.logger.info(
            f"[{self.name}] Execution completed: "
            f"status={result.status}, time={result.execution_time:.3f}s"
        )

    def _emit_progress(
        self,
        event: str,
        *,
        extra: Optional[Dict[str, Any]] = None
    ) -> None:
        """Emit progress event to callback."""
        if self.on_progress:
            try:
                self.on_progress({
                    "agent": self.name,
                    "event": event,
                    "ts": datetime.now(timezone.utc).isoformat(),
                    **(extra or {})
                })
            except Exception as e:
                self.logger.debug(f"on_progress callback failed: {e}")

    # ───────────────────────────────────────────────────────────────────
    # Main Execution
    # ───────────────────────────────────────────────────────────────────

    def run(self, **kwargs) -> AgentResult:
        """
        🚀 **Execute Agent**

        Main entry point with full lifecycle management.

        Returns:
            AgentResult (always, even on failure)
        """
        start_perf = time.perf_counter()
        started_at = datetime.now(timezone.utc)

        try:
            self.validate_input(**kwargs)
            self.before_execute(**kwargs)

            result = self.execute(**kwargs)

            if not isinstance(result, AgentResult):
                raise DriftFixError(
                    f"{self.name} returned {type(result).__name__}, expected AgentResult"
                )

            result.execution_time = time.perf_counter() - start_perf
            result.started_at = started_at
            result.finished_at = datetime.now(timezone.utc)

            self.after_execute(result)

            return result

        except Exception as e:
            self.logger.error(f"[{self.name}] Execution failed: {type(e).__name__}: {e}")

            failed = AgentResult(
                agent_name=self.name,
                status="failed",
                execution_time=time.perf_counter() - start_perf,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc)
            )
            failed.add_error(f"{type(e).__name__}: {e}")
            failed.add_metadata(error_code=DriftFixError.from_exc(e).error_code.value)

            self.after_execute(failed)

            return failed

    # ───────────────────────────────────────────────────────────────────
    # Utilities
    # ───────────────────────────────────────────────────────────────────

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', version='{self.version}')"
