from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .broker_config import BrokerConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Change:
    step: str
    resource: str
    action: str


@dataclass
class ConvergeCtx:
    """Everything a step needs: the descriptor, where the host lives, and the run's change log."""

    cfg: BrokerConfig
    rendered_config: str
    rendered_env: str
    provider: str
    root: str = "/"
    dry_run: bool = False
    current_step: Optional[str] = None
    changes: List[Change] = field(default_factory=list)
    service_notified: bool = False

    def record(self, resource: str, action: str, *, notify_service: bool = False) -> None:
        change = Change(step=self.current_step or "-", resource=resource, action=action)
        self.changes.append(change)
        if notify_service:
            self.service_notified = True
        logger.info("[%s] %s: %s", change.step, resource, action)


class Step(Protocol):
    """A single idempotent convergence step."""

    step_id: str

    def run(self, ctx: ConvergeCtx) -> None:
        ...


@dataclass(frozen=True)
class PipelineResult:
    ran_steps: List[str]
    skipped_steps: List[str]
    changes: List[Change]

    @property
    def changed(self) -> bool:
        return bool(self.changes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ran_steps": list(self.ran_steps),
            "skipped_steps": list(self.skipped_steps),
            "changes": [asdict(c) for c in self.changes],
        }


def run_pipeline(*, ctx: ConvergeCtx, steps: Sequence[Step], skip: Sequence[str] = ()) -> PipelineResult:
    """Run every step in order. Steps are re-run on each convergence; nothing is cached."""

    ran: List[str] = []
    skipped: List[str] = []

    for step in steps:
        if step.step_id in skip:
            logger.info("Skipping step %s (requested)", step.step_id)
            skipped.append(step.step_id)
            continue

        ctx.current_step = step.step_id
        logger.info("Running step %s", step.step_id)
        step.run(ctx)
        ran.append(step.step_id)

    ctx.current_step = None
    return PipelineResult(ran_steps=ran, skipped_steps=skipped, changes=list(ctx.changes))
