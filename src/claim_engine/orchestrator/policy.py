"""Failure policy per side-effecting step of the adjudication pipeline.

Intake, verification and audit steps fail closed: a failure aborts the
submission.  Notifications and settlement writes are best effort: a failure is
logged and the already-sealed decision stands.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")


class FailurePolicy(str, Enum):
    FAIL_CLOSED = "FAIL_CLOSED"
    BEST_EFFORT = "BEST_EFFORT"


class Step(str, Enum):
    PUBLISH_CLAIM_CREATED = "publish_claim_created"
    LEDGER_CLAIM_CREATED = "ledger_claim_created"
    DUAL_DIP_CHECK = "dual_dip_check"
    VERIFY_ASSET = "verify_asset"
    AUDIT_COMMIT = "audit_commit"
    PUBLISH_CLAIM_SETTLED = "publish_claim_settled"
    LEDGER_CLAIM_SETTLED = "ledger_claim_settled"


STEP_POLICIES: Mapping[Step, FailurePolicy] = MappingProxyType(
    {
        Step.PUBLISH_CLAIM_CREATED: FailurePolicy.BEST_EFFORT,
        Step.LEDGER_CLAIM_CREATED: FailurePolicy.FAIL_CLOSED,
        Step.DUAL_DIP_CHECK: FailurePolicy.BEST_EFFORT,
        Step.VERIFY_ASSET: FailurePolicy.FAIL_CLOSED,
        Step.AUDIT_COMMIT: FailurePolicy.FAIL_CLOSED,
        Step.PUBLISH_CLAIM_SETTLED: FailurePolicy.BEST_EFFORT,
        Step.LEDGER_CLAIM_SETTLED: FailurePolicy.BEST_EFFORT,
    }
)


def run_step(step: Step, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T | None:
    """Run *fn* under the failure policy registered for *step*.

    ``FAIL_CLOSED`` steps re-raise. ``BEST_EFFORT`` steps log the failure with
    its traceback and return ``None``.
    """
    policy = STEP_POLICIES[step]
    try:
        return fn(*args, **kwargs)
    except Exception as exc:
        if policy is FailurePolicy.FAIL_CLOSED:
            logger.error("Step {step} failed (fail-closed): {err}", step=step.value, err=exc)
            raise
        logger.opt(exception=exc).warning(
            "Step {step} failed (best-effort, continuing): {err}", step=step.value, err=exc
        )
        return None


def run_required_step(step: Step, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a ``FAIL_CLOSED`` step and return its result, which is never dropped.

    Raises ``ValueError`` if *step* is registered as best effort.
    """
    if STEP_POLICIES[step] is not FailurePolicy.FAIL_CLOSED:
        raise ValueError(f"Step {step.value} is best effort; use run_step")
    try:
        return fn(*args, **kwargs)
    except Exception as exc:
        logger.error("Step {step} failed (fail-closed): {err}", step=step.value, err=exc)
        raise
