from __future__ import annotations

from typing import Union

from qc_checkin.schemas.checkin import CheckInStep

StepLike = Union[CheckInStep, str]

STEPS: tuple[CheckInStep, ...] = (
    CheckInStep.WELCOME,
    CheckInStep.CATEGORY_SELECTION,
    CheckInStep.CATEGORY_DISCUSSION,
    CheckInStep.REFLECTION,
    CheckInStep.ACTION_ITEMS,
    CheckInStep.COMPLETION,
)

TOTAL_STEPS = len(STEPS)


def coerce_step(step: StepLike) -> CheckInStep | None:
    """
    Map a raw token onto a known step, or None if it is not one.
    """
    if isinstance(step, CheckInStep):
        return step
    try:
        return CheckInStep(step)
    except ValueError:
        return None


def index(step: StepLike) -> int:
    """
    Position of `step` in the fixed order; -1 means "cannot navigate".
    """
    known = coerce_step(step)
    if known is None:
        return -1
    return STEPS.index(known)


def is_last(step: StepLike) -> bool:
    return index(step) == TOTAL_STEPS - 1


def next_step(step: StepLike) -> StepLike:
    i = index(step)
    if i < 0 or i >= TOTAL_STEPS - 1:
        return step
    return STEPS[i + 1]


def previous_step(step: StepLike) -> StepLike:
    i = index(step)
    if i <= 0:
        return step
    return STEPS[i - 1]


def percentage(step: StepLike) -> int:
    """
    Display progress for `step`: round(index / (total - 1) * 100), within [0, 100].
    """
    i = index(step)
    if i < 0:
        return 0
    return min(100, max(0, round(i / (TOTAL_STEPS - 1) * 100)))
