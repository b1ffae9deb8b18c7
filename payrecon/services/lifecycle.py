"""
Order lifecycle state machine.

PENDING is the only non-terminal state. Gateway vocabularies are mapped onto
the three LifecycleEvent values by each adapter before reaching this module.
"""
from enum import Enum
from typing import Union

from payrecon.errors import TransitionError


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class LifecycleEvent(str, Enum):
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_DROPPED = "PAYMENT_DROPPED"


def _coerce_event(event: Union[LifecycleEvent, str, None]) -> LifecycleEvent:
    if isinstance(event, LifecycleEvent):
        return event
    try:
        return LifecycleEvent(str(event).upper())
    except ValueError:
        raise TransitionError(TransitionError.Kind.UNKNOWN_EVENT, f"unknown lifecycle event: {event!r}")


def apply(
    current: Union[OrderStatus, str],
    event: Union[LifecycleEvent, str, None],
    *,
    dropped_is_failure: bool = False,
) -> OrderStatus:
    """
    Return the status an order moves to when `event` is applied.

    Raises TransitionError(UNKNOWN_EVENT) for events outside the canonical
    vocabulary and TransitionError(ALREADY_FINAL) when the order is terminal.
    A dropped payment keeps the order PENDING unless `dropped_is_failure`.
    """
    evt = _coerce_event(event)
    status = OrderStatus(current)

    if status.is_terminal:
        raise TransitionError(
            TransitionError.Kind.ALREADY_FINAL,
            f"order already {status.value}; ignoring {evt.value}",
        )

    if evt is LifecycleEvent.PAYMENT_SUCCESS:
        return OrderStatus.SUCCESS
    if evt is LifecycleEvent.PAYMENT_FAILED:
        return OrderStatus.FAILED
    # PAYMENT_DROPPED
    return OrderStatus.FAILED if dropped_is_failure else OrderStatus.PENDING
