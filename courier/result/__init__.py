"""Cancelable request results."""

from courier.result.cancelable import CancelableRequest
from courier.result.state_machine import (
    ResultState,
    ResultStateMachine,
    ResultStateTransitionError,
)


__all__ = [
    "CancelableRequest",
    "ResultState",
    "ResultStateMachine",
    "ResultStateTransitionError",
]
