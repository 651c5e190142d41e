"""State machine for the settlement of a cancelable request."""

from enum import Enum

import structlog


logger = structlog.get_logger()


class ResultState(str, Enum):
    """Settlement state of a request result.

    - PENDING: Not yet settled
    - FULFILLED: Settled with a response (or its body)
    - REJECTED: Settled with an error
    - CANCELED: Canceled by the caller
    """

    PENDING = "PENDING"
    FULFILLED = "FULFILLED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"


# Valid state transitions
_VALID_TRANSITIONS: dict[ResultState, set[ResultState]] = {
    ResultState.PENDING: {
        ResultState.FULFILLED,
        ResultState.REJECTED,
        ResultState.CANCELED,
    },
    ResultState.FULFILLED: set(),  # Terminal state
    ResultState.REJECTED: set(),  # Terminal state
    ResultState.CANCELED: set(),  # Terminal state
}


class ResultStateTransitionError(Exception):
    """Raised when an illegal state transition is attempted."""

    def __init__(
        self,
        request_id: str,
        from_state: ResultState,
        to_state: ResultState,
    ) -> None:
        """Initialize the transition error.

        Args:
            request_id: Identifier of the request.
            from_state: Current state.
            to_state: Attempted target state.
        """
        self.request_id = request_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal state transition for request '{request_id}': "
            f"{from_state.value} -> {to_state.value}"
        )


class ResultStateMachine:
    """Enforces single, terminal settlement of one request result.

    Logs every state change.
    """

    def __init__(self, request_id: str) -> None:
        """Initialize the state machine.

        Args:
            request_id: Identifier for the request, used in logs.
        """
        self._request_id = request_id
        self._state = ResultState.PENDING
        self._log = logger.bind(component="result", request_id=request_id)

    @property
    def request_id(self) -> str:
        """Get the request identifier."""
        return self._request_id

    @property
    def state(self) -> ResultState:
        """Get the current state."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        return self._state is not ResultState.PENDING

    def can_transition_to(self, target: ResultState) -> bool:
        """Check if a transition to the target state is valid.

        Args:
            target: The target state.

        Returns:
            True if the transition is valid.
        """
        return target in _VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: ResultState) -> None:
        """Transition to a new state.

        Args:
            target: The target state.

        Raises:
            ResultStateTransitionError: If the transition is invalid.
        """
        if not self.can_transition_to(target):
            self._log.error(
                "illegal_state_transition",
                from_state=self._state.value,
                to_state=target.value,
            )
            raise ResultStateTransitionError(
                request_id=self._request_id,
                from_state=self._state,
                to_state=target,
            )

        old_state = self._state
        self._state = target
        self._log.debug(
            "state_transition",
            from_state=old_state.value,
            to_state=target.value,
        )

    def to_fulfilled(self) -> None:
        """Transition to FULFILLED state."""
        self.transition_to(ResultState.FULFILLED)

    def to_rejected(self) -> None:
        """Transition to REJECTED state."""
        self.transition_to(ResultState.REJECTED)

    def to_canceled(self) -> None:
        """Transition to CANCELED state."""
        self.transition_to(ResultState.CANCELED)
