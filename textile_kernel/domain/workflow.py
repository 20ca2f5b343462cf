"""
Workflows -- state machines for cheques and dyeing runs.

Each workflow is a closed table of allowed transitions.  Services consult
``Workflow.find()`` before mutating a status column; anything not listed,
including a repeat of the current state, is rejected by the caller.
"""

from dataclasses import dataclass

from textile_kernel.domain.values import ChequeStatus, DyeingResultStatus


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    adjusts_balance: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.to_state == to_state:
                return transition
        return None

    def allows(self, from_state: str, to_state: str) -> bool:
        return self.find(from_state, to_state) is not None

    def is_terminal(self, state: str) -> bool:
        return not any(t.from_state == state for t in self.transitions)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

OBLIGATION_OPEN = Guard(
    name="obligation_open",
    description="Owning obligation is not cancelled (balance is left alone otherwise)",
)

OUTPUT_WITHIN_INPUT = Guard(
    name="output_within_input",
    description="0 <= output quantity <= input quantity",
)

COMPLETION_TIMESTAMPED = Guard(
    name="completion_timestamped",
    description="A completion timestamp is recorded",
)


# -----------------------------------------------------------------------------
# Cheque Workflow
# -----------------------------------------------------------------------------

CHEQUE_WORKFLOW = Workflow(
    name="cheque",
    description="Cheque clearance lifecycle",
    initial_state=ChequeStatus.PENDING.value,
    states=tuple(s.value for s in ChequeStatus),
    transitions=(
        Transition(ChequeStatus.PENDING.value, ChequeStatus.CLEARED.value, action="clear"),
        Transition(
            ChequeStatus.PENDING.value,
            ChequeStatus.BOUNCED.value,
            action="bounce",
            guard=OBLIGATION_OPEN,
            adjusts_balance=True,
        ),
        Transition(
            ChequeStatus.PENDING.value,
            ChequeStatus.REPLACED.value,
            action="replace",
            adjusts_balance=True,
        ),
    ),
)


# -----------------------------------------------------------------------------
# Dyeing Workflow
# -----------------------------------------------------------------------------

DYEING_WORKFLOW = Workflow(
    name="dyeing_run",
    description="Dyeing production run result lifecycle",
    initial_state=DyeingResultStatus.PENDING.value,
    states=tuple(s.value for s in DyeingResultStatus),
    transitions=(
        Transition(
            DyeingResultStatus.PENDING.value,
            DyeingResultStatus.PARTIAL.value,
            action="record_partial",
            guard=OUTPUT_WITHIN_INPUT,
        ),
        Transition(
            DyeingResultStatus.PENDING.value,
            DyeingResultStatus.FAILED.value,
            action="fail",
            guard=OUTPUT_WITHIN_INPUT,
        ),
        Transition(
            DyeingResultStatus.PENDING.value,
            DyeingResultStatus.COMPLETED.value,
            action="complete",
            guard=COMPLETION_TIMESTAMPED,
        ),
        Transition(
            DyeingResultStatus.PARTIAL.value,
            DyeingResultStatus.COMPLETED.value,
            action="complete",
            guard=COMPLETION_TIMESTAMPED,
        ),
        Transition(
            DyeingResultStatus.PARTIAL.value,
            DyeingResultStatus.FAILED.value,
            action="fail",
            guard=OUTPUT_WITHIN_INPUT,
        ),
    ),
)
