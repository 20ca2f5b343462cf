"""
Unit tests for the cheque and dyeing workflow tables.
"""

import pytest

from textile_kernel.domain.values import ChequeStatus, DyeingResultStatus
from textile_kernel.domain.workflow import CHEQUE_WORKFLOW, DYEING_WORKFLOW


class TestChequeWorkflow:

    @pytest.mark.parametrize(
        "target", [ChequeStatus.CLEARED, ChequeStatus.BOUNCED, ChequeStatus.REPLACED]
    )
    def test_pending_moves_to_every_terminal_state(self, target):
        assert CHEQUE_WORKFLOW.allows(ChequeStatus.PENDING.value, target.value)

    def test_cleared_cannot_bounce(self):
        assert not CHEQUE_WORKFLOW.allows(ChequeStatus.CLEARED.value, ChequeStatus.BOUNCED.value)

    @pytest.mark.parametrize("state", [ChequeStatus.CLEARED, ChequeStatus.BOUNCED])
    def test_repeat_of_terminal_state_is_not_a_transition(self, state):
        assert not CHEQUE_WORKFLOW.allows(state.value, state.value)

    @pytest.mark.parametrize(
        "state", [ChequeStatus.CLEARED, ChequeStatus.BOUNCED, ChequeStatus.REPLACED]
    )
    def test_terminal_states(self, state):
        assert CHEQUE_WORKFLOW.is_terminal(state.value)
        assert not CHEQUE_WORKFLOW.is_terminal(ChequeStatus.PENDING.value)

    def test_only_bounce_and_replace_adjust_balance(self):
        adjusting = {t.action for t in CHEQUE_WORKFLOW.transitions if t.adjusts_balance}
        assert adjusting == {"bounce", "replace"}


class TestDyeingWorkflow:

    def test_initial_state(self):
        assert DYEING_WORKFLOW.initial_state == DyeingResultStatus.PENDING.value

    @pytest.mark.parametrize(
        "target",
        [DyeingResultStatus.PARTIAL, DyeingResultStatus.FAILED, DyeingResultStatus.COMPLETED],
    )
    def test_pending_transitions(self, target):
        assert DYEING_WORKFLOW.allows(DyeingResultStatus.PENDING.value, target.value)

    def test_partial_can_finish(self):
        assert DYEING_WORKFLOW.allows(
            DyeingResultStatus.PARTIAL.value, DyeingResultStatus.COMPLETED.value
        )

    def test_failed_is_terminal(self):
        assert DYEING_WORKFLOW.is_terminal(DyeingResultStatus.FAILED.value)
        assert not DYEING_WORKFLOW.allows(
            DyeingResultStatus.FAILED.value, DyeingResultStatus.COMPLETED.value
        )

    def test_completion_carries_timestamp_guard(self):
        transition = DYEING_WORKFLOW.find(
            DyeingResultStatus.PENDING.value, DyeingResultStatus.COMPLETED.value
        )
        assert transition is not None
        assert transition.guard is not None
        assert transition.guard.name == "completion_timestamped"
