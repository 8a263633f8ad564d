from __future__ import annotations

import pytest

from apps.api.claims import (
    ClaimStateMachine,
    ClaimStatus,
    InvalidTransitionError,
    PartStateMachine,
    PartStatus,
    ProductSnapshot,
    TransitionPayload,
)


def test_claim_state_machine_allows_happy_path():
    machine = ClaimStateMachine()
    path = [
        ClaimStatus.NEW,
        ClaimStatus.IN_REVIEW,
        ClaimStatus.SUBMITTED_TO_SUPPLIER,
        ClaimStatus.AWAITING_RESPONSE,
        ClaimStatus.APPROVED,
        ClaimStatus.RESOLVED,
        ClaimStatus.CLOSED,
    ]
    for current, target in zip(path, path[1:]):
        assert machine.can_transition(current, target)


@pytest.mark.parametrize("decision", [ClaimStatus.APPROVED, ClaimStatus.REJECTED, ClaimStatus.PARTIAL])
def test_every_supplier_decision_leads_to_resolved(decision):
    machine = ClaimStateMachine()
    assert machine.can_transition(ClaimStatus.AWAITING_RESPONSE, decision)
    assert machine.can_transition(decision, ClaimStatus.RESOLVED)


def test_cancel_is_allowed_until_resolved():
    machine = ClaimStateMachine()
    assert machine.can_transition(ClaimStatus.NEW, ClaimStatus.CANCELLED)
    assert machine.can_transition(ClaimStatus.PARTIAL, ClaimStatus.CANCELLED)
    assert not machine.can_transition(ClaimStatus.RESOLVED, ClaimStatus.CANCELLED)


def test_claim_state_machine_blocks_skipping_and_terminal_exits():
    machine = ClaimStateMachine()
    assert not machine.can_transition(ClaimStatus.NEW, ClaimStatus.CLOSED)
    assert not machine.can_transition(ClaimStatus.APPROVED, ClaimStatus.REJECTED)

    with pytest.raises(InvalidTransitionError) as exc:
        machine.assert_transition(ClaimStatus.NEW, ClaimStatus.CLOSED)
    assert exc.value.current == ClaimStatus.NEW
    assert "allowed targets are: in_review, cancelled" in str(exc.value)

    with pytest.raises(InvalidTransitionError, match="terminal state"):
        machine.assert_transition(ClaimStatus.CLOSED, ClaimStatus.NEW)
    with pytest.raises(InvalidTransitionError, match="terminal state"):
        machine.assert_transition(ClaimStatus.CANCELLED, ClaimStatus.IN_REVIEW)


def test_repeating_the_current_status_is_rejected():
    machine = ClaimStateMachine()
    with pytest.raises(InvalidTransitionError, match="already approved"):
        machine.assert_transition(ClaimStatus.APPROVED, ClaimStatus.APPROVED)


def test_in_review_requires_product_reference_or_description(make_claim):
    machine = ClaimStateMachine()
    claim = make_claim(product=ProductSnapshot())

    with pytest.raises(InvalidTransitionError) as exc:
        machine.assert_preconditions(claim, ClaimStatus.IN_REVIEW, TransitionPayload())
    assert exc.value.invariant == "product_required"

    with_reference = make_claim(product_id="product-1", product=ProductSnapshot())
    machine.assert_preconditions(with_reference, ClaimStatus.IN_REVIEW, TransitionPayload())


def test_submission_requires_problem_description(make_claim):
    machine = ClaimStateMachine()
    claim = make_claim(status=ClaimStatus.IN_REVIEW, problem_description="   ")
    with pytest.raises(InvalidTransitionError, match="problem description"):
        machine.assert_preconditions(claim, ClaimStatus.SUBMITTED_TO_SUPPLIER, TransitionPayload())


def test_decisions_require_resolution_and_cancel_requires_reason(make_claim):
    machine = ClaimStateMachine()
    claim = make_claim(status=ClaimStatus.AWAITING_RESPONSE)

    with pytest.raises(InvalidTransitionError) as exc:
        machine.assert_preconditions(claim, ClaimStatus.APPROVED, TransitionPayload())
    assert exc.value.invariant == "resolution_narrative_required"

    with pytest.raises(InvalidTransitionError) as exc:
        machine.assert_preconditions(claim, ClaimStatus.CANCELLED, TransitionPayload(cancellation_reason=" "))
    assert exc.value.invariant == "cancellation_reason_required"


def test_part_state_machine_is_linear_with_cancel():
    assert PartStateMachine.initial_state() == PartStatus.PENDING
    assert PartStateMachine.can_transition(PartStatus.PENDING, PartStatus.ORDERED)
    assert PartStateMachine.can_transition(PartStatus.RECEIVED, PartStatus.INSTALLED)
    assert PartStateMachine.can_transition(PartStatus.ORDERED, PartStatus.CANCELLED)
    assert not PartStateMachine.can_transition(PartStatus.PENDING, PartStatus.INSTALLED)

    with pytest.raises(InvalidTransitionError) as exc:
        PartStateMachine.assert_transition(PartStatus.INSTALLED, PartStatus.PENDING)
    assert exc.value.invariant == "part_transition_table"
