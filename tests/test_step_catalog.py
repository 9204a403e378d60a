"""
Tests: step catalog — fixed order, role parity, attachment ownership and
the kebab-case string codec.
"""

import pytest

from core_service.core.exceptions import ValidationError
from core_service.models.workflow import (
    ATTACHMENT_STEPS,
    ROLE_REQUESTOR,
    ROLE_REVIEW_TEAM,
    STEP_ROLES,
    AttachmentType,
    Status,
    Step,
    attachment_owner,
    attachment_type_from_string,
    attachment_types_for,
    is_final_step,
    is_review_step,
    ordered_steps,
    role_for,
    status_from_string,
    step_from_string,
    step_index,
)


class TestOrder:
    def test_ordered_steps_is_the_fixed_sequence(self):
        assert ordered_steps() == (
            Step.INITIAL_REQUEST,
            Step.INITIAL_FEASIBILITY_CHECK,
            Step.DETAILED_REQUEST,
            Step.OFFER,
            Step.ORDER,
        )

    def test_step_index_matches_position(self):
        for idx, step in enumerate(ordered_steps()):
            assert step_index(step) == idx

    def test_only_order_is_final(self):
        assert [s for s in ordered_steps() if is_final_step(s)] == [Step.ORDER]


class TestRoles:
    @pytest.mark.parametrize("step,role", [
        (Step.INITIAL_REQUEST, ROLE_REQUESTOR),
        (Step.INITIAL_FEASIBILITY_CHECK, ROLE_REVIEW_TEAM),
        (Step.DETAILED_REQUEST, ROLE_REQUESTOR),
        (Step.OFFER, ROLE_REVIEW_TEAM),
        (Step.ORDER, ROLE_REQUESTOR),
    ])
    def test_role_alternates_by_parity(self, step, role):
        assert role_for(step) == role
        assert is_review_step(step) is (role == ROLE_REVIEW_TEAM)

    def test_terminal_marker_has_no_role(self):
        assert role_for(None) is None

    def test_role_table_is_read_only(self):
        with pytest.raises(TypeError):
            STEP_ROLES[Step.ORDER] = ROLE_REVIEW_TEAM


class TestAttachments:
    def test_every_attachment_type_has_exactly_one_owner(self):
        assert set(ATTACHMENT_STEPS) == set(AttachmentType)
        for attachment_type in AttachmentType:
            assert attachment_owner(attachment_type) in ordered_steps()

    def test_owner_lookup(self):
        assert attachment_owner(AttachmentType.OFFER_FILE) == Step.OFFER
        assert attachment_owner(AttachmentType.FEASIBILITY_CHECK_FILE) == Step.INITIAL_FEASIBILITY_CHECK

    def test_unknown_type_has_no_owner(self):
        assert attachment_owner("not-a-type") is None

    def test_types_for_step(self):
        assert attachment_types_for(Step.ORDER) == [AttachmentType.ORDER_FILE]


class TestCodec:
    def test_step_strings_round_trip(self):
        for step in Step:
            assert step_from_string(step.value) is step

    def test_status_strings(self):
        assert status_from_string("in-implementation") is Status.IN_IMPLEMENTATION
        assert status_from_string("live") is Status.LIVE

    def test_attachment_type_strings(self):
        assert attachment_type_from_string("offer-file") is AttachmentType.OFFER_FILE

    @pytest.mark.parametrize("decode,raw", [
        (step_from_string, "InitialRequest"),
        (step_from_string, "initial_request"),
        (step_from_string, ""),
        (status_from_string, "archived"),
        (attachment_type_from_string, "offer"),
        (attachment_type_from_string, None),
    ])
    def test_unknown_strings_are_rejected(self, decode, raw):
        with pytest.raises(ValidationError) as exc_info:
            decode(raw)
        assert exc_info.value.details
