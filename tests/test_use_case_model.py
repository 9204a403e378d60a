"""
Tests: derived reads on the UseCase aggregate.

completed_steps / current_step / next_step / last_completed_step are
computed from the loaded step records only.
"""

from datetime import datetime, timezone

from core_service.models import db as _db
from core_service.models.use_case import UseCase, UseCaseStep, compose_use_case_name
from core_service.models.workflow import Step


def test_fresh_use_case_starts_at_initial_request(make_use_case):
    uc = make_use_case()
    assert uc.version == 1
    assert uc.completed_steps() == []
    assert uc.current_step() == Step.INITIAL_REQUEST
    assert uc.next_step() == Step.INITIAL_FEASIBILITY_CHECK
    assert uc.last_completed_step() is None


def test_submitted_but_not_completed_does_not_advance(make_use_case):
    uc = make_use_case(submitted=1)
    assert uc.step_record(Step.INITIAL_REQUEST) is not None
    assert uc.current_step() == Step.INITIAL_REQUEST


def test_current_and_next_follow_completed_count(make_use_case):
    uc = make_use_case(completed=2)
    assert [r.step for r in uc.completed_steps()] == [
        Step.INITIAL_REQUEST, Step.INITIAL_FEASIBILITY_CHECK,
    ]
    assert uc.current_step() == Step.DETAILED_REQUEST
    assert uc.next_step() == Step.OFFER
    assert uc.last_completed_step() == Step.INITIAL_FEASIBILITY_CHECK


def test_next_step_is_terminal_on_last_step(make_use_case):
    uc = make_use_case(completed=4)
    assert uc.current_step() == Step.ORDER
    assert uc.next_step() is None


def test_all_completed_yields_terminal_marker(make_use_case):
    uc = make_use_case(completed=5)
    assert uc.current_step() is None
    assert uc.next_step() is None
    assert uc.last_completed_step() == Step.ORDER
    assert uc.has_gapless_completion()


def test_completed_steps_sorted_by_catalog_not_insert_order(plant):
    uc = UseCase(name="x", building="1", plant_id=plant.id, created_by="u")
    _db.session.add(uc)
    now = datetime.now(timezone.utc)
    # Insert the second step first
    for step in (Step.INITIAL_FEASIBILITY_CHECK, Step.INITIAL_REQUEST):
        _db.session.add(UseCaseStep(
            use_case=uc, step_type=step.value, form={}, created_by="u", completed_at=now,
        ))
    _db.session.commit()

    assert [r.step for r in uc.completed_steps()] == [
        Step.INITIAL_REQUEST, Step.INITIAL_FEASIBILITY_CHECK,
    ]
    assert uc.has_gapless_completion()


def test_gap_in_completed_steps_is_detected(plant):
    uc = UseCase(name="x", building="1", plant_id=plant.id, created_by="u")
    _db.session.add(uc)
    _db.session.add(UseCaseStep(
        use_case=uc, step_type=Step.OFFER.value, form={}, created_by="u",
        completed_at=datetime.now(timezone.utc),
    ))
    _db.session.commit()

    assert not uc.has_gapless_completion()


def test_to_dict_exposes_workflow_position(make_use_case):
    uc = make_use_case(completed=1, submitted=1)
    data = uc.to_dict()
    assert data["current_step"] == "initial-feasibility-check"
    assert data["next_step"] == "detailed-request"
    assert data["status"] == "in-evaluation"
    assert data["version"] == 1
    assert {s["type"] for s in data["steps"]} == {"initial-request", "initial-feasibility-check"}
    assert data["attachments"] == []
    assert "steps" not in uc.to_dict(include_children=False)


def test_compose_use_case_name():
    assert compose_use_case_name("P01", "12", "Robot cell") == "P01-H12-Robot cell"
