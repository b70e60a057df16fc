import io

import pytest
from sqlalchemy import update
from werkzeug.datastructures import FileStorage

from conftest import case_for
from iclear.models import db, ReviewCase, RequirementSubmission
from iclear.services import SubmissionService
from iclear.utils.exceptions import (
    AuthorizationError, CaseLockedError, FileUploadError, NotFoundError, ValidationError
)


def pdf(name='slip.pdf', content=b'%PDF-1.4 clearance slip'):
    return FileStorage(stream=io.BytesIO(content), filename=name, content_type='application/pdf')


@pytest.fixture
def world(two_units, fanout):
    world = dict(two_units)
    world['request'] = fanout.create_request(world['student'].id, 'semester')
    world['dept_case'] = case_for(world['request'], world['dept'])
    world['office_case'] = case_for(world['request'], world['office'])
    return world


def lock(case):
    ReviewCase.query.filter_by(id=case.id).update({'status': 'submitted'})
    db.session.commit()


def test_upsert_records_evidence_and_makes_case_ready(world, submissions, review):
    case = world['dept_case']
    assert review.readiness(case) == [world['dept_req']]

    submission = submissions.upsert_submission(case.id, world['dept_req'].id,
                                               world['student'].id, 'evidence/1/slip.pdf')

    assert submission.evidence_ref == 'evidence/1/slip.pdf'
    assert submission.status == 'submitted'
    assert review.readiness(case) == []
    # The other unit's case is unaffected
    assert review.readiness(world['office_case']) == [world['office_req']]


def test_upsert_replaces_rather_than_duplicates(world, submissions):
    args = (world['dept_case'].id, world['dept_req'].id, world['student'].id)
    submissions.upsert_submission(*args, 'evidence/1/a.pdf')
    submissions.upsert_submission(*args, 'evidence/1/b.pdf')

    rows = RequirementSubmission.query.filter_by(case_id=world['dept_case'].id).all()
    assert [row.evidence_ref for row in rows] == ['evidence/1/b.pdf']


def test_concurrent_first_write_becomes_an_update(world, submissions, monkeypatch):
    args = (world['dept_case'].id, world['dept_req'].id, world['student'].id)
    submissions.upsert_submission(*args, 'evidence/1/a.pdf')

    # The lookup misses the row another request inserted a moment earlier
    real_find = SubmissionService._find_submission
    misses = []

    def find_after_competing_insert(case_id, requirement_id):
        if not misses:
            misses.append(case_id)
            return None
        return real_find(case_id, requirement_id)
    monkeypatch.setattr(SubmissionService, '_find_submission', staticmethod(find_after_competing_insert))

    submission = submissions.upsert_submission(*args, 'evidence/1/b.pdf')

    assert misses
    assert submission.evidence_ref == 'evidence/1/b.pdf'
    rows = RequirementSubmission.query.filter_by(case_id=world['dept_case'].id).all()
    assert [row.evidence_ref for row in rows] == ['evidence/1/b.pdf']


def test_clearing_evidence_restores_unready_state(world, submissions, review):
    args = (world['dept_case'].id, world['dept_req'].id, world['student'].id)
    submissions.upsert_submission(*args, 'evidence/1/a.pdf')

    submission = submissions.upsert_submission(*args, None)

    assert submission.evidence_ref is None
    assert submission.status == 'pending'
    assert review.readiness(world['dept_case']) == [world['dept_req']]
    assert RequirementSubmission.query.count() == 1


@pytest.mark.parametrize('status', ['submitted', 'approved'])
def test_locked_case_refuses_writes(world, submissions, status):
    case = world['dept_case']
    ReviewCase.query.filter_by(id=case.id).update({'status': status})
    db.session.commit()

    with pytest.raises(CaseLockedError):
        submissions.upsert_submission(case.id, world['dept_req'].id, world['student'].id, 'evidence/1/a.pdf')
    assert RequirementSubmission.query.count() == 0


def test_other_students_case_is_refused(world, make, submissions):
    intruder = make.student()
    with pytest.raises(AuthorizationError):
        submissions.upsert_submission(world['dept_case'].id, world['dept_req'].id,
                                      intruder.id, 'evidence/1/a.pdf')


def test_requirement_of_another_unit_is_refused(world, submissions):
    with pytest.raises(ValidationError):
        submissions.upsert_submission(world['dept_case'].id, world['office_req'].id,
                                      world['student'].id, 'evidence/1/a.pdf')


def test_unknown_case_or_requirement(world, submissions):
    with pytest.raises(NotFoundError):
        submissions.upsert_submission(9999, world['dept_req'].id, world['student'].id, 'x')
    with pytest.raises(NotFoundError):
        submissions.upsert_submission(world['dept_case'].id, 9999, world['student'].id, 'x')


def test_acknowledgment_requirement(world, make, submissions, review):
    case = world['dept_case']
    ack_req = make.requirement(world['dept'], 'Read the library policy', requires_upload=False)
    submissions.upsert_submission(case.id, world['dept_req'].id, world['student'].id, 'evidence/1/a.pdf')
    assert review.readiness(case) == [ack_req]

    submissions.acknowledge_requirement(case.id, ack_req.id, world['student'].id, True)
    assert review.readiness(case) == []

    submission = submissions.acknowledge_requirement(case.id, ack_req.id, world['student'].id, False)
    assert submission.status == 'pending'
    assert review.readiness(case) == [ack_req]


def test_case_submitted_after_the_lock_check_refuses_the_write(world, make, submissions, monkeypatch):
    case = world['dept_case']
    ack_req = make.requirement(world['dept'], 'Read the library policy', requires_upload=False)
    submissions.acknowledge_requirement(case.id, ack_req.id, world['student'].id, True)

    load_editable = submissions.load_editable

    def load_then_submit(*args):
        loaded = load_editable(*args)
        # The student's submit commits between the check and the write
        db.session.execute(
            update(ReviewCase).where(ReviewCase.id == case.id).values(status='submitted')
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return loaded
    monkeypatch.setattr(submissions, 'load_editable', load_then_submit)

    with pytest.raises(CaseLockedError):
        submissions.acknowledge_requirement(case.id, ack_req.id, world['student'].id, False)

    row = RequirementSubmission.query.filter_by(case_id=case.id, requirement_id=ack_req.id).one()
    assert row.status == 'submitted'


def test_acknowledgment_and_upload_kinds_are_not_interchangeable(world, make, submissions):
    case = world['dept_case']
    ack_req = make.requirement(world['dept'], 'Read the library policy', requires_upload=False)

    with pytest.raises(ValidationError):
        submissions.acknowledge_requirement(case.id, world['dept_req'].id, world['student'].id, True)
    with pytest.raises(ValidationError):
        submissions.upsert_submission(case.id, ack_req.id, world['student'].id, 'evidence/1/a.pdf')
    with pytest.raises(ValidationError):
        submissions.acknowledge_requirement(case.id, ack_req.id, world['student'].id, 'yes')


def test_attach_evidence_stores_file(world, submissions, store):
    case = world['dept_case']

    submission = submissions.attach_evidence(case.id, world['dept_req'].id, world['student'].id, pdf())

    assert submission.evidence_ref.startswith(f"evidence/{world['student'].id}/")
    assert submission.evidence_ref.endswith('.pdf')
    assert store.objects[submission.evidence_ref] == b'%PDF-1.4 clearance slip'


def test_replacing_evidence_deletes_the_old_file(world, submissions, store):
    args = (world['dept_case'].id, world['dept_req'].id, world['student'].id)
    first = submissions.attach_evidence(*args, pdf()).evidence_ref

    second = submissions.attach_evidence(*args, pdf('slip2.pdf', b'%PDF-1.4 v2')).evidence_ref

    assert first != second
    assert store.deleted == [first]
    assert set(store.objects) == {second}


def test_remove_evidence_clears_reference_and_file(world, submissions, store):
    args = (world['dept_case'].id, world['dept_req'].id, world['student'].id)
    ref = submissions.attach_evidence(*args, pdf()).evidence_ref

    submission = submissions.remove_evidence(*args)

    assert submission.evidence_ref is None
    assert store.deleted == [ref]
    assert store.objects == {}


def test_remove_evidence_survives_storage_failure(world, submissions, store):
    args = (world['dept_case'].id, world['dept_req'].id, world['student'].id)
    submissions.attach_evidence(*args, pdf())
    store.fail_delete = True

    submission = submissions.remove_evidence(*args)

    assert submission.evidence_ref is None


def test_upload_is_discarded_when_case_locks_meanwhile(world, submissions, store):
    case = world['dept_case']
    store.on_upload = lambda key: lock(case)

    with pytest.raises(CaseLockedError):
        submissions.attach_evidence(case.id, world['dept_req'].id, world['student'].id, pdf())

    assert store.objects == {}
    assert len(store.deleted) == 1
    assert RequirementSubmission.query.count() == 0


@pytest.mark.parametrize('name', ['notes.txt', 'noextension', ''])
def test_disallowed_files_are_refused(world, submissions, store, name):
    with pytest.raises(FileUploadError):
        submissions.attach_evidence(world['dept_case'].id, world['dept_req'].id,
                                    world['student'].id, pdf(name))
    assert store.objects == {}


def test_oversized_file_is_refused(app, world, submissions):
    app.config['EVIDENCE_MAX_BYTES'] = 10
    with pytest.raises(FileUploadError):
        submissions.attach_evidence(world['dept_case'].id, world['dept_req'].id,
                                    world['student'].id, pdf())
