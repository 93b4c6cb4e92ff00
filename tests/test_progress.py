import pytest

from coursehub.errors import (
    LessonNotFound, LessonNotInCourse, NotEnrolled, NotFound, OutOfRangePercentage,
    Unauthorized, ValidationError
)
from coursehub.extensions import db
from coursehub.models import Enrollment, Progress
from coursehub.services import enrollment as ledger
from coursehub.services import progress as tracker


@pytest.fixture
def enrolled(student, course):
    ledger.enroll(student, course.id)
    return student


@pytest.mark.parametrize("percentage", [150, -5, 100.5])
def test_out_of_range_percentage_is_rejected(enrolled, course, percentage):
    with pytest.raises(OutOfRangePercentage) as exc:
        tracker.update_progress(enrolled.id, course.id, course.lessons[0].id, percentage, False)

    assert exc.value.status_code == 400
    assert Progress.query.count() == 0


@pytest.mark.parametrize("percentage", [0, 100, 42.5])
def test_boundary_percentages_are_accepted(enrolled, course, percentage):
    progress = tracker.update_progress(enrolled.id, course.id, course.lessons[0].id, percentage, False)

    assert progress.progress_percentage == percentage


def test_non_numeric_percentage_and_flag(enrolled, course):
    with pytest.raises(ValidationError) as exc:
        tracker.update_progress(enrolled.id, course.id, course.lessons[0].id, "50", "yes")

    fields = {e["field"] for e in exc.value.errors}
    assert fields == {"progress_percentage", "is_completed"}


def test_upsert_keeps_one_row_per_lesson(enrolled, course):
    lesson_id = course.lessons[0].id

    tracker.update_progress(enrolled.id, course.id, lesson_id, 10, False)
    tracker.update_progress(enrolled.id, course.id, lesson_id, 60, False)

    rows = Progress.query.filter_by(user_id=enrolled.id, lesson_id=lesson_id).all()
    assert len(rows) == 1
    assert rows[0].progress_percentage == 60
    assert rows[0].last_watched is not None


def test_completed_at_set_once(enrolled, course):
    lesson_id = course.lessons[0].id

    first = tracker.update_progress(enrolled.id, course.id, lesson_id, 100, True)
    stamp = first.completed_at
    assert stamp is not None

    again = tracker.update_progress(enrolled.id, course.id, lesson_id, 100, True)

    assert again.completed_at == stamp


def test_marking_incomplete_clears_completed_at(enrolled, course):
    lesson_id = course.lessons[0].id
    tracker.update_progress(enrolled.id, course.id, lesson_id, 100, True)

    progress = tracker.update_progress(enrolled.id, course.id, lesson_id, 80, False)

    assert progress.is_completed is False
    assert progress.completed_at is None


def test_lesson_from_other_course(enrolled, course, make_course, instructor):
    other = make_course(instructor)

    with pytest.raises(LessonNotInCourse):
        tracker.update_progress(enrolled.id, course.id, other.lessons[0].id, 50, False)


def test_unknown_lesson(enrolled, course):
    with pytest.raises(LessonNotFound):
        tracker.update_progress(enrolled.id, course.id, 9999, 50, False)


def test_progress_requires_enrollment(student, course):
    with pytest.raises(NotEnrolled) as exc:
        tracker.update_progress(student.id, course.id, course.lessons[0].id, 50, False)

    assert exc.value.status_code == 403
    assert Progress.query.count() == 0


def test_course_summary_completion_rate(enrolled, course):
    tracker.update_progress(enrolled.id, course.id, course.lessons[0].id, 100, True)
    tracker.update_progress(enrolled.id, course.id, course.lessons[1].id, 100, True)
    tracker.update_progress(enrolled.id, course.id, course.lessons[2].id, 50, False)

    summary = tracker.get_course_progress(enrolled.id, course.id)

    assert summary["total_lessons"] == 5
    assert summary["completed_lessons"] == 2
    assert summary["completion_rate"] == 40.0
    assert summary["avg_progress"] == 50.0
    assert summary["last_activity"] is not None


def test_summary_without_progress(student, course):
    summary = tracker.get_course_progress(student.id, course.id)

    assert summary == {
        "total_lessons": 5,
        "completed_lessons": 0,
        "avg_progress": 0.0,
        "completion_rate": 0.0,
        "last_activity": None,
    }


def test_summary_for_course_without_lessons(student, make_course, instructor):
    empty = make_course(instructor, lessons=0)

    summary = tracker.get_course_progress(student.id, empty.id)

    assert summary["total_lessons"] == 0
    assert summary["completion_rate"] == 0.0


def test_enrollment_mirrors_completion(enrolled, course):
    for lesson in course.lessons:
        tracker.update_progress(enrolled.id, course.id, lesson.id, 100, True)

    enrollment = Enrollment.query.filter_by(user_id=enrolled.id, course_id=course.id).one()
    assert enrollment.progress == 100.0
    assert enrollment.status == "completed"
    assert enrollment.completed_at is not None

    tracker.update_progress(enrolled.id, course.id, course.lessons[0].id, 90, False)

    db.session.refresh(enrollment)
    assert enrollment.progress == 80.0
    assert enrollment.status == "active"
    assert enrollment.completed_at is None


def test_lesson_progress_defaults_to_zero(student, course):
    data = tracker.get_lesson_progress(student.id, course.lessons[0].id)

    assert data["progress_percentage"] == 0
    assert data["is_completed"] is False


def test_reset_lesson_progress(enrolled, course):
    lesson_id = course.lessons[0].id
    tracker.update_progress(enrolled.id, course.id, lesson_id, 100, True)

    tracker.reset_lesson_progress(enrolled.id, lesson_id)

    assert Progress.query.count() == 0
    enrollment = Enrollment.query.filter_by(user_id=enrolled.id).one()
    assert enrollment.progress == 0.0

    with pytest.raises(NotFound):
        tracker.reset_lesson_progress(enrolled.id, lesson_id)


def test_user_progress_visibility(enrolled, make_user, admin, course):
    tracker.update_progress(enrolled.id, course.id, course.lessons[0].id, 30, False)

    assert len(tracker.get_user_progress(enrolled.id, enrolled)) == 1
    assert len(tracker.get_user_progress(enrolled.id, admin)) == 1
    with pytest.raises(Unauthorized):
        tracker.get_user_progress(enrolled.id, make_user())


def test_instructor_progress_stats(enrolled, instructor, course):
    tracker.update_progress(enrolled.id, course.id, course.lessons[0].id, 100, True)
    tracker.update_progress(enrolled.id, course.id, course.lessons[1].id, 50, False)

    stats = tracker.instructor_progress_stats(instructor.id, instructor)

    assert stats == [{
        "course_id": course.id,
        "course_title": course.title,
        "total_students": 1,
        "average_progress": 75.0,
        "completed_lessons": 1,
    }]


# ---------------- HTTP ----------------

def test_put_progress_endpoint(client, enrolled, course, auth_header):
    lesson_id = course.lessons[0].id

    resp = client.put(
        f"/progress/lesson/{lesson_id}",
        json={"progress_percentage": 100, "is_completed": True},
        headers=auth_header(enrolled),
    )

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["is_completed"] is True
    assert data["completed_at"] is not None


def test_put_progress_out_of_range(client, enrolled, course, auth_header):
    resp = client.put(
        f"/progress/lesson/{course.lessons[0].id}",
        json={"progress_percentage": 150, "is_completed": False},
        headers=auth_header(enrolled),
    )

    assert resp.status_code == 400
    assert resp.get_json()["errors"][0]["field"] == "progress_percentage"


def test_put_progress_missing_fields(client, enrolled, course, auth_header):
    resp = client.put(f"/progress/lesson/{course.lessons[0].id}", json={}, headers=auth_header(enrolled))

    assert resp.status_code == 400
    assert len(resp.get_json()["errors"]) == 2


def test_put_progress_with_wrong_course(client, enrolled, course, make_course, instructor, auth_header):
    other = make_course(instructor)

    resp = client.put(
        f"/progress/lesson/{course.lessons[0].id}",
        json={"progress_percentage": 10, "is_completed": False, "course_id": other.id},
        headers=auth_header(enrolled),
    )

    assert resp.status_code == 400


def test_put_progress_not_enrolled(client, student, course, auth_header):
    resp = client.put(
        f"/progress/lesson/{course.lessons[0].id}",
        json={"progress_percentage": 10, "is_completed": False},
        headers=auth_header(student),
    )

    assert resp.status_code == 403


def test_course_progress_endpoint(client, enrolled, course, auth_header):
    tracker.update_progress(enrolled.id, course.id, course.lessons[0].id, 100, True)
    tracker.update_progress(enrolled.id, course.id, course.lessons[1].id, 100, True)

    resp = client.get(f"/progress/course/{course.id}", headers=auth_header(enrolled))

    data = resp.get_json()["data"]
    assert resp.status_code == 200
    assert data["summary"]["completion_rate"] == 40.0
    assert len(data["lessons"]) == 2
    assert data["last_watched"] is not None


def test_instructor_stats_endpoint_forbidden_for_students(client, enrolled, auth_header):
    resp = client.get("/progress/instructor/stats", headers=auth_header(enrolled))

    assert resp.status_code == 403
