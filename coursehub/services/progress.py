"""Per-lesson progress tracking.

Progress can only be recorded for a lesson of the given course by a user
holding an enrollment in that course; both checks happen here rather than in
the routes.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import and_, case, func

from coursehub.extensions import db
from coursehub.errors import LessonNotInCourse, NotFound, OutOfRangePercentage, Unauthorized
from coursehub.models import Course, Lesson, Progress
from coursehub.services import catalog
from coursehub.services.enrollment import find_enrollment, require_enrollment
from coursehub.utils.auth import is_admin
from coursehub.utils.db import atomic
from coursehub.utils.validators import FieldErrors, is_number


def _validate(percentage, is_completed):
    errors = FieldErrors()
    if not is_number(percentage):
        errors.add("progress_percentage", "Progress percentage must be a number")
    elif not 0 <= percentage <= 100:
        raise OutOfRangePercentage(errors=[{
            "field": "progress_percentage",
            "message": OutOfRangePercentage.message,
        }])
    if not isinstance(is_completed, bool):
        errors.add("is_completed", "Completion flag must be a boolean")
    errors.raise_if_any()


def course_summary(user_id, course_id):
    """Aggregate a user's progress over every lesson of a course.

    Lessons without a progress row count as 0%.
    """
    total, completed, average, last_activity = (
        db.session.query(
            func.count(Lesson.id),
            func.sum(case((Progress.is_completed.is_(True), 1), else_=0)),
            func.avg(func.coalesce(Progress.progress_percentage, 0)),
            func.max(Progress.last_watched),
        )
        .select_from(Lesson)
        .outerjoin(
            Progress,
            and_(
                Progress.lesson_id == Lesson.id,
                Progress.user_id == user_id,
                Progress.course_id == course_id,
            ),
        )
        .filter(Lesson.course_id == course_id)
        .one()
    )
    total = total or 0
    completed = int(completed or 0)
    return {
        "total_lessons": total,
        "completed_lessons": completed,
        "avg_progress": round(float(average or 0), 2),
        "completion_rate": round(completed / total * 100, 2) if total else 0.0,
        "last_activity": last_activity.isoformat() if last_activity else None,
    }


def sync_enrollment_progress(enrollment, now=None):
    """Mirror the course completion rate onto ``enrollment``.

    Runs inside the caller's unit of work; pending progress changes must be
    flushed first.
    """
    summary = course_summary(enrollment.user_id, enrollment.course_id)
    enrollment.progress = summary["completion_rate"]
    if summary["total_lessons"] and summary["completed_lessons"] == summary["total_lessons"]:
        enrollment.status = "completed"
        enrollment.completed_at = enrollment.completed_at or now or datetime.utcnow()
    elif enrollment.status == "completed":
        enrollment.status = "active"
        enrollment.completed_at = None


def update_progress(user_id, course_id, lesson_id, percentage, is_completed):
    """Create or update the progress row for one lesson and return it."""
    _validate(percentage, is_completed)

    lesson = catalog.get_lesson(lesson_id)
    if lesson.course_id != course_id:
        raise LessonNotInCourse()
    enrollment = require_enrollment(user_id, course_id)

    progress = Progress.query.filter_by(
        user_id=user_id, course_id=course_id, lesson_id=lesson_id
    ).first()
    now = datetime.utcnow()

    with atomic("updating progress"):
        if progress is None:
            progress = Progress(user_id=user_id, course_id=course_id, lesson_id=lesson_id)
            db.session.add(progress)
            was_completed = False
        else:
            was_completed = progress.is_completed

        if is_completed and not was_completed:
            progress.completed_at = now
        elif not is_completed:
            progress.completed_at = None

        progress.is_completed = is_completed
        progress.progress_percentage = float(percentage)
        progress.last_watched = now
        db.session.flush()

        sync_enrollment_progress(enrollment, now)

    if is_completed and not was_completed:
        current_app.logger.info(f"User {user_id} completed lesson {lesson_id} of course {course_id}")
    return progress


def update_lesson_progress(user_id, lesson_id, percentage, is_completed):
    """Same as :func:`update_progress`, with the course taken from the lesson."""
    lesson = catalog.get_lesson(lesson_id)
    return update_progress(user_id, lesson.course_id, lesson.id, percentage, is_completed)


def get_lesson_progress(user_id, lesson_id):
    lesson = catalog.get_lesson(lesson_id)
    progress = Progress.query.filter_by(user_id=user_id, lesson_id=lesson.id).first()
    if progress is None:
        return {
            "lesson_id": lesson.id,
            "course_id": lesson.course_id,
            "progress_percentage": 0,
            "is_completed": False,
            "last_watched": None,
            "completed_at": None,
        }
    return progress.to_dict()


def get_course_progress(user_id, course_id):
    course = catalog.get_course(course_id)
    return course_summary(user_id, course.id)


def course_progress_rows(user_id, course_id):
    return (
        Progress.query.filter_by(user_id=user_id, course_id=course_id)
        .order_by(Progress.last_watched.desc())
        .all()
    )


def get_user_progress(user_id, actor):
    if user_id != actor.id and not is_admin(actor):
        raise Unauthorized("You are not allowed to view this user's progress")
    return (
        Progress.query.filter_by(user_id=user_id)
        .order_by(Progress.last_watched.desc())
        .all()
    )


def reset_lesson_progress(user_id, lesson_id):
    progress = Progress.query.filter_by(user_id=user_id, lesson_id=lesson_id).first()
    if progress is None:
        raise NotFound("Progress not found")

    course_id = progress.course_id
    with atomic("resetting progress"):
        db.session.delete(progress)
        db.session.flush()
        enrollment = find_enrollment(user_id, course_id)
        if enrollment is not None:
            sync_enrollment_progress(enrollment)


def instructor_progress_stats(instructor_id, actor):
    if instructor_id != actor.id and not is_admin(actor):
        raise Unauthorized("You are not allowed to view these statistics")

    rows = (
        db.session.query(
            Course.id,
            Course.title,
            func.count(func.distinct(Progress.user_id)),
            func.avg(Progress.progress_percentage),
            func.sum(case((Progress.is_completed.is_(True), 1), else_=0)),
        )
        .outerjoin(Progress, Progress.course_id == Course.id)
        .filter(Course.instructor_id == instructor_id)
        .group_by(Course.id, Course.title)
        .order_by(Course.id)
        .all()
    )
    return [
        {
            "course_id": cid,
            "course_title": title,
            "total_students": int(students or 0),
            "average_progress": round(float(average or 0), 2),
            "completed_lessons": int(completed or 0),
        }
        for cid, title, students, average, completed in rows
    ]


def validate_payload(data):
    """Pull ``progress_percentage`` and ``is_completed`` out of a request body."""
    if "progress_percentage" not in data or "is_completed" not in data:
        errors = FieldErrors()
        if "progress_percentage" not in data:
            errors.add("progress_percentage", "Progress percentage is required")
        if "is_completed" not in data:
            errors.add("is_completed", "Completion flag is required")
        errors.raise_if_any()
    return data["progress_percentage"], data["is_completed"]
