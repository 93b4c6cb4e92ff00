"""Enrollment ledger.

An enrollment is the single source of truth for whether a user may consume a
course. Enrolling writes the enrollment row, the optional payment row and the
coupon use count in one unit of work; unenrolling removes the enrollment with
its payments and progress rows in one unit of work.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import case, func

from coursehub.extensions import db
from coursehub.errors import (
    AlreadyEnrolled, CourseNotFound, EnrollmentNotFound, InvalidCoupon, NotEnrolled,
    Unauthenticated, Unauthorized, ValidationError
)
from coursehub.models import (
    Course, Enrollment, Payment, Progress, PAYMENT_METHODS, PAYMENT_STATUSES
)
from coursehub.services import catalog
from coursehub.services.coupons import claim_coupon, find_usable_coupon
from coursehub.utils.auth import is_admin
from coursehub.utils.db import atomic
from coursehub.utils.validators import FieldErrors


def _strict_coupons():
    return current_app.config.get("COUPON_POLICY", "lenient") == "strict"


def has_enrollment(user_id, course_id):
    return Enrollment.query.filter_by(user_id=user_id, course_id=course_id).first() is not None


def find_enrollment(user_id, course_id):
    return Enrollment.query.filter_by(user_id=user_id, course_id=course_id).first()


def require_enrollment(user_id, course_id):
    enrollment = find_enrollment(user_id, course_id)
    if enrollment is None:
        raise NotEnrolled()
    return enrollment


def _resolve_coupon(code, course, user):
    """Usable coupon for ``code``, or None when lenient handling drops it."""
    if not code:
        return None
    try:
        return find_usable_coupon(code, course)
    except InvalidCoupon as e:
        if _strict_coupons():
            raise
        current_app.logger.warning(
            f"Ignoring coupon '{code}' for user {user.id} on course {course.id}: {e.message}"
        )
        return None


def enroll(user, course_id, coupon_code=None, payment_method=None, payment_status="pending"):
    """Enroll ``user`` in a course and return the new :class:`Enrollment`."""
    if not user.is_active:
        raise Unauthenticated("Account is inactive", reason="inactive_user")

    errors = FieldErrors()
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        errors.add("payment_method", f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
    if payment_status not in PAYMENT_STATUSES:
        errors.add("payment_status", f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}")
    errors.raise_if_any()

    course = catalog.get_course(course_id)
    # drafts are invisible to everyone but their owner and admins
    if not course.is_published and not (is_admin(user) or course.instructor_id == user.id):
        raise CourseNotFound()

    if has_enrollment(user.id, course.id):
        raise AlreadyEnrolled()

    price = course.effective_price
    if price is None or price < 0:
        raise ValidationError.for_field("price", "Course price is invalid")

    coupon = _resolve_coupon(coupon_code, course, user)

    with atomic("enrolling in course", on_integrity_error=AlreadyEnrolled()):
        discount = 0.0
        if coupon is not None:
            if claim_coupon(coupon):
                discount = coupon.discount_for(price)
            elif _strict_coupons():
                raise InvalidCoupon("Coupon usage limit reached")
            else:
                current_app.logger.warning(f"Coupon {coupon.code} reached its usage limit, enrolling at full price")
                coupon = None

        enrollment = Enrollment(
            user_id=user.id,
            course_id=course.id,
            coupon_id=coupon.id if coupon else None,
            original_price=price,
            discount_amount=discount,
            total_amount=price - discount,
            status="active",
            progress=0.0,
        )
        db.session.add(enrollment)
        db.session.flush()

        if payment_method is not None:
            db.session.add(Payment(
                enrollment_id=enrollment.id,
                amount=enrollment.total_amount,
                method=payment_method,
                status=payment_status,
            ))

    current_app.logger.info(
        f"User {user.id} enrolled in course {course.id} "
        f"(total {enrollment.total_amount}, discount {enrollment.discount_amount})"
    )
    return enrollment


def get_enrollment(enrollment_id, actor):
    enrollment = db.session.get(Enrollment, enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFound()
    if enrollment.user_id != actor.id and not is_admin(actor):
        raise Unauthorized("You are not allowed to view this enrollment")
    return enrollment


def unenroll(enrollment_id, actor):
    """Delete an enrollment with its payments and the user's course progress."""
    enrollment = db.session.get(Enrollment, enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFound()
    if enrollment.user_id != actor.id and not is_admin(actor):
        raise Unauthorized("You cannot unenroll another user")

    user_id, course_id = enrollment.user_id, enrollment.course_id

    with atomic("unenrolling from course"):
        for payment in list(enrollment.payments):
            db.session.delete(payment)
        Progress.query.filter_by(user_id=user_id, course_id=course_id).delete()
        db.session.delete(enrollment)

    current_app.logger.info(f"User {user_id} unenrolled from course {course_id} by user {actor.id}")


def unenroll_course(course_id, actor):
    enrollment = find_enrollment(actor.id, course_id)
    if enrollment is None:
        raise EnrollmentNotFound("You are not enrolled in this course")
    unenroll(enrollment.id, actor)


def mark_course_completed(user, course_id):
    """Mark every lesson of the course complete for ``user``."""
    course = catalog.get_course(course_id)
    enrollment = require_enrollment(user.id, course.id)

    existing = {
        p.lesson_id: p
        for p in Progress.query.filter_by(user_id=user.id, course_id=course.id).all()
    }
    now = datetime.utcnow()

    with atomic("completing course"):
        for lesson in course.lessons:
            progress = existing.get(lesson.id)
            if progress is None:
                progress = Progress(user_id=user.id, course_id=course.id, lesson_id=lesson.id)
                db.session.add(progress)
            if not progress.is_completed:
                progress.completed_at = now
            progress.is_completed = True
            progress.progress_percentage = 100.0
            progress.last_watched = now

        enrollment.progress = 100.0
        enrollment.status = "completed"
        if enrollment.completed_at is None:
            enrollment.completed_at = now

    current_app.logger.info(f"User {user.id} completed course {course.id}")
    return enrollment


def list_enrollments(actor, page, limit, course_id=None, user_id=None, status=None):
    query = Enrollment.query
    # only admins may look at other users' enrollments
    if is_admin(actor):
        if user_id:
            query = query.filter(Enrollment.user_id == user_id)
    else:
        query = query.filter(Enrollment.user_id == actor.id)
    if course_id:
        query = query.filter(Enrollment.course_id == course_id)
    if status:
        query = query.filter(Enrollment.status == status)
    query = query.order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    return db.paginate(query, page=page, per_page=limit, error_out=False)


def _stats_row(query):
    total, revenue, discounts, average, completed = query.one()
    total = total or 0
    return {
        "total_enrollments": total,
        "total_revenue": float(revenue or 0),
        "total_discounts": float(discounts or 0),
        "average_amount": float(average or 0),
        "completed_enrollments": int(completed or 0),
        "completion_rate": round((completed or 0) / total * 100, 2) if total else 0.0,
    }


def _stats_columns():
    return (
        func.count(Enrollment.id),
        func.sum(Enrollment.total_amount),
        func.sum(Enrollment.discount_amount),
        func.avg(Enrollment.total_amount),
        func.sum(case((Enrollment.status == "completed", 1), else_=0)),
    )


def course_enrollment_stats(course_id, actor):
    course = catalog.get_course(course_id)
    if course.instructor_id != actor.id and not is_admin(actor):
        raise Unauthorized("You are not allowed to view statistics for this course")

    stats = _stats_row(db.session.query(*_stats_columns()).filter(Enrollment.course_id == course.id))
    stats["course_id"] = course.id
    stats["course_title"] = course.title
    return stats


def instructor_enrollment_stats(instructor_id, actor):
    if instructor_id != actor.id and not is_admin(actor):
        raise Unauthorized("You are not allowed to view another instructor's statistics")

    totals = _stats_row(
        db.session.query(*_stats_columns())
        .join(Course, Course.id == Enrollment.course_id)
        .filter(Course.instructor_id == instructor_id)
    )

    per_course = (
        db.session.query(
            Course.id,
            Course.title,
            func.count(Enrollment.id),
            func.sum(Enrollment.total_amount),
        )
        .outerjoin(Enrollment, Enrollment.course_id == Course.id)
        .filter(Course.instructor_id == instructor_id)
        .group_by(Course.id, Course.title)
        .order_by(Course.id)
        .all()
    )

    totals["instructor_id"] = instructor_id
    totals["courses"] = [
        {
            "course_id": cid,
            "course_title": title,
            "total_enrollments": int(count or 0),
            "total_revenue": float(revenue or 0),
        }
        for cid, title, count, revenue in per_course
    ]
    return totals
