"""Course reviews: one rating from 1 to 5 per user and course."""
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import case, func

from coursehub.extensions import db
from coursehub.errors import Conflict, ReviewNotFound, Unauthorized
from coursehub.models import Review
from coursehub.services import catalog
from coursehub.services.enrollment import require_enrollment
from coursehub.utils.auth import is_admin
from coursehub.utils.db import atomic
from coursehub.utils.validators import FieldErrors

RATINGS = (1, 2, 3, 4, 5)


@dataclass
class ReviewPatch:
    rating: Optional[int] = None
    comment: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        return cls(rating=data.get("rating"), comment=data.get("comment"))


def _check_review(errors, rating, comment, rating_required):
    if rating is None:
        if rating_required:
            errors.add("rating", "Rating is required")
    elif not isinstance(rating, int) or isinstance(rating, bool) or rating not in RATINGS:
        errors.add("rating", "Rating must be an integer from 1 to 5")
    if comment is not None and not isinstance(comment, str):
        errors.add("comment", "Comment must be a string")


def get_review(course_id, review_id):
    review = db.session.get(Review, review_id)
    if review is None or review.course_id != course_id:
        raise ReviewNotFound()
    return review


def list_reviews(course_id, page, limit, min_rating=None):
    course = catalog.get_course(course_id)
    query = Review.query.filter(Review.course_id == course.id)
    if min_rating:
        query = query.filter(Review.rating >= min_rating)
    query = query.order_by(Review.created_at.desc(), Review.id.desc())
    return db.paginate(query, page=page, per_page=limit, error_out=False)


def create_review(user, course_id, data):
    """Rate a course the user is enrolled in. A user reviews a course once."""
    errors = FieldErrors()
    _check_review(errors, data.get("rating"), data.get("comment"), rating_required=True)
    errors.raise_if_any()

    course = catalog.get_course(course_id)
    require_enrollment(user.id, course.id)
    if Review.query.filter_by(user_id=user.id, course_id=course.id).first():
        raise Conflict("You have already reviewed this course")

    review = Review(user_id=user.id, course_id=course.id, rating=data["rating"], comment=data.get("comment"))
    with atomic("creating review", on_integrity_error=Conflict("You have already reviewed this course")):
        db.session.add(review)

    current_app.logger.info(f"User {user.id} rated course {course.id} with {review.rating}")
    return review


def update_review(course_id, review_id, patch, actor):
    review = get_review(course_id, review_id)
    if review.user_id != actor.id:
        raise Unauthorized("You can only edit your own review")

    errors = FieldErrors()
    _check_review(errors, patch.rating, patch.comment, rating_required=False)
    errors.raise_if_any()

    with atomic("updating review"):
        if patch.rating is not None:
            review.rating = patch.rating
        if patch.comment is not None:
            review.comment = patch.comment
    return review


def delete_review(course_id, review_id, actor):
    review = get_review(course_id, review_id)
    if review.user_id != actor.id and not is_admin(actor):
        raise Unauthorized("You cannot delete this review")
    with atomic("deleting review"):
        db.session.delete(review)


def course_review_stats(course_id):
    course = catalog.get_course(course_id)
    columns = [func.count(Review.id), func.avg(Review.rating)]
    columns += [func.sum(case((Review.rating == r, 1), else_=0)) for r in RATINGS]
    row = db.session.query(*columns).filter(Review.course_id == course.id).one()

    total, average = row[0] or 0, row[1]
    return {
        "course_id": course.id,
        "total_reviews": total,
        "average_rating": round(float(average), 2) if average is not None else None,
        "rating_distribution": {r: int(count or 0) for r, count in zip(RATINGS, row[2:])},
    }
