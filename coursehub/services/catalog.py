"""Courses, lessons and categories.

The enrollment flow only reads from here (:func:`get_course`); the write
operations serve the authoring endpoints and are restricted to the course
owner or an admin.
"""
import re
from dataclasses import dataclass, fields
from typing import List, Optional

from flask import current_app
from sqlalchemy import or_

from coursehub.extensions import db
from coursehub.errors import (
    Conflict, CourseNotFound, LessonNotFound, Unauthorized, ValidationError
)
from coursehub.models import Category, Course, Enrollment, Lesson
from coursehub.utils.auth import is_admin
from coursehub.utils.db import atomic
from coursehub.utils.validators import FieldErrors, is_id_list, is_number, optional_text, text_value

LEVELS = ("beginner", "intermediate", "advanced")


def slugify(text):
    text = re.sub(r'[^a-zA-Z0-9]+', '-', text)
    return text.strip('-').lower()


def _unique_slug(model, base):
    slug = base or "item"
    candidate, n = slug, 2
    while model.query.filter_by(slug=candidate).first():
        candidate = f"{slug}-{n}"
        n += 1
    return candidate


@dataclass
class CoursePatch:
    """Updatable course fields. ``None`` leaves a field unchanged.

    ``clear_sale_price`` removes the sale price; in JSON it is spelled as an
    explicit ``"sale_price": null``.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    sale_price: Optional[float] = None
    level: Optional[str] = None
    thumbnail: Optional[str] = None
    category_ids: Optional[List[int]] = None
    clear_sale_price: bool = False

    @classmethod
    def from_json(cls, data):
        values = {f.name: data.get(f.name) for f in fields(cls) if f.name != "clear_sale_price"}
        values["clear_sale_price"] = "sale_price" in data and data["sale_price"] is None
        return cls(**values)


@dataclass
class LessonPatch:
    """Updatable lesson fields. ``None`` leaves a field unchanged."""
    title: Optional[str] = None
    content: Optional[str] = None
    video_url: Optional[str] = None
    duration: Optional[float] = None
    order_number: Optional[int] = None
    is_free: Optional[bool] = None

    @classmethod
    def from_json(cls, data):
        return cls(**{f.name: data.get(f.name) for f in fields(cls)})


def _check_course_values(errors, price=None, sale_price=None, level=None):
    if price is not None and (not is_number(price) or price < 0):
        errors.add("price", "Price must be a number greater than or equal to 0")
    if sale_price is not None and (not is_number(sale_price) or sale_price < 0):
        errors.add("sale_price", "Sale price must be a number greater than or equal to 0")
    if level is not None and level not in LEVELS:
        errors.add("level", f"Level must be one of: {', '.join(LEVELS)}")


def _load_categories(category_ids):
    if not category_ids:
        return []
    if not is_id_list(category_ids):
        raise ValidationError.for_field("category_ids", "Category ids must be a list of integers")
    categories = Category.query.filter(Category.id.in_(category_ids)).all()
    if len(categories) != len(set(category_ids)):
        raise ValidationError.for_field("category_ids", "One or more categories do not exist")
    return categories


def ensure_can_edit(course, actor):
    if not (is_admin(actor) or course.instructor_id == actor.id):
        raise Unauthorized("Only the course instructor or an admin can modify this course")


# ---------------- READ PATH ----------------

def get_course(course_id):
    course = db.session.get(Course, course_id)
    if course is None:
        raise CourseNotFound()
    return course


def get_lesson(lesson_id):
    lesson = db.session.get(Lesson, lesson_id)
    if lesson is None:
        raise LessonNotFound()
    return lesson


def list_lessons(course_id):
    get_course(course_id)
    return Lesson.query.filter_by(course_id=course_id).order_by(Lesson.order_number, Lesson.id).all()


def list_courses(page, limit, category_id=None, search=None, published_only=True, instructor_id=None):
    query = Course.query
    if published_only:
        query = query.filter(Course.is_published.is_(True))
    if instructor_id:
        query = query.filter(Course.instructor_id == instructor_id)
    if category_id:
        query = query.filter(Course.categories.any(Category.id == category_id))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Course.title.ilike(pattern), Course.description.ilike(pattern)))
    query = query.order_by(Course.created_at.desc(), Course.id.desc())
    return db.paginate(query, page=page, per_page=limit, error_out=False)


# ---------------- COURSES ----------------

def _check_patch_text(errors, field, value, allow_empty=False):
    if value is None:
        return
    if not isinstance(value, str):
        errors.add(field, f"{field} must be a string")
    elif not allow_empty and not value.strip():
        errors.add(field, f"{field.capitalize()} cannot be empty")


def create_course(instructor, data):
    errors = FieldErrors()
    title = text_value(errors, data, "title")
    description = text_value(errors, data, "description")
    thumbnail = optional_text(errors, data, "thumbnail")
    price = data.get("price")

    if title == "":
        errors.add("title", "Title is required")
    if description == "":
        errors.add("description", "Description is required")
    if price is None:
        errors.add("price", "Price is required")
    _check_course_values(errors, price, data.get("sale_price"), data.get("level"))
    errors.raise_if_any()

    categories = _load_categories(data.get("category_ids"))
    course = Course(
        title=title,
        slug=_unique_slug(Course, slugify(title)),
        description=description,
        price=price,
        sale_price=data.get("sale_price"),
        level=data.get("level"),
        thumbnail=thumbnail,
        is_published=False,
        instructor_id=instructor.id,
    )
    course.categories = categories

    with atomic("creating course"):
        db.session.add(course)

    current_app.logger.info(f"Course {course.id} created by user {instructor.id}")
    return course


def update_course(course_id, patch, actor):
    course = get_course(course_id)
    ensure_can_edit(course, actor)

    errors = FieldErrors()
    _check_patch_text(errors, "title", patch.title)
    _check_patch_text(errors, "description", patch.description)
    _check_patch_text(errors, "thumbnail", patch.thumbnail, allow_empty=True)
    _check_course_values(errors, patch.price, patch.sale_price, patch.level)
    errors.raise_if_any()

    categories = _load_categories(patch.category_ids) if patch.category_ids is not None else None

    with atomic("updating course"):
        if patch.title is not None:
            course.title = patch.title.strip()
        if patch.description is not None:
            course.description = patch.description.strip()
        if patch.price is not None:
            course.price = patch.price
        if patch.clear_sale_price:
            course.sale_price = None
        elif patch.sale_price is not None:
            course.sale_price = patch.sale_price
        if patch.level is not None:
            course.level = patch.level
        if patch.thumbnail is not None:
            course.thumbnail = patch.thumbnail
        if categories is not None:
            course.categories = categories

    return course


def toggle_publish(course_id, actor):
    course = get_course(course_id)
    ensure_can_edit(course, actor)
    with atomic("publishing course"):
        course.is_published = not course.is_published
    return course


def delete_course(course_id, actor):
    course = get_course(course_id)
    ensure_can_edit(course, actor)

    student_count = Enrollment.query.filter_by(course_id=course.id).count()
    if student_count > 0:
        raise Conflict(f"Cannot delete a course with {student_count} enrolled students")

    with atomic("deleting course"):
        db.session.delete(course)
    current_app.logger.info(f"Course {course_id} deleted by user {actor.id}")


# ---------------- LESSONS ----------------

def _check_lesson_values(errors, duration=None, order_number=None, is_free=None):
    if duration is not None and (not is_number(duration) or duration < 0):
        errors.add("duration", "Duration must be a non-negative number")
    if order_number is not None and (not isinstance(order_number, int) or isinstance(order_number, bool)):
        errors.add("order_number", "Order number must be an integer")
    if is_free is not None and not isinstance(is_free, bool):
        errors.add("is_free", "is_free must be a boolean")


def create_lesson(course_id, data, actor):
    course = get_course(course_id)
    ensure_can_edit(course, actor)

    errors = FieldErrors()
    title = text_value(errors, data, "title")
    if title == "":
        errors.add("title", "Title is required")
    content = optional_text(errors, data, "content")
    video_url = optional_text(errors, data, "video_url")
    duration = data.get("duration")
    order_number = data.get("order_number")
    _check_lesson_values(errors, duration, order_number, data.get("is_free"))
    errors.raise_if_any()

    if order_number is None:
        order_number = len(course.lessons) + 1

    lesson = Lesson(
        course_id=course.id,
        title=title,
        content=content,
        video_url=video_url,
        duration=duration,
        order_number=order_number,
        is_free=bool(data.get("is_free", False)),
    )
    with atomic("creating lesson"):
        db.session.add(lesson)
    return lesson


def update_lesson(lesson_id, patch, actor):
    lesson = get_lesson(lesson_id)
    ensure_can_edit(lesson.course, actor)

    errors = FieldErrors()
    _check_patch_text(errors, "title", patch.title)
    _check_patch_text(errors, "content", patch.content, allow_empty=True)
    _check_patch_text(errors, "video_url", patch.video_url, allow_empty=True)
    _check_lesson_values(errors, patch.duration, patch.order_number, patch.is_free)
    errors.raise_if_any()

    with atomic("updating lesson"):
        if patch.title is not None:
            lesson.title = patch.title.strip()
        if patch.content is not None:
            lesson.content = patch.content
        if patch.video_url is not None:
            lesson.video_url = patch.video_url
        if patch.duration is not None:
            lesson.duration = patch.duration
        if patch.order_number is not None:
            lesson.order_number = patch.order_number
        if patch.is_free is not None:
            lesson.is_free = patch.is_free
    return lesson


def delete_lesson(lesson_id, actor):
    """Delete a lesson with its progress rows and refresh each enrollment's completion."""
    from coursehub.services.progress import sync_enrollment_progress

    lesson = get_lesson(lesson_id)
    course = lesson.course
    ensure_can_edit(course, actor)

    with atomic("deleting lesson"):
        db.session.delete(lesson)
        db.session.flush()
        for enrollment in Enrollment.query.filter_by(course_id=course.id).all():
            sync_enrollment_progress(enrollment)

    current_app.logger.info(f"Lesson {lesson_id} of course {course.id} deleted by user {actor.id}")


# ---------------- CATEGORIES ----------------

def list_categories():
    return Category.query.order_by(Category.name).all()


def create_category(data):
    errors = FieldErrors()
    name = text_value(errors, data, "name")
    if name == "":
        errors.add("name", "Name is required")
    slug = optional_text(errors, data, "slug")
    description = optional_text(errors, data, "description")
    errors.raise_if_any()

    slug = slugify(slug or name)
    if Category.query.filter_by(slug=slug).first():
        raise Conflict("Category already exists")

    category = Category(name=name, slug=slug, description=description)
    with atomic("creating category"):
        db.session.add(category)
    return category
