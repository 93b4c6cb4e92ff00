from dataclasses import dataclass, fields
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy import or_, update

from coursehub.extensions import db
from coursehub.errors import Conflict, CouponNotFound, InvalidCoupon, ValidationError
from coursehub.models import Coupon, Course
from coursehub.utils.db import atomic
from coursehub.utils.validators import FieldErrors, is_id_list, is_number, parse_datetime, text_value

DISCOUNT_TYPES = ("percentage", "fixed")


@dataclass
class CouponPatch:
    """Updatable coupon fields. ``None`` leaves a field unchanged."""
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    max_uses: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
    course_ids: Optional[List[int]] = None

    @classmethod
    def from_json(cls, data):
        values = {f.name: data.get(f.name) for f in fields(cls)}
        values["valid_from"] = parse_datetime(values["valid_from"], "valid_from")
        values["valid_until"] = parse_datetime(values["valid_until"], "valid_until")
        return cls(**values)


def _check_discount(errors, discount_type, discount_value):
    if discount_type not in DISCOUNT_TYPES:
        errors.add("discount_type", "Discount type must be 'percentage' or 'fixed'")
    if not is_number(discount_value) or discount_value < 0:
        errors.add("discount_value", "Discount value must be a non-negative number")
    elif discount_type == "percentage" and discount_value > 100:
        errors.add("discount_value", "Percentage discount cannot exceed 100")


def _check_max_uses(errors, max_uses):
    if max_uses is not None and (not isinstance(max_uses, int) or isinstance(max_uses, bool) or max_uses < 0):
        errors.add("max_uses", "Max uses must be a non-negative integer")


def _check_flag(errors, field, value):
    if value is not None and not isinstance(value, bool):
        errors.add(field, f"{field} must be a boolean")


def _load_courses(course_ids):
    if not course_ids:
        return []
    if not is_id_list(course_ids):
        raise ValidationError.for_field("course_ids", "Course ids must be a list of integers")
    courses = Course.query.filter(Course.id.in_(course_ids)).all()
    if len(courses) != len(set(course_ids)):
        raise ValidationError.for_field("course_ids", "One or more courses do not exist")
    return courses


def get_coupon(coupon_id):
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None:
        raise CouponNotFound()
    return coupon


def list_coupons(page, limit, is_active=None, code=None):
    query = Coupon.query
    if is_active is not None:
        query = query.filter(Coupon.is_active.is_(is_active))
    if code:
        query = query.filter(Coupon.code.ilike(f"%{code}%"))
    query = query.order_by(Coupon.created_at.desc(), Coupon.id.desc())
    return db.paginate(query, page=page, per_page=limit, error_out=False)


def create_coupon(data):
    errors = FieldErrors()
    code = text_value(errors, data, "code")
    discount_type = data.get("discount_type")
    discount_value = data.get("discount_value")
    max_uses = data.get("max_uses")

    if code == "":
        errors.add("code", "Code is required")
    _check_discount(errors, discount_type, discount_value)
    _check_max_uses(errors, max_uses)
    _check_flag(errors, "is_active", data.get("is_active"))
    valid_from = parse_datetime(data.get("valid_from"), "valid_from")
    valid_until = parse_datetime(data.get("valid_until"), "valid_until")
    if valid_from and valid_until and valid_until < valid_from:
        errors.add("valid_until", "End date must be after start date")
    errors.raise_if_any()

    code = code.upper()
    if Coupon.query.filter_by(code=code).first():
        raise Conflict("Coupon code already exists")

    coupon = Coupon(
        code=code,
        discount_type=discount_type,
        discount_value=discount_value,
        max_uses=max_uses,
        valid_from=valid_from,
        valid_until=valid_until,
        is_active=data.get("is_active", True) is not False,
    )
    coupon.courses = _load_courses(data.get("course_ids"))

    with atomic("creating coupon", on_integrity_error=Conflict("Coupon code already exists")):
        db.session.add(coupon)

    current_app.logger.info(f"Coupon {coupon.code} created")
    return coupon


def update_coupon(coupon_id, patch):
    coupon = get_coupon(coupon_id)

    errors = FieldErrors()
    if patch.discount_type is not None or patch.discount_value is not None:
        _check_discount(
            errors,
            patch.discount_type if patch.discount_type is not None else coupon.discount_type,
            patch.discount_value if patch.discount_value is not None else coupon.discount_value,
        )
    _check_max_uses(errors, patch.max_uses)
    _check_flag(errors, "is_active", patch.is_active)
    if patch.valid_from and patch.valid_until and patch.valid_until < patch.valid_from:
        errors.add("valid_until", "End date must be after start date")
    errors.raise_if_any()

    courses = _load_courses(patch.course_ids) if patch.course_ids is not None else None

    with atomic("updating coupon"):
        if patch.discount_type is not None:
            coupon.discount_type = patch.discount_type
        if patch.discount_value is not None:
            coupon.discount_value = patch.discount_value
        if patch.max_uses is not None:
            coupon.max_uses = patch.max_uses
        if patch.valid_from is not None:
            coupon.valid_from = patch.valid_from
        if patch.valid_until is not None:
            coupon.valid_until = patch.valid_until
        if patch.is_active is not None:
            coupon.is_active = patch.is_active
        if courses is not None:
            coupon.courses = courses
    return coupon


def delete_coupon(coupon_id):
    coupon = get_coupon(coupon_id)
    with atomic("deleting coupon"):
        db.session.delete(coupon)


def find_usable_coupon(code, course, now=None):
    """Return the coupon for ``code`` if it can discount ``course`` right now.

    Raises :class:`InvalidCoupon` naming the reason otherwise. Usage caps are
    checked here for an early answer, but only :func:`claim_coupon` is
    authoritative.
    """
    code = code.strip().upper() if isinstance(code, str) else ""
    coupon = Coupon.query.filter_by(code=code).first()
    if coupon is None or not coupon.is_active:
        raise InvalidCoupon("Invalid or inactive coupon")
    if not coupon.is_within_window(now):
        raise InvalidCoupon("Coupon is not valid at this time")
    if coupon.is_exhausted():
        raise InvalidCoupon("Coupon usage limit reached")
    if not coupon.applies_to(course):
        raise InvalidCoupon("Coupon is not applicable to this course")
    return coupon


def claim_coupon(coupon):
    """Atomically count one use of ``coupon`` unless it is at its cap.

    Runs in the caller's unit of work. Returns False when the cap was reached
    by a concurrent use.
    """
    result = db.session.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id)
        .where(or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses))
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    if claimed:
        db.session.refresh(coupon, ["used_count"])
    return claimed


def preview_coupon(code, course):
    coupon = find_usable_coupon(code, course)
    price = course.effective_price
    discount = coupon.discount_for(price)
    return {
        "code": coupon.code,
        "discount_type": coupon.discount_type,
        "original_price": price,
        "discount_amount": discount,
        "total_amount": price - discount,
    }
