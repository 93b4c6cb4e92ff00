from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import func

from coursehub.extensions import db
from coursehub.errors import Conflict, EnrollmentNotFound, PaymentNotFound, Unauthorized, ValidationError
from coursehub.models import Enrollment, Payment, PAYMENT_METHODS, PAYMENT_STATUSES
from coursehub.utils.auth import is_admin
from coursehub.utils.db import atomic
from coursehub.utils.validators import FieldErrors, is_number, optional_text


@dataclass
class PaymentPatch:
    """Updatable payment fields. ``None`` leaves a field unchanged.

    Any status may move to any other status; transitions are driven by the
    payment provider or an admin.
    """
    status: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_details: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        return cls(
            status=data.get("status"),
            transaction_id=data.get("transaction_id"),
            payment_details=data.get("payment_details"),
        )


def _check_method_status(errors, method=None, status=None):
    if method is not None and method not in PAYMENT_METHODS:
        errors.add("method", f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
    if status is not None and status not in PAYMENT_STATUSES:
        errors.add("status", f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}")


def get_payment(payment_id, actor=None):
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise PaymentNotFound()
    if actor is not None and not is_admin(actor) and payment.enrollment.user_id != actor.id:
        raise Unauthorized("You are not allowed to view this payment")
    return payment


def create_payment(enrollment_id, data, actor):
    errors = FieldErrors()
    amount = data.get("amount")
    method = data.get("method")
    status = data.get("status", "pending")

    if not is_number(amount) or amount < 0:
        errors.add("amount", "Amount must be a non-negative number")
    if method is None:
        errors.add("method", "Payment method is required")
    _check_method_status(errors, method, status)
    transaction_id = optional_text(errors, data, "transaction_id")
    payment_details = optional_text(errors, data, "payment_details")
    errors.raise_if_any()

    enrollment = db.session.get(Enrollment, enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFound()
    if enrollment.user_id != actor.id and not is_admin(actor):
        raise Unauthorized("You cannot pay for another user's enrollment")

    payment = Payment(
        enrollment_id=enrollment.id,
        amount=amount,
        method=method,
        status=status,
        transaction_id=transaction_id,
        payment_details=payment_details,
    )
    with atomic("creating payment"):
        db.session.add(payment)

    current_app.logger.info(f"Payment {payment.id} ({status}) recorded for enrollment {enrollment.id}")
    return payment


def list_payments(page, limit, user_id=None, course_id=None, status=None, method=None,
                  start_date=None, end_date=None):
    query = Payment.query.join(Enrollment, Enrollment.id == Payment.enrollment_id)
    if user_id:
        query = query.filter(Enrollment.user_id == user_id)
    if course_id:
        query = query.filter(Enrollment.course_id == course_id)
    if status:
        query = query.filter(Payment.status == status)
    if method:
        query = query.filter(Payment.method == method)
    if start_date:
        query = query.filter(Payment.created_at >= start_date)
    if end_date:
        query = query.filter(Payment.created_at <= end_date)
    query = query.order_by(Payment.created_at.desc(), Payment.id.desc())
    return db.paginate(query, page=page, per_page=limit, error_out=False)


def update_payment(payment_id, patch):
    payment = get_payment(payment_id)

    errors = FieldErrors()
    _check_method_status(errors, status=patch.status)
    optional_text(errors, vars(patch), "transaction_id")
    optional_text(errors, vars(patch), "payment_details")
    errors.raise_if_any()

    previous = payment.status
    with atomic("updating payment"):
        if patch.status is not None:
            payment.status = patch.status
        if patch.transaction_id is not None:
            payment.transaction_id = patch.transaction_id
        if patch.payment_details is not None:
            payment.payment_details = patch.payment_details

    if payment.status != previous:
        current_app.logger.info(f"Payment {payment.id} status changed {previous} -> {payment.status}")
    return payment


def refund_payment(payment_id, reason=None):
    payment = get_payment(payment_id)
    if reason is not None and not isinstance(reason, str):
        raise ValidationError.for_field("reason", "reason must be a string")
    if payment.status != "completed":
        raise Conflict("Only completed payments can be refunded")

    with atomic("refunding payment"):
        payment.status = "refunded"
        if reason:
            payment.payment_details = reason

    current_app.logger.info(f"Payment {payment.id} refunded")
    return payment


def payment_stats_by_status(start_date=None, end_date=None):
    query = db.session.query(
        Payment.status,
        func.count(Payment.id),
        func.sum(Payment.amount),
        func.avg(Payment.amount),
    )
    if start_date:
        query = query.filter(Payment.created_at >= start_date)
    if end_date:
        query = query.filter(Payment.created_at <= end_date)
    rows = query.group_by(Payment.status).order_by(Payment.status).all()
    return [
        {
            "status": status,
            "count": int(count),
            "total_amount": float(total or 0),
            "average_amount": float(average or 0),
        }
        for status, count, total, average in rows
    ]
