"""Error types raised by the service layer.

Every error carries the HTTP status the API answers with, so routes can let
them propagate and the handler registered in :func:`register_error_handlers`
renders them as ``{"error": ...}`` JSON bodies.
"""
from flask import jsonify, current_app


class ApiError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {"error": self.message}


class ValidationError(ApiError):
    status_code = 400
    message = "Invalid data"

    def __init__(self, message=None, errors=None):
        super().__init__(message)
        # list of {"field": ..., "message": ...}
        self.errors = errors or []

    @classmethod
    def for_field(cls, field, message):
        return cls(message, errors=[{"field": field, "message": message}])

    def to_dict(self):
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class InvalidCoupon(ValidationError):
    message = "Invalid coupon"


class OutOfRangePercentage(ValidationError):
    message = "Progress percentage must be between 0 and 100"


class LessonNotInCourse(ValidationError):
    message = "Lesson does not belong to this course"


class Unauthenticated(ApiError):
    status_code = 401
    message = "Authentication required"

    def __init__(self, message=None, reason="unauthenticated"):
        super().__init__(message)
        self.reason = reason

    def to_dict(self):
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class Unauthorized(ApiError):
    status_code = 403
    message = "Access denied"


class NotEnrolled(Unauthorized):
    message = "You are not enrolled in this course"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class UserNotFound(NotFound):
    message = "User not found"


class CourseNotFound(NotFound):
    message = "Course not found"


class LessonNotFound(NotFound):
    message = "Lesson not found"


class EnrollmentNotFound(NotFound):
    message = "Enrollment not found"


class PaymentNotFound(NotFound):
    message = "Payment not found"


class CouponNotFound(NotFound):
    message = "Coupon not found"


class ReviewNotFound(NotFound):
    message = "Review not found"


class Conflict(ApiError):
    status_code = 409
    message = "Conflict"


class AlreadyEnrolled(Conflict):
    message = "You are already enrolled in this course"


class StorageError(ApiError):
    status_code = 500
    message = "Storage error"


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status_code >= 500:
            current_app.logger.error(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405
