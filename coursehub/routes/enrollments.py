from flask import Blueprint, request, jsonify
from flask_jwt_extended import current_user, jwt_required
from coursehub.services import enrollment as ledger
from coursehub.utils.auth import role_required
from coursehub.utils.validators import paginated, parse_int, parse_pagination

bp = Blueprint("enrollment", __name__)


@bp.route("/enroll", methods=["POST"])
@jwt_required()
def enroll_course():
    data = request.get_json(silent=True) or {}
    course_id = parse_int(data.get("course_id"), "course_id")

    coupon_code = data.get("coupon_code")
    if coupon_code is not None and not isinstance(coupon_code, str):
        return jsonify({
            "error": "Invalid data",
            "errors": [{"field": "coupon_code", "message": "Coupon code must be a string"}]
        }), 400

    new_enrollment = ledger.enroll(
        current_user,
        course_id,
        coupon_code=coupon_code or None,
        payment_method=data.get("payment_method"),
        payment_status=data.get("payment_status", "pending"),
    )
    return jsonify({
        "message": "Enrollment successful",
        "data": new_enrollment.to_dict()
    }), 201


# List enrollments (own, or any user's for admins)
@bp.route("/", methods=["GET"])
@jwt_required()
def list_enrollments():
    page, limit = parse_pagination(request.args)
    result = ledger.list_enrollments(
        current_user,
        page,
        limit,
        course_id=request.args.get("course_id", type=int),
        user_id=request.args.get("user_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify(paginated(result, lambda e: e.to_dict())), 200


@bp.route("/<int:enrollment_id>", methods=["GET"])
@jwt_required()
def get_enrollment(enrollment_id):
    found = ledger.get_enrollment(enrollment_id, current_user)
    return jsonify({"data": found.to_dict()}), 200


@bp.route("/<int:enrollment_id>", methods=["DELETE"])
@jwt_required()
def unenroll(enrollment_id):
    ledger.unenroll(enrollment_id, current_user)
    return jsonify({"message": "Unenrolled successfully"}), 200


@bp.route("/course/<int:course_id>", methods=["DELETE"])
@jwt_required()
def unenroll_course(course_id):
    ledger.unenroll_course(course_id, current_user)
    return jsonify({"message": "Unenrolled successfully"}), 200


@bp.route("/course/<int:course_id>/complete", methods=["POST"])
@jwt_required()
def complete_course(course_id):
    completed = ledger.mark_course_completed(current_user, course_id)
    return jsonify({
        "message": "Course marked as completed",
        "data": completed.to_dict()
    }), 200


@bp.route("/course/<int:course_id>/stats", methods=["GET"])
@jwt_required()
@role_required("instructor", "admin")
def course_stats(course_id):
    return jsonify({"data": ledger.course_enrollment_stats(course_id, current_user)}), 200


@bp.route("/instructor/stats", methods=["GET"])
@bp.route("/instructor/<int:instructor_id>/stats", methods=["GET"])
@jwt_required()
@role_required("instructor", "admin")
def instructor_stats(instructor_id=None):
    instructor_id = instructor_id or current_user.id
    return jsonify({"data": ledger.instructor_enrollment_stats(instructor_id, current_user)}), 200
