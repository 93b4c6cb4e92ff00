from flask import Blueprint, request, jsonify
from flask_jwt_extended import current_user, jwt_required
from coursehub.services import payments
from coursehub.services.payments import PaymentPatch
from coursehub.utils.auth import role_required
from coursehub.utils.validators import paginated, parse_datetime, parse_int, parse_pagination

bp = Blueprint("payments", __name__)


@bp.route("/", methods=["POST"])
@jwt_required()
def create_payment():
    data = request.get_json(silent=True) or {}
    enrollment_id = parse_int(data.get("enrollment_id"), "enrollment_id")
    payment = payments.create_payment(enrollment_id, data, current_user)
    return jsonify({"message": "Payment created", "data": payment.to_dict()}), 201


@bp.route("/", methods=["GET"])
@jwt_required()
@role_required("admin")
def list_payments():
    page, limit = parse_pagination(request.args)
    result = payments.list_payments(
        page,
        limit,
        user_id=request.args.get("user_id", type=int),
        course_id=request.args.get("course_id", type=int),
        status=request.args.get("status"),
        method=request.args.get("method"),
        start_date=parse_datetime(request.args.get("start_date"), "start_date"),
        end_date=parse_datetime(request.args.get("end_date"), "end_date"),
    )
    return jsonify(paginated(result, lambda p: p.to_dict())), 200


@bp.route("/stats", methods=["GET"])
@jwt_required()
@role_required("admin")
def payment_stats():
    stats = payments.payment_stats_by_status(
        start_date=parse_datetime(request.args.get("start_date"), "start_date"),
        end_date=parse_datetime(request.args.get("end_date"), "end_date"),
    )
    return jsonify({"data": stats}), 200


@bp.route("/<int:payment_id>", methods=["GET"])
@jwt_required()
def get_payment(payment_id):
    payment = payments.get_payment(payment_id, current_user)
    return jsonify({"data": payment.to_dict()}), 200


# Status changes come from the payment provider webhook or an admin
@bp.route("/<int:payment_id>", methods=["PATCH"])
@jwt_required()
@role_required("admin")
def update_payment(payment_id):
    data = request.get_json(silent=True) or {}
    payment = payments.update_payment(payment_id, PaymentPatch.from_json(data))
    return jsonify({"message": "Payment updated", "data": payment.to_dict()}), 200


@bp.route("/<int:payment_id>/refund", methods=["POST"])
@jwt_required()
@role_required("admin")
def refund_payment(payment_id):
    data = request.get_json(silent=True) or {}
    payment = payments.refund_payment(payment_id, reason=data.get("reason"))
    return jsonify({"message": "Payment refunded", "data": payment.to_dict()}), 200
