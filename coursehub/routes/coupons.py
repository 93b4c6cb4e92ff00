from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from coursehub.services import catalog, coupons
from coursehub.services.coupons import CouponPatch
from coursehub.utils.auth import role_required
from coursehub.utils.validators import paginated, parse_int, parse_pagination

bp = Blueprint("coupon", __name__)


@bp.route("/coupons", methods=["POST"])
@jwt_required()
@role_required("admin")
def create_coupon():
    data = request.get_json(silent=True) or {}
    coupon = coupons.create_coupon(data)
    return jsonify({
        "message": "Coupon created successfully",
        "coupon": coupon.to_dict()
    }), 201


# ---------------- VALIDATE ----------------
@bp.route("/coupons/validate", methods=["POST"])
@jwt_required()
def validate_coupon():
    data = request.get_json(silent=True) or {}
    course = catalog.get_course(parse_int(data.get("course_id"), "course_id"))
    preview = coupons.preview_coupon(data.get("code"), course)
    return jsonify({"message": "Coupon applied successfully", **preview}), 200


@bp.route("/coupons", methods=["GET"])
@jwt_required()
@role_required("admin")
def list_coupons():
    page, limit = parse_pagination(request.args)
    is_active = request.args.get("is_active")
    if is_active is not None:
        is_active = is_active.lower() in ("true", "1", "yes")
    result = coupons.list_coupons(page, limit, is_active=is_active, code=request.args.get("code"))
    return jsonify(paginated(result, lambda c: c.to_dict())), 200


# ---------------- GET DETAILS ----------------
@bp.route("/coupons/<int:coupon_id>", methods=["GET"])
@jwt_required()
@role_required("admin")
def get_coupon(coupon_id):
    return jsonify(coupons.get_coupon(coupon_id).to_dict()), 200


# ---------------- UPDATE ----------------
@bp.route("/coupons/<int:coupon_id>", methods=["PATCH"])
@jwt_required()
@role_required("admin")
def update_coupon(coupon_id):
    data = request.get_json(silent=True) or {}
    coupon = coupons.update_coupon(coupon_id, CouponPatch.from_json(data))
    return jsonify({"message": "Coupon updated successfully", "coupon": coupon.to_dict()}), 200


# ---------------- DELETE -------------
@bp.route("/coupons/<int:coupon_id>", methods=["DELETE"])
@jwt_required()
@role_required("admin")
def delete_coupon(coupon_id):
    coupons.delete_coupon(coupon_id)
    return jsonify({"message": "Coupon deleted successfully"}), 200
