from flask import Blueprint, jsonify, request
from flask_jwt_extended import current_user, jwt_required
from coursehub.services import users
from coursehub.utils.auth import role_required
from coursehub.utils.validators import paginated, parse_pagination

bp = Blueprint("users", __name__)


@bp.route("/", methods=["GET"])
@jwt_required()
@role_required("admin")
def list_users():
    page, limit = parse_pagination(request.args)
    result = users.list_users(page, limit, role=request.args.get("role"))
    return jsonify(paginated(result, lambda u: u.to_dict())), 200


@bp.route("/<int:user_id>", methods=["GET"])
@jwt_required()
@role_required("admin")
def get_user(user_id):
    user = users.get_user(user_id)
    data = user.to_dict()
    data["enrollments"] = [
        {
            "course_id": e.course_id,
            "course_title": e.course.title if e.course else None,
            "progress": e.progress,
            "status": e.status,
            "enrolled_at": e.enrolled_at.isoformat() if e.enrolled_at else None
        }
        for e in user.enrollments
    ]
    return jsonify(data), 200


@bp.route("/<int:user_id>/status", methods=["PATCH"])
@jwt_required()
@role_required("admin")
def update_user_status(user_id):
    data = request.get_json(silent=True) or {}
    action = data.get("action")
    if isinstance(action, str):
        action = action.lower()

    user = users.set_status(user_id, action, current_user)
    state = "activated" if user.is_active else "suspended"
    return jsonify({
        "message": f"User {user.full_name} has been {state}.",
        "is_active": user.is_active
    }), 200
