from flask import Blueprint, request, jsonify
from flask_jwt_extended import current_user, jwt_required
from coursehub.services import progress as tracker
from coursehub.utils.auth import role_required
from coursehub.utils.validators import parse_int

bp = Blueprint("progress", __name__)


# Update or create progress for a lesson
@bp.route("/lesson/<int:lesson_id>", methods=["PUT"])
@jwt_required()
def update_progress(lesson_id):
    data = request.get_json(silent=True) or {}
    percentage, is_completed = tracker.validate_payload(data)

    course_id = data.get("course_id")
    if course_id is None:
        progress = tracker.update_lesson_progress(current_user.id, lesson_id, percentage, is_completed)
    else:
        progress = tracker.update_progress(
            current_user.id, parse_int(course_id, "course_id"), lesson_id, percentage, is_completed
        )

    return jsonify({"message": "Progress updated", "data": progress.to_dict()}), 200


@bp.route("/lesson/<int:lesson_id>", methods=["GET"])
@jwt_required()
def get_lesson_progress(lesson_id):
    return jsonify({"data": tracker.get_lesson_progress(current_user.id, lesson_id)}), 200


@bp.route("/lesson/<int:lesson_id>", methods=["DELETE"])
@jwt_required()
def reset_lesson_progress(lesson_id):
    tracker.reset_lesson_progress(current_user.id, lesson_id)
    return jsonify({"message": "Progress reset"}), 200


@bp.route("/course/<int:course_id>", methods=["GET"])
@jwt_required()
def get_course_progress(course_id):
    summary = tracker.get_course_progress(current_user.id, course_id)
    rows = tracker.course_progress_rows(current_user.id, course_id)
    return jsonify({
        "data": {
            "summary": summary,
            "lessons": [p.to_dict() for p in rows],
            "last_watched": rows[0].to_dict() if rows else None
        }
    }), 200


@bp.route("/user", methods=["GET"])
@bp.route("/user/<int:user_id>", methods=["GET"])
@jwt_required()
def get_user_progress(user_id=None):
    user_id = user_id or current_user.id
    rows = tracker.get_user_progress(user_id, current_user)
    return jsonify({"data": [p.to_dict() for p in rows]}), 200


@bp.route("/instructor/stats", methods=["GET"])
@bp.route("/instructor/<int:instructor_id>/stats", methods=["GET"])
@jwt_required()
@role_required("instructor", "admin")
def instructor_stats(instructor_id=None):
    instructor_id = instructor_id or current_user.id
    return jsonify({"data": {"course_stats": tracker.instructor_progress_stats(instructor_id, current_user)}}), 200
