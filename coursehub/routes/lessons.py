from flask import Blueprint, request, jsonify
from flask_jwt_extended import current_user, jwt_required
from coursehub.services import catalog
from coursehub.services.catalog import LessonPatch
from coursehub.utils.auth import role_required

bp = Blueprint("lessons", __name__)


@bp.route("/<int:lesson_id>", methods=["GET"])
def get_lesson(lesson_id):
    lesson = catalog.get_lesson(lesson_id)
    return jsonify(lesson.to_dict()), 200


@bp.route("/<int:lesson_id>", methods=["PATCH"])
@jwt_required()
@role_required("instructor", "admin")
def update_lesson(lesson_id):
    data = request.get_json(silent=True) or {}
    lesson = catalog.update_lesson(lesson_id, LessonPatch.from_json(data), current_user)
    return jsonify({"message": "Lesson updated", "lesson": lesson.to_dict()}), 200


@bp.route("/<int:lesson_id>", methods=["DELETE"])
@jwt_required()
@role_required("instructor", "admin")
def delete_lesson(lesson_id):
    catalog.delete_lesson(lesson_id, current_user)
    return jsonify({"message": "Lesson deleted"}), 200
