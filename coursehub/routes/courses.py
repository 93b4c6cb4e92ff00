from flask import Blueprint, request, jsonify
from flask_jwt_extended import current_user, get_current_user, jwt_required
from coursehub.services import catalog
from coursehub.services.catalog import CoursePatch
from coursehub.services.enrollment import has_enrollment
from coursehub.utils.auth import is_admin, role_required
from coursehub.utils.validators import paginated, parse_pagination

bp = Blueprint("courses", __name__)


# List published courses
@bp.route("/", methods=["GET"])
def list_courses():
    page, limit = parse_pagination(request.args)
    result = catalog.list_courses(
        page,
        limit,
        category_id=request.args.get("category_id", type=int),
        search=request.args.get("search"),
        instructor_id=request.args.get("instructor_id", type=int),
    )
    return jsonify(paginated(result, lambda c: c.to_dict())), 200


# Courses owned by the caller (all of them for admins), published or not
@bp.route("/mine", methods=["GET"])
@jwt_required()
@role_required("instructor", "admin")
def list_my_courses():
    page, limit = parse_pagination(request.args)
    result = catalog.list_courses(
        page,
        limit,
        published_only=False,
        instructor_id=None if is_admin(current_user) else current_user.id,
    )
    return jsonify(paginated(result, lambda c: c.to_dict())), 200


@bp.route("/<int:course_id>", methods=["GET"])
@jwt_required(optional=True)
def get_course(course_id):
    course = catalog.get_course(course_id)
    user = get_current_user()

    can_edit = user is not None and (is_admin(user) or course.instructor_id == user.id)
    if not course.is_published and not can_edit:
        return jsonify({"error": "Course not found"}), 404

    data = course.to_dict(with_lessons=True)
    data["is_enrolled"] = bool(user) and has_enrollment(user.id, course.id)
    return jsonify(data), 200


@bp.route("/", methods=["POST"])
@jwt_required()
@role_required("instructor", "admin")
def create_course():
    data = request.get_json(silent=True) or {}
    course = catalog.create_course(current_user, data)
    return jsonify({"message": "Course created", "course": course.to_dict()}), 201


@bp.route("/<int:course_id>", methods=["PATCH"])
@jwt_required()
@role_required("instructor", "admin")
def update_course(course_id):
    data = request.get_json(silent=True) or {}
    course = catalog.update_course(course_id, CoursePatch.from_json(data), current_user)
    return jsonify({"message": "Course updated", "course": course.to_dict()}), 200


@bp.route("/<int:course_id>/publish", methods=["PATCH"])
@jwt_required()
@role_required("instructor", "admin")
def toggle_publish(course_id):
    course = catalog.toggle_publish(course_id, current_user)
    return jsonify({
        "message": "Course status updated",
        "id": course.id,
        "is_published": course.is_published
    }), 200


@bp.route("/<int:course_id>", methods=["DELETE"])
@jwt_required()
@role_required("instructor", "admin")
def delete_course(course_id):
    catalog.delete_course(course_id, current_user)
    return jsonify({"message": "Course deleted"}), 200


# List lessons for a course
@bp.route("/<int:course_id>/lessons", methods=["GET"])
def list_lessons(course_id):
    lessons = catalog.list_lessons(course_id)
    return jsonify([l.to_dict() for l in lessons]), 200


@bp.route("/<int:course_id>/lessons", methods=["POST"])
@jwt_required()
@role_required("instructor", "admin")
def create_lesson(course_id):
    data = request.get_json(silent=True) or {}
    lesson = catalog.create_lesson(course_id, data, current_user)
    return jsonify({"message": "Lesson created", "lesson": lesson.to_dict()}), 201
