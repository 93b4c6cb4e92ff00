from flask import Blueprint, request, jsonify
from flask_jwt_extended import current_user, jwt_required
from coursehub.services import reviews
from coursehub.services.reviews import ReviewPatch
from coursehub.utils.validators import paginated, parse_pagination

bp = Blueprint("reviews", __name__)


@bp.route("/<int:course_id>/reviews", methods=["GET"])
def list_reviews(course_id):
    page, limit = parse_pagination(request.args)
    result = reviews.list_reviews(course_id, page, limit, min_rating=request.args.get("min_rating", type=int))
    return jsonify(paginated(result, lambda r: r.to_dict())), 200


@bp.route("/<int:course_id>/reviews/stats", methods=["GET"])
def review_stats(course_id):
    return jsonify({"data": reviews.course_review_stats(course_id)}), 200


@bp.route("/<int:course_id>/reviews", methods=["POST"])
@jwt_required()
def create_review(course_id):
    data = request.get_json(silent=True) or {}
    review = reviews.create_review(current_user, course_id, data)
    return jsonify({"message": "Review created", "data": review.to_dict()}), 201


@bp.route("/<int:course_id>/reviews/<int:review_id>", methods=["PATCH"])
@jwt_required()
def update_review(course_id, review_id):
    data = request.get_json(silent=True) or {}
    review = reviews.update_review(course_id, review_id, ReviewPatch.from_json(data), current_user)
    return jsonify({"message": "Review updated", "data": review.to_dict()}), 200


@bp.route("/<int:course_id>/reviews/<int:review_id>", methods=["DELETE"])
@jwt_required()
def delete_review(course_id, review_id):
    reviews.delete_review(course_id, review_id, current_user)
    return jsonify({"message": "Review deleted"}), 200
