from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from coursehub.services import catalog
from coursehub.utils.auth import role_required

bp = Blueprint("categories", __name__)


@bp.route("/", methods=["GET"])
def list_categories():
    return jsonify([c.to_dict() for c in catalog.list_categories()]), 200


@bp.route("/", methods=["POST"])
@jwt_required()
@role_required("admin")
def create_category():
    data = request.get_json(silent=True) or {}
    category = catalog.create_category(data)
    return jsonify({"message": "Category created", "category": category.to_dict()}), 201
