from flask import Blueprint, request, jsonify
from flask_jwt_extended import (
    create_access_token, create_refresh_token, current_user, jwt_required
)
from coursehub.services import users

bp = Blueprint("auth", __name__)


def _tokens_for(user):
    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role}
    )
    refresh_token = create_refresh_token(identity=str(user.id))
    return access_token, refresh_token


@bp.route("/register", methods=["POST"])
def register():
    data = request.get_json(silent=True) or {}
    user = users.register(data)
    access_token, refresh_token = _tokens_for(user)

    return jsonify({
        "message": "Registration successful",
        "access_token": access_token,
        "refresh_token": refresh_token,
        "user": user.to_dict()
    }), 201


@bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Missing JSON data"}), 400

    user = users.authenticate(data.get("email"), data.get("password"))
    access_token, refresh_token = _tokens_for(user)

    return jsonify({
        "access_token": access_token,
        "refresh_token": refresh_token,
        "user": user.to_dict()
    }), 200


@bp.route("/refresh", methods=["POST"])
@jwt_required(refresh=True)
def refresh():
    new_access_token = create_access_token(
        identity=str(current_user.id),
        additional_claims={"role": current_user.role}
    )
    return jsonify({"access_token": new_access_token}), 200


# Get current user
@bp.route("/me", methods=["GET"])
@jwt_required()
def me():
    return jsonify(current_user.to_dict()), 200


@bp.route("/change-password", methods=["POST"])
@jwt_required()
def change_password():
    data = request.get_json(silent=True) or {}
    users.change_password(current_user, data.get("current_password"), data.get("new_password"))
    return jsonify({"message": "Password updated successfully"}), 200
