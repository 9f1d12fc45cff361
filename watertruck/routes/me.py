"""
Current device identity and profile.
"""

from flask import Blueprint, g, jsonify, request

from ..identity import enrich_user, update_profile

me_bp = Blueprint("me", __name__, url_prefix="/api/me")


@me_bp.route("", methods=["GET"])
def get_me():
    return jsonify({"success": True, "user": enrich_user(g.user)}), 200


@me_bp.route("", methods=["POST"])
def update_me():
    data = request.get_json(silent=True) or {}
    user = update_profile(g.user, data)
    return jsonify({"success": True, "user": user}), 200
