"""
Fleet invite routes.
"""

from flask import Blueprint, g, jsonify

from ..invites import create_invite, get_invite, list_invites, redeem_invite
from .guards import require_operator

invites_bp = Blueprint("invites", __name__, url_prefix="/api/invites")


@invites_bp.route("", methods=["POST"])
@require_operator
def create(operator):
    invite = create_invite(operator.id)
    return jsonify({"success": True, "invite": invite}), 201


@invites_bp.route("", methods=["GET"])
@require_operator
def list_for_operator(operator):
    return jsonify({"success": True, "invites": list_invites(operator.id)}), 200


@invites_bp.route("/<token>", methods=["GET"])
def show(token):
    return jsonify({"success": True, "invite": get_invite(token)}), 200


@invites_bp.route("/<token>/redeem", methods=["POST"])
def redeem(token):
    result = redeem_invite(token, g.user)
    return jsonify({"success": True, **result}), 200
