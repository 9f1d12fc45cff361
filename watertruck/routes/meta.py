"""
Public client configuration.
"""

from flask import Blueprint, current_app, jsonify

meta_bp = Blueprint("meta", __name__, url_prefix="/api")


@meta_bp.route("/config", methods=["GET"])
def client_config():
    """Settings the web client needs before it has an identity."""
    cfg = current_app.config
    return jsonify({
        "success": True,
        "config": {
            "app": {
                "name": cfg.get("APP_NAME"),
                "url": cfg.get("APP_URL"),
                "logo": cfg.get("APP_LOGO"),
            },
            "locale": {
                "country_code": cfg.get("LOCALE_COUNTRY_CODE"),
                "country_name": cfg.get("LOCALE_COUNTRY_NAME"),
                "phone_digits": cfg.get("LOCALE_PHONE_DIGITS"),
            },
            "truck": {
                "offline_timeout_minutes": cfg.get("TRUCK_OFFLINE_TIMEOUT_MINUTES"),
                "max_distance_km": cfg.get("TRUCK_MAX_DISTANCE_KM"),
                "location_update_interval_seconds": cfg.get("TRUCK_LOCATION_UPDATE_INTERVAL_SECONDS"),
            },
            "notifications": {
                "enabled": bool(cfg.get("NOTIFICATIONS_ENABLED")),
                "vapid_public_key": cfg.get("VAPID_PUBLIC_KEY"),
            },
        },
    }), 200
