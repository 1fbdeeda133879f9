import logging
import os

from flask import Flask, jsonify, request, send_file
from werkzeug.exceptions import HTTPException

from errors import PermissionDenied, ValidationError
from images import image_path, is_remote_image
from store import plant_to_dict

log = logging.getLogger(__name__)


def _plant_json(plant, status):
    data = plant_to_dict(plant)
    if not is_remote_image(plant["image"]):
        data["image_url"] = f"/images/{plant['image']}" if plant["image"] else None
    else:
        data["image_url"] = plant["image"]
    data["status"] = dict(status, effective_last_watered=status["effective_last_watered"].isoformat())
    return data


def _settings_json(settings):
    return {
        "manual_watering_mode": settings["manual_watering_mode"],
        "search_term": settings["search_term"],
        "filter_type": settings["filter_type"],
        "notification_settings": dict(settings["notification_settings"]),
    }


def create_app(config, state, dispatcher, mqtt=None):
    """Create and configure the Flask app."""
    app = Flask(__name__)

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(PermissionDenied)
    def handle_permission(e):
        return jsonify({"error": str(e)}), 403

    @app.errorhandler(KeyError)
    def handle_missing_plant(e):
        if isinstance(e, HTTPException):
            return e
        return jsonify({"error": "Plant not found"}), 404

    @app.route("/api/status")
    def api_status():
        counts = {"pending": 0, "ready": 0, "overdue": 0}
        for _, status in state.list_plants(search_term="", filter_type="default"):
            counts[status["status"]] += 1
        return jsonify({
            "now": state.now().isoformat(),
            "plant_count": sum(counts.values()),
            "counts": counts,
            "manual_watering_mode": state.settings["manual_watering_mode"],
            "reminders_pending": len(dispatcher.pending()),
            "mqtt_connected": mqtt.is_connected() if mqtt else False,
        })

    # --- Plants ---

    @app.route("/api/plants")
    def api_plants():
        search = request.args.get("search")
        filter_type = request.args.get("filter")
        return jsonify([
            _plant_json(plant, status)
            for plant, status in state.list_plants(search_term=search, filter_type=filter_type)
        ])

    @app.route("/api/plants", methods=["POST"])
    def api_add_plant():
        data = request.get_json(silent=True) or {}
        plant = state.add_plant(data)
        return jsonify(_plant_json(plant, state.plant_status(plant))), 201

    @app.route("/api/plants/<plant_id>")
    def api_plant(plant_id):
        plant = state.get_plant(plant_id)
        return jsonify(_plant_json(plant, state.plant_status(plant)))

    @app.route("/api/plants/<plant_id>", methods=["PATCH"])
    def api_update_plant(plant_id):
        data = request.get_json(silent=True) or {}
        plant = state.update_plant(plant_id, data)
        return jsonify(_plant_json(plant, state.plant_status(plant)))

    @app.route("/api/plants/<plant_id>", methods=["DELETE"])
    def api_delete_plant(plant_id):
        state.remove_plant(plant_id)
        return jsonify({"status": "ok"})

    @app.route("/api/plants/<plant_id>/water", methods=["POST"])
    def api_water_plant(plant_id):
        plant = state.water_plant(plant_id)
        return jsonify(_plant_json(plant, state.plant_status(plant)))

    @app.route("/api/plants/<plant_id>/image", methods=["POST"])
    def api_plant_image(plant_id):
        upload = request.files.get("image")
        if upload is None:
            return jsonify({"error": "Missing 'image' file"}), 400
        plant = state.set_plant_image(plant_id, upload.stream)
        return jsonify(_plant_json(plant, state.plant_status(plant)))

    @app.route("/images/<filename>")
    def serve_image(filename):
        path = image_path(config, filename)
        if not path or not os.path.isfile(path):
            return "Not found", 404
        return send_file(path, mimetype="image/jpeg")

    # --- Settings ---

    @app.route("/api/settings")
    def api_settings():
        return jsonify(_settings_json(state.settings))

    @app.route("/api/settings", methods=["PATCH"])
    def api_update_settings():
        data = request.get_json(silent=True) or {}
        return jsonify(_settings_json(state.update_settings(data)))

    @app.route("/api/settings/notifications", methods=["PATCH"])
    def api_notification_settings():
        data = request.get_json(silent=True) or {}
        return jsonify(state.set_notification_settings(data))

    # --- Reminders ---

    @app.route("/api/reminders")
    def api_reminders():
        return jsonify([
            {
                "id": r["id"],
                "title": r["title"],
                "body": r["body"],
                "fires_at": r["fires_at"].isoformat(),
            }
            for r in dispatcher.pending()
        ])

    @app.route("/api/notifications/test", methods=["POST"])
    def api_test_notification():
        reminder = state.reminders.send_test_notification()
        return jsonify({"status": "ok", "id": reminder["id"]})

    # --- Debug ---

    @app.route("/api/debug/time-offset")
    def api_time_offset():
        return jsonify({
            "offset_days": getattr(state.clock, "offset_days", 0),
            "now": state.now().isoformat(),
        })

    @app.route("/api/debug/time-offset", methods=["PUT"])
    def api_set_time_offset():
        data = request.get_json(silent=True) or {}
        state.set_time_offset(data.get("offset_days", 0))
        return jsonify({
            "offset_days": state.clock.offset_days,
            "now": state.now().isoformat(),
        })

    return app
