#!/usr/bin/env python3
"""Web API for HabitForge.

This module provides a RESTful HTTP API for habits, habit events, notes,
uploaded media and the speech/chat proxies.
Uses only core/ modules.

Endpoints:
    GET    /api/health                          Liveness check
    POST   /api/users                           Create a user
    GET    /api/users/latest                    Name of the newest user
    GET    /api/habits                          List habits with events
    POST   /api/habits                          Create a habit
    DELETE /api/habits                          Delete habit by body {id}
    GET    /api/habits/<id>                     Get habit with events
    PATCH  /api/habits/<id>                     Partially update a habit
    DELETE /api/habits/<id>                     Delete habit and its events
    GET    /api/habits/<id>/stats               Hit/slip counts, combo, score
    POST   /api/habits/<id>/events              Record a HIT or SLIP
    POST   /api/habits/<id>/events/data         Record an event with details
    PATCH  /api/habits/events/<event_id>        Update an event
    DELETE /api/habits/events/<event_id>        Delete an event
    POST   /api/habits/events/reflect           Attach a reflection note
    POST   /api/habits/events/delete-multiple   Bulk delete events
    GET    /api/notes                           List notes with tags
    POST   /api/notes                           Create a note
    PUT    /api/notes                           Update a note, replacing tags
    GET    /api/notes/<id>                      Get a note
    DELETE /api/notes/<id>                      Delete a note and its tags
    GET    /api/images, /api/audios             List uploaded media
    POST   /api/images, /api/audios             Upload media (multipart "file")
    GET    /uploads/<name>, /audios/<name>      Serve uploaded media
    POST   /api/elevenlabs                      Text to speech, optional voiceId
    POST   /api/tts                             Text to speech, default voice
    POST   /api/student                         Prompt to chat completion
    POST   /api/chat                            Echo

All endpoints except media serving and speech return JSON responses.
IDs are UUID7 hex strings (32 characters, no hyphens).
"""

from __future__ import annotations

import argparse
import functools
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request, Response, send_from_directory
from flask_cors import CORS

from habitforge.core.config import Config
from habitforge.core.database import Database, NotFoundError
from habitforge.core.gateways import ChatCompletionGateway, SpeechSynthesisGateway, UpstreamError
from habitforge.core.media_storage import MediaStorage
from habitforge.core.models import MediaKind
from habitforge.core.stats import habit_stats
from habitforge.core.validation import (
    ValidationError,
    validate_entity_id,
    validate_event_type,
    validate_id_list,
    validate_optional_int,
    validate_optional_string,
    validate_required_string,
    validate_string_list,
    validate_tags,
    validate_uuid_hex,
)

logger = logging.getLogger(__name__)

# Global database instance
db: Optional[Database] = None

HABIT_STRING_FIELDS = (
    "goalType",
    "microGoal",
    "cravingNarrative",
    "resistanceStyle",
    "motivationOverride",
    "hitDefinition",
    "slipDefinition",
)


def api_endpoint(func: Callable) -> Callable:
    """Decorator for consistent API error handling.

    Catches ValidationError (400), NotFoundError (404) and Exception (500)
    with proper JSON error responses and logging.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ValidationError as e:
            logger.warning(f"Validation error in {func.__name__}: {e}")
            return jsonify({"error": f"Invalid {e.field}: {e.message}"}), 400
        except NotFoundError as e:
            return jsonify({"error": f"{e.entity} not found"}), 404
        except Exception as e:
            logger.exception(f"Error in {func.__name__}: {e}")
            return jsonify({"error": "Internal server error"}), 500
    return wrapper


def _json_body() -> Dict[str, Any]:
    """Parsed JSON object of the current request ({} when there is no body)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("body", "must be a JSON object")
    return data


def _habit_fields(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    """Validate the habit fields present in a request body."""
    fields: Dict[str, Any] = {}
    if not partial or "name" in data:
        fields["name"] = validate_required_string(data.get("name"), "name")
    for key in HABIT_STRING_FIELDS:
        if key in data:
            fields[key] = validate_optional_string(data[key], key)
    if "triggers" in data:
        fields["triggers"] = validate_string_list(data["triggers"], "triggers")
    if "reflectionDepthOverride" in data:
        fields["reflectionDepthOverride"] = validate_optional_int(
            data["reflectionDepthOverride"], "reflectionDepthOverride"
        )
    return fields


def _event_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the event detail fields present in a request body."""
    fields: Dict[str, Any] = {}
    for key in ("mood", "reflectionNote", "aiPromptUsed"):
        if key in data:
            fields[key] = validate_optional_string(data[key], key)
    if "intensity" in data:
        fields["intensity"] = validate_optional_int(data["intensity"], "intensity")
    if "emotionTags" in data:
        fields["emotionTags"] = validate_string_list(data["emotionTags"], "emotionTags")
    if "isReversal" in data:
        if not isinstance(data["isReversal"], bool):
            raise ValidationError("isReversal", "must be a boolean")
        fields["isReversal"] = data["isReversal"]
    return fields


def _required_text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def create_app(
    config_dir: Optional[Path] = None,
    speech_gateway: Optional[SpeechSynthesisGateway] = None,
    chat_gateway: Optional[ChatCompletionGateway] = None,
) -> Flask:
    """Create and configure Flask application.

    Args:
        config_dir: Custom configuration directory (default: None)
        speech_gateway: Text to speech client (default: built from config)
        chat_gateway: Chat completion client (default: built from config)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes

    # Initialize config, database, storage and gateways
    config = Config(config_dir=config_dir)
    db_path = config.get_database_file()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    global db
    db = Database(db_path)

    storage = MediaStorage(config.get_media_directory())
    storage.ensure_directories()
    speech = speech_gateway or SpeechSynthesisGateway.from_config(config)
    chat = chat_gateway or ChatCompletionGateway.from_config(config)

    app.config["HABITFORGE_CONFIG"] = config
    app.config["HABITFORGE_DB"] = db
    app.config["HABITFORGE_STORAGE"] = storage

    logger.info(f"Web API initialized with database: {db_path}")

    # Error handlers
    @app.errorhandler(404)
    def not_found(error: Any) -> tuple[Response, int]:
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error: Any) -> tuple[Response, int]:
        """Handle 500 errors."""
        logger.error(f"Internal error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(ValidationError)
    def validation_error(error: ValidationError) -> tuple[Response, int]:
        """Handle validation errors."""
        logger.warning(f"Validation error: {error.field} - {error.message}")
        return jsonify({"error": f"Invalid {error.field}: {error.message}"}), 400

    @app.errorhandler(NotFoundError)
    def missing_record(error: NotFoundError) -> tuple[Response, int]:
        """Handle references to records that do not exist."""
        return jsonify({"error": f"{error.entity} not found"}), 404

    # ========================================================================
    # Users
    # ========================================================================

    @app.route("/api/users", methods=["POST"])
    @api_endpoint
    def create_user() -> tuple[Response, int]:
        """Create a user."""
        data = _json_body()
        name = validate_optional_string(data.get("name"), "name")
        email = validate_optional_string(data.get("email"), "email")
        if not name and not email:
            return jsonify({"error": "Name or email is required"}), 400
        user = db.create_user(
            name=name,
            email=email,
            personality_insights=validate_optional_string(
                data.get("personalityInsights"), "personalityInsights"
            ),
        )
        return jsonify(user), 201

    @app.route("/api/users/latest", methods=["GET"])
    @api_endpoint
    def latest_user() -> Response:
        """Name of the most recently created user."""
        user = db.get_latest_user()
        return jsonify({"name": user["name"] if user else None})

    # ========================================================================
    # Habits
    # ========================================================================

    @app.route("/api/habits", methods=["POST"])
    @api_endpoint
    def create_habit() -> tuple[Response, int]:
        """Create a habit."""
        data = _json_body()
        if not data.get("userId") or not data.get("name"):
            return jsonify({"error": "Missing required fields"}), 400
        user_id = validate_uuid_hex(data["userId"], "userId")
        fields = _habit_fields(data, partial=False)
        habit = db.create_habit(user_id, fields.pop("name"), **fields)
        return jsonify(habit), 201

    @app.route("/api/habits", methods=["GET"])
    @api_endpoint
    def get_habits() -> Response:
        """Get all habits with their events."""
        return jsonify(db.get_all_habits())

    @app.route("/api/habits", methods=["DELETE"])
    @api_endpoint
    def delete_habit_by_body() -> tuple[Response, int]:
        """Delete a habit named in the request body."""
        habit_id = validate_entity_id(_json_body().get("id"), "id")
        if not db.delete_habit(habit_id):
            raise NotFoundError("Habit", habit_id)
        return jsonify({"message": "Habit deleted"}), 200

    @app.route("/api/habits/<habit_id>", methods=["GET"])
    @api_endpoint
    def get_habit(habit_id: str) -> tuple[Response, int]:
        """Get a habit with its events, newest first."""
        habit_id = validate_uuid_hex(habit_id, "habit_id")
        habit = db.get_habit(habit_id)
        if habit is None:
            raise NotFoundError("Habit", habit_id)
        return jsonify(habit), 200

    @app.route("/api/habits/<habit_id>", methods=["PATCH"])
    @api_endpoint
    def update_habit(habit_id: str) -> tuple[Response, int]:
        """Partially update a habit."""
        habit_id = validate_uuid_hex(habit_id, "habit_id")
        fields = _habit_fields(_json_body(), partial=True)
        habit = db.update_habit(habit_id, fields)
        logger.info(f"Updated habit {habit_id} via API")
        return jsonify(habit), 200

    @app.route("/api/habits/<habit_id>", methods=["DELETE"])
    @api_endpoint
    def delete_habit(habit_id: str) -> tuple[Response, int]:
        """Delete a habit and its events."""
        habit_id = validate_uuid_hex(habit_id, "habit_id")
        if not db.delete_habit(habit_id):
            raise NotFoundError("Habit", habit_id)
        return jsonify({"message": "Habit deleted"}), 200

    @app.route("/api/habits/<habit_id>/stats", methods=["GET"])
    @api_endpoint
    def get_habit_stats(habit_id: str) -> tuple[Response, int]:
        """Hit/slip counts, current combo and cumulative score."""
        habit_id = validate_uuid_hex(habit_id, "habit_id")
        habit = db.get_habit(habit_id)
        if habit is None:
            raise NotFoundError("Habit", habit_id)
        return jsonify(habit_stats(habit)), 200

    # ========================================================================
    # Habit events
    # ========================================================================

    @app.route("/api/habits/<habit_id>/events", methods=["POST"])
    @api_endpoint
    def record_event(habit_id: str) -> tuple[Response, int]:
        """Record a HIT or SLIP."""
        habit_id = validate_uuid_hex(habit_id, "habit_id")
        event_type = validate_event_type(_json_body().get("type"))
        # The quick-log buttons send no mood; "null" marks it as not asked yet
        event = db.create_event(habit_id, event_type, mood="null")
        return jsonify(event), 200

    @app.route("/api/habits/<habit_id>/events/data", methods=["POST"])
    @api_endpoint
    def record_event_with_data(habit_id: str) -> tuple[Response, int]:
        """Record an event together with mood, intensity and reflection."""
        habit_id = validate_uuid_hex(habit_id, "habit_id")
        data = _json_body()
        event_type = validate_event_type(data.get("type"))
        fields = _event_fields(data)
        event = db.create_event(
            habit_id,
            event_type,
            mood=fields.get("mood"),
            intensity=fields.get("intensity"),
            reflection_note=fields.get("reflectionNote"),
            emotion_tags=fields.get("emotionTags"),
            ai_prompt_used=fields.get("aiPromptUsed"),
            is_reversal=fields.get("isReversal", False),
        )
        return jsonify(event), 201

    @app.route("/api/habits/events/<event_id>", methods=["PATCH"])
    @api_endpoint
    def update_event(event_id: str) -> tuple[Response, int]:
        """Update mood, intensity, reflection or emotion tags of an event."""
        event_id = validate_uuid_hex(event_id, "event_id")
        data = _json_body()
        allowed = {k: v for k, v in data.items() if k in ("mood", "intensity", "reflectionNote", "emotionTags")}
        event = db.update_event(event_id, _event_fields(allowed))
        return jsonify(event), 200

    @app.route("/api/habits/events/<event_id>", methods=["DELETE"])
    @api_endpoint
    def delete_event(event_id: str) -> tuple[Response, int]:
        """Delete one event."""
        event_id = validate_uuid_hex(event_id, "event_id")
        if not db.delete_event(event_id):
            raise NotFoundError("Event", event_id)
        return jsonify({"message": "Event deleted successfully"}), 200

    @app.route("/api/habits/events/reflect", methods=["POST"])
    @api_endpoint
    def reflect_on_event() -> tuple[Response, int]:
        """Attach a reflection note to an event. An empty note is allowed."""
        data = _json_body()
        event_id = validate_entity_id(data.get("eventId"), "eventId")
        reflection_note = data.get("reflectionNote")
        if not isinstance(reflection_note, str):
            raise ValidationError("reflectionNote", "must be a string")
        event = db.set_reflection(event_id, reflection_note)
        return jsonify(event), 200

    @app.route("/api/habits/events/delete-multiple", methods=["POST"])
    @api_endpoint
    def delete_multiple_events() -> tuple[Response, int]:
        """Delete several events at once."""
        ids = _json_body().get("ids")
        if not isinstance(ids, list) or not ids:
            return jsonify({"error": "No event IDs provided"}), 400
        deleted = db.delete_events(validate_id_list(ids))
        return jsonify({"deleted": deleted}), 200

    # ========================================================================
    # Notes
    # ========================================================================

    @app.route("/api/notes", methods=["GET"])
    @api_endpoint
    def get_notes() -> Response:
        """Get all notes with tags, newest first."""
        return jsonify(db.get_all_notes())

    @app.route("/api/notes", methods=["POST"])
    @api_endpoint
    def create_note() -> tuple[Response, int]:
        """Create a new note."""
        data = _json_body()
        content = validate_optional_string(data.get("content"), "content") or ""
        note = db.create_note(content, validate_tags(data.get("tags")))
        logger.info(f"Created note {note['id']} via API")
        return jsonify(note), 201

    @app.route("/api/notes", methods=["PUT"])
    @api_endpoint
    def update_note() -> tuple[Response, int]:
        """Update a note. Tags are replaced by the given list."""
        data = _json_body()
        if not data.get("id"):
            return jsonify({"error": "Note id is required"}), 400
        note_id = validate_uuid_hex(data["id"], "id")
        content = validate_optional_string(data.get("content"), "content")
        note = db.update_note(note_id, content, validate_tags(data.get("tags")))
        logger.info(f"Updated note {note_id} via API")
        return jsonify(note), 200

    @app.route("/api/notes/<note_id>", methods=["GET"])
    @api_endpoint
    def get_note(note_id: str) -> tuple[Response, int]:
        """Get specific note by ID."""
        note_id = validate_uuid_hex(note_id, "note_id")
        note = db.get_note(note_id)
        if note:
            return jsonify(note), 200
        return jsonify({"error": "Note not found"}), 404

    @app.route("/api/notes/<note_id>", methods=["DELETE"])
    @api_endpoint
    def delete_note(note_id: str) -> tuple[Response, int]:
        """Delete a note and its tags."""
        note_id = validate_uuid_hex(note_id, "note_id")
        if db.delete_note(note_id):
            return jsonify({"message": "Note and associated tags deleted successfully"}), 200
        return jsonify({"error": "Note not found"}), 404

    # ========================================================================
    # Media
    # ========================================================================

    def _upload(kind: MediaKind) -> Optional[Dict[str, Any]]:
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return None
        stored = storage.save(kind, upload.filename, upload.stream)
        if kind is MediaKind.IMAGE:
            return db.create_image(stored["url"], stored["filename"])
        return db.create_audio(stored["url"], stored["filename"])

    @app.route("/api/images", methods=["POST"])
    @api_endpoint
    def upload_image() -> tuple[Response, int]:
        """Upload an image."""
        image = _upload(MediaKind.IMAGE)
        if image is None:
            return jsonify({"error": "No file uploaded"}), 400
        return jsonify({"image": image}), 200

    @app.route("/api/images", methods=["GET"])
    @api_endpoint
    def list_images() -> Response:
        """List uploaded images, newest first."""
        return jsonify({"images": db.get_all_images()})

    @app.route("/api/audios", methods=["POST"])
    @api_endpoint
    def upload_audio() -> tuple[Response, int]:
        """Upload an audio file."""
        audio = _upload(MediaKind.AUDIO)
        if audio is None:
            return jsonify({"error": "No file uploaded"}), 400
        return jsonify({"audio": audio}), 200

    @app.route("/api/audios", methods=["GET"])
    @api_endpoint
    def list_audios() -> Response:
        """List uploaded audio files, newest first."""
        return jsonify({"audios": db.get_all_audios()})

    def _serve(kind: MediaKind, filename: str) -> Any:
        path = storage.get_file_path(kind, filename)
        if path is None:
            return jsonify({"error": "File not found"}), 404
        return send_from_directory(path.parent, path.name)

    @app.route("/uploads/<path:filename>", methods=["GET"])
    def serve_image(filename: str) -> Any:
        """Serve an uploaded image."""
        return _serve(MediaKind.IMAGE, filename)

    @app.route("/audios/<path:filename>", methods=["GET"])
    def serve_audio(filename: str) -> Any:
        """Serve an uploaded audio file."""
        return _serve(MediaKind.AUDIO, filename)

    # ========================================================================
    # Speech and chat proxies
    # ========================================================================

    @app.route("/api/elevenlabs", methods=["POST"])
    @api_endpoint
    def elevenlabs() -> Any:
        """Text to speech with an optional voiceId."""
        data = _json_body()
        text = _required_text(data, "text")
        if text is None:
            return jsonify({"error": "Text is required"}), 400
        if not speech.is_configured:
            logger.error("ElevenLabs API key is missing")
            return jsonify({"error": "ElevenLabs API key not configured"}), 500

        try:
            audio = speech.synthesize(text, data.get("voiceId") or None)
        except UpstreamError as e:
            return jsonify({"error": "Failed to convert text to speech", "details": str(e)}), 500

        return Response(audio, mimetype="audio/mpeg")

    @app.route("/api/tts", methods=["POST"])
    @api_endpoint
    def tts() -> Any:
        """Text to speech with the default voice."""
        text = _required_text(_json_body(), "text")
        if text is None:
            return jsonify({"error": "Text is required"}), 400
        if not speech.is_configured:
            return jsonify({"error": "Missing ElevenLabs configuration"}), 500

        try:
            audio = speech.synthesize(text)
        except UpstreamError as e:
            if e.status is not None:
                return jsonify({"error": "TTS API failed"}), 502
            logger.error(f"Internal TTS error: {e}")
            return jsonify({"error": "Internal TTS error"}), 500

        return Response(audio, status=200, mimetype="audio/mpeg")

    @app.route("/api/student", methods=["POST"])
    @api_endpoint
    def student() -> tuple[Response, int]:
        """Prompt to chat completion."""
        prompt = _required_text(_json_body(), "prompt")
        if prompt is None:
            return jsonify({"error": "Prompt is required"}), 400
        try:
            reply = chat.complete(prompt)
        except UpstreamError as e:
            return jsonify({"error": str(e)}), 500
        return jsonify({"response": reply}), 200

    @app.route("/api/chat", methods=["POST"])
    @api_endpoint
    def echo_chat() -> Response:
        """Echo the message back."""
        message = _json_body().get("message")
        return jsonify({"message": f"Echo: {message}"})

    @app.route("/api/health", methods=["GET"])
    def health_check() -> tuple[Response, int]:
        """Health check endpoint.

        Returns:
            JSON response indicating service health
        """
        return jsonify({"status": "ok"}), 200

    return app


def add_web_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add web subparser and its arguments.

    Args:
        subparsers: Parent subparsers object to add web parser to
    """
    web_parser = subparsers.add_parser(
        "web",
        help="Start web API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    web_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )

    web_parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port to bind to (default: 5000)"
    )

    web_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run web server with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have host, port, debug attributes)

    Returns:
        Exit code (0 for success)
    """
    logger.info("Starting HabitForge Web API")
    if config_dir:
        logger.info(f"Using custom config directory: {config_dir}")

    app = create_app(config_dir=config_dir)

    app.run(
        host=args.host,
        port=args.port,
        debug=args.debug
    )

    return 0
