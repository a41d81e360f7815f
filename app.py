"""
Image Perturbation API
Python/Flask backend using Pillow for image processing.

Endpoints:
  POST /process-base64  – Accept a base64 image + options, return base64 JSON.
  POST /process-binary  – Same input, return the processed image as a download.
  GET  /health          – Liveness check.
"""

import logging
import os
import time

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

import decoding
import pipeline
from errors import ConfigError, DecodeError, ProcessingError

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------
PORT = int(os.getenv("PORT", "3000"))
MAX_CONTENT_LENGTH_MB = int(os.getenv("MAX_CONTENT_LENGTH_MB", "50"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
log = logging.getLogger("image-perturb")

# -----------------------------------------------------------------------------
# App Setup
# -----------------------------------------------------------------------------
app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": ALLOWED_ORIGINS}})

# Base64 inflates images by a third, so the limit is generous
app.config["MAX_CONTENT_LENGTH"] = MAX_CONTENT_LENGTH_MB * 1024 * 1024


def _read_payload():
    """Return (image bytes, options) from the JSON body."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise DecodeError("Request body must be a JSON object.")

    image = decoding.decode(body.get("base64"))

    options = body.get("options") or {}
    if not isinstance(options, dict):
        raise ConfigError("'options' must be an object.")
    if body.get("noise") is not None:
        # shorthand for manual per-pixel noise unless options say otherwise
        options = {"noiseStrategy": "manual_pixel", "manualNoiseAmount": body["noise"], **options}
    return image, options


@app.errorhandler(DecodeError)
@app.errorhandler(ConfigError)
def _bad_request(exc):
    log.warning("Rejected request: %s", exc)
    return jsonify({"error": str(exc)}), 400


@app.errorhandler(ProcessingError)
def _processing_failed(exc):
    log.error("Error processing image: %s", exc)
    return jsonify({"error": str(exc) or "Internal error processing image"}), 500


@app.errorhandler(Exception)
def _unexpected(exc):
    if isinstance(exc, HTTPException):
        return jsonify({"error": exc.description}), exc.code
    log.exception("Unexpected error processing request")
    return jsonify({"error": str(exc) or "Internal error processing image"}), 500


@app.route("/process-base64", methods=["POST"])
def process_base64():
    """Process the image and return it base64-encoded inside JSON."""
    image, options = _read_payload()
    result = pipeline.process(image, options)
    return jsonify(
        {
            "processedBase64": decoding.encode(result.data),
            "mimeType": result.mime_type,
            "extension": result.extension,
        }
    )


@app.route("/process-binary", methods=["POST"])
def process_binary():
    """Process the image and return the raw bytes as an attachment."""
    image, options = _read_payload()
    result = pipeline.process(image, options)
    filename = f"processed-{int(time.time() * 1000)}.{result.extension}"
    return Response(
        result.data,
        mimetype=result.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


if __name__ == "__main__":
    log.info("Image perturbation service listening on port %d", PORT)
    app.run(debug=False, host="0.0.0.0", port=PORT)
