"""
Restaurant KPI — Report Ingestion Server
=========================================
Flask API backend for the KPI dashboard.
Accepts POS portal report uploads, parses them into daily KPI entries and
stores them per restaurant.

Usage:
    python server.py
    Then POST reports to http://localhost:5000/api/...
"""

import base64
import binascii
import hmac
import logging
import os
from dataclasses import asdict
from datetime import date
from functools import wraps

from flask import Flask, jsonify, request, session
from flask_cors import CORS

from config import get_settings
from db import get_kpi_entries, init_db, save_report_to_db, upsert_kpi_entries
from errors import MalformedDocumentError, StorageError
from import_reports import period_from_filename
from kpi_summary import (
    compute_period_comparison,
    delivery_summary,
    period_date_range,
    previous_period,
    summarize,
)
from report_parsers import REPORT_TYPES, parse_kpi_import, parse_report

logger = logging.getLogger(__name__)

NO_ENTRIES_MESSAGE = "No entries found for this period"

# ─────────────────────────────────────────────────────────────
# APP SETUP
# ─────────────────────────────────────────────────────────────

settings = get_settings()

app = Flask(__name__)
app.secret_key = settings.secret_key
app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_mb * 1024 * 1024

CORS(app)


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get("authenticated"):
            return jsonify({"error": "Authentication required"}), 401
        return f(*args, **kwargs)
    return decorated_function


def _read_upload():
    """Return (filename, bytes) from a multipart 'file' or a JSON base64 payload, else None."""
    if request.is_json:
        data = request.get_json(silent=True) or {}
        fname = data.get("name")
        fdata = data.get("data")  # data:application/vnd...;base64,....
        if fname and fdata:
            if "," in fdata:
                _, fdata = fdata.split(",", 1)
            try:
                return fname, base64.b64decode(fdata, validate=True)
            except (binascii.Error, ValueError):
                return None
        return None

    f = request.files.get("file")
    if f and f.filename:
        return f.filename, f.read()
    return None


def _param(name, default=None):
    """Look a parameter up in the form, JSON body, then query string."""
    if request.is_json:
        data = request.get_json(silent=True) or {}
        if data.get(name):
            return data[name]
    return request.form.get(name) or request.args.get(name) or default


def _restaurant_id():
    return _param("restaurant_id", settings.default_restaurant_id)


def _describe_result(result):
    """JSON-friendly view of an extractor result."""
    if result is None:
        return None
    if isinstance(result, list):
        return [asdict(r) for r in result]
    return asdict(result)


def _unsupported(e):
    return jsonify({"error": "Unsupported file type", "details": str(e)}), 400


# ─────────────────────────────────────────────────────────────
# ROUTES
# ─────────────────────────────────────────────────────────────

@app.route("/login", methods=["POST"])
def login():
    """Check the shared access code and open a session."""
    password = _param("password", "")
    if hmac.compare_digest(str(password), settings.app_password):
        session["authenticated"] = True
        return jsonify({"ok": True})
    return jsonify({"error": "Invalid access code"}), 401


@app.route("/logout")
def logout():
    """Clear session and logout."""
    session.clear()
    return jsonify({"ok": True})


@app.route("/api/kpi-entries/preview", methods=["POST"])
@login_required
def preview_kpi_entries():
    """Parse a KPI sheet without storing anything."""
    upload = _read_upload()
    if upload is None:
        return jsonify({"error": "No file provided"}), 400
    fname, file_bytes = upload

    try:
        entries = parse_kpi_import(file_bytes, filename=fname)
    except MalformedDocumentError as e:
        return _unsupported(e)
    except Exception as e:
        logger.exception("Preview failed for '%s'", fname)
        return jsonify({"error": str(e)}), 500

    if not entries:
        return jsonify({"entries": [], "count": 0, "message": NO_ENTRIES_MESSAGE})
    return jsonify({
        "entries": [e.to_dict() for e in entries],
        "count": len(entries),
        "summary": asdict(summarize(entries)),
    })


@app.route("/api/kpi-entries/import", methods=["POST"])
@login_required
def import_kpi_entries():
    """Parse a KPI sheet and upsert its entries for the restaurant."""
    upload = _read_upload()
    if upload is None:
        return jsonify({"error": "No file provided"}), 400
    fname, file_bytes = upload
    restaurant_id = _restaurant_id()

    try:
        entries = parse_kpi_import(file_bytes, filename=fname)
        if not entries:
            return jsonify({"imported": 0, "message": NO_ENTRIES_MESSAGE})
        imported = upsert_kpi_entries(restaurant_id, entries)
    except MalformedDocumentError as e:
        return _unsupported(e)
    except StorageError as e:
        logger.error("Import of '%s' not stored: %s", fname, e)
        return jsonify({"error": str(e)}), 503
    except Exception as e:
        logger.exception("Import failed for '%s'", fname)
        return jsonify({"error": str(e)}), 500

    return jsonify({
        "imported": imported,
        "restaurant_id": restaurant_id,
        "first_date": entries[0].date,
        "last_date": entries[-1].date,
    })


@app.route("/api/reports/upload", methods=["POST"])
@login_required
def upload_report():
    """Store a raw portal report, detect its type and return what was parsed."""
    upload = _read_upload()
    if upload is None:
        return jsonify({"error": "No file provided"}), 400
    fname, file_bytes = upload

    requested_type = _param("report_type")
    if requested_type and requested_type not in REPORT_TYPES:
        return jsonify({"error": f"Unknown report type '{requested_type}'"}), 400
    restaurant_id = _restaurant_id()
    period = _param("period") or period_from_filename(fname)

    try:
        report_type, result = parse_report(file_bytes, requested_type, filename=fname)
    except MalformedDocumentError as e:
        return _unsupported(e)
    except Exception as e:
        logger.exception("Report upload failed for '%s'", fname)
        return jsonify({"error": str(e)}), 500

    status = "parsed" if result else "empty"
    report_id = save_report_to_db(restaurant_id, fname, report_type, period, file_bytes, status)

    body = {
        "report_id": report_id,
        "report_type": report_type,
        "period": period,
        "status": status,
        "data": _describe_result(result),
    }
    if not result:
        body["message"] = NO_ENTRIES_MESSAGE
    return jsonify(body)


@app.route("/api/kpi-entries", methods=["GET"])
@login_required
def list_kpi_entries():
    """Entries, summary and period comparison for a restaurant and period."""
    restaurant_id = _restaurant_id()
    view = request.args.get("view", "month")
    key = request.args.get("period") or date.today().strftime("%Y-%m")

    try:
        start, end = period_date_range(view, key)
        prev_start, prev_end = period_date_range(view, previous_period(view, key))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        entries = get_kpi_entries(restaurant_id, start, end)
        previous = get_kpi_entries(restaurant_id, prev_start, prev_end)
    except StorageError as e:
        logger.error("KPI entries unavailable: %s", e)
        return jsonify({"error": str(e)}), 503

    current_summary = summarize(entries)
    body = {
        "restaurant_id": restaurant_id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "entries": [e.to_dict() for e in entries],
        "summary": asdict(current_summary),
        "delivery": asdict(delivery_summary(entries)),
        "comparison": asdict(compute_period_comparison(current_summary, summarize(previous))),
    }
    if not entries:
        body["message"] = NO_ENTRIES_MESSAGE
    return jsonify(body)


# ─────────────────────────────────────────────────────────────
# RUN
# ─────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Create tables if needed
    logger.info("Initializing Database...")
    init_db()

    port = int(os.environ.get("PORT", 5000))
    logger.info("Restaurant KPI ingestion server on http://localhost:%d", port)
    app.run(host="0.0.0.0", port=port, debug=False, use_reloader=False)
