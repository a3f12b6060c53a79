import threading
import time
from typing import Optional
from urllib.parse import urlsplit

from flask import Flask, render_template_string, request, jsonify

from config import Settings, check_settings, load_settings
from logger import setup_logging
from verifier import ReCaptchaVerifier
from widget import ReCaptchaWidget

FIELD_NAME = "recaptcha_token"

PAGE = """<!doctype html>
<html>
<head><title>Protected form</title></head>
<body>
  {% if verdict %}<p id="verdict">{{ verdict }}</p>{% endif %}
  <form method="post" action="{{ url_for('submit') }}">
    <input type="text" name="name" placeholder="Your name" value="{{ name }}">
    {{ widget }}
    <button type="submit">Send</button>
  </form>
</body>
</html>
"""


def _hostname() -> str:
    # siteverify reports the bare hostname, without port
    return urlsplit(request.host_url).hostname or ""


def create_app(settings: Optional[Settings] = None, preloading: bool = False) -> Flask:
    """Flask app with a reCAPTCHA-protected form; fails fast on missing keys."""
    settings = settings or load_settings(require_site_key=True)
    check_settings(settings, require_site_key=True)
    setup_logging(settings.log_level)

    verifier = ReCaptchaVerifier(settings)
    widget = ReCaptchaWidget(settings.site_key, FIELD_NAME, action=settings.action, preloading=preloading)

    app = Flask(__name__, template_folder=None, static_folder=None)
    app.extensions["recaptcha"] = verifier

    metrics = dict(total=0, passed=0, failed=0, last_ms=0, last=None, last_ts=0)
    lock = threading.Lock()

    def record(success: bool, t0: float, last: Optional[str] = None):
        ms = int((time.time() - t0) * 1000)
        with lock:
            metrics["total"] += 1
            metrics["last_ms"] = ms
            metrics["last"] = last or ("PASS" if success else "FAIL")
            metrics["last_ts"] = int(time.time() * 1000)
            if success: metrics["passed"] += 1
            else: metrics["failed"] += 1

    def check(token: Optional[str]):
        t0 = time.time()
        verdict = verifier.verify_token(token, hostname=_hostname(), remote_ip=request.remote_addr)
        record(verdict["accepted"], t0)
        return verdict

    @app.get("/")
    def index():
        return render_template_string(PAGE, widget=widget, verdict=None, name="")

    @app.post("/submit")
    def submit():
        verdict = check(request.form.get(FIELD_NAME))
        if verdict["accepted"]:
            return render_template_string(PAGE, widget=widget, verdict="Thanks, form accepted.", name="")
        return render_template_string(PAGE, widget=widget, verdict=verifier.message,
                                      name=request.form.get("name", "")), 400

    @app.post("/api/verify")
    def api_verify():
        data = request.get_json(silent=True) or {}
        token = (data.get("token") or "").strip()
        if not token:
            record(False, time.time(), last="MISSING")
            return jsonify({"ok": False, "success": False, "message": "Missing token"}), 400
        verdict = check(token)
        return jsonify({
            "ok": True,
            "success": verdict["accepted"],
            "message": "" if verdict["accepted"] else verifier.message,
        })

    @app.get("/metrics")
    def get_metrics():
        with lock:
            return jsonify(metrics)

    @app.post("/reset_metrics")
    def reset():
        with lock:
            metrics.update(total=0, passed=0, failed=0, last_ms=0, last=None, last_ts=0)
        return jsonify({"ok": True})

    return app


if __name__ == "__main__":
    s = load_settings(require_site_key=True)
    create_app(s).run(host=s.host, port=s.port)
