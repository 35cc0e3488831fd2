"""
Flask Web Application for the form engine

Routes every form page through the session core:
    load model -> resolve (dispatch or redirect) -> page handler

Responses are JSON page documents (rendering is out of scope); redirects
are real HTTP redirects so the post-redirect-get flow works in a browser
or a test client.
"""

import logging
import uuid
from dataclasses import asdict
from typing import Optional

from flask import Flask, jsonify, redirect, request, session

from form_engine.config import EngineConfig, SessionStrategy
from form_engine.contracts import FormRequest
from form_engine.engine import FormEngine
from form_engine.errors import FormEngineError
from form_engine.results import PageView, Redirect
from form_engine.utils.helpers import proceed, redirect_path

logger = logging.getLogger(__name__)

STATE_CONVERTER = "any(draft, live)"


def get_engine(app: Flask) -> FormEngine:
    return app.extensions["form_engine"]


def _session_id() -> str:
    """Cookie session id, created on first visit."""
    if "id" not in session:
        session["id"] = uuid.uuid4().hex
    return session["id"]


def _payload() -> dict:
    """Form body with single values unwrapped, multi-values (checkboxes) as lists."""
    payload = {}
    for key, values in request.form.to_dict(flat=False).items():
        payload[key] = values[0] if len(values) == 1 else values
    if request.is_json:
        payload.update(request.get_json(silent=True) or {})
    return payload


def _build_request(slug: str, path: str = "", state: Optional[str] = None) -> FormRequest:
    params = {"slug": slug, "path": path}
    if state:
        params["state"] = state

    method = request.method.lower()

    return FormRequest(
        session_id=_session_id(),
        params=params,
        query=request.args.to_dict(),
        method=method,
        payload=_payload() if method == "post" else None
    )


def _to_response(result):
    if isinstance(result, Redirect):
        return redirect(result.location, code=result.status_code)

    if isinstance(result, PageView):
        return jsonify({
            'success': True,
            'page': asdict(result)
        })

    return result


def create_app(config: Optional[EngineConfig] = None,
               strategy: Optional[SessionStrategy] = None,
               engine: Optional[FormEngine] = None) -> Flask:
    """
    Application factory.

    Args:
        config: Engine config (default: from environment)
        strategy: Save-and-resume hooks (default: none, cache-only)
        engine: Pre-built engine (tests); overrides config/strategy

    Returns:
        Flask app
    """
    if engine is None:
        config = config or EngineConfig.from_env()
        engine = FormEngine(config, strategy or SessionStrategy())
    config = engine.config

    logging.basicConfig(
        level=config.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.secret_key
    app.extensions["form_engine"] = engine

    prefix = config.route_prefix

    @app.errorhandler(FormEngineError)
    def handle_form_engine_error(error: FormEngineError):
        """Answer core errors with their status code"""
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error.message}")
        else:
            logger.warning(f"{type(error).__name__}: {error.message}")

        return jsonify({
            'success': False,
            'error': error.message
        }), error.status_code

    def start(slug, state=None):
        """Redirect a bare form URL to its start page"""
        form_request = _build_request(slug, state=state)
        engine.load_model(form_request)
        return _to_response(engine.resolver.dispatch(form_request))

    def exit_page(slug, state=None):
        """Progress saved page"""
        form_request = _build_request(slug, state=state)
        engine.load_model(form_request)

        return jsonify({
            'success': True,
            'pageTitle': 'Your progress has been saved',
            'returnUrl': form_request.query.get('returnUrl')
        })

    def page(slug, path, state=None):
        """GET or POST a form page"""
        form_request = _build_request(slug, path, state)
        engine.load_model(form_request)

        if form_request.method == "get":
            def make_handler(form_page, context):
                return form_page.handle_get(form_request, context)
        else:
            def make_handler(form_page, context):
                # Preview link access to a page with nothing to submit: back to GET
                if context.is_force_access and not form_page.components:
                    return proceed(form_request, redirect_path(form_page.href, form_request.query))
                return form_page.handle_post(form_request, context)

        return _to_response(engine.resolver.resolve(form_request, make_handler))

    preview = f"{prefix}/preview/<{STATE_CONVERTER}:state>"

    app.add_url_rule(f"{prefix}/<slug>", "start", start, methods=["GET"])
    app.add_url_rule(f"{preview}/<slug>", "preview_start", start, methods=["GET"])
    app.add_url_rule(f"{prefix}/<slug>/exit", "exit", exit_page, methods=["GET"])
    app.add_url_rule(f"{preview}/<slug>/exit", "preview_exit", exit_page, methods=["GET"])

    app.add_url_rule(f"{prefix}/<slug>/<path>", "page", page, methods=["GET", "POST"])
    app.add_url_rule(f"{preview}/<slug>/<path>", "preview_page", page, methods=["GET", "POST"])

    logger.info(f"Form routes registered under '{prefix or '/'}'")
    return app


if __name__ == '__main__':
    app = create_app()

    print("\n" + "="*60)
    print("FORM ENGINE - WEB INTERFACE")
    print("="*60)
    print("\nServer starting...")
    print("Open a form at: http://localhost:5000/<form-slug>")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(debug=False, host='0.0.0.0', port=5000)
