from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    from .config.settings import load_settings
    app.config.update(load_settings())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    app.logger.setLevel(getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .routes.iam import iam_bp
    from .routes.platform import platform_bp
    from .routes.cash import cash_bp
    from .routes.fx import fx_bp
    from .routes.exchange import clx_bp
    from .routes.contacts import contacts_bp
    from .routes.auto import auto_bp
    from .routes.stock import stock_bp
    from .routes.hr import hr_bp
    from .routes.assets import assets_bp
    from .routes.finance import fin_bp
    from .routes.reports import rpt_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(platform_bp, url_prefix='/platform')
    app.register_blueprint(cash_bp, url_prefix='/cash')
    app.register_blueprint(fx_bp, url_prefix='/fx')
    app.register_blueprint(clx_bp, url_prefix='/exchange')
    app.register_blueprint(contacts_bp, url_prefix='/contacts')
    app.register_blueprint(auto_bp, url_prefix='/auto')
    app.register_blueprint(stock_bp, url_prefix='/stock')
    app.register_blueprint(hr_bp, url_prefix='/hr')
    app.register_blueprint(assets_bp, url_prefix='/assets')
    app.register_blueprint(fin_bp, url_prefix='/finance')
    app.register_blueprint(rpt_bp, url_prefix='/reports')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape.
    # Any failed request discards the session's pending writes.
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if SessionLocal is not None:
            SessionLocal.rollback()
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            code = getattr(e, 'error_code', None)
            if code:
                payload['error']['code'] = code
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    from .openapi_builder import build_openapi_spec

    @app.route('/openapi.json')
    def openapi_spec():
        return build_openapi_spec()

    @app.route('/docs')
    def docs_index():
        return (
            "<!DOCTYPE html><html><head><title>Mutka ERP API</title>"
            "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
            "</head><body><redoc spec-url='/openapi.json'></redoc>"
            "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
            "</body></html>"
        )

    return app


def get_db():
    return SessionLocal()
