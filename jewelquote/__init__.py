"""Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from jewelquote.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Sentry error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Error Handlers
    from jewelquote.exceptions import QuoteAppError

    @app.errorhandler(QuoteAppError)
    def handle_app_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"QuoteAppError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"QuoteAppError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException) and error.code and error.code < 500:
            return jsonify({'status': 'error', 'message': error.description}), error.code

        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok', 'business': app.config.get('BUSINESS_NAME')})

    # Register blueprints
    from jewelquote.blueprints.quotes import quotes_bp
    from jewelquote.blueprints.customers import customers_bp
    from jewelquote.blueprints.settings import settings_bp
    from jewelquote.blueprints.catalog import catalog_bp

    app.register_blueprint(quotes_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(catalog_bp)

    # Register CLI commands
    from jewelquote.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
