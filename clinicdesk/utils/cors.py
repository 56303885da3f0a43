"""
CORS Configuration
Centralized CORS settings for the application
"""

CORS_CONFIG = {
    "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    "allow_headers": [
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Accept",
        "Origin",
    ],
    "expose_headers": [
        "Content-Type",
        "Authorization",
    ],
    "max_age": 86400,  # 24 hours
}


def _origins(app):
    raw = app.config.get('CORS_ORIGINS', '*') or '*'
    if raw.strip() == '*':
        return '*'
    return [origin.strip() for origin in raw.split(',') if origin.strip()]


def init_cors(app):
    """
    Initialize CORS for the API blueprints
    """
    from flask_cors import CORS

    origins = _origins(app)
    # credentials cannot be combined with a wildcard origin
    CORS(app,
         resources={r"/api/*": {"origins": origins}},
         methods=CORS_CONFIG["methods"],
         allow_headers=CORS_CONFIG["allow_headers"],
         expose_headers=CORS_CONFIG["expose_headers"],
         supports_credentials=origins != '*',
         max_age=CORS_CONFIG["max_age"])

    app.logger.info("CORS enabled for %s", 'all origins' if origins == '*' else ', '.join(origins))
