"""
WSGI entry point (gunicorn wsgi:application)
Defaults to the production config; ProductionConfig refuses to start
without real SECRET_KEY and JWT_SECRET_KEY values.
"""
import os

from clinicdesk import create_app

application = app = create_app(os.getenv('FLASK_ENV', 'production'))
