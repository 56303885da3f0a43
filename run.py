"""
Development server: python run.py
"""
import logging
import os

from clinicdesk import create_app

app = create_app()

if __name__ == '__main__':
    host = os.getenv('FLASK_HOST', '127.0.0.1')
    port = int(os.getenv('FLASK_PORT', 5000))
    env = os.getenv('FLASK_ENV', 'development')

    logging.getLogger(__name__).info("Starting ClinicDesk API on %s:%s (%s)", host, port, env)
    app.run(host=host, port=port, debug=env == 'development', threaded=True)
