#!/usr/bin/env python
"""
Management script for familyhub.

Run the development server with ``python manage.py`` or use the Flask CLI
for database migrations: ``FLASK_APP=manage.py flask db upgrade``.
"""

from familyhub.app import create_app

# Create Flask app
app = create_app()

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=8099, debug=app.config['DEBUG'])
