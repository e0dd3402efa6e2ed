"""
WSGI entry point for the English trainer API.

Point the host's WSGI configuration (gunicorn ``wsgi:application``,
PythonAnywhere's WSGI file, ...) at this module. Settings come from the
environment, see ``config.Config``; at minimum set ``DATABASE_URL`` and
``SECRET_KEY`` in production.
"""
import os
import sys

# Hosts that import this file by path do not put the project on sys.path
project_dir = os.path.dirname(os.path.abspath(__file__))
if project_dir not in sys.path:
    sys.path.insert(0, project_dir)

from app import app as application  # noqa: E402,F401
