"""
WSGI config for FASTNET project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "fastnet.settings")

application = get_wsgi_application()
