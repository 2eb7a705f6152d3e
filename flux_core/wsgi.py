"""
WSGI config for FLUX.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'flux_core.settings')

application = get_wsgi_application()
