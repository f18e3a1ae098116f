"""
WSGI config for the drayage HOS engine.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'drayage_hos.settings')

application = get_wsgi_application()
