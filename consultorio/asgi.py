"""
ASGI config for consultorio project.

Only HTTP is served; every handler runs synchronously inside Django's
sync-to-async bridge.
"""
import os

from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "consultorio.settings")

application = get_asgi_application()
