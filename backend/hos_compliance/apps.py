"""
HOS Compliance app configuration.
"""

from django.apps import AppConfig


class HosComplianceConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'hos_compliance'
    verbose_name = 'HOS Compliance'
