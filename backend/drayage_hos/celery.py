"""
Celery configuration for the drayage HOS engine.
"""
import os

from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'drayage_hos.settings')

app = Celery('drayage_hos')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Days drop out of the 7/8-day cycle at home-terminal midnight; sweep hourly
# so every terminal timezone is refreshed shortly after its midnight.
app.conf.beat_schedule = {
    'sweep-cycle-rollover': {
        'task': 'hos_compliance.tasks.sweep_cycle_rollover',
        'schedule': crontab(minute=5),
    },
}

app.conf.timezone = 'UTC'
