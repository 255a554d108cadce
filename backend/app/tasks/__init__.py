"""
Background Tasks Package

Contains Celery tasks for async processing:
- audit_tasks: crawl setup for started audits
- maintenance_tasks: completion sweep, auto-stop of paused audits, queue janitor
"""

from app.tasks.audit_tasks import *
from app.tasks.maintenance_tasks import *
