"""
Services package - Business logic layer
"""
from onkur.services.email_service import email_service
from onkur.services.notifications import notifier
from onkur.services.audit_service import audit_service
from onkur.services.auth_service import auth_service
from onkur.services.event_service import event_service
from onkur.services.enrollment_service import enrollment_service
from onkur.services.attendance_service import attendance_service
from onkur.services.sponsor_service import sponsor_service
from onkur.services.gallery_service import gallery_service
from onkur.services.analytics_service import analytics_service
from onkur.services.story_service import story_service
from onkur.services.volunteer_service import volunteer_service
from onkur.services.moderation_service import moderation_service
from onkur.services.reminder_service import reminder_service
from onkur.services.export_service import export_service

__all__ = [
    "email_service",
    "notifier",
    "audit_service",
    "auth_service",
    "event_service",
    "enrollment_service",
    "attendance_service",
    "sponsor_service",
    "gallery_service",
    "analytics_service",
    "story_service",
    "volunteer_service",
    "moderation_service",
    "reminder_service",
    "export_service",
]
