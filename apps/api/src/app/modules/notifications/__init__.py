"""
Notifications Module

Multi-channel notifications (in-app database inbox, e-mail, telegram) and
the inbox endpoints:
- GET /notifications
- PATCH /notifications/read
- DELETE /notifications
"""

from .router import router
from .service import NotificationService

__all__ = ["router", "NotificationService"]
