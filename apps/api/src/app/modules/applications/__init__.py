"""
Applications module - Students and their admission applications.
"""

from app.modules.applications.models import (
    Application,
    ApplicationStatus,
    Student,
    StudentRegistration,
)

__all__ = ["Application", "ApplicationStatus", "Student", "StudentRegistration"]
