"""
Entity lifecycle graphs (project and user status).
"""

from .transitions import Lifecycle, PROJECT_LIFECYCLE, ProjectStatus, USER_LIFECYCLE, UserStatus

__all__ = [
    "Lifecycle",
    "PROJECT_LIFECYCLE",
    "ProjectStatus",
    "USER_LIFECYCLE",
    "UserStatus",
]
