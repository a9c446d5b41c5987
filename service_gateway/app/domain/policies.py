"""
Per-route gate policies.

Auth endpoints limit by address before any token work; project endpoints
limit per user after authentication; admin endpoints limit after both the
token and the role check.
"""

from ..auth import Role
from ..validation import schemas
from .pipeline import GatePolicy, LimitPosition


HEALTH = GatePolicy(
    "health",
    tier="health",
    authenticate=False,
    limit_position=LimitPosition.BEFORE_AUTH,
)

LOGIN = GatePolicy(
    "auth.login",
    tier="auth",
    schemas=schemas.LOGIN,
    authenticate=False,
    limit_position=LimitPosition.BEFORE_AUTH,
)

ME = GatePolicy("auth.me")

VALIDATE_TOKEN = GatePolicy("auth.validate")

CREATE_USER = GatePolicy(
    "auth.create_user",
    tier="admin",
    roles=(Role.ADMIN,),
    schemas=schemas.CREATE_USER,
)

UPDATE_USER_STATUS = GatePolicy(
    "auth.update_user_status",
    tier="admin",
    roles=(Role.ADMIN,),
    schemas=schemas.UPDATE_USER_STATUS,
)

CHANGE_PASSWORD = GatePolicy(
    "auth.change_password",
    tier="admin",
    roles=(Role.ADMIN,),
    schemas=schemas.CHANGE_PASSWORD,
)

CHECK_SYNC = GatePolicy(
    "auth.check_sync",
    tier="admin",
    roles=(Role.ADMIN,),
    schemas=schemas.CHECK_SYNC,
)

CREATE_PROJECT = GatePolicy("projects.create", tier="general", schemas=schemas.CREATE_PROJECT)
LIST_PROJECTS = GatePolicy("projects.list", tier="general", schemas=schemas.LIST_PROJECTS)
GET_PROJECT = GatePolicy("projects.get", tier="general", schemas=schemas.GET_PROJECT)
UPDATE_PROJECT = GatePolicy("projects.update", tier="general", schemas=schemas.UPDATE_PROJECT)
DELETE_PROJECT = GatePolicy("projects.delete", tier="general", schemas=schemas.DELETE_PROJECT)
