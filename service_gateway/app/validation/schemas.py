"""
Declarative request schemas for gated endpoints.

Messages mirror what API clients already display, so constraints raise
``PydanticCustomError`` with fixed wording instead of pydantic's defaults.
"""

import uuid
from enum import Enum
from typing import Annotated, Any, Callable, Optional, Type

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError

from ..lifecycle import ProjectStatus, UserStatus
from .validator import ValidationSchemas


def _check(predicate: Callable[[Any], bool], error_type: str, message: str) -> AfterValidator:
    def validator(value):
        if not predicate(value):
            raise PydanticCustomError(error_type, message)
        return value
    return AfterValidator(validator)


def _email(value: str) -> str:
    try:
        validate_email(value)
    except PydanticCustomError:
        raise PydanticCustomError("email", "Invalid email format") from None
    return value


def _uuid(value: str) -> str:
    try:
        uuid.UUID(value)
    except ValueError:
        raise PydanticCustomError("uuid", "Invalid UUID format") from None
    return value


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _enum(enum_cls: Type[Enum], message: str) -> BeforeValidator:
    def validator(value):
        try:
            return enum_cls(value)
        except ValueError:
            raise PydanticCustomError("enum", message) from None
    return BeforeValidator(validator)


def _paging(default: int, valid: Callable[[int], bool], message: str) -> BeforeValidator:
    """Coerce a query-string number, applying ``default`` when absent or blank."""
    def validator(value):
        if value is None or value == "":
            return default
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise PydanticCustomError("pagination", message) from None
        if not valid(number):
            raise PydanticCustomError("pagination", message)
        return number
    return BeforeValidator(validator)


Email = Annotated[str, AfterValidator(_email)]
UUIDString = Annotated[str, AfterValidator(_uuid)]
ProjectName = Annotated[
    str,
    BeforeValidator(_strip),
    _check(lambda v: len(v) >= 3, "project_name", "Project name must be at least 3 characters"),
    _check(lambda v: len(v) <= 100, "project_name", "Project name cannot exceed 100 characters"),
]
PersonName = Annotated[
    str,
    BeforeValidator(_strip),
    _check(lambda v: len(v) >= 2, "name", "Name must be at least 2 characters"),
    _check(lambda v: len(v) <= 100, "name", "Name cannot exceed 100 characters"),
]
Password = Annotated[str, _check(lambda v: len(v) >= 8, "password", "Password must be at least 8 characters")]
UserStatusField = Annotated[UserStatus, _enum(UserStatus, "Status must be either active or inactive")]
ProjectStatusField = Annotated[
    ProjectStatus,
    _enum(ProjectStatus, "Project status must be pending, active, completed, or cancelled"),
]
Page = Annotated[int, _paging(1, lambda v: v > 0, "Page must be greater than 0")]
Limit = Annotated[int, _paging(10, lambda v: 0 < v <= 100, "Limit must be between 1 and 100")]


# Auth

class LoginBody(BaseModel):
    email: Email
    password: Annotated[str, _check(lambda v: len(v) > 0, "password", "Password is required")]


class UserIdParams(BaseModel):
    id: UUIDString


class UserStatusBody(BaseModel):
    status: UserStatusField


class CreateUserBody(BaseModel):
    name: PersonName
    email: Email
    profile_id: UUIDString


class ChangePasswordBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Email
    new_password: Password = Field(alias="newPassword")


class CheckSyncBody(BaseModel):
    email: Email


# Projects

class CreateProjectBody(BaseModel):
    name: ProjectName


class ListProjectsQuery(BaseModel):
    status: Optional[ProjectStatusField] = None
    page: Page = 1
    limit: Limit = 10


class ProjectIdParams(BaseModel):
    id: UUIDString


class UpdateProjectBody(BaseModel):
    name: Optional[ProjectName] = None
    status: Optional[ProjectStatusField] = None

    @model_validator(mode="after")
    def _require_change(self):
        if self.name is None and self.status is None:
            raise PydanticCustomError("no_changes", "At least one field (name or status) must be provided")
        return self


LOGIN = ValidationSchemas(body=LoginBody)
CREATE_USER = ValidationSchemas(body=CreateUserBody)
UPDATE_USER_STATUS = ValidationSchemas(params=UserIdParams, body=UserStatusBody)
CHANGE_PASSWORD = ValidationSchemas(body=ChangePasswordBody)
CHECK_SYNC = ValidationSchemas(body=CheckSyncBody)
CREATE_PROJECT = ValidationSchemas(body=CreateProjectBody)
LIST_PROJECTS = ValidationSchemas(query=ListProjectsQuery)
GET_PROJECT = ValidationSchemas(params=ProjectIdParams)
UPDATE_PROJECT = ValidationSchemas(params=ProjectIdParams, body=UpdateProjectBody)
DELETE_PROJECT = ValidationSchemas(params=ProjectIdParams)
