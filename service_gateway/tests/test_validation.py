"""
Unit tests for request validation.
"""

import pytest
from pydantic import BaseModel

from service_gateway.app.lifecycle import ProjectStatus, UserStatus
from service_gateway.app.validation import FieldError, SchemaValidator, ValidationSchemas
from service_gateway.app.validation import schemas
from shared.errors import ValidationError


PROJECT_ID = "0b1e6f7a-2c3d-4e5f-8a9b-0c1d2e3f4a5b"


@pytest.fixture
def validator():
    return SchemaValidator()


def errors_of(exc_info):
    return exc_info.value.errors


class TestSchemaValidator:
    """Test cases for SchemaValidator."""

    def test_aggregates_body_and_query_errors_in_order(self, validator):
        class Body(BaseModel):
            name: schemas.ProjectName

        class Query(BaseModel):
            page: schemas.Page = 1
            limit: schemas.Limit = 10

        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                ValidationSchemas(body=Body, query=Query),
                body={"name": "ab"},
                query={"page": "0", "limit": "500"},
            )

        assert errors_of(exc_info) == [
            "body.name: Project name must be at least 3 characters",
            "query.page: Page must be greater than 0",
            "query.limit: Limit must be between 1 and 100",
        ]
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.status_code == 400

    def test_facet_without_schema_is_untouched(self, validator):
        result = validator.validate(
            schemas.CREATE_PROJECT,
            body={"name": "  Wind Park  "},
            query={"anything": "goes"},
        )

        assert result.body.name == "Wind Park"
        assert result.query == {"anything": "goes"}

    def test_missing_facet_validated_as_empty(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.LOGIN, body=None)

        assert errors_of(exc_info) == ["body.email: Field required", "body.password: Field required"]

    def test_facet_level_error_has_no_path(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.UPDATE_PROJECT, params={"id": PROJECT_ID}, body={})

        assert errors_of(exc_info) == ["body: At least one field (name or status) must be provided"]

    def test_params_errors_reported_after_body(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                schemas.UPDATE_USER_STATUS,
                params={"id": "not-a-uuid"},
                body={"status": "banned"},
            )

        assert errors_of(exc_info) == [
            "body.status: Status must be either active or inactive",
            "params.id: Invalid UUID format",
        ]

    def test_undecodable_body_still_checks_params(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(
                schemas.UPDATE_PROJECT,
                params={"id": "not-a-uuid"},
                body_error="Malformed JSON body",
            )

        assert errors_of(exc_info) == [
            "body: Malformed JSON body",
            "params.id: Invalid UUID format",
        ]

    def test_body_error_ignored_without_body_schema(self, validator):
        result = validator.validate(schemas.GET_PROJECT, params={"id": PROJECT_ID},
                                    body_error="Malformed JSON body")
        assert result.params.id == PROJECT_ID

    def test_field_error_rendering(self):
        assert str(FieldError("body", "email", "Invalid email format")) == "body.email: Invalid email format"
        assert str(FieldError("query", "", "bad")) == "query: bad"


class TestSchemas:
    """Test cases for the route schemas."""

    def test_login_valid(self, validator):
        result = validator.validate(schemas.LOGIN, body={"email": "a@example.com", "password": "secret"})
        assert result.body.email == "a@example.com"

    def test_login_invalid_email_and_empty_password(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.LOGIN, body={"email": "nope", "password": ""})

        assert errors_of(exc_info) == [
            "body.email: Invalid email format",
            "body.password: Password is required",
        ]

    def test_list_query_defaults(self, validator):
        result = validator.validate(schemas.LIST_PROJECTS, query={})

        assert result.query.page == 1
        assert result.query.limit == 10
        assert result.query.status is None

    def test_list_query_coerces_strings(self, validator):
        result = validator.validate(
            schemas.LIST_PROJECTS,
            query={"page": "3", "limit": "100", "status": "active"},
        )

        assert result.query.page == 3
        assert result.query.limit == 100
        assert result.query.status is ProjectStatus.ACTIVE

    def test_non_numeric_page(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.LIST_PROJECTS, query={"page": "abc"})
        assert errors_of(exc_info) == ["query.page: Page must be greater than 0"]

    def test_project_name_too_long(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.CREATE_PROJECT, body={"name": "x" * 101})
        assert errors_of(exc_info) == ["body.name: Project name cannot exceed 100 characters"]

    def test_update_project_status_only(self, validator):
        result = validator.validate(
            schemas.UPDATE_PROJECT,
            params={"id": PROJECT_ID},
            body={"status": "completed"},
        )

        assert result.params.id == PROJECT_ID
        assert result.body.status is ProjectStatus.COMPLETED
        assert result.body.name is None

    def test_user_status_enum(self, validator):
        result = validator.validate(
            schemas.UPDATE_USER_STATUS,
            params={"id": PROJECT_ID},
            body={"status": "inactive"},
        )
        assert result.body.status is UserStatus.INACTIVE

    def test_fractional_page_rejected(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.LIST_PROJECTS, query={"page": "1.5"})
        assert errors_of(exc_info) == ["query.page: Page must be greater than 0"]

    def test_create_user(self, validator):
        result = validator.validate(
            schemas.CREATE_USER,
            body={"name": " Grace Hopper ", "email": "grace@example.com", "profile_id": PROJECT_ID},
        )
        assert result.body.name == "Grace Hopper"

    def test_create_user_errors(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.CREATE_USER, body={"name": "G", "email": "grace", "profile_id": "1"})

        assert errors_of(exc_info) == [
            "body.name: Name must be at least 2 characters",
            "body.email: Invalid email format",
            "body.profile_id: Invalid UUID format",
        ]

    def test_change_password_uses_camel_case_field(self, validator):
        result = validator.validate(
            schemas.CHANGE_PASSWORD,
            body={"email": "grace@example.com", "newPassword": "correct-horse"},
        )
        assert result.body.new_password == "correct-horse"

    def test_change_password_too_short(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.CHANGE_PASSWORD, body={"email": "grace@example.com", "newPassword": "short"})
        assert errors_of(exc_info) == ["body.newPassword: Password must be at least 8 characters"]

    def test_check_sync_requires_email(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(schemas.CHECK_SYNC, body={})
        assert errors_of(exc_info) == ["body.email: Field required"]
