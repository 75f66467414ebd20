"""
Unit tests for schema validation.

Tests cover:
- JSONSchemaValidator error collection and defaults
- EntitySchema create/update rule selection
- Invalid schema definitions
"""

import pytest

from entstore.errors import SchemaError, ValidationError
from entstore.schema import EntitySchema, JSONSchemaValidator

PERSON = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "age": {"type": "integer", "minimum": 0},
        "status": {"type": "string", "default": "active"},
        "address": {
            "type": "object",
            "properties": {
                "state": {"type": "string"},
                "country": {"type": "string", "default": "AU"},
            },
        },
    },
    "required": ["name"],
}


class TestJSONSchemaValidator:
    """Tests for JSONSchemaValidator."""

    @pytest.fixture
    def validator(self):
        """Create validator for the person schema."""
        return JSONSchemaValidator(PERSON)

    @pytest.mark.asyncio
    async def test_valid_data_returned(self, validator):
        """Valid data is returned as the same object."""
        data = {"name": "ada"}

        result = await validator.validate(data)

        assert result is data

    @pytest.mark.asyncio
    async def test_defaults_populated_in_place(self, validator):
        """Declared defaults are written into the data, including nested objects."""
        data = {"name": "ada", "address": {"state": "NSW"}}

        await validator.validate(data)

        assert data["status"] == "active"
        assert data["address"] == {"state": "NSW", "country": "AU"}

    @pytest.mark.asyncio
    async def test_existing_values_not_overwritten(self, validator):
        """Defaults only fill missing properties."""
        data = {"name": "ada", "status": "inactive"}

        await validator.validate(data)

        assert data["status"] == "inactive"

    @pytest.mark.asyncio
    async def test_all_errors_collected(self, validator):
        """Every violation is reported, not only the first."""
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate({"age": -1})

        errors = exc_info.value.data
        assert len(errors) == 2
        assert {e["keyword"] for e in errors} == {"required", "minimum"}

        minimum = next(e for e in errors if e["keyword"] == "minimum")
        assert minimum["path"] == "/age"
        assert minimum["params"] == {"minimum": 0}

    @pytest.mark.asyncio
    async def test_required_reports_each_missing_property(self):
        """One record per missing required property."""
        validator = JSONSchemaValidator({"type": "object", "required": ["a", "b"]})

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate({})

        missing = [e["params"]["missingProperty"] for e in exc_info.value.data]
        assert missing == ["a", "b"]

    @pytest.mark.asyncio
    async def test_required_satisfied_by_default(self):
        """A default fills a required property even when listed before properties."""
        validator = JSONSchemaValidator({
            "type": "object",
            "required": ["status"],
            "properties": {"status": {"type": "string", "default": "new"}},
        })

        data = await validator.validate({})

        assert data == {"status": "new"}

    @pytest.mark.asyncio
    async def test_validation_error_shape(self, validator):
        """ValidationError carries code 422 and the validation_error type."""
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate({"name": 1})

        error = exc_info.value
        assert error.code == 422
        assert error.type == "validation_error"
        assert error.message == "Parameters validation error!"
        assert error.data[0]["keyword"] == "type"
        assert error.data[0]["path"] == "/name"
        assert error.data[0]["params"] == {"type": "string"}

    def test_invalid_schema_rejected(self):
        """A malformed JSON schema raises SchemaError at construction."""
        with pytest.raises(SchemaError):
            JSONSchemaValidator({"type": "not-a-type"})


class TestEntitySchema:
    """Tests for EntitySchema."""

    @pytest.fixture
    def schema(self):
        """Create entity schema with default validators."""
        return EntitySchema(name="person", entity=PERSON)

    @pytest.mark.asyncio
    async def test_create_uses_entity_rules(self, schema):
        """Create validation defaults to the entity schema."""
        with pytest.raises(ValidationError):
            await schema.validate({"age": 3})

    @pytest.mark.asyncio
    async def test_update_permissive_by_default(self, schema):
        """Update validation accepts partial data when no onUpdate rules are set."""
        data = {"age": 3}

        assert await schema.validate(data, is_update=True) is data

    @pytest.mark.asyncio
    async def test_custom_update_rules(self):
        """onUpdate rules apply to updates only."""
        schema = EntitySchema(
            name="person",
            entity=PERSON,
            on_update={"type": "object", "properties": {"age": {"type": "integer"}}},
        )

        with pytest.raises(ValidationError):
            await schema.validate({"age": "old"}, is_update=True)

        await schema.validate({"name": "ada", "age": 3})

    @pytest.mark.asyncio
    async def test_custom_create_rules(self):
        """onCreate rules replace the entity rules for inserts."""
        schema = EntitySchema(
            name="person",
            entity=PERSON,
            on_create={"type": "object", "required": ["name", "age"]},
        )

        with pytest.raises(ValidationError):
            await schema.validate_create({"name": "ada"})

        # entity rules are unchanged
        await schema.validate_entity({"name": "ada"})

    def test_from_dict(self):
        """from_dict reads the validators block."""
        schema = EntitySchema.from_dict({
            "name": "person",
            "entity": PERSON,
            "validators": {"onUpdate": {"type": "object"}},
        })

        assert schema.name == "person"
        assert schema.create_schema == PERSON
        assert schema.update_schema == {"type": "object"}

    def test_schema_copied(self):
        """Later changes to the caller's dict do not affect the schema."""
        entity = {"type": "object", "properties": {}}
        schema = EntitySchema(name="thing", entity=entity)

        entity["required"] = ["x"]

        assert "required" not in schema.entity_schema

    def test_empty_name_rejected(self):
        """Schema name is required."""
        with pytest.raises(ValueError):
            EntitySchema(name="", entity=PERSON)
