"""Unit tests for model schema normalization."""

import pytest

from sqlbridge.common.exceptions import QueryBuilderValidationError
from sqlbridge.constants.sql import FilterType
from sqlbridge.models import Model
from sqlbridge.query_builder.schema import (
    AliasedField,
    FlagDefinition,
    ModelSchema,
    PlainField,
    TypedField,
)


class TestFieldNormalization:

    def test_definition_shapes(self):
        schema = ModelSchema(
            fields={
                "id": True,
                "title": "name",
                "total": {"field": "amount", "alias": "totalAmount"},
                "email": {"type": "search"},
                "ownerName": {"field": "name", "table": "owners"},
            }
        )

        assert schema.get_field("id") == PlainField(name="id", column="id")
        assert schema.get_field("title") == PlainField(name="title", column="name")
        assert schema.get_field("total") == AliasedField(name="total", column="amount", alias="totalAmount")
        assert schema.get_field("email") == TypedField(
            name="email", column="email", default_filter_type=FilterType.SEARCH
        )
        assert schema.get_field("ownerName").table == "owners"

    def test_only_bare_names_are_snake_cased(self):
        schema = ModelSchema(fields={"skuID": True, "url": "URL", "sku": {"field": "SKU"}, "ownerId": {}})

        assert schema.get_field("skuID").column == "sku_id"
        assert schema.get_field("ownerId").column == "owner_id"
        assert schema.get_field("url").column == "URL"
        assert schema.get_field("sku").column == "SKU"

    def test_output_alias(self):
        schema = ModelSchema(fields={"id": True, "total": {"field": "amount", "alias": "sum"}})

        assert schema.get_field("id").output_alias == "id"
        assert schema.get_field("total").output_alias == "sum"

    @pytest.mark.parametrize(
        "definition",
        [False, 1, "", {"field": ""}, {"type": "fuzzy"}, {"alias": 3}],
    )
    def test_invalid_definitions_fail(self, definition):
        with pytest.raises(QueryBuilderValidationError):
            ModelSchema(fields={"id": definition})

    def test_resolve_unknown_field_fails(self):
        schema = ModelSchema(fields={"id": True})

        with pytest.raises(QueryBuilderValidationError, match="Unknown field 'name' in order"):
            schema.resolve_field("name", "order")


class TestFlags:

    def test_flag_key_is_the_bitmask_column(self):
        schema = ModelSchema(
            fields={"state": "status", "isActive": True, "error": True},
            flags={"state_mask": {"isActive": 1, "error": 4}},
        )

        assert schema.get_flag("isActive") == FlagDefinition(name="isActive", column="state_mask", bit=1)
        assert schema.get_flag("error").bit == 4
        assert schema.get_flag("state_mask") is None

    def test_flag_column_need_not_be_a_field(self):
        schema = ModelSchema(fields={"id": True, "isActive": True}, flags={"status": {"isActive": 1}})

        assert schema.get_flag("isActive").column == "status"
        assert schema.get_field("status") is None

    def test_flag_column_declared_on_a_join_keeps_its_table(self):
        schema = ModelSchema(
            fields={"flags": {"table": "owners"}, "isVerified": True},
            flags={"flags": {"isVerified": 2}},
        )

        assert schema.get_flag("isVerified") == FlagDefinition(
            name="isVerified", column="flags", bit=2, table="owners"
        )

    def test_flag_name_must_be_a_field(self):
        with pytest.raises(QueryBuilderValidationError, match="Flag isActive must be declared"):
            ModelSchema(fields={"status": True}, flags={"status": {"isActive": 1}})

    @pytest.mark.parametrize("bit", [0, -2, True, "1"])
    def test_invalid_bits_fail(self, bit):
        with pytest.raises(QueryBuilderValidationError, match="Invalid bit"):
            ModelSchema(fields={"status": True, "isActive": True}, flags={"status": {"isActive": bit}})


class TestFromModel:

    def test_schema_is_cached_per_class(self):
        class Product(Model):
            table = "products"
            fields = {"id": True}

        assert ModelSchema.from_model(Product()) is ModelSchema.from_model(Product())

    def test_instance_override_is_not_cached(self):
        class Product(Model):
            table = "products"
            fields = {"id": True}

        product = Product()
        product.fields = {"id": True, "name": True}

        assert ModelSchema.from_model(product).get_field("name") is not None
        assert ModelSchema.from_model(Product()).get_field("name") is None
