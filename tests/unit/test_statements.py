"""Unit tests for INSERT/UPDATE/DELETE statement assembly."""

import pytest

from sqlbridge.common.exceptions import ErrorCode, SQLBridgeError
from sqlbridge.constants.sql import NOW
from sqlbridge.query_builder.nodes import ColumnRef, Comparison, JoinClause
from sqlbridge.query_builder.statements import (
    build_delete,
    build_insert,
    build_multi_insert,
    build_show_columns,
    build_update,
)


class TestInsert:

    def test_plain_insert(self):
        statement = build_insert("shop.orders", {"name": "a", "status": 1})

        assert statement.sql == "INSERT INTO `shop`.`orders` (`name`, `status`) VALUES (:name, :status)"
        assert dict(statement.parameters) == {"name": "a", "status": 1}

    def test_upsert_skips_key_and_creation_date(self):
        statement = build_insert(
            "orders",
            {"id": 4, "name": "a", "date_created": 100},
            upsert=True,
            has_primary_key=True,
        )

        assert statement.sql == (
            "INSERT INTO `orders` (`id`, `name`, `date_created`) VALUES (:id, :name, :date_created) "
            "ON DUPLICATE KEY UPDATE `id` = LAST_INSERT_ID(`id`), `name` = VALUES(`name`)"
        )

    def test_columns_are_quoted_verbatim(self):
        statement = build_insert("orders", {"legacyName": "a"})

        assert "(`legacyName`)" in statement.sql

    def test_mixed_case_table_and_database_are_kept(self):
        statement = build_insert("ShopDB.OrderItems", {"URL": "https://example.test"})

        assert statement.sql == "INSERT INTO `ShopDB`.`OrderItems` (`URL`) VALUES (:url)"
        assert dict(statement.parameters) == {"url": "https://example.test"}


class TestMultiInsert:

    def test_rows_share_one_statement(self):
        statement = build_multi_insert(
            "items",
            [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}],
            has_primary_key=True,
        )

        assert statement.sql == (
            "INSERT INTO `items` (`id`, `name`) VALUES (:id_0, :name_0), (:id_1, :name_1) "
            "ON DUPLICATE KEY UPDATE `id` = LAST_INSERT_ID(`id`), `name` = VALUES(`name`)"
        )
        assert dict(statement.parameters) == {"id_0": 1, "name_0": "a", "id_1": 2, "name_1": "b"}

    def test_missing_column_uses_default(self):
        statement = build_multi_insert("items", [{"name": "a", "id": 1}, {"id": 2}])

        assert "VALUES (:id_0, :name_0), (:id_1, DEFAULT)" in statement.sql
        assert "name_1" not in statement.parameters


class TestUpdate:

    def test_now_on_datetime_column(self):
        statement = build_update(
            "users",
            {"name": "b", "date_modified": NOW},
            {"id": [1, None]},
            datetime_columns=["date_modified"],
        )

        assert statement.sql == (
            "UPDATE `users` SET `name` = :set_name, `date_modified` = NOW() "
            "WHERE `id` IS NULL OR `id` IN (:id)"
        )
        assert dict(statement.parameters) == {"set_name": "b", "id": 1}

    def test_true_on_non_datetime_column_is_bound(self):
        statement = build_update("users", {"active": True})

        assert statement.sql == "UPDATE `users` SET `active` = :set_active"
        assert statement.parameters["set_active"] is True

    def test_where_conditions_are_anded(self):
        statement = build_update("users", {"name": "b"}, {"id": 3, "status": [1, 2]})

        assert statement.sql.endswith("WHERE `id` = :id AND `status` IN (:status, :status_1)")

    def test_empty_filter_list_is_invalid_data(self):
        with pytest.raises(SQLBridgeError) as exc_info:
            build_update("users", {"name": "b"}, {"id": []})
        assert exc_info.value.error_code is ErrorCode.INVALID_DATA


class TestDelete:

    def test_delete_with_filters(self):
        statement = build_delete("users", {"id": 3, "deleted_at": None})

        assert statement.sql == "DELETE FROM `users` WHERE `id` = :id AND `deleted_at` IS NULL"
        assert dict(statement.parameters) == {"id": 3}

    def test_delete_with_join_qualifies_base_table(self):
        join = JoinClause(
            keyword="LEFT JOIN",
            table="shop.customers",
            alias="c",
            conditions=(Comparison(ColumnRef("t", "customer_id"), "=", ColumnRef("c", "id")),),
        )

        statement = build_delete("shop.orders", {"status": 1}, (join,))

        assert statement.sql == (
            "DELETE `t` FROM `shop`.`orders` AS `t` "
            "LEFT JOIN `shop`.`customers` AS `c` ON `t`.`customer_id` = `c`.`id` "
            "WHERE `t`.`status` = :status"
        )


def test_show_columns():
    statement = build_show_columns("shop.orders")

    assert statement.sql == "SHOW COLUMNS FROM `shop`.`orders`"
    assert dict(statement.parameters) == {}
