"""Unit tests for the MySQL data access facade with a fake pool."""

import pytest
from unittest.mock import AsyncMock, patch

from sqlbridge.api import MySQL
from sqlbridge.common.exceptions import ErrorCode, SQLBridgeError
from sqlbridge.constants.sql import NOW
from sqlbridge.models import Model
from sqlbridge.types.results import ExecutionResult, Totals

NOW_TS = 1700000000


class Item(Model):
    table = "items"
    dbname = "shop"
    fields = {"id": True, "name": True, "status": True, "ownerId": True, "dateModified": True}
    joins = {"owners": {"alias": "o", "on": ["ownerId", "id"]}}
    fields_map = {"name": ["title", "label"]}


class Listing(Model):
    table = "OrderItems"
    dbname = "ShopDB"
    fields = {"id": True, "url": "URL"}
    fields_map = {"SKU": "sku"}


ITEM_COLUMNS = {
    "id": "int(11) unsigned",
    "name": "varchar(50)",
    "status": "tinyint(3)",
    "owner_id": "int(11)",
    "date_created": "int(11)",
    "date_modified": "datetime",
}


class FakePool:
    """Answers SHOW COLUMNS from a fixed definition and records every statement."""

    def __init__(self, columns=None, rows=None, count=0, insert_id=None, affected_rows=1):
        self.columns = ITEM_COLUMNS if columns is None else columns
        self.rows = rows or []
        self.count = count
        self.insert_id = insert_id
        self.affected_rows = affected_rows
        self.statements = []
        self.execute = AsyncMock(side_effect=self._execute)
        self.close = AsyncMock()

    async def _execute(self, sql, placeholders=None):
        if sql.startswith("SHOW COLUMNS"):
            return ExecutionResult(rows=[{"Field": name, "Type": kind} for name, kind in self.columns.items()])

        self.statements.append((sql, dict(placeholders or {})))
        if sql.startswith("SELECT COUNT"):
            return ExecutionResult(rows=[{"count": self.count}])
        if sql.startswith("SELECT"):
            return ExecutionResult(rows=self.rows)
        return ExecutionResult(insert_id=self.insert_id, affected_rows=self.affected_rows)


@pytest.fixture
def pool():
    return FakePool(insert_id=9, affected_rows=2)


@pytest.fixture
def db(pool):
    return MySQL({"host": "db", "database": "shop"}, pool=pool)


@pytest.fixture
def frozen_time():
    with patch("sqlbridge.api.mysql.time.time", return_value=NOW_TS + 0.7):
        yield


class TestConfig:

    def test_non_mapping_config_fails(self):
        with pytest.raises(SQLBridgeError) as exc_info:
            MySQL("mysql://db")
        assert exc_info.value.code == "CONFIG_001"

    def test_invalid_setting_fails(self):
        with pytest.raises(SQLBridgeError) as exc_info:
            MySQL({"port": "not-a-port"})
        assert exc_info.value.error_code is ErrorCode.INVALID_SETTING
        assert "port" in exc_info.value.message


class TestInsert:

    @pytest.mark.asyncio
    async def test_insert_maps_fields_and_stamps_dates(self, db, pool, frozen_time):
        insert_id = await db.insert(Item(), {"title": "Lamp", "status": 1, "color": "red"})

        assert insert_id == 9
        sql, placeholders = pool.statements[0]
        assert sql == (
            "INSERT INTO `shop`.`items` (`name`, `status`, `date_created`, `date_modified`) "
            "VALUES (:name, :status, :date_created, :date_modified)"
        )
        assert placeholders == {
            "name": "Lamp",
            "status": 1,
            "date_created": NOW_TS,
            "date_modified": NOW_TS,
        }

    @pytest.mark.asyncio
    async def test_supplied_creation_date_is_kept(self, db, pool, frozen_time):
        await db.insert(Item(), {"name": "Lamp", "dateCreated": 5})

        assert pool.statements[0][1]["date_created"] == 5

    @pytest.mark.asyncio
    async def test_mixed_case_columns_and_table_are_kept(self):
        pool = FakePool(columns={"id": "int(11)", "URL": "varchar(255)", "SKU": "varchar(20)"}, insert_id=3)
        db = MySQL({"host": "db"}, pool=pool)

        insert_id = await db.insert(Listing(), {"URL": "https://example.test", "sku": "A-1", "note": "x"})

        assert insert_id == 3
        assert pool.statements == [
            (
                "INSERT INTO `ShopDB`.`OrderItems` (`URL`, `SKU`) VALUES (:url, :sku)",
                {"url": "https://example.test", "sku": "A-1"},
            )
        ]

    @pytest.mark.asyncio
    async def test_save_upserts_and_returns_supplied_id(self, pool, frozen_time):
        pool.insert_id = None
        db = MySQL({"host": "db"}, pool=pool)

        item_id = await db.save(Item(), {"id": 4, "name": "Lamp"})

        assert item_id == 4
        assert pool.statements[0][0].endswith(
            "ON DUPLICATE KEY UPDATE `id` = LAST_INSERT_ID(`id`), `name` = VALUES(`name`), "
            "`date_modified` = VALUES(`date_modified`)"
        )

    @pytest.mark.asyncio
    async def test_empty_item_fails_before_any_statement(self, db, pool):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.insert(Item(), {})

        assert exc_info.value.error_code is ErrorCode.EMPTY_FIELDS
        pool.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_item_without_known_columns_fails(self, db, pool):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.insert(Item(), {"color": "red"})

        assert exc_info.value.error_code is ErrorCode.EMPTY_FIELDS
        assert pool.statements == []

    @pytest.mark.asyncio
    async def test_missing_model_fails(self, db):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.insert(None, {"name": "Lamp"})
        assert exc_info.value.error_code is ErrorCode.INVALID_MODEL

    @pytest.mark.asyncio
    async def test_driver_failure_is_insert_scoped(self, db, pool):
        pool.execute.side_effect = RuntimeError("server has gone away")

        with pytest.raises(SQLBridgeError) as exc_info:
            await db.insert(Item(), {"name": "Lamp"})

        error = exc_info.value
        assert error.code == "OPERATION_001"
        assert error.message == "server has gone away"
        assert isinstance(error.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_save_failure_is_save_scoped(self, db, pool):
        pool.execute.side_effect = RuntimeError("deadlock")

        with pytest.raises(SQLBridgeError) as exc_info:
            await db.save(Item(), {"name": "Lamp"})
        assert exc_info.value.error_code is ErrorCode.INVALID_SAVE


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_with_now_and_filters(self, db, pool):
        affected = await db.update(Item(), {"label": "b", "dateModified": NOW}, {"id": 3})

        assert affected == 2
        sql, placeholders = pool.statements[0]
        assert sql == "UPDATE `shop`.`items` SET `name` = :set_name, `date_modified` = NOW() WHERE `id` = :id"
        assert placeholders == {"set_name": "b", "id": 3}

    @pytest.mark.asyncio
    async def test_true_on_datetime_column_is_now(self, db, pool):
        await db.update(Item(), {"dateModified": True})

        assert pool.statements[0][0] == "UPDATE `shop`.`items` SET `date_modified` = NOW()"

    @pytest.mark.asyncio
    async def test_empty_values_fail(self, db):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.update(Item(), {}, {"id": 3})
        assert exc_info.value.error_code is ErrorCode.EMPTY_FIELDS

    @pytest.mark.asyncio
    async def test_filters_without_known_columns_fail(self, db, pool):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.update(Item(), {"name": "b"}, {"color": "red"})

        assert exc_info.value.error_code is ErrorCode.INVALID_DATA
        assert pool.statements == []


class TestGet:

    @pytest.mark.asyncio
    async def test_get_defaults_limit_and_camel_cases_rows(self, db, pool):
        pool.rows = [{"id": 1, "date_modified": 5}]
        model = Item()

        rows = await db.get(model, {"filters": {"id": 1}})

        assert rows == [{"id": 1, "dateModified": 5}]
        assert pool.statements[0] == (
            "SELECT `t`.* FROM `shop`.`items` AS `t` WHERE `t`.`id` = :id LIMIT 500",
            {"id": 1},
        )
        assert model.totals_params == {"filters": {"id": 1}, "limit": 500}
        assert model.last_query_empty is False

    @pytest.mark.asyncio
    async def test_caller_params_are_not_mutated(self, db, pool):
        params = {"filters": {"id": 1}}

        await db.get(Item(), params)

        assert params == {"filters": {"id": 1}}

    @pytest.mark.asyncio
    async def test_totals_variant_keeps_cached_params(self, db, pool):
        model = Item()

        await db.get(model, {"totals": True, "count": True, "fields": False})

        assert model.totals_params is None
        assert pool.statements[0][0] == "SELECT COUNT(*) AS `count` FROM `shop`.`items` AS `t`"

    @pytest.mark.asyncio
    async def test_invalid_descriptor_is_get_scoped(self, db, pool):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.get(Item(), {"fields": ["color"]})

        error = exc_info.value
        assert error.error_code is ErrorCode.INVALID_GET
        assert error.details["cause_code"] == "VALIDATION_004"
        assert "Unknown field 'color'" in error.message
        assert pool.statements == []


class TestGetTotals:

    @pytest.mark.asyncio
    async def test_totals_clamp_page(self, db, pool):
        pool.rows = [{"id": 1}]
        pool.count = 23
        model = Item()
        await db.get(model, {"limit": 10, "page": 5, "order": {"id": "desc"}})

        totals = await db.get_totals(model)

        assert totals == Totals(total=23, page=3, page_size=10, pages=3)
        assert pool.statements[-1] == (
            "SELECT COUNT(*) AS `count` FROM `shop`.`items` AS `t` LIMIT 1 OFFSET 0",
            {},
        )

    @pytest.mark.asyncio
    async def test_totals_after_empty_get_skip_query(self, db, pool):
        model = Item()
        await db.get(model, {"filters": {"id": 99}})
        issued = len(pool.statements)

        totals = await db.get_totals(model)

        assert totals.to_dict() == {"total": 0, "pages": 0}
        assert len(pool.statements) == issued

    @pytest.mark.asyncio
    async def test_totals_keep_filters(self, db, pool):
        pool.rows = [{"id": 1}]
        pool.count = 4
        model = Item()
        await db.get(model, {"filters": {"status": 1}})

        totals = await db.get_totals(model)

        assert totals == Totals(total=4, page=1, page_size=500, pages=1)
        assert pool.statements[-1] == (
            "SELECT COUNT(*) AS `count` FROM `shop`.`items` AS `t` WHERE `t`.`status` = :status LIMIT 1 OFFSET 0",
            {"status": 1},
        )


class TestMultiInsert:

    @pytest.mark.asyncio
    async def test_rows_share_one_upsert(self, pool):
        pool.columns = {"id": "int(11)", "name": "varchar(50)"}
        db = MySQL({"host": "db"}, pool=pool)

        affected = await db.multi_insert(Item(), [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])

        assert affected == 2
        assert len(pool.statements) == 1
        sql, placeholders = pool.statements[0]
        assert sql == (
            "INSERT INTO `shop`.`items` (`id`, `name`) VALUES (:id_0, :name_0), (:id_1, :name_1) "
            "ON DUPLICATE KEY UPDATE `id` = LAST_INSERT_ID(`id`), `name` = VALUES(`name`)"
        )
        assert placeholders == {"id_0": 1, "name_0": "a", "id_1": 2, "name_1": "b"}

    @pytest.mark.asyncio
    async def test_row_without_columns_fails(self, db, pool):
        with pytest.raises(SQLBridgeError, match="Values cannot be empty") as exc_info:
            await db.multi_insert(Item(), [{"name": "a"}, {"color": "red"}])

        assert exc_info.value.error_code is ErrorCode.EMPTY_FIELDS
        assert pool.statements == []

    @pytest.mark.asyncio
    async def test_no_items_fail(self, db):
        with pytest.raises(SQLBridgeError, match="Items are required"):
            await db.multi_insert(Item(), [])


class TestRemove:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("filters", [{}, None, "id = 1", [{"id": 1}]])
    async def test_invalid_filters_fail_before_any_statement(self, db, pool, filters):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.remove(Item(), filters)

        assert exc_info.value.error_code is ErrorCode.INVALID_DATA
        pool.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remove_by_filters(self, db, pool):
        affected = await db.remove(Item(), {"status": 0, "color": "red"})

        assert affected == 2
        assert pool.statements[0] == ("DELETE FROM `shop`.`items` WHERE `status` = :status", {"status": 0})

    @pytest.mark.asyncio
    async def test_remove_with_join(self, db, pool):
        await db.remove(Item(), {"status": 0}, joins=["owners"])

        assert pool.statements[0][0] == (
            "DELETE `t` FROM `shop`.`items` AS `t` "
            "LEFT JOIN `shop`.`owners` AS `o` ON `t`.`owner_id` = `o`.`id` "
            "WHERE `t`.`status` = :status"
        )

    @pytest.mark.asyncio
    async def test_undeclared_join_is_remove_scoped(self, db):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.remove(Item(), {"status": 0}, joins=["suppliers"])
        assert exc_info.value.error_code is ErrorCode.INVALID_REMOVE

    @pytest.mark.asyncio
    async def test_multi_remove_sums_affected_rows(self, db, pool):
        affected = await db.multi_remove(Item(), [{"id": 1}, {"id": 2}, {"id": 3}])

        assert affected == 6
        assert len(pool.statements) == 3

    @pytest.mark.asyncio
    async def test_multi_remove_surfaces_invalid_entry(self, db):
        with pytest.raises(SQLBridgeError) as exc_info:
            await db.multi_remove(Item(), [{"id": 1}, {}])
        assert exc_info.value.error_code is ErrorCode.INVALID_DATA

    @pytest.mark.asyncio
    async def test_multi_remove_failure_is_scoped(self, db, pool):
        pool.execute.side_effect = RuntimeError("lock wait timeout")

        with pytest.raises(SQLBridgeError) as exc_info:
            await db.multi_remove(Item(), [{"id": 1}])
        assert exc_info.value.code == "OPERATION_007"


class TestHelpers:

    @pytest.mark.asyncio
    async def test_get_fields_keyed_by_column(self, db, pool):
        columns = await db.get_fields(Item())

        assert list(columns) == list(ITEM_COLUMNS)
        assert columns["date_modified"]["Type"] == "datetime"
        pool.execute.assert_awaited_once_with("SHOW COLUMNS FROM `shop`.`items`", {})

    def test_map_fields(self, db):
        assert db.map_fields(Item(), {"title": 1, "ownerId": 2, "status": 3}) == {
            "name": 1,
            "owner_id": 2,
            "status": 3,
        }
        assert db.map_fields(Item(), [{"label": 1}, {"dateCreated": 2}]) == [
            {"name": 1},
            {"date_created": 2},
        ]
        assert db.map_fields(Listing(), {"URL": 1, "sku": 2, "ownerId": 3}, columns={"URL", "SKU"}) == {
            "URL": 1,
            "SKU": 2,
            "owner_id": 3,
        }

    @pytest.mark.asyncio
    async def test_create_indexes(self, db):
        assert await db.create_indexes() is True

    @pytest.mark.asyncio
    async def test_end_closes_pool(self, db, pool):
        await db.end()

        pool.close.assert_awaited_once()
