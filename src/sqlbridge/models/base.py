from typing import Any, ClassVar, Dict, Mapping, Optional


class Model:
    """Base class for application models mapped to a MySQL table.

    Subclasses declare their schema as class attributes::

        class Product(Model):
            table = "products"
            dbname = "catalog"
            fields = {
                "id": True,
                "name": {"type": "search"},
                "categoryName": {"field": "name", "table": "categories"},
                "status": True,
                "isActive": True,
            }
            flags = {"status": {"isActive": 1}}
            joins = {
                "categories": {"alias": "c", "on": ["categoryId", "categoryName"]},
            }

    ``fields_map`` maps physical columns to the item keys used by the
    insert/update helpers when they differ from the snake_case spelling.
    """

    table: ClassVar[Optional[str]] = None
    dbname: ClassVar[Optional[str]] = None
    fields: ClassVar[Optional[Mapping[str, Any]]] = None
    flags: ClassVar[Optional[Mapping[str, Mapping[str, int]]]] = None
    joins: ClassVar[Optional[Mapping[str, Any]]] = None
    fields_map: ClassVar[Optional[Mapping[str, Any]]] = None

    def __init__(self) -> None:
        # Effective params of the last get(), replayed by get_totals()
        self.totals_params: Optional[Dict[str, Any]] = None
        self.last_query_empty: bool = False

    def get_table(self) -> Optional[str]:
        return self.table

    def add_db_name(self, table: str) -> str:
        if self.dbname:
            return f"{self.dbname}.{table}"
        return table
