"""SQLite-backed document store for the product catalog.

Documents are JSON objects kept in a single table keyed by a string
(the canonical product URL). Filters use a small Mongo-style expression
language that is compiled to SQL over SQLite's JSON1 functions:

    {"category": {"$in": ["tops", "top"]},
     "$or": [{"cottonPercentage": {"$gte": 90}},
             {"cottonPercentage": {"$in": [0, None]}}],
     "name": {"$regex": "tee", "$options": "i"}}

Supported operators: equality, ``$in``, ``$ne``, ``$gt``/``$gte``/
``$lt``/``$lte``, ``$regex`` (with ``$options: "i"``), ``$and``, ``$or``.
"""

import json
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Iterator, List, Optional, Sequence, Tuple

from cotton_finder.config import DB_PATH
from cotton_finder.errors import StoreUnavailable

__all__ = [
    "DEFAULT_DB_PATH",
    "get_connection",
    "compile_filter",
    "DocumentStore",
]

DEFAULT_DB_PATH = DB_PATH

# Field paths and table names are inlined into SQL, so keep them strict
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_COMPARISONS = {"$gt": ">", "$gte": ">=", "$lt": "<", "$lte": "<="}

Filter = Dict[str, Any]
SortSpec = Sequence[Tuple[str, int]]


def _regexp(pattern: str, value: Any) -> int:
    """SQLite REGEXP implementation (``value REGEXP pattern``)."""
    if value is None or pattern is None:
        return 0
    return 1 if re.search(pattern, str(value)) else 0


@contextmanager
def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = 30.0) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections with REGEXP support."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.create_function("REGEXP", 2, _regexp, deterministic=True)
    try:
        yield conn
    finally:
        conn.close()


def _json_path(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise ValueError(f"Invalid field name: {field!r}")
    return f"json_extract(document, '$.{field}')"


def _sql_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    return value


def _compile_in(column: str, values: Sequence[Any], negate: bool = False) -> Tuple[str, List[Any]]:
    values = list(values)
    non_null = [_sql_value(v) for v in values if v is not None]
    parts: List[str] = []
    if non_null:
        placeholders = ", ".join("?" for _ in non_null)
        parts.append(f"{column} IN ({placeholders})")
    if len(non_null) != len(values):
        parts.append(f"{column} IS NULL")
    if not parts:
        return ("1=1" if negate else "0=1"), []
    clause = "(" + " OR ".join(parts) + ")"
    if negate:
        clause = f"NOT {clause}"
    return clause, non_null


def _compile_field(field: str, condition: Any) -> Tuple[str, List[Any]]:
    column = _json_path(field)

    if not isinstance(condition, dict):
        if condition is None:
            return f"{column} IS NULL", []
        return f"{column} = ?", [_sql_value(condition)]

    clauses: List[str] = []
    params: List[Any] = []
    for op, operand in condition.items():
        if op == "$options":
            continue
        if op == "$in":
            sql, in_params = _compile_in(column, operand)
            clauses.append(sql)
            params.extend(in_params)
        elif op == "$nin":
            sql, in_params = _compile_in(column, operand, negate=True)
            clauses.append(sql)
            params.extend(in_params)
        elif op == "$ne":
            if operand is None:
                clauses.append(f"{column} IS NOT NULL")
            else:
                clauses.append(f"({column} IS NULL OR {column} != ?)")
                params.append(_sql_value(operand))
        elif op in _COMPARISONS:
            clauses.append(f"{column} {_COMPARISONS[op]} ?")
            params.append(_sql_value(operand))
        elif op == "$regex":
            pattern = operand
            if "i" in condition.get("$options", ""):
                pattern = f"(?i){pattern}"
            clauses.append(f"{column} REGEXP ?")
            params.append(pattern)
        else:
            raise ValueError(f"Unsupported filter operator: {op}")

    if not clauses:
        return "1=1", []
    return "(" + " AND ".join(clauses) + ")", params


def compile_filter(expr: Optional[Filter]) -> Tuple[str, List[Any]]:
    """Compile a filter expression into a SQL WHERE clause and parameters.

    Raises:
        ValueError: On unknown operators or invalid field names.
    """
    if not expr:
        return "1=1", []

    clauses: List[str] = []
    params: List[Any] = []
    for key, value in expr.items():
        if key in ("$and", "$or"):
            if not value:
                continue
            parts = [compile_filter(sub) for sub in value]
            joiner = " AND " if key == "$and" else " OR "
            clauses.append("(" + joiner.join(sql for sql, _ in parts) + ")")
            for _, sub_params in parts:
                params.extend(sub_params)
        elif key.startswith("$"):
            raise ValueError(f"Unsupported filter operator: {key}")
        else:
            sql, field_params = _compile_field(key, value)
            clauses.append(sql)
            params.extend(field_params)

    if not clauses:
        return "1=1", []
    return " AND ".join(clauses), params


class DocumentStore:
    """Upsert-capable JSON document store over one SQLite table.

    Each operation opens its own connection, so a store can be shared by
    concurrent ingestion runs; SQLite serializes the writes.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, collection: str = "products"):
        if not _IDENTIFIER_RE.match(collection):
            raise ValueError(f"Invalid collection name: {collection!r}")
        self.db_path = db_path
        self.collection = collection

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            with get_connection(self.db_path) as conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Store operation failed on {self.db_path}: {e}") from e

    def init(self) -> None:
        """Create the collection table and indexes if missing."""
        table = self.collection
        with self._connect() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    doc_key TEXT PRIMARY KEY,
                    document TEXT NOT NULL
                )
            """)
            for field in ("category", "price", "cottonPercentage"):
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{table}_{field} "
                    f"ON {table}({_json_path(field)})"
                )
            conn.commit()

    def upsert_by_key(
        self,
        key: str,
        document: Dict[str, Any],
        set_on_insert: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Insert or replace the document stored under ``key``.

        Fields in ``set_on_insert`` are written only when the key is new;
        on update the stored values of those fields are kept. The statement
        is a single atomic upsert, so concurrent writers to the same key
        end with the last writer's content.
        """
        insert_fields = dict(set_on_insert or {})
        full_document = {**insert_fields, **document}
        for field in insert_fields:
            full_document[field] = insert_fields[field]

        keep_clause = "excluded.document"
        for field in insert_fields:
            path = f"$.{field}"
            if not _FIELD_RE.match(field):
                raise ValueError(f"Invalid field name: {field!r}")
            keep_clause = (
                f"json_set({keep_clause}, '{path}', "
                f"COALESCE(json_extract({self.collection}.document, '{path}'), "
                f"json_extract(excluded.document, '{path}')))"
            )

        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO {self.collection} (doc_key, document) VALUES (?, ?)
                ON CONFLICT(doc_key) DO UPDATE SET document = {keep_clause}
                """,
                (key, json.dumps(full_document, ensure_ascii=False, default=str)),
            )
            conn.commit()

    def query(
        self,
        filter_expr: Optional[Filter] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching ``filter_expr``.

        Args:
            filter_expr: Filter expression (see module docstring).
            sort: ``[(field, 1 | -1), ...]``; documents missing the field
                sort last.
            limit: Maximum number of documents.
        """
        where, params = compile_filter(filter_expr)
        sql = f"SELECT document FROM {self.collection} WHERE {where}"

        if sort:
            order_parts = []
            for field, direction in sort:
                column = _json_path(field)
                order_parts.append(f"{column} IS NULL")
                order_parts.append(f"{column} {'DESC' if direction < 0 else 'ASC'}")
            sql += " ORDER BY " + ", ".join(order_parts)

        if limit:
            sql += f" LIMIT {int(limit)}"

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [json.loads(row["document"]) for row in rows]

    def find_one(self, filter_expr: Optional[Filter] = None) -> Optional[Dict[str, Any]]:
        results = self.query(filter_expr, limit=1)
        return results[0] if results else None

    def distinct(self, field: str) -> List[Any]:
        """Return the distinct values stored for ``field`` (may include None)."""
        column = _json_path(field)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT DISTINCT {column} AS value FROM {self.collection} ORDER BY value"
            ).fetchall()
        return [row["value"] for row in rows]

    def count(self, filter_expr: Optional[Filter] = None) -> int:
        where, params = compile_filter(filter_expr)
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS count FROM {self.collection} WHERE {where}", params
            ).fetchone()
        return int(row["count"])
