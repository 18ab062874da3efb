"""
Record store over the SQLModel tables.

Rows are keyed by an opaque `id`. The only conditional write is
compare_and_swap: an UPDATE guarded by the expected column values, which is
what optimistic template edits and QA transitions rely on.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import Table, func, select, update
from sqlalchemy.engine import Connection
from sqlmodel import SQLModel


def table(name: str) -> Table:
    try:
        return SQLModel.metadata.tables[name]
    except KeyError:
        raise ValueError(f"unknown table {name!r}") from None


def _order_clauses(tbl: Table, order_by: Sequence[str]) -> List[Any]:
    clauses: List[Any] = []
    for key in order_by:
        if key.startswith("-"):
            clauses.append(tbl.c[key[1:]].desc())
        else:
            clauses.append(tbl.c[key].asc())
    return clauses


def insert_row(conn: Connection, name: str, row: Mapping[str, Any]) -> str:
    tbl = table(name)
    data = {k: v for k, v in row.items() if k in tbl.c}
    conn.execute(tbl.insert().values(**data))
    return str(data.get("id", ""))


def get_row(conn: Connection, name: str, record_id: str) -> Optional[Dict[str, Any]]:
    tbl = table(name)
    row = conn.execute(select(tbl).where(tbl.c.id == record_id)).mappings().first()
    return dict(row) if row is not None else None


def select_rows(
    conn: Connection,
    name: str,
    *criteria: Any,
    order_by: Sequence[str] = (),
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    tbl = table(name)
    stmt = select(tbl).where(*criteria).order_by(*_order_clauses(tbl, order_by))
    if limit is not None:
        stmt = stmt.limit(limit).offset(offset)
    return [dict(r) for r in conn.execute(stmt).mappings().all()]


def count_rows(conn: Connection, name: str, *criteria: Any) -> int:
    tbl = table(name)
    n = conn.execute(select(func.count()).select_from(tbl).where(*criteria)).scalar_one()
    return int(n or 0)


def compare_and_swap(
    conn: Connection,
    name: str,
    record_id: str,
    expected: Mapping[str, Any],
    changes: Mapping[str, Any],
) -> bool:
    """Apply `changes` only if every `expected` column still holds its value. True when the row was updated."""
    tbl = table(name)
    guards = [tbl.c[k] == v for k, v in expected.items()]
    stmt = update(tbl).where(tbl.c.id == record_id, *guards).values(**dict(changes))
    return conn.execute(stmt).rowcount == 1
