from typing import Any, Sequence

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_or_ignore(db: Session, table: Table, values: dict[str, Any], conflict_columns: Sequence[str]) -> bool:
    """
    INSERT ... ON CONFLICT (conflict_columns) DO NOTHING inside the session's transaction.
    Returns True if this call inserted the row, False if a conflicting row already existed.
    """
    dialect = db.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"insert_or_ignore is not supported for dialect {dialect!r}")
    stmt = insert(table).values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns))
    result = db.execute(stmt)
    return result.rowcount == 1
