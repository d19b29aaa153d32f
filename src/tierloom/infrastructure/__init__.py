"""Infrastructure domain: SQLite plumbing and the filesystem watcher.

``tierloom.infrastructure.watcher`` is not re-exported here: it depends on
the workspace layer, which itself imports the database helpers below.
Import it directly::

    from tierloom.infrastructure.watcher import watch
"""

from tierloom.infrastructure.db import (
    SCHEMA_VERSION,
    create_schema,
    get_meta,
    open_db,
    set_meta,
)

__all__ = [
    "SCHEMA_VERSION",
    "create_schema",
    "get_meta",
    "open_db",
    "set_meta",
]
