from collections_service.database.repository import (
    CollectionsRepository,
    InMemoryCollectionsRepository,
)
from collections_service.database.sql_repository import SqlCollectionsRepository, build_engine

__all__ = [
    "CollectionsRepository",
    "InMemoryCollectionsRepository",
    "SqlCollectionsRepository",
    "build_engine",
]
