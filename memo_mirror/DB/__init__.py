from .Memos_DB import MemosDB, MemosDBError, SchemaError

__all__ = ["MemosDB", "MemosDBError", "SchemaError"]
