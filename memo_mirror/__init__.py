"""
memo_mirror - Incremental mirror of flomo memos into a local SQLite cache

Pulls memos page by page from the flomo "updated memos" endpoint, keeps them
in a local database that can be listed, searched and exported offline, and
reports progress while a sync is running.
"""

__version__ = "0.1.0"
