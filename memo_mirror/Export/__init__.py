from .formatters import (
    format_date,
    format_memos_json,
    format_memos_json_with_options,
    format_memos_markdown,
    format_memos_markdown_with_options,
    format_memos_table,
    format_memos_table_with_options,
    render_memos,
)
