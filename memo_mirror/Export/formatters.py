# formatters.py
# Description: Renders cached memos as JSON, Markdown or a plain-text table
#
# Imports
import json
from typing import Any, Dict, List, Sequence
#
# Local Imports
from ..Models.memo import Memo
from ..Utils.timestamps import parse_memo_timestamp
#
#######################################################################################################################
#
# Functions:

MARKDOWN_TITLE = "# Flomo 备忘录"
LINK_LABEL = "**链接**"
TAGS_LABEL = "**标签**"
TABLE_HEADER = "序号 | 创建时间          | 内容预览"
PREVIEW_CHARS = 30

DEFAULT_DATE_FORMAT = "yyyy-MM-dd HH:mm"
URL_MODES = ("full", "id", "none")
EXPORT_FORMATS = ("json", "markdown", "table")

# Longest tokens first so "MMM" is not consumed by "MM"
_DATE_TOKENS = (
    ("yyyy", "%Y"),
    ("MMM", "%b"),
    ("MM", "%m"),
    ("dd", "%d"),
    ("HH", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
)


def _to_strftime(fmt: str) -> str:
    out = []
    i = 0
    while i < len(fmt):
        for token, directive in _DATE_TOKENS:
            if fmt.startswith(token, i):
                out.append(directive)
                i += len(token)
                break
        else:
            out.append("%%" if fmt[i] == "%" else fmt[i])
            i += 1
    return "".join(out)


def format_date(date_str: str, fmt: str) -> str:
    """
    Format a memo timestamp with a "yyyy-MM-dd HH:mm" style pattern.

    Formats containing 年 always render as "%Y年%m月%d日 %H:%M". Values that
    cannot be parsed are returned unchanged.
    """
    parsed = parse_memo_timestamp(date_str)
    if parsed is None:
        return date_str
    if "年" in fmt:
        return parsed.strftime("%Y年%m月%d日 %H:%M")
    return parsed.strftime(_to_strftime(fmt))


def _preview(content: str) -> str:
    flat = content.replace("\n", " ")
    if len(flat) > PREVIEW_CHARS:
        return f"{flat[:PREVIEW_CHARS]}..."
    return flat


# --- JSON ---

def format_memos_json(memos: Sequence[Memo]) -> str:
    return json.dumps([memo.to_dict() for memo in memos], ensure_ascii=False, indent=2)


def format_memos_json_with_options(memos: Sequence[Memo], compact: bool = False,
                                   date_format: str = "") -> str:
    """JSON records with a 1-based index; dates are included only when date_format is set."""
    records: List[Dict[str, Any]] = []
    for index, memo in enumerate(memos, start=1):
        record: Dict[str, Any] = {
            "index": index,
            "content": memo.content,
            "url": memo.url,
            "slug": memo.slug,
            "tags": list(memo.tags),
        }
        if date_format:
            record["created_at"] = format_date(memo.created_at, date_format)
            record["updated_at"] = format_date(memo.updated_at, date_format)
        records.append(record)
    if compact:
        return json.dumps(records, ensure_ascii=False, separators=(",", ":"))
    return json.dumps(records, ensure_ascii=False, indent=2)


# --- Markdown ---

def format_memos_markdown(memos: Sequence[Memo]) -> str:
    parts = [f"{MARKDOWN_TITLE}\n\n"]
    for index, memo in enumerate(memos, start=1):
        parts.append(f"## {index}. {memo.created_at}\n\n")
        parts.append(f"{memo.content}\n\n")
        if memo.url:
            parts.append(f"{LINK_LABEL}: {memo.url}\n")
        if memo.tags:
            parts.append(f"{TAGS_LABEL}: {', '.join(memo.tags)}\n")
        parts.append("\n---\n\n")
    return "".join(parts)


def format_memos_markdown_with_options(memos: Sequence[Memo], url_mode: str = "full",
                                       date_format: str = "", minimal: bool = False) -> str:
    """
    Markdown export.

    Minimal mode writes one "index|date|content" line per memo (the date
    column is dropped when date_format is empty). url_mode is "full" for
    links, "id" for slugs; any other value omits both.
    """
    parts: List[str] = []
    if not minimal:
        parts.append(f"{MARKDOWN_TITLE}\n\n")

    for index, memo in enumerate(memos, start=1):
        if minimal:
            content = memo.content.replace("\n", " ")
            if date_format:
                parts.append(f"{index}|{format_date(memo.created_at, date_format)}|{content}\n")
            else:
                parts.append(f"{index}|{content}\n")
            continue

        if date_format:
            parts.append(f"## {index}. {format_date(memo.created_at, date_format)}\n\n")
        else:
            parts.append(f"## {index}\n\n")
        parts.append(f"{memo.content.strip()}\n")

        if url_mode == "full":
            if memo.url:
                parts.append(f"{LINK_LABEL}: {memo.url}\n")
        elif url_mode == "id":
            parts.append(f"**ID**: {memo.slug}\n")

        if memo.tags:
            parts.append(f"{TAGS_LABEL}: {', '.join(memo.tags)}\n")
        parts.append("\n---\n\n")
    return "".join(parts)


# --- Table ---

def format_memos_table_with_options(memos: Sequence[Memo], date_format: str = "") -> str:
    lines = [TABLE_HEADER, "-" * 50]
    for index, memo in enumerate(memos, start=1):
        if date_format:
            date_str = format_date(memo.created_at, date_format)
        else:
            date_str = memo.created_at.split(" ")[0]
        lines.append(f"{index:2}   | {date_str:17} | {_preview(memo.content)}")
    return "\n".join(lines) + "\n"


def format_memos_table(memos: Sequence[Memo]) -> str:
    return format_memos_table_with_options(memos)


def render_memos(memos: Sequence[Memo], fmt: str, **options: Any) -> str:
    """
    Dispatch to the formatter for `fmt`.

    Options: compact (json), url_mode and minimal (markdown), date_format (all).

    Raises:
        ValueError: for an unknown format
    """
    date_format = options.get("date_format", DEFAULT_DATE_FORMAT)
    if fmt == "json":
        return format_memos_json_with_options(memos, compact=options.get("compact", False),
                                              date_format=date_format)
    if fmt == "markdown":
        return format_memos_markdown_with_options(memos, url_mode=options.get("url_mode", "full"),
                                                  date_format=date_format,
                                                  minimal=options.get("minimal", False))
    if fmt == "table":
        return format_memos_table_with_options(memos, date_format=date_format)
    raise ValueError(f"Unknown export format '{fmt}'. Expected one of: {', '.join(EXPORT_FORMATS)}")

#
# End of formatters.py
#######################################################################################################################
