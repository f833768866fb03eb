"""
Tests for the export formatters.
"""
import json

import pytest

from memo_mirror.Export.formatters import (
    format_date,
    format_memos_json,
    format_memos_json_with_options,
    format_memos_markdown,
    format_memos_markdown_with_options,
    format_memos_table,
    format_memos_table_with_options,
    render_memos,
)
from memo_mirror.Models.memo import Memo


@pytest.fixture
def memos():
    return [
        Memo(slug="s1", content="First line\nsecond line", created_at="2024-01-02 09:05:07",
             updated_at="2024-01-03 10:00:00", tags=["work", "idea"],
             url="https://v.flomoapp.com/mine/?memo_id=s1"),
        Memo(slug="s2", content="x" * 40, created_at="2024-02-10 18:30:00",
             updated_at="2024-02-10 18:30:00"),
    ]


class TestFormatDate:
    """Date pattern conversion."""

    @pytest.mark.parametrize("pattern,expected", [
        ("yyyy-MM-dd HH:mm", "2024-01-02 09:05"),
        ("yyyy-MM-dd HH:mm:ss", "2024-01-02 09:05:07"),
        ("MMM dd, yyyy", "Jan 02, 2024"),
        ("dd/MM/yyyy", "02/01/2024"),
        ("yyyy年MM月dd日 HH:mm", "2024年01月02日 09:05"),
    ])
    def test_patterns(self, pattern, expected):
        assert format_date("2024-01-02 09:05:07", pattern) == expected

    def test_rfc3339_input(self):
        assert format_date("2024-01-02T09:05:07Z", "yyyy-MM-dd HH:mm") == "2024-01-02 09:05"

    def test_unparseable_input_returned_unchanged(self):
        assert format_date("yesterday", "yyyy-MM-dd") == "yesterday"

    def test_literal_percent_survives(self):
        assert format_date("2024-01-02 09:05:07", "yyyy%") == "2024%"


class TestJson:
    """JSON export."""

    def test_plain_json(self, memos):
        records = json.loads(format_memos_json(memos))
        assert records[0]["slug"] == "s1"
        assert records[0]["tags"] == ["work", "idea"]
        assert "url" not in records[1]

    def test_with_options_indexes_and_dates(self, memos):
        records = json.loads(format_memos_json_with_options(memos, date_format="yyyy-MM-dd"))
        assert [record["index"] for record in records] == [1, 2]
        assert records[0]["created_at"] == "2024-01-02"
        assert records[0]["updated_at"] == "2024-01-03"
        assert records[1]["url"] is None

    def test_without_date_format_omits_dates(self, memos):
        records = json.loads(format_memos_json_with_options(memos))
        assert "created_at" not in records[0]
        assert set(records[0]) == {"index", "content", "url", "slug", "tags"}

    def test_compact_is_single_line(self, memos):
        output = format_memos_json_with_options(memos, compact=True)
        assert "\n" not in output.replace("\\n", "")
        assert '"index":1' in output

    def test_unicode_is_not_escaped(self):
        memo = Memo(slug="u", content="读书笔记", created_at="2024-01-01 00:00:00",
                    updated_at="2024-01-01 00:00:00")
        assert "读书笔记" in format_memos_json([memo])


class TestMarkdown:
    """Markdown export."""

    def test_plain_markdown(self, memos):
        output = format_memos_markdown(memos)
        assert output.startswith("# Flomo 备忘录\n\n")
        assert "## 1. 2024-01-02 09:05:07\n\n" in output
        assert "**链接**: https://v.flomoapp.com/mine/?memo_id=s1\n" in output
        assert "**标签**: work, idea\n" in output
        assert output.count("\n---\n\n") == 2

    def test_url_modes(self, memos):
        full = format_memos_markdown_with_options(memos, url_mode="full", date_format="yyyy-MM-dd")
        by_id = format_memos_markdown_with_options(memos, url_mode="id", date_format="yyyy-MM-dd")
        no_url = format_memos_markdown_with_options(memos, url_mode="none", date_format="yyyy-MM-dd")

        assert "**链接**: https://v.flomoapp.com/mine/?memo_id=s1" in full
        assert "**ID**: s1" in by_id and "**ID**: s2" in by_id
        assert "**链接**" not in no_url and "**ID**" not in no_url
        assert "## 2. 2024-02-10\n\n" in full

    def test_no_date_format_drops_date_from_heading(self, memos):
        output = format_memos_markdown_with_options(memos, date_format="")
        assert "## 1\n\n" in output

    def test_minimal_with_date(self, memos):
        output = format_memos_markdown_with_options(memos, date_format="yyyy-MM-dd", minimal=True)
        assert output.splitlines() == [
            "1|2024-01-02|First line second line",
            f"2|2024-02-10|{'x' * 40}",
        ]

    def test_minimal_without_date(self, memos):
        output = format_memos_markdown_with_options(memos, date_format="", minimal=True)
        assert output.splitlines()[0] == "1|First line second line"
        assert "# Flomo" not in output


class TestTable:
    """Fixed-width table export."""

    def test_plain_table(self, memos):
        lines = format_memos_table(memos).splitlines()
        assert lines[0] == "序号 | 创建时间          | 内容预览"
        assert lines[1] == "-" * 50
        assert lines[2] == " 1   | 2024-01-02        | First line second line"
        assert lines[3] == f" 2   | 2024-02-10        | {'x' * 30}..."

    def test_table_with_date_format(self, memos):
        lines = format_memos_table_with_options(memos, date_format="yyyy-MM-dd HH:mm").splitlines()
        assert lines[2].startswith(" 1   | 2024-01-02 09:05  | ")

    def test_empty_table_has_header_only(self):
        assert format_memos_table([]).splitlines() == ["序号 | 创建时间          | 内容预览", "-" * 50]


class TestRenderMemos:
    """Format dispatch."""

    def test_dispatch(self, memos):
        assert render_memos(memos, "json").startswith("[")
        assert render_memos(memos, "markdown").startswith("# Flomo 备忘录")
        assert render_memos(memos, "table").startswith("序号")

    def test_default_date_format(self, memos):
        assert "## 1. 2024-01-02 09:05\n\n" in render_memos(memos, "markdown")

    def test_unknown_format(self, memos):
        with pytest.raises(ValueError, match="Unknown export format"):
            render_memos(memos, "csv")
