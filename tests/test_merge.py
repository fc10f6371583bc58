"""Tests for the section merger and the microservices index updater."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from conftest import service_config
from membank.bank.merge import (
    INDEX_FILE,
    begin_marker,
    build_section_block,
    end_marker,
    escape_markers,
    find_section,
    index_template,
    iso_now,
    merge_section,
    splice_section,
    touch_index_timestamp,
    upsert_index_row,
    upsert_row,
)
from membank.models import ServiceConfig

T1 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
T2 = datetime(2026, 3, 2, 11, 30, tzinfo=timezone.utc)


def _config(name: str = "orders", **overrides) -> ServiceConfig:
    return ServiceConfig.from_dict(service_config(name, **overrides))


class TestSectionBlock:
    def test_canonical_layout(self):
        block = build_section_block("orders", "1.2.0", "- GET /x\n\n", "2026-03-01T10:00:00.000Z")
        assert block == (
            "<!-- BEGIN:orders -->\n"
            "## orders (v1.2.0)\n"
            "> Sincronizado automáticamente desde: orders/memory-bank/\n"
            "> Última actualización: 2026-03-01T10:00:00.000Z\n"
            "\n"
            "- GET /x\n"
            "\n"
            "<!-- END:orders -->"
        )

    def test_iso_now_format(self):
        assert iso_now(T1) == "2026-03-01T10:00:00.000Z"


class TestFindSection:
    def test_finds_pair(self):
        text = f"intro\n{begin_marker('a')}\nbody\n{end_marker('a')}\noutro"
        start, stop = find_section(text, "a")
        assert text[start:stop].startswith(begin_marker("a"))
        assert text[start:stop].endswith(end_marker("a"))

    def test_unterminated(self):
        assert find_section(f"{begin_marker('a')}\nbody", "a") is None

    def test_end_before_begin(self):
        assert find_section(f"{end_marker('a')}\n{begin_marker('a')}", "a") is None

    def test_dangling_begin_pairs_with_nearest(self):
        text = f"{begin_marker('a')}\nhuman\n{begin_marker('a')}\nbody\n{end_marker('a')}"
        start, _ = find_section(text, "a")
        assert text[:start] == f"{begin_marker('a')}\nhuman\n"

    def test_similar_service_names(self):
        text = f"{begin_marker('orders-v2')}\nx\n{end_marker('orders-v2')}"
        assert find_section(text, "orders") is None


class TestMergeSection:
    def test_creates_file_with_title(self, tmp_path: Path):
        path = tmp_path / "03-API-CONTRACTS-GLOBAL.md"
        merge_section(path, "orders", "1.0.0", "- GET /x", now=T1)
        text = path.read_text(encoding="utf-8")
        assert text.startswith("# 03 API CONTRACTS GLOBAL\n\n<!-- BEGIN:orders -->\n")
        assert text.endswith("<!-- END:orders -->\n")

    def test_idempotent(self, tmp_path: Path):
        path = tmp_path / "03-API-CONTRACTS-GLOBAL.md"
        merge_section(path, "orders", "1.0.0", "- GET /x", now=T1)
        first = path.read_text(encoding="utf-8")
        merge_section(path, "orders", "1.0.0", "- GET /x", now=T1)
        assert path.read_text(encoding="utf-8") == first

    def test_only_timestamp_changes(self, tmp_path: Path):
        path = tmp_path / "03-API-CONTRACTS-GLOBAL.md"
        merge_section(path, "orders", "1.0.0", "- GET /x", now=T1)
        first = path.read_text(encoding="utf-8")
        merge_section(path, "orders", "1.0.0", "- GET /x", now=T2)
        second = path.read_text(encoding="utf-8")
        assert second == first.replace(iso_now(T1), iso_now(T2))

    def test_preserves_prose_and_other_sections(self, tmp_path: Path):
        path = tmp_path / "03-API-CONTRACTS-GLOBAL.md"
        billing = build_section_block("billing", "2.0.0", "- GET /invoices", iso_now(T1))
        original = f"# APIs\n\nHand-written intro.\n\n{billing}\n\nClosing notes by a human.\n"
        path.write_text(original, encoding="utf-8")

        merge_section(path, "orders", "1.0.0", "- GET /orders", now=T1)
        after_first = path.read_text(encoding="utf-8")
        assert after_first.startswith(original)

        merge_section(path, "orders", "1.1.0", "- GET /orders/v2", now=T2)
        text = path.read_text(encoding="utf-8")
        assert text.startswith(original)
        assert "- GET /orders/v2" in text
        assert "- GET /orders\n" not in text
        assert text.count(begin_marker("orders")) == 1

    def test_replaces_in_place(self, tmp_path: Path):
        path = tmp_path / "G.md"
        orders = build_section_block("orders", "1.0.0", "old", iso_now(T1))
        path.write_text(f"before\n\n{orders}\n\nafter\n", encoding="utf-8")
        merge_section(path, "orders", "1.0.0", "new", now=T1)
        text = path.read_text(encoding="utf-8")
        assert text == f"before\n\n{build_section_block('orders', '1.0.0', 'new', iso_now(T1))}\n\nafter\n"

    def test_unterminated_marker_appends(self, tmp_path: Path):
        path = tmp_path / "G.md"
        original = f"# G\n\n{begin_marker('orders')}\nhuman notes that must survive\n"
        path.write_text(original, encoding="utf-8")

        merge_section(path, "orders", "1.0.0", "first", now=T1)
        merge_section(path, "orders", "1.0.0", "second", now=T1)
        text = path.read_text(encoding="utf-8")
        assert text.startswith(original)
        assert "human notes that must survive" in text
        assert "second" in text and "first" not in text
        assert text.count(end_marker("orders")) == 1

    def test_body_with_own_begin_marker_is_idempotent(self, tmp_path: Path):
        path = tmp_path / "G.md"
        body = f"{begin_marker('orders')}\n- GET /x\n"
        merge_section(path, "orders", "1.0.0", body, now=T1)
        first = path.read_text(encoding="utf-8")
        merge_section(path, "orders", "1.0.0", body, now=T1)
        text = path.read_text(encoding="utf-8")
        assert text == first
        assert text.count(begin_marker("orders")) == 1
        assert text.count("## orders (v1.0.0)") == 1

    def test_body_with_own_end_marker_is_idempotent(self, tmp_path: Path):
        path = tmp_path / "G.md"
        body = f"- GET /x\n{end_marker('orders')}\n"
        merge_section(path, "orders", "1.0.0", body, now=T1)
        first = path.read_text(encoding="utf-8")
        merge_section(path, "orders", "1.0.0", body, now=T2)
        text = path.read_text(encoding="utf-8")
        assert text == first.replace(iso_now(T1), iso_now(T2))
        assert text.count(end_marker("orders")) == 1
        assert text.count("- GET /x") == 1

    def test_other_service_markers_in_body_are_inert(self, tmp_path: Path):
        path = tmp_path / "G.md"
        merge_section(path, "orders", "1.0.0", "- GET /orders", now=T1)
        merge_section(path, "billing", "1.0.0", f"copied:\n{end_marker('orders')}", now=T1)
        merge_section(path, "orders", "1.1.0", "- GET /orders/v2", now=T1)
        text = path.read_text(encoding="utf-8")
        assert text.count(end_marker("orders")) == 1
        assert text.count(begin_marker("billing")) == 1
        assert "copied:" in text

    def test_escape_markers(self):
        assert escape_markers(f"a {begin_marker('x')} b") == "a &lt;!-- BEGIN:x --&gt; b"
        assert escape_markers("<!-- a plain comment -->") == "<!-- a plain comment -->"

    def test_appends_to_file_without_trailing_newline(self):
        block = build_section_block("orders", "1.0.0", "x", iso_now(T1))
        assert splice_section("# G", "orders", block) == f"# G\n\n{block}\n"


class TestIndexRows:
    def test_row_format(self):
        text = index_template("ts")
        text = upsert_row(text, "orders", "| orders | 1.0.0 | 5001 | node | 🟢 active | 2026-03-01 |\n")
        assert text.endswith("| orders | 1.0.0 | 5001 | node | 🟢 active | 2026-03-01 |\n")

    def test_status_emoji_and_defaults(self, tmp_path: Path):
        config = _config(status=None, port=None, technology=None)
        upsert_index_row(tmp_path, config, now=T1)
        text = (tmp_path / INDEX_FILE).read_text(encoding="utf-8")
        assert "| orders | 1.0.0 | N/A | N/A | ⚪ development | 2026-03-01 |" in text

    def test_emoji_mapping(self, tmp_path: Path):
        for name, status, emoji in [
            ("a", "active", "🟢"),
            ("b", "development", "🟡"),
            ("c", "deprecated", "🔴"),
            ("d", "planned", "⚪"),
        ]:
            upsert_index_row(tmp_path, _config(name, status=status), now=T1)
            text = (tmp_path / INDEX_FILE).read_text(encoding="utf-8")
            assert f"| {name} | 1.0.0 | 5001 | node | {emoji} {status} |" in text

    def test_upsert_keeps_one_row(self, tmp_path: Path):
        upsert_index_row(tmp_path, _config(version="1.0.0"), now=T1)
        upsert_index_row(tmp_path, _config(version="2.0.0"), now=T2)
        text = (tmp_path / INDEX_FILE).read_text(encoding="utf-8")
        rows = [line for line in text.splitlines() if line.startswith("| orders |")]
        assert rows == ["| orders | 2.0.0 | 5001 | node | 🟢 active | 2026-03-02 |"]

    def test_duplicate_rows_collapse(self):
        text = index_template("ts") + "| orders | 0.1 |\n| billing | 1 |\n| orders | 0.2 |\n"
        text = upsert_row(text, "orders", "| orders | 3.0 |\n")
        assert text.count("| orders |") == 1
        assert "| billing | 1 |" in text

    def test_row_inserted_inside_table(self, tmp_path: Path):
        footer = "\n---\n\n*Este archivo se actualiza automáticamente.*\n"
        (tmp_path / INDEX_FILE).write_text(index_template(iso_now(T1)) + footer, encoding="utf-8")
        upsert_index_row(tmp_path, _config("orders"), now=T1)
        upsert_index_row(tmp_path, _config("billing"), now=T1)
        lines = (tmp_path / INDEX_FILE).read_text(encoding="utf-8").splitlines()
        sep = next(i for i, line in enumerate(lines) if line.startswith("|---"))
        assert lines[sep + 1].startswith("| orders |")
        assert lines[sep + 2].startswith("| billing |")
        assert lines[-1] == "*Este archivo se actualiza automáticamente.*"

    def test_missing_table_header(self):
        text = upsert_row("# Index\n\nhand edited\n", "orders", "| orders | 1 |\n")
        assert text.startswith("# Index\n\nhand edited\n\n| Servicio | Versión |")
        assert text.endswith("| orders | 1 |\n")

    def test_timestamp_rewritten(self, tmp_path: Path):
        upsert_index_row(tmp_path, _config(), now=T1)
        upsert_index_row(tmp_path, _config(), now=T2)
        text = (tmp_path / INDEX_FILE).read_text(encoding="utf-8")
        assert f"> Última actualización: {iso_now(T2)}" in text
        assert iso_now(T1) not in text

    def test_missing_timestamp_is_skipped(self):
        text = "# Index\n\n| Servicio | x |\n"
        assert touch_index_timestamp(text, "now") == text
