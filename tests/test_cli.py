"""Tests for the command-line interface."""

from datetime import date

import pytest
from click.testing import CliRunner

from mdtasks.cli import _task_table, cli
from mdtasks.config import TasksSettings
from mdtasks.query_engine import parse_query


NOTE = """# Inbox
- [ ] Buy milk 📅 2024-01-05
- [x] Call bob ✅ 2024-01-02
  Just text
- [ ] Pay rent 🔁 every month 📅 2024-01-01
"""


@pytest.fixture
def note(tmp_path):
    path = tmp_path / "inbox.md"
    path.write_text(NOTE, encoding="utf-8")
    return path


@pytest.fixture
def invoke(tmp_path):
    runner = CliRunner()
    config = str(tmp_path / "config.yaml")

    def run(*args):
        return runner.invoke(cli, ["--config", config, *[str(a) for a in args]], obj={})
    return run


class TestToggleCommand:
    """Test 'mdtasks toggle'."""

    def test_completes_task(self, invoke, note):
        """The toggled line and cursor are printed."""
        result = invoke("toggle", note, 2, "--today", "2024-01-03", "--cursor", "8")
        assert result.exit_code == 0
        assert "- [x] Buy milk 📅 2024-01-05 ✅ 2024-01-03" in result.output
        assert "cursor: 8" in result.output

    def test_plain_text(self, invoke, note):
        """Plain text becomes a list item and the cursor moves."""
        result = invoke("toggle", note, 4, "--cursor", "4")
        assert result.exit_code == 0
        assert "  - Just text" in result.output
        assert "cursor: 6" in result.output

    def test_recurring(self, invoke, note):
        """Recurring tasks print two lines."""
        result = invoke("toggle", note, 5, "--today", "2024-01-15")
        assert result.exit_code == 0
        assert "- [ ] Pay rent 🔁 every month 📅 2024-02-01" in result.output
        assert "✅ 2024-01-15" in result.output

    def test_line_out_of_range(self, invoke, note):
        """Lines outside the file are an error."""
        result = invoke("toggle", note, 99)
        assert result.exit_code == 1
        assert "outside" in result.output

    def test_file_not_written(self, invoke, note):
        """The command only prints."""
        invoke("toggle", note, 2)
        assert note.read_text(encoding="utf-8") == NOTE


class TestParseCommand:
    """Test 'mdtasks parse'."""

    def test_lists_tasks(self, invoke, note):
        """Every task appears in the table."""
        result = invoke("parse", note)
        assert result.exit_code == 0
        assert "3 tasks" in result.output
        assert "Buy milk" in result.output
        assert "Pay rent" in result.output

    def test_no_tasks(self, invoke, tmp_path):
        """Files without tasks say so."""
        empty = tmp_path / "empty.md"
        empty.write_text("Nothing here\n", encoding="utf-8")
        result = invoke("parse", empty)
        assert result.exit_code == 0
        assert "No tasks found" in result.output


class TestQueryCommand:
    """Test 'mdtasks query'."""

    def test_short_mode(self, invoke, note):
        """Short mode prints task lines."""
        result = invoke("query", note, "--query", "not done; sort by due; short mode", "--today", "2024-01-03")
        assert result.exit_code == 0
        lines = [line for line in result.output.splitlines() if line.startswith("- [")]
        assert lines == [
            "- [ ] Pay rent 🔁 every month 📅 2024-01-01",
            "- [ ] Buy milk 📅 2024-01-05",
        ]
        assert "2 tasks" in result.output

    def test_query_file(self, invoke, note, tmp_path):
        """Queries can be read from a file."""
        query_file = tmp_path / "open.query"
        query_file.write_text("done\nshort mode\n", encoding="utf-8")
        result = invoke("query", note, "--query-file", query_file)
        assert result.exit_code == 0
        assert "- [x] Call bob ✅ 2024-01-02" in result.output
        assert "1 task" in result.output

    def test_query_error(self, invoke, note):
        """Bad queries print the error and exit 1."""
        result = invoke("query", note, "--query", "nto done")
        assert result.exit_code == 1
        assert "Query error" in result.output
        assert "not done" in result.output

    def test_query_source_required(self, invoke, note):
        """Exactly one query source must be given."""
        result = invoke("query", note)
        assert result.exit_code == 1


class TestConfigOption:
    """Test the --config option."""

    def test_bad_config(self, tmp_path, note):
        """Malformed settings stop the command."""
        config = tmp_path / "bad.yaml"
        config.write_text("- not a mapping\n", encoding="utf-8")
        result = CliRunner().invoke(cli, ["--config", str(config), "parse", str(note)], obj={})
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_global_filter_from_config(self, tmp_path, note):
        """Settings from the file change parsing."""
        config = tmp_path / "config.yaml"
        config.write_text("global_filter: rent\n", encoding="utf-8")
        result = CliRunner().invoke(cli, ["--config", str(config), "parse", str(note)], obj={})
        assert result.exit_code == 0
        assert "1 task" in result.output


class TestTaskTable:
    """Test the task table columns."""

    def headers(self, query_text):
        layout = parse_query(query_text, today=date(2024, 1, 1)).layout
        table = _task_table([], TasksSettings(), layout=layout)
        return [column.header for column in table.columns]

    def test_all_columns_by_default(self):
        """Every column is shown without hide instructions."""
        assert self.headers("") == [
            "Status", "Description", "Priority", "Start", "Scheduled", "Due",
            "Done", "Recurrence", "Estimate", "Tags", "Location",
        ]

    def test_hidden_columns_dropped(self):
        """Hidden components have no column."""
        headers = self.headers("hide due date\nhide tags\nhide backlink")
        assert "Due" not in headers
        assert "Tags" not in headers
        assert "Location" not in headers
        assert "Scheduled" in headers

    def test_show_restores_column(self):
        """A later show brings the column back."""
        assert "Due" in self.headers("hide due date\nshow due date")

    def test_query_command_hides_column(self, invoke, note):
        """The query command renders without hidden columns."""
        result = invoke("query", note, "--query", "not done; hide due date", "--today", "2024-01-03")
        assert result.exit_code == 0
        assert "Due" not in result.output
        assert "2024-01-05" not in result.output
