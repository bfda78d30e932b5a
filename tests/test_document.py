"""Tests for whole-document parsing and task replacement."""

from datetime import date

import pytest

from mdtasks.config import TasksSettings
from mdtasks.document import TaskNotFoundError, parse_document, replace_task_lines
from mdtasks.status import StatusRegistry


DOCUMENT = """---
tags: [daily]
---
- [ ] Before any heading

# Work
- [ ] Ship release 📅 2024-01-05
Some notes
- [x] Review PR ✅ 2024-01-02

```
- [ ] Not a task, in code
```

## Home
* [ ] Water plants 🔁 every week 📅 2024-01-06
"""


class TestParseDocument:
    """Test parse_document."""

    def setup_method(self):
        self.registry = StatusRegistry.default()
        self.tasks = parse_document(DOCUMENT, "journal/2024-01-01.md", registry=self.registry)

    def test_finds_tasks_outside_code_and_front_matter(self):
        """Fenced code and front matter are skipped."""
        assert [t.description for t in self.tasks] == [
            "Before any heading", "Ship release", "Review PR", "Water plants",
        ]

    def test_sections(self):
        """Tasks know their heading, section start and index within it."""
        first, ship, review, water = self.tasks
        assert (first.section_start, first.section_index, first.preceding_header) == (0, 0, None)
        assert (ship.section_start, ship.section_index, ship.preceding_header) == (5, 0, "Work")
        assert (review.section_start, review.section_index) == (5, 1)
        assert (water.section_start, water.section_index, water.preceding_header) == (14, 0, "Home")

    def test_path(self):
        """Every task carries the document path."""
        assert all(t.path == "journal/2024-01-01.md" for t in self.tasks)

    def test_no_inference_by_default(self):
        """File name dates are only used when enabled."""
        assert self.tasks[0].scheduled_date is None

    def test_filename_inference(self):
        """Dated file names give undated tasks an inferred scheduled date."""
        settings = TasksSettings(use_filename_as_scheduled_date=True)
        tasks = parse_document(DOCUMENT, "journal/2024-01-01.md", registry=self.registry, settings=settings)
        assert tasks[0].scheduled_date == date(2024, 1, 1)
        assert tasks[0].scheduled_date_is_inferred
        assert tasks[1].scheduled_date is None


class TestReplaceTaskLines:
    """Test replace_task_lines."""

    def setup_method(self):
        self.registry = StatusRegistry.default()
        self.tasks = parse_document(DOCUMENT, "journal/2024-01-01.md", registry=self.registry)

    def test_replace_with_toggled(self):
        """The toggled task replaces the original line."""
        ship = self.tasks[1]
        toggled = ship.toggle(registry=self.registry, today=date(2024, 1, 3))
        text = replace_task_lines(DOCUMENT, ship, toggled)
        assert "- [x] Ship release 📅 2024-01-05 ✅ 2024-01-03" in text.splitlines()
        assert "- [ ] Ship release 📅 2024-01-05" not in text.splitlines()
        assert len(text.splitlines()) == len(DOCUMENT.splitlines())

    def test_recurring_adds_a_line(self):
        """Recurring tasks insert the next occurrence above the completed one."""
        water = self.tasks[3]
        toggled = water.toggle(registry=self.registry, today=date(2024, 1, 6))
        lines = replace_task_lines(DOCUMENT, water, toggled).splitlines()
        index = lines.index("* [ ] Water plants 🔁 every week 📅 2024-01-13")
        assert lines[index + 1] == "* [x] Water plants 🔁 every week 📅 2024-01-06 ✅ 2024-01-06"

    def test_moved_task_found_by_text(self):
        """A task that moved is found by its unique text."""
        ship = self.tasks[1]
        edited = DOCUMENT.replace("# Work\n", "# Work\n- [ ] New first task\n")
        text = replace_task_lines(edited, ship, [ship.with_changes(description="Ship it")])
        assert "- [ ] Ship it 📅 2024-01-05" in text.splitlines()

    def test_missing_task(self):
        """A task that no longer exists raises TaskNotFoundError."""
        ship = self.tasks[1]
        edited = DOCUMENT.replace("- [ ] Ship release 📅 2024-01-05", "- [ ] Ship release")
        with pytest.raises(TaskNotFoundError):
            replace_task_lines(edited, ship, [ship])

    def test_crlf_preserved(self):
        """Windows line endings survive replacement."""
        crlf = DOCUMENT.replace("\n", "\r\n")
        tasks = parse_document(crlf, "a.md", registry=self.registry)
        text = replace_task_lines(crlf, tasks[0], [tasks[0].with_changes(description="Changed")])
        assert "- [ ] Changed\r\n" in text
        assert "\n" not in text.replace("\r\n", "")
