"""Tests for the Task record and its toggle state machine."""

from datetime import date

from mdtasks.parser import parse_line
from mdtasks.status import CANCELLED, DONE, IN_PROGRESS, TODO, Status, StatusRegistry, StatusType
from mdtasks.task import Priority, Task, format_estimate, priority_rank


class TestTaskRendering:
    """Test rendering tasks back to lines."""

    def test_render_order(self):
        """Fields are written in a fixed order."""
        task = Task(
            description="Write report",
            tags=("#work",),
            priority=Priority.HIGH,
            estimated_time_to_complete=120,
            start_date=date(2024, 1, 1),
            scheduled_date=date(2024, 1, 2),
            due_date=date(2024, 1, 3),
            done_date=date(2024, 1, 4),
            block_link="^r1",
        )
        assert task.to_string() == (
            "Write report #work ⏫ ⏱ 2h 🛫 2024-01-01 ⏳ 2024-01-02 📅 2024-01-03 ✅ 2024-01-04 ^r1"
        )

    def test_file_line(self):
        """The file line carries indentation, marker and status symbol."""
        task = Task(status=DONE, description="x", indentation="  ", list_marker="*")
        assert task.to_file_line() == "  * [x] x"

    def test_inferred_flag_requires_date(self):
        """The inferred flag is cleared when there is no scheduled date."""
        task = Task(description="x", scheduled_date_is_inferred=True)
        assert not task.scheduled_date_is_inferred

    def test_format_estimate(self):
        """Estimates render in the shortest form."""
        assert format_estimate(45) == "45m"
        assert format_estimate(60) == "1h"
        assert format_estimate(95) == "1h35m"

    def test_priority_rank(self):
        """No priority sits between medium and low."""
        assert priority_rank(Priority.MEDIUM) < priority_rank(None) < priority_rank(Priority.LOW)

    def test_happens_dates(self):
        """Happens dates are the start, scheduled and due dates that are set."""
        task = Task(start_date=date(2024, 1, 1), due_date=date(2024, 1, 3), done_date=date(2024, 1, 4))
        assert task.happens_dates == [date(2024, 1, 1), date(2024, 1, 3)]


class TestTaskEdits:
    """Test with_changes and with_path."""

    def test_with_changes_clears_inferred(self):
        """Setting a date explicitly makes the scheduled date explicit."""
        task = Task(description="x", scheduled_date=date(2024, 1, 1), scheduled_date_is_inferred=True)
        edited = task.with_changes(due_date=date(2024, 1, 5))
        assert not edited.scheduled_date_is_inferred
        assert edited.original_markdown == edited.to_file_line()
        assert "⏳ 2024-01-01" in edited.original_markdown

    def test_with_changes_keeps_original(self):
        """Edits produce new records."""
        task = Task(description="x")
        edited = task.with_changes(description="y")
        assert task.description == "x"
        assert edited.description == "y"

    def test_with_path_infers_date(self):
        """Moving to a dated note infers the scheduled date."""
        task = Task(description="x")
        moved = task.with_path("daily/2024-03-01.md", date(2024, 3, 1))
        assert moved.path == "daily/2024-03-01.md"
        assert moved.scheduled_date == date(2024, 3, 1)
        assert moved.scheduled_date_is_inferred

    def test_with_path_drops_old_inference(self):
        """An inferred date does not follow the task to an undated note."""
        task = Task(description="x", scheduled_date=date(2024, 3, 1), scheduled_date_is_inferred=True)
        moved = task.with_path("inbox.md")
        assert moved.scheduled_date is None
        assert not moved.scheduled_date_is_inferred


class TestToggle:
    """Test the status toggle state machine."""

    def setup_method(self):
        self.registry = StatusRegistry.default()
        self.today = date(2024, 1, 1)

    def parse(self, line):
        return parse_line(line, registry=self.registry)

    def toggle_lines(self, line, today=None):
        task = self.parse(line)
        return [t.to_file_line() for t in task.toggle(registry=self.registry, today=today or self.today)]

    def test_todo_to_done(self):
        """Completing a task stamps today's date."""
        assert self.toggle_lines("- [ ] Buy milk") == ["- [x] Buy milk ✅ 2024-01-01"]

    def test_done_to_todo(self):
        """Reopening a task removes the done date."""
        assert self.toggle_lines("- [x] Buy milk ✅ 2024-01-01") == ["- [ ] Buy milk"]

    def test_in_progress_to_done(self):
        """In progress tasks complete in one toggle."""
        assert self.toggle_lines("- [/] Write") == ["- [x] Write ✅ 2024-01-01"]

    def test_cancelled_to_todo(self):
        """Cancelled tasks reopen without a done date change."""
        assert self.toggle_lines("- [-] Skip") == ["- [ ] Skip"]

    def test_unknown_status_completes(self):
        """Unknown statuses toggle to done."""
        assert self.toggle_lines("- [?] Maybe") == ["- [x] Maybe ✅ 2024-01-01"]

    def test_involution(self):
        """Toggling a non-recurring todo twice restores the line."""
        task = self.parse("- [ ] Buy milk #shop 📅 2024-01-05")
        done = task.toggle(registry=self.registry, today=self.today)
        assert len(done) == 1
        back = done[0].toggle(registry=self.registry, today=self.today)
        assert len(back) == 1
        assert back[0] == task
        assert back[0].to_file_line() == task.to_file_line()

    def test_recurring_split(self):
        """Completing a recurring task yields the next occurrence then the original."""
        lines = self.toggle_lines("- [ ] Pay rent 🔁 every month 📅 2024-01-01")
        assert lines == [
            "- [ ] Pay rent 🔁 every month 📅 2024-02-01",
            "- [x] Pay rent 🔁 every month 📅 2024-01-01 ✅ 2024-01-01",
        ]

    def test_recurring_completed_late(self):
        """The next due date follows the old due date, not the completion date."""
        lines = self.toggle_lines("- [ ] Pay rent 🔁 every month 📅 2024-01-01", today=date(2024, 1, 15))
        assert lines == [
            "- [ ] Pay rent 🔁 every month 📅 2024-02-01",
            "- [x] Pay rent 🔁 every month 📅 2024-01-01 ✅ 2024-01-15",
        ]

    def test_recurring_without_date(self):
        """A recurring task without dates completes as a single record."""
        lines = self.toggle_lines("- [ ] Stretch 🔁 every day")
        assert lines == ["- [x] Stretch 🔁 every day ✅ 2024-01-01"]

    def test_recurring_next_is_fresh(self):
        """The next occurrence has no done date and a re-anchored rule."""
        task = self.parse("- [ ] Pay rent 🔁 every month 📅 2024-01-01")
        following, completed = task.toggle(registry=self.registry, today=self.today)
        assert following.done_date is None
        assert following.status == TODO
        assert following.recurrence.due_date == date(2024, 2, 1)
        assert completed.status == DONE
        assert completed.original_markdown == completed.to_file_line()

    def test_recurring_inferred_date_becomes_explicit(self):
        """The next occurrence writes its scheduled date out."""
        task = parse_line("- [ ] Review 🔁 every week", registry=self.registry, fallback_date=date(2024, 1, 1))
        following, _ = task.toggle(registry=self.registry, today=self.today)
        assert following.scheduled_date == date(2024, 1, 8)
        assert not following.scheduled_date_is_inferred
        assert following.to_file_line() == "- [ ] Review 🔁 every week ⏳ 2024-01-08"

    def test_recurring_in_progress_skips_to_todo(self):
        """Custom cycles give the next occurrence a TODO status."""
        registry = StatusRegistry.from_statuses([
            Status(" ", "Todo", "/", StatusType.TODO),
            Status("/", "In Progress", "x", StatusType.IN_PROGRESS),
            Status("x", "Done", "/", StatusType.DONE),
        ])
        task = parse_line("- [/] Report 🔁 every day 📅 2024-01-01", registry=registry)
        following, completed = task.toggle(registry=registry, today=self.today)
        assert following.status.symbol == " "
        assert completed.status.symbol == "x"

    def test_cardinality(self):
        """Toggling yields two records only for recurring tasks entering done."""
        for line in ("- [ ] a", "- [x] a", "- [/] a", "- [-] a", "- [x] a 🔁 every day 📅 2024-01-01"):
            assert len(self.parse(line).toggle(registry=self.registry, today=self.today)) == 1
        task = self.parse("- [ ] a 🔁 every day 📅 2024-01-01")
        assert len(task.toggle(registry=self.registry, today=self.today)) == 2

    def test_statuses_are_module_constants(self):
        """Sanity check for the built-in statuses used above."""
        assert {IN_PROGRESS.symbol, CANCELLED.symbol} == {"/", "-"}
