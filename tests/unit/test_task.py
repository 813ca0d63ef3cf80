"""Tests for task module."""

import unittest

from tasksched.task import Task, TaskRegistry


class TestTask(unittest.TestCase):
    def test_defaults_are_empty_sets(self):
        """Test that a bare task has no dependencies or targets."""
        task = Task(name="build")
        self.assertEqual(task.file_dep, frozenset())
        self.assertEqual(task.targets, frozenset())
        self.assertEqual(task.task_dep, frozenset())
        self.assertEqual(task.action, "")

    def test_lists_become_frozensets(self):
        """Test that list arguments are normalised to frozensets."""
        task = Task(name="build", file_dep=["a.c", "b.c", "a.c"], targets=["app"])
        self.assertEqual(task.file_dep, frozenset({"a.c", "b.c"}))
        self.assertEqual(task.targets, frozenset({"app"}))

    def test_single_string_is_one_path(self):
        """Test that a string is treated as a single path, not characters."""
        task = Task(name="build", file_dep="main.c", task_dep="lint")
        self.assertEqual(task.file_dep, frozenset({"main.c"}))
        self.assertEqual(task.task_dep, frozenset({"lint"}))

    def test_task_is_immutable(self):
        """Test that tasks cannot be modified after creation."""
        task = Task(name="build")
        with self.assertRaises(AttributeError):
            task.name = "other"


class TestTaskRegistry(unittest.TestCase):
    def setUp(self):
        self.tasks = [Task(name="c"), Task(name="a"), Task(name="b")]
        self.registry = TaskRegistry(self.tasks)

    def test_preserves_declaration_order(self):
        """Test that iteration follows declaration order."""
        self.assertEqual(self.registry.task_names(), ["c", "a", "b"])
        self.assertEqual(list(self.registry), self.tasks)

    def test_lookup(self):
        """Test lookup by name."""
        self.assertIs(self.registry.get("a"), self.tasks[1])
        self.assertIsNone(self.registry.get("missing"))
        self.assertIn("b", self.registry)
        self.assertNotIn("missing", self.registry)
        self.assertEqual(len(self.registry), 3)

    def test_tasks_for_maps_names_in_given_order(self):
        """Test mapping a name order back to tasks."""
        self.assertEqual(
            [t.name for t in self.registry.tasks_for(["b", "c"])], ["b", "c"]
        )

    def test_keeps_duplicates_for_validation(self):
        """Test that duplicate names are stored, not silently dropped."""
        registry = TaskRegistry([Task(name="x", action="first"), Task(name="x", action="second")])
        self.assertEqual(len(registry), 2)
        self.assertEqual(registry.get("x").action, "first")


if __name__ == "__main__":
    unittest.main()
