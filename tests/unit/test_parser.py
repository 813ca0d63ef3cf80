"""Tests for parser module."""

import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from tasksched.parser import TaskFileError, find_task_file, parse_task_file, parse_tasks
from tasksched.task import Task


class TestParseTasks(unittest.TestCase):
    def test_mapping_form(self):
        """Test parsing tasks declared as a mapping."""
        tasks = parse_tasks({
            "tasks": {
                "compile": {
                    "desc": "Compile sources",
                    "file_dep": ["main.c"],
                    "targets": "main.o",
                    "action": "cc -c main.c",
                },
                "link": {"file_dep": ["main.o"], "targets": ["app"], "task_dep": "compile"},
            }
        })
        self.assertEqual(
            tasks,
            [
                Task(
                    name="compile",
                    file_dep=["main.c"],
                    targets=["main.o"],
                    action="cc -c main.c",
                    desc="Compile sources",
                ),
                Task(name="link", file_dep=["main.o"], targets=["app"], task_dep=["compile"]),
            ],
        )

    def test_list_form_keeps_duplicates(self):
        """Test that the list form passes duplicate names through."""
        tasks = parse_tasks({"tasks": [{"name": "x"}, {"name": "x", "targets": ["out"]}]})
        self.assertEqual([t.name for t in tasks], ["x", "x"])

    def test_empty_task_body(self):
        """Test that a task with no fields is allowed."""
        self.assertEqual(parse_tasks({"tasks": {"noop": None}}), [Task(name="noop")])

    def test_empty_documents(self):
        """Test that empty files and empty task sections give no tasks."""
        self.assertEqual(parse_tasks(None), [])
        self.assertEqual(parse_tasks({"tasks": None}), [])
        self.assertEqual(parse_tasks({}), [])

    def test_invalid_structures(self):
        """Test that malformed definitions raise TaskFileError."""
        invalid = [
            ["not", "a", "mapping"],
            {"tasks": "nope"},
            {"tasks": {"a": "cmd"}},
            {"tasks": {"a": {"file_dep": [1, 2]}}},
            {"tasks": {"a": {"action": ["ls"]}}},
            {"tasks": {"a": {"cmd": "ls"}}},
            {"tasks": [{"targets": ["x"]}]},
            {"tasks": {1: {}}},
        ]
        for data in invalid:
            with self.assertRaises(TaskFileError, msg=repr(data)):
                parse_tasks(data)


class TestParseTaskFile(unittest.TestCase):
    def test_parse_file(self):
        """Test parsing a task file from disk."""
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "tasksched.yaml"
            path.write_text(
                "tasks:\n"
                "  build:\n"
                "    targets: [out.txt]\n"
                "    action: echo hi > out.txt\n"
            )
            task_file = parse_task_file(path)
            self.assertEqual(task_file.project_root, Path(tmpdir))
            self.assertEqual(task_file.registry.task_names(), ["build"])
            self.assertEqual(task_file.registry.get("build").targets, frozenset({"out.txt"}))

    def test_missing_file(self):
        """Test error for a missing task file."""
        with self.assertRaises(FileNotFoundError):
            parse_task_file(Path("/nonexistent/tasksched.yaml"))

    def test_invalid_yaml(self):
        """Test that malformed YAML raises TaskFileError."""
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "tasksched.yaml"
            path.write_text("tasks: [unclosed\n")
            with self.assertRaises(TaskFileError):
                parse_task_file(path)


class TestFindTaskFile(unittest.TestCase):
    def test_finds_in_parent_directory(self):
        """Test that the search walks up the directory tree."""
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve()
            (root / "ts.yaml").write_text("tasks: {}\n")
            nested = root / "a" / "b"
            nested.mkdir(parents=True)
            self.assertEqual(find_task_file(nested), root / "ts.yaml")

    def test_prefers_long_name(self):
        """Test that tasksched.yaml wins over ts.yaml in the same directory."""
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve()
            (root / "ts.yaml").write_text("")
            (root / "tasksched.yaml").write_text("")
            self.assertEqual(find_task_file(root), root / "tasksched.yaml")

    def test_defaults_to_cwd(self):
        """Test that the search starts from the working directory."""
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir).resolve()
            (root / "tasksched.yaml").write_text("")
            original_cwd = os.getcwd()
            try:
                os.chdir(root)
                self.assertEqual(find_task_file(), root / "tasksched.yaml")
            finally:
                os.chdir(original_cwd)


if __name__ == "__main__":
    unittest.main()
