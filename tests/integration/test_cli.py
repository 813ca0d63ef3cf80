"""Integration tests for the command-line interface."""

import json
import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from typer.testing import CliRunner

from tasksched import __version__
from tasksched.cli import app
from helpers.io import strip_ansi_codes, write_file

TASKS = """
tasks:
  compile:
    desc: Compile sources
    file_dep: [src.txt]
    targets: [mid.txt]
    action: cat src.txt > mid.txt
  link:
    desc: Link
    file_dep: [mid.txt]
    targets: [app.txt]
    action: cat mid.txt > app.txt
  docs:
    file_dep: [README]
"""


class CliTestCase(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.env = {"NO_COLOR": "1", "COLUMNS": "200"}
        self._tmpdir = TemporaryDirectory()
        self.project_root = Path(self._tmpdir.name).resolve()
        self._original_cwd = os.getcwd()
        os.chdir(self.project_root)

        missing = self.project_root / "no-such-config.yml"
        for name in ("get_user_config_path", "get_machine_config_path"):
            patcher = patch(f"tasksched.config.{name}", return_value=missing)
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self):
        os.chdir(self._original_cwd)
        self._tmpdir.cleanup()

    def invoke(self, *args):
        result = self.runner.invoke(app, list(args), env=self.env)
        return result, strip_ansi_codes(result.output)

    def write_project(self, tasks: str = TASKS) -> None:
        write_file(self.project_root / "tasksched.yaml", tasks)
        write_file(self.project_root / "src.txt", "v1")
        write_file(self.project_root / "README", "docs")


class TestGlobalOptions(CliTestCase):
    def test_version(self):
        """Test that --version prints the version."""
        result, output = self.invoke("--version")
        self.assertEqual(result.exit_code, 0)
        self.assertIn(__version__, output)

    def test_no_task_file(self):
        """Test the error when no task file can be found."""
        result, output = self.invoke("list")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No task file found", output)

    def test_explicit_task_file(self):
        """Test that --tasks selects a task file elsewhere."""
        write_file(self.project_root / "other" / "custom.yaml", "tasks:\n  hello: {}\n")
        result, output = self.invoke("--tasks", "other/custom.yaml", "list")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("hello", output)

    def test_explicit_task_file_missing(self):
        """Test the error for a --tasks path that doesn't exist."""
        result, output = self.invoke("-T", "nope.yaml", "list")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Task file not found", output)

    def test_invalid_log_level(self):
        """Test that an unknown log level is rejected."""
        self.write_project()
        result, output = self.invoke("--log-level", "loud", "list")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Invalid log level", output)

    def test_quiet_log_level_hides_progress(self):
        """Test that -L error suppresses informational output."""
        self.write_project()
        result, output = self.invoke("-L", "error", "order")
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(output.strip(), "")

    def test_invalid_task_file(self):
        """Test that structural errors in the task file are reported."""
        write_file(self.project_root / "tasksched.yaml", "tasks:\n  a: [1]\n")
        result, output = self.invoke("list")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("must be a dictionary", output)


class TestCommands(CliTestCase):
    def test_list(self):
        """Test listing tasks with descriptions."""
        self.write_project()
        result, output = self.invoke("list")
        self.assertEqual(result.exit_code, 0)
        for text in ("compile", "Compile sources", "link", "docs"):
            self.assertIn(text, output)

    def test_order(self):
        """Test that order prints producers before consumers."""
        self.write_project()
        result, output = self.invoke("order")
        self.assertEqual(result.exit_code, 0)
        self.assertLess(output.index("compile"), output.index("link"))

    def test_order_for_one_task(self):
        """Test that order TASK lists only the task's prerequisites."""
        self.write_project()
        result, output = self.invoke("order", "link")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("1. compile", output)
        self.assertIn("2. link", output)
        self.assertNotIn("docs", output)

    def test_target_conflict(self):
        """Test that a target conflict fails with both task names."""
        write_file(
            self.project_root / "tasksched.yaml",
            "tasks:\n  X:\n    targets: [out]\n  Y:\n    targets: [out]\n",
        )
        result, output = self.invoke("order")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Tasks X and Y share target: out", output)

    def test_cycle(self):
        """Test that a dependency cycle fails the run."""
        write_file(
            self.project_root / "tasksched.yaml",
            "tasks:\n  a:\n    task_dep: [b]\n  b:\n    task_dep: [a]\n",
        )
        result, output = self.invoke("run")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("cycle", output)
        self.assertFalse((self.project_root / ".tasksched-state").exists())

    def test_run_then_up_to_date(self):
        """Test that a second run has nothing to do."""
        self.write_project()
        result, output = self.invoke("run")
        self.assertEqual(result.exit_code, 0, output)
        self.assertIn("3 task(s) completed successfully", output)
        self.assertEqual((self.project_root / "app.txt").read_text().strip(), "v1")

        result, output = self.invoke("run")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("All tasks are up to date", output)

    def test_run_after_change_reruns_consumers(self):
        """Test that editing a source reruns its chain but not unrelated tasks."""
        self.write_project()
        self.invoke("run")
        write_file(self.project_root / "src.txt", "v2")

        result, output = self.invoke("run", "--dry-run")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("compile - inputs_changed: src.txt", output)
        self.assertIn("link - dependency_triggered: mid.txt", output)
        self.assertNotIn("docs", output)

        result, output = self.invoke("run")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("2 task(s) completed successfully", output)
        self.assertEqual((self.project_root / "app.txt").read_text().strip(), "v2")

    def test_run_missing_output_warns(self):
        """Test that a deleted target reruns its task with a warning."""
        self.write_project()
        self.invoke("run")
        (self.project_root / "app.txt").unlink()

        result, output = self.invoke("run")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Re-running task 'link' because declared outputs are missing", output)
        self.assertTrue((self.project_root / "app.txt").exists())

    def test_run_failure_is_not_committed(self):
        """Test that a failing action exits 1 and stays stale."""
        write_file(
            self.project_root / "tasksched.yaml",
            "tasks:\n  ok: {}\n  bad:\n    action: exit 4\n",
        )
        result, output = self.invoke("run")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Task 'bad' failed with exit code 4", output)

        state = json.loads((self.project_root / ".tasksched-state").read_text())
        self.assertEqual(list(state), ["ok"])

    def test_run_force(self):
        """Test that --force reruns fresh tasks."""
        self.write_project()
        self.invoke("run")
        result, output = self.invoke("run", "--force", "--dry-run")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Will execute (3 tasks)", output)
        self.assertIn("forced", output)

    def test_status(self):
        """Test the status table before and after a run."""
        self.write_project()
        result, output = self.invoke("status")
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(output.count("never_run"), 3)

        self.invoke("run")
        result, output = self.invoke("status")
        self.assertEqual(output.count("fresh"), 6)  # state column and reason column

    def test_tree(self):
        """Test the dependency tree with freshness labels."""
        self.write_project()
        result, output = self.invoke("tree", "link")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("link (stale: never_run)", output)
        self.assertIn("compile (stale: never_run)", output)

    def test_tree_unknown_task(self):
        """Test the error for an unknown task."""
        self.write_project()
        result, output = self.invoke("tree", "ghost")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Task not found: ghost", output)

    def test_commit_marks_task_current(self):
        """Test that commit records a task without running it."""
        self.write_project()
        result, output = self.invoke("commit", "docs")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Committed docs", output)

        result, output = self.invoke("run", "--dry-run")
        self.assertIn("Will execute (2 tasks)", output)
        self.assertNotIn("docs", output)

    def test_commit_unknown_task(self):
        """Test that committing an undeclared task fails."""
        self.write_project()
        result, output = self.invoke("commit", "ghost")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Task not found: ghost", output)

    def test_clean(self):
        """Test that clean removes the state file."""
        self.write_project()
        self.invoke("run")
        state_file = self.project_root / ".tasksched-state"
        self.assertTrue(state_file.exists())

        result, output = self.invoke("clean")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Removed", output)
        self.assertFalse(state_file.exists())

        result, output = self.invoke("clean")
        self.assertIn("No state file found", output)

    def test_prune(self):
        """Test that prune drops records of removed tasks only."""
        self.write_project()
        self.invoke("run")
        write_file(self.project_root / "tasksched.yaml", "tasks:\n  docs:\n    file_dep: [README]\n")

        result, output = self.invoke("prune")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Pruned 2 record(s)", output)
        state = json.loads((self.project_root / ".tasksched-state").read_text())
        self.assertEqual(list(state), ["docs"])

        result, output = self.invoke("prune")
        self.assertIn("Nothing to prune", output)

    def test_project_config_moves_state_file(self):
        """Test that state_file from .tasksched-config.yml is honoured."""
        self.write_project()
        write_file(self.project_root / ".tasksched-config.yml", "state_file: build/state.json\n")
        result, output = self.invoke("run")
        self.assertEqual(result.exit_code, 0, output)
        self.assertTrue((self.project_root / "build" / "state.json").exists())
        self.assertFalse((self.project_root / ".tasksched-state").exists())

    def test_batched_state_is_complete_after_run(self):
        """Test that a partial last batch is still written when the run ends."""
        self.write_project()
        write_file(self.project_root / ".tasksched-config.yml", "batch_size: 2\n")
        result, output = self.invoke("run")
        self.assertEqual(result.exit_code, 0, output)
        state = json.loads((self.project_root / ".tasksched-state").read_text())
        self.assertEqual(sorted(state), ["compile", "docs", "link"])


if __name__ == "__main__":
    unittest.main()
