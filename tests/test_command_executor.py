import os
import shutil
import tempfile
import unittest
from unittest.mock import patch, MagicMock
from ffdroid.errors import BuildError
from ffdroid.utils.command_executor import run_shell_command, run_logged_command

class TestRunShellCommand(unittest.TestCase):

    @patch("ffdroid.utils.command_executor.subprocess.run")
    def test_capture(self, mock_run):
        mock_run.return_value = MagicMock(stdout="out", stderr="err", returncode=3)
        self.assertEqual(run_shell_command(["make"], cwd="/src"), ("out", "err", 3))
        self.assertEqual(mock_run.call_args[1]["cwd"], "/src")

    @patch("ffdroid.utils.command_executor.subprocess.run", side_effect=FileNotFoundError(2, "No such file", "meson"))
    def test_missing_command(self, mock_run):
        stdout, stderr, returncode = run_shell_command(["meson", "setup"])
        self.assertEqual(returncode, -1)
        self.assertEqual(stdout, "")

    @patch("ffdroid.utils.command_executor.subprocess.Popen", side_effect=FileNotFoundError(2, "No such file", "ninja"))
    def test_missing_command_streaming(self, mock_popen):
        lines, process = run_shell_command(["ninja"], stream_output=True)
        self.assertEqual(list(lines), [])
        self.assertEqual(process.returncode, -1)


class TestRunLoggedCommand(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.log_path = os.path.join(self.test_dir, "logs", "ffmpeg-make.log")

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    @patch("ffdroid.utils.command_executor.run_shell_command")
    def test_output_goes_to_log(self, mock_run):
        mock_run.return_value = (iter(["CC libavcodec/utils.o\n", "LD libavcodec.so\n"]), MagicMock(returncode=0))

        result = run_logged_command(["make", "-j4"], self.log_path, "FFmpeg make", cwd="/src")

        self.assertEqual(result, self.log_path)
        with open(self.log_path) as f:
            self.assertEqual(f.read(), "$ make -j4\nCC libavcodec/utils.o\nLD libavcodec.so\n")
        mock_run.assert_called_once_with(["make", "-j4"], stream_output=True, env=None, cwd="/src")

    @patch("ffdroid.utils.command_executor.run_shell_command")
    def test_failure_carries_log_path(self, mock_run):
        mock_run.return_value = (iter(["error: undefined reference\n"]), MagicMock(returncode=2))

        with self.assertRaises(BuildError) as ctx:
            run_logged_command(["make"], self.log_path, "FFmpeg make", abi="x86_64")

        self.assertEqual(ctx.exception.log_paths, (self.log_path,))
        self.assertEqual(ctx.exception.abi, "x86_64")
        self.assertIn("Exit Code: 2", str(ctx.exception))

if __name__ == "__main__":
    unittest.main()
