import os
import shlex
import subprocess
from types import SimpleNamespace
from ..cli_logger import logger
from ..errors import BuildError

def run_shell_command(command, stream_output=False, env=None, input_data=None, cwd=None):
    """
    Runs ``command`` (a list of arguments) without a shell.

    Returns ``(stdout, stderr, returncode)``. With ``stream_output`` the
    result is ``(lines, process)`` instead: ``lines`` yields stdout and
    stderr merged, and ``process.returncode`` is set once it is exhausted.
    A missing executable is logged and reported as return code -1.
    """
    try:
        if not stream_output:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors="replace",
                env=env,
                input=input_data,
                check=False,
                cwd=cwd,
            )
            return completed.stdout, completed.stderr, completed.returncode

        process = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            bufsize=1,
            env=env,
            cwd=cwd,
        )

        def _lines():
            with process.stdout:
                yield from process.stdout
            process.wait()

        return _lines(), process

    except FileNotFoundError as e:
        logger.error(f"Command not found: {e.filename}")
        if stream_output:
            return iter([]), SimpleNamespace(returncode=-1)
        return "", str(e), -1


def run_logged_command(command, log_path, description, env=None, cwd=None, abi=None, verbose=False):
    """Run one build step with its combined output captured in ``log_path``.

    A non-zero exit raises BuildError carrying the log path.
    """
    os.makedirs(os.path.dirname(log_path), exist_ok=True)
    printable = shlex.join(command)
    logger.info(f"  - {description}: {printable}")

    lines, process = run_shell_command(command, stream_output=True, env=env, cwd=cwd)
    with open(log_path, "w") as log:
        log.write(f"$ {printable}\n")
        for line in lines:
            log.write(line)
            if verbose:
                logger.step_info(line.rstrip(), indent=4)

    if process.returncode != 0:
        raise BuildError(
            f"{description} failed (Exit Code: {process.returncode}). See {log_path}",
            abi=abi,
            log_paths=[log_path],
        )
    return log_path
