import logging
import os
import signal
import subprocess
import sys
from typing import Any, Dict

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


def new_process_group_kwargs() -> Dict[str, Any]:
    """Popen kwargs that put the child in its own group so the tree can be killed."""
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _signal_group(process: subprocess.Popen, sig: int):
    try:
        os.killpg(os.getpgid(process.pid), sig)
    except (ProcessLookupError, PermissionError):
        # Group already gone, fall back to the direct child
        try:
            process.send_signal(sig)
        except ProcessLookupError:
            pass


def _taskkill(process: subprocess.Popen):
    subprocess.run(
        ["taskkill", "/F", "/T", "/PID", str(process.pid)],
        capture_output=True,
    )


def terminate_process_tree(process: subprocess.Popen, grace_seconds: float = 2.0) -> bool:
    """Terminates a process and its children: terminate, wait, then kill.

    Returns True if the process had to be force-killed.
    """
    if process.poll() is not None:
        return False

    if IS_WINDOWS:
        process.terminate()
    else:
        _signal_group(process, signal.SIGTERM)

    try:
        process.wait(timeout=grace_seconds)
        return False
    except subprocess.TimeoutExpired:
        logger.warning(f"Process {process.pid} ignored termination, killing")

    if IS_WINDOWS:
        _taskkill(process)
        process.kill()
    else:
        _signal_group(process, signal.SIGKILL)
    process.wait()
    return True
