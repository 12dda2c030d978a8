import logging
import queue
import re
import shlex
import subprocess
import threading
import time
from typing import List, Optional
from photobooth.config.models import EncoderConfig
from photobooth.domain.errors import CommandFailed, CommandTimeout
from photobooth.domain.events import CommandStarted, CommandProgress
from photobooth.domain.models import CommandExecution, CommandOutcome
from photobooth.infrastructure.event_bus import EventBus
from photobooth.infrastructure.process import new_process_group_kwargs, terminate_process_tree

_EOF = object()

# ffmpeg progress: 'time=00:00:05.00'
TIME_REGEX = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")


def parse_progress_seconds(line: str) -> Optional[float]:
    match = TIME_REGEX.search(line)
    if not match:
        return None
    h, m, s = match.groups()
    return int(h) * 3600 + int(m) * 60 + float(s)


class _DiagnosticBuffer:
    """Keeps only the first `limit` characters of encoder output."""

    def __init__(self, limit: int):
        self.limit = limit
        self._parts: List[str] = []
        self._size = 0

    def add(self, line: str):
        if self._size >= self.limit:
            return
        chunk = line[: self.limit - self._size]
        self._parts.append(chunk)
        self._size += len(chunk)

    @property
    def truncated(self) -> bool:
        return self._size >= self.limit

    def text(self) -> str:
        return "".join(self._parts)


def _pump(stream, lines: "queue.Queue"):
    try:
        for line in stream:
            lines.put(line)
    except (OSError, ValueError):
        # Pipe closed underneath us after a forced kill
        pass
    finally:
        lines.put(_EOF)


class FFmpegRunner:
    """Runs one ffmpeg invocation at a time with a hard wall-clock bound."""

    POLL_INTERVAL = 0.25

    def __init__(self, event_bus: EventBus, config: EncoderConfig):
        self.event_bus = event_bus
        self.config = config
        self.logger = logging.getLogger(__name__)

    def build(self, *args: str) -> List[str]:
        """Constructs an ffmpeg command line from the given arguments."""
        return [self.config.ffmpeg_binary, "-hide_banner", "-nostdin", "-y", *[str(a) for a in args]]

    def run(self, command: List[str], label: str, timeout: Optional[float] = None) -> CommandExecution:
        """Executes a command; raises CommandFailed or CommandTimeout."""
        timeout = timeout if timeout is not None else self.config.command_timeout_seconds
        execution = CommandExecution(label=label, command=list(command), timeout_seconds=timeout)
        diagnostic = _DiagnosticBuffer(self.config.diagnostic_limit)
        self.logger.info(f"FFMPEG_START: {label}: {shlex.join(execution.command)}")

        start_time = time.monotonic()
        try:
            process = subprocess.Popen(
                execution.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                errors="replace",
                bufsize=1,
                **new_process_group_kwargs()
            )
        except OSError as e:
            execution.resolve(CommandOutcome.FAILED)
            execution.diagnostic = str(e)
            self.logger.error(f"FFMPEG_END: {label} status=failed (could not start: {e})")
            raise CommandFailed(label, None, str(e)) from e

        execution.process = process
        self.event_bus.publish(CommandStarted(label=label, command=execution.command, pid=process.pid))

        lines: "queue.Queue" = queue.Queue()
        reader = threading.Thread(target=_pump, args=(process.stderr, lines), daemon=True)
        reader.start()

        finished = self._await(execution, lines, diagnostic, start_time + timeout)
        execution.elapsed_seconds = time.monotonic() - start_time

        if not finished:
            execution.resolve(CommandOutcome.TIMED_OUT)
            killed = terminate_process_tree(process, self.config.kill_grace_seconds)
            reader.join(timeout=1.0)
            self._close(process)
            execution.diagnostic = diagnostic.text()
            self._note_truncation(label, diagnostic)
            self.logger.error(
                f"FFMPEG_END: {label} status=timeout bound={timeout:g}s "
                f"elapsed={execution.elapsed_seconds:.2f}s killed={killed}"
            )
            raise CommandTimeout(label, timeout)

        reader.join(timeout=1.0)
        self._close(process)
        execution.returncode = process.returncode
        execution.diagnostic = diagnostic.text()

        if process.returncode != 0:
            execution.resolve(CommandOutcome.FAILED)
            self._note_truncation(label, diagnostic)
            self.logger.error(
                f"FFMPEG_END: {label} status=failed code={process.returncode} "
                f"elapsed={execution.elapsed_seconds:.2f}s"
            )
            raise CommandFailed(label, process.returncode, execution.diagnostic)

        execution.resolve(CommandOutcome.SUCCEEDED)
        self.logger.info(f"FFMPEG_END: {label} status=completed elapsed={execution.elapsed_seconds:.2f}s")
        return execution

    def _await(self, execution: CommandExecution, lines: "queue.Queue", diagnostic: _DiagnosticBuffer, deadline: float) -> bool:
        """Drains encoder output until exit; False if the deadline passed first."""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            try:
                line = lines.get(timeout=min(self.POLL_INTERVAL, remaining))
            except queue.Empty:
                continue
            if line is _EOF:
                break
            self._observe(execution, line, diagnostic)

        try:
            execution.process.wait(timeout=max(0.0, deadline - time.monotonic()))
        except subprocess.TimeoutExpired:
            return False
        return True

    def _observe(self, execution: CommandExecution, line: str, diagnostic: _DiagnosticBuffer):
        position = parse_progress_seconds(line)
        if position is not None:
            self.logger.debug(f"FFMPEG_PROGRESS: {execution.label} time={position:.2f}s")
            self.event_bus.publish(CommandProgress(label=execution.label, position_seconds=position))
            return
        diagnostic.add(line)

    def _note_truncation(self, label: str, diagnostic: _DiagnosticBuffer):
        if diagnostic.truncated:
            self.logger.warning(f"FFMPEG_DIAGNOSTIC: {label} output cut at {diagnostic.limit} characters")

    @staticmethod
    def _close(process: subprocess.Popen):
        if process.stderr is not None:
            try:
                process.stderr.close()
            except OSError:
                pass
