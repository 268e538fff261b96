"""Subprocess transport for the Claude CLI stream-json protocol.

Spawns the ``claude`` CLI with stream-json input and output, writes one
JSON object per line to its stdin and decodes its stdout on a background
thread into a bounded queue the session drains.
"""

import collections
import json
import logging
import os
import queue
import subprocess
import threading
from typing import Any, Deque, Dict, List, Optional

from .control import ControlResponse
from .env import resolve_cli_path, resolve_max_turns, resolve_permission_mode, resolve_queue_size
from .errors import CLIConnectionError, ProcessError, ProcessNotFoundError, ProtocolDecodeError
from .options import AgentOptions
from .trace import wire_trace
from .types import Message, decode
from .wire import encode_line

logger = logging.getLogger(__name__)


# --verbose must come before --output-format for stream-json to work
BASE_CLI_ARGS = [
    "--verbose",
    "--print",
    "--output-format", "stream-json",
    "--input-format", "stream-json",
]

ENTRYPOINT = "sdk-py"
STDERR_TAIL_LINES = 50

# Seconds between checks of the closing flag while the queue is full
_PUT_POLL_INTERVAL = 0.1

_EOF = object()


def build_cli_args(options: AgentOptions, cli_path: str) -> List[str]:
    """Build the CLI command line for a session."""
    args = [cli_path] + BASE_CLI_ARGS

    if options.model:
        args.extend(["--model", options.model])
    if options.fallback_model:
        args.extend(["--fallback-model", options.fallback_model])

    permission_mode = resolve_permission_mode(options.permission_mode)
    if permission_mode:
        args.extend(["--permission-mode", permission_mode.value])
    if options.allow_dangerously_skip_permissions:
        args.append("--allow-dangerously-skip-permissions")

    if options.system_prompt:
        args.extend(["--system-prompt", options.system_prompt])
    if options.append_system_prompt:
        args.extend(["--append-system-prompt", options.append_system_prompt])

    max_turns = resolve_max_turns(options.max_turns)
    if max_turns is not None:
        args.extend(["--max-turns", str(max_turns)])
    if options.max_budget_usd is not None:
        args.extend(["--max-budget-usd", str(options.max_budget_usd)])
    if options.betas:
        args.extend(["--betas", " ".join(options.betas)])

    # Tool configuration
    if options.allowed_tools:
        args.extend(["--allowedTools", " ".join(options.allowed_tools)])
    if options.disallowed_tools:
        args.extend(["--disallowedTools", " ".join(options.disallowed_tools)])
    for directory in options.add_dirs or []:
        args.extend(["--add-dir", directory])

    # Only external servers go to --mcp-config; in-process servers are
    # announced over the control channel after spawn
    external = options.external_mcp_servers
    if external:
        mcp_config = {"mcpServers": {name: cfg.to_dict() for name, cfg in external.items()}}
        args.extend(["--mcp-config", json.dumps(mcp_config)])
    if options.strict_mcp_config:
        args.append("--strict-mcp-config")

    if options.agents:
        agents = {name: defn.to_dict() for name, defn in options.agents.items()}
        args.extend(["--agents", json.dumps(agents)])
    if options.agent:
        args.extend(["--agent", options.agent])

    # Session management
    if options.continue_conversation:
        args.append("--continue")
    if options.resume:
        args.extend(["--resume", options.resume])
    if options.fork_session:
        args.append("--fork-session")
    if options.session_id:
        args.extend(["--session-id", options.session_id])
    if options.setting_sources:
        args.extend(["--setting-sources", ",".join(options.setting_sources)])
    if options.settings_path:
        args.extend(["--settings", options.settings_path])

    if options.include_partial_messages:
        args.append("--include-partial-messages")
    if options.replay_user_messages:
        args.append("--replay-user-messages")

    if options.output_format:
        schema = options.output_format.final_schema()
        if schema is not None:
            args.extend(["--json-schema", json.dumps(schema)])

    return args


def build_process_env(options: AgentOptions) -> Dict[str, str]:
    """Environment for the CLI process: os.environ plus option overrides."""
    env = dict(os.environ)
    env.update(options.env)
    env["CLAUDE_CODE_ENTRYPOINT"] = ENTRYPOINT
    if options.max_thinking_tokens is not None:
        env["MAX_THINKING_TOKENS"] = str(options.max_thinking_tokens)
    if options.user:
        env["CLAUDE_CODE_USER"] = options.user
    return env


class SubprocessCLITransport:
    """Owns one CLI subprocess and its three pipes.

    Writes are serialized by an internal lock, so any thread may call
    ``send``. Reads happen on a daemon thread that decodes each stdout line
    and queues it; a line that fails to decode is logged and skipped.
    """

    def __init__(self, options: Optional[AgentOptions] = None):
        self._options = options or AgentOptions()
        self._process: Optional[subprocess.Popen] = None
        self._write_lock = threading.Lock()
        self._process_lock = threading.Lock()

        self._queue: "queue.Queue[Any]" = queue.Queue(
            maxsize=resolve_queue_size(self._options.queue_size)
        )
        self._reader: Optional[threading.Thread] = None
        self._stderr_reader: Optional[threading.Thread] = None
        self._closing = threading.Event()
        self._eof = False
        self._terminated = False

        self._session_id: Optional[str] = None
        self._stderr_tail: Deque[str] = collections.deque(maxlen=STDERR_TAIL_LINES)

    # ==================== Properties ====================

    @property
    def session_id(self) -> Optional[str]:
        """Session id of the first message that carried one."""
        return self._session_id

    @property
    def is_running(self) -> bool:
        process = self._process
        return process is not None and process.poll() is None

    @property
    def at_eof(self) -> bool:
        """True once the end of the CLI's output has been received."""
        return self._eof

    @property
    def stderr_tail(self) -> List[str]:
        return list(self._stderr_tail)

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Spawn the CLI process and start the reader threads.

        Raises:
            ProcessNotFoundError: If the CLI cannot be found or executed.
            CLIConnectionError: If the transport was already started.
        """
        with self._process_lock:
            if self._process is not None:
                raise CLIConnectionError("Transport already started")

            cli_path = resolve_cli_path(self._options.cli_path)
            args = build_cli_args(self._options, cli_path)
            cwd = self._options.cwd or os.getcwd()

            flags_used = [a for a in args if a.startswith("--")]
            logger.debug(f"Spawning CLI: {cli_path} flags={flags_used} cwd={cwd}")
            wire_trace("transport", f"spawn: {cli_path} flags={flags_used} cwd={cwd}")

            try:
                self._process = subprocess.Popen(
                    args,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",  # Invalid bytes must not end the reader loop
                    bufsize=1,  # Line buffered
                    cwd=cwd,
                    env=build_process_env(self._options),
                )
            except OSError as e:
                raise ProcessNotFoundError(
                    f"Claude Code CLI could not be executed at '{cli_path}': {e}",
                    cli_path=cli_path,
                ) from e

            self._reader = threading.Thread(
                target=self._read_stdout, name="claude-bridge-reader", daemon=True
            )
            self._stderr_reader = threading.Thread(
                target=self._read_stderr, name="claude-bridge-stderr", daemon=True
            )
            self._reader.start()
            self._stderr_reader.start()

    def stop(self) -> None:
        """Close stdin, wait for the process to exit, then release resources.

        No reader activity continues after this returns. Safe to call more
        than once.
        """
        with self._process_lock:
            process = self._process
            if process is None or self._closing.is_set():
                return
            self._closing.set()

            with self._write_lock:
                try:
                    if process.stdin and not process.stdin.closed:
                        process.stdin.close()
                except OSError:
                    pass  # Process already gone

            try:
                process.wait(timeout=self._options.close_timeout)
            except subprocess.TimeoutExpired:
                logger.warning("CLI did not exit after stdin closed, terminating")
                self._terminated = True
                process.terminate()
                try:
                    process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    logger.warning("CLI ignored terminate, killing")
                    process.kill()
                    process.wait()

            for thread in (self._reader, self._stderr_reader):
                if thread is not None and thread is not threading.current_thread():
                    thread.join()

            for pipe in (process.stdout, process.stderr):
                if pipe is not None:
                    pipe.close()

            if process.returncode not in (0, None) and not self._terminated:
                logger.error(
                    f"CLI exited with code {process.returncode}: "
                    + "\n".join(self._stderr_tail)
                )
            else:
                logger.debug(f"CLI exited with code {process.returncode}")
            wire_trace("transport", f"exit: code={process.returncode}")

            self._eof = True

    def exit_error(self) -> Optional[ProcessError]:
        """A ProcessError describing a failed exit, or None."""
        process = self._process
        if process is None or process.returncode in (0, None):
            return None
        return ProcessError(
            "Claude Code CLI exited with an error",
            exit_code=process.returncode,
            stderr="\n".join(self._stderr_tail) or None,
        )

    # ==================== Writing ====================

    def send(self, message: Dict[str, Any]) -> None:
        """Write one message as a JSON line and flush it.

        Raises:
            CLIConnectionError: If the transport is not running or the pipe
                is broken.
        """
        line = encode_line(message)
        with self._write_lock:
            process = self._process
            if process is None or process.stdin is None or self._closing.is_set():
                raise CLIConnectionError("Transport is not running")
            try:
                process.stdin.write(line)
                process.stdin.flush()
            except (BrokenPipeError, OSError, ValueError) as e:
                raise CLIConnectionError(f"Failed to send message to CLI: {e}") from e
        wire_trace("transport", f">> {line.rstrip()}")

    def send_control_response(self, response: ControlResponse) -> None:
        self.send(response.to_dict())

    # ==================== Reading ====================

    def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Next decoded message, in the order the CLI emitted them.

        Returns:
            The message, or None if the timeout elapsed or the output has
            ended (check ``at_eof`` to tell the two apart).
        """
        if self._eof and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _EOF:
            self._eof = True
            return None
        return item

    def _put(self, item: Any) -> bool:
        """Bounded put that gives up once the transport is closing."""
        while True:
            try:
                self._queue.put(item, timeout=_PUT_POLL_INTERVAL)
                return True
            except queue.Full:
                if self._closing.is_set():
                    return False

    def _read_stdout(self) -> None:
        process = self._process
        assert process is not None and process.stdout is not None
        try:
            for raw in process.stdout:
                line = raw.strip()
                if not line:
                    continue
                wire_trace("transport", f"<< {line}")

                try:
                    message = decode(line)
                except ProtocolDecodeError as e:
                    logger.warning(f"Skipping undecodable line from CLI: {e}")
                    continue

                if self._session_id is None:
                    session_id = getattr(message, "session_id", None)
                    if session_id:
                        self._session_id = session_id

                if self._closing.is_set():
                    continue  # Drain without queueing so the process can exit
                if not self._put(message):
                    continue
        except (OSError, ValueError) as e:
            if not self._closing.is_set():
                logger.warning(f"CLI stdout read failed: {e}")
        finally:
            self._put_eof()

    def _put_eof(self) -> None:
        try:
            self._queue.put(_EOF, timeout=_PUT_POLL_INTERVAL)
        except queue.Full:
            if not self._closing.is_set():
                self._put(_EOF)

    def _read_stderr(self) -> None:
        process = self._process
        assert process is not None and process.stderr is not None
        callback = self._options.stderr
        try:
            for raw in process.stderr:
                line = raw.rstrip("\n")
                if not line:
                    continue
                self._stderr_tail.append(line)
                if callback is not None:
                    try:
                        callback(line)
                    except Exception:
                        logger.error("stderr callback raised", exc_info=True)
                else:
                    logger.debug(f"CLI stderr: {line}")
        except (OSError, ValueError):
            pass  # Pipe closed during stop()
