"""Remote command execution with concurrent stdout/stderr draining.

Both pipes are drained by their own task for the whole life of the command.
Reading only one of them lets the remote process block on the other once
its window fills, and the command never exits.
"""

import asyncio
import codecs
import logging
import sys
from dataclasses import dataclass
from typing import BinaryIO, List, Optional

import asyncssh

from rke2_bootstrap.utils.errors import CommandExecutionError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class CommandResult:
    """Captured output of one finished remote command."""

    stdout: bytes
    stderr: bytes
    exit_status: int = 0

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class _TextSink:
    """Decodes remote bytes for a text stream that has no binary buffer."""

    def __init__(self, stream):
        self.stream = stream
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def write(self, data: bytes) -> None:
        self.stream.write(self._decoder.decode(data))

    def flush(self) -> None:
        self.stream.flush()


def _local_sink(stream):
    """Binary side of a local text stream such as sys.stdout."""
    buffer = getattr(stream, "buffer", None)
    if buffer is not None:
        return buffer
    return _TextSink(stream)


async def _drain(reader, buffer: List[bytes], echo: Optional[BinaryIO]) -> None:
    """Copy a remote pipe into buffer until EOF, echoing each chunk if asked."""
    while True:
        chunk = await reader.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        buffer.append(chunk)
        if echo is not None:
            echo.write(chunk)
            echo.flush()


async def execute(
    conn,
    command: str,
    stream: bool = False,
    stdout: Optional[BinaryIO] = None,
    stderr: Optional[BinaryIO] = None,
) -> CommandResult:
    """Run a command in a fresh channel and capture both output streams.

    Args:
        conn: Connected asyncssh.SSHClientConnection
        command: Command line to run on the remote host
        stream: Also write output live to the local stdout/stderr
        stdout: Binary sink for streamed stdout (default: sys.stdout)
        stderr: Binary sink for streamed stderr (default: sys.stderr)

    Returns:
        CommandResult with the complete stdout and stderr bytes

    Raises:
        CommandExecutionError: If the command can't start or exits non-zero
    """
    out_echo = err_echo = None
    if stream:
        out_echo = stdout or _local_sink(sys.stdout)
        err_echo = stderr or _local_sink(sys.stderr)

    try:
        process = await conn.create_process(command, encoding=None)
    except (OSError, asyncssh.Error) as e:
        raise CommandExecutionError(
            f"unable to start command {command!r}: {e}", command=command
        ) from e

    out_chunks: List[bytes] = []
    err_chunks: List[bytes] = []

    # Drains must be running before we wait on the channel
    drains = [
        asyncio.ensure_future(_drain(process.stdout, out_chunks, out_echo)),
        asyncio.ensure_future(_drain(process.stderr, err_chunks, err_echo)),
    ]

    try:
        try:
            process.stdin.write_eof()
        except BrokenPipeError:
            logger.debug(f"Command exited before stdin EOF: {command!r}")
        await process.wait_closed()
        await asyncio.gather(*drains)
    except (OSError, asyncssh.Error) as e:
        raise CommandExecutionError(
            f"command {command!r} failed: {e}", command=command
        ) from e
    finally:
        for task in drains:
            if not task.done():
                task.cancel()
        process.close()

    result_stdout = b"".join(out_chunks)
    result_stderr = b"".join(err_chunks)
    exit_status = process.exit_status

    if exit_status != 0:
        # asyncssh reports -1 for a signal and None when nothing was sent
        if process.exit_signal:
            detail = f"killed by signal {process.exit_signal[0]}"
        elif exit_status is None:
            detail = "no exit status received"
        else:
            detail = f"exit status {exit_status}"
        raise CommandExecutionError(
            f"command {command!r} failed ({detail})",
            command=command,
            exit_status=exit_status,
            stdout=result_stdout,
            stderr=result_stderr,
        )

    logger.debug(
        f"Command finished: {command!r} "
        f"(stdout {len(result_stdout)}B, stderr {len(result_stderr)}B)"
    )
    return CommandResult(stdout=result_stdout, stderr=result_stderr)
