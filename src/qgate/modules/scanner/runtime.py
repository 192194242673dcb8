"""Runtime helpers for invoking the scanner executable."""

from __future__ import annotations

import asyncio
import codecs
import sys
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TextIO

from qgate.errors import ErrorCode, ExecutionError

CHUNK_SIZE = 64 * 1024


@dataclass
class CommandResult:
    """Captured subprocess result."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str
    elapsed: float = 0.0


async def _drain(
    stream: asyncio.StreamReader | None,
    buffer: list[str],
    sink: TextIO | None,
) -> None:
    """Read ``stream`` until EOF, teeing decoded text into ``buffer`` and ``sink``."""
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        text = decoder.decode(chunk, final=not chunk)
        if text:
            buffer.append(text)
            if sink is not None:
                sink.write(text)
                sink.flush()
        if not chunk:
            return


async def stream_command(
    command: list[str],
    env: Mapping[str, str] | None = None,
    echo: bool = True,
    stdout_sink: TextIO | None = None,
    stderr_sink: TextIO | None = None,
) -> CommandResult:
    """
    Run a subprocess, streaming its output live while capturing it.

    Both pipes are drained concurrently with the exit wait so a child that
    writes more than a pipe buffer's worth never blocks.
    """
    started = time.perf_counter()
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
        )
    except OSError as exc:
        # Missing or non-executable binary
        raise ExecutionError(
            ErrorCode.SPAWN_FAILED, f"Failed to execute {command[0]}: {exc}"
        ) from exc

    out: list[str] = []
    err: list[str] = []
    out_sink = (stdout_sink or sys.stdout) if echo else None
    err_sink = (stderr_sink or sys.stderr) if echo else None
    await asyncio.gather(
        _drain(process.stdout, out, out_sink),
        _drain(process.stderr, err, err_sink),
        process.wait(),
    )

    return CommandResult(
        command=list(command),
        returncode=process.returncode if process.returncode is not None else 1,
        stdout="".join(out),
        stderr="".join(err),
        elapsed=time.perf_counter() - started,
    )
