from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from activities.supervisor import OutputChunk, ProcessExited, ProcessSupervisor, SpawnFailed

ENV = {"PATH": os.defpath, "HOME": str(Path.home())}


async def collect(handle):
    return [event async for event in handle.events()]


def script(code: str) -> list[str]:
    return ["-c", code]


@pytest.mark.asyncio
async def test_streams_output_then_exit(tmp_path: Path) -> None:
    handle = await ProcessSupervisor().start(
        sys.executable,
        script("import sys; print('out'); print('err', file=sys.stderr)"),
        cwd=tmp_path,
        env=ENV,
    )
    events = await collect(handle)

    chunks = [e for e in events if isinstance(e, OutputChunk)]
    assert "".join(c.text for c in chunks if c.stream == "stdout") == "out\n"
    assert "".join(c.text for c in chunks if c.stream == "stderr") == "err\n"
    assert events[-1] == ProcessExited(0)
    assert sum(isinstance(e, ProcessExited) for e in events) == 1


@pytest.mark.asyncio
async def test_nonzero_exit_code_is_reported(tmp_path: Path) -> None:
    handle = await ProcessSupervisor().start(sys.executable, script("raise SystemExit(7)"), tmp_path, ENV)
    events = await collect(handle)
    assert events == [ProcessExited(7)]


@pytest.mark.asyncio
async def test_missing_executable_reports_spawn_failure_once(tmp_path: Path) -> None:
    handle = await ProcessSupervisor().start(str(tmp_path / "no-such-agent"), [], tmp_path, ENV)
    events = await collect(handle)

    assert len(events) == 1
    assert isinstance(events[0], SpawnFailed)
    assert events[0].message
    assert handle.kill() is False


@pytest.mark.asyncio
async def test_missing_working_directory_is_a_spawn_failure(tmp_path: Path) -> None:
    handle = await ProcessSupervisor().start(sys.executable, script("pass"), tmp_path / "gone", ENV)
    events = await collect(handle)
    assert len(events) == 1 and isinstance(events[0], SpawnFailed)


@pytest.mark.asyncio
async def test_stdin_is_closed(tmp_path: Path) -> None:
    handle = await ProcessSupervisor().start(
        sys.executable, script("import sys; print(repr(sys.stdin.read()))"), tmp_path, ENV,
    )
    events = await collect(handle)
    assert "".join(e.text for e in events if isinstance(e, OutputChunk)).strip() == "''"


@pytest.mark.asyncio
async def test_child_sees_only_given_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SECRET_THING", "leaked")
    handle = await ProcessSupervisor().start(
        sys.executable,
        script("import os; print(os.environ.get('SECRET_THING', 'absent'))"),
        tmp_path,
        ENV,
    )
    events = await collect(handle)
    assert "".join(e.text for e in events if isinstance(e, OutputChunk)).strip() == "absent"


@pytest.mark.asyncio
async def test_multibyte_output_survives_chunking(tmp_path: Path) -> None:
    handle = await ProcessSupervisor(queue_size=2).start(
        sys.executable,
        script("import sys; sys.stdout.buffer.write(('✓' * 5000).encode()); sys.stdout.flush()"),
        tmp_path,
        ENV,
    )
    events = await collect(handle)
    assert "".join(e.text for e in events if isinstance(e, OutputChunk)) == "✓" * 5000


@pytest.mark.asyncio
async def test_kill_running_process(tmp_path: Path) -> None:
    handle = await ProcessSupervisor().start(sys.executable, script("import time; time.sleep(30)"), tmp_path, ENV)
    assert handle.running
    assert handle.kill() is True

    events = await collect(handle)
    assert isinstance(events[-1], ProcessExited)
    assert events[-1].exit_code != 0


@pytest.mark.asyncio
async def test_kill_after_exit_is_noop(tmp_path: Path) -> None:
    handle = await ProcessSupervisor().start(sys.executable, script("pass"), tmp_path, ENV)
    await collect(handle)
    assert handle.kill() is False


@pytest.mark.asyncio
async def test_aclose_kills_and_reaps_process(tmp_path: Path) -> None:
    handle = await ProcessSupervisor().start(sys.executable, script("import time; time.sleep(30)"), tmp_path, ENV)
    assert handle.running

    await handle.aclose()

    assert not handle.running
    assert handle._process.returncode is not None
