"""Pytest configuration and shared fixtures"""

import shlex
import tempfile
import time
from typing import Dict, List, Optional

import pytest

from sshscript.core.diagnostics import MemorySink
from sshscript.core.errors import TransportError
from sshscript.core.retry import RetryPolicy
from sshscript.transport.base import BaseTransport, CommandResult, ConnectionConfig, PasswordAuth


class FakeTransport(BaseTransport):
    """In-memory transport with scripted failures

    ``echo`` prints its arguments, ``chmod``/``chown``/``chgrp`` update the
    attributes of stored files, everything else succeeds with no output.
    """

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.modes: Dict[str, str] = {}
        self.owners: Dict[str, str] = {}
        self.groups: Dict[str, str] = {}
        self.commands: List[str] = []
        self.call_times: List[float] = []
        self.writes: List[str] = []
        self.readers: List[object] = []
        self.closed = False
        self._failures: Dict[str, List[BaseException]] = {}
        self._always: Dict[str, BaseException] = {}
        self._write_failures: List[BaseException] = []

    def fail(self, command: str, *errors: BaseException) -> None:
        """Raise ``errors`` on the next runs of ``command``, one per run"""
        self._failures.setdefault(command, []).extend(errors)

    def fail_always(self, command: str, error: BaseException) -> None:
        self._always[command] = error

    def fail_writes(self, *errors: BaseException) -> None:
        self._write_failures.extend(errors)

    def run(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        self.commands.append(command)
        self.call_times.append(time.monotonic())

        if command in self._always:
            raise self._always[command]
        queue = self._failures.get(command)
        if queue:
            raise queue.pop(0)

        args = shlex.split(command)
        stdout = ""
        if args and args[0] == "echo":
            stdout = " ".join(args[1:]) + "\n"
        elif args and args[0] in ("chmod", "chown", "chgrp"):
            value, path = args[1], args[2]
            if path not in self.files:
                raise TransportError(f"{args[0]}: cannot access '{path}': No such file or directory",
                                     stderr="No such file or directory", exit_status=1)
            {"chmod": self.modes, "chown": self.owners, "chgrp": self.groups}[args[0]][path] = value
        return CommandResult(stdout=stdout, stderr="", success=True, exit_status=0)

    def write_file(self, reader, size: int, destination: str) -> None:
        self.readers.append(reader)
        self.writes.append(destination)
        self.call_times.append(time.monotonic())
        if self._write_failures:
            raise self._write_failures.pop(0)
        data = reader.read()
        if len(data) != size:
            raise TransportError(f"short write to {destination}: {len(data)} of {size} bytes")
        self.files[destination] = data

    def read_file(self, path: str) -> bytes:
        if path not in self.files:
            raise TransportError(f"no such file: {path}")
        return self.files[path]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def fast_policy():
    """Policy with a short retry delay so retry tests stay quick"""
    return RetryPolicy(timeout=5.0, retry_delay=0.02)


@pytest.fixture
def connection():
    return ConnectionConfig(host="192.168.1.100", user="ubuntu", auth=PasswordAuth("test_password"))


@pytest.fixture
def sample_script_data():
    """Sample script configuration"""
    return {
        "connection": {
            "host": "192.168.1.100",
            "port": 22,
            "user": "ubuntu",
            "password": "test_password",
        },
        "timeout": "1m",
        "retry_delay": "1s",
        "exec": [
            {"lifecycle": "create", "commands": ["echo installing", "echo installed"]},
            {"lifecycle": "read", "commands": ["echo state"]},
            {"lifecycle": "destroy", "commands": ["echo removed"]},
        ],
        "file": [
            {"content": "hello", "destination": "/tmp/f", "permissions": "644"},
        ],
    }
