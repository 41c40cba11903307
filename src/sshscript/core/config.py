"""Script configuration: connection, retry policy, lifecycle commands and files"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import yaml

from sshscript.core.env import EnvManager
from sshscript.core.errors import ConfigError
from sshscript.core.files import FileDescriptor
from sshscript.core.retry import RetryPolicy, parse_duration
from sshscript.transport.base import ConnectionConfig, PasswordAuth, PrivateKeyAuth

logger = logging.getLogger(__name__)

# Environment defaults for connection settings; an explicit value always wins
ENV_DEFAULTS = {
    "host": "SSH_HOST",
    "port": "SSH_PORT",
    "user": "SSH_USER",
    "password": "SSH_PASSWORD",
    "private_key": "SSH_PRIVATE_KEY",
}

_FILE_KEYS = ("source", "content", "destination", "permissions", "owner", "group")

# Only these settings see $VAR expansion; commands and file content go to the remote shell verbatim
_EXPANDED_KEYS = ("connection", "timeout", "retry_delay", "local_errors_fatal")
_EXPANDED_FILE_KEYS = ("source", "destination")

_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0")


class Phase(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DESTROY = "destroy"

    @classmethod
    def parse(cls, value: str) -> "Phase":
        text = str(value).strip().lower()
        if text == "delete":
            return cls.DESTROY
        try:
            return cls(text)
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ConfigError(f"invalid lifecycle {value!r}, expected one of: {valid}")


@dataclass(frozen=True)
class ExecBlock:
    lifecycle: Phase
    commands: List[str]


def _merged(settings: Mapping[str, Any], env: Mapping[str, str], key: str, strip: bool = True) -> str:
    value = settings.get(key)
    if value is None:
        value = env.get(ENV_DEFAULTS[key], "")
    # Secrets are passed through exactly as given
    return str(value).strip() if strip else str(value)


def parse_bool(key: str, value: Any) -> bool:
    """Parse a YAML bool or a "true"/"false" style string

    Raises:
        ConfigError: For anything else
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ConfigError(f"{key}: invalid boolean {value!r}, expected true or false")


def resolve_connection(settings: Mapping[str, Any], env: Mapping[str, str]) -> ConnectionConfig:
    """Build a ConnectionConfig from explicit settings with environment fallback

    Password takes precedence over a private key when both are present.

    Raises:
        ConfigError: If host or user is empty after the merge, the port is
            invalid, or no credential is available
    """
    host = _merged(settings, env, "host")
    user = _merged(settings, env, "user")
    port_text = _merged(settings, env, "port") or "22"
    password = _merged(settings, env, "password", strip=False)
    private_key = _merged(settings, env, "private_key", strip=False)

    key_file = settings.get("private_key_file")
    if not private_key and key_file:
        expanded = os.path.expanduser(str(key_file))
        try:
            with open(expanded, "r", encoding="utf-8") as f:
                private_key = f.read()
        except OSError as e:
            raise ConfigError(f"cannot read private key file {expanded}: {e}") from e

    problems = []
    if not host:
        problems.append(f"missing host: set connection.host or the {ENV_DEFAULTS['host']} environment variable")
    if not user:
        problems.append(f"missing user: set connection.user or the {ENV_DEFAULTS['user']} environment variable")
    if not password and not private_key:
        problems.append(
            f"missing credentials: set connection.password / connection.private_key "
            f"or {ENV_DEFAULTS['password']} / {ENV_DEFAULTS['private_key']}"
        )

    try:
        port = int(port_text)
        if not 0 < port < 65536:
            raise ValueError(port_text)
    except ValueError:
        problems.append(f"invalid port {port_text!r}")
        port = 22

    if problems:
        raise ConfigError("; ".join(problems))

    if password:
        auth = PasswordAuth(password)
    else:
        auth = PrivateKeyAuth(private_key, passphrase=settings.get("passphrase"))

    connect_timeout = settings.get("connect_timeout")
    kwargs = {}
    if connect_timeout is not None:
        kwargs["connect_timeout"] = parse_duration(str(connect_timeout))

    return ConnectionConfig(host=host, user=user, auth=auth, port=port, **kwargs)


class Config:
    """Script file loaded from YAML with environment expansion"""

    def __init__(self, config_file: Optional[str] = None, env_files: Optional[List[str]] = None,
                 env: Optional[Mapping[str, str]] = None, data: Optional[Dict[str, Any]] = None):
        """Load configuration from a YAML file or an already-parsed mapping

        Args:
            config_file: Path to script YAML file
            env_files: Environment files loaded before expansion
            env: Base environment (default: the process environment)
            data: Parsed configuration, used instead of ``config_file``
        """
        self.config_file = config_file
        self.env_manager = EnvManager(env)
        self.env_files = env_files or []
        self.data: Dict[str, Any] = {}

        if self.env_files:
            self.env_manager.update(self.env_manager.load_files(self.env_files))

        if data is not None:
            self.data = data
            self._prepare()
        else:
            self.load()

    def load(self) -> None:
        """Load configuration from file and apply environment variable expansion"""
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                self.data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {self.config_file}")
        except FileNotFoundError:
            logger.error(f"Configuration file not found: {self.config_file}")
            raise
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse configuration file: {e}")
            raise ConfigError(f"invalid YAML in {self.config_file}: {e}") from e

        if not isinstance(self.data, dict):
            raise ConfigError(f"{self.config_file}: top level must be a mapping")
        self._prepare()

    def _prepare(self) -> None:
        """Load env_from / env entries, then expand variables in local settings

        Expansion covers the connection, timing settings and file
        source/destination paths. Commands and inline content are left as
        written so ``$VAR`` reaches the remote shell unchanged.
        """
        self.data = dict(self.data)

        env_from = self.env_manager.expand(self.data.get("env_from") or [])
        if isinstance(env_from, str):
            env_from = [env_from]
        for file_path in env_from:
            self.env_manager.update(self.env_manager.load_file(file_path))

        env_direct = self.data.get("env", {})
        if isinstance(env_direct, list):
            env_direct = dict(item.split("=", 1) for item in env_direct if "=" in item)
        if env_direct:
            self.env_manager.update(env_direct)
            logger.info(f"Loaded {len(env_direct)} direct environment variables")

        for key in _EXPANDED_KEYS:
            if key in self.data:
                self.data[key] = self.env_manager.expand(self.data[key])

        files = self.data.get("file")
        if isinstance(files, list):
            self.data["file"] = [self._expand_file(raw) for raw in files]
        logger.debug("Applied environment variable expansion to configuration")

    def _expand_file(self, raw: Any) -> Any:
        if not isinstance(raw, dict):
            return raw
        expanded = dict(raw)
        for key in _EXPANDED_FILE_KEYS:
            if key in expanded:
                expanded[key] = self.env_manager.expand_value(expanded[key])
        return expanded

    @property
    def connection_settings(self) -> Dict[str, Any]:
        return self.data.get("connection") or {}

    @property
    def connection(self) -> ConnectionConfig:
        """Connection config; raises ConfigError when incomplete"""
        return resolve_connection(self.connection_settings, self.env_manager.env)

    @property
    def retry_policy(self) -> RetryPolicy:
        """Timing policy; null or missing settings take the defaults"""
        local_errors_fatal = self.data.get("local_errors_fatal")
        return RetryPolicy.from_strings(
            timeout=self.data.get("timeout"),
            retry_delay=self.data.get("retry_delay"),
            local_errors_fatal=True if local_errors_fatal is None
            else parse_bool("local_errors_fatal", local_errors_fatal),
        )

    @property
    def triggers(self) -> Dict[str, str]:
        return self.data.get("triggers") or {}

    @property
    def exec_blocks(self) -> List[ExecBlock]:
        blocks = []
        for raw in self.data.get("exec") or []:
            commands = raw.get("commands") or []
            if isinstance(commands, str):
                commands = [commands]
            blocks.append(ExecBlock(Phase.parse(raw.get("lifecycle", Phase.CREATE.value)), list(commands)))
        return blocks

    def commands_for(self, phase: Phase) -> List[str]:
        """All commands tagged with ``phase``, in file order"""
        commands: List[str] = []
        for block in self.exec_blocks:
            if block.lifecycle is phase:
                commands.extend(block.commands)
        return commands

    @property
    def files(self) -> List[FileDescriptor]:
        descriptors = []
        for raw in self.data.get("file") or []:
            descriptors.append(FileDescriptor(**{key: raw.get(key) for key in _FILE_KEYS}))
        return descriptors

    def problems(self) -> List[str]:
        """Collect every configuration problem without touching the network"""
        problems: List[str] = []

        try:
            self.connection
        except ConfigError as e:
            problems.append(str(e))

        for key in ("timeout", "retry_delay"):
            if self.data.get(key) is not None:
                try:
                    parse_duration(self.data[key])
                except ConfigError as e:
                    problems.append(f"{key}: {e}")

        if self.data.get("local_errors_fatal") is not None:
            try:
                parse_bool("local_errors_fatal", self.data["local_errors_fatal"])
            except ConfigError as e:
                problems.append(str(e))

        for index, raw in enumerate(self.data.get("exec") or []):
            if not isinstance(raw, dict):
                problems.append(f"exec[{index}]: must be a mapping")
                continue
            try:
                Phase.parse(raw.get("lifecycle", Phase.CREATE.value))
            except ConfigError as e:
                problems.append(f"exec[{index}]: {e}")
            commands = raw.get("commands")
            if isinstance(commands, str):
                commands = [commands]
            if not commands:
                problems.append(f"exec[{index}]: commands are required")
            elif not all(isinstance(c, str) for c in commands):
                problems.append(f"exec[{index}]: commands must be strings")

        for index, raw in enumerate(self.data.get("file") or []):
            if not isinstance(raw, dict):
                problems.append(f"file[{index}]: must be a mapping")
                continue
            unknown = set(raw) - set(_FILE_KEYS)
            if unknown:
                problems.append(f"file[{index}]: unknown keys {sorted(unknown)}")
            if not raw.get("destination"):
                problems.append(f"file[{index}]: destination is required")
            has_source = raw.get("source") is not None
            has_content = raw.get("content") is not None
            if has_source == has_content:
                problems.append(f"file[{index}]: exactly one of source or content must be set")
            for key in ("permissions", "owner", "group"):
                if raw.get(key) is not None and not isinstance(raw[key], str):
                    problems.append(f"file[{index}]: {key} must be a quoted string")

        return problems

    def validate(self) -> bool:
        """Validate configuration

        Returns:
            True if configuration is valid
        """
        problems = self.problems()
        for problem in problems:
            logger.error(problem)
        return not problems
