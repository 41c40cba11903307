"""Environment variable loading and expansion"""

import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional

from sshscript.core.errors import ConfigError

logger = logging.getLogger(__name__)

_BRACED = re.compile(r"\$\{([^}]+)\}")
_BARE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")


class EnvManager:
    """Environment variables for a script: system env, env files, and direct overrides"""

    def __init__(self, base: Optional[Mapping[str, str]] = None):
        """Initialize environment manager

        Args:
            base: Starting variables (default: the process environment)
        """
        self.env: Dict[str, str] = dict(os.environ if base is None else base)

    def get(self, name: str, default: str = "") -> str:
        return self.env.get(name, default)

    def update(self, variables: Mapping[str, Any]) -> None:
        self.env.update({key: str(value) for key, value in variables.items()})

    def load_file(self, file_path: str) -> Dict[str, str]:
        """Load KEY=VALUE lines from a .env file

        Blank lines and ``#`` comments are skipped; matching single or double
        quotes around a value are removed.

        Returns:
            Dictionary of loaded variables (empty if the file is missing)
        """
        file_path = os.path.expanduser(file_path)
        variables: Dict[str, str] = {}

        if not os.path.exists(file_path):
            logger.warning(f"Environment file not found: {file_path}")
            return variables

        with open(file_path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].lstrip()

                if "=" not in line:
                    logger.warning(f"Invalid line in {file_path}:{line_num}: {line}")
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()

                if value and value[0] in ('"', "'"):
                    quote = value[0]
                    if len(value) > 1 and value.endswith(quote):
                        value = value[1:-1]
                    else:
                        logger.warning(f"Unclosed quote in {file_path}:{line_num}")

                variables[key] = value

        logger.info(f"Loaded {len(variables)} variables from {file_path}")
        return variables

    def load_files(self, file_paths: List[str]) -> Dict[str, str]:
        """Load several .env files; later files override earlier ones"""
        merged: Dict[str, str] = {}
        for file_path in file_paths:
            merged.update(self.load_file(file_path))
        return merged

    def expand_value(self, value: Any) -> Any:
        """Expand variables in a string

        Supports ``$VAR``, ``${VAR}``, ``${VAR:-default}`` and
        ``${VAR:?message}``. Unknown plain references are left untouched.

        Raises:
            ConfigError: For ``${VAR:?message}`` when VAR is not set
        """
        if not isinstance(value, str):
            return value

        def replace_braced(match):
            expr = match.group(1)
            if ":-" in expr:
                name, default = expr.split(":-", 1)
                return self.env.get(name.strip(), default)
            if ":?" in expr:
                name, message = expr.split(":?", 1)
                name = name.strip()
                if name not in self.env:
                    raise ConfigError(f"Required variable not set: {name} ({message})")
                return self.env[name]
            return self.env.get(expr.strip(), match.group(0))

        result = _BRACED.sub(replace_braced, value)
        return _BARE.sub(lambda m: self.env.get(m.group(1), m.group(0)), result)

    def expand(self, data: Any) -> Any:
        """Recursively expand variables in dicts, lists and strings"""
        if isinstance(data, dict):
            return {key: self.expand(item) for key, item in data.items()}
        if isinstance(data, list):
            return [self.expand(item) for item in data]
        return self.expand_value(data)
