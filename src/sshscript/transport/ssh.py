"""SSH/SFTP transport implementation"""

import io
import logging
import socket
import threading
from typing import Any, BinaryIO, Dict, Optional

import paramiko
from paramiko import AutoAddPolicy, SSHClient, WarningPolicy

from sshscript.core.errors import (
    FATAL_AUTH_MARKER,
    AuthenticationError,
    CommandTimeout,
    TransportError,
)
from .base import BaseTransport, CommandResult, ConnectionConfig, PasswordAuth, PrivateKeyAuth

logger = logging.getLogger(__name__)

# Errors paramiko raises once a session is established
_SESSION_ERRORS = (paramiko.SSHException, OSError, EOFError)

_KEY_CLASSES = (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey)


def load_private_key(key_text: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """Parse private key text, trying each supported key type

    Raises:
        AuthenticationError: If no key type accepts the text
    """
    errors = []
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(key_text), password=passphrase)
        except paramiko.PasswordRequiredException:
            raise AuthenticationError("private key is encrypted and no passphrase was given")
        except (paramiko.SSHException, ValueError) as e:
            errors.append(f"{key_class.__name__}: {e}")
    raise AuthenticationError(f"unable to parse private key ({'; '.join(errors)})")


class SSHTransport(BaseTransport):
    """SSH command execution and SFTP uploads to a single host"""

    def __init__(self, connection: ConnectionConfig, skip_host_verification: bool = False):
        """Initialize SSH transport

        The connection is opened lazily on first use and re-opened if it drops.

        Args:
            connection: Host, port, user and credentials
            skip_host_verification: Only warn about unknown host keys (insecure, for testing only)
        """
        self.connection = connection
        self.skip_host_verification = skip_host_verification
        self._client: Optional[SSHClient] = None
        self._lock = threading.Lock()  # Protect the client for concurrent access
        if skip_host_verification:
            logger.warning("SSH host key verification is DISABLED - only use for testing!")

    def _connect_kwargs(self) -> Dict[str, Any]:
        """Build the keyword arguments for paramiko SSHClient.connect()"""
        conn = self.connection
        kwargs: Dict[str, Any] = {
            "hostname": conn.host,
            "port": conn.port,
            "username": conn.user,
            "timeout": conn.connect_timeout,
            "banner_timeout": conn.connect_timeout,
            "auth_timeout": conn.connect_timeout,
            # Only the configured credential is offered
            "allow_agent": False,
            "look_for_keys": False,
        }
        if isinstance(conn.auth, PasswordAuth):
            kwargs["password"] = conn.auth.password
            logger.debug(f"Auth method for {conn.address}: password")
        elif isinstance(conn.auth, PrivateKeyAuth):
            kwargs["pkey"] = load_private_key(conn.auth.private_key, conn.auth.passphrase)
            logger.debug(f"Auth method for {conn.address}: private key")
        return kwargs

    def _get_client(self) -> SSHClient:
        """Return the live SSH client, connecting if needed"""
        with self._lock:
            if self._client is not None:
                transport = self._client.get_transport()
                if transport is not None and transport.is_active():
                    return self._client
                logger.debug(f"SSH transport to {self.connection.address} inactive, reconnecting")
                self._close_client()

            client = SSHClient()
            try:
                client.load_system_host_keys()
            except OSError as e:
                logger.debug(f"Could not load system host keys: {e}")

            if self.skip_host_verification:
                client.set_missing_host_key_policy(WarningPolicy())
            else:
                client.set_missing_host_key_policy(AutoAddPolicy())

            conn = self.connection
            try:
                logger.debug(f"Connecting to {conn.user}@{conn.address}")
                client.connect(**self._connect_kwargs())
            except paramiko.AuthenticationException as e:
                client.close()
                logger.error(f"Authentication to {conn.user}@{conn.address} failed: {e}")
                raise AuthenticationError(
                    f"unable to authenticate as {conn.user}@{conn.address}: {e}, {FATAL_AUTH_MARKER}"
                ) from e
            except AuthenticationError:
                client.close()
                raise
            except _SESSION_ERRORS as e:
                client.close()
                logger.error(f"Failed to connect to {conn.address}: {e}")
                raise TransportError(f"failed to connect to {conn.address}: {e}") from e

            self._client = client
            logger.info(f"Connected to {conn.address}")
            return client

    def _close_client(self) -> None:
        if self._client is None:
            return
        try:
            self._client.close()
        except Exception as e:
            logger.warning(f"Error closing SSH connection: {e}")
        self._client = None

    def _drop_client(self) -> None:
        with self._lock:
            self._close_client()

    def run(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        client = self._get_client()
        logger.debug(f"Executing on {self.connection.host}: {command}")

        stdout = None
        try:
            stdin, stdout, stderr = client.exec_command(command, timeout=timeout)
            stdin.close()
            stdout_str = stdout.read().decode("utf-8", errors="replace")
            stderr_str = stderr.read().decode("utf-8", errors="replace")
            return_code = stdout.channel.recv_exit_status()
        except socket.timeout as e:
            if stdout is not None:
                stdout.channel.close()
            raise CommandTimeout(f"command timed out after {timeout}s: {command}") from e
        except _SESSION_ERRORS as e:
            self._drop_client()
            raise TransportError(f"failed to run command on {self.connection.address}: {e}") from e

        logger.debug(f"Command completed with return code: {return_code}")
        if return_code != 0:
            raise TransportError(
                f"process exited with status {return_code}",
                stdout=stdout_str,
                stderr=stderr_str,
                exit_status=return_code,
            )
        return CommandResult(stdout=stdout_str, stderr=stderr_str, success=True, exit_status=return_code)

    def _open_sftp(self) -> paramiko.SFTPClient:
        client = self._get_client()
        try:
            return client.open_sftp()
        except _SESSION_ERRORS as e:
            self._drop_client()
            raise TransportError(f"failed to open SFTP session on {self.connection.address}: {e}") from e

    def write_file(self, reader: BinaryIO, size: int, destination: str) -> None:
        sftp = self._open_sftp()
        try:
            attrs = sftp.putfo(reader, destination, file_size=size, confirm=True)
        except _SESSION_ERRORS as e:
            raise TransportError(f"failed to write {self.connection.host}:{destination}: {e}") from e
        finally:
            sftp.close()

        if attrs is not None and attrs.st_size is not None and attrs.st_size != size:
            raise TransportError(
                f"short write to {self.connection.host}:{destination}: {attrs.st_size} of {size} bytes"
            )
        logger.debug(f"Wrote {size} bytes to {self.connection.host}:{destination}")

    def read_file(self, path: str) -> bytes:
        sftp = self._open_sftp()
        try:
            with sftp.open(path, "rb") as f:
                return f.read()
        except _SESSION_ERRORS as e:
            raise TransportError(f"failed to read {self.connection.host}:{path}: {e}") from e
        finally:
            sftp.close()

    def close(self) -> None:
        """Close the SSH connection"""
        self._drop_client()
        logger.info("Closed SSH connection")
