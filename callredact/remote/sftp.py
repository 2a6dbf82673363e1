"""SFTP access to the PBX recording tree using asyncssh."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import asyncssh
import structlog

from callredact.config import DEFAULT_REMOTE_BASE_PATH, Settings

logger = structlog.get_logger()


class RemoteSession(Protocol):
    """File operations available inside one connected session."""

    async def upload(self, data: bytes, path: str) -> None: ...
    async def download(self, path: str) -> bytes: ...
    async def delete(self, path: str) -> None: ...
    async def rename(self, source: str, target: str) -> None: ...
    async def exists(self, path: str) -> bool: ...
    async def makedirs(self, path: str) -> None: ...


class RemoteStorage(Protocol):
    """Opens sessions against remote recording storage."""

    base_path: str

    def session(self) -> AbstractAsyncContextManager[RemoteSession]: ...


class SftpSession:
    """RemoteSession over an open asyncssh SFTP client."""

    def __init__(self, sftp: asyncssh.SFTPClient) -> None:
        self._sftp = sftp

    async def upload(self, data: bytes, path: str) -> None:
        async with self._sftp.open(path, "wb") as f:
            await f.write(data)

    async def download(self, path: str) -> bytes:
        async with self._sftp.open(path, "rb") as f:
            return await f.read()

    async def delete(self, path: str) -> None:
        await self._sftp.remove(path)

    async def rename(self, source: str, target: str) -> None:
        await self._sftp.rename(source, target)

    async def exists(self, path: str) -> bool:
        return await self._sftp.exists(path)

    async def makedirs(self, path: str) -> None:
        await self._sftp.makedirs(path, exist_ok=True)


class SftpStorage:
    """Connection settings for the recording server.

    A private key is preferred over a password when both are configured.
    """

    def __init__(
        self,
        host: str,
        username: str,
        password: str | None = None,
        private_key: str | None = None,
        passphrase: str | None = None,
        port: int = 22,
        base_path: str = DEFAULT_REMOTE_BASE_PATH,
        connect_timeout: float = 15.0,
        known_hosts: str | None = None,
    ) -> None:
        if not host or not username:
            raise ValueError("SFTP host and username are required")
        if not private_key and not password:
            raise ValueError("SFTP password or private key is required")

        self.host = host
        self.username = username
        self.port = port
        self.base_path = base_path
        self.connect_timeout = connect_timeout
        self._password = password
        self._private_key = private_key
        self._passphrase = passphrase
        self._known_hosts = known_hosts

    @classmethod
    def from_settings(cls, settings: Settings) -> SftpStorage:
        return cls(
            host=settings.sftp_host or "",
            username=settings.sftp_username or "",
            password=settings.sftp_password,
            private_key=settings.sftp_private_key,
            passphrase=settings.sftp_passphrase,
            port=settings.sftp_port,
            base_path=settings.sftp_base_path,
            connect_timeout=settings.sftp_connect_timeout_seconds,
            known_hosts=settings.sftp_known_hosts,
        )

    def connect_options(self) -> dict[str, Any]:
        """Keyword arguments for ``asyncssh.connect``."""
        options: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "connect_timeout": self.connect_timeout,
        }
        if self._known_hosts:
            options["known_hosts"] = self._known_hosts

        if self._private_key:
            key = asyncssh.import_private_key(self._private_key, self._passphrase)
            options["client_keys"] = [key]
        else:
            options["password"] = self._password
            options["client_keys"] = None
        return options

    @asynccontextmanager
    async def session(self) -> AsyncIterator[SftpSession]:
        async with asyncssh.connect(**self.connect_options()) as conn:
            async with conn.start_sftp_client() as sftp:
                yield SftpSession(sftp)

    async def test_connection(self) -> dict[str, Any]:
        """Connect and check that the base path exists.

        Never raises; failures are reported in the returned dict.
        """
        base = self.base_path.rstrip("/") or "/"
        try:
            async with self.session() as session:
                exists = await session.exists(base)
        except (OSError, asyncssh.Error) as e:
            logger.warning("sftp_connection_test_failed", host=self.host, error=str(e))
            return {"success": False, "base_path": base, "error": str(e)}

        logger.info("sftp_connection_test_passed", host=self.host, base_path_exists=exists)
        return {"success": True, "base_path": base, "base_path_exists": exists}
