"""Replace a remote recording with its redacted copy.

The sequence is upload to a hidden temp sibling, delete the original,
rename the temp onto the original path. Each step is classified on
failure:

- upload fails: nothing destructive happened; temp is cleaned up and a
  retryable RemoteTransferError is raised.
- delete fails: the original's presence is checked. If it is still there
  the temp is cleaned up and a retryable RemoteTransferError is raised.
  If it is gone the rename proceeds as if the delete had succeeded. If
  the check itself fails, the temp is kept and the error says the
  original could not be verified.
- rename fails after the original is gone: RemoteReplacePartialError.
  The temp is kept; it is the only surviving copy and is never retried
  automatically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from posixpath import dirname

import structlog

from callredact import metrics
from callredact.common.models import ReplacePhase
from callredact.exceptions import (
    RecoveryNotAllowedError,
    RedactionError,
    RemoteReplacePartialError,
    RemoteTransferError,
)
from callredact.remote.paths import temp_path_for
from callredact.remote.sftp import RemoteSession, RemoteStorage
from callredact.remote.single_flight import LocalSingleFlight, SingleFlight

logger = structlog.get_logger()


@dataclass
class ReplaceResult:
    """Outcome of a completed replacement."""

    target_path: str
    temp_path: str
    bytes_written: int
    phase: ReplacePhase = ReplacePhase.RENAMED_TEMP


@dataclass
class _Progress:
    phase: ReplacePhase = ReplacePhase.PENDING
    result: ReplaceResult | None = None
    error: RedactionError | None = field(default=None, repr=False)


class RemoteReplaceWorkflow:
    """Upload-delete-rename replacement, single-flight per target path."""

    def __init__(
        self,
        storage: RemoteStorage,
        single_flight: SingleFlight | None = None,
    ) -> None:
        self.storage = storage
        self.single_flight = single_flight or LocalSingleFlight()

    async def fetch(self, target_path: str) -> bytes:
        """Download the current recording at ``target_path``."""
        try:
            async with self.storage.session() as session:
                return await session.download(target_path)
        except Exception as e:
            raise RemoteTransferError(
                f"Download of {target_path} failed: {e}",
                target_path=target_path,
                phase=ReplacePhase.PENDING,
            ) from e

    async def replace(
        self,
        data: bytes,
        target_path: str,
        recording_id: str,
    ) -> ReplaceResult:
        """Replace ``target_path`` with ``data``.

        Raises:
            ReplaceInProgressError: Another replacement holds the path
            RemoteTransferError: Failed; the original is intact
            RemoteReplacePartialError: Original deleted, redacted copy left at temp
        """
        if not data:
            raise RemoteTransferError(
                "Refusing to upload empty audio",
                target_path=target_path,
                phase=ReplacePhase.PENDING,
            )

        temp_path = temp_path_for(target_path, recording_id)
        log = logger.bind(
            recording_id=recording_id, target_path=target_path, temp_path=temp_path
        )
        progress = _Progress()

        async with self.single_flight.hold(target_path):
            try:
                async with self.storage.session() as session:
                    result = await self._run(
                        session, data, target_path, temp_path, progress, log
                    )
            except RedactionError:
                raise
            except Exception as e:
                # Raised while connecting or closing rather than by a step.
                if progress.error is not None:
                    raise progress.error from e
                if progress.result is not None:
                    log.warning("remote_session_close_failed", error=str(e))
                    return progress.result
                metrics.inc_remote_replace_failures(ReplacePhase.PENDING.value)
                raise RemoteTransferError(
                    f"Remote session to replace {target_path} failed: {e}",
                    target_path=target_path,
                    phase=ReplacePhase.PENDING,
                ) from e

        return result

    async def _run(
        self,
        session: RemoteSession,
        data: bytes,
        target_path: str,
        temp_path: str,
        progress: _Progress,
        log: structlog.stdlib.BoundLogger,
    ) -> ReplaceResult:
        def fail(error: RedactionError) -> RedactionError:
            progress.error = error
            metrics.inc_remote_replace_failures(progress.phase.value)
            return error

        try:
            await session.makedirs(dirname(target_path))
            await session.upload(data, temp_path)
        except Exception as e:
            log.error("remote_upload_failed", error=str(e))
            await self._discard_temp(session, temp_path, log)
            raise fail(
                RemoteTransferError(
                    f"Upload of redacted audio to {temp_path} failed: {e}",
                    target_path=target_path,
                    phase=ReplacePhase.PENDING,
                    temp_path=temp_path,
                )
            ) from e

        progress.phase = ReplacePhase.UPLOADED_TEMP
        log.debug("remote_temp_uploaded", bytes=len(data))

        try:
            await session.delete(target_path)
        except Exception as e:
            try:
                original_present = await session.exists(target_path)
            except Exception as check_error:
                log.error(
                    "remote_original_state_unknown",
                    error=str(e),
                    check_error=str(check_error),
                )
                raise fail(
                    RemoteTransferError(
                        f"Delete of {target_path} failed and its presence could "
                        f"not be verified: {e}",
                        target_path=target_path,
                        phase=ReplacePhase.UPLOADED_TEMP,
                        temp_path=temp_path,
                        original_verified=False,
                    )
                ) from e

            if original_present:
                log.error("remote_delete_failed", error=str(e))
                await self._discard_temp(session, temp_path, log)
                raise fail(
                    RemoteTransferError(
                        f"Delete of original {target_path} failed: {e}",
                        target_path=target_path,
                        phase=ReplacePhase.UPLOADED_TEMP,
                        temp_path=temp_path,
                    )
                ) from e

            log.warning("remote_delete_reported_failure_but_original_gone", error=str(e))

        progress.phase = ReplacePhase.DELETED_ORIGINAL

        try:
            await session.rename(temp_path, target_path)
        except Exception as e:
            log.critical(
                "remote_replace_partial",
                error=str(e),
                action="original deleted; redacted copy remains at temp_path",
            )
            raise fail(
                RemoteReplacePartialError(
                    f"Original {target_path} was deleted but renaming "
                    f"{temp_path} onto it failed: {e}",
                    target_path=target_path,
                    temp_path=temp_path,
                    phase=ReplacePhase.DELETED_ORIGINAL,
                )
            ) from e

        progress.phase = ReplacePhase.RENAMED_TEMP
        result = ReplaceResult(
            target_path=target_path,
            temp_path=temp_path,
            bytes_written=len(data),
        )
        progress.result = result
        log.info("remote_replace_complete", bytes=len(data))
        return result

    async def _discard_temp(
        self,
        session: RemoteSession,
        temp_path: str,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        try:
            if await session.exists(temp_path):
                await session.delete(temp_path)
        except Exception as e:
            log.warning("remote_temp_cleanup_failed", error=str(e))

    async def recover(self, target_path: str, temp_path: str, recording_id: str) -> ReplaceResult:
        """Finish an interrupted replacement by renaming the temp copy into place.

        Raises:
            RecoveryNotAllowedError: The temp is missing or the target already exists
            RemoteReplacePartialError: The rename failed again
        """
        log = logger.bind(
            recording_id=recording_id, target_path=target_path, temp_path=temp_path
        )
        async with self.single_flight.hold(target_path):
            try:
                async with self.storage.session() as session:
                    if not await session.exists(temp_path):
                        raise RecoveryNotAllowedError(
                            f"Redacted copy {temp_path} no longer exists"
                        )
                    if await session.exists(target_path):
                        raise RecoveryNotAllowedError(
                            f"{target_path} already exists; refusing to overwrite it"
                        )
                    await session.rename(temp_path, target_path)
            except RedactionError:
                raise
            except Exception as e:
                log.error("remote_recovery_failed", error=str(e))
                raise RemoteReplacePartialError(
                    f"Recovery rename of {temp_path} onto {target_path} failed: {e}",
                    target_path=target_path,
                    temp_path=temp_path,
                    phase=ReplacePhase.DELETED_ORIGINAL,
                ) from e

        log.info("remote_replace_recovered")
        return ReplaceResult(target_path=target_path, temp_path=temp_path, bytes_written=0)
