"""Remote recording storage and safe in-place replacement."""

from callredact.remote.paths import build_target_path, resolve_remote_path, temp_path_for
from callredact.remote.replace import RemoteReplaceWorkflow, ReplaceResult
from callredact.remote.sftp import RemoteSession, RemoteStorage, SftpSession, SftpStorage
from callredact.remote.single_flight import (
    LocalSingleFlight,
    RedisSingleFlight,
    SingleFlight,
)

__all__ = [
    "LocalSingleFlight",
    "RedisSingleFlight",
    "RemoteReplaceWorkflow",
    "RemoteSession",
    "RemoteStorage",
    "ReplaceResult",
    "SftpSession",
    "SftpStorage",
    "SingleFlight",
    "build_target_path",
    "resolve_remote_path",
    "temp_path_for",
]
