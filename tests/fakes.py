"""In-memory RemoteChannel used across the collector tests."""

import gzip

from hostsurvey.collectors.channel import (
    ChannelError,
    DownloadResult,
    ListResult,
    RemoteChannel,
    RemoteEntry,
    RemoteSession,
)


def file_entry(name, size=0):
    return RemoteEntry(name=name, size=size, mode="-rw-r--r--", is_dir=False, mod_time=1700000000)


def dir_entry(name):
    return RemoteEntry(name=name, size=4096, mode="drwxr-xr-x", is_dir=True, mod_time=1700000000)


def user_session(address="10.0.0.5:22"):
    return RemoteSession(session_id="s-user", remote_address=address, hostname="web01",
                         username="alice", uid="1000", gid="1000")


def root_session(address="10.0.0.5:22"):
    return RemoteSession(session_id="s-root", remote_address=address, hostname="web01",
                         username="root", uid="0", gid="0")


class FakeChannel(RemoteChannel):
    """
    listings: path -> list of RemoteEntry (missing path -> "no such file or directory" error)
    files: path -> bytes (sent gzip-encoded) or a ready DownloadResult (missing path -> exists=False)
    list_errors / download_errors: path -> error string or exception to raise
    """

    def __init__(self, listings=None, files=None, list_errors=None, download_errors=None):
        self.listings = listings or {}
        self.files = files or {}
        self.list_errors = list_errors or {}
        self.download_errors = download_errors or {}
        self.list_calls = []
        self.download_calls = []

    async def list_directory(self, session: RemoteSession, path: str) -> ListResult:
        self.list_calls.append(path)
        error = self.list_errors.get(path)
        if isinstance(error, Exception):
            raise error
        if error:
            return ListResult(path=path, error=error)
        if path not in self.listings:
            return ListResult(path=path, error=f"open {path}: no such file or directory")
        return ListResult(path=path, entries=list(self.listings[path]),
                          timezone="UTC", timezone_offset=0)

    async def download_file(self, session: RemoteSession, path: str) -> DownloadResult:
        self.download_calls.append(path)
        error = self.download_errors.get(path)
        if isinstance(error, Exception):
            raise error
        if error:
            return DownloadResult(path=path, error=error)
        value = self.files.get(path)
        if value is None:
            return DownloadResult(path=path, exists=False)
        if isinstance(value, DownloadResult):
            return value
        return DownloadResult(path=path, exists=True, encoder="gzip", data=gzip.compress(value))


def not_found_error(path):
    return ChannelError(f"rpc error: code = Unknown desc = open {path}: no such file or directory")
