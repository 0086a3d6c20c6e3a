"""
Directory Lister - 원격 디렉토리 목록 조회

단일 경로에 대해 한 번의 목록 요청만 수행합니다.
필터링/재귀 없음. glob 확장은 원격 측이 담당합니다.
"""

from typing import List
import logging

from .channel import ChannelError, ListResult, RemoteChannel, RemoteEntry, RemoteSession
from .errors import SweepAbortedError

logger = logging.getLogger(__name__)


def byte_count_binary(size: int) -> str:
    """바이트 수를 KiB/MiB 단위 문자열로 변환"""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}iB"


class DirectoryLister:
    """원격 디렉토리 목록 조회기"""

    def __init__(self, channel: RemoteChannel):
        self.channel = channel

    async def list_raw(self, session: RemoteSession, path: str) -> ListResult:
        """
        목록 요청 후 원본 응답 반환

        Raises:
            ValueError: 세션 없음 또는 상대 경로
            SweepAbortedError: 원격 측 오류 (빈 디렉토리와 없는 디렉토리를 구분)
        """
        if session is None:
            raise ValueError("A remote session is required for listing")
        if not path.startswith("/"):
            raise ValueError(f"Remote path must be absolute: {path}")

        try:
            result = await self.channel.list_directory(session, path)
        except ChannelError as e:
            raise SweepAbortedError(path, e.message) from e

        if result.error:
            raise SweepAbortedError(path, result.error)

        return result

    async def list(self, session: RemoteSession, path: str) -> List[RemoteEntry]:
        """원격 디렉토리 항목 반환 (원격 순서 그대로)"""
        result = await self.list_raw(session, path)
        logger.debug(f"Listed {path}: {len(result.entries)} entries")
        return list(result.entries)


def summarize(result: ListResult) -> List[str]:
    """
    목록 결과를 사람이 읽는 형식으로 정리

    첫 줄은 "Path Info" 헤더, 이후 항목별 한 줄
    (mode, size, 원격 시간대 기준 수정 시각, name)
    """
    count = len(result.entries)
    total_size = sum(entry.size for entry in result.entries)
    noun = "item" if count == 1 else "items"
    lines = [f"Path Info: {result.path} ({count} {noun}, {byte_count_binary(total_size)})"]

    for entry in result.entries:
        modified = entry.modified_at().strftime("%Y-%m-%d %H:%M:%S %z %Z").strip()
        lines.append(f"{entry.mode:<13} {entry.size:<13d} {modified:<32} {entry.name:<20}".rstrip())

    return lines
