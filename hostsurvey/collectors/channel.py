"""
Remote Channel - 원격 세션/전송 경계

수집 엔진이 소비하는 원격 채널 인터페이스와 데이터 모델:
- RemoteSession: 대상 엔드포인트 식별 (태그 + 권한 속성)
- RemoteEntry: 디렉토리 목록 항목
- RemoteChannel: listDirectory / downloadFile 추상화
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Dict, List, Optional


class ErrorKind(Enum):
    """수집 오류 분류"""
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"
    FATAL = "fatal"


NOT_FOUND_MARKER = "no such file or directory"


def classify_error_message(message: str) -> ErrorKind:
    """
    오류 메시지 문자열로 오류 종류 추정 (호환용)

    전송 계층이 구조화된 오류 종류를 주지 못할 때만 사용합니다.
    "없음"과 "그 외 실패"를 구분하는 것이 목적입니다.
    """
    if message and NOT_FOUND_MARKER in message.lower():
        return ErrorKind.NOT_FOUND
    return ErrorKind.UNEXPECTED


class ChannelError(Exception):
    """전송 계층 오류 (kind가 None이면 메시지로 분류)"""

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind

    def resolved_kind(self) -> ErrorKind:
        return self.kind or classify_error_message(self.message)


@dataclass(frozen=True)
class RemoteSession:
    """원격 세션 핸들 (수집 실행 동안 불변)"""
    session_id: str
    remote_address: str
    hostname: str = ""
    username: str = ""
    uid: str = ""
    gid: str = ""
    os: str = "linux"

    @property
    def tag(self) -> str:
        """로컬 미러 루트 디렉토리 이름"""
        return self.remote_address

    @property
    def is_privileged(self) -> bool:
        return self.uid == "0" or self.gid == "0"

    def to_dict(self) -> Dict:
        result = asdict(self)
        result["is_privileged"] = self.is_privileged
        return result


@dataclass(frozen=True)
class RemoteEntry:
    """디렉토리 목록 항목"""
    name: str
    size: int = 0
    mode: str = ""
    is_dir: bool = False
    mod_time: int = 0  # epoch 초
    timezone: str = ""
    timezone_offset: int = 0  # UTC 기준 초 (동쪽 +)

    def modified_at(self) -> datetime:
        """원격 호스트 시간대 기준 수정 시각"""
        offset = timedelta(seconds=self.timezone_offset)
        zone = timezone(offset, self.timezone) if self.timezone else timezone(offset)
        return datetime.fromtimestamp(self.mod_time, tz=zone)


@dataclass
class ListResult:
    """listDirectory 응답"""
    path: str
    entries: List[RemoteEntry] = field(default_factory=list)
    timezone: str = ""
    timezone_offset: int = 0
    error: str = ""


@dataclass
class DownloadResult:
    """downloadFile 응답"""
    path: str
    exists: bool = False
    encoder: str = ""
    data: bytes = b""
    error: str = ""


class RemoteChannel(ABC):
    """원격 채널 추상화 (구현: SSHChannel, 테스트용 가짜 채널 등)"""

    @abstractmethod
    async def list_directory(self, session: RemoteSession, path: str) -> ListResult:
        """
        원격 디렉토리 목록 요청

        Args:
            session: 대상 세션
            path: 절대 경로 (마지막 세그먼트에 glob 허용, 원격에서 확장)
        """
        pass

    @abstractmethod
    async def download_file(self, session: RemoteSession, path: str) -> DownloadResult:
        """원격 파일 다운로드 요청"""
        pass
