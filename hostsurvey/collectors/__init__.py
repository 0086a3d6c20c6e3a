"""
Collectors 패키지

원격 파일시스템 수집을 위한 모듈:
- channel: 원격 세션/채널 추상화
- lister: 디렉토리 목록 조회
- rules: 수집 대상 규칙 테이블
- retriever: 파일 다운로드 및 디코딩
- mirror: 로컬 미러 저장
- survey: 수집 오케스트레이션
- ssh_exec: SSH 기반 채널 구현
"""

from .channel import (
    ChannelError,
    DownloadResult,
    ErrorKind,
    ListResult,
    RemoteChannel,
    RemoteEntry,
    RemoteSession,
)
from .errors import (
    CollectionError,
    RemoteNotFoundError,
    SweepAbortedError,
    UnexpectedCollectionError,
    UnsupportedEncodingError,
)
from .lister import DirectoryLister
from .mirror import MirrorWriter
from .retriever import FileRetriever, RetrievedFile
from .rules import DEFAULT_RULES, CollectionRule, CollectionTarget, RuleKind, RuleStage
from .survey import SurveyCollector, SurveyResult, CollectedFile
from .ssh_exec import SSHExecutor, SSHConfig, SSHChannel, CommandResult, open_session

__all__ = [
    "ChannelError",
    "DownloadResult",
    "ErrorKind",
    "ListResult",
    "RemoteChannel",
    "RemoteEntry",
    "RemoteSession",
    "CollectionError",
    "RemoteNotFoundError",
    "SweepAbortedError",
    "UnexpectedCollectionError",
    "UnsupportedEncodingError",
    "DirectoryLister",
    "MirrorWriter",
    "FileRetriever",
    "RetrievedFile",
    "DEFAULT_RULES",
    "CollectionRule",
    "CollectionTarget",
    "RuleKind",
    "RuleStage",
    "SurveyCollector",
    "SurveyResult",
    "CollectedFile",
    "SSHExecutor",
    "SSHConfig",
    "SSHChannel",
    "CommandResult",
    "open_session",
]
