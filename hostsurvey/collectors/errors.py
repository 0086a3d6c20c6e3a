"""
Collection Errors - 수집 오류 분류

NotFound: 원격에 대상 없음 (정상 흐름, 건너뜀)
Unexpected: 응답 이상/디코딩 실패/로컬 I/O 실패 (해당 파일만 건너뜀)
Fatal: sweep 루트 목록 실패 (해당 sweep만 중단, 전체 실행은 계속)
"""

from .channel import ErrorKind


class CollectionError(Exception):
    """수집 오류 기본 클래스"""
    kind = ErrorKind.UNEXPECTED

    def __init__(self, path: str, message: str = ""):
        super().__init__(f"{path}: {message}" if message else path)
        self.path = path
        self.message = message


class RemoteNotFoundError(CollectionError):
    kind = ErrorKind.NOT_FOUND


class UnexpectedCollectionError(CollectionError):
    kind = ErrorKind.UNEXPECTED


class UnsupportedEncodingError(UnexpectedCollectionError):
    """인식하지 못한 전송 인코딩 (fail closed)"""


class SweepAbortedError(CollectionError):
    kind = ErrorKind.FATAL


def error_for_kind(kind: ErrorKind, path: str, message: str) -> CollectionError:
    """ErrorKind에 맞는 예외 생성"""
    if kind == ErrorKind.NOT_FOUND:
        return RemoteNotFoundError(path, message)
    if kind == ErrorKind.FATAL:
        return SweepAbortedError(path, message)
    return UnexpectedCollectionError(path, message)
