"""
File Retriever - 원격 파일 단건 다운로드 및 디코딩

- 전송 오류를 NotFound / Unexpected로 분류
- exists=False면 빈 결과 (디스크에 아무것도 쓰지 않음)
- 압축 전송(gzip)은 메모리에서 완전히 해제
- 그 외 인코딩은 지원하지 않음 (fail closed)
"""

import gzip
import zlib
from dataclasses import dataclass
from typing import Callable, Dict
import logging

from .channel import ChannelError, RemoteChannel, RemoteSession, classify_error_message
from .errors import UnexpectedCollectionError, UnsupportedEncodingError, error_for_kind

logger = logging.getLogger(__name__)


# 처리 가능한 전송 인코딩 (이 목록 외에는 출력 없음)
DECODERS: Dict[str, Callable[[bytes], bytes]] = {
    "gzip": gzip.decompress,
}


@dataclass
class RetrievedFile:
    """다운로드 결과 (한 번의 fetch 동안만 유지)"""
    remote_path: str
    exists: bool = False
    encoder: str = ""
    payload: bytes = b""  # 전송 원본
    data: bytes = b""  # 디코딩 결과

    @property
    def size(self) -> int:
        return len(self.data)


def decode_payload(remote_path: str, encoder: str, payload: bytes) -> bytes:
    """
    전송 인코딩 해제

    Raises:
        UnsupportedEncodingError: DECODERS에 없는 인코딩
        UnexpectedCollectionError: 빈 payload 또는 압축 해제 실패
    """
    decoder = DECODERS.get(encoder)
    if decoder is None:
        raise UnsupportedEncodingError(remote_path, f"unsupported encoding {encoder!r}")

    # 빈 파일의 gzip도 헤더가 있으므로 빈 payload는 전송 실패
    if not payload:
        raise UnexpectedCollectionError(remote_path, f"empty {encoder} payload")

    try:
        return decoder(payload)
    except (OSError, EOFError, zlib.error) as e:
        raise UnexpectedCollectionError(remote_path, f"error decompressing data: {e}") from e


class FileRetriever:
    """원격 파일 다운로드기"""

    def __init__(self, channel: RemoteChannel):
        self.channel = channel

    async def fetch(self, session: RemoteSession, remote_path: str) -> RetrievedFile:
        """
        단일 파일 다운로드

        Args:
            session: 대상 세션
            remote_path: 원격 절대 경로

        Returns:
            RetrievedFile: exists=False면 data는 비어 있음

        Raises:
            RemoteNotFoundError: 원격에 파일 없음
            UnexpectedCollectionError: 그 외 전송/디코딩 오류
        """
        try:
            download = await self.channel.download_file(session, remote_path)
        except ChannelError as e:
            raise error_for_kind(e.resolved_kind(), remote_path, e.message) from e

        if download.error:
            raise error_for_kind(
                classify_error_message(download.error), remote_path, download.error
            )

        if not download.exists:
            return RetrievedFile(remote_path=remote_path, exists=False, encoder=download.encoder)

        data = decode_payload(remote_path, download.encoder, download.data)
        logger.debug(f"Fetched {remote_path}: {len(download.data)} -> {len(data)} bytes")

        return RetrievedFile(
            remote_path=remote_path,
            exists=True,
            encoder=download.encoder,
            payload=download.data,
            data=data,
        )
