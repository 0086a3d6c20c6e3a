"""
Mirror Writer - 수집 파일 로컬 미러 저장

로컬 경로 = base_dir / (tag + remote_path)
- tag(원격 주소)가 다르면 호스트 간 충돌 없음
- 같은 호스트 재수집 시 덮어쓰기 (중복 생성 없음)
"""

import os
from pathlib import Path
from typing import Union
import logging

from .errors import UnexpectedCollectionError

logger = logging.getLogger(__name__)


class MirrorWriter:
    """원격 경로 구조를 로컬에 재구성하여 저장"""

    def __init__(
        self,
        base_dir: Union[str, Path] = ".",
        dir_mode: int = 0o777,
        file_mode: int = 0o777
    ):
        self.base_dir = Path(base_dir)
        self.dir_mode = dir_mode
        self.file_mode = file_mode

    def local_path(self, tag: str, remote_path: str) -> Path:
        """(tag, remote_path)만으로 결정되는 로컬 경로. '..' 정규화 없음"""
        return self.base_dir / (tag + remote_path)

    def ensure_parents(self, tag: str, remote_path: str) -> Path:
        """
        중간 디렉토리를 루트에서 말단 방향으로 생성

        이미 존재하면 무시 (동시 생성 경합 포함).
        중간에 실패하면 해당 파일만 실패 처리합니다.
        """
        segments = (tag + remote_path).split("/")[:-1]
        current = self.base_dir

        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            for segment in segments:
                if not segment:
                    continue
                current = current / segment
                try:
                    os.mkdir(current, self.dir_mode)
                except FileExistsError:
                    pass
        except OSError as e:
            raise UnexpectedCollectionError(remote_path, f"error creating directory {current}: {e}") from e

        return current

    def persist(self, data: bytes, remote_path: str, tag: str, view: bool = False) -> Path:
        """
        디코딩된 데이터를 한 번에 기록 (create-or-truncate)

        Args:
            data: 디코딩된 파일 내용
            remote_path: 원격 절대 경로
            tag: 호스트 태그
            view: True면 저장 후 파일 내용을 콘솔에 출력

        Returns:
            Path: 기록된 로컬 경로
        """
        self.ensure_parents(tag, remote_path)
        path = self.local_path(tag, remote_path)

        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, self.file_mode)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError as e:
            raise UnexpectedCollectionError(remote_path, f"error writing data to file: {e}") from e

        if view:
            self.view(path)

        return path

    def view(self, path: Path):
        """방금 기록한 작은 제어 파일을 한 줄씩 출력"""
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                for line in f:
                    print(line.rstrip("\n"))
        except OSError as e:
            logger.warning(f"[!] Error reading file {path}: {e}")

    def read(self, tag: str, remote_path: str) -> str:
        """미러된 파일 전체 읽기 (제어 파일 해석용)"""
        path = self.local_path(tag, remote_path)
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
