"""
Survey Collector - 원격 파일시스템 수집 오케스트레이터

Lister → Rules → Retriever → MirrorWriter를 연결하여
한 원격 세션에 대해 수집 단계를 순차 실행합니다.

각 단계/규칙/파일은 독립적입니다:
- 한 파일 실패는 다음 파일을 막지 않음
- sweep 루트 목록 실패(Fatal)는 해당 sweep만 중단
- 부분 수집은 정상 종료 상태 (롤백 없음)
"""

import hashlib
import json
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence
import logging

from .channel import RemoteChannel, RemoteSession
from .errors import (
    RemoteNotFoundError,
    SweepAbortedError,
    UnexpectedCollectionError,
)
from .lister import DirectoryLister, summarize
from .mirror import MirrorWriter
from .retriever import FileRetriever
from .rules import (
    DEFAULT_RULES,
    CollectionRule,
    CollectionTarget,
    RuleKind,
    RuleStage,
    glob_directory,
    join_remote,
    match_files,
    match_names,
    rules_for_stage,
    targets_for,
)
from ..core.posture import interpret

logger = logging.getLogger(__name__)


STAGE_TITLES = {
    RuleStage.FIXED: "Grabbing files /etc/",
    RuleStage.PRIVILEGED_FIXED: "Grabbing privileged files",
    RuleStage.HISTORY: "Grabbing history files",
    RuleStage.SWEEP: "Grabbing configuration sweeps",
    RuleStage.CONTROL: "Checking kernel control files",
}


@dataclass
class CollectedFile:
    """수집 완료 파일"""
    remote_path: str
    local_path: str
    size: int = 0
    sha256: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class SurveyResult:
    """수집 실행 결과"""
    tag: str = ""
    session: Dict = field(default_factory=dict)

    # 파일별 결과
    collected: List[CollectedFile] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)  # {"path", "error"}

    # 규칙/sweep 단위 결과
    aborted_sweeps: List[Dict[str, str]] = field(default_factory=list)  # {"rule", "path", "error"}
    skipped_rules: List[str] = field(default_factory=list)  # 권한 부족으로 건너뛴 규칙

    # 제어 파일 해석 결과 (remote_path -> 설명)
    posture: Dict[str, str] = field(default_factory=dict)

    # 디렉토리 목록 스냅샷 (path -> 출력 줄)
    listings: Dict[str, List[str]] = field(default_factory=dict)

    # 메타데이터
    collected_at: str = ""
    collection_duration_ms: float = 0.0
    errors: List[str] = field(default_factory=list)

    @property
    def collected_paths(self) -> List[str]:
        return [f.remote_path for f in self.collected]

    def to_dict(self) -> Dict:
        result = asdict(self)
        result["collected"] = [f.to_dict() for f in self.collected]
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)


class SurveyCollector:
    """
    원격 파일시스템 수집기

    실행 순서:
    0. 루트 디렉토리 목록 스냅샷 (권한 있으면 /root 포함)
    1. 고정 설정 파일
    2. 권한 필요 고정 파일 (/etc/shadow, /etc/sudoers)
    3. 히스토리 sweep (/home/<user>, 권한 있으면 /root)
    4. glob / flat 디렉토리 sweep
    5. 커널 제어 파일 수집 및 해석

    권한 게이팅은 여기서만 수행합니다 (규칙은 권한을 모름).
    """

    def __init__(
        self,
        channel: RemoteChannel,
        session: RemoteSession,
        writer: Optional[MirrorWriter] = None,
        rules: Sequence[CollectionRule] = DEFAULT_RULES,
        stages: Optional[Iterable[RuleStage]] = None,
        snapshot_paths: Sequence[str] = ("/",),
        privileged_snapshot_paths: Sequence[str] = ("/root",),
    ):
        self.channel = channel
        self.session = session
        self.writer = writer or MirrorWriter()
        self.rules = list(rules)
        self.stages = set(stages) if stages is not None else set(RuleStage)
        self.snapshot_paths = list(snapshot_paths)
        self.privileged_snapshot_paths = list(privileged_snapshot_paths)

        self.lister = DirectoryLister(channel)
        self.retriever = FileRetriever(channel)
        self._result = SurveyResult()

    @property
    def tag(self) -> str:
        return self.session.tag

    async def collect(self) -> SurveyResult:
        """
        전체 수집 수행

        Returns:
            SurveyResult: 수집 결과 (부분 수집 포함)
        """
        start_time = datetime.now()
        self._result = SurveyResult(
            tag=self.tag,
            session=self.session.to_dict(),
            collected_at=start_time.isoformat(),
        )

        logger.info(f"[*] Starting survey of {self.session.hostname or self.tag} (tag: {self.tag})")

        await self._run_step("snapshot", self._snapshot)

        for stage in sorted(self.stages, key=lambda s: s.value):
            await self._run_step(stage.name.lower(), lambda stage=stage: self._run_stage(stage))

        self._result.collection_duration_ms = (datetime.now() - start_time).total_seconds() * 1000

        logger.info(
            f"[*] Survey finished: {len(self._result.collected)} collected, "
            f"{len(self._result.not_found)} not found, {len(self._result.failed)} failed"
        )
        return self._result

    async def _run_step(self, name: str, step):
        """단계 실행. 단계 밖으로 예외를 전파하지 않음"""
        try:
            await step()
        except Exception as e:
            self._result.errors.append(f"{name} step error: {e}")
            logger.exception(f"Survey step '{name}' failed")

    async def _snapshot(self):
        """루트 디렉토리 목록 스냅샷"""
        paths = list(self.snapshot_paths)
        if self.session.is_privileged:
            paths.extend(self.privileged_snapshot_paths)

        for path in paths:
            try:
                result = await self.lister.list_raw(self.session, path)
            except SweepAbortedError as e:
                self._record_abort("snapshot", e)
                continue

            lines = summarize(result)
            self._result.listings[path] = lines
            for line in lines:
                logger.info(line)

    async def _run_stage(self, stage: RuleStage):
        rules = rules_for_stage(self.rules, stage)
        if not rules:
            return

        logger.info(f"[*] {STAGE_TITLES.get(stage, stage.name)}")

        for rule in rules:
            if rule.privileged and not self.session.is_privileged:
                self._result.skipped_rules.append(rule.name)
                logger.info(f"[*] Skipping {rule.name}: session is not privileged")
                continue

            try:
                await self.apply_rule(rule)
            except SweepAbortedError as e:
                self._record_abort(rule.name, e)

    async def apply_rule(self, rule: CollectionRule) -> List[CollectedFile]:
        """규칙 하나 실행: 대상 해석 후 각 대상 수집"""
        targets = await self.resolve_targets(rule)
        collected = []

        for target in targets:
            item = await self.collect_target(target)
            if item is None:
                continue
            collected.append(item)

            if rule.interpreter:
                self._interpret(rule, target)

        return collected

    async def resolve_targets(self, rule: CollectionRule) -> List[CollectionTarget]:
        """
        규칙을 구체적인 원격 경로 목록으로 해석

        Raises:
            SweepAbortedError: sweep 루트 목록 실패
        """
        if rule.kind == RuleKind.FIXED_PATH:
            return targets_for(rule, [rule.root])

        if rule.kind == RuleKind.GLOB:
            entries = await self.lister.list(self.session, rule.root)
            return targets_for(rule, match_files(entries, glob_directory(rule.root)))

        if rule.kind == RuleKind.FLAT_DIR:
            entries = await self.lister.list(self.session, rule.root)
            return targets_for(rule, match_files(entries, rule.root))

        if rule.kind == RuleKind.FIXED_LIST:
            entries = await self.lister.list(self.session, rule.root)
            if not rule.per_subdirectory:
                return targets_for(rule, match_names(entries, rule.root, rule.names))

            paths = []
            for entry in entries:
                directory = join_remote(rule.root, entry.name)
                try:
                    sub_entries = await self.lister.list(self.session, directory)
                except SweepAbortedError as e:
                    # 하위 디렉토리 목록 실패는 해당 디렉토리만 건너뜀
                    self._result.failed.append({"path": directory, "error": e.message})
                    logger.error(f"[!] Unexpected error: {directory}: {e.message}")
                    continue
                paths.extend(match_names(sub_entries, directory, rule.names))
            return targets_for(rule, paths)

        raise ValueError(f"Unknown rule kind: {rule.kind}")

    async def collect_target(self, target: CollectionTarget) -> Optional[CollectedFile]:
        """
        단일 대상 fetch → decode → persist

        Returns:
            CollectedFile 또는 None (NotFound/Unexpected, 로그만 남기고 계속)
        """
        path = target.remote_path
        if not target.quiet:
            logger.info(f"[*] Download Request: {path}")

        try:
            retrieved = await self.retriever.fetch(self.session, path)
            if not retrieved.exists:
                raise RemoteNotFoundError(path, "file does not exist")
            local_path = self.writer.persist(retrieved.data, path, self.tag, view=target.view)
        except RemoteNotFoundError:
            self._result.not_found.append(path)
            logger.warning(f"[!] No such file or directory: {path}")
            return None
        except UnexpectedCollectionError as e:
            self._result.failed.append({"path": path, "error": e.message})
            logger.error(f"[!] Unexpected error: {path}: {e.message}")
            return None

        item = CollectedFile(
            remote_path=path,
            local_path=str(local_path),
            size=retrieved.size,
            sha256=hashlib.sha256(retrieved.data).hexdigest(),
        )
        self._result.collected.append(item)

        if not target.quiet:
            logger.info(f"[*] Download Successful: {path}")

        return item

    def _interpret(self, rule: CollectionRule, target: CollectionTarget):
        """수집된 제어 파일을 읽어 보안 설정 설명으로 변환"""
        try:
            value = self.writer.read(self.tag, target.remote_path)
        except OSError as e:
            self._result.failed.append({"path": target.remote_path, "error": f"error reading file: {e}"})
            logger.error(f"[!] Unexpected error: {target.remote_path}: {e}")
            return

        description = interpret(rule.interpreter, value)
        self._result.posture[target.remote_path] = description
        logger.info(f"[*] {target.remote_path}: {description}")

    def _record_abort(self, rule_name: str, error: SweepAbortedError):
        self._result.aborted_sweeps.append({
            "rule": rule_name,
            "path": error.path,
            "error": error.message,
        })
        logger.error(f"[!] Sweep aborted ({rule_name}): {error.path}: {error.message}")
