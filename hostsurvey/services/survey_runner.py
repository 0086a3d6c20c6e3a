"""
Survey Runner - 원격 호스트 수집 실행

SSH 연결 확인 → 세션 정보 수집 → SurveyCollector 실행
"""

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List
import logging

from ..collectors.mirror import MirrorWriter
from ..collectors.rules import RuleStage
from ..collectors.ssh_exec import SSHChannel, SSHConfig, SSHExecutor, open_session
from ..collectors.survey import SurveyCollector, SurveyResult

logger = logging.getLogger(__name__)


class SurveyPreset(Enum):
    """수집 프리셋"""
    FAST = "fast"
    STANDARD = "standard"
    DEEP = "deep"


@dataclass
class SurveyConfig:
    """수집 설정"""
    preset: SurveyPreset = SurveyPreset.STANDARD

    # 실행 단계
    stages: FrozenSet[RuleStage] = field(default_factory=lambda: frozenset(RuleStage))

    # 디렉토리 목록 스냅샷 대상
    snapshot_paths: List[str] = field(default_factory=lambda: ["/"])
    privileged_snapshot_paths: List[str] = field(default_factory=lambda: ["/root"])

    # 로컬 미러 루트
    output_dir: str = "."

    # 명령 타임아웃 (초)
    command_timeout: int = 60

    @classmethod
    def from_preset(cls, preset: SurveyPreset, **overrides) -> "SurveyConfig":
        """프리셋에서 설정 생성"""
        if preset == SurveyPreset.FAST:
            # 고정 파일과 제어 파일만 (목록 조회 없음)
            config = cls(
                preset=preset,
                stages=frozenset([RuleStage.FIXED, RuleStage.PRIVILEGED_FIXED, RuleStage.CONTROL]),
                snapshot_paths=[],
                privileged_snapshot_paths=[],
                command_timeout=30,
            )
        elif preset == SurveyPreset.DEEP:
            config = cls(
                preset=preset,
                snapshot_paths=["/", "/home", "/etc", "/tmp"],
                privileged_snapshot_paths=["/root"],
                command_timeout=120,
            )
        else:  # STANDARD
            config = cls(preset=preset)

        for key, value in overrides.items():
            setattr(config, key, value)
        return config

    @classmethod
    def from_env(cls) -> "SurveyConfig":
        """환경 변수에서 설정 생성 (SURVEY_PRESET, SURVEY_OUTPUT_DIR, SURVEY_COMMAND_TIMEOUT)"""
        preset = SurveyPreset(os.getenv("SURVEY_PRESET", SurveyPreset.STANDARD.value).lower())
        config = cls.from_preset(preset)
        config.output_dir = os.getenv("SURVEY_OUTPUT_DIR", config.output_dir)
        timeout = os.getenv("SURVEY_COMMAND_TIMEOUT")
        if timeout:
            config.command_timeout = int(timeout)
        return config


async def run_survey(ssh_config: SSHConfig, config: SurveyConfig) -> SurveyResult:
    """
    원격 호스트 수집 실행

    Raises:
        ConnectionError: 채널을 열 수 없거나 세션 정보를 얻을 수 없음
    """
    ssh_config.command_timeout = config.command_timeout
    executor = SSHExecutor(ssh_config)

    connected, message = await executor.test_connection()
    if not connected:
        raise ConnectionError(message)
    logger.info(f"[*] {message}")

    session = await open_session(executor)
    logger.info(
        f"[*] Session {session.session_id}: {session.username}@{session.hostname} "
        f"(uid={session.uid}, gid={session.gid}, privileged={session.is_privileged})"
    )

    collector = SurveyCollector(
        SSHChannel(executor),
        session,
        writer=MirrorWriter(config.output_dir),
        stages=config.stages,
        snapshot_paths=config.snapshot_paths,
        privileged_snapshot_paths=config.privileged_snapshot_paths,
    )
    return await collector.collect()


async def record_result(db, run, result: SurveyResult):
    """수집 결과를 SurveyRun / CollectedArtifact에 반영"""
    from ..models.schemas import CollectedArtifact, get_utc_now

    run.tag = result.tag
    run.status = "completed"
    run.finished_at = get_utc_now()
    run.duration_ms = result.collection_duration_ms
    run.collected_count = len(result.collected)
    run.not_found_count = len(result.not_found)
    run.failed_count = len(result.failed)
    run.posture_json = json.dumps(result.posture, ensure_ascii=False)
    run.errors_json = json.dumps(
        result.errors + [f"{f['path']}: {f['error']}" for f in result.failed],
        ensure_ascii=False
    )

    for item in result.collected:
        db.add(CollectedArtifact(
            run_id=run.id,
            remote_path=item.remote_path,
            local_path=item.local_path,
            size=item.size,
            sha256=item.sha256,
        ))

    await db.commit()


async def execute_survey_run(
    run_id: int,
    ssh_config: SSHConfig,
    config: SurveyConfig,
    session_maker=None,
    runner=None
):
    """
    저장된 SurveyRun 실행 (API 백그라운드 작업용)

    실행 실패 시 run을 failed로 표시하고 오류를 기록합니다.
    """
    from ..models.schemas import SurveyRun, get_utc_now

    if session_maker is None:
        from ..models.database import async_session_maker as session_maker

    async with session_maker() as db:
        run = await db.get(SurveyRun, run_id)
        if run is None:
            logger.error(f"[!] Survey run {run_id} not found")
            return

        run.status = "running"
        await db.commit()

        try:
            result = await (runner or run_survey)(ssh_config, config)
        except Exception as e:
            run.status = "failed"
            run.finished_at = get_utc_now()
            run.errors_json = json.dumps([str(e)], ensure_ascii=False)
            await db.commit()
            logger.exception(f"Survey run {run_id} failed for {ssh_config.address}")
            return

        await record_result(db, run, result)
        logger.info(f"[*] Survey run {run_id} completed ({run.collected_count} files)")
