from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
import logging

from ..models.database import get_db
from ..models.schemas import SurveyRun
from ..collectors.ssh_exec import SSHConfig
from ..services.survey_runner import SurveyConfig, SurveyPreset, execute_survey_run

logger = logging.getLogger(__name__)

router = APIRouter()


class SurveyRequest(BaseModel):
    host: str
    port: int = Field(22, ge=1, le=65535)
    username: str = "root"
    auth_method: str = "key"  # key, password
    key_path: Optional[str] = None
    password: Optional[str] = None
    preset: str = "standard"  # fast, standard, deep
    output_dir: Optional[str] = None


class ArtifactResponse(BaseModel):
    remote_path: str
    local_path: str
    size: int = 0
    sha256: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SurveyRunResponse(BaseModel):
    id: int
    host: str
    port: int
    username: Optional[str] = None
    tag: Optional[str] = None
    preset: str
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: Optional[float] = 0.0
    collected_count: int = 0
    not_found_count: int = 0
    failed_count: int = 0
    posture: Dict[str, str] = {}
    errors: List[str] = []
    artifacts: Optional[List[ArtifactResponse]] = None

    model_config = ConfigDict(from_attributes=True)


def _to_response(run: SurveyRun, include_artifacts: bool = False) -> SurveyRunResponse:
    response = SurveyRunResponse(
        id=run.id,
        host=run.host,
        port=run.port,
        username=run.username,
        tag=run.tag,
        preset=run.preset,
        status=run.status,
        started_at=run.started_at,
        finished_at=run.finished_at,
        duration_ms=run.duration_ms,
        collected_count=run.collected_count or 0,
        not_found_count=run.not_found_count or 0,
        failed_count=run.failed_count or 0,
        posture=run.posture,
        errors=run.errors,
    )
    if include_artifacts:
        response.artifacts = [ArtifactResponse.model_validate(a) for a in run.artifacts]
    return response


async def _get_run(session: AsyncSession, run_id: int) -> SurveyRun:
    result = await session.execute(
        select(SurveyRun)
        .options(selectinload(SurveyRun.artifacts))
        .where(SurveyRun.id == run_id)
    )
    run = result.scalar_one_or_none()
    if not run:
        raise HTTPException(status_code=404, detail=f"Survey run {run_id} not found")
    return run


@router.post("/api/surveys", response_model=SurveyRunResponse, status_code=202)
async def create_survey(
    request: SurveyRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_db)
):
    """원격 호스트 수집 요청 (백그라운드 실행)"""
    try:
        preset = SurveyPreset(request.preset.lower())
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown preset: {request.preset}")

    if request.auth_method not in ("key", "password"):
        raise HTTPException(status_code=422, detail=f"Unknown auth method: {request.auth_method}")

    defaults = SurveyConfig.from_env()
    config = SurveyConfig.from_preset(preset, output_dir=request.output_dir or defaults.output_dir)

    ssh_config = SSHConfig(
        host=request.host,
        port=request.port,
        username=request.username,
        auth_method=request.auth_method,
        key_path=request.key_path,
        password=request.password,
    )

    run = SurveyRun(
        host=request.host,
        port=request.port,
        username=request.username,
        tag=ssh_config.address,
        preset=preset.value,
        status="pending",
    )
    session.add(run)
    await session.commit()
    await session.refresh(run)

    background_tasks.add_task(execute_survey_run, run.id, ssh_config, config)
    logger.info(f"[*] Survey run {run.id} queued for {ssh_config.address} ({preset.value})")

    return _to_response(run)


@router.get("/api/surveys", response_model=List[SurveyRunResponse])
async def list_surveys(
    host: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_db)
):
    """수집 실행 기록 목록 (최신순)"""
    query = select(SurveyRun).order_by(SurveyRun.id.desc()).limit(limit)
    if host:
        query = query.where(SurveyRun.host == host)

    result = await session.execute(query)
    return [_to_response(run) for run in result.scalars().all()]


@router.get("/api/surveys/{run_id}", response_model=SurveyRunResponse)
async def get_survey(run_id: int, session: AsyncSession = Depends(get_db)):
    """수집 실행 상세 (수집 파일 포함)"""
    run = await _get_run(session, run_id)
    return _to_response(run, include_artifacts=True)


@router.delete("/api/surveys/{run_id}")
async def delete_survey(run_id: int, session: AsyncSession = Depends(get_db)):
    """수집 실행 기록 삭제 (로컬 미러 파일은 유지)"""
    run = await _get_run(session, run_id)
    await session.delete(run)
    await session.commit()
    return {"deleted": run_id}
