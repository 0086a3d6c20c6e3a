from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Text
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone
import json


def get_utc_now():
    return datetime.now(timezone.utc)


Base = declarative_base()


class SurveyRun(Base):
    """원격 호스트 수집 실행 기록"""
    __tablename__ = "survey_runs"

    id = Column(Integer, primary_key=True, index=True)
    host = Column(String(255), nullable=False, index=True)
    port = Column(Integer, default=22)
    username = Column(String(100))
    tag = Column(String(300))  # 로컬 미러 루트 (host:port)
    preset = Column(String(20), default="standard")
    status = Column(String(20), default="pending", index=True)  # pending, running, completed, failed

    started_at = Column(DateTime, default=get_utc_now)
    finished_at = Column(DateTime)
    duration_ms = Column(Float, default=0.0)

    # 수집 통계
    collected_count = Column(Integer, default=0)
    not_found_count = Column(Integer, default=0)
    failed_count = Column(Integer, default=0)

    # JSON 직렬화 필드
    posture_json = Column(Text)  # remote_path -> 설명
    errors_json = Column(Text)

    artifacts = relationship("CollectedArtifact", back_populates="run", cascade="all, delete-orphan")

    @property
    def posture(self):
        return json.loads(self.posture_json) if self.posture_json else {}

    @property
    def errors(self):
        return json.loads(self.errors_json) if self.errors_json else []


class CollectedArtifact(Base):
    """수집된 파일"""
    __tablename__ = "collected_artifacts"

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(Integer, ForeignKey("survey_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    remote_path = Column(String(1024), nullable=False)
    local_path = Column(String(2048), nullable=False)
    size = Column(Integer, default=0)
    sha256 = Column(String(64))
    collected_at = Column(DateTime, default=get_utc_now)

    run = relationship("SurveyRun", back_populates="artifacts")
