"""
Services 패키지

수집 실행 및 설정
"""

from .survey_runner import SurveyConfig, SurveyPreset, run_survey

__all__ = [
    "SurveyConfig",
    "SurveyPreset",
    "run_survey",
]
