#!/usr/bin/env python3
"""
단일 호스트 수집 스크립트 - API 없이 바로 실행

종료 코드는 시작 단계 실패(채널/세션 없음)만 반영합니다.
개별 파일 실패는 종료 코드에 영향을 주지 않습니다.
"""
import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='[%(levelname)s] %(message)s'
)
logging.getLogger("asyncssh").setLevel(logging.WARNING)

from hostsurvey.collectors.ssh_exec import SSHConfig
from hostsurvey.services.survey_runner import SurveyConfig, SurveyPreset, run_survey


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Survey a remote Linux host over SSH")
    parser.add_argument("host", help="target host")
    parser.add_argument("-p", "--port", type=int, default=22)
    parser.add_argument("-u", "--username", default="root")
    parser.add_argument("-i", "--key", dest="key_path", help="SSH private key path")
    parser.add_argument("--password", help="password auth (requires sshpass)")
    parser.add_argument(
        "--preset",
        choices=[p.value for p in SurveyPreset],
        default=None,
        help="collection preset (default: SURVEY_PRESET or standard)"
    )
    parser.add_argument("-o", "--output-dir", help="local mirror root (default: SURVEY_OUTPUT_DIR or .)")
    parser.add_argument("--json", action="store_true", help="print the survey result as JSON")
    return parser.parse_args(argv)


async def survey(args) -> int:
    config = SurveyConfig.from_env()
    if args.preset:
        config = SurveyConfig.from_preset(
            SurveyPreset(args.preset),
            output_dir=config.output_dir,
        )
    if args.output_dir:
        config.output_dir = args.output_dir

    ssh_config = SSHConfig(
        host=args.host,
        port=args.port,
        username=args.username,
        auth_method="password" if args.password else "key",
        key_path=args.key_path,
        password=args.password,
    )

    try:
        result = await run_survey(ssh_config, config)
    except ConnectionError as e:
        print(f"[!] {e}")
        return 1

    if args.json:
        print(result.to_json())
        return 0

    print(f"✅ 수집 완료: {len(result.collected)}개 파일 -> {config.output_dir}/{result.tag}")
    if result.not_found:
        print(f"   없음: {len(result.not_found)}개")
    if result.failed or result.aborted_sweeps:
        print(f"   실패: {len(result.failed)}개 파일, {len(result.aborted_sweeps)}개 sweep 중단")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(survey(parse_args())))
