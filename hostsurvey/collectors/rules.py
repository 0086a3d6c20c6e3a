"""
Interest Rules - 수집 대상 선언적 규칙 테이블

규칙 종류:
- FIXED_PATH: 목록 조회 없이 고정 경로 (설정 파일, 커널 제어 파일)
- FIXED_LIST: 디렉토리 목록에서 정해진 파일명과 정확히 일치하는 항목
- GLOB: 원격 glob 확장 결과 중 디렉토리가 아닌 항목
- FLAT_DIR: 한 디렉토리 바로 아래의 모든 파일

규칙 자체는 권한을 모릅니다. 권한 게이팅은 오케스트레이터가 담당합니다.
"""

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple

from .channel import RemoteEntry


class RuleKind(Enum):
    FIXED_PATH = "fixed_path"
    FIXED_LIST = "fixed_list"
    GLOB = "glob"
    FLAT_DIR = "flat_dir"


class RuleStage(Enum):
    """오케스트레이터 실행 단계 (값 순서대로 실행)"""
    FIXED = 1
    PRIVILEGED_FIXED = 2
    HISTORY = 3
    SWEEP = 4
    CONTROL = 5


# 셸/도구 히스토리 및 사용자 설정 파일
HISTORY_FILES = frozenset([
    ".zsh_history", ".bash_history", ".ash_history", ".cshrc_history",
    ".ksh_history", ".fish_history", ".dash_history", ".sqlite_history",
    ".wget-hsts", ".viminfo", ".mysql_history", ".lesshst", ".gitconfig",
    ".bashrc", ".zshrc",
])


@dataclass(frozen=True)
class CollectionRule:
    """수집 규칙 하나"""
    name: str
    kind: RuleKind
    root: str  # 고정 경로 / 목록 디렉토리 / glob 표현식
    stage: RuleStage = RuleStage.SWEEP
    names: FrozenSet[str] = frozenset()  # FIXED_LIST 전용
    per_subdirectory: bool = False  # FIXED_LIST: root의 각 항목을 디렉토리로 보고 다시 목록 조회
    privileged: bool = False
    quiet: bool = True
    view: bool = False
    interpreter: Optional[str] = None  # 제어 파일 해석기 키 (core.posture)


@dataclass(frozen=True)
class CollectionTarget:
    """완전히 해석된 수집 대상 (한 번 소비 후 폐기)"""
    remote_path: str
    quiet: bool = True
    view: bool = False
    rule: Optional[CollectionRule] = field(default=None, compare=False)

    def local_relpath(self, tag: str) -> str:
        """로컬 상대 경로 = tag + remote_path (항상 파생값)"""
        return tag + self.remote_path


def join_remote(directory: str, name: str) -> str:
    """원격 디렉토리와 파일명 결합 (정규화 없음)"""
    if directory.endswith("/"):
        return directory + name
    return f"{directory}/{name}"


def glob_directory(pattern: str) -> str:
    """glob 표현식의 디렉토리 부분 (/etc/*.conf -> /etc)"""
    return posixpath.dirname(pattern) or "/"


def match_names(
    entries: Iterable[RemoteEntry],
    directory: str,
    names: FrozenSet[str]
) -> List[str]:
    """디렉토리 항목 중 파일명이 정확히 일치하는 경로"""
    return [join_remote(directory, entry.name) for entry in entries if entry.name in names]


def match_files(entries: Iterable[RemoteEntry], directory: str) -> List[str]:
    """디렉토리가 아닌 모든 항목의 경로"""
    return [join_remote(directory, entry.name) for entry in entries if not entry.is_dir]


def targets_for(rule: CollectionRule, paths: Iterable[str]) -> List[CollectionTarget]:
    """규칙 플래그를 적용한 CollectionTarget 생성"""
    return [
        CollectionTarget(remote_path=path, quiet=rule.quiet, view=rule.view, rule=rule)
        for path in paths
    ]


def fixed(
    name: str,
    paths: Iterable[str],
    stage: RuleStage = RuleStage.FIXED,
    privileged: bool = False,
) -> Tuple[CollectionRule, ...]:
    """고정 경로 목록을 FIXED_PATH 규칙들로 변환"""
    return tuple(
        CollectionRule(
            name=f"{name}:{path}",
            kind=RuleKind.FIXED_PATH,
            root=path,
            stage=stage,
            privileged=privileged,
        )
        for path in paths
    )


CONFIG_FILES = [
    "/etc/passwd",
    "/etc/hosts",
    "/etc/os-release",
    "/etc/hosts.allow",
    "/etc/hosts.deny",
    "/etc/rsyslog.conf",
    "/etc/ssh/sshd_config",
    "/etc/crontab",
    "/etc/hostname",
]

PRIVILEGED_FILES = [
    "/etc/shadow",
    "/etc/sudoers",
]

DEFAULT_RULES: Tuple[CollectionRule, ...] = (
    *fixed("config", CONFIG_FILES),
    *fixed("privileged_config", PRIVILEGED_FILES, stage=RuleStage.PRIVILEGED_FIXED, privileged=True),
    CollectionRule(
        name="home_histories",
        kind=RuleKind.FIXED_LIST,
        root="/home",
        stage=RuleStage.HISTORY,
        names=HISTORY_FILES,
        per_subdirectory=True,
    ),
    CollectionRule(
        name="root_histories",
        kind=RuleKind.FIXED_LIST,
        root="/root",
        stage=RuleStage.HISTORY,
        names=HISTORY_FILES,
        privileged=True,
    ),
    CollectionRule(name="etc_conf", kind=RuleKind.GLOB, root="/etc/*.conf"),
    CollectionRule(name="systemd_conf", kind=RuleKind.GLOB, root="/etc/systemd/*.conf"),
    CollectionRule(name="systemd_units", kind=RuleKind.FLAT_DIR, root="/lib/systemd/system"),
    CollectionRule(
        name="ptrace_scope",
        kind=RuleKind.FIXED_PATH,
        root="/proc/sys/kernel/yama/ptrace_scope",
        stage=RuleStage.CONTROL,
        view=True,
        interpreter="ptrace",
    ),
    CollectionRule(
        name="tainted",
        kind=RuleKind.FIXED_PATH,
        root="/proc/sys/kernel/tainted",
        stage=RuleStage.CONTROL,
        view=True,
        interpreter="taint",
    ),
    CollectionRule(
        name="unprivileged_bpf_disabled",
        kind=RuleKind.FIXED_PATH,
        root="/proc/sys/kernel/unprivileged_bpf_disabled",
        stage=RuleStage.CONTROL,
        view=True,
        interpreter="bpf",
    ),
)


def rules_for_stage(rules: Iterable[CollectionRule], stage: RuleStage) -> List[CollectionRule]:
    return [rule for rule in rules if rule.stage == stage]
