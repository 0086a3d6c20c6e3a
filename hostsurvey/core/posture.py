"""
Kernel Security Posture Interpreter

커널 제어 파일(/proc/sys/kernel/...) 값을 사람이 읽는 보안 설정 설명으로 변환합니다.
"""

from typing import Callable, Dict, List, Optional

VALUE_NOT_FOUND = "Value not found"


class PostureAnalyzer:
    """커널 제어 파일 값 해석기"""

    # /proc/sys/kernel/yama/ptrace_scope
    PTRACE_SCOPES = {
        0: "No restrictions -> Any process can attach to another process that it has the appropriate permissions for",
        1: "Restricted to parent processes -> Process can attach to its child processes",
        2: "Admin-only debugging -> Normal users cannot use ptrace, even on their own child processes, unless explicitly granted the capability",
        3: "No ptrace -> This is suitable for systems where debugging and process introspection are entirely unnecessary or prohibited",
    }

    # /proc/sys/kernel/unprivileged_bpf_disabled
    BPF_MODES = {
        0: "Unrestricted access -> Unprivileged users (non-root) are allowed to load BPF programs and maps without restrictions",
        1: "BPF is restricted for unprivileged users -> Unprivileged users are completely prohibited from loading BPF programs or creating BPF maps",
        2: "Permanently disable unprivileged BPF -> Unprivileged BPF usage is permanently disabled",
    }

    # /proc/sys/kernel/tainted 비트별 의미 (bit: (flag, 설명))
    TAINT_FLAGS = {
        0: ("P", "Proprietary module was loaded"),
        1: ("F", "Module was force loaded"),
        2: ("S", "Kernel running on an out of specification system"),
        3: ("R", "Module was force unloaded"),
        4: ("M", "Processor reported a Machine Check Exception (MCE)"),
        5: ("B", "Bad page referenced or some unexpected page flags"),
        6: ("U", "Taint requested by userspace application"),
        7: ("D", "Kernel died recently, i.e. there was an OOPS or BUG"),
        8: ("A", "An ACPI table was overridden by user"),
        9: ("W", "Kernel issued warning"),
        10: ("C", "Staging driver was loaded"),
        11: ("I", "Workaround for bug in platform firmware applied"),
        12: ("O", "Externally-built (out-of-tree) module was loaded"),
        13: ("E", "Unsigned module was loaded"),
        14: ("L", "Soft lockup occurred"),
        15: ("K", "Kernel has been live patched"),
        16: ("X", "Auxiliary taint, defined for and used by distros"),
        17: ("T", "Kernel was built with the struct randomization plugin"),
        18: ("N", "An in-kernel test has been run"),
        19: ("J", "Userspace used a mutating debug operation in fwctl"),
    }

    @staticmethod
    def parse_value(value: Optional[str]) -> Optional[int]:
        """제어 파일 값 -> 정수 (개행/공백 제거, 실패 시 None)"""
        if value is None:
            return None
        try:
            return int(value.strip())
        except ValueError:
            return None

    @classmethod
    def lookup(cls, table: Dict[int, str], value: Optional[str]) -> str:
        parsed = cls.parse_value(value)
        if parsed is None:
            return VALUE_NOT_FOUND
        return table.get(parsed, VALUE_NOT_FOUND)

    @classmethod
    def resolve_ptrace(cls, value: Optional[str]) -> str:
        return cls.lookup(cls.PTRACE_SCOPES, value)

    @classmethod
    def resolve_bpf(cls, value: Optional[str]) -> str:
        return cls.lookup(cls.BPF_MODES, value)

    @classmethod
    def taint_flags(cls, value: Optional[str]) -> Optional[List[str]]:
        """
        taint 비트마스크에서 설정된 플래그 설명 목록

        Returns:
            None: 값 파싱 실패
            []: taint 없음
        """
        parsed = cls.parse_value(value)
        if parsed is None or parsed < 0:
            return None

        flags = []
        for bit, (flag, description) in sorted(cls.TAINT_FLAGS.items()):
            if parsed & (1 << bit):
                flags.append(f"{flag} (bit {bit}): {description}")

        # 테이블에 없는 상위 비트
        unknown = parsed >> (max(cls.TAINT_FLAGS) + 1)
        if unknown:
            flags.append(f"Unknown taint bits set: {unknown << (max(cls.TAINT_FLAGS) + 1):#x}")

        return flags

    @classmethod
    def describe_taint(cls, value: Optional[str]) -> str:
        flags = cls.taint_flags(value)
        if flags is None:
            return VALUE_NOT_FOUND
        if not flags:
            return "Kernel not tainted"
        return "Kernel tainted -> " + "; ".join(flags)


INTERPRETERS: Dict[str, Callable[[Optional[str]], str]] = {
    "ptrace": PostureAnalyzer.resolve_ptrace,
    "bpf": PostureAnalyzer.resolve_bpf,
    "taint": PostureAnalyzer.describe_taint,
}


def interpret(key: str, value: Optional[str]) -> str:
    """해석기 키로 제어 파일 값 해석"""
    interpreter = INTERPRETERS.get(key)
    if interpreter is None:
        raise ValueError(f"Unknown control file interpreter: {key}")
    return interpreter(value)
