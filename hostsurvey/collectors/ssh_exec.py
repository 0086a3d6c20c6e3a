"""
SSH Channel - SSH 기반 원격 채널 구현

수집 엔진의 RemoteChannel을 SSH 명령 실행으로 구현합니다.
시스템 ssh subprocess 우선 사용 (설치 부담 최소화)
대안: asyncssh (pip install asyncssh)

원격 측 요구 도구: sh, date, find(-printf), gzip, base64, mktemp, id, hostname
"""

import asyncio
import base64
import binascii
import posixpath
import shlex
import shutil
import uuid
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime
import logging

from .channel import (
    ChannelError,
    DownloadResult,
    ListResult,
    RemoteChannel,
    RemoteEntry,
    RemoteSession,
)

logger = logging.getLogger(__name__)


@dataclass
class SSHConfig:
    """SSH 연결 설정"""
    host: str
    port: int = 22
    username: str = "root"
    auth_method: str = "key"  # key, password
    key_path: Optional[str] = None
    password: Optional[str] = None
    timeout: int = 30  # 연결 타임아웃 (초)
    command_timeout: int = 60  # 명령 실행 타임아웃 (초)
    retry_count: int = 2
    retry_delay: float = 2.0

    @property
    def address(self) -> str:
        """로컬 태그로 쓰는 host:port"""
        return f"{self.host}:{self.port}"


@dataclass
class CommandResult:
    """명령 실행 결과"""
    command: str
    stdout: str = ""
    stderr: str = ""
    return_code: int = -1
    success: bool = False
    duration_ms: float = 0.0
    error_message: str = ""

    def __bool__(self):
        return self.success

    @property
    def error_text(self) -> str:
        return self.error_message or self.stderr or f"exit status {self.return_code}"


def _elapsed_ms(start_time: datetime) -> float:
    return (datetime.now() - start_time).total_seconds() * 1000


class SSHExecutor:
    """
    SSH 원격 명령 실행기

    시스템 ssh 명령을 우선 사용하며, 없으면 asyncssh를 사용합니다.
    요청은 한 번에 하나씩 순차 실행됩니다.
    """

    def __init__(self, config: SSHConfig):
        self.config = config
        self._system_ssh_available = shutil.which("ssh") is not None
        self._asyncssh_available = self._check_asyncssh()

    def _check_asyncssh(self) -> bool:
        """asyncssh 라이브러리 사용 가능 여부 확인"""
        try:
            import asyncssh
            return True
        except ImportError:
            return False

    def get_backend_info(self) -> Dict[str, bool]:
        """사용 가능한 SSH 백엔드 정보"""
        return {
            "system_ssh": self._system_ssh_available,
            "asyncssh": self._asyncssh_available,
            "preferred": "system_ssh" if self._system_ssh_available else "asyncssh"
        }

    def _build_ssh_command(self, remote_command: str) -> List[str]:
        """시스템 ssh 명령 빌드"""
        cmd = []
        password_auth = self.config.auth_method == "password"

        # 비밀번호 인증인 경우 sshpass 사용
        if password_auth and self.config.password:
            if shutil.which("sshpass"):
                cmd.extend(["sshpass", "-p", self.config.password])
            else:
                logger.warning("sshpass not installed, password auth may fail")

        cmd.append("ssh")
        cmd.extend([
            "-o", f"BatchMode={'no' if password_auth else 'yes'}",
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", f"ConnectTimeout={self.config.timeout}",
            "-o", "ServerAliveInterval=10",
            "-o", "ServerAliveCountMax=3",
        ])
        if password_auth:
            cmd.extend([
                "-o", "PreferredAuthentications=password",
                "-o", "PubkeyAuthentication=no",
            ])

        if self.config.port != 22:
            cmd.extend(["-p", str(self.config.port)])

        if self.config.auth_method == "key" and self.config.key_path:
            cmd.extend(["-i", self.config.key_path])

        cmd.append(f"{self.config.username}@{self.config.host}")
        cmd.append(remote_command)

        return cmd

    async def execute(self, command: str, timeout: Optional[int] = None) -> CommandResult:
        """
        원격 명령 실행

        Args:
            command: 실행할 명령
            timeout: 타임아웃 (초), None이면 config.command_timeout 사용

        Returns:
            CommandResult: 실행 결과 (타임아웃/연결 실패도 결과로 반환)
        """
        timeout = timeout or self.config.command_timeout
        start_time = datetime.now()

        if self._system_ssh_available:
            runner = self._run_system_ssh
        elif self._asyncssh_available:
            runner = self._run_asyncssh
        else:
            return CommandResult(
                command=command,
                error_message="No SSH backend available (neither system ssh nor asyncssh)",
            )

        for attempt in range(self.config.retry_count + 1):
            try:
                stdout, stderr, return_code = await runner(command, timeout)
            except asyncio.TimeoutError:
                error = f"Command timed out after {timeout}s"
            except Exception as e:
                error = str(e)
            else:
                return CommandResult(
                    command=command,
                    stdout=stdout.strip(),
                    stderr=stderr.strip(),
                    return_code=return_code,
                    success=return_code == 0,
                    duration_ms=_elapsed_ms(start_time),
                )

            if attempt < self.config.retry_count:
                logger.warning(f"SSH attempt {attempt + 1} failed: {error}")
                await asyncio.sleep(self.config.retry_delay)
                continue

            return CommandResult(
                command=command,
                error_message=error,
                duration_ms=_elapsed_ms(start_time),
            )

        return CommandResult(command=command, error_message="All retry attempts failed")

    async def _run_system_ssh(self, command: str, timeout: int) -> Tuple[str, str, int]:
        """시스템 ssh를 사용한 명령 실행"""
        process = await asyncio.create_subprocess_exec(
            *self._build_ssh_command(command),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise

        return (
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            process.returncode,
        )

    async def _run_asyncssh(self, command: str, timeout: int) -> Tuple[str, str, int]:
        """asyncssh를 사용한 명령 실행 (대안)"""
        import asyncssh

        connect_kwargs = {
            "host": self.config.host,
            "port": self.config.port,
            "username": self.config.username,
            "known_hosts": None,
            "connect_timeout": self.config.timeout,
        }
        if self.config.auth_method == "key" and self.config.key_path:
            connect_kwargs["client_keys"] = [self.config.key_path]
        elif self.config.auth_method == "password" and self.config.password:
            connect_kwargs["password"] = self.config.password

        async with asyncssh.connect(**connect_kwargs) as conn:
            result = await asyncio.wait_for(conn.run(command, check=False), timeout=timeout)

        return result.stdout or "", result.stderr or "", result.exit_status

    async def test_connection(self) -> Tuple[bool, str]:
        """
        SSH 연결 테스트

        Returns:
            (성공여부, 메시지)
        """
        result = await self.execute("echo 'connection_test'", timeout=10)

        if result.success and "connection_test" in result.stdout:
            return True, f"Connected successfully (backend: {self.get_backend_info()['preferred']})"
        return False, f"Connection failed: {result.error_text}"


# download_file: 원격 파일이 없을 때의 종료 코드
MISSING_EXIT_CODE = 3
# download_file: 원격 임시 파일을 만들 수 없음
TRANSFER_FAILED_EXIT_CODE = 5

LIST_FORMAT = r"%f\t%s\t%M\t%y\t%T@\n"
GLOB_CHARS = set("*?[")


def parse_timezone(line: str) -> Tuple[int, str]:
    """`date '+%z %Z'` 출력 -> (UTC 오프셋 초, 시간대 이름)"""
    parts = line.split()
    if not parts:
        return 0, ""
    offset_text = parts[0]
    name = parts[1] if len(parts) > 1 else ""
    try:
        sign = -1 if offset_text.startswith("-") else 1
        digits = offset_text.lstrip("+-")
        offset = sign * (int(digits[:2]) * 3600 + int(digits[2:4]) * 60)
    except ValueError:
        return 0, name
    return offset, name


def parse_listing(lines: List[str], timezone_name: str, timezone_offset: int) -> List[RemoteEntry]:
    """find -printf 출력 파싱 (name, size, mode, type, mtime)"""
    entries = []
    for line in lines:
        parts = line.split("\t")
        if len(parts) < 5:
            continue
        name, size, mode, file_type, mtime = parts[:5]
        try:
            entries.append(RemoteEntry(
                name=name,
                size=int(size),
                mode=mode,
                is_dir=file_type == "d",
                mod_time=int(float(mtime)),
                timezone=timezone_name,
                timezone_offset=timezone_offset,
            ))
        except ValueError:
            logger.debug(f"Skipping malformed listing line: {line!r}")
    return entries


class SSHChannel(RemoteChannel):
    """SSHExecutor 위에 구현한 RemoteChannel"""

    def __init__(self, executor: SSHExecutor):
        self.executor = executor

    @staticmethod
    def build_list_command(path: str) -> str:
        """목록 명령 빌드. 마지막 세그먼트의 glob은 원격 find -name으로 확장"""
        directory, name = posixpath.split(path)
        if GLOB_CHARS & set(name):
            target = f"{shlex.quote(directory or '/')} -mindepth 1 -maxdepth 1 -name {shlex.quote(name)}"
        else:
            target = f"{shlex.quote(path)} -mindepth 1 -maxdepth 1"
        return f"date '+%z %Z' && find {target} -printf '{LIST_FORMAT}'"

    @staticmethod
    def build_download_command(path: str) -> str:
        """
        다운로드 명령 빌드

        gzip 결과를 원격 임시 파일에 먼저 기록하고, gzip이 성공한 경우에만
        base64로 출력합니다 (파이프라인 종료 코드가 gzip 실패를 가리지 않도록).
        """
        quoted = shlex.quote(path)
        return (
            f"[ -e {quoted} ] || exit {MISSING_EXIT_CODE}; "
            f"[ -r {quoted} ] || {{ echo {shlex.quote(path + ': Permission denied')} >&2; exit 4; }}; "
            f"t=$(mktemp) || exit {TRANSFER_FAILED_EXIT_CODE}; "
            f"gzip -c -- {quoted} > \"$t\" && base64 < \"$t\"; "
            f"rc=$?; rm -f \"$t\"; exit $rc"
        )

    async def list_directory(self, session: RemoteSession, path: str) -> ListResult:
        result = await self.executor.execute(self.build_list_command(path))

        if not result.success:
            return ListResult(path=path, error=result.error_text)

        lines = result.stdout.split("\n")
        offset, name = parse_timezone(lines[0])
        return ListResult(
            path=path,
            entries=parse_listing(lines[1:], name, offset),
            timezone=name,
            timezone_offset=offset,
        )

    async def download_file(self, session: RemoteSession, path: str) -> DownloadResult:
        result = await self.executor.execute(self.build_download_command(path))

        if result.return_code == MISSING_EXIT_CODE:
            return DownloadResult(path=path, exists=False)

        if not result.success:
            # 타임아웃/연결 실패는 kind 없이 전달 (메시지로 분류)
            raise ChannelError(f"{path}: {result.error_text}")

        try:
            data = base64.b64decode(result.stdout)
        except (binascii.Error, ValueError) as e:
            return DownloadResult(path=path, error=f"malformed transfer payload: {e}")

        return DownloadResult(path=path, exists=True, encoder="gzip", data=data)


async def open_session(executor: SSHExecutor) -> RemoteSession:
    """
    원격 세션 정보 수집

    Raises:
        ConnectionError: 세션 정보를 얻을 수 없음
    """
    result = await executor.execute("id -u; id -g; id -un; hostname")
    if not result.success:
        raise ConnectionError(f"Unable to open session: {result.error_text}")

    lines = [line.strip() for line in result.stdout.split("\n")]
    if len(lines) < 4:
        raise ConnectionError(f"Unexpected session probe output: {result.stdout!r}")

    uid, gid, username, hostname = lines[:4]
    return RemoteSession(
        session_id=uuid.uuid4().hex[:12],
        remote_address=executor.config.address,
        hostname=hostname,
        username=username,
        uid=uid,
        gid=gid,
    )
