import asyncio
import base64
import gzip
import shutil

import pytest

from hostsurvey.collectors.channel import ChannelError
from hostsurvey.collectors.errors import UnexpectedCollectionError
from hostsurvey.collectors.mirror import MirrorWriter
from hostsurvey.collectors.retriever import FileRetriever
from hostsurvey.collectors.rules import CollectionRule, RuleKind, RuleStage
from hostsurvey.collectors.survey import SurveyCollector
from hostsurvey.collectors.ssh_exec import (
    CommandResult,
    SSHChannel,
    SSHConfig,
    SSHExecutor,
    open_session,
    parse_listing,
    parse_timezone,
)

from fakes import user_session


class ScriptedExecutor:
    """명령 순서대로 준비된 CommandResult를 돌려주는 executor"""

    def __init__(self, *results):
        self.config = SSHConfig(host="10.0.0.5")
        self.results = list(results)
        self.commands = []

    async def execute(self, command, timeout=None):
        self.commands.append(command)
        return self.results.pop(0)


def ok(stdout, return_code=0):
    return CommandResult(command="", stdout=stdout, return_code=return_code, success=return_code == 0)


def failed(return_code, stderr=""):
    return CommandResult(command="", stderr=stderr, return_code=return_code)


def test_parse_timezone():
    assert parse_timezone("+0900 KST") == (32400, "KST")
    assert parse_timezone("-0530 XYZ") == (-19800, "XYZ")
    assert parse_timezone("+0000") == (0, "")
    assert parse_timezone("") == (0, "")


def test_parse_listing_skips_malformed_lines():
    lines = [
        "etc\t4096\tdrwxr-xr-x\td\t1700000000.1234567890",
        "passwd\t1520\t-rw-r--r--\tf\t1700000001.0",
        "garbage",
        "bad\tsize\t-rw-r--r--\tf\t1.0",
    ]
    entries = parse_listing(lines, "UTC", 0)

    assert [e.name for e in entries] == ["etc", "passwd"]
    assert entries[0].is_dir and not entries[1].is_dir
    assert entries[1].size == 1520
    assert entries[0].mod_time == 1700000000


def test_list_command_expands_glob_remotely():
    command = SSHChannel.build_list_command("/etc/*.conf")
    assert "find /etc -mindepth 1 -maxdepth 1 -name '*.conf'" in command
    assert command.startswith("date '+%z %Z' && ")


def test_list_command_quotes_plain_path():
    command = SSHChannel.build_list_command("/home/o'brien")
    assert "-name" not in command
    assert "'/home/o'\"'\"'brien'" in command


def test_download_command_reports_missing_with_exit_code():
    command = SSHChannel.build_download_command("/etc/shadow")
    assert command.startswith("[ -e /etc/shadow ] || exit 3;")
    assert "gzip -c -- /etc/shadow > \"$t\" && base64 < \"$t\"" in command
    assert command.endswith("exit $rc")


def test_list_directory_parses_entries():
    executor = ScriptedExecutor(ok("+0900 KST\nalice\t4096\tdrwx------\td\t1700000000.5"))
    result = asyncio.run(SSHChannel(executor).list_directory(user_session(), "/home"))

    assert result.error == ""
    assert result.timezone == "KST" and result.timezone_offset == 32400
    (entry,) = result.entries
    assert entry.name == "alice" and entry.is_dir
    assert entry.modified_at().utcoffset().total_seconds() == 32400


def test_list_directory_empty():
    executor = ScriptedExecutor(ok("+0000 UTC"))
    result = asyncio.run(SSHChannel(executor).list_directory(user_session(), "/root"))
    assert result.entries == [] and result.error == ""


def test_list_directory_failure_becomes_result_error():
    executor = ScriptedExecutor(failed(1, "find: '/nope': No such file or directory"))
    result = asyncio.run(SSHChannel(executor).list_directory(user_session(), "/nope"))
    assert "No such file or directory" in result.error


def test_download_file_returns_gzip_payload():
    content = b"root:x:0:0:root:/root:/bin/bash\n"
    encoded = base64.b64encode(gzip.compress(content)).decode()
    executor = ScriptedExecutor(ok(encoded))

    result = asyncio.run(SSHChannel(executor).download_file(user_session(), "/etc/passwd"))

    assert result.exists and result.encoder == "gzip"
    assert gzip.decompress(result.data) == content


def test_download_missing_file():
    executor = ScriptedExecutor(failed(3))
    result = asyncio.run(SSHChannel(executor).download_file(user_session(), "/etc/nothing"))
    assert not result.exists
    assert result.error == ""


def test_download_permission_denied_raises():
    executor = ScriptedExecutor(failed(4, "/etc/shadow: Permission denied"))
    with pytest.raises(ChannelError) as excinfo:
        asyncio.run(SSHChannel(executor).download_file(user_session(), "/etc/shadow"))
    assert "Permission denied" in str(excinfo.value)


def test_download_malformed_payload():
    executor = ScriptedExecutor(ok("not*base64!"))
    result = asyncio.run(SSHChannel(executor).download_file(user_session(), "/etc/hosts"))
    assert "malformed transfer payload" in result.error


def test_empty_download_output_is_not_collected():
    executor = ScriptedExecutor(ok(""))
    with pytest.raises(UnexpectedCollectionError):
        asyncio.run(FileRetriever(SSHChannel(executor)).fetch(user_session(), "/etc/hosts"))


class LocalShellExecutor:
    """원격 대신 로컬 sh에서 명령을 실행하는 executor"""

    def __init__(self):
        self.config = SSHConfig(host="localhost")

    async def execute(self, command, timeout=None):
        process = await asyncio.create_subprocess_exec(
            "sh", "-c", command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        return CommandResult(
            command=command,
            stdout=stdout.decode().strip(),
            stderr=stderr.decode().strip(),
            return_code=process.returncode,
            success=process.returncode == 0,
        )


needs_shell_tools = pytest.mark.skipif(
    not all(shutil.which(tool) for tool in ("sh", "gzip", "base64", "mktemp")),
    reason="requires sh, gzip, base64 and mktemp",
)


@needs_shell_tools
def test_download_command_round_trips_binary_file(tmp_path):
    content = bytes(range(256)) * 8
    target = tmp_path / "blob.bin"
    target.write_bytes(content)

    channel = SSHChannel(LocalShellExecutor())
    retrieved = asyncio.run(FileRetriever(channel).fetch(user_session(), str(target)))

    assert retrieved.data == content


@needs_shell_tools
def test_download_command_missing_file(tmp_path):
    channel = SSHChannel(LocalShellExecutor())
    result = asyncio.run(channel.download_file(user_session(), str(tmp_path / "absent")))
    assert not result.exists


@needs_shell_tools
def test_unreadable_target_fails_instead_of_writing_empty_file(tmp_path):
    target = tmp_path / "adir"
    target.mkdir()
    writer = MirrorWriter(tmp_path / "mirror")
    rules = [CollectionRule(name="adir", kind=RuleKind.FIXED_PATH, root=str(target), stage=RuleStage.FIXED)]
    channel = SSHChannel(LocalShellExecutor())
    session = user_session("localhost:22")

    collector = SurveyCollector(channel, session, writer=writer, rules=rules,
                                snapshot_paths=[], privileged_snapshot_paths=[])
    result = asyncio.run(collector.collect())

    assert result.collected == []
    assert [f["path"] for f in result.failed] == [str(target)]
    assert not writer.local_path(session.tag, str(target)).exists()


def test_open_session():
    executor = ScriptedExecutor(ok("0\n0\nroot\nweb01"))
    session = asyncio.run(open_session(executor))

    assert session.remote_address == "10.0.0.5:22"
    assert session.tag == "10.0.0.5:22"
    assert session.username == "root" and session.hostname == "web01"
    assert session.is_privileged


def test_open_session_failure():
    executor = ScriptedExecutor(failed(255, "Connection refused"))
    with pytest.raises(ConnectionError):
        asyncio.run(open_session(executor))


def test_build_ssh_command_for_key_auth():
    config = SSHConfig(host="10.0.0.5", port=2222, username="audit", key_path="/keys/id_ed25519")
    cmd = SSHExecutor(config)._build_ssh_command("id -u")

    assert cmd[0] == "ssh"
    assert "BatchMode=yes" in cmd
    assert cmd[cmd.index("-p") + 1] == "2222"
    assert cmd[cmd.index("-i") + 1] == "/keys/id_ed25519"
    assert cmd[-2:] == ["audit@10.0.0.5", "id -u"]
