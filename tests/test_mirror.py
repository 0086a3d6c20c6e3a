import os

import pytest

from hostsurvey.collectors.errors import UnexpectedCollectionError
from hostsurvey.collectors.mirror import MirrorWriter


def test_local_path_is_tag_plus_remote_path(tmp_path):
    writer = MirrorWriter(tmp_path)
    assert writer.local_path("10.0.0.5:22", "/etc/passwd") == tmp_path / "10.0.0.5:22" / "etc" / "passwd"


def test_local_path_derivation_independent_of_tag(tmp_path):
    writer = MirrorWriter(tmp_path)
    a = writer.local_path("host-a", "/var/log/auth.log")
    b = writer.local_path("host-b", "/var/log/auth.log")
    assert a.relative_to(tmp_path / "host-a") == b.relative_to(tmp_path / "host-b")


def test_local_path_keeps_dotdot_segments(tmp_path):
    path = MirrorWriter(tmp_path).local_path("t", "/etc/../etc/hosts")
    assert str(path).endswith(os.path.join("t", "etc", "..", "etc", "hosts"))


def test_persist_creates_intermediate_directories(tmp_path):
    writer = MirrorWriter(tmp_path)
    path = writer.persist(b"PermitRootLogin no\n", "/etc/ssh/sshd_config", "10.0.0.5:22")

    assert path == tmp_path / "10.0.0.5:22" / "etc" / "ssh" / "sshd_config"
    assert path.read_bytes() == b"PermitRootLogin no\n"
    assert (tmp_path / "10.0.0.5:22" / "etc").is_dir()


def test_persist_twice_overwrites_without_duplicates(tmp_path):
    writer = MirrorWriter(tmp_path)
    writer.persist(b"first version, longer content\n", "/etc/hosts", "tag")
    path = writer.persist(b"second\n", "/etc/hosts", "tag")

    assert path.read_bytes() == b"second\n"
    assert sorted(p.name for p in (tmp_path / "tag" / "etc").iterdir()) == ["hosts"]
    assert sorted(p.name for p in (tmp_path / "tag").iterdir()) == ["etc"]


def test_persist_separates_hosts_by_tag(tmp_path):
    writer = MirrorWriter(tmp_path)
    writer.persist(b"a", "/etc/hostname", "10.0.0.1:22")
    writer.persist(b"b", "/etc/hostname", "10.0.0.2:22")

    assert (tmp_path / "10.0.0.1:22" / "etc" / "hostname").read_bytes() == b"a"
    assert (tmp_path / "10.0.0.2:22" / "etc" / "hostname").read_bytes() == b"b"


def test_persist_creates_missing_base_dir(tmp_path):
    writer = MirrorWriter(tmp_path / "out" / "mirror")
    path = writer.persist(b"x", "/etc/hostname", "tag")
    assert path.read_bytes() == b"x"


def test_directory_creation_failure_is_unexpected(tmp_path):
    writer = MirrorWriter(tmp_path)
    writer.persist(b"i am a file", "/etc", "tag")

    with pytest.raises(UnexpectedCollectionError) as excinfo:
        writer.persist(b"x", "/etc/passwd", "tag")
    assert excinfo.value.path == "/etc/passwd"


def test_view_echoes_written_file(tmp_path, capsys):
    MirrorWriter(tmp_path).persist(b"2\n", "/proc/sys/kernel/yama/ptrace_scope", "tag", view=True)
    assert capsys.readouterr().out == "2\n"


def test_read_returns_mirrored_content(tmp_path):
    writer = MirrorWriter(tmp_path)
    writer.persist(b"1\n", "/proc/sys/kernel/unprivileged_bpf_disabled", "tag")
    assert writer.read("tag", "/proc/sys/kernel/unprivileged_bpf_disabled") == "1\n"
