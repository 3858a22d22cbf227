"""Tests for host id resolution and port derivation."""

import socket

import pytest

from relayshell.exceptions import InvalidHostIDError
from relayshell.utils.endpoint import derive_port, fnv1_32, get_free_port, resolve_host_id

HOST_UUID = "0b8e6a4c-3f1d-4e2a-9c57-2d1f6e8a9b30"


def test_fnv1_known_vectors():
    assert fnv1_32(b"") == 0x811C9DC5
    assert fnv1_32(b"a") == 0x050C5D7E
    assert fnv1_32(b"foobar") == 0x31F0B262


def test_derive_port_known_values():
    assert derive_port("") == 40389
    assert derive_port("a") == 23934
    assert derive_port(HOST_UUID) == 20429


def test_derive_port_is_stable_and_in_range():
    for ident in ("", "host-1", HOST_UUID, "ünïcode", "x" * 4096):
        port = derive_port(ident)
        assert port == derive_port(ident)
        assert 0 <= port <= 65535


def test_resolve_host_id_reads_file_verbatim(tmp_path):
    id_file = tmp_path / "host-id"
    id_file.write_bytes(b"my-host\n")

    assert resolve_host_id(str(id_file)) == "my-host\n"


def test_resolve_host_id_file_wins_over_uuid_syntax(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / HOST_UUID).write_text("from-file")

    assert resolve_host_id(HOST_UUID) == "from-file"


def test_resolve_host_id_accepts_uuid(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert resolve_host_id(HOST_UUID) == HOST_UUID


@pytest.mark.parametrize("raw", ["", "not-a-uuid", "/nonexistent/path/to/id"])
def test_resolve_host_id_rejects_invalid(raw, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(InvalidHostIDError) as excinfo:
        resolve_host_id(raw)
    assert str(excinfo.value) == "host id should be either uuid or path to file with it"


def test_resolve_host_id_rejects_directory(tmp_path):
    with pytest.raises(InvalidHostIDError):
        resolve_host_id(str(tmp_path))


def test_file_and_literal_ids_derive_the_same_port(tmp_path):
    id_file = tmp_path / "id"
    id_file.write_text(HOST_UUID)

    assert derive_port(resolve_host_id(str(id_file))) == derive_port(resolve_host_id(HOST_UUID))


def test_get_free_port_is_bindable():
    port = get_free_port()
    assert 0 < port <= 65535

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", port))
