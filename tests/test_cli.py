"""Tests for securepass.cli."""

import functools
import json
from datetime import datetime

import httpx
import pytest
from typer.testing import CliRunner

from securepass import cli
from securepass.cli import app
from securepass.models import CredentialRecord
from securepass.remote import RemoteCredentialStore

runner = CliRunner()


@pytest.fixture
def data_file(tmp_path):
    return tmp_path / "credentials.json"


@pytest.fixture
def invoke(data_file):
    env = {"SECUREPASS_BACKEND": "file", "SECUREPASS_PATH": str(data_file)}

    def _invoke(*args, **kwargs):
        return runner.invoke(app, list(args), env=env, **kwargs)

    return _invoke


def _stored(data_file):
    return json.loads(data_file.read_text())


def _ts(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _add(invoke, website="GitHub", username="alice"):
    result = invoke("add", website, "--username", username, "--generate", "--length", "20")
    assert result.exit_code == 0, result.output
    return result


# ---------------------------------------------------------------------------
# Generator commands
# ---------------------------------------------------------------------------


def test_generate_single(invoke):
    result = invoke("generate", "--length", "12")
    assert result.exit_code == 0, result.output
    assert "Generated password (12 chars)" in result.output


def test_generate_many(invoke):
    result = invoke("generate", "--count", "3", "--no-symbols")
    assert result.exit_code == 0, result.output
    assert "Generated 3 passwords" in result.output


def test_generate_rejects_bad_length(invoke):
    result = invoke("generate", "--length", "0")
    assert result.exit_code == 1
    assert "Invalid password policy" in result.output


def test_generate_does_not_touch_storage(invoke, data_file):
    invoke("generate")
    assert not data_file.exists()


@pytest.mark.parametrize(
    "password, expected",
    [("password", "Fair (45/100)"), ("Tr0ub4dor&3xyz", "Strong (100/100)"), ("abc", "Weak (25/100)")],
)
def test_strength(invoke, password, expected):
    result = invoke("strength", password)
    assert result.exit_code == 0, result.output
    assert expected in result.output


# ---------------------------------------------------------------------------
# Store commands
# ---------------------------------------------------------------------------


def test_add_persists_generated_password(invoke, data_file):
    result = _add(invoke)
    assert "saved" in result.output
    [record] = _stored(data_file)
    assert record["website"] == "GitHub"
    assert record["username"] == "alice"
    assert len(record["password"]) == 20
    assert record["createdAt"] == record["updatedAt"]


def test_list_and_search(invoke):
    _add(invoke, "GitHub", "alice")
    _add(invoke, "Bank", "carol")

    listing = invoke("list")
    assert listing.exit_code == 0
    assert "GitHub" in listing.output and "Bank" in listing.output

    found = invoke("search", "hub")
    assert "GitHub" in found.output
    assert "Bank" not in found.output

    missing = invoke("search", "xyz")
    assert "No results" in missing.output


def test_list_empty(invoke):
    result = invoke("list")
    assert result.exit_code == 0
    assert "No credentials stored yet" in result.output


def test_get_by_id_shows_password(invoke, data_file):
    _add(invoke)
    record = _stored(data_file)[0]
    result = invoke("get", record["id"], "--show")
    assert result.exit_code == 0, result.output
    assert record["password"] in result.output
    assert "Strength" in result.output


def test_get_by_term_hides_password(invoke, data_file):
    _add(invoke)
    record = _stored(data_file)[0]
    result = invoke("get", "git")
    assert result.exit_code == 0, result.output
    assert record["password"] not in result.output


def test_get_ambiguous_and_missing(invoke):
    _add(invoke, "GitHub", "alice")
    _add(invoke, "GitLab", "alice")
    assert invoke("get", "git").exit_code == 1
    assert "Multiple matches" in invoke("get", "git").output
    assert invoke("get", "nothing-like-this").exit_code == 1


def test_update_fields(invoke, data_file):
    _add(invoke)
    before = _stored(data_file)[0]
    result = invoke("update", before["id"], "--username", "bob", "--notes", "", "--keep-password")
    assert result.exit_code == 0, result.output
    after = _stored(data_file)[0]
    assert after["username"] == "bob"
    assert after["notes"] == ""
    assert after["password"] == before["password"]
    assert after["createdAt"] == before["createdAt"]
    assert _ts(after["updatedAt"]) >= _ts(before["updatedAt"])


def test_update_generate_rotates_password(invoke, data_file):
    _add(invoke)
    before = _stored(data_file)[0]
    result = invoke("update", before["id"], "--generate", "--length", "30")
    assert result.exit_code == 0, result.output
    assert len(_stored(data_file)[0]["password"]) == 30


def test_update_without_changes(invoke, data_file):
    _add(invoke)
    record = _stored(data_file)[0]
    result = invoke("update", record["id"], "--keep-password")
    assert "No changes made" in result.output
    assert _stored(data_file)[0] == record


def test_delete(invoke, data_file):
    _add(invoke)
    record = _stored(data_file)[0]
    result = invoke("delete", record["id"], "--yes")
    assert result.exit_code == 0, result.output
    assert _stored(data_file) == []


def test_delete_declined(invoke, data_file):
    _add(invoke)
    result = invoke("delete", "GitHub", input="n\n")
    assert result.exit_code == 0
    assert len(_stored(data_file)) == 1


def test_clear(invoke, data_file):
    _add(invoke, "GitHub")
    _add(invoke, "Bank")
    result = invoke("clear", "--yes")
    assert result.exit_code == 0, result.output
    assert not data_file.exists()
    assert "No credentials stored yet" in invoke("list").output


def test_info(invoke, data_file):
    _add(invoke)
    result = invoke("info")
    assert result.exit_code == 0, result.output
    assert "file" in result.output
    assert "Credentials" in result.output


def test_unwritable_storage_is_reported(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    env = {"SECUREPASS_BACKEND": "file", "SECUREPASS_PATH": str(blocker / "c.json")}
    result = runner.invoke(app, ["add", "GitHub", "-u", "alice", "-g"], env=env)
    assert result.exit_code == 0, result.output
    assert "Saved in memory only" in result.output


def test_invalid_environment(tmp_path):
    result = runner.invoke(app, ["list"], env={"SECUREPASS_BACKEND": "floppy"})
    assert result.exit_code == 1
    assert "Invalid SECUREPASS_* configuration" in result.output


# ---------------------------------------------------------------------------
# Encrypted backend
# ---------------------------------------------------------------------------


@pytest.fixture
def encrypted_env(tmp_path):
    return {
        "SECUREPASS_BACKEND": "encrypted",
        "SECUREPASS_PATH": str(tmp_path / "vault.spv"),
        "SECUREPASS_KDF_ITERATIONS": "1000",
    }


def _master(monkeypatch, password):
    monkeypatch.setattr(cli.Prompt, "ask", classmethod(lambda cls, *a, **kw: password))


def test_encrypted_add_and_reopen(monkeypatch, encrypted_env, tmp_path):
    _master(monkeypatch, "master")
    added = runner.invoke(app, ["add", "GitHub", "-u", "alice", "-g"], env=encrypted_env)
    assert added.exit_code == 0, added.output
    assert b"GitHub" not in (tmp_path / "vault.spv").read_bytes()

    listing = runner.invoke(app, ["list"], env=encrypted_env)
    assert "GitHub" in listing.output


def test_encrypted_wrong_master_password(monkeypatch, encrypted_env, tmp_path):
    _master(monkeypatch, "master")
    runner.invoke(app, ["add", "GitHub", "-u", "alice", "-g"], env=encrypted_env)
    original = (tmp_path / "vault.spv").read_bytes()

    _master(monkeypatch, "wrong")
    result = runner.invoke(app, ["add", "Bank", "-u", "carol", "-g"], env=encrypted_env)
    assert result.exit_code == 1
    assert "Decryption failed" in result.output
    assert (tmp_path / "vault.spv").read_bytes() == original


# ---------------------------------------------------------------------------
# Remote service
# ---------------------------------------------------------------------------

API_URL = "http://vault.test/api/passwords"


class CredentialService:
    """In-memory stand-in for the credential HTTP API."""

    def __init__(self):
        self.records = {}
        self.tokens = []

    def __call__(self, request):
        self.tokens.append(request.headers.get("X-Session-Token"))
        record_id = request.url.path.removeprefix("/api/passwords").lstrip("/")
        if request.method == "GET" and not record_id:
            return httpx.Response(200, json=list(self.records.values()))
        if request.method == "POST":
            rec = CredentialRecord.create(**json.loads(request.content)).serialize()
            self.records[rec["id"]] = rec
            return httpx.Response(200, json=rec)
        if request.method == "GET":
            if record_id not in self.records:
                return httpx.Response(404, json={"error": "Not found"})
            return httpx.Response(200, json=self.records[record_id])
        if request.method == "DELETE":
            return httpx.Response(200, json={"success": self.records.pop(record_id, None) is not None})
        return httpx.Response(405)


def _serve(monkeypatch, handler):
    monkeypatch.setattr(
        cli, "RemoteCredentialStore", functools.partial(RemoteCredentialStore, transport=httpx.MockTransport(handler))
    )


@pytest.fixture
def remote_env(tmp_path):
    return {
        "SECUREPASS_BACKEND": "file",
        "SECUREPASS_PATH": str(tmp_path / "credentials.json"),
        "SECUREPASS_API_URL": API_URL,
        "SECUREPASS_SESSION_TOKEN": "tok-123",
    }


def test_remote_requires_api_url(tmp_path):
    env = {"SECUREPASS_BACKEND": "memory", "SECUREPASS_API_URL": None}
    result = runner.invoke(app, ["remote", "list"], env=env)
    assert result.exit_code == 1
    assert "No remote service configured" in result.output


def test_remote_add_list_get_delete(monkeypatch, remote_env, tmp_path):
    service = CredentialService()
    _serve(monkeypatch, service)

    added = runner.invoke(app, ["remote", "add", "GitHub", "-u", "alice", "-g"], env=remote_env)
    assert added.exit_code == 0, added.output
    [record] = service.records.values()
    assert record["website"] == "GitHub"
    assert "saved remotely" in added.output

    listing = runner.invoke(app, ["remote", "list"], env=remote_env)
    assert "GitHub" in listing.output

    found = runner.invoke(app, ["remote", "search", "hub"], env=remote_env)
    assert "GitHub" in found.output
    assert "No results" in runner.invoke(app, ["remote", "search", "bank"], env=remote_env).output

    shown = runner.invoke(app, ["remote", "get", record["id"], "--show"], env=remote_env)
    assert shown.exit_code == 0, shown.output
    assert record["password"] in shown.output

    deleted = runner.invoke(app, ["remote", "delete", record["id"], "--yes"], env=remote_env)
    assert deleted.exit_code == 0, deleted.output
    assert service.records == {}
    assert runner.invoke(app, ["remote", "get", record["id"]], env=remote_env).exit_code == 1

    assert set(service.tokens) == {"tok-123"}
    assert not (tmp_path / "credentials.json").exists()


def test_remote_failure_is_reported(monkeypatch, remote_env):
    _serve(monkeypatch, lambda request: httpx.Response(401, json={"error": "Not authenticated"}))
    result = runner.invoke(app, ["remote", "list"], env=remote_env)
    assert result.exit_code == 1
    assert "Remote request failed" in result.output
    assert "401" in result.output
