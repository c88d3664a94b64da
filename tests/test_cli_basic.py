from __future__ import annotations

import io
import json
import os
import subprocess
import sys
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

import pytest

from jiradetails import cli
from jiradetails.ux import Colors

GIT_BRANCH = "  feature/ABC-12-thing\n* bugfix/XYZ-7-crash\n  main\n"


def _run(
    cmd: Sequence[str],
    cwd: Path,
    stdin: str,
    env: Mapping[str, str] | None = None,
) -> tuple[int, str, str]:
    result = subprocess.run(
        cmd, cwd=cwd, input=stdin, capture_output=True, text=True, env=env, check=False
    )
    return result.returncode, result.stdout, result.stderr


class FakeFetcher:
    def __init__(self, known: dict[str, str]):
        self.known = known
        self.calls: list[list[str]] = []

    def fetch(self, keys: Iterable[str]) -> dict[str, str]:
        keys = list(keys)
        self.calls.append(keys)
        return {k: self.known[k] for k in keys if k in self.known}


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run main() against tmp files with no ambient credentials or config."""
    for name in ("JIRA_DOMAIN", "JIRA_USER", "JIRA_PW", "JIRA_PASSWORD", "JIRA_API_TOKEN",
                 "JIRADETAILS_CONFIG", "JIRADETAILS_CACHE", "JIRADETAILS_QUIET", "JIRA_VERIFY_TLS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    cli.configure_logging()


def _main(monkeypatch, stdin: str, *argv: str, fetcher: FakeFetcher | None = None) -> int:
    monkeypatch.setattr(sys, "stdin", io.StringIO(stdin))
    monkeypatch.setattr(cli, "build_fetcher", lambda cfg, auth: fetcher)
    return cli.main(["--no-dotenv", "--no-color", *argv])


def test_empty_stdin_is_usage_error_and_touches_no_cache(tmp_path):
    cache = tmp_path / "jira.cache"
    env = os.environ.copy()
    env["JIRADETAILS_CACHE"] = str(cache)

    rc, out, err = _run([sys.executable, "-m", "jiradetails"], tmp_path, "", env)

    assert rc == 1
    assert out == ""
    assert "Usage" in err
    assert not cache.exists()


def test_module_runs_cache_only_without_credentials(tmp_path):
    cache = tmp_path / "jira.cache"
    cache.write_text("ABC-12|Fix login\n", encoding="utf-8")
    env = os.environ.copy()
    for name in ("JIRA_DOMAIN", "JIRA_USER", "JIRA_PW", "JIRA_PASSWORD", "JIRA_API_TOKEN"):
        env.pop(name, None)
    env["JIRADETAILS_CACHE"] = str(cache)
    env["HOME"] = str(tmp_path)

    rc, out, err = _run(
        [sys.executable, "-m", "jiradetails", "--no-dotenv"], tmp_path, "feature/ABC-12-x\n", env
    )

    assert rc == 0, err
    assert out == "ABC-12 | Fix login\n"


def test_table_from_cold_cache(isolated, monkeypatch, capsys):
    cache = isolated / "jira.cache"
    fetcher = FakeFetcher({"ABC-12": "Fix login", "XYZ-7": "Crash"})

    rc = _main(monkeypatch, GIT_BRANCH, "--cache", str(cache), fetcher=fetcher)

    assert rc == 0
    assert capsys.readouterr().out == "ABC-12 | Fix login\nXYZ-7  | Crash\n"
    assert fetcher.calls == [["ABC-12", "XYZ-7"]]
    assert cache.read_text(encoding="utf-8") == "ABC-12|Fix login\nXYZ-7|Crash\n"


def test_warm_cache_skips_fetch(isolated, monkeypatch, capsys):
    cache = isolated / "jira.cache"
    cache.write_text("ABC-12|Fix login\n", encoding="utf-8")
    fetcher = FakeFetcher({})

    rc = _main(monkeypatch, "feature/ABC-12-thing\nmain\n", "--summary-only",
               "--cache", str(cache), fetcher=fetcher)

    assert rc == 0
    assert capsys.readouterr().out == "Fix login\n"
    assert fetcher.calls == []


def test_current_mode_marks_branch(isolated, monkeypatch, capsys):
    fetcher = FakeFetcher({"ABC-12": "Fix login", "XYZ-7": "Crash"})

    _main(monkeypatch, GIT_BRANCH, "--current", "--cache", str(isolated / "c"), fetcher=fetcher)

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "  feature/ABC-12-thing | Fix login"
    assert lines[1] == "* bugfix/XYZ-7-crash   | Crash"
    assert lines[2] == "  main"
    assert Colors.GREEN not in lines[1]


def test_text_mode_finds_every_key(isolated, monkeypatch, capsys):
    fetcher = FakeFetcher({"ABC-1": "one", "DEF-2": "two"})

    _main(monkeypatch, "Fixes ABC-1, relates to def-2 and ABC-1\n", "--text", "--markdown",
          "--cache", str(isolated / "c"), fetcher=fetcher)

    assert capsys.readouterr().out == "- **ABC-1**: one\n- **DEF-2**: two\n"


def test_html_links_use_configured_domain(isolated, monkeypatch, capsys):
    monkeypatch.setenv("JIRA_DOMAIN", "https://jira.example.com")

    _main(monkeypatch, "ABC-1\n", "--html", "--cache", str(isolated / "c"),
          fetcher=FakeFetcher({"ABC-1": "one"}))

    out = capsys.readouterr().out
    assert '<a href="https://jira.example.com/browse/ABC-1">ABC-1</a>: one' in out


def test_no_keys_prints_nothing(isolated, monkeypatch, capsys):
    fetcher = FakeFetcher({})
    rc = _main(monkeypatch, "main\ndevelop\n", "--cache", str(isolated / "c"), fetcher=fetcher)

    assert rc == 0
    assert capsys.readouterr().out == ""
    assert fetcher.calls == []


def test_missing_credentials_warns_on_stderr(isolated, monkeypatch, capsys):
    rc = _main(monkeypatch, "ABC-1\n", "--cache", str(isolated / "c"), fetcher=None)

    captured = capsys.readouterr()
    assert rc == 0
    assert captured.out == "ABC-1 |\n"
    assert "No Jira credentials configured" in captured.err


def test_bad_config_file_falls_back_to_defaults(isolated, monkeypatch, capsys):
    bad = isolated / "broken.yaml"
    bad.write_text("output: [oops\n", encoding="utf-8")

    rc = _main(monkeypatch, "ABC-1\n", "--config", str(bad), "--cache", str(isolated / "c"),
               fetcher=FakeFetcher({"ABC-1": "one"}))

    captured = capsys.readouterr()
    assert rc == 0
    assert captured.out == "ABC-1 | one\n"
    assert "using defaults" in captured.err


def test_json_logs_verbose(isolated, monkeypatch, capsys):
    _main(monkeypatch, "ABC-1\n", "--json-logs", "--verbose", "--cache", str(isolated / "c"),
          fetcher=FakeFetcher({"ABC-1": "one"}))

    entries = [json.loads(line) for line in capsys.readouterr().err.splitlines() if line]
    operations = {e.get("operation") for e in entries}
    assert "reconcile" in operations
    assert any(e["message"].startswith("[reconcile] requested=1") for e in entries)


def test_quiet_suppresses_warnings(isolated, monkeypatch, capsys):
    _main(monkeypatch, "ABC-1\n", "--quiet", "--cache", str(isolated / "c"), fetcher=None)
    assert capsys.readouterr().err == ""


def test_tty_stdin_is_usage_error(isolated, monkeypatch, capsys):
    class _Tty(io.StringIO):
        def isatty(self) -> bool:
            return True

    monkeypatch.setattr(sys, "stdin", _Tty("ABC-1\n"))
    assert cli.main(["--cache", str(isolated / "c")]) == cli.EXIT_USAGE
    assert "Usage: git branch | jiradetails" in capsys.readouterr().err
    assert not (isolated / "c").exists()


def test_text_and_current_are_incompatible(isolated, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO("ABC-1\n"))
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--text", "--current"])
    assert excinfo.value.code == 2


def test_modes_are_mutually_exclusive(isolated, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO("ABC-1\n"))
    with pytest.raises(SystemExit):
        cli.main(["--html", "--markdown"])


def test_build_fetcher_requires_credentials(isolated):
    cfg = cli.load_config(None, env={})
    auth = cli.create_env_auth_manager(cli.EnvAuthConfig(load_dotenv=False))
    assert cli.build_fetcher(cfg, auth) is None


def test_build_fetcher_with_credentials(isolated, monkeypatch):
    monkeypatch.setenv("JIRA_PW", "s3cret")
    cfg = cli.load_config(
        None,
        env={"JIRA_DOMAIN": "https://jira.example.com", "JIRA_USER": "alice"},
        overrides={"batch_size": 7, "verify_tls": False},
    )
    auth = cli.create_env_auth_manager(cli.EnvAuthConfig(load_dotenv=False))

    fetcher = cli.build_fetcher(cfg, auth)

    assert fetcher is not None
    assert fetcher.batch_size == 7
    assert fetcher.client.verify_tls is False
    assert fetcher.client.base_url == "https://jira.example.com"
