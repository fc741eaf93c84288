"""Tests for parsing the doctor's check list."""

from __future__ import annotations

import json

import pytest

from dotrepair.core.checks import parse_checks
from dotrepair.core.errors import CheckInputError
from dotrepair.core.models import CheckStatus


class TestParseChecks:
    def test_json_list(self):
        text = json.dumps([
            {"id": "path.ordering", "status": "fail", "message": "~/.local/bin after /usr/bin"},
            {"id": "shell.default", "status": "pass"},
        ])
        checks = parse_checks(text)

        assert [c.check_id for c in checks] == ["path.ordering", "shell.default"]
        assert checks[0].status == CheckStatus.FAIL
        assert checks[0].message == "~/.local/bin after /usr/bin"
        assert checks[1].status == CheckStatus.PASS

    def test_json_object_with_checks_key(self):
        text = json.dumps({"checks": [
            {"check_id": "config.missing", "status": "FAIL", "target": "zsh/acfs.zshrc"},
        ]})
        checks = parse_checks(text)

        assert checks[0].check_id == "config.missing"
        assert checks[0].target == "zsh/acfs.zshrc"

    def test_text_lines(self):
        text = "# doctor output\nfail path.ordering PATH is wrong\npass shell.omz\n\nwarn ssh.keepalive\n"
        checks = parse_checks(text)

        assert [(c.status, c.check_id) for c in checks] == [
            (CheckStatus.FAIL, "path.ordering"),
            (CheckStatus.PASS, "shell.omz"),
            (CheckStatus.WARN, "ssh.keepalive"),
        ]
        assert checks[0].message == "PATH is wrong"

    def test_status_aliases(self):
        checks = parse_checks("ok a.b\nfailed c.d\nwarning e.f\n")
        assert [c.status for c in checks] == [CheckStatus.PASS, CheckStatus.FAIL, CheckStatus.WARN]

    def test_empty_input(self):
        assert parse_checks("   \n") == []

    def test_warn_counts_as_failing(self):
        checks = parse_checks("fail a.b\npass c.d\nwarn e.f\n")
        assert [c.check_id for c in checks if c.status.is_failing] == ["a.b", "e.f"]


class TestParseErrors:
    def test_invalid_json(self):
        with pytest.raises(CheckInputError, match="Invalid JSON"):
            parse_checks("[{")

    def test_unknown_status(self):
        with pytest.raises(CheckInputError, match="unknown status"):
            parse_checks("broken path.ordering\n")

    def test_missing_id(self):
        with pytest.raises(CheckInputError, match="missing 'id'"):
            parse_checks('[{"status": "fail"}]')

    def test_short_line(self):
        with pytest.raises(CheckInputError, match="Line 1"):
            parse_checks("fail\n")

    def test_object_without_checks(self):
        with pytest.raises(CheckInputError):
            parse_checks('{"results": []}')
