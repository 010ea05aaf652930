"""Tests for autotube/__main__.py — argument parsing and command dispatch."""

import json
from unittest.mock import patch

import pytest

from autotube.__main__ import COMMANDS, build_parser, cmd_drain, cmd_report, main


class TestParser:
    def test_every_command_has_a_handler(self):
        parser = build_parser()
        for cmd in COMMANDS:
            args = ["x"] if cmd in ("publish", "pause", "resume", "retry") else []
            if cmd == "produce":
                args = ["--resume", "prod_1"]
            assert parser.parse_args([cmd, *args]).cmd == cmd

    def test_produce_requires_source(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["produce"])

    def test_resume_time(self):
        args = build_parser().parse_args(["resume", "pub_1", "--at", "2026-03-12T14:00:00Z"])
        assert args.id == "pub_1"
        assert args.at == "2026-03-12T14:00:00Z"


class TestCommands:
    def test_drain(self, store, pipeline, queue, ready_item, uploader, capsys):
        queue.enqueue(ready_item("Due", hours=-1))
        cmd_drain(build_parser().parse_args(["drain"]), (store, pipeline, queue, None))
        assert "Published 1" in capsys.readouterr().out
        assert len(uploader.calls) == 1

    def test_report_is_json(self, store, pipeline, queue, ready_item, capsys):
        queue.enqueue(ready_item("Later", hours=5))
        cmd_report(build_parser().parse_args(["report"]), (store, pipeline, queue, None))
        report = json.loads(capsys.readouterr().out)
        assert report["queue_status"]["total"] == 1

    def test_errors_exit_nonzero(self, store, pipeline, queue):
        with patch("autotube.__main__.CONFIG_FILE") as config_file, \
                patch("autotube.__main__.build_services", return_value=(store, pipeline, queue, None)):
            config_file.exists.return_value = True
            with pytest.raises(SystemExit) as exc:
                main(["pause", "pub_missing"])
        assert exc.value.code == 1
