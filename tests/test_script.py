"""Tests for autotube/script.py — narration text and duration."""

import json

from autotube.models import Script, Section
from autotube.script import estimate_duration, format_script_for_tts, write_script_files


class TestFormatScript:
    def test_order_and_numbering(self, sample_brief):
        text = format_script_for_tts(sample_brief.script)
        hook = text.index("Most productivity advice is wrong.")
        first = text.index("Section 1: Sleep first")
        second = text.index("Section 2: Single tasking")
        cta = text.index("Subscribe for more.")
        assert hook < first < second < cta

    def test_blank_line_between_parts(self):
        text = format_script_for_tts(Script(title="T", hook="Hi", call_to_action=["Bye"]))
        assert text == "Hi\n\nBye\n"


class TestEstimateDuration:
    def test_uses_script_duration(self, sample_brief):
        assert estimate_duration(sample_brief.script) == 300

    def test_words_per_minute(self):
        script = Script(title="T", sections=[Section(title="", lines=["word " * 300])])
        assert estimate_duration(script) == 120

    def test_minimum(self):
        assert estimate_duration(Script(title="T", hook="short")) == 30


class TestWriteScriptFiles:
    def test_writes_json_and_tts(self, sample_brief, tmp_work_dir):
        json_path, tts_path = write_script_files(sample_brief, tmp_work_dir)
        assert json.loads(json_path.read_text())["title"] == "5 Habits That Actually Work"
        assert tts_path.read_text() == format_script_for_tts(sample_brief.script)
