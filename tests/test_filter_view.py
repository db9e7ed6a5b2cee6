"""Tests for per-process level filters."""

import pytest

from procdeck.sessions.filter_view import FilterView, LevelFilter
from procdeck.sessions.models import LOG_LEVELS
from procdeck.sessions.output_buffer import OutputBuffer


def _buffer(*chunks: str) -> OutputBuffer:
    buf = OutputBuffer()
    for chunk in chunks:
        buf.append(chunk)
    return buf


class TestLevelFilter:
    def test_defaults_to_all_levels(self):
        assert LevelFilter().levels() == frozenset(LOG_LEVELS)

    def test_set_single_level(self):
        levels = LevelFilter()
        levels.set("debug", False)
        assert "debug" not in levels.levels()
        assert "error" in levels.levels()

    def test_set_unknown_level_raises(self):
        with pytest.raises(ValueError):
            LevelFilter().set("noisy", True)


class TestFilterMode:
    def test_disabled_by_default(self):
        view = FilterView()
        assert view.is_enabled("app") is False
        assert view.active_levels("app") == frozenset(LOG_LEVELS)

    def test_toggle_flips_and_seeds_levels(self):
        view = FilterView()
        assert view.toggle_filter_mode("app") is True
        assert view.active_levels("app") == frozenset(LOG_LEVELS)
        assert view.toggle_filter_mode("app") is False

    def test_levels_persist_across_toggles(self):
        view = FilterView()
        view.toggle_filter_mode("app")
        view.set_level("app", "info", False)
        view.toggle_filter_mode("app")
        view.toggle_filter_mode("app")
        assert "info" not in view.active_levels("app")

    def test_set_level_without_filter_mode(self):
        view = FilterView()
        view.set_level("app", "debug", False)
        assert view.is_enabled("app") is False
        assert view.active_levels("app") == frozenset(LOG_LEVELS) - {"debug"}

    def test_set_level_does_not_touch_other_processes(self):
        view = FilterView()
        view.set_level("a", "warn", False)
        assert "warn" in view.active_levels("b")


class TestRender:
    def test_only_error_lines(self):
        view = FilterView()
        buf = _buffer("INFO: server up\n", "ERROR: boom\n")
        view.toggle_filter_mode("app")
        for level in LOG_LEVELS:
            view.set_level("app", level, level == "error")

        lines = view.render("app", buf)
        assert [l.text for l in lines] == ["ERROR: boom"]
        assert lines[0].level == "error"
        assert lines[0].index == 1

    def test_all_levels_show_everything(self):
        view = FilterView()
        lines = view.render("app", _buffer("a\n", "WARN b\n", "c"))
        assert [l.text for l in lines] == ["a", "WARN b", "c"]

    def test_render_sees_new_chunks(self):
        view = FilterView()
        buf = _buffer("one\n")
        assert len(view.render("app", buf)) == 1
        buf.append("two\n")
        assert len(view.render("app", buf)) == 2

    def test_render_after_clear(self):
        view = FilterView()
        buf = _buffer("ERROR old\n")
        view.render("app", buf)
        buf.clear()
        buf.append("ERROR new\n")
        assert [l.text for l in view.render("app", buf)] == ["ERROR new"]

    def test_render_reflects_level_change(self):
        view = FilterView()
        buf = _buffer("DEBUG x\n", "INFO y\n")
        assert len(view.render("app", buf)) == 2
        view.set_level("app", "debug", False)
        assert [l.text for l in view.render("app", buf)] == ["INFO y"]

    def test_cached_result_is_a_copy(self):
        view = FilterView()
        buf = _buffer("a\n")
        first = view.render("app", buf)
        first.clear()
        assert len(view.render("app", buf)) == 1
