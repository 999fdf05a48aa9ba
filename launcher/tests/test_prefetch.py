"""
Tests for the headless mod prefetch run.
"""

import pytest

from asa_launcher.errors import ExecutableNotFound, NoModsSpecified
from asa_launcher.models import ServerConfig
from asa_launcher.prefetch import PREFETCH_ARGS, PrefetchMonitor, PrefetchState

from conftest import FakeClock, FakeHandle, FakeRunner

PROGRESS = "Downloading mod"
COMPLETE = "Mod download complete"


@pytest.fixture
def clock():
    return FakeClock()


def _monitor(layout, clock, runner, *, mods=("928102",), timeout=120.0, poll=10.0, **kw):
    return PrefetchMonitor(
        layout, ServerConfig(mods=list(mods)),
        timeout=timeout, poll_interval=poll,
        progress_marker=PROGRESS, complete_marker=COMPLETE,
        runner=runner, clock=clock, sleep=clock.sleep, **kw,
    )


def _append(path, text):
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(text)


class TestPrefetchOutcomes:

    def test_completion_marker_stops_promptly(self, layout, clock):
        """The process is killed within one poll interval after the marker shows up."""
        log_file = layout.logs_dir / "ShooterGame.log"
        clock.at(20, lambda: _append(log_file, f"[2026.10.19-12.00.00] {PROGRESS} 928102 (12%)\n"))
        clock.at(35, lambda: _append(log_file, f"[2026.10.19-12.00.15] {COMPLETE}\r\n"))
        runner = FakeRunner()
        mon = _monitor(layout, clock, runner)

        result = mon.run()

        assert result.completed
        assert result.progress_seen == 1
        assert 35 <= clock.now <= 35 + 10
        assert runner.handles[0].killed
        assert mon.history == [
            PrefetchState.IDLE,
            PrefetchState.LAUNCHING,
            PrefetchState.POLLING,
            PrefetchState.COMPLETED,
            PrefetchState.TERMINATING,
            PrefetchState.DONE,
        ]

    def test_timeout_is_soft(self, layout, clock):
        """No marker: TimedOut at/after the timeout, child killed, no exception."""
        (layout.logs_dir / "ShooterGame.log").write_text("")
        runner = FakeRunner()
        mon = _monitor(layout, clock, runner, timeout=65, poll=10)

        result = mon.run()

        assert result.outcome == "timed_out"
        assert clock.now >= 65
        assert runner.handles[0].killed
        assert mon.history[-3:] == [PrefetchState.TIMED_OUT, PrefetchState.TERMINATING, PrefetchState.DONE]
        assert max(clock.sleeps) <= 10

    def test_progress_marker_does_not_complete(self, layout, clock):
        log_file = layout.logs_dir / "ShooterGame.log"
        clock.at(10, lambda: _append(log_file, f"{PROGRESS} 1\n{PROGRESS} 2\n"))
        result = _monitor(layout, clock, FakeRunner(), timeout=30).run()
        assert result.outcome == "timed_out"
        assert result.progress_seen == 2

    def test_marker_in_any_log_file(self, layout, clock):
        clock.at(10, lambda: _append(layout.logs_dir / "ShooterGame_2.log", f"{COMPLETE}\n"))
        assert _monitor(layout, clock, FakeRunner()).run().completed

    def test_marker_split_across_polls(self, layout, clock):
        log_file = layout.logs_dir / "ShooterGame.log"
        clock.at(10, lambda: _append(log_file, "Mod download com"))
        clock.at(20, lambda: _append(log_file, "plete\n"))
        result = _monitor(layout, clock, FakeRunner()).run()
        assert result.completed
        assert clock.now == 20

    def test_old_log_content_is_ignored(self, layout, clock):
        """A completion marker left over from an earlier run does not end this one."""
        (layout.logs_dir / "ShooterGame.log").write_text(f"{COMPLETE}\n")
        result = _monitor(layout, clock, FakeRunner(), timeout=20).run()
        assert result.outcome == "timed_out"

    def test_child_exiting_early_ends_polling(self, layout, clock):
        runner = FakeRunner(lambda i: FakeHandle(rc=1, exits_on_its_own=True))
        mon = _monitor(layout, clock, runner)
        result = mon.run()
        assert result.outcome == "exited"
        assert mon.state is PrefetchState.DONE


class TestPrefetchLaunch:

    def test_no_mods_fails_before_launch(self, layout, clock):
        runner = FakeRunner()
        with pytest.raises(NoModsSpecified):
            _monitor(layout, clock, runner, mods=()).run()
        assert runner.calls == []

    def test_missing_executable(self, empty_layout, clock):
        with pytest.raises(ExecutableNotFound):
            _monitor(empty_layout, clock, FakeRunner()).run()

    def test_headless_tokens_appended(self, layout, clock):
        runner = FakeRunner()
        clock.at(10, lambda: _append(layout.logs_dir / "a.log", f"{COMPLETE}\n"))
        _monitor(layout, clock, runner, mods=("1", "2")).run()
        args = runner.calls[0]["args"]
        assert args[0].endswith(" listen")
        assert args[1] == "-mods=1,2"
        assert args[-len(PREFETCH_ARGS):] == list(PREFETCH_ARGS)
        assert runner.calls[0]["cwd"] == layout.binaries_dir

    def test_headless_tokens_not_duplicated(self, layout, clock):
        mon = PrefetchMonitor(layout, ServerConfig(mods=["1"], extra_args=["-log"]), runner=FakeRunner())
        assert mon.launch_args().count("-log") == 1

