"""
Tests for the restart loop.
"""

import pytest

from asa_launcher.errors import ExecutableNotFound, InstanceLocked
from asa_launcher.instance_lock import InstanceLock
from asa_launcher.supervisor import ProcessSupervisor, SupervisorState

from conftest import FakeHandle, FakeRunner

ARGS = ["TheIsland_WP?SessionName=x?Port=7777?QueryPort=27015?MaxPlayers=10 listen", "-NoBattlEye"]


def _stop_after(n, box):
    """Handle factory: launch n asks the supervisor to stop while the child is running."""
    def make(i):
        if i == n:
            return FakeHandle(rc=1, on_wait=lambda h: box["sup"].request_stop())
        return FakeHandle(rc=1)
    return make


class TestRestartLoop:

    def test_restarts_until_stopped(self, layout):
        """A child that keeps exiting is relaunched until an external stop arrives."""
        box = {}
        runner = FakeRunner(_stop_after(4, box))
        sup = ProcessSupervisor(layout, ARGS, restart_delay=0, runner=runner)
        box["sup"] = sup

        rc = sup.run()

        assert rc == 1
        assert sup.launches == 4
        assert all(c["args"] == ARGS for c in runner.calls)
        assert all(c["cwd"] == layout.binaries_dir for c in runner.calls)
        assert runner.handles[-1].terminated
        assert sup.state is SupervisorState.STOPPED
        assert sup.history.count(SupervisorState.RESTARTING) == 3

    def test_restart_waits_configured_delay(self, layout):
        box = {}
        delays = []
        sup = ProcessSupervisor(layout, ARGS, restart_delay=7.5, runner=FakeRunner(_stop_after(3, box)),
                                sleep=lambda t: delays.append(t) or False)
        box["sup"] = sup

        sup.run()

        assert delays == [7.5, 7.5]

    def test_no_auto_restart_stops_after_first_exit(self, layout):
        runner = FakeRunner(lambda i: FakeHandle(rc=3))
        sup = ProcessSupervisor(layout, ARGS, auto_restart=False, runner=runner)

        assert sup.run() == 3
        assert sup.launches == 1
        assert sup.history == [
            SupervisorState.IDLE,
            SupervisorState.LAUNCHING,
            SupervisorState.RUNNING,
            SupervisorState.EXITED,
            SupervisorState.STOPPED,
        ]

    def test_nonzero_exit_is_not_an_error(self, layout):
        sup = ProcessSupervisor(layout, ARGS, auto_restart=False, runner=FakeRunner(lambda i: FakeHandle(rc=-9)))
        assert sup.run() == -9

    def test_stop_during_delay_skips_relaunch(self, layout):
        sup = ProcessSupervisor(layout, ARGS, restart_delay=5, runner=FakeRunner(), sleep=lambda t: True)
        sup.run()
        assert sup.launches == 1
        assert sup.state is SupervisorState.STOPPED

    def test_stop_requested_before_launch_terminates_child(self, layout):
        runner = FakeRunner()
        sup = ProcessSupervisor(layout, ARGS, runner=runner)
        sup.request_stop()
        sup.run()
        assert sup.launches == 1
        assert runner.handles[0].terminated


class TestPreconditions:

    def test_missing_executable_fails_before_loop(self, empty_layout):
        runner = FakeRunner()
        sup = ProcessSupervisor(empty_layout, ARGS, runner=runner)
        with pytest.raises(ExecutableNotFound):
            sup.run()
        assert runner.calls == []
        assert sup.state is SupervisorState.IDLE

    def test_second_supervisor_on_same_install_is_rejected(self, layout):
        runner = FakeRunner()
        with InstanceLock(layout.lock_file):
            sup = ProcessSupervisor(layout, ARGS, auto_restart=False, runner=runner)
            with pytest.raises(InstanceLocked):
                sup.run()
        assert runner.calls == []

    def test_lock_released_after_stop(self, layout):
        sup = ProcessSupervisor(layout, ARGS, auto_restart=False, runner=FakeRunner())
        sup.run()
        with InstanceLock(layout.lock_file) as lock:
            assert lock.held


class TestSignals:

    def test_second_stop_request_kills(self, layout):
        handle = FakeHandle()
        sup = ProcessSupervisor(layout, ARGS, runner=FakeRunner(lambda i: handle))
        sup._current = handle
        sup.request_stop()
        assert handle.terminated
        handle.alive = True
        sup.request_stop()
        assert handle.killed

    def test_install_signal_handlers_restores(self, layout):
        import signal
        before = signal.getsignal(signal.SIGTERM)
        sup = ProcessSupervisor(layout, ARGS, runner=FakeRunner())
        restore = sup.install_signal_handlers()
        assert signal.getsignal(signal.SIGTERM) is not before
        restore()
        assert signal.getsignal(signal.SIGTERM) is before
