"""Tests for the MPV media player.

The mpv binary and subprocess are mocked; no audio is played.
"""

from __future__ import annotations

import signal
import subprocess
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from habitforge.playback.players import MediaPlayer, MpvPlayer


def fake_process(returncode: int = 0, ignores_sigterm: bool = False) -> MagicMock:
    """A Popen stand-in whose wait() blocks until release() is called."""
    done = threading.Event()
    process = MagicMock()
    process.waiting_threads = []
    process.poll.side_effect = lambda: returncode if done.is_set() else None

    def wait(timeout=None):
        process.waiting_threads.append(threading.current_thread())
        if not done.wait(timeout):
            raise subprocess.TimeoutExpired("mpv", timeout)
        return returncode

    process.wait.side_effect = wait
    if not ignores_sigterm:
        process.terminate.side_effect = done.set
    process.kill.side_effect = done.set
    process.release = done.set
    return process


@pytest.mark.playback
class TestMediaPlayer:
    def test_finish_callbacks_fire_once(self) -> None:
        player = MediaPlayer("x")
        ended = []
        errors = []
        player.on_ended = lambda: ended.append(True)
        player.on_error = errors.append

        player._emit_ended()
        player._emit_ended()
        player._emit_error("late")

        assert ended == [True]
        assert errors == []


@pytest.mark.playback
class TestMpvPlayer:
    def test_resolve_source(self, tmp_path: Path) -> None:
        assert MpvPlayer("/audios/a.mp3", tmp_path).resolve_source() == str(tmp_path / "audios" / "a.mp3")
        assert MpvPlayer("/audios/a.mp3").resolve_source() == "/audios/a.mp3"
        assert MpvPlayer("/tmp/tts.mp3", tmp_path).resolve_source() == "/tmp/tts.mp3"

    def test_missing_mpv_reports_error(self) -> None:
        player = MpvPlayer("/tmp/tts.mp3")
        errors = []
        player.on_error = errors.append

        with patch("habitforge.playback.players.shutil.which", return_value=None):
            player.play()

        assert errors == ["mpv is not installed"]

    def test_play_reports_end(self) -> None:
        process = fake_process(returncode=0)
        player = MpvPlayer("/tmp/tts.mp3")
        ended = threading.Event()
        player.on_ended = ended.set

        with patch("habitforge.playback.players.shutil.which", return_value="/usr/bin/mpv"), \
                patch("habitforge.playback.players.subprocess.Popen", return_value=process) as popen:
            player.play()
            process.release()
            assert ended.wait(2)

        command = popen.call_args[0][0]
        assert command[0] == "mpv"
        assert command[-1] == "/tmp/tts.mp3"
        assert "--no-video" in command

    def test_nonzero_exit_reports_error(self) -> None:
        process = fake_process(returncode=2)
        player = MpvPlayer("/tmp/broken.mp3")
        errors = []
        got_error = threading.Event()

        def on_error(message: str) -> None:
            errors.append(message)
            got_error.set()

        player.on_error = on_error

        with patch("habitforge.playback.players.shutil.which", return_value="/usr/bin/mpv"), \
                patch("habitforge.playback.players.subprocess.Popen", return_value=process):
            player.play()
            process.release()
            assert got_error.wait(2)

        assert "status 2" in errors[0]

    def test_pause_resume_discard(self) -> None:
        process = fake_process()
        player = MpvPlayer("/tmp/tts.mp3")
        ended = []
        player.on_ended = lambda: ended.append(True)

        with patch("habitforge.playback.players.shutil.which", return_value="/usr/bin/mpv"), \
                patch("habitforge.playback.players.subprocess.Popen", return_value=process):
            player.play()

            player.pause()
            process.send_signal.assert_called_with(signal.SIGSTOP)
            player.resume()
            process.send_signal.assert_called_with(signal.SIGCONT)

            player.pause()
            player.discard()

        # A paused process is continued before it is terminated
        assert process.send_signal.call_args_list[-1][0][0] == signal.SIGCONT
        process.terminate.assert_called_once()
        player._watcher.join(2)
        assert ended == []
        process.kill.assert_not_called()

    def test_discard_does_not_wait_for_exit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(MpvPlayer, "terminate_timeout", 0.05)
        process = fake_process(ignores_sigterm=True)
        player = MpvPlayer("/tmp/tts.mp3")
        ended = []
        player.on_ended = lambda: ended.append(True)

        with patch("habitforge.playback.players.shutil.which", return_value="/usr/bin/mpv"), \
                patch("habitforge.playback.players.subprocess.Popen", return_value=process):
            player.play()
            player.discard()

        process.terminate.assert_called_once()
        assert threading.current_thread() not in process.waiting_threads

        player._watcher.join(2)
        assert not player._watcher.is_alive()
        process.kill.assert_called_once()
        assert ended == []
