"""Media players used by the tag playback scheduler.

MpvPlayer plays one source (local file or URL) through an MPV subprocess.
Pause and resume stop and continue the process with SIGSTOP/SIGCONT, so the
playback position is kept. A watcher thread reports completion through the
on_ended / on_error callbacks; those run on the watcher thread, so receivers
must marshal them onto their own thread.
"""

from __future__ import annotations

import logging
import shutil
import signal
import subprocess
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from habitforge.core.models import MediaKind

logger = logging.getLogger(__name__)

__all__ = ["MediaPlayer", "MpvPlayer", "is_mpv_available"]


def is_mpv_available() -> bool:
    """Check if MPV is installed and available."""
    return shutil.which("mpv") is not None


class MediaPlayer:
    """A single playable media element.

    Subclasses implement play/pause/resume/discard and call _emit_ended or
    _emit_error exactly once when playback is over.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.on_ended: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None
        self._finished = False
        self._finish_lock = threading.Lock()

    def play(self) -> None:
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    def resume(self) -> None:
        raise NotImplementedError

    def discard(self) -> None:
        """Halt playback and release resources. Callbacks will not fire afterwards."""
        raise NotImplementedError

    def _claim_finish(self) -> bool:
        with self._finish_lock:
            if self._finished:
                return False
            self._finished = True
            return True

    def _emit_ended(self) -> None:
        if self._claim_finish() and self.on_ended:
            self.on_ended()

    def _emit_error(self, message: str) -> None:
        if self._claim_finish() and self.on_error:
            self.on_error(message)


class MpvPlayer(MediaPlayer):
    """Plays a file or URL with an MPV subprocess."""

    # Seconds a discarded MPV gets to exit before it is killed
    terminate_timeout = 2.0

    def __init__(self, source: str, media_directory: Optional[Union[Path, str]] = None) -> None:
        """Initialize the player.

        Args:
            source: Local path, http(s) URL, or a public /audios/... path
            media_directory: Directory holding audios/, used to resolve /audios/... sources
        """
        super().__init__(source)
        self.media_directory = Path(media_directory) if media_directory else None
        self._process: Optional[subprocess.Popen] = None
        self._watcher: Optional[threading.Thread] = None
        self._paused = False
        self._discarded = False

    def resolve_source(self) -> str:
        """Map /audios/<name> to the stored file when a media directory is known."""
        prefix = MediaKind.AUDIO.url_prefix
        if self.media_directory and self.source.startswith(prefix):
            return str(self.media_directory / MediaKind.AUDIO.value / self.source[len(prefix):])
        return self.source

    def play(self) -> None:
        if not is_mpv_available():
            logger.error("MPV is not installed. Cannot play audio.")
            self._emit_error("mpv is not installed")
            return

        target = self.resolve_source()
        try:
            self._process = subprocess.Popen(
                [
                    "mpv",
                    "--no-video",
                    "--really-quiet",
                    "--terminal=no",
                    target,
                ],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Failed to start MPV: {e}")
            self._emit_error(str(e))
            return

        logger.debug(f"Playing {target}")
        self._watcher = threading.Thread(target=self._watch, daemon=True)
        self._watcher.start()

    def pause(self) -> None:
        if self._process and not self._paused and self._process.poll() is None:
            self._process.send_signal(signal.SIGSTOP)
            self._paused = True

    def resume(self) -> None:
        if self._process and self._paused:
            self._process.send_signal(signal.SIGCONT)
            self._paused = False

    def discard(self) -> None:
        """Terminate MPV without waiting for it; a reaper thread kills it if it lingers."""
        self._discarded = True
        process = self._process
        if process is None:
            return
        if process.poll() is None:
            try:
                if self._paused:
                    process.send_signal(signal.SIGCONT)
                process.terminate()
            except OSError as e:
                logger.warning(f"Error stopping MPV: {e}")
            else:
                threading.Thread(target=self._reap, args=(process,), daemon=True).start()
        self._paused = False
        self._process = None

    def _reap(self, process: subprocess.Popen) -> None:
        try:
            process.wait(timeout=self.terminate_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("MPV ignored SIGTERM, killing it")
            try:
                process.kill()
            except OSError as e:
                logger.warning(f"Error killing MPV: {e}")

    def _watch(self) -> None:
        process = self._process
        if process is None:
            return
        returncode = process.wait()
        if self._discarded:
            return
        if returncode == 0:
            self._emit_ended()
        else:
            logger.warning(f"MPV exited with status {returncode} for {self.source}")
            self._emit_error(f"mpv exited with status {returncode}")
