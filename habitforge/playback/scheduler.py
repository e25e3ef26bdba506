"""Sequential playback of selected note tags.

The scheduler owns one playback session: the queue of selected tags, the
set of tags already played, the current tag and the single active media
player. Each tag is resolved when its turn comes, reading the live tag
value from the notes provider:

- image tags finish immediately, nothing is played
- audio tags are handed to a player for their audio source
- text tags are synthesized to speech, written to a temporary file and played

Every failure is treated as "tag finished" and playback moves on.

All methods must be called on the event loop thread. Every resolution is
tied to a CancellationToken; the session id is bumped whenever playback
moves to another tag or stops, and results carrying an older id are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional

from habitforge.playback.players import MediaPlayer
from habitforge.playback.tags import (
    AudioRef,
    ImageRef,
    SelectedTag,
    audio_source,
    build_queue,
    classify_tag,
    contains_devanagari,
    lookup_tag,
)

logger = logging.getLogger(__name__)

__all__ = [
    "PlaybackState",
    "PlaybackSnapshot",
    "CancellationToken",
    "TagPlaybackScheduler",
    "DEFAULT_HINDI_VOICE_ID",
]

DEFAULT_HINDI_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"

NotesProvider = Callable[[], List[Dict[str, Any]]]
SelectionProvider = Callable[[], Iterable[SelectedTag]]
Synthesize = Callable[[str, Optional[str]], Awaitable[bytes]]
PlayerFactory = Callable[[str], MediaPlayer]


class PlaybackState(Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    # Between one tag finishing and the next one starting to play
    TRANSITIONING = "transitioning"


@dataclass(frozen=True)
class PlaybackSnapshot:
    """What observers see after every change."""

    state: PlaybackState
    current_tag: Optional[SelectedTag]
    is_playing: bool
    played: FrozenSet[SelectedTag]


class CancellationToken:
    """Ties an asynchronous resolution to the session that started it."""

    def __init__(self, session_id: int, current_session: Callable[[], int]) -> None:
        self.session_id = session_id
        self._current_session = current_session

    @property
    def cancelled(self) -> bool:
        return self._current_session() != self.session_id

    def __repr__(self) -> str:
        return f"CancellationToken(session_id={self.session_id}, cancelled={self.cancelled})"


class TagPlaybackScheduler:
    """Plays a mutable selection of note tags one after another."""

    def __init__(
        self,
        notes_provider: NotesProvider,
        selection_provider: SelectionProvider,
        synthesize: Synthesize,
        player_factory: PlayerFactory,
        hindi_voice_id: str = DEFAULT_HINDI_VOICE_ID,
        tag_repeat_count: int = 1,
        sequence_repeat_count: int = 1,
    ) -> None:
        """Initialize the scheduler.

        Args:
            notes_provider: Returns the live note list (dicts with id and tags)
            selection_provider: Returns the currently selected tag references
            synthesize: Coroutine function (text, voice_id) -> audio bytes
            player_factory: Builds a MediaPlayer for a source path or URL
            hindi_voice_id: Voice used for text containing Devanagari
            tag_repeat_count: Times each tag is played before it counts as played
            sequence_repeat_count: Times the whole queue is played before stopping
        """
        self._notes_provider = notes_provider
        self._selection_provider = selection_provider
        self._synthesize = synthesize
        self._player_factory = player_factory
        self._hindi_voice_id = hindi_voice_id
        self._tag_repeat_count = max(1, tag_repeat_count)
        self._sequence_repeat_count = max(1, sequence_repeat_count)

        self._state = PlaybackState.IDLE
        self._queue: List[SelectedTag] = []
        self._played: set = set()
        self._current: Optional[SelectedTag] = None
        self._session_id = 0
        self._player: Optional[MediaPlayer] = None
        self._temp_file: Optional[str] = None
        self._tag_plays = 0
        self._sequence_pass = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: set = set()
        self._observers: List[Callable[[PlaybackSnapshot], None]] = []
        self._idle_waiters: List[asyncio.Future] = []

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_tag(self) -> Optional[SelectedTag]:
        return self._current

    @property
    def is_playing(self) -> bool:
        return self._state in (PlaybackState.PLAYING, PlaybackState.TRANSITIONING)

    @property
    def played_tags(self) -> FrozenSet[SelectedTag]:
        return frozenset(self._played)

    @property
    def queue(self) -> List[SelectedTag]:
        return list(self._queue)

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def has_active_player(self) -> bool:
        return self._player is not None

    def snapshot(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            state=self._state,
            current_tag=self._current,
            is_playing=self.is_playing,
            played=self.played_tags,
        )

    def subscribe(self, callback: Callable[[PlaybackSnapshot], None]) -> Callable[[], None]:
        """Register an observer. Returns a function that unsubscribes it."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    async def wait_idle(self) -> None:
        """Wait until the session is back in IDLE."""
        if self._state is PlaybackState.IDLE:
            return
        future = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(future)
        await future

    # ------------------------------------------------------------------
    # Transport controls
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start playing the selection from the beginning. No-op if nothing is selected."""
        queue = self._refresh_queue()
        if not queue:
            return
        self._loop = asyncio.get_running_loop()
        self._halt_media()
        self._played.clear()
        self._sequence_pass = 0
        self._tag_plays = 0
        self._state = PlaybackState.PLAYING
        logger.info(f"Starting playback of {len(queue)} tags")
        self._begin(queue[0])

    def pause(self) -> None:
        """Pause the active player in place. No-op unless something is playing."""
        if self._state is not PlaybackState.PLAYING or self._player is None:
            return
        self._player.pause()
        self._state = PlaybackState.PAUSED
        self._notify()

    def resume(self) -> None:
        """Continue a paused player from where it stopped."""
        if self._state is not PlaybackState.PAUSED:
            return
        if self._player is not None:
            self._player.resume()
        self._state = PlaybackState.PLAYING
        self._notify()

    def stop(self) -> None:
        """Halt and discard playback and return to IDLE. Safe to call repeatedly."""
        self._session_id += 1
        self._halt_media()
        self._played.clear()
        self._current = None
        self._tag_plays = 0
        self._sequence_pass = 0
        self._enter_idle()

    def play_next_tag(self) -> None:
        self._navigate(1)

    def play_previous_tag(self) -> None:
        self._navigate(-1)

    def update(self) -> None:
        """Re-read the selection after it changed.

        Tags that are no longer selected are forgotten from the played set.
        If everything still selected has been played, the current pass ends:
        the next sequence pass starts, or playback stops after the last one.
        Otherwise the tag in flight finishes and playback carries on.
        """
        if not self.is_playing:
            return
        queue = self._refresh_queue()
        self._prune_played(queue)
        if all(ref in self._played for ref in queue):
            self._halt_media()
            self._tag_plays = 0
            self._end_pass(queue)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _refresh_queue(self) -> List[SelectedTag]:
        self._queue = build_queue(self._selection_provider())
        return self._queue

    def _prune_played(self, queue: List[SelectedTag]) -> None:
        self._played.intersection_update(queue)

    def _navigate(self, step: int) -> None:
        queue = self._refresh_queue()
        if not queue:
            return
        if self._current in queue:
            target_index = queue.index(self._current) + step
        else:
            # Current tag was deselected: jump to the nearest end
            target_index = 0 if step > 0 else len(queue) - 1
        if not 0 <= target_index < len(queue):
            return

        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._halt_media()
        self._tag_plays = 0
        self._state = PlaybackState.PLAYING
        self._begin(queue[target_index])

    def _begin(self, tag: SelectedTag) -> None:
        """Start resolving a tag under a fresh session id."""
        self._session_id += 1
        self._current = tag
        token = CancellationToken(self._session_id, lambda: self._session_id)
        task = self._loop.create_task(self._resolve_and_play(tag, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._notify()

    async def _resolve_and_play(self, tag: SelectedTag, token: CancellationToken) -> None:
        value = lookup_tag(self._notes_provider(), tag)
        if value is None:
            logger.warning(f"Tag {tag} no longer exists, skipping")
            self._finish(token)
            return

        content = classify_tag(value)
        temp_file = None
        try:
            if isinstance(content, ImageRef):
                self._finish(token)
                return
            if isinstance(content, AudioRef):
                source = audio_source(content.url)
            else:
                voice_id = self._hindi_voice_id if contains_devanagari(content.text) else None
                audio = await self._synthesize(content.text, voice_id)
                if token.cancelled:
                    return
                temp_file = _write_temp_audio(audio)
                source = temp_file

            if token.cancelled:
                _remove_file(temp_file)
                return

            player = self._player_factory(source)
            self._player = player
            self._temp_file = temp_file
            temp_file = None
            player.on_ended = self._threadsafe(self._media_done, token)
            player.on_error = self._threadsafe(self._media_failed, token)
            if self._state is PlaybackState.TRANSITIONING:
                self._state = PlaybackState.PLAYING
                self._notify()
            player.play()
        except asyncio.CancelledError:
            _remove_file(temp_file)
            raise
        except Exception as e:
            logger.warning(f"Playback of tag {tag} failed: {e}")
            _remove_file(temp_file)
            self._finish(token)

    def _threadsafe(self, handler: Callable[..., None], token: CancellationToken) -> Callable[..., None]:
        loop = self._loop

        def callback(*args: Any) -> None:
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(handler, token, *args)

        return callback

    def _media_done(self, token: CancellationToken) -> None:
        self._finish(token)

    def _media_failed(self, token: CancellationToken, message: str = "") -> None:
        if not token.cancelled:
            logger.warning(f"Player error for tag {self._current}: {message}")
        self._finish(token)

    def _finish(self, token: CancellationToken) -> None:
        """Current tag is done (played, skipped or failed)."""
        if token.cancelled:
            return
        self._halt_media()
        self._tag_plays += 1
        if self._tag_plays < self._tag_repeat_count:
            self._state = PlaybackState.TRANSITIONING
            self._begin(self._current)
            return
        self._played.add(self._current)
        self._tag_plays = 0
        self._advance()

    def _advance(self) -> None:
        queue = self._refresh_queue()
        self._prune_played(queue)
        upcoming = [ref for ref in queue if ref not in self._played]
        if upcoming:
            after_current = [ref for ref in upcoming if self._current is None or ref > self._current]
            self._state = PlaybackState.TRANSITIONING
            self._begin((after_current or upcoming)[0])
            return
        self._end_pass(queue)

    def _end_pass(self, queue: List[SelectedTag]) -> None:
        """Every queued tag has played: repeat the sequence or stop."""
        self._sequence_pass += 1
        if queue and self._sequence_pass < self._sequence_repeat_count:
            logger.info(f"Repeating sequence (pass {self._sequence_pass + 1})")
            self._played.clear()
            self._state = PlaybackState.TRANSITIONING
            self._begin(queue[0])
            return

        logger.info("Playback finished")
        self.stop()

    def _halt_media(self) -> None:
        player, self._player = self._player, None
        if player is not None:
            player.on_ended = None
            player.on_error = None
            try:
                player.discard()
            except Exception as e:
                logger.warning(f"Error discarding player: {e}")
        _remove_file(self._temp_file)
        self._temp_file = None

    def _enter_idle(self) -> None:
        self._state = PlaybackState.IDLE
        waiters, self._idle_waiters = self._idle_waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(None)
        self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for callback in list(self._observers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning(f"Error in playback observer: {e}")


def _write_temp_audio(data: bytes) -> str:
    fd, path = tempfile.mkstemp(prefix="habitforge-tts-", suffix=".mp3")
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return path


def _remove_file(path: Optional[str]) -> None:
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"Could not remove temporary audio {path}: {e}")
