"""In-memory stand-ins for the scheduler's collaborators.

FakePlayer never produces sound; tests end or fail it explicitly.
Harness wires a TagPlaybackScheduler to a mutable note list, a mutable
selection, a recording synthesizer and a FakePlayer factory.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from habitforge.core.gateways import UpstreamError
from habitforge.playback.players import MediaPlayer
from habitforge.playback.scheduler import PlaybackSnapshot, TagPlaybackScheduler
from habitforge.playback.tags import SelectedTag

NOTES: List[Dict[str, Any]] = [
    {"id": "n1", "tags": ["Hello", "photo.png", "bell.mp3"]},
    {"id": "n2", "tags": ["नमस्ते", "World"]},
]


class FakePlayer(MediaPlayer):
    def __init__(self, source: str) -> None:
        super().__init__(source)
        self.playing = False
        self.paused = False
        self.discarded = False

    def play(self) -> None:
        self.playing = True

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def discard(self) -> None:
        self.discarded = True
        self.playing = False

    def finish(self) -> None:
        self._emit_ended()

    def fail(self, message: str = "decoder error") -> None:
        self._emit_error(message)


class Harness:
    """A scheduler plus everything it talks to."""

    def __init__(self, selection: List[Tuple[str, int]], **kwargs: Any) -> None:
        self.notes = [dict(note, tags=list(note["tags"])) for note in NOTES]
        self.selection = [SelectedTag(*ref) for ref in selection]
        self.players: List[FakePlayer] = []
        self.synth_calls: List[Tuple[str, Optional[str]]] = []
        self.failing_texts: set = set()
        self.failing_sources: set = set()
        self.gate: Optional[asyncio.Event] = None
        self.snapshots: List[PlaybackSnapshot] = []
        self.scheduler = TagPlaybackScheduler(
            notes_provider=lambda: self.notes,
            selection_provider=lambda: self.selection,
            synthesize=self.synthesize,
            player_factory=self.make_player,
            **kwargs,
        )
        self.scheduler.subscribe(self.snapshots.append)

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        self.synth_calls.append((text, voice_id))
        if self.gate is not None:
            await self.gate.wait()
        if text in self.failing_texts:
            raise UpstreamError("elevenlabs", 500, "synthesis failed")
        return f"mp3:{text}".encode("utf-8")

    def make_player(self, source: str) -> FakePlayer:
        if source in self.failing_sources:
            raise OSError("no audio output device")
        player = FakePlayer(source)
        self.players.append(player)
        return player

    def select(self, *refs: Tuple[str, int]) -> None:
        self.selection = [SelectedTag(*ref) for ref in refs]

    @property
    def player(self) -> FakePlayer:
        return self.players[-1]

    @property
    def spoken(self) -> List[str]:
        return [text for text, _ in self.synth_calls]

    def tags_begun(self) -> List[SelectedTag]:
        """Tags in the order playback moved onto them."""
        begun: List[SelectedTag] = []
        for snapshot in self.snapshots:
            tag = snapshot.current_tag
            if tag is not None and (not begun or begun[-1] != tag):
                begun.append(tag)
        return begun

    async def finish_current(self) -> None:
        self.player.finish()
        await settle()


async def settle(rounds: int = 25) -> None:
    """Let scheduled callbacks and resolution tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
