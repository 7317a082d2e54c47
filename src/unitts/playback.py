"""
Audio playback engine implemented on top of an output device sink.

`PlaybackEngine.play()` decodes an encoded stream, binds a fresh output stream
and hands a `PlaybackSession` to a background writer thread that drains the
buffer block by block. Callers keep control and may pause, resume or stop the
session concurrently. State transitions and binding changes happen under one
per-engine lock; device I/O never does.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterator

import numpy as np

from .decoder import DecodedAudio, decode_audio
from .errors import (
    DecodeError,
    DeviceError,
    NoActivePlaybackError,
    NotPausedError,
    NotPlayingError,
)
from .sink import DeviceSink, OutputBinding, SoundDeviceSink

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_FRAMES = 1024
DEFAULT_JOIN_TIMEOUT = 2.0


class PlaybackState(str, enum.Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(eq=False)
class PlaybackSession:
    """One play cycle: its buffer, its device binding and its completion signal."""

    buffer: np.ndarray
    sample_rate: float
    binding: OutputBinding
    completion: threading.Event = field(default_factory=threading.Event)
    gate: threading.Event = field(default_factory=threading.Event)
    cancelled: threading.Event = field(default_factory=threading.Event)
    position: int = 0
    writer: threading.Thread | None = None

    def __post_init__(self) -> None:
        # The writer thread reads this buffer; nobody may write to it.
        self.buffer.flags.writeable = False
        self.gate.set()

    def blocks(self, block_frames: int) -> Iterator[np.ndarray]:
        total = self.buffer.shape[0]
        while self.position < total:
            end = min(total, self.position + block_frames)
            yield self.buffer[self.position : end]
            self.position = end


class PlaybackEngine:
    """Decode-and-play state machine with pause/resume/stop control."""

    def __init__(
        self,
        sink: DeviceSink | None = None,
        *,
        device: int | str | None = None,
        block_frames: int = DEFAULT_BLOCK_FRAMES,
        join_timeout: float = DEFAULT_JOIN_TIMEOUT,
        decoder: Callable[[bytes], DecodedAudio] = decode_audio,
    ) -> None:
        if block_frames <= 0:
            raise ValueError("block_frames must be positive.")

        self._sink: DeviceSink = sink if sink is not None else SoundDeviceSink(device=device)
        self._block_frames = block_frames
        self._join_timeout = join_timeout
        self._decode = decoder

        self._lock = threading.Lock()
        self._play_lock = threading.RLock()
        self._state = PlaybackState.IDLE
        self._session: PlaybackSession | None = None
        self._completion: threading.Event | None = None
        self._listeners: list[Callable[[], None]] = []
        self._closed = False

    # ------------------------------------------------------------------ #
    # Public API

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            return self._state

    @property
    def device(self) -> int | str | None:
        return self._sink.device

    def set_output_device(self, device: int | str | None) -> None:
        """Select the output device used by the next `play()` call."""
        self._sink.device = device
        logger.debug("Output device set to %s", device)

    def add_completion_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run (outside the lock) whenever a session ends."""
        self._listeners.append(callback)

    def play(self, data: bytes) -> None:
        """Decode `data` and start playing it, replacing any current session."""
        self.play_decoded(self._decode(data))

    def play_decoded(self, audio: DecodedAudio) -> None:
        if audio.sample_rate <= 0:
            raise DecodeError(f"Invalid sample rate {audio.sample_rate}; must be positive.")

        with self._play_lock:
            self.stop()

            with self._lock:
                if self._closed:
                    raise DeviceError("PlaybackEngine has been closed.")

                binding = self._sink.open(audio.sample_rate, audio.frames)
                try:
                    binding.start()
                except DeviceError:
                    binding.close()
                    raise

                session = PlaybackSession(
                    buffer=audio.samples,
                    sample_rate=audio.sample_rate,
                    binding=binding,
                )
                session.writer = threading.Thread(
                    target=self._drain,
                    args=(session,),
                    name="unitts-playback-writer",
                    daemon=True,
                )
                self._session = session
                self._completion = session.completion
                self._state = PlaybackState.PLAYING
                session.writer.start()

        logger.debug(
            "Playback started (frames=%s, sample_rate=%s)", audio.frames, audio.sample_rate
        )

    def wait_for_completion(self, timeout: float | None = None) -> bool:
        """Block until the current session finishes or is stopped.

        Returns False only when `timeout` elapses first.
        """
        with self._lock:
            completion = self._completion
        if completion is None:
            raise NoActivePlaybackError("No playback has been started.")
        return completion.wait(timeout)

    def is_playing(self) -> bool:
        with self._lock:
            return self._state is PlaybackState.PLAYING

    def pause(self) -> None:
        with self._lock:
            if self._session is None or self._state is not PlaybackState.PLAYING:
                raise NotPlayingError("No active audio playback.")
            self._session.gate.clear()
            self._state = PlaybackState.PAUSED
        logger.debug("Playback paused.")

    def resume(self) -> None:
        with self._lock:
            if self._session is None or self._state is not PlaybackState.PAUSED:
                raise NotPausedError("No paused audio playback.")
            self._session.gate.set()
            self._state = PlaybackState.PLAYING
        logger.debug("Playback resumed.")

    def stop(self) -> None:
        """Halt and release the current session. A no-op when nothing is bound."""
        with self._lock:
            session = self._detach_locked()
        if session is None:
            return

        session.cancelled.set()
        session.gate.set()
        writer = session.writer
        if writer is not None and writer is not threading.current_thread():
            writer.join(self._join_timeout)
            if writer.is_alive():  # pragma: no cover - only with a hung device
                logger.warning("Playback writer did not exit within %.1fs.", self._join_timeout)

        self._release_binding(session)
        logger.debug("Playback stopped.")
        self._notify_listeners()

    def close(self) -> None:
        """Stop playback and release the sink. The engine cannot be reused."""
        with self._play_lock:
            with self._lock:
                if self._closed:
                    return
                self._closed = True
            self.stop()
            with self._lock:
                self._state = PlaybackState.STOPPED
            self._sink.release()
        logger.debug("PlaybackEngine closed.")

    # ------------------------------------------------------------------ #
    # Internal helpers

    def _detach_locked(self) -> PlaybackSession | None:
        session = self._session
        if session is None:
            return None
        self._session = None
        if self._state is not PlaybackState.STOPPED:
            self._state = PlaybackState.IDLE
        session.completion.set()
        return session

    def _drain(self, session: PlaybackSession) -> None:
        binding = session.binding
        try:
            for block in session.blocks(self._block_frames):
                if not session.gate.is_set():
                    binding.stop()
                    session.gate.wait()
                    if session.cancelled.is_set():
                        return
                    binding.start()
                if session.cancelled.is_set():
                    return
                binding.write(block)
            # Let the device play out what it has buffered.
            binding.stop()
        except DeviceError as exc:
            logger.error("Playback aborted by device error: %s", exc)

        self._release_binding(session)
        with self._lock:
            if self._session is not session:
                return
            self._detach_locked()

        logger.debug("Playback finished.")
        self._notify_listeners()

    def _release_binding(self, session: PlaybackSession) -> None:
        try:
            session.binding.close()
        except DeviceError as exc:
            logger.error("Failed to release output binding: %s", exc)

    def _notify_listeners(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:  # noqa: BLE001
                logger.exception("Playback completion listener failed.")
