"""Speaker playback of synthesized tutor audio, one clip at a time."""

import queue
import threading

import numpy as np
import sounddevice as sd
import structlog

from ielts_tutor.audio.encoder import pcm16_bytes_to_float32

logger = structlog.get_logger()

# Sentinel to signal the thread to stop
_STOP = None


class AudioPlayback:
    """Plays PCM16 clips through the speaker using a dedicated writer thread.

    Playback is a singleton resource: ``play_clip`` interrupts whatever is
    playing before queueing the new clip. Clips are queued in blocksize
    pieces so an interruption takes effect within one block.

    Args:
        sample_rate: Audio sample rate in Hz.
        channels: Number of audio channels.
        chunk_size: Samples written per block.
        device: Output device index (None for default).
    """

    def __init__(
        self,
        sample_rate: int = 24000,
        channels: int = 1,
        chunk_size: int = 2400,
        device: int | None = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self.device = device
        self._queue: queue.Queue[np.ndarray | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._running = False
        self._is_playing = False

    @property
    def is_playing(self) -> bool:
        """Whether a clip is currently being played."""
        return self._is_playing

    def start(self) -> None:
        """Start the playback thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._writer_loop, daemon=True)
        self._thread.start()
        logger.info(
            "audio_playback_started",
            sample_rate=self.sample_rate,
            device=self.device,
        )

    def play_clip(self, pcm16: bytes) -> None:
        """Stop the current clip and play ``pcm16`` instead."""
        self.stop_clip()
        audio = pcm16_bytes_to_float32(pcm16)
        if audio.size == 0:
            return
        self.start()
        self._is_playing = True
        for offset in range(0, audio.size, self.chunk_size):
            self._queue.put(audio[offset:offset + self.chunk_size])

    def stop_clip(self) -> None:
        """Drop buffered audio of the current clip."""
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        self._is_playing = False

    def close(self) -> None:
        """Stop playback, join the thread and release the output stream."""
        if not self._running:
            return
        self._running = False
        self.stop_clip()
        self._queue.put(_STOP)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
        self.stop_clip()
        logger.info("audio_playback_stopped")

    def _writer_loop(self) -> None:
        """Background thread: pull audio from queue, write to stream."""
        try:
            stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=self.chunk_size,
                device=self.device,
            )
            stream.start()
        except Exception:
            logger.exception("audio_stream_open_failed")
            self._running = False
            return

        try:
            while self._running:
                try:
                    chunk = self._queue.get(timeout=0.1)
                except queue.Empty:
                    self._is_playing = False
                    continue

                if chunk is _STOP:
                    break

                data = chunk.reshape(-1, 1) if chunk.ndim == 1 else chunk
                try:
                    stream.write(data)
                except sd.PortAudioError:
                    logger.warning("audio_write_error")
        except Exception:
            logger.exception("audio_writer_loop_error")
        finally:
            self._is_playing = False
            try:
                stream.stop()
                stream.close()
            except sd.PortAudioError:
                logger.warning("audio_stream_close_failed")
