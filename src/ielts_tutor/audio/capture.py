"""Microphone capture of spoken answers using sounddevice."""

import threading

import numpy as np
import sounddevice as sd
import structlog

from ielts_tutor.audio.encoder import float32_to_wav_bytes
from ielts_tutor.errors import MicrophoneDenied

logger = structlog.get_logger()


class MicrophoneRecorder:
    """Records one spoken answer between ``start`` and ``stop``.

    Args:
        sample_rate: Audio sample rate in Hz.
        channels: Number of audio channels.
        chunk_size: Number of samples per callback block.
        device: Input device index (None for default).
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
        self._stream: sd.InputStream | None = None
        self._chunks: list[np.ndarray] = []
        self._lock = threading.Lock()

    @property
    def recording(self) -> bool:
        return self._stream is not None

    def _audio_callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: object,
        status: sd.CallbackFlags,
    ) -> None:
        """Sounddevice callback - keeps a copy of each block."""
        if status:
            logger.warning("audio_capture_status", status=str(status))
        with self._lock:
            self._chunks.append(indata.copy().flatten())

    def start(self) -> None:
        """Open the microphone and start recording.

        Raises:
            MicrophoneDenied: No input device could be opened.
        """
        if self._stream is not None:
            return
        self._chunks = []
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=self.chunk_size,
                device=self.device,
                callback=self._audio_callback,
            )
            stream.start()
        except (sd.PortAudioError, OSError, ValueError) as e:
            logger.warning("microphone_unavailable", error=str(e))
            raise MicrophoneDenied("Microphone access is required for Speaking sessions.") from e
        self._stream = stream
        logger.info("audio_capture_started", sample_rate=self.sample_rate, device=self.device)

    def stop(self) -> bytes:
        """Stop recording and return the answer as WAV bytes."""
        self._close_stream()
        with self._lock:
            chunks, self._chunks = self._chunks, []
        audio = np.concatenate(chunks) if chunks else np.zeros(0, dtype=np.float32)
        logger.info("audio_capture_stopped", seconds=round(audio.size / self.sample_rate, 2))
        return float32_to_wav_bytes(audio, self.sample_rate, self.channels)

    def cancel(self) -> None:
        """Stop recording and discard the captured audio."""
        self._close_stream()
        with self._lock:
            self._chunks = []

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
