"""PCM16 audio encoding/decoding utilities."""

import base64
import io
import wave

import numpy as np


def pcm16_bytes_to_float32(data: bytes) -> np.ndarray:
    """Convert raw little-endian PCM16 bytes to float32 numpy audio.

    Args:
        data: PCM16 bytes (a trailing odd byte is ignored).

    Returns:
        Float32 audio array in range [-1.0, 1.0].
    """
    usable = len(data) - (len(data) % 2)
    pcm16 = np.frombuffer(data[:usable], dtype=np.int16)
    return pcm16.astype(np.float32) / 32767.0


def float32_to_pcm16_bytes(audio: np.ndarray) -> bytes:
    """Convert float32 numpy audio to PCM16 bytes, clipping out-of-range samples."""
    clipped = np.clip(audio, -1.0, 1.0)
    return (clipped * 32767).astype(np.int16).tobytes()


def float32_to_wav_bytes(audio: np.ndarray, sample_rate: int = 24000, channels: int = 1) -> bytes:
    """Package float32 audio as an in-memory 16-bit WAV file."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(sample_rate)
        wf.writeframes(float32_to_pcm16_bytes(audio))
    return buffer.getvalue()


def clip_to_base64(data: bytes) -> str:
    """Base64 text for sending audio or image bytes to the browser."""
    return base64.b64encode(data).decode("ascii")
