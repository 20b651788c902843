"""PCM helpers: frame energy, WAV encoding and clip decoding."""

from __future__ import annotations

import io

import numpy as np
import soundfile as sf

from duplex.audio.exceptions import AudioDecodeError

PCM16_SAMPLE_WIDTH = 2  # 16-bit PCM


def frame_energy(pcm_bytes: bytes) -> float:
    """RMS energy of a little-endian int16 PCM frame.

    Returns 0.0 for empty frames. Values are on the int16 scale,
    so normal speech at arm's length lands in the high hundreds.
    """
    usable = len(pcm_bytes) - (len(pcm_bytes) % PCM16_SAMPLE_WIDTH)
    if usable <= 0:
        return 0.0
    samples = np.frombuffer(pcm_bytes[:usable], dtype="<i2").astype(np.float64)
    return float(np.sqrt(np.mean(samples**2)))


def encode_wav(pcm_bytes: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap raw int16 PCM into a WAV container, dropping any trailing partial sample."""
    usable = len(pcm_bytes) - (len(pcm_bytes) % (PCM16_SAMPLE_WIDTH * channels))
    samples = np.frombuffer(pcm_bytes[:usable], dtype="<i2")
    if channels > 1:
        samples = samples.reshape(-1, channels)

    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


def decode_clip(data: bytes) -> tuple[np.ndarray, int]:
    """Decode an encoded clip to float32 samples for playback.

    Any container libsndfile understands is accepted (WAV, FLAC, OGG, MP3).

    Raises:
        AudioDecodeError: If the payload is empty or cannot be decoded
    """
    if not data:
        raise AudioDecodeError("Empty audio clip")

    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32")
    except (sf.SoundFileError, RuntimeError) as e:
        raise AudioDecodeError(f"Could not decode audio clip: {e}") from e

    return samples, int(sample_rate)
