"""Audio I/O: PCM helpers, frame buffering and sounddevice devices."""

from duplex.audio.buffer import AudioBuffer
from duplex.audio.codec import decode_clip, encode_wav, frame_energy
from duplex.audio.devices import AudioInput, AudioOutput, MicrophoneInput, SpeakerOutput
from duplex.audio.exceptions import AudioDecodeError, AudioDeviceError, AudioError
from duplex.audio.types import AudioClip, Utterance

__all__ = [
    # Types
    "AudioClip",
    "Utterance",
    # Devices
    "AudioInput",
    "AudioOutput",
    "MicrophoneInput",
    "SpeakerOutput",
    # Utilities
    "AudioBuffer",
    "decode_clip",
    "encode_wav",
    "frame_energy",
    # Exceptions
    "AudioError",
    "AudioDeviceError",
    "AudioDecodeError",
]
