from __future__ import annotations

import wave
from io import BytesIO

import numpy as np

# G.711 mu-law constants.
ULAW_BIAS = 0x84
ULAW_CLIP = 32635
CARRIER_SAMPLE_RATE = 8000


def ulaw_decode(ulaw_bytes: bytes) -> np.ndarray:
    """Decode G.711 mu-law bytes to PCM16 int16 array.

    Per byte: invert all bits, split into sign (bit 7), exponent (bits 4-6) and
    mantissa (bits 0-3), rebuild ``((mantissa << 3) + BIAS) << exponent - BIAS``,
    clamp to the codec range and apply the sign.
    """

    data = np.frombuffer(ulaw_bytes, dtype=np.uint8)

    mu = np.bitwise_not(data)
    sign = np.bitwise_and(mu, 0x80)
    exponent = np.right_shift(mu, 4).astype(np.int32) & 0x07
    mantissa = np.bitwise_and(mu, 0x0F).astype(np.int32)

    magnitude = (((mantissa << 3) + ULAW_BIAS) << exponent) - ULAW_BIAS
    magnitude = np.clip(magnitude, 0, ULAW_CLIP)
    pcm = np.where(sign != 0, -magnitude, magnitude)

    return pcm.astype(np.int16)


def pcm16_resample(pcm: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    if src_rate == dst_rate:
        return pcm
    if pcm.size == 0:
        return pcm.astype(np.int16)

    x_old = np.arange(pcm.size, dtype=np.float32)
    x_new = np.linspace(0, pcm.size - 1, int(pcm.size * dst_rate / src_rate), dtype=np.float32)

    y_old = pcm.astype(np.float32)
    y_new = np.interp(x_new, x_old, y_old)

    return np.clip(y_new, -32768, 32767).astype(np.int16)


def pcm16_to_wav_bytes(pcm: np.ndarray, sample_rate: int) -> bytes:
    """Wrap mono PCM16 samples in a 44-byte RIFF/WAVE header."""

    pcm_bytes = pcm.astype("<i2").tobytes()
    buffer = BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm_bytes)
    return buffer.getvalue()


def ulaw_to_wav(ulaw_bytes: bytes, sample_rate: int = CARRIER_SAMPLE_RATE) -> bytes:
    """Carrier mu-law audio -> WAV container accepted by batch transcription."""

    return pcm16_to_wav_bytes(ulaw_decode(ulaw_bytes), sample_rate)
