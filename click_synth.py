"""
Intensity Control - Click Synth
Renders the mechanical tick sound and plays it on the output device.

The click is a small synthesis graph: each tone layer is an oscillator with an
optional exponential frequency sweep, multiplied by an exponentially decaying
gain envelope. All layers are summed into one shared low-pass filter so they
read as a single physical click.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np
from scipy.signal import butter, sawtooth, sosfilt, square

from logging_utils import log_event


@dataclass(frozen=True)
class ToneLayer:
    """One enveloped oscillator in the click graph. Times are offsets from 'now' in seconds."""
    name: str
    waveform: str                     # 'triangle', 'square', 'sine' or 'sawtooth'
    freq_start: float                 # Hz
    freq_end: Optional[float]         # Exponential ramp target (None = held at freq_start)
    freq_ramp_s: float
    gain_start: float
    gain_end: float                   # Near-zero floor; exponential ramps cannot reach 0
    gain_decay_s: float
    stop_s: float
    start_s: float = 0.0


# Trigger mechanism: fast bright sweep
SNAP_LAYER = ToneLayer(
    name="snap", waveform="triangle",
    freq_start=1500.0, freq_end=100.0, freq_ramp_s=0.010,
    gain_start=0.5, gain_end=0.01, gain_decay_s=0.010,
    stop_s=0.020,
)

# Gear weight: sub-bass body
THUD_LAYER = ToneLayer(
    name="thud", waveform="square",
    freq_start=60.0, freq_end=None, freq_ramp_s=0.0,
    gain_start=0.4, gain_end=0.01, gain_decay_s=0.040,
    stop_s=0.060,
)


def click_layers(include_thud: bool = True) -> tuple:
    """Layers making up the click for a feedback profile."""
    if include_thud:
        return (SNAP_LAYER, THUD_LAYER)
    return (SNAP_LAYER,)


def exponential_ramp(start: float, end: Optional[float], ramp_s: float, t: np.ndarray) -> np.ndarray:
    """Value of an exponential ramp from start to end over ramp_s, held at end afterwards."""
    if end is None or ramp_s <= 0 or start <= 0 or end <= 0:
        return np.full(t.shape, float(start))
    progress = np.clip(t / ramp_s, 0.0, 1.0)
    return start * (end / start) ** progress


def oscillator(waveform: str, freq: np.ndarray, sample_rate: int) -> np.ndarray:
    """Generate a waveform following a per-sample frequency curve (phase starts at 0)."""
    phase = 2.0 * np.pi * (np.cumsum(freq) - freq[0]) / sample_rate if len(freq) else np.zeros(0)
    if waveform == "triangle":
        return sawtooth(phase, width=0.5)
    if waveform == "square":
        return square(phase)
    if waveform == "sawtooth":
        return sawtooth(phase)
    if waveform == "sine":
        return np.sin(phase)
    raise ValueError(f"Unknown waveform: {waveform}")


def render_layer(layer: ToneLayer, sample_rate: int, total_samples: int) -> np.ndarray:
    """Render one layer into a buffer of total_samples, silent outside [start_s, stop_s)."""
    out = np.zeros(total_samples, dtype=np.float64)
    start = int(round(layer.start_s * sample_rate))
    stop = min(total_samples, int(round(layer.stop_s * sample_rate)))
    if stop <= start:
        return out

    t = np.arange(stop - start) / sample_rate
    freq = exponential_ramp(layer.freq_start, layer.freq_end, layer.freq_ramp_s, t)
    gain = exponential_ramp(layer.gain_start, layer.gain_end, layer.gain_decay_s, t)
    out[start:stop] = oscillator(layer.waveform, freq, sample_rate) * gain
    return out


def lowpass_sos(cutoff_hz: float, sample_rate: int, order: int = 2) -> np.ndarray:
    """Butterworth low-pass in second-order sections."""
    nyquist = sample_rate / 2
    cutoff_hz = max(1.0, min(cutoff_hz, nyquist * 0.99))
    return butter(order, cutoff_hz, btype='low', fs=sample_rate, output='sos')


def render_click(layers: Sequence[ToneLayer], sample_rate: int, cutoff_hz: float = 800.0,
                 order: int = 2, master_gain: float = 1.0) -> np.ndarray:
    """Sum all layers through the shared low-pass. Returns mono float32 samples."""
    if not layers:
        return np.zeros(0, dtype=np.float32)
    total = max(int(round(layer.stop_s * sample_rate)) for layer in layers)
    mix = np.zeros(total, dtype=np.float64)
    for layer in layers:
        mix += render_layer(layer, sample_rate, total)
    filtered = sosfilt(lowpass_sos(cutoff_hz, sample_rate, order), mix)
    return np.clip(filtered * master_gain, -1.0, 1.0).astype(np.float32)


class ClickPlayer:
    """
    Exclusive owner of the audio output device.

    The stream is opened on the first ``play`` call, not at construction, and is
    restarted whenever it is found inactive. Overlapping clicks are mixed.
    """

    def __init__(self, sample_rate: int = 44100, device_index: Optional[int] = None,
                 stream_factory: Optional[Callable[..., object]] = None):
        self.sample_rate = sample_rate
        self.device_index = device_index
        self._stream_factory = stream_factory
        self._stream = None
        self._voices: list[list] = []  # [buffer, position]
        self._lock = threading.Lock()
        self._unavailable = False

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def unavailable(self) -> bool:
        return self._unavailable

    def _open_stream(self):
        kwargs = dict(
            samplerate=self.sample_rate,
            channels=1,
            dtype='float32',
            callback=self._callback,
        )
        if self._stream_factory is not None:
            return self._stream_factory(**kwargs)
        import sounddevice as sd
        return sd.OutputStream(device=self.device_index, **kwargs)

    def ensure_running(self) -> bool:
        """Open the stream if needed and resume it if it is not active."""
        if self._unavailable:
            return False
        if self._stream is None:
            try:
                self._stream = self._open_stream()
                log_event("INFO", "ClickPlayer", "Output stream opened",
                          sample_rate=self.sample_rate, device=self.device_index)
            except Exception as e:
                self._unavailable = True
                log_event("WARN", "ClickPlayer", "Audio output unavailable, clicks disabled", error=e)
                return False
        if not self._stream.active:
            try:
                self._stream.start()
            except Exception as e:
                log_event("WARN", "ClickPlayer", "Could not resume output stream", error=e)
                return False
        return True

    def play(self, samples: np.ndarray) -> bool:
        """Queue samples for playback. Never blocks on the device."""
        if not self.ensure_running():
            return False
        with self._lock:
            self._voices.append([samples, 0])
        return True

    def pending_voices(self) -> int:
        with self._lock:
            return len(self._voices)

    def _callback(self, outdata, frames, time_info, status):
        if status:
            log_event("DEBUG", "ClickPlayer", "Stream status", status=status)
        outdata.fill(0)
        with self._lock:
            remaining = []
            for voice in self._voices:
                buf, pos = voice
                chunk = buf[pos:pos + frames]
                outdata[:len(chunk), 0] += chunk
                voice[1] = pos + len(chunk)
                if voice[1] < len(buf):
                    remaining.append(voice)
            self._voices = remaining
        np.clip(outdata, -1.0, 1.0, out=outdata)

    def close(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        except Exception as e:
            log_event("WARN", "ClickPlayer", "Error closing output stream", error=e)
        self._stream = None
        with self._lock:
            self._voices.clear()
        log_event("INFO", "ClickPlayer", "Output stream closed")
