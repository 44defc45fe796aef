"""PulseAudio helpers behind the alarm sound loop.

The loop needs three things from the host: the sink whose volume it ramps,
that sink's level before the alarm so it can be put back, and a player
process for the alarm sample that can be cut off the moment the alarm stops.
"""

from __future__ import annotations

import logging
import math
import os
import re
import shutil
import subprocess  # nosec B404 - subprocess used for pactl and the sample player
import wave
from array import array
from dataclasses import dataclass
from pathlib import Path

_LOGGER = logging.getLogger("alarmclock.audio")

_TONE_FILENAME = "alarmclock-tone.wav"
_SAMPLE_RATE = 48_000
# Two rising beeps, each with a short attack and exponential decay
_TONE_FREQUENCIES_HZ = (880, 1175)
_TONE_SECONDS = 0.25
_TONE_GAP_SECONDS = 0.08
_TONE_AMPLITUDE = 30_000
_TONE_ATTACK_SECONDS = 0.02
_TONE_DECAY = 3.0

_PLAYERS = ("pw-play", "paplay", "aplay")
_VOLUME_RE = re.compile(r"(\d+)%")


def _runtime_env() -> dict[str, str]:
    env = os.environ.copy()
    env.setdefault("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
    return env


def _pactl(*args: str) -> str | None:
    try:
        result = subprocess.run(  # nosec B603 B607 - fixed command array
            ["pactl", *args],
            capture_output=True,
            text=True,
            check=True,
            env=_runtime_env(),
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        _LOGGER.debug("[audio] pactl %s failed: %s", " ".join(args), exc)
        return None
    return result.stdout


@dataclass(frozen=True)
class Sink:
    name: str

    def volume(self) -> int | None:
        """Current level in percent, read from the first channel."""
        output = _pactl("get-sink-volume", self.name)
        if not output:
            return None
        match = _VOLUME_RE.search(output)
        return int(match.group(1)) if match else None

    def set_volume(self, percent: int) -> bool:
        percent = max(0, min(100, percent))
        if _pactl("set-sink-volume", self.name, f"{percent}%") is None:
            return False
        # A muted sink would swallow the alarm at any level
        if percent > 0:
            _pactl("set-sink-mute", self.name, "0")
        return True


def default_sink() -> Sink | None:
    """The default sink, else the first sink that is not a monitor."""
    name = (_pactl("get-default-sink") or "").strip()
    if name:
        return Sink(name)
    for line in (_pactl("list", "sinks", "short") or "").splitlines():
        fields = line.split()
        if len(fields) > 1 and not fields[1].endswith(".monitor"):
            return Sink(fields[1])
    _LOGGER.warning("[audio] No audio sink found (XDG_RUNTIME_DIR=%s)", _runtime_env().get("XDG_RUNTIME_DIR"))
    return None


def _beep(frequency: int) -> array:
    count = int(_SAMPLE_RATE * _TONE_SECONDS)
    attack = int(_SAMPLE_RATE * _TONE_ATTACK_SECONDS)
    samples = array("h")
    for i in range(count):
        t = i / _SAMPLE_RATE
        envelope = min(1.0, i / attack) * math.exp(-_TONE_DECAY * t / _TONE_SECONDS)
        samples.append(int(envelope * _TONE_AMPLITUDE * math.sin(2 * math.pi * frequency * t)))
    return samples


def render_alarm_tone(destination: Path) -> Path | None:
    gap = array("h", [0]) * int(_SAMPLE_RATE * _TONE_GAP_SECONDS)
    samples = array("h")
    for frequency in _TONE_FREQUENCIES_HZ:
        samples.extend(_beep(frequency))
        samples.extend(gap)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with wave.open(str(destination), "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(_SAMPLE_RATE)
            wav_file.writeframes(samples.tobytes())
    except OSError as exc:
        _LOGGER.debug("[audio] Unable to write alarm tone to %s: %s", destination, exc)
        return None
    return destination


def alarm_tone(directory: Path | None = None) -> Path | None:
    """Path of the built-in tone, rendered on first use."""
    path = (directory or Path(_runtime_env()["XDG_RUNTIME_DIR"])) / _TONE_FILENAME
    if path.exists():
        return path
    return render_alarm_tone(path)


def resolve_sample(source: Path | None) -> Path | None:
    """The configured sound when it exists, otherwise the built-in tone."""
    if source is not None:
        if source.is_file():
            return source
        _LOGGER.warning("[audio] Alarm sound %s not found; using built-in tone", source)
    return alarm_tone()


def start_player(sample: Path) -> subprocess.Popen | None:
    player = next((name for name in _PLAYERS if shutil.which(name)), None)
    if player is None:
        _LOGGER.warning("[audio] No audio player available (tried %s)", ", ".join(_PLAYERS))
        return None
    try:
        return subprocess.Popen(  # nosec B603 - fixed command array
            [player, str(sample)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=_runtime_env(),
        )
    except OSError as exc:
        _LOGGER.warning("[audio] Failed to start %s: %s", player, exc)
        return None


def stop_player(process: subprocess.Popen, timeout: float = 1.0) -> None:
    if process.poll() is not None:
        return
    process.terminate()
    try:
        process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()
