"""Tests for sink volume control, the built-in tone and the sample player."""

from __future__ import annotations

import subprocess
import wave
from unittest.mock import Mock, patch

import pytest
from alarmclock import audio


class TestAlarmTone:
    def test_render_writes_two_beeps_of_mono_audio(self, tmp_path):
        destination = tmp_path / "nested" / "tone.wav"
        assert audio.render_alarm_tone(destination) == destination
        with wave.open(str(destination), "rb") as wav_file:
            assert wav_file.getnchannels() == 1
            assert wav_file.getsampwidth() == 2
            assert wav_file.getframerate() == 48_000
            assert wav_file.getnframes() == 2 * (int(48_000 * 0.25) + int(48_000 * 0.08))

    def test_existing_tone_is_reused(self, tmp_path):
        existing = tmp_path / "alarmclock-tone.wav"
        existing.write_bytes(b"RIFF")
        assert audio.alarm_tone(tmp_path) == existing
        assert existing.read_bytes() == b"RIFF"

    def test_unwritable_destination(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        assert audio.render_alarm_tone(blocker / "tone.wav") is None


class TestResolveSample:
    def test_configured_sound_wins(self, tmp_path):
        sample = tmp_path / "wake.wav"
        sample.write_bytes(b"RIFF")
        assert audio.resolve_sample(sample) == sample

    def test_missing_sound_falls_back_to_tone(self, tmp_path):
        tone = tmp_path / "alarmclock-tone.wav"
        with patch.object(audio, "alarm_tone", return_value=tone):
            assert audio.resolve_sample(tmp_path / "missing.wav") == tone
            assert audio.resolve_sample(None) == tone


class TestSink:
    def test_default_sink_preferred(self):
        with patch.object(audio, "_pactl", return_value="alsa_output.default\n"):
            assert audio.default_sink() == audio.Sink("alsa_output.default")

    def test_fallback_sink_skips_monitors(self):
        listing = "0\talsa_output.hdmi.monitor\tmodule\n1\talsa_output.speakers\tmodule\n"
        with patch.object(audio, "_pactl", side_effect=["", listing]):
            assert audio.default_sink() == audio.Sink("alsa_output.speakers")

    def test_no_sink(self):
        with patch.object(audio, "_pactl", return_value=None):
            assert audio.default_sink() is None

    def test_volume_parsed(self):
        output = "Volume: front-left: 32768 /  50% / -18.06 dB,   front-right: 32768 /  50% / -18.06 dB"
        with patch.object(audio, "_pactl", return_value=output):
            assert audio.Sink("sink").volume() == 50

    def test_volume_unreadable(self):
        with patch.object(audio, "_pactl", return_value=None):
            assert audio.Sink("sink").volume() is None

    def test_set_volume_clamps_and_unmutes(self):
        run = Mock(return_value="")
        with patch.object(audio, "_pactl", run):
            assert audio.Sink("sink").set_volume(150) is True
        assert run.call_args_list[0].args == ("set-sink-volume", "sink", "100%")
        assert run.call_args_list[1].args == ("set-sink-mute", "sink", "0")

    def test_set_volume_zero_does_not_unmute(self):
        run = Mock(return_value="")
        with patch.object(audio, "_pactl", run):
            assert audio.Sink("sink").set_volume(0) is True
        run.assert_called_once_with("set-sink-volume", "sink", "0%")

    def test_set_volume_failure(self):
        with patch.object(audio, "_pactl", return_value=None):
            assert audio.Sink("sink").set_volume(40) is False

    def test_missing_pactl_is_tolerated(self):
        with patch.object(audio.subprocess, "run", side_effect=FileNotFoundError("pactl")):
            assert audio._pactl("info") is None


class TestPlayer:
    def test_first_available_player_is_used(self, tmp_path):
        sample = tmp_path / "wake.wav"
        with (
            patch.object(audio.shutil, "which", side_effect=lambda name: name if name == "aplay" else None),
            patch.object(audio.subprocess, "Popen") as popen,
        ):
            assert audio.start_player(sample) is popen.return_value
        assert popen.call_args.args[0] == ["aplay", str(sample)]

    def test_no_player_available(self, tmp_path):
        with patch.object(audio.shutil, "which", return_value=None), patch.object(audio.subprocess, "Popen") as popen:
            assert audio.start_player(tmp_path / "wake.wav") is None
        popen.assert_not_called()

    def test_player_launch_failure(self, tmp_path):
        with (
            patch.object(audio.shutil, "which", return_value="/usr/bin/pw-play"),
            patch.object(audio.subprocess, "Popen", side_effect=OSError("exec format error")),
        ):
            assert audio.start_player(tmp_path / "wake.wav") is None

    def test_stop_terminates_running_player(self):
        process = Mock()
        process.poll.return_value = None
        audio.stop_player(process)
        process.terminate.assert_called_once_with()
        process.kill.assert_not_called()

    def test_stop_kills_stuck_player(self):
        process = Mock()
        process.poll.return_value = None
        process.wait.side_effect = [subprocess.TimeoutExpired("pw-play", 1.0), 0]
        audio.stop_player(process)
        process.kill.assert_called_once_with()

    def test_stop_ignores_finished_player(self):
        process = Mock()
        process.poll.return_value = 0
        audio.stop_player(process)
        process.terminate.assert_not_called()


@pytest.mark.parametrize("percent", [-5, 0, 37, 100])
def test_set_volume_stays_in_range(percent):
    run = Mock(return_value="")
    with patch.object(audio, "_pactl", run):
        audio.Sink("sink").set_volume(percent)
    assert run.call_args_list[0].args[2] == f"{max(0, percent)}%"
