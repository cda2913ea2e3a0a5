"""Text-to-speech stage using Edge TTS."""

import logging
from pathlib import Path

import edge_tts

from shorts.errors import StageError
from shorts.media import probe_duration
from shorts.models import Script, TTSResult, VoiceConfig

logger = logging.getLogger(__name__)


async def generate_tts(script: Script, output_dir: Path, voice: VoiceConfig) -> TTSResult:
    audio_path = output_dir / "audio.mp3"
    logger.info("Synthesizing %s narration with %s", script.language, voice.voice)

    communicate = edge_tts.Communicate(
        script.narrative, voice.voice, rate=voice.rate, pitch=voice.pitch
    )
    await communicate.save(str(audio_path))
    if not audio_path.exists() or audio_path.stat().st_size == 0:
        raise StageError(f"TTS produced no audio for {script.title}", "TTS_FAILED")

    duration = await probe_duration(audio_path)
    logger.info("Audio generated: %s (%.1fs)", audio_path, duration)
    return TTSResult(audio_path=audio_path, duration=duration)
