"""Narration generation: cache, rate limit, retry and PCM-to-WAV wrapping."""
import io
import os
import sys
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import numpy as np
import soundfile as sf

from .cache import DiskCache, link_or_copy
from .config import RuntimeConfig, resolve_cache_root
from .errors import NarrationError, TransientProviderError
from .tts_client import SpeechProvider, build_provider

T = TypeVar("T")

INITIAL_BACKOFF_SEC = 0.3


def wrap_wav(pcm: bytes, sample_rate: int) -> bytes:
    """Wrap 16-bit little-endian mono PCM into a RIFF/WAVE container."""
    usable = len(pcm) - (len(pcm) % 2)
    samples = np.frombuffer(pcm[:usable], dtype="<i2")
    buf = io.BytesIO()
    sf.write(buf, samples, sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def narration_cache_payload(text: str, model: str, voice: str, sample_rate: int) -> Dict[str, Any]:
    return {"schema": 1, "text": text, "model": model, "voice": voice, "rate": sample_rate}


def tts_cache_dir(root: str) -> str:
    normalized = root.rstrip("/\\")
    if os.path.basename(normalized) == "tts":
        return normalized
    return os.path.join(normalized, "tts")


class NarrationGenerator:
    def __init__(
        self,
        provider: Optional[SpeechProvider],
        cache: DiskCache,
        output_dir: Optional[str] = None,
        model: str = "gemini-2.5-flash-preview-tts",
        voice: str = "Kore",
        sample_rate: int = 24000,
        min_interval_sec: float = 0.5,
        max_retries: int = 3,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.output_dir = output_dir
        self.model = model
        self.voice = voice
        self.sample_rate = sample_rate
        self.min_interval_sec = min_interval_sec
        self.max_retries = max_retries
        self._paths: Dict[str, str] = {}
        self._last_request_at: Optional[float] = None
        self._warned_disabled = False

    @classmethod
    def from_config(cls, config: RuntimeConfig, output_dir: Optional[str] = None) -> "NarrationGenerator":
        cache = DiskCache(tts_cache_dir(resolve_cache_root(config.cache_dir)))
        return cls(
            provider=build_provider(config),
            cache=cache,
            output_dir=output_dir,
            model=config.narration_model,
            voice=config.narration_voice,
            sample_rate=config.sample_rate,
            min_interval_sec=config.narration_min_interval_sec,
            max_retries=config.narration_max_retries,
        )

    def generate(self, text: str) -> Optional[str]:
        """Path to a WAV narrating ``text``, or None when narration is disabled.

        Raises NarrationError once retries are exhausted.
        """
        if self.provider is None:
            if not self._warned_disabled:
                self._warned_disabled = True
                print("[tts] no speech provider configured, narration disabled", file=sys.stderr, flush=True)
            return None

        key = self.cache.make_key(narration_cache_payload(text, self.model, self.voice, self.sample_rate))
        known = self._paths.get(key)
        if known:
            return self._export(known)

        cache_path = self.cache.get_or_create(key, "wav", lambda: self._synthesize(text))
        self._paths[key] = cache_path
        return self._export(cache_path)

    def _synthesize(self, text: str) -> bytes:
        pcm = self._with_retry(lambda: self._request(text))
        if not pcm:
            raise NarrationError("speech provider returned empty audio")
        return wrap_wav(pcm, self.sample_rate)

    def _request(self, text: str) -> bytes:
        self._wait_for_rate_limit()
        return self.provider.synthesize(text, self.model, self.voice, self.sample_rate)

    def _wait_for_rate_limit(self) -> None:
        now = time.monotonic()
        if self._last_request_at is not None:
            elapsed = now - self._last_request_at
            if elapsed < self.min_interval_sec:
                time.sleep(self.min_interval_sec - elapsed)
        self._last_request_at = time.monotonic()

    def _with_retry(self, fn: Callable[[], T]) -> T:
        attempt = 0
        delay = INITIAL_BACKOFF_SEC
        while True:
            try:
                return fn()
            except TransientProviderError as exc:
                attempt += 1
                if attempt > self.max_retries:
                    raise NarrationError(f"narration failed after {attempt} attempts: {exc}") from exc
                time.sleep(delay)
                delay *= 2

    def _export(self, cache_path: str) -> str:
        if not self.output_dir:
            return cache_path
        target = os.path.join(self.output_dir, os.path.basename(cache_path))
        return link_or_copy(cache_path, target)
