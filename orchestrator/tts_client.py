"""Speech providers: text in, raw 16-bit mono PCM out."""
import base64
import http.client
import json
import urllib.error
import urllib.request
from typing import Any, Dict, Optional, Protocol

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .config import RuntimeConfig
from .errors import NarrationError, ScriptError, TransientProviderError

TRANSIENT_HTTP_CODES = {408, 429, 500, 502, 503, 504}
PROMPT_TEMPLATE = "Read the following text aloud exactly as written, without adding anything: {text}"


class SpeechProvider(Protocol):
    def synthesize(self, text: str, model: str, voice: str, sample_rate: int) -> bytes:
        ...


class GeminiSpeechProvider:
    def __init__(self, api_key: Optional[str] = None, client: Optional[Any] = None) -> None:
        self.client = client or genai.Client(api_key=api_key)

    def synthesize(self, text: str, model: str, voice: str, sample_rate: int) -> bytes:
        config = types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                )
            ),
        )
        try:
            response = self.client.models.generate_content(
                model=model,
                contents=PROMPT_TEMPLATE.format(text=text),
                config=config,
            )
        except genai_errors.APIError as exc:
            if exc.code in TRANSIENT_HTTP_CODES:
                raise TransientProviderError(f"gemini tts {exc.code}: {exc.message}") from exc
            raise NarrationError(f"gemini tts failed ({exc.code}): {exc.message}") from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"gemini tts connection failed: {exc}") from exc

        for candidate in response.candidates or []:
            content = candidate.content
            for part in (content.parts if content else None) or []:
                inline = part.inline_data
                if inline is not None and inline.data:
                    data = inline.data
                    return base64.b64decode(data) if isinstance(data, str) else data
        raise NarrationError("gemini tts response carried no audio data")


class HttpSpeechProvider:
    """JSON-RPC ``tools/call`` against a TTS service returning base64 PCM."""

    def __init__(self, url: str, timeout_sec: float = 60.0) -> None:
        self.url = url
        self.timeout_sec = timeout_sec

    def synthesize(self, text: str, model: str, voice: str, sample_rate: int) -> bytes:
        result = self._call(
            "tts_synthesize",
            {"text": text, "model": model, "voice": voice, "sample_rate": sample_rate, "output_format": "pcm"},
        )
        pcm_b64 = result.get("pcm_b64")
        if not pcm_b64:
            raise NarrationError("tts_synthesize result missing pcm_b64")
        try:
            return base64.b64decode(pcm_b64)
        except (ValueError, TypeError) as exc:
            raise NarrationError("tts_synthesize returned malformed pcm_b64") from exc

    def _call(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": name, "arguments": args},
        }
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(self.url, data=data, headers={"Content-Type": "application/json"})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            if exc.code in TRANSIENT_HTTP_CODES:
                raise TransientProviderError(f"tts HTTP {exc.code} {exc.reason}") from exc
            raise NarrationError(f"tts HTTP {exc.code} {exc.reason}") from exc
        except urllib.error.URLError as exc:
            raise TransientProviderError(f"tts connection failed: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            # socket timeouts and resets surface here, mid-read included
            raise TransientProviderError(f"tts connection failed: {exc}") from exc
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise NarrationError(f"tts returned a non-JSON body: {raw[:120]!r}") from exc
        if not isinstance(parsed, dict):
            raise NarrationError(f"tts returned an unexpected body: {raw[:120]!r}")
        if "error" in parsed:
            raise NarrationError(f"tts error: {parsed['error']}")
        result = parsed.get("result")
        if not isinstance(result, dict):
            raise NarrationError("tts response carried no result object")
        return result


def build_provider(config: RuntimeConfig) -> Optional[SpeechProvider]:
    """Provider for the configured engine, or None when narration is disabled."""
    engine = (config.narration_engine or "none").lower()
    if engine == "gemini":
        if not config.narration_api_key:
            return None
        return GeminiSpeechProvider(api_key=config.narration_api_key)
    if engine == "http":
        if not config.narration_url:
            return None
        return HttpSpeechProvider(config.narration_url)
    if engine == "none":
        return None
    raise ScriptError(f"unknown narration engine: {config.narration_engine}")
