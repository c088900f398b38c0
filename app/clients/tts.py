from __future__ import annotations

import logging
from typing import Iterator, Optional

import httpx

from app.errors import SynthesisError


class SpeechSynthesizer:
    def enabled(self) -> bool: ...  # pragma: no cover

    def synthesize(self, text: str, voice_model: str | None = None) -> Iterator[bytes]: ...  # pragma: no cover


class DeepgramSpeechClient(SpeechSynthesizer):
    def __init__(
        self,
        api_key: str | None,
        model: str = "aura-2-odysseus-en",
        base_url: str = "https://api.deepgram.com",
        timeout: float = 60.0,
        logger: Optional[logging.Logger] = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.log = logger or logging.getLogger(__name__)
        self._transport = transport

    def enabled(self) -> bool:
        return bool(self.api_key)

    def synthesize(self, text: str, voice_model: str | None = None) -> Iterator[bytes]:
        if not self.enabled():
            raise SynthesisError("Deepgram client is not configured")
        model = voice_model or self.model
        headers = {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": "application/json",
        }
        total = 0
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                with client.stream(
                    "POST",
                    f"{self.base_url}/v1/speak",
                    params={"model": model},
                    json={"text": text},
                    headers=headers,
                ) as response:
                    response.raise_for_status()
                    for chunk in response.iter_bytes():
                        total += len(chunk)
                        yield chunk
        except httpx.HTTPError as exc:
            raise SynthesisError(f"Deepgram synthesis failed: {exc}") from exc
        if not total:
            raise SynthesisError("Deepgram returned an empty audio stream")
        self.log.info(
            "deepgram synthesis completed",
            extra={"model": model, "content_length": total},
        )


class ElevenLabsClient(SpeechSynthesizer):
    def __init__(
        self,
        api_key: str | None,
        model_id: str = "eleven_multilingual_v2",
        base_url: str = "https://api.elevenlabs.io",
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.log = logger or logging.getLogger(__name__)
        self._transport = transport

    def enabled(self) -> bool:
        return bool(self.api_key)

    def synthesize(self, text: str, voice_model: str | None = None) -> Iterator[bytes]:
        """``voice_model`` is the ElevenLabs voice id."""
        if not self.enabled() or not voice_model:
            raise SynthesisError("ElevenLabs client is not configured")
        url = f"{self.base_url}/v1/text-to-speech/{voice_model}/stream"
        payload = {
            "text": text,
            "model_id": self.model_id,
        }
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        total = 0
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                with client.stream("POST", url, json=payload, headers=headers) as response:
                    response.raise_for_status()
                    for chunk in response.iter_bytes():
                        total += len(chunk)
                        yield chunk
        except httpx.HTTPError as exc:
            raise SynthesisError(f"ElevenLabs synthesis failed: {exc}") from exc
        self.log.info(
            "elevenlabs synthesis completed",
            extra={
                "voice_id": voice_model,
                "model_id": self.model_id,
                "content_length": total,
            },
        )
