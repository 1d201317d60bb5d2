from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from typing import NamedTuple, Optional
import httpx
import logging
import pydantic

from .catalog import list_voices, resolve_provider_voice_id
from .config import Settings
from .deps import get_current_user, get_http_client, get_settings
from .errors import GenerationError, NotConfigured, ProviderUnavailable, ValidationError, field_errors
from .history import RequestHistory
from .models import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tts", tags=["tts"])

PREVIEW_TEXT = "Hello! This is a preview of my voice. I hope you like how I sound."
# quota, auth and rate-limit answers from a provider
UNAVAILABLE_STATUSES = (401, 402, 403, 429)


class TtsRequestIn(BaseModel):
    text: str = Field(min_length=1, max_length=5000)
    voice: str = Field(min_length=1)
    speed: float = Field(1.0, ge=0.5, le=2.0)
    pitch: float = Field(0, ge=-20, le=20)
    tone: str = "neutral"


class PreviewIn(BaseModel):
    voice: Optional[str] = None


class Speech(NamedTuple):
    request_id: Optional[str]
    audio: bytes


class _HttpProvider:
    name = "provider"

    def __init__(self, http: httpx.Client, api_key: str, base_url: str):
        self.http = http
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def _post(self, path: str, **kwargs) -> bytes:
        try:
            resp = self.http.post(self.base_url + path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s request failed: %s", self.name, e)
            raise GenerationError(f"{self.name} request failed") from e
        if resp.status_code in UNAVAILABLE_STATUSES:
            logger.warning("%s unavailable: %s %s", self.name, resp.status_code, resp.text)
            raise ProviderUnavailable(
                f"{self.name} API error. Please check your API key and quota, or try again later.",
                provider_error=f"{resp.status_code} {resp.text}",
            )
        if resp.status_code >= 400:
            logger.error("%s error: %s %s", self.name, resp.status_code, resp.text)
            raise GenerationError(f"{self.name} API error: {resp.status_code}")
        return resp.content


class ElevenLabsProvider(_HttpProvider):
    name = "ElevenLabs"
    catalog_key = "elevenlabs"
    model_id = "eleven_monolingual_v1"

    def synthesize(self, text: str, voice_id: str, speed: float = 1.0, preview: bool = False) -> bytes:
        voice_settings = {"stability": 0.5, "similarity_boost": 0.75}
        if not preview:
            voice_settings.update({"style": 0.0, "use_speaker_boost": True})
        return self._post(
            f"/v1/text-to-speech/{voice_id}",
            headers={"Accept": "audio/mpeg", "xi-api-key": self.api_key},
            json={"text": text, "model_id": self.model_id, "voice_settings": voice_settings},
        )


class OpenAIProvider(_HttpProvider):
    name = "OpenAI"
    catalog_key = "openai"

    def __init__(self, http: httpx.Client, api_key: str, base_url: str, model: str = "tts-1"):
        super().__init__(http, api_key, base_url)
        self.model = model

    def synthesize(self, text: str, voice_id: str, speed: float = 1.0, preview: bool = False) -> bytes:
        return self._post(
            "/v1/audio/speech",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"model": self.model, "input": text, "voice": voice_id, "speed": speed, "response_format": "mp3"},
        )


class TtsProxy:
    """Validates a synthesis request and forwards it to one provider call. No retries."""

    def __init__(self, provider, history: RequestHistory):
        self.provider = provider
        self.history = history

    def _require_provider(self):
        if self.provider is None:
            raise NotConfigured("Text-to-speech provider API key not configured")
        return self.provider

    def generate(self, text: str, voice: str, speed: float = 1.0, pitch: float = 0, tone: str = "neutral") -> Speech:
        try:
            req = TtsRequestIn(text=text, voice=voice, speed=speed, pitch=pitch, tone=tone)
        except pydantic.ValidationError as e:
            raise ValidationError(errors=field_errors(e.errors())) from e
        provider = self._require_provider()
        record = self.history.record(req.text, req.voice, req.speed, req.pitch, req.tone)
        voice_id = resolve_provider_voice_id(req.voice, provider.catalog_key)
        audio = provider.synthesize(req.text, voice_id, speed=req.speed)
        return Speech(record.id, audio)

    def preview(self, voice: Optional[str]) -> Speech:
        if not voice:
            raise ValidationError("Voice is required")
        provider = self._require_provider()
        voice_id = resolve_provider_voice_id(voice, provider.catalog_key)
        return Speech(None, provider.synthesize(PREVIEW_TEXT, voice_id, preview=True))


_history = RequestHistory()


def get_history() -> RequestHistory:
    return _history


def get_tts_provider(settings: Settings = Depends(get_settings), http: httpx.Client = Depends(get_http_client)):
    name = settings.tts_provider_name
    if name == "elevenlabs" and settings.ELEVENLABS_API_KEY:
        return ElevenLabsProvider(http, settings.ELEVENLABS_API_KEY, settings.ELEVENLABS_BASE_URL)
    if name == "openai" and settings.OPENAI_API_KEY:
        return OpenAIProvider(http, settings.OPENAI_API_KEY, settings.OPENAI_BASE_URL, settings.OPENAI_TTS_MODEL)
    return None


def get_tts_proxy(provider=Depends(get_tts_provider), history: RequestHistory = Depends(get_history)) -> TtsProxy:
    return TtsProxy(provider, history)


@router.post("/generate")
def generate(payload: TtsRequestIn, proxy: TtsProxy = Depends(get_tts_proxy)):
    speech = proxy.generate(payload.text, payload.voice, payload.speed, payload.pitch, payload.tone)
    return Response(
        content=speech.audio,
        media_type="audio/mpeg",
        headers={"Content-Disposition": f'attachment; filename="speech-{speech.request_id}.mp3"'},
    )


@router.post("/preview")
def preview(payload: PreviewIn, proxy: TtsProxy = Depends(get_tts_proxy)):
    speech = proxy.preview(payload.voice)
    return Response(content=speech.audio, media_type="audio/mpeg")


@router.get("/voices")
def voices():
    return list_voices()


@router.get("/history")
def history(user: User = Depends(get_current_user), log: RequestHistory = Depends(get_history)):
    return log.list_for_user(user.id)
