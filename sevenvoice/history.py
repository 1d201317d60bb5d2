from dataclasses import dataclass
import uuid


@dataclass
class TtsRequest:
    id: str
    text: str
    voice: str
    speed: float = 1.0
    pitch: float = 0
    tone: str = "neutral"


class RequestHistory:
    """Synthesis request log. Records get an id but are not stored, so history is always empty."""

    def record(self, text: str, voice: str, speed: float = 1.0, pitch: float = 0, tone: str = "neutral") -> TtsRequest:
        return TtsRequest(id=str(uuid.uuid4()), text=text, voice=voice, speed=speed, pitch=pitch, tone=tone)

    def list_for_user(self, user_id: str) -> list:
        return []
