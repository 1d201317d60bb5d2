"""Static voice catalog: display names mapped to provider voice identifiers."""
from typing import NamedTuple, List

DEFAULT_ELEVENLABS_VOICE = "21m00Tcm4TlvDq8ikWAM"
DEFAULT_OPENAI_VOICE = "alloy"


class Voice(NamedTuple):
    id: str
    name: str
    description: str
    category: str
    elevenlabs_id: str
    openai_voice: str

    def public(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description, "category": self.category}


VOICES: List[Voice] = [
    Voice("Rachel - Professional Female", "Rachel", "Professional Female", "Professional", "21m00Tcm4TlvDq8ikWAM", "nova"),
    Voice("Drew - Warm Male", "Drew", "Warm Male", "Conversational", "29vD33N1CtxCmqQRPOHJ", "echo"),
    Voice("Clyde - Middle Aged Male", "Clyde", "Middle Aged Male", "Mature", "2EiwWnXFnvU5JabPnv8n", "onyx"),
    Voice("Bella - Young Female", "Bella", "Young Female", "Youthful", "EXAVITQu4vr4xnSDxMaL", "shimmer"),
    Voice("Antoni - Well-Rounded Male", "Antoni", "Well-Rounded Male", "Versatile", "ErXwobaYiN019PkySvjV", "alloy"),
    Voice("Elli - Emotional Female", "Elli", "Emotional Female", "Expressive", "MF3mGyEYCl7XYWbV9V6O", "shimmer"),
    Voice("Josh - Deep Male", "Josh", "Deep Male", "Authoritative", "TxGEqnHWrfWFTfGW9XjX", "onyx"),
    Voice("Arnold - Crisp Male", "Arnold", "Crisp Male", "Clear", "VR6AewLTigWG4xSOukaG", "echo"),
    Voice("Adam - Narration Male", "Adam", "Narration Male", "Storytelling", "pNInz6obpgDQGcFmaJgB", "fable"),
    Voice("Sam - Raspy Male", "Sam", "Raspy Male", "Character", "yoZ06aMxZJJ28mfd3POQ", "alloy"),
]

_BY_ID = {v.id: v for v in VOICES}


def list_voices() -> List[dict]:
    return [v.public() for v in VOICES]


def resolve_provider_voice_id(catalog_id: str, provider: str = "elevenlabs") -> str:
    """Map a catalog id to the provider's voice id, falling back to the default voice."""
    voice = _BY_ID.get(catalog_id)
    if provider == "openai":
        return voice.openai_voice if voice else DEFAULT_OPENAI_VOICE
    return voice.elevenlabs_id if voice else DEFAULT_ELEVENLABS_VOICE
