from sevenvoice.catalog import DEFAULT_ELEVENLABS_VOICE, list_voices, resolve_provider_voice_id


def test_list_voices_is_ordered_and_public():
    voices = list_voices()
    assert [v["name"] for v in voices] == [
        "Rachel", "Drew", "Clyde", "Bella", "Antoni", "Elli", "Josh", "Arnold", "Adam", "Sam",
    ]
    assert set(voices[0]) == {"id", "name", "description", "category"}
    assert voices[0]["id"] == "Rachel - Professional Female"


def test_resolve_known_voice():
    assert resolve_provider_voice_id("Josh - Deep Male") == "TxGEqnHWrfWFTfGW9XjX"
    assert resolve_provider_voice_id("Rachel - Professional Female", "openai") == "nova"


def test_unknown_voice_falls_back_to_default():
    assert resolve_provider_voice_id("Nobody - Mystery Voice") == DEFAULT_ELEVENLABS_VOICE == "21m00Tcm4TlvDq8ikWAM"
    assert resolve_provider_voice_id("", "openai") == "alloy"


def test_voices_endpoint(client):
    r = client.get("/api/tts/voices")
    assert r.status_code == 200
    assert len(r.json()) == 10
