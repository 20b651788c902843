"""Tests for the streaming conversation WebSocket endpoint."""

from __future__ import annotations

from duplex.observability.metrics import ACTIVE_STREAMS
from duplex.services.stt.exceptions import STTServiceError
from duplex.services.tts.protocol import Voice

STREAM_PATH = "/ws/conversation"


class TestSpokenTurns:
    """Tests for utterance frames."""

    def test_utterance_turn(self, test_client, api_backend, wav_bytes) -> None:
        """Test an utterance yields transcription, reply text, then audio."""
        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_json(
                {
                    "type": "utterance",
                    "turn_id": 1,
                    "mime_type": "audio/wav",
                    "history": [{"role": "user", "content": "earlier"}],
                    "voice": "sarah",
                }
            )
            websocket.send_bytes(wav_bytes)

            assert websocket.receive_json() == {
                "type": "transcription",
                "turn_id": 1,
                "text": "hello",
            }
            assert websocket.receive_json() == {
                "type": "text_response",
                "turn_id": 1,
                "text": "hi there",
            }
            assert websocket.receive_json() == {
                "type": "audio_response",
                "turn_id": 1,
                "mime_type": "audio/wav",
            }
            assert websocket.receive_bytes() == api_backend.tts.audio

        assert api_backend.stt.calls == [(wav_bytes, "audio/wav")]
        assert api_backend.llm.calls[0][0] == {"role": "user", "content": "earlier"}
        assert api_backend.tts.calls == [("hi there", Voice.SARAH)]

    def test_no_speech(self, test_client, api_backend, wav_bytes) -> None:
        """Test silence answers with a single no_speech frame."""
        api_backend.stt.transcript = ""

        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_json({"type": "utterance", "turn_id": 4, "history": []})
            websocket.send_bytes(wav_bytes)

            assert websocket.receive_json() == {"type": "no_speech", "turn_id": 4}

        assert api_backend.llm.calls == []

    def test_provider_error(self, test_client, api_backend, wav_bytes) -> None:
        """Test a provider failure becomes an error frame for that turn."""
        api_backend.stt.error = STTServiceError("Transcription failed: boom")

        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_json({"type": "utterance", "turn_id": 2})
            websocket.send_bytes(wav_bytes)

            frame = websocket.receive_json()

        assert frame == {"type": "error", "turn_id": 2, "message": "Transcription failed: boom"}

    def test_turns_share_a_connection(self, test_client, wav_bytes) -> None:
        """Test consecutive turns on one connection are answered in order."""
        with test_client.websocket_connect(STREAM_PATH) as websocket:
            for turn_id in (1, 2):
                websocket.send_json({"type": "utterance", "turn_id": turn_id})
                websocket.send_bytes(wav_bytes)
                frames = [websocket.receive_json() for _ in range(3)]
                websocket.receive_bytes()

                assert {f["turn_id"] for f in frames} == {turn_id}


class TestTextTurns:
    """Tests for typed input frames."""

    def test_text_turn(self, test_client, api_backend) -> None:
        """Test typed input skips transcription."""
        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_json({"type": "text", "turn_id": 9, "text": "what's new?"})

            assert websocket.receive_json() == {
                "type": "text_response",
                "turn_id": 9,
                "text": "hi there",
            }
            assert websocket.receive_json()["type"] == "audio_response"
            assert websocket.receive_bytes() == api_backend.tts.audio

        assert api_backend.stt.calls == []
        assert api_backend.llm.calls == [[{"role": "user", "content": "what's new?"}]]

    def test_empty_text(self, test_client) -> None:
        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_json({"type": "text", "turn_id": 3, "text": "  "})

            assert websocket.receive_json() == {
                "type": "error",
                "turn_id": 3,
                "message": "Message is empty",
            }


class TestProtocolErrors:
    """Tests for malformed client frames."""

    def test_invalid_json(self, test_client) -> None:
        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_text("{not json")

            frame = websocket.receive_json()

        assert frame["type"] == "error"
        assert frame["turn_id"] is None

    def test_audio_without_header(self, test_client, wav_bytes) -> None:
        """Test a binary frame needs a preceding utterance header."""
        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_bytes(wav_bytes)

            frame = websocket.receive_json()

        assert frame == {
            "type": "error",
            "turn_id": None,
            "message": "Audio frame without utterance header",
        }

    def test_unknown_frame_type(self, test_client) -> None:
        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_json({"type": "hello", "turn_id": 5})

            frame = websocket.receive_json()

        assert frame["type"] == "error"
        assert frame["turn_id"] == 5

    def test_invalid_history(self, test_client) -> None:
        """Test a malformed history is reported for that turn."""
        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_json({"type": "text", "turn_id": 6, "text": "hi", "history": "nope"})

            frame = websocket.receive_json()

        assert frame["type"] == "error"
        assert frame["turn_id"] == 6


class TestConnectionGauge:
    """Tests for the active stream gauge."""

    def test_gauge_tracks_connections(self, test_client) -> None:
        before = ACTIVE_STREAMS._value.get()

        with test_client.websocket_connect(STREAM_PATH) as websocket:
            websocket.send_json({"type": "text", "turn_id": 1, "text": " "})
            websocket.receive_json()
            assert ACTIVE_STREAMS._value.get() == before + 1
