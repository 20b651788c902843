"""Backend services: transcription, reply generation and synthesis."""
