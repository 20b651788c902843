"""duplex: turn-taking voice conversation client and backend."""

__version__ = "0.1.0"
