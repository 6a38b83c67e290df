"""Wire protocol codecs: hrana (pipeline and WebSocket) and the legacy JSON pipeline."""
