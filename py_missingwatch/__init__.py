"""Frame sampling, face extraction and match orchestration for MissingWatch."""

__version__ = "0.1.0"
