"""voxwatch - in-process telemetry and traffic shaping for the voice backend."""

__version__ = "0.1.0"
