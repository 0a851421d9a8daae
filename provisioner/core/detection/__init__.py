"""Platform detection."""

from provisioner.core.detection.platform import detect, parse_os_release

__all__ = ["detect", "parse_os_release"]
