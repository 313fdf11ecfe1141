"""Wire format for the NAOS session protocol."""

from . import frame, protocol, structures
from .frame import Frame

__all__ = [
    "Frame",
    "frame",
    "protocol",
    "structures",
]
