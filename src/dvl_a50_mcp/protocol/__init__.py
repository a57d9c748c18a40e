"""Protocol layer: serial framing, field splitting, report parsing, and command correlation."""

from .framing import Frame, SerialDecoder, build_frame, decode_frame
from .commands import Command, build_command, build_set_config
from .parser import (
    CommandResponse,
    DeadReckoningReport,
    Unrecognized,
    VelocityReport,
    decode_line,
    parse_report,
)
from .correlation import CommandCorrelator, PendingRequest
