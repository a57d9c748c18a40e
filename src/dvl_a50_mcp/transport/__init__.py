"""Line transports for the DVL network and serial channels."""

from .tcp_connection import TCPConnection
from .serial_connection import SerialConnection
