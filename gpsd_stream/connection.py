"""TCP connection to the gpsd daemon.

This module provides the Connection class, which owns one socket and
the buffered line reader bound to it. A session replaces its Connection
whenever it reconnects.
"""

import errno
import logging
import socket
from typing import BinaryIO, Optional, Tuple

from .errors import ConnectFailed

logger = logging.getLogger(__name__)


DEFAULT_HOST = "localhost"
DEFAULT_PORT = 2947
DEFAULT_ADDRESS = f"{DEFAULT_HOST}:{DEFAULT_PORT}"

# How long to wait for the TCP handshake and the banner line
DIAL_TIMEOUT = 2.0


def parse_address(address: str) -> Tuple[str, int]:
    """Split a ``host:port`` address.

    A bare host uses the gpsd default port, an empty host means
    localhost, and IPv6 hosts may be bracketed (``[::1]:2947``).

    Args:
        address: Address string

    Returns:
        Tuple of (host, port)

    Raises:
        ValueError: If the port is not a number in 1-65535
    """
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port_text = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, _, port_text = address.partition(":")
    else:
        # Bare host name, IPv4 address or unbracketed IPv6 address
        host, port_text = address, ""

    if not port_text:
        return host or DEFAULT_HOST, DEFAULT_PORT

    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise ValueError(f"invalid port in gpsd address {address!r}")

    return host or DEFAULT_HOST, int(port_text)


class Connection:
    """One open connection to gpsd.

    Use ``Connection.open`` to dial. Reads are blocking with no timeout;
    ``close`` shuts the socket down, which wakes up a reader blocked in
    ``read_line``.

    Example:
        >>> conn = Connection.open("localhost:2947")
        >>> conn.send('?VERSION;')
        >>> conn.read_line()
        '{"class":"VERSION","release":"3.25",...}\\n'
        >>> conn.close()
    """

    def __init__(self, sock: socket.socket, address: str):
        """Wrap an already connected socket.

        Args:
            sock: Connected TCP socket
            address: Address the socket was opened for (for logging)
        """
        self._sock = sock
        self._reader: BinaryIO = sock.makefile("rb")
        self._address = address
        self._closed = False
        self.banner = ""

    @classmethod
    def open(cls, address: str, timeout: float = DIAL_TIMEOUT) -> "Connection":
        """Connect to gpsd and consume its banner line.

        The first line gpsd sends is its VERSION banner. It is read and
        kept as ``banner`` but never decoded, so a garbled banner does
        not fail the connection.

        Args:
            address: ``host:port`` of the daemon
            timeout: Bound for the handshake and the banner read

        Returns:
            The open connection, in blocking mode

        Raises:
            ConnectFailed: On DNS, connect or timeout errors, or if the
                daemon closes the socket before sending a banner
        """
        try:
            host, port = parse_address(address)
        except ValueError as e:
            raise ConnectFailed(address, str(e)) from e

        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise ConnectFailed(address, str(e)) from e

        conn = cls(sock, address)
        try:
            banner = conn._reader.readline()
        except OSError as e:
            conn.close()
            raise ConnectFailed(address, f"no banner received: {e}") from e

        if not banner:
            conn.close()
            raise ConnectFailed(address, "connection closed before banner")

        conn.banner = banner.decode("utf-8", errors="replace")
        sock.settimeout(None)
        logger.debug("connected to gpsd at %s", address)
        return conn

    def read_line(self) -> Optional[str]:
        """Read the next newline-terminated record.

        Returns:
            The line including its terminator, or None when the stream
            has ended. End of stream and reads on a closed socket are
            silent; other socket errors are logged.
        """
        if self._closed:
            return None

        try:
            data = self._reader.readline()
        except ValueError:
            # I/O operation on closed file
            return None
        except OSError as e:
            if self._closed or e.errno == errno.EBADF:
                return None
            logger.warning("Stream reader error (is gpsd running?): %s", e)
            return None

        if not data:
            return None

        return data.decode("utf-8", errors="replace")

    def send(self, command: str) -> None:
        """Write a formatted command. Write errors are not reported.

        Args:
            command: Complete command, e.g. '?POLL;'
        """
        try:
            self._sock.sendall(command.encode("utf-8"))
        except OSError as e:
            logger.debug("failed to send %s to %s: %s", command, self._address, e)

    def close(self) -> None:
        """Shut down and close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone
            pass

        try:
            self._reader.close()
        finally:
            self._sock.close()

    @property
    def address(self) -> str:
        return self._address

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"Connection({self._address!r}, {status})"
