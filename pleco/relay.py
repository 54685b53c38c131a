"""UDP relay that forwards datagrams between a client and a server stream."""

from __future__ import annotations

import argparse
import logging
import select
import socket
import sys
from typing import Optional, Sequence, Tuple

CLIENT_STREAM_PORT = 8500
SERVER_STREAM_PORT = 12347
BUFFER_SIZE = 4096

Address = Tuple[str, int]

log = logging.getLogger(__name__)


def open_udp_socket(port: int, host: str = "") -> socket.socket:
    """Create a UDP socket with SO_REUSEADDR set, bound to ``host:port``.

    Raises OSError if the socket cannot be created, configured or bound.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


class UdpRelay:
    """Relays datagrams between the last seen client and the last seen server.

    Packets arriving on the client port are sent to the server address
    learned from the server port, and vice versa.
    """

    def __init__(
        self,
        client_port: int = CLIENT_STREAM_PORT,
        server_port: int = SERVER_STREAM_PORT,
        host: str = "",
    ) -> None:
        self.client_socket = open_udp_socket(client_port, host)
        try:
            self.server_socket = open_udp_socket(server_port, host)
        except OSError:
            self.client_socket.close()
            raise
        self.client_addr: Optional[Address] = None
        self.server_addr: Optional[Address] = None

    def _forward(
        self, sock: socket.socket, data: bytes, dest: Address, peer: str
    ) -> None:
        try:
            sent = sock.sendto(data, dest)
        except OSError as exc:
            log.error("Failed to send UDP data to %s: %s", peer, exc)
            return
        if sent < len(data):
            log.error(
                "Failed to send all UDP data to %s: %d < %d", peer, sent, len(data)
            )

    def handle_client_packet(self, data: bytes, addr: Address) -> Optional[Address]:
        """Record the client address and forward ``data`` to the server.

        Returns the server address the data went to, or None if no server
        is known yet.
        """
        self.client_addr = addr
        log.info("Received client packet from %s:%d", addr[0], addr[1])
        if self.server_addr is None:
            return None
        log.info(
            "Sending client data to %s:%d", self.server_addr[0], self.server_addr[1]
        )
        self._forward(self.server_socket, data, self.server_addr, "server")
        return self.server_addr

    def handle_server_packet(self, data: bytes, addr: Address) -> Optional[Address]:
        """Record the server address and forward ``data`` to the client.

        Returns the client address the data went to, or None if no client
        is known yet.
        """
        self.server_addr = addr
        log.info("Received server packet from %s:%d", addr[0], addr[1])
        if self.client_addr is None:
            log.warning("No client port, not sending data to client")
            return None
        self._forward(self.client_socket, data, self.client_addr, "client")
        return self.client_addr

    def poll(self, timeout: Optional[float] = None) -> int:
        """Wait up to ``timeout`` seconds and relay pending packets.

        Returns the number of packets received and handled.
        """
        readable, _, _ = select.select(
            [self.client_socket, self.server_socket], [], [], timeout
        )
        handled = 0
        for sock, handler, peer in (
            (self.client_socket, self.handle_client_packet, "client"),
            (self.server_socket, self.handle_server_packet, "server"),
        ):
            if sock not in readable:
                continue
            try:
                data, addr = sock.recvfrom(BUFFER_SIZE)
            except OSError as exc:
                log.error("Failed to receive UDP data from %s: %s", peer, exc)
                continue
            handler(data, addr)
            handled += 1
        return handled

    def serve_forever(self) -> None:
        """Relay packets until interrupted."""
        while True:
            self.poll(None)

    def close(self) -> None:
        """Close both listening sockets."""
        self.client_socket.close()
        self.server_socket.close()

    def __enter__(self) -> "UdpRelay":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the relay until interrupted."""
    parser = argparse.ArgumentParser(
        prog="netrelay", description="Relay UDP streams between client and server."
    )
    parser.add_argument("--host", default="", help="address to bind to")
    parser.add_argument("--client-port", type=int, default=CLIENT_STREAM_PORT)
    parser.add_argument("--server-port", type=int, default=SERVER_STREAM_PORT)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")

    try:
        relay = UdpRelay(args.client_port, args.server_port, args.host)
    except OSError as exc:
        print(f"Failed to create stream listen sockets: {exc}", file=sys.stderr)
        return 1

    with relay:
        try:
            relay.serve_forever()
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    sys.exit(main())