"""
Network utilities
"""
import logging
import socket

logger = logging.getLogger(__name__)


def get_network_addresses():
    """Non-loopback IPv4 addresses of this host, best guess first."""
    addresses = []
    try:
        # Connecting a UDP socket sends nothing; it only selects the outbound interface
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect(('10.255.255.255', 1))
            addresses.append(probe.getsockname()[0])
    except OSError as exc:
        logger.debug("Cannot resolve outbound interface: %s", exc)

    try:
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            address = info[4][0]
            if address not in addresses:
                addresses.append(address)
    except OSError as exc:
        logger.debug("Cannot resolve host addresses: %s", exc)

    return [address for address in addresses if not address.startswith('127.')]
