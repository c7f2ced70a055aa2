"""
Handles privilege checks that decide how echo probes are sent.
"""
import ctypes
import logging
import os
import platform
import socket

logger = logging.getLogger(__name__)


def is_admin() -> bool:
    """
    Checks if the process is running with administrator or root privileges.

    Returns:
        bool: True if running with elevated privileges, False otherwise.
    """
    try:
        if platform.system() == "Windows":
            return ctypes.windll.shell32.IsUserAnAdmin() != 0  # type: ignore[attr-defined]
        return os.geteuid() == 0  # type: ignore[attr-defined]  # pylint: disable=no-member
    except AttributeError:
        return False


def raw_icmp_available() -> bool:
    """
    Returns True if a raw ICMP socket can be opened.

    On Linux a binary granted CAP_NET_RAW can do this without being root, so
    the socket is tried directly instead of relying on the user id alone.
    """
    if is_admin():
        return True
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP):
            return True
    except OSError as e:
        logger.debug(f"Raw ICMP socket unavailable: {e}")
        return False
