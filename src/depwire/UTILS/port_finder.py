"""
Utilities for finding and checking availability of network ports.
"""
import socket
from typing import Optional

import psutil


def get_free_port(host: str = '') -> int:
    """
    Finds a free port on localhost.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def is_port_free(port: int, host: str = '', protocol: str = 'tcp') -> bool:
    """
    Checks if a port is free on localhost.
    """
    kind = socket.SOCK_DGRAM if protocol == 'udp' else socket.SOCK_STREAM
    with socket.socket(socket.AF_INET, kind) as s:
        try:
            s.bind((host, port))
            return True
        except OSError:
            return False


def find_port_owner(port: int) -> Optional[str]:
    """
    Describes the local process listening on a port, e.g. "nginx (pid 812)".
    Returns None when nothing listens or the process table is not readable.
    """
    try:
        connections = psutil.net_connections(kind='inet')
    except (psutil.AccessDenied, PermissionError):
        return None

    for conn in connections:
        if not conn.laddr or conn.laddr.port != port:
            continue
        if conn.status not in (psutil.CONN_LISTEN, psutil.CONN_NONE):
            continue
        if conn.pid is None:
            return "another process"
        try:
            return f"{psutil.Process(conn.pid).name()} (pid {conn.pid})"
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return f"pid {conn.pid}"
    return None
