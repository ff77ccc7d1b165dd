import os
import socket
import typing
import asyncio
import ipaddress


def split_host_port(address: str, default_port: int) -> typing.Tuple[str, int]:
    """
    Accepts "host", "host:port", "[v6 address]" and "[v6 address]:port"
    """
    if address.startswith('['):
        host, _, rest = address[1:].partition(']')
        port = rest[1:] if rest.startswith(':') else ''
    elif address.count(':') == 1:
        host, port = address.split(':')
    else:
        host, port = address, ''
    if not host:
        raise ValueError(f"no host in {address!r}")
    return host, int(port) if port else default_port


async def resolve_host(host: str, port: int) -> str:
    if host.lower() == 'localhost':
        return '127.0.0.1'
    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        pass
    infos = await asyncio.get_running_loop().getaddrinfo(
        host, port, type=socket.SOCK_STREAM, proto=socket.IPPROTO_TCP
    )
    # prefer ipv4 when a name has both
    infos.sort(key=lambda info: info[0] != socket.AF_INET)
    return infos[0][4][0]


def ensure_directory_exists(path: str):
    os.makedirs(path, exist_ok=True)
