"""
本地端口探测
"""

import asyncio
import errno
import os
import socket

_ADDR_IN_USE = {errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE)}


def is_port_available(host: str, port: int) -> bool:
    """
    尝试绑定端口，能绑定说明当前没有进程占用

    Returns:
        端口被占用时返回 False

    Raises:
        OSError: 其他绑定失败（无权限、监听地址无效等）
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        # 与 kubectl 的监听方式保持一致，TIME_WAIT 不算占用
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        return True
    except OSError as e:
        if e.errno in _ADDR_IN_USE:
            return False
        raise
    finally:
        sock.close()


async def is_port_listening(host: str, port: int, timeout: float = 0.5) -> bool:
    """端口是否在接受连接"""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        return False

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True
