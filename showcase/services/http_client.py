"""
Shared aiohttp session handling for outbound calls
"""

from contextlib import asynccontextmanager
from typing import Optional

import aiohttp


@asynccontextmanager
async def client_session(session: Optional[aiohttp.ClientSession] = None, timeout: float = 30.0):
    """Yield the injected session, or a short-lived one closed on exit"""
    if session is not None:
        yield session
        return

    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as own_session:
        yield own_session
