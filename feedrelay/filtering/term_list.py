"""
Forbidden term list retrieval.
"""

import asyncio
import ssl
from typing import List, Optional

import aiohttp
import certifi

from ..utils.exceptions import ErrorCode, ProcessingError
from ..utils.logging import get_logger_for_component

logger = get_logger_for_component("term_list")


async def fetch_term_list(
    url: str,
    timeout: int = 30,
    session: Optional[aiohttp.ClientSession] = None,
) -> List[str]:
    """Download a JSON array of terms.

    Terms are lowercased and trimmed; empty entries are dropped.

    Raises:
        ProcessingError: If the download fails or the body is not a JSON array
    """
    logger.info(f"Downloading term list from {url}")

    owns_session = session is None
    if owns_session:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(ssl=ssl_context),
            timeout=aiohttp.ClientTimeout(total=timeout),
        )

    try:
        async with session.get(url) as response:
            if response.status != 200:
                raise ProcessingError(
                    f"Failed to download term list: HTTP {response.status}",
                    error_code=ErrorCode.TERM_LIST_UNAVAILABLE,
                    context={"url": url},
                )
            data = await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise ProcessingError(
            f"Failed to download term list: {e}",
            error_code=ErrorCode.TERM_LIST_UNAVAILABLE,
            context={"url": url},
        ) from e
    finally:
        if owns_session:
            await session.close()

    if not isinstance(data, list):
        raise ProcessingError(
            "Term list is not a JSON array",
            error_code=ErrorCode.TERM_LIST_UNAVAILABLE,
            context={"url": url},
        )

    terms = [str(term).strip().lower() for term in data if term is not None]
    terms = [term for term in terms if term]
    logger.info(f"Loaded {len(terms)} terms")
    return terms
