from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, TypeVar

from ..domain.errors import AllSourcesFailed, SourceError
from ..domain.interfaces import SourceClient
from ..domain.models import ConnectionStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SourceRoute:
    client: SourceClient
    base_url: Callable[[], str]
    status: ConnectionStatus


async def first_success(
    routes: Sequence[SourceRoute],
    op: Callable[[SourceClient, str], Awaitable[T]],
    timeout: float,
) -> tuple[SourceRoute, T]:
    """Try each route in order, strictly one after the other.

    Later routes are only contacted once every earlier one has failed.
    Raises AllSourcesFailed carrying the last route's error.
    """
    last_error: BaseException = SourceError("none", "No sources configured")
    for route in routes:
        name = route.client.name
        try:
            result = await asyncio.wait_for(op(route.client, route.base_url()), timeout=timeout)
            return route, result
        except asyncio.TimeoutError:
            last_error = SourceError(name, f"{name} timed out")
        except Exception as e:
            last_error = e
        logger.debug("Source %s failed: %s", name, last_error)
    raise AllSourcesFailed(last_error)
