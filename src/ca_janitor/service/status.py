"""CA service status probe.

Everything ca-janitor writes is also written by the running CA service, so
every mutating command first asks the service whether it is up. The status
endpoint needs no client certificate, and commonly there is none to offer.
"""
from __future__ import annotations

import logging
import ssl

import httpx

from ca_janitor.config.settings import CASettings
from ca_janitor.errors import CAConnectionError

logger = logging.getLogger(__name__)

STATUS_PATH = "/status/v1/simple/ca"
DEFAULT_TIMEOUT = 10.0


def status_url(settings: CASettings) -> str:
    return f"https://{settings.ca_server}:{settings.ca_port}{STATUS_PATH}"


def _verify_context(settings: CASettings) -> ssl.SSLContext:
    cafile = settings.localcacert
    if cafile is not None and cafile.is_file():
        return ssl.create_default_context(cafile=str(cafile))
    return ssl.create_default_context()


def _connection_refused(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, ConnectionRefusedError):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def check_server_online(
    settings: CASettings,
    transport: httpx.BaseTransport | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> bool:
    """Return True if the CA service reports itself as running.

    A refused connection means the service is down.

    Parameters
    ----------
    settings:
        Settings naming the CA server, port and trusted CA bundle.
    transport:
        Optional transport, e.g. :class:`httpx.MockTransport`.
    timeout:
        Request timeout in seconds.

    Raises
    ------
    CAConnectionError
        On any transport failure other than a refused connection.
    """
    url = status_url(settings)
    client_kwargs: dict[str, object] = {"timeout": timeout}
    if transport is not None:
        client_kwargs["transport"] = transport
    else:
        client_kwargs["verify"] = _verify_context(settings)

    try:
        with httpx.Client(**client_kwargs) as client:  # type: ignore[arg-type]
            response = client.get(url)
    except httpx.ConnectError as exc:
        if not _connection_refused(exc):
            raise CAConnectionError(f"Could not connect to CA service at {url}: {exc}", wrapped=exc) from exc
        logger.debug("CA service at %s refused the connection", url)
        return False
    except httpx.HTTPError as exc:
        raise CAConnectionError(f"Could not check CA service status at {url}: {exc}", wrapped=exc) from exc

    running = response.text.strip() == "running"
    logger.debug("CA service status at %s: %s %r", url, response.status_code, response.text)
    return running
