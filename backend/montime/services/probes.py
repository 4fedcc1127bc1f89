"""Probe runner - performs http, keyword, ping, tcp and ssl checks.

Each monitor type has one ``Probe`` subclass, registered by type name with
``register_probe``. Adding a type means adding a class; the runner does not
change.
"""
import asyncio
import logging
import socket
import ssl
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Type

import httpx

from ..errors import TransportError
from ..models import Monitor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


@dataclass
class ProbeResult:
    """Verdict of a single probe."""
    success: bool
    response_time_ms: int
    status_code: Optional[int] = None
    message: str = ""
    ssl_expiry_days: Optional[int] = None

    @property
    def status(self) -> str:
        return "up" if self.success else "down"


PROBE_REGISTRY: Dict[str, Type["Probe"]] = {}


def register_probe(*monitor_types: str):
    """Class decorator registering a probe for one or more monitor types."""
    def decorator(cls):
        for monitor_type in monitor_types:
            PROBE_REGISTRY[monitor_type] = cls
        return cls
    return decorator


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _host_of(target: str) -> str:
    """Strip scheme, path and port from a URL or host string."""
    if "://" in target:
        target = target.split("://", 1)[1]
    target = target.split("/", 1)[0]
    if target.startswith("["):  # IPv6 literal
        return target.split("]", 1)[0] + "]"
    return target.rsplit(":", 1)[0] if target.count(":") == 1 else target


class Probe:
    """Base class for a monitor type's check."""

    # Message reported when the runner cancels the probe at its deadline
    timeout_message = "Request timeout"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self._transport = transport
        self.timeout = timeout

    async def run(self, monitor: Monitor, start: float) -> ProbeResult:
        raise NotImplementedError

    async def _request(self, method: str, url: str, timeout: float, **client_kwargs) -> httpx.Response:
        """Issue one request, turning every transport failure into TransportError."""
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport, **client_kwargs) as client:
                return await client.request(method, url)
        except httpx.TimeoutException as e:
            raise TransportError(self.timeout_message, timed_out=True) from e
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            raise TransportError(str(e) or type(e).__name__) from e


@register_probe("http", "https", "keyword")
class HttpProbe(Probe):
    """GET the URL; check status code first, then keyword."""

    async def run(self, monitor: Monitor, start: float) -> ProbeResult:
        url = monitor.url
        if not url.startswith("http"):
            url = f"{'https' if monitor.type == 'https' else 'http'}://{url}"

        try:
            # Self-signed certificates are accepted; the ssl type checks the chain
            response = await self._request(
                "GET", url, self.timeout, follow_redirects=True, verify=False
            )
        except TransportError as e:
            return ProbeResult(success=False, response_time_ms=_elapsed_ms(start), message=str(e))

        response_time = _elapsed_ms(start)
        status_code = response.status_code

        expected_status = monitor.expected_status_code
        if expected_status is not None and status_code != expected_status:
            return ProbeResult(
                success=False,
                response_time_ms=response_time,
                status_code=status_code,
                message=f"Expected status {expected_status}, got {status_code}",
            )

        keyword = monitor.expected_keyword
        if keyword and keyword not in response.text:
            return ProbeResult(
                success=False,
                response_time_ms=response_time,
                status_code=status_code,
                message=f'Keyword "{keyword}" not found in response',
            )

        return ProbeResult(
            success=True,
            response_time_ms=response_time,
            status_code=status_code,
            message=f"HTTP {status_code}",
        )


@register_probe("ping")
class PingProbe(Probe):
    """Reachability via HTTP HEAD.

    This is not ICMP: a host that answers ping but serves nothing on port 80
    reads as down, and the response status is ignored.
    """

    async def run(self, monitor: Monitor, start: float) -> ProbeResult:
        url = monitor.url if monitor.url.startswith("http") else f"http://{monitor.url}"
        try:
            await self._request("HEAD", url, self.timeout)
        except TransportError as e:
            return ProbeResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                message=self.timeout_message if e.timed_out else "Host unreachable",
            )
        return ProbeResult(success=True, response_time_ms=_elapsed_ms(start), message="Host is reachable")


@register_probe("tcp")
class TcpProbe(Probe):
    """Port check via HTTP HEAD to host:port.

    Only connection establishment matters: any HTTP response, or a peer that
    accepts the connection and then speaks something other than HTTP, is open.
    """

    timeout_message = "Connection timeout"

    async def run(self, monitor: Monitor, start: float) -> ProbeResult:
        port = monitor.port
        if not port:
            return ProbeResult(success=False, response_time_ms=0, message="Port is required for TCP check")

        url = f"http://{_host_of(monitor.url)}:{port}"
        try:
            await self._request("HEAD", url, self.timeout)
        except TransportError as e:
            if e.timed_out:
                return ProbeResult(success=False, response_time_ms=_elapsed_ms(start), message=self.timeout_message)
            if not isinstance(e.__cause__, httpx.RemoteProtocolError):
                return ProbeResult(
                    success=False,
                    response_time_ms=_elapsed_ms(start),
                    message=f"Port {port} is closed or filtered",
                )
        return ProbeResult(success=True, response_time_ms=_elapsed_ms(start), message=f"Port {port} is open")


@register_probe("ssl")
class SslProbe(Probe):
    """HTTPS GET with certificate verification.

    Any HTTP response means a trusted chain was negotiated; the status must
    still be 2xx/3xx. Certificate expiry is read afterwards, best-effort.
    """

    async def run(self, monitor: Monitor, start: float) -> ProbeResult:
        if not monitor.url.startswith("https://"):
            return ProbeResult(success=False, response_time_ms=0, message="URL must use HTTPS for SSL check")

        try:
            response = await self._request("GET", monitor.url, self.timeout, follow_redirects=True)
        except TransportError as e:
            return ProbeResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                message=str(e) or "SSL certificate error",
            )

        response_time = _elapsed_ms(start)
        ok = 200 <= response.status_code < 400

        expiry_days = None
        # Whatever is left of the deadline after the GET, minus headroom for the verdict
        remaining = self.timeout - (time.monotonic() - start) - 0.5
        if ok and remaining > 0:
            expiry_days = await self._read_expiry_days(monitor.url, remaining)

        return ProbeResult(
            success=ok,
            response_time_ms=response_time,
            status_code=response.status_code,
            message="SSL certificate is valid" if ok else "SSL certificate issue",
            ssl_expiry_days=expiry_days,
        )

    async def _read_expiry_days(self, url: str, timeout: float) -> Optional[int]:
        target = url.split("://", 1)[1].split("/", 1)[0]
        host, port = target, 443
        if ":" in target and not target.startswith("["):
            host, port_str = target.rsplit(":", 1)
            try:
                port = int(port_str)
            except ValueError:
                pass

        loop = asyncio.get_running_loop()
        try:
            # Socket operations are blocking
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._get_ssl_expiry, host, port, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.debug(f"Timed out reading certificate expiry for {host}:{port}")
            return None

    @staticmethod
    def _get_ssl_expiry(host: str, port: int, timeout: float) -> Optional[int]:
        """Get SSL certificate expiry in days (blocking operation)."""
        from cryptography import x509

        try:
            # Only the expiry date is read here; trust was checked by the GET
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

            with socket.create_connection((host, port), timeout=timeout) as sock:
                with context.wrap_socket(sock, server_hostname=host) as ssock:
                    cert_der = ssock.getpeercert(binary_form=True)
            if not cert_der:
                return None
            cert = x509.load_der_x509_certificate(cert_der)
            return (cert.not_valid_after_utc - datetime.now(timezone.utc)).days
        except (OSError, ValueError) as e:
            logger.debug(f"Could not read certificate for {host}:{port}: {e}")
            return None


class ProbeRunner:
    """Runs the registered probe for a monitor under a hard deadline."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def supports(self, monitor_type: str) -> bool:
        return monitor_type in PROBE_REGISTRY

    async def probe(self, monitor: Monitor) -> ProbeResult:
        """Probe ``monitor``. Never raises; every failure is a failed verdict."""
        start = time.monotonic()
        probe_cls = PROBE_REGISTRY.get(monitor.type)
        if probe_cls is None:
            return ProbeResult(success=False, response_time_ms=0, message=f"Unknown monitor type: {monitor.type}")

        timeout = monitor.timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        probe = probe_cls(self._transport, timeout)
        try:
            return await asyncio.wait_for(probe.run(monitor, start), timeout=timeout)
        except asyncio.TimeoutError:
            return ProbeResult(success=False, response_time_ms=_elapsed_ms(start), message=probe.timeout_message)
        except TransportError as e:
            return ProbeResult(success=False, response_time_ms=_elapsed_ms(start), message=str(e))
        except Exception as e:
            logger.error(f"Probe for monitor {monitor.id} ({monitor.type}) failed: {type(e).__name__}: {e}")
            return ProbeResult(success=False, response_time_ms=_elapsed_ms(start), message=str(e) or type(e).__name__)
