"""Post-install health verification."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from hostprov.errors import VerificationTimeout
from hostprov.models.report import EndpointOutcome
from hostprov.models.service import HealthCheck


logger = logging.getLogger(__name__)

# MQTT 3.1.1 CONNECT, clean session, keepalive 60s, client id "hostprov"
MQTT_CONNECT = bytes([0x10, 0x14, 0x00, 0x04]) + b"MQTT" + bytes([0x04, 0x02, 0x00, 0x3C, 0x00, 0x08]) + b"hostprov"
MQTT_CONNACK_HEADER = bytes([0x20, 0x02])


@dataclass
class VerificationReport:
    """Per-endpoint readiness. Advisory only."""
    outcomes: List[EndpointOutcome] = field(default_factory=list)
    errors: List[VerificationTimeout] = field(default_factory=list)

    @property
    def all_ready(self) -> bool:
        return all(outcome.ready for outcome in self.outcomes)


class HealthVerifier:
    """Polls service endpoints until they answer or time out.

    Checks run concurrently and never affect each other. Every probe is
    bounded by the polling interval, so a check that never succeeds returns
    within `timeout + interval`.
    """

    def __init__(self, interval: float = 5.0):
        self.interval = interval

    async def wait_ready(self, checks: Dict[str, HealthCheck], timeout: float) -> VerificationReport:
        """Wait for every check, concurrently, and report each outcome."""
        report = VerificationReport()
        if not checks:
            return report

        semaphore = asyncio.Semaphore(len(checks))
        async with httpx.AsyncClient(timeout=self.interval) as client:
            outcomes = await asyncio.gather(*(
                self._wait_one(service, check, timeout, semaphore, client)
                for service, check in checks.items()
            ))

        for outcome in outcomes:
            report.outcomes.append(outcome)
            if not outcome.ready:
                report.errors.append(VerificationTimeout(outcome.service, timeout))
        return report

    async def _wait_one(
        self,
        service: str,
        check: HealthCheck,
        timeout: float,
        semaphore: asyncio.Semaphore,
        client: httpx.AsyncClient,
    ) -> EndpointOutcome:
        target = check.url if check.protocol == "http" else f"{check.protocol}://{check.host}:{check.port}"
        async with semaphore:
            loop = asyncio.get_running_loop()
            started = loop.time()
            deadline = started + timeout
            attempts = 0

            while True:
                attempts += 1
                try:
                    ready = await asyncio.wait_for(self.probe(check, client), timeout=self.interval)
                except asyncio.TimeoutError:
                    ready = False

                if ready:
                    elapsed = loop.time() - started
                    logger.info(f"{service} ready at {target} after {elapsed:.1f}s")
                    return EndpointOutcome(service=service, target=target, ready=True, attempts=attempts, elapsed=elapsed)

                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(self.interval, remaining))

            elapsed = loop.time() - started
            logger.warning(f"{service} not ready at {target} after {elapsed:.1f}s")
            return EndpointOutcome(service=service, target=target, ready=False, attempts=attempts, elapsed=elapsed)

    async def probe(self, check: HealthCheck, client: Optional[httpx.AsyncClient] = None) -> bool:
        """Single attempt; connection failures count as not ready.

        A plain tcp check only proves the port accepts connections, which a
        docker userland proxy does before the service inside listens. mqtt
        checks wait for the broker's CONNACK instead.
        """
        if check.protocol == "http":
            try:
                if client is None:
                    async with httpx.AsyncClient(timeout=self.interval) as own_client:
                        response = await own_client.get(check.url)
                else:
                    response = await client.get(check.url)
            except httpx.HTTPError as e:
                logger.debug(f"Probe {check.url} failed: {e}")
                return False
            return check.accepts(response.status_code)

        target = f"{check.protocol}://{check.host}:{check.port}"
        try:
            reader, writer = await asyncio.open_connection(check.host, check.port)
        except OSError as e:
            logger.debug(f"Probe {target} failed: {e}")
            return False

        ready = True
        try:
            if check.protocol == "mqtt":
                writer.write(MQTT_CONNECT)
                await writer.drain()
                # Any CONNACK proves the broker answers, refused logins included
                header = await reader.readexactly(len(MQTT_CONNACK_HEADER))
                ready = header == MQTT_CONNACK_HEADER
        except (OSError, asyncio.IncompleteReadError) as e:
            logger.debug(f"Probe {target} got no broker reply: {e}")
            ready = False
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug(f"Closing probe connection failed: {e}")
        return ready
