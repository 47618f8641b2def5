"""Fetches and parses the WOPI discovery manifest."""

import asyncio
import time
import xml.etree.ElementTree as ET
from typing import Callable, List, Optional

import aiohttp

from common.constants import DISCOVERY_REUSE_SECONDS, DISCOVERY_TIMEOUT_SECONDS
from common.logging_config import get_logger
from common.types import ActionDescriptor, DiscoveryManifest, ProofKeyPair
from wopi_host.exceptions import DiscoveryUnavailableError

logger = get_logger(__name__)


def parse_discovery(xml_text: str) -> DiscoveryManifest:
    """
    Parse a discovery document into actions and the proof key pair.

    Expected shape::

        <wopi-discovery>
          <net-zone name="external-https">
            <app name="Excel" favIconUrl="..." checkLicense="true">
              <action name="view" ext="xlsx" default="true" urlsrc="..." />
            </app>
          </net-zone>
          <proof-key value="..." modulus="..." exponent="..."
                     oldvalue="..." oldmodulus="..." oldexponent="..." />
        </wopi-discovery>

    Raises:
        DiscoveryUnavailableError: If the document is not well-formed XML
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise DiscoveryUnavailableError(f"Malformed discovery document: {e}") from e

    actions: List[ActionDescriptor] = []
    for app in root.iter("app"):
        app_name = app.get("name", "")
        fav_icon_url = app.get("favIconUrl", "")
        check_license = app.get("checkLicense", "false").lower() == "true"

        for action in app.iter("action"):
            urlsrc = action.get("urlsrc")
            if not action.get("name") or urlsrc is None:
                logger.debug(f"Skipping incomplete discovery action in app {app_name}")
                continue

            actions.append(ActionDescriptor(
                app=app_name,
                name=action.get("name"),
                ext=action.get("ext", "").lower(),
                urlsrc=urlsrc,
                is_default=action.get("default") is not None,
                requires=action.get("requires", ""),
                check_license=check_license,
                fav_icon_url=fav_icon_url,
                progid=action.get("progid", ""),
            ))

    proof_key = None
    proof_element = root.find(".//proof-key")
    if proof_element is not None and proof_element.get("value"):
        proof_key = ProofKeyPair(
            value=proof_element.get("value"),
            modulus=proof_element.get("modulus"),
            exponent=proof_element.get("exponent"),
            old_value=proof_element.get("oldvalue"),
            old_modulus=proof_element.get("oldmodulus"),
            old_exponent=proof_element.get("oldexponent"),
        )

    return DiscoveryManifest(actions=actions, proof_key=proof_key)


class DiscoveryClient:
    """
    Downloads the discovery document with a bounded timeout.

    `TtlCache` wraps `fetch_actions` and `fetch_proof_keys` with their own
    TTLs. Both draw from one download: concurrent callers share the fetch in
    flight, and a manifest younger than `reuse_seconds` is handed out again,
    so a cold start downloads the document once.
    """

    def __init__(
        self,
        discovery_url: str,
        timeout_seconds: float = DISCOVERY_TIMEOUT_SECONDS,
        reuse_seconds: float = DISCOVERY_REUSE_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.discovery_url = discovery_url
        self.timeout_seconds = timeout_seconds
        self.reuse_seconds = reuse_seconds
        self._clock = clock

        self._manifest: Optional[DiscoveryManifest] = None
        self._fetched_at = 0.0
        self._inflight: Optional[asyncio.Task] = None

    async def fetch_manifest(self) -> DiscoveryManifest:
        if self._manifest is not None and self._clock() - self._fetched_at < self.reuse_seconds:
            return self._manifest

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._fetch())
        return await asyncio.shield(self._inflight)

    async def _fetch(self) -> DiscoveryManifest:
        xml_text = await self._download()
        manifest = parse_discovery(xml_text)
        self._manifest = manifest
        self._fetched_at = self._clock()
        logger.info(
            f"Discovery fetched from {self.discovery_url}: {len(manifest.actions)} action(s), "
            f"proof key {'present' if manifest.proof_key else 'missing'}"
        )
        return manifest

    async def fetch_actions(self) -> List[ActionDescriptor]:
        manifest = await self.fetch_manifest()
        return manifest.actions

    async def fetch_proof_keys(self) -> Optional[ProofKeyPair]:
        manifest = await self.fetch_manifest()
        return manifest.proof_key

    async def _download(self) -> str:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.discovery_url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
                ) as response:
                    if response.status != 200:
                        raise DiscoveryUnavailableError(
                            f"Discovery returned HTTP {response.status}"
                        )
                    return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Discovery fetch failed for {self.discovery_url}: {e}")
            raise DiscoveryUnavailableError(f"Discovery fetch failed: {e}") from e
