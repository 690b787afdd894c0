"""
mDNS/DNS-SD discovery for Sonos speakers
"""

import logging
import socket
import threading
import time
from typing import Callable, Dict, List, Optional

from zeroconf import ServiceBrowser, ServiceListener, Zeroconf

from .models import DiscoveredSpeaker
from .sonos import SonosSpeaker

logger = logging.getLogger(__name__)

SONOS_SERVICE_TYPE = "_sonos._tcp.local."

SpeakerFactory = Callable[[str], SonosSpeaker]


class SonosListener(ServiceListener):
    """Service listener that turns advertisements into speaker handles"""

    def __init__(self, speaker_factory: SpeakerFactory = SonosSpeaker):
        self._speaker_factory = speaker_factory
        self._lock = threading.Lock()
        self._speakers_by_id: Dict[str, DiscoveredSpeaker] = {}
        self._seen_ips = set()

    def add_service(self, zeroconf: Zeroconf, type_: str, name: str) -> None:
        """Called when a Sonos service is discovered"""
        logger.debug(f"Discovered service: {name} (type: {type_})")

        info = zeroconf.get_service_info(type_, name)
        if not info:
            logger.warning(f"Could not get service info for {name}")
            return

        ip_addresses = []
        try:
            ip_addresses = info.parsed_addresses()
        except AttributeError:
            pass  # Older zeroconf versions may not expose parsed_addresses()
        ip = ip_addresses[0] if ip_addresses else (socket.inet_ntoa(info.addresses[0]) if info.addresses else None)
        if not ip:
            logger.warning(f"No address advertised for {name}")
            return

        with self._lock:
            if ip in self._seen_ips:
                return
            self._seen_ips.add(ip)

        try:
            handle = self._speaker_factory(ip)
            details = handle.describe()
        except Exception as e:
            logger.error(f"Error getting device description for {ip}: {e}")
            with self._lock:
                self._seen_ips.discard(ip)
            return

        speaker = DiscoveredSpeaker(
            id=details["id"],
            name=details["name"] or name.split('.')[0],
            model=details.get("model"),
            ip=ip,
            handle=handle,
        )
        with self._lock:
            self._speakers_by_id[speaker.id] = speaker
        logger.debug(f"Added speaker: {speaker.name} ({speaker.id}) at {ip}")

    def remove_service(self, zeroconf: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service removed: {name}")

    def update_service(self, zeroconf: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service updated: {name}")

    def snapshot(self) -> List[DiscoveredSpeaker]:
        with self._lock:
            return list(self._speakers_by_id.values())


class SpeakerDirectory:
    """Time-boxed speaker discovery, addressable by speaker id.

    ``discover()`` is not reentrant: a caller that arrives while a scan is
    running waits for that scan and receives its result instead of starting
    another one.
    """

    def __init__(self, window_s: float = 5.0, speaker_factory: SpeakerFactory = SonosSpeaker):
        self.window_s = window_s
        self._speaker_factory = speaker_factory
        self._lock = threading.Lock()
        self._scan_done: Optional[threading.Event] = None
        self._speakers: Dict[str, DiscoveredSpeaker] = {}

    @property
    def is_discovering(self) -> bool:
        with self._lock:
            return self._scan_done is not None

    @property
    def speakers(self) -> List[DiscoveredSpeaker]:
        with self._lock:
            return list(self._speakers.values())

    def lookup(self, speaker_id: str) -> Optional[DiscoveredSpeaker]:
        with self._lock:
            return self._speakers.get(speaker_id)

    def discover(self) -> List[DiscoveredSpeaker]:
        """
        Browse for speakers for ``window_s`` seconds.

        Returns:
            Every speaker that announced itself in the window (possibly none)
        """
        with self._lock:
            in_flight = self._scan_done
            if in_flight is None:
                self._scan_done = threading.Event()
                self._speakers = {}

        if in_flight is not None:
            logger.info("Discovery already in progress, waiting for its result")
            in_flight.wait()
            return self.speakers

        try:
            found = self._scan()
            with self._lock:
                self._speakers = {speaker.id: speaker for speaker in found}
        finally:
            with self._lock:
                done, self._scan_done = self._scan_done, None
            done.set()

        logger.info(f"Discovered {len(found)} Sonos speaker(s): {', '.join(s.name for s in found) or 'none'}")
        return found

    def _scan(self) -> List[DiscoveredSpeaker]:
        logger.info(f"Browsing for {SONOS_SERVICE_TYPE} (window: {self.window_s}s)")
        zeroconf = None
        browser = None
        listener = SonosListener(self._speaker_factory)
        try:
            zeroconf = Zeroconf()
            browser = ServiceBrowser(zeroconf, SONOS_SERVICE_TYPE, listener)
            time.sleep(self.window_s)
        except Exception as e:
            logger.error(f"Speaker discovery failed: {e}")
        finally:
            if browser:
                try:
                    browser.cancel()
                except Exception as e:
                    # Known issue with zeroconf cleanup - non-fatal
                    logger.debug(f"ServiceBrowser cleanup warning (non-fatal): {e}")
            if zeroconf:
                zeroconf.close()
        return listener.snapshot()
