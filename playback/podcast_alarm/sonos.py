"""
Control surface for a single Sonos speaker, backed by SoCo
"""

import logging
from typing import Dict, Optional

from soco import SoCo
from soco.data_structures import DidlMusicTrack, DidlResource

from .models import TrackMetadata, TransportState

logger = logging.getLogger(__name__)

AUDIO_PROTOCOL_INFO = "http-get:*:audio/mpeg:*"


def build_track_item(audio_url: str, metadata: TrackMetadata) -> DidlMusicTrack:
    """DIDL-Lite item so controllers show episode title and podcast name"""
    extra = {}
    if metadata.album_art:
        extra["album_art_uri"] = metadata.album_art
    return DidlMusicTrack(
        title=metadata.title or "Untitled",
        parent_id="-1",
        item_id="-1",
        resources=[DidlResource(uri=audio_url, protocol_info=AUDIO_PROTOCOL_INFO)],
        creator=metadata.artist,
        artist=metadata.artist,
        album=metadata.artist,
        **extra
    )


class SonosSpeaker:
    """Thin wrapper exposing the device operations the orchestrator relies on"""

    def __init__(self, ip: str, device: Optional[SoCo] = None):
        self.ip = ip
        self.device = device or SoCo(ip)

    def describe(self) -> Dict[str, Optional[str]]:
        """Stable id, room name and model; network round-trips to the device."""
        info = self.device.get_speaker_info()
        return {
            "id": self.device.uid,
            "name": info.get("zone_name") or self.device.player_name,
            "model": info.get("model_name"),
        }

    @property
    def uid(self) -> str:
        return self.device.uid

    def join(self, coordinator: "SonosSpeaker") -> None:
        self.device.join(coordinator.device)

    def leave(self) -> None:
        self.device.unjoin()

    def set_volume(self, percent: int) -> None:
        self.device.volume = max(0, min(100, int(percent)))

    def clear_queue(self) -> None:
        self.device.clear_queue()

    def enqueue(self, audio_url: str, metadata: Optional[TrackMetadata] = None) -> None:
        if metadata is None:
            self.device.add_uri_to_queue(audio_url)
            return
        self.device.add_to_queue(build_track_item(audio_url, metadata))

    def queue_size(self) -> int:
        return self.device.queue_size

    def set_play_mode_normal(self) -> None:
        self.device.play_mode = "NORMAL"

    def queue_reference(self) -> str:
        return f"x-rincon-queue:{self.device.uid}#0"

    def set_active_source(self, reference: str) -> None:
        self.device.avTransport.SetAVTransportURI([
            ("InstanceID", 0),
            ("CurrentURI", reference),
            ("CurrentURIMetaData", ""),
        ])

    def select_track(self, number: int) -> None:
        """Seek to a 1-based queue position"""
        self.device.avTransport.Seek([
            ("InstanceID", 0),
            ("Unit", "TRACK_NR"),
            ("Target", number),
        ])

    def play(self) -> None:
        self.device.play()

    def pause(self) -> None:
        self.device.pause()

    def current_state(self) -> TransportState:
        info = self.device.get_current_transport_info()
        return TransportState.parse(info.get("current_transport_state"))

    def __repr__(self) -> str:
        return f"SonosSpeaker({self.ip})"
