"""
Manifest builders.

Turn uploaded file entries plus a playlist configuration into the manifest
JSON that is uploaded and pinned to IPNS. Builders are looked up by
:class:`musicnft.schemas.ManifestType` through :class:`ManifestBuilderFactory`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from musicnft.config import IPFS_GATEWAY_URL
from musicnft.errors import ValidationFailure
from musicnft.schemas import (
    DataStream,
    ManifestType,
    MarshalManifest,
    MusicPlaylistConfig,
    MusicPlaylistManifest,
    MusicTrackData,
    UploadedFile,
)

UNKNOWN = "Unknown"


def gateway_url(cid: str) -> str:
    return f"{IPFS_GATEWAY_URL}/{cid}"


def _iso_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class MusicPlaylistBuilder:
    """Builds the playlist manifest that links uploaded audio and cover art."""

    def build_manifest(
        self,
        manifest_type: Union[str, ManifestType],
        uploaded_files: List[UploadedFile],
        config: MusicPlaylistConfig,
        now: Optional[datetime] = None,
    ) -> MusicPlaylistManifest:
        """
        One track per ``config.files_metadata`` entry, in insertion order.

        Each entry's audio and cover art are looked up by the names in
        ``config.file_names``; a missing mapping or file raises
        :class:`ValidationFailure`.
        """
        now = now or datetime.now(timezone.utc)
        timestamp = _iso_timestamp(now)
        date = timestamp.split("T")[0]
        defaults = config.default_metadata
        by_name: Dict[str, UploadedFile] = {f.file_name: f for f in uploaded_files}

        tracks: List[MusicTrackData] = []
        for idx, (key, metadata) in enumerate(config.files_metadata.items(), start=1):
            names = config.file_names.get(key)
            if names is None:
                raise ValidationFailure(f"File names not found for key: {key}")

            audio = by_name.get(names.audio_file_name)
            if audio is None:
                raise ValidationFailure(f"Audio file not found: {names.audio_file_name}")
            cover = by_name.get(names.cover_art_file_name)
            if cover is None:
                raise ValidationFailure(
                    f"Cover art file not found: {names.cover_art_file_name}"
                )

            tracks.append(
                MusicTrackData(
                    idx=idx,
                    date=timestamp,
                    category=metadata.category
                    or (defaults.category if defaults else None)
                    or UNKNOWN,
                    artist=metadata.artist,
                    album=metadata.album
                    or (defaults.album if defaults else None)
                    or UNKNOWN,
                    cover_art_url=gateway_url(cover.hash),
                    src=gateway_url(audio.hash),
                    title=metadata.title,
                )
            )

        category = (
            manifest_type.value
            if isinstance(manifest_type, ManifestType)
            else manifest_type
        )
        return MusicPlaylistManifest(
            data_stream=DataStream(
                category=category,
                name=config.name,
                creator=config.creator,
                created_on=date,
                last_modified_on=date,
                marshal_manifest=MarshalManifest(
                    total_items=len(config.files_metadata), nested_stream=True
                ),
            ),
            data=tracks,
        )


class ManifestBuilderFactory:
    @staticmethod
    def get_builder(manifest_type: Union[str, ManifestType]) -> MusicPlaylistBuilder:
        try:
            resolved = ManifestType(manifest_type)
        except ValueError:
            raise ValidationFailure(
                f"No builder found for manifest type: {manifest_type}"
            ) from None
        if resolved is ManifestType.MUSIC_PLAYLIST:
            return MusicPlaylistBuilder()
        raise ValidationFailure(f"No builder found for manifest type: {manifest_type}")
