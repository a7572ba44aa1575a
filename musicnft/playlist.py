"""
Builds a playlist configuration from a local folder laid out as::

    <folder>/info.json      [{"<track key>": {"metadata": {...}}}, ...]
    <folder>/audio/*        audio files (uploaded as audio/mpeg)
    <folder>/images/*       cover art (uploaded as image/jpeg)

Audio and cover art are matched to a track when their file name contains
the track key.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional, Union

from loguru import logger as default_logger
from pydantic import BaseModel

from musicnft.errors import ValidationFailure
from musicnft.schemas import FileMetadata, FileNames, LocalFile, MusicPlaylistConfig


class PlaylistFolder(BaseModel):
    config: MusicPlaylistConfig
    audio_files: List[LocalFile]
    image_files: List[LocalFile]

    @property
    def all_files(self) -> List[LocalFile]:
        return [*self.audio_files, *self.image_files]


def _read_files(directory: Path, mime_type: str, logger: Any) -> List[LocalFile]:
    if not directory.is_dir():
        logger.warning(f"Directory not found, skipping: {directory}")
        return []
    return [
        LocalFile(name=entry.name, content=entry.read_bytes(), mime_type=mime_type)
        for entry in sorted(directory.iterdir())
        if entry.is_file()
    ]


def build_playlist_config(
    folder_path: Union[str, Path],
    name: str,
    creator: str,
    logger: Optional[Any] = None,
) -> PlaylistFolder:
    log = logger or default_logger.bind(component="playlist")
    base = Path(folder_path).expanduser().resolve()

    info = json.loads((base / "info.json").read_text(encoding="utf-8"))
    if not isinstance(info, list):
        raise ValidationFailure("info.json must contain a list of tracks")

    audio_files = _read_files(base / "audio", "audio/mpeg", log)
    image_files = _read_files(base / "images", "image/jpeg", log)

    config = MusicPlaylistConfig(name=name, creator=creator)
    for track in info:
        if not isinstance(track, dict) or not track:
            raise ValidationFailure(f"Invalid track entry in info.json: {track!r}")
        track_key = next(iter(track))
        if not isinstance(track[track_key], dict):
            raise ValidationFailure(
                f"Track '{track_key}' in info.json must be an object, got {track[track_key]!r}"
            )
        metadata = track[track_key].get("metadata") or {}

        audio = next((f.name for f in audio_files if track_key in f.name), "")
        image = next((f.name for f in image_files if track_key in f.name), "")
        if not audio or not image:
            log.warning(f"Track '{track_key}' is missing audio or cover art")

        config.files_metadata[track_key] = FileMetadata.model_validate(metadata)
        config.file_names[track_key] = FileNames(
            audio_file_name=audio, cover_art_file_name=image
        )

    log.info(
        f"Scanned {base}: {len(info)} track(s), {len(audio_files)} audio, {len(image_files)} image file(s)"
    )
    return PlaylistFolder(
        config=config, audio_files=audio_files, image_files=image_files
    )
