"""
File client module.

This module saves files and images received from other users.
"""

import time
from pathlib import Path
from typing import Union

from common.constants import MessageKind, FILES_SUBDIR, IMAGES_SUBDIR, DOWNLOAD_DIR
from common.protocol_definitions import Message


def safe_filename(name: str, default: str = 'unnamed') -> str:
    """Strip any directory components from a name chosen by a remote user."""
    name = Path(name.replace('\\', '/')).name
    if name in ('', '.', '..'):
        return default
    return name


class AttachmentStore:
    """Writes received attachments as ``<unix-seconds>_<name>`` under the download directory."""

    def __init__(self, download_dir: Union[str, Path] = DOWNLOAD_DIR):
        self.download_dir = Path(download_dir)

    @property
    def files_dir(self) -> Path:
        return self.download_dir / FILES_SUBDIR

    @property
    def images_dir(self) -> Path:
        return self.download_dir / IMAGES_SUBDIR

    def save(self, message: Message, now: float = None) -> Path:
        """Write the attachment carried by message and return its path."""
        timestamp = int(time.time() if now is None else now)

        if message.kind is MessageKind.FILE:
            directory = self.files_dir
            name = safe_filename(message.payload.filename)
        elif message.kind is MessageKind.IMAGE:
            directory = self.images_dir
            name = safe_filename(message.sender, default='image') + '.png'
        else:
            raise ValueError(f"{message.kind.name} messages carry no attachment")

        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{timestamp}_{name}"
        path.write_bytes(message.payload.content)
        return path
