"""Decode phone images into the workspace and append legacy fallbacks to the side file."""
import base64
import binascii
import os
import re
import time
from typing import Optional

from werkzeug.utils import secure_filename

from paths import image_dir, image_rel_dir, side_file

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")
_EXT_BY_MIME = {"image/png": "png", "image/gif": "gif", "image/webp": "webp"}


class WorkspaceMissingError(RuntimeError):
    """No workspace folder is configured to hold images or the side file."""

    def __init__(self):
        super().__init__("no workspace folder is open; start the bridge with --workspace")


class ImageDecodeError(ValueError):
    pass


def extension_for(mime_type: Optional[str]) -> str:
    return _EXT_BY_MIME.get((mime_type or "").lower(), "jpg")


def file_name_for(image_id: str, mime_type: Optional[str]) -> str:
    safe_id = secure_filename(str(image_id)) or "unnamed"
    return f"img_{safe_id}.{extension_for(mime_type)}"


def decode_base64(data: str) -> bytes:
    data = _DATA_URL_PREFIX.sub("", (data or "").strip())
    data = "".join(data.split())
    if not data:
        raise ImageDecodeError("image payload is empty")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"image payload is not valid base64: {e}") from e


class ImageStore:
    """Images live under <workspace>/.cursor/voice-images, referenced by relative path."""

    def __init__(self, workspace: Optional[str]):
        self.workspace = workspace

    def _require_workspace(self) -> str:
        if not self.workspace:
            raise WorkspaceMissingError()
        return self.workspace

    def save(self, image_id: str, data: str, mime_type: Optional[str]) -> str:
        workspace = self._require_workspace()
        raw = decode_base64(data)
        target_dir = image_dir(workspace)
        os.makedirs(target_dir, exist_ok=True)
        name = file_name_for(image_id, mime_type)
        with open(os.path.join(target_dir, name), "wb") as f:
            f.write(raw)
        return f"{image_rel_dir()}/{name}"

    def delete(self, ref: Optional[str]) -> bool:
        """Remove a previously saved image; False when nothing was there."""
        if not ref or not self.workspace:
            return False
        full = os.path.join(self.workspace, *ref.split("/"))
        if not os.path.isfile(full):
            return False
        try:
            os.remove(full)
            return True
        except OSError as e:
            print(f"[images] could not delete {full}: {e}")
            return False

    def append_side_file(self, content: str) -> str:
        """Last-resort sink for legacy insertions the surface refused."""
        workspace = self._require_workspace()
        path = side_file(workspace)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        stamp = time.strftime("%Y-%m-%d %H:%M:%S")
        with open(path, "a", encoding="utf-8") as f:
            f.write(f"\n<!-- Voice Input - {stamp} -->\n{content}\n")
        return path
