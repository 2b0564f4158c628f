"""Counters stored inside the image itself, in the EXIF Make tag."""

import json
import logging
import os
from pathlib import Path

from anyio import to_thread
from PIL import Image, UnidentifiedImageError

from ..exceptions import CounterStoreError
from ..models import CounterRecord
from .base import CounterStore

logger = logging.getLogger(__name__)

MAKE_TAG = 0x010F


class ExifCounterStore(CounterStore):
    """Keep `{"<app_name>": {"successCount": n, "failedCount": m}}` in EXIF Make.

    The counters travel with the file, so a re-run over a copied directory
    still knows what was already processed. A Make value that is not our JSON
    is treated as "no record" and overwritten on the next increment.
    """

    def __init__(self, app_name: str = "imageFromImage", success_key: str = "successCount", failed_key: str = "failedCount"):
        self.app_name = app_name
        self.success_key = success_key
        self.failed_key = failed_key

    # --- sync implementation (run in a worker thread) ---

    def read_sync(self, file_id: str) -> CounterRecord | None:
        path = Path(file_id)
        try:
            with Image.open(path) as image:
                raw = image.getexif().get(MAKE_TAG)
        except (OSError, UnidentifiedImageError) as e:
            raise CounterStoreError(f"Cannot read EXIF from {path.name}: {e}") from e
        return self._parse(raw, path.name)

    def _parse(self, raw: object, name: str) -> CounterRecord | None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        if not isinstance(raw, str) or not raw.strip():
            return None
        try:
            data = json.loads(raw.strip("\x00 "))
        except json.JSONDecodeError:
            logger.debug(f"Make tag of {name} is not JSON: {raw!r}")
            return None
        app_data = data.get(self.app_name) if isinstance(data, dict) else None
        if not isinstance(app_data, dict):
            return None
        try:
            return CounterRecord(
                success_count=int(app_data.get(self.success_key, 0)),
                failed_count=int(app_data.get(self.failed_key, 0)),
            )
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed counters in {name}: {e}")
            return None

    def write_sync(self, file_id: str, record: CounterRecord) -> None:
        path = Path(file_id)
        payload = json.dumps({self.app_name: {self.success_key: record.success_count, self.failed_key: record.failed_count}})
        tmp_path = path.with_name(f".{path.name}.ifi-tmp")
        try:
            with Image.open(path) as image:
                fmt = image.format
                exif = image.getexif()
                exif[MAKE_TAG] = payload
                options: dict = {"format": fmt, "exif": exif}
                if image.info.get("icc_profile"):
                    options["icc_profile"] = image.info["icc_profile"]
                if fmt == "JPEG":
                    options.update(quality="keep", subsampling="keep")
                image.save(tmp_path, **options)
            os.replace(tmp_path, path)
        except (OSError, ValueError, UnidentifiedImageError) as e:
            tmp_path.unlink(missing_ok=True)
            raise CounterStoreError(f"Cannot write EXIF to {path.name}: {e}") from e

    # --- async interface ---

    async def read(self, file_id: str) -> CounterRecord | None:
        return await to_thread.run_sync(self.read_sync, file_id)

    async def write(self, file_id: str, record: CounterRecord) -> None:
        await to_thread.run_sync(self.write_sync, file_id, record)
        logger.info(f"Updated EXIF Make for {Path(file_id).name}")
