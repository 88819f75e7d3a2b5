"""
Filesystem blob store for report photos.

Files live under <UPLOAD_DIR>/rapports/<report_id>/ and are named
<report_id>_<n><ext> in upload order.
"""
import os
import shutil
from dataclasses import dataclass
from typing import List

from fieldops.config import get_settings
from fieldops.services.errors import ValidationError
from fieldops.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic"}


@dataclass
class StoredPhoto:
    filename: str
    position: int


class PhotoStorage:
    def __init__(self, base_dir: str | None = None):
        self.base_dir = base_dir or os.path.join(settings.UPLOAD_DIR, "rapports")

    def report_dir(self, report_id: str) -> str:
        return os.path.join(self.base_dir, report_id)

    def path_for(self, report_id: str, filename: str) -> str:
        """Resolve a stored file path, refusing anything outside the report directory"""
        report_dir = os.path.realpath(self.report_dir(report_id))
        real_path = os.path.realpath(os.path.join(report_dir, filename))
        if not real_path.startswith(report_dir + os.sep):
            raise ValidationError(f"Invalid photo filename: {filename}")
        return real_path

    def check_batch(self, files: List[tuple[str, bytes]]) -> List[str]:
        """Extensions of a batch, ValidationError if any file is not an image or too large"""
        extensions = []
        for original_name, content in files:
            ext = os.path.splitext(original_name or "")[1].lower()
            if ext not in ALLOWED_EXTENSIONS:
                raise ValidationError(f"Unsupported photo type: {original_name}")
            if len(content) > settings.MAX_PHOTO_SIZE:
                raise ValidationError(f"Photo too large: {original_name}")
            extensions.append(ext)
        return extensions

    def save_batch(self, report_id: str, files: List[tuple[str, bytes]]) -> List[StoredPhoto]:
        """Write (original_name, content) pairs and return their stored names in order"""
        extensions = self.check_batch(files)

        report_dir = self.report_dir(report_id)
        os.makedirs(report_dir, exist_ok=True)

        stored = []
        for index, ((_, content), ext) in enumerate(zip(files, extensions)):
            filename = f"{report_id}_{index + 1}{ext}"
            with open(os.path.join(report_dir, filename), "wb") as f:
                f.write(content)
            stored.append(StoredPhoto(filename=filename, position=index))
        return stored

    def delete_file(self, report_id: str, filename: str) -> None:
        # A missing file must not block replacing the batch
        try:
            os.remove(self.path_for(report_id, filename))
        except (FileNotFoundError, ValidationError) as e:
            logger.warning(f"Could not delete photo {report_id}/{filename}: {e}")

    def delete_report(self, report_id: str) -> None:
        shutil.rmtree(self.report_dir(report_id), ignore_errors=True)


photo_storage = PhotoStorage()
