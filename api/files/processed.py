"""
Processed (derived) versions of a file, e.g. previews.
"""

import hashlib
import json
import re

from api.storage.drivers import PROCESSED_FOLDER


class ProcessedFile:
    """
    A derived version of an original file for one task type and configuration.
    With an empty configuration nothing needs deriving and the original is used.
    """

    def __init__(self, original, task_type: str, configuration: dict):
        self.original = original
        self.task_type = task_type
        self.configuration = dict(configuration or {})
        self.name = original.get_name()
        self.checksum = self.calculate_checksum()
        self.identifier = self._build_identifier()

    def calculate_checksum(self) -> str:
        """Fingerprint of the original plus the processing instructions"""
        payload = "|".join([
            self.original.calculate_checksum(),
            self.task_type,
            json.dumps(self.configuration, sort_keys=True, default=str),
        ])
        return hashlib.md5(payload.encode("utf-8")).hexdigest()

    def _build_identifier(self) -> str:
        if self.uses_original_file():
            return self.original.get_identifier()
        task = re.sub(r"[^a-z0-9]+", "_", self.task_type.lower()).strip("_")
        return f"{PROCESSED_FOLDER}{task}_{self.checksum[:10]}_{self.name}"

    def uses_original_file(self) -> bool:
        return not self.configuration

    def get_identifier(self) -> str:
        return self.identifier

    def get_public_url(self, relative_to_current_script: bool = False) -> str | None:
        """
        URL of the original when it is used as-is.
        Derived files are never rendered, so they have no URL.
        """
        if self.uses_original_file():
            return self.original.get_public_url(relative_to_current_script)
        return None

    def to_array(self) -> dict:
        return {
            "identifier": self.identifier,
            "name": self.name,
            "task_type": self.task_type,
            "configuration": self.configuration,
            "checksum": self.checksum,
            "original": self.original.get_combined_identifier(),
            "uses_original_file": self.uses_original_file(),
            "url": self.get_public_url(),
        }
