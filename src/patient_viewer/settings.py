"""Remembering the selected FHIR server between sessions.

The selection is stored in a small JSON file. Only servers from
config.FHIR_SERVERS can be saved or restored; anything else in the file
(an old server, a hand edit) is ignored and the default is used.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from patient_viewer.config import FHIR_SERVER_URL, FHIR_SERVERS, SETTINGS_PATH

logger = logging.getLogger(__name__)

SERVER_KEY = "fhir-server-url"


class ServerSettings:
    """Load and save the selected server URL."""

    def __init__(
        self,
        path: Path = SETTINGS_PATH,
        servers: dict[str, str] = FHIR_SERVERS,
        default_url: str = FHIR_SERVER_URL,
    ) -> None:
        self.path = Path(path)
        self.servers = dict(servers)
        self.default_url = default_url

    def is_known(self, url: str) -> bool:
        return url in self.servers.values()

    def load(self) -> str:
        """The saved server URL, or the default when none is usable."""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return self.default_url
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", self.path, exc)
            return self.default_url

        saved = data.get(SERVER_KEY) if isinstance(data, dict) else None
        if isinstance(saved, str) and self.is_known(saved):
            return saved
        return self.default_url

    def save(self, url: str) -> None:
        """Persist url as the selected server.

        Raises:
            ValueError: If url is not one of the configured servers.
        """
        if not self.is_known(url):
            raise ValueError(f"Unknown FHIR server: {url}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({SERVER_KEY: url}), encoding="utf-8")
        logger.info("Selected FHIR server %s", url)

    def label_for(self, url: str) -> str:
        for label, server_url in self.servers.items():
            if server_url == url:
                return label
        return url
