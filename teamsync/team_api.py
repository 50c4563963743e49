"""Access to the ground-truth team data, live or prebuilt."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import requests

from teamsync.utils import DeserializeError, json_annotated

log = logging.getLogger(__name__)

BASE_URL = "https://team-api.infra.rust-lang.org/v1"
BASE_URL_ENV = "TEAM_DATA_BASE_URL"
_TIMEOUT = 30


def _object(data: Any) -> dict:
    if not isinstance(data, dict):
        raise TypeError("expected a JSON object")
    return data


def _teams(data: Any) -> list:
    return list(_object(data)["teams"].values())


def _repos(data: Any) -> list:
    return [repo for repos in _object(data)["repos"].values() for repo in repos]


@dataclass(frozen=True)
class TeamApi:
    """Source of team data: the published REST API, or a directory of JSON files."""

    directory: Path | None = None

    @classmethod
    def production(cls) -> TeamApi:
        """Read the live data from the published API."""
        return cls()

    @classmethod
    def prebuilt(cls, directory: str | os.PathLike) -> TeamApi:
        """Read prebuilt JSON data from ``directory``."""
        return cls(Path(directory))

    def get_teams(self) -> list:
        log.debug("loading teams list from the Team API")
        return self._req("teams.json", _teams)

    def get_repos(self) -> list:
        log.debug("loading repos list from the Team API")
        return self._req("repos.json", _repos)

    def get_lists(self) -> dict:
        log.debug("loading email lists list from the Team API")
        return self._req("lists.json", _object)

    def get_zulip_groups(self) -> dict:
        log.debug("loading GitHub id to Zulip id map from the Team API")
        return self._req("zulip-groups.json", _object)

    def get_zulip_streams(self) -> dict:
        log.debug("loading Zulip streams from the Team API")
        return self._req("zulip-streams.json", _object)

    def _req(self, url: str, convert: Callable[[Any], Any]) -> Any:
        if self.directory is None:
            base = os.environ.get(BASE_URL_ENV, BASE_URL)
            full_url = f"{base}/{url}"
            log.debug("http request: GET %s", full_url)
            response = requests.get(full_url, timeout=_TIMEOUT)
            response.raise_for_status()
            return json_annotated(response, convert)

        path = self.directory / "v1" / url
        contents = path.read_bytes()
        try:
            return convert(json.loads(contents))
        except (ValueError, KeyError, TypeError, AttributeError) as err:
            raise DeserializeError(f"cannot deserialize {path}: {err}") from err