"""Client for the parts of the Zulip REST API used by the synchronisation."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import requests

log = logging.getLogger(__name__)

ZULIP_BASE_URL = "https://rust-lang.zulipchat.com/api/v1"
_TIMEOUT = 30


class ZulipError(Exception):
    """A Zulip request that failed in a way the caller must hear about."""


def serialize_as_array(items: Iterable[int]) -> str:
    """Serialize numbers as a compact JSON array."""
    return json.dumps([int(item) for item in items], separators=(",", ":"))


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


@dataclass(frozen=True)
class ZulipUser:
    """A Zulip user; ``email`` is None when the user hides it."""

    email: str | None
    user_id: int

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> ZulipUser:
        return cls(email=data.get("delivery_email"), user_id=int(data["user_id"]))


@dataclass
class ZulipUserGroup:
    """A Zulip user group and the ids of its members."""

    id: int
    name: str
    members: list[int] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> ZulipUserGroup:
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            members=[int(member) for member in data["members"]],
        )


@dataclass(frozen=True)
class ZulipStream:
    """A Zulip stream."""

    stream_id: int
    name: str
    invite_only: bool

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> ZulipStream:
        return cls(
            stream_id=int(data["stream_id"]),
            name=str(data["name"]),
            invite_only=bool(data["invite_only"]),
        )


class ZulipApi:
    """Authenticated access to the Zulip API; writes are skipped in dry-run mode."""

    def __init__(self, username: str, token: str, dry_run: bool) -> None:
        self.username = username
        self._token = token
        self.dry_run = dry_run
        self._session = requests.Session()

    def __repr__(self) -> str:
        return f"ZulipApi(username={self.username!r}, dry_run={self.dry_run!r})"

    def create_user_group(
        self, user_group_name: str, description: str, member_ids: Iterable[int]
    ) -> None:
        """Create a user group; does nothing if it already exists."""
        member_ids = list(member_ids)
        log.info(
            "creating Zulip user group '%s' with description '%s' and member ids: %s",
            user_group_name,
            description,
            member_ids,
        )
        if self.dry_run:
            return

        form = {
            "name": user_group_name,
            "description": description,
            "members": serialize_as_array(member_ids),
        }
        response = self._req("POST", "/user_groups/create", form)
        if response.status_code == 400:
            body = response.json()
            message = f"got 400 when creating user group {user_group_name}: {_compact(body)}"
            error = body.get("msg") if isinstance(body, dict) else None
            if not isinstance(error, str):
                raise ZulipError(message)
            if "already exists" in error:
                log.debug("Zulip user group '%s' already existed", user_group_name)
                return
            raise ZulipError(message)

        response.raise_for_status()

    def get_user_groups(self) -> list[ZulipUserGroup]:
        """All user groups of the Zulip instance."""
        data = self._get_json("/user_groups")
        return [ZulipUserGroup.from_json(group) for group in data["user_groups"]]

    def get_streams(self) -> list[ZulipStream]:
        """All streams of the Zulip instance."""
        form = {"include_web_public": "true", "include_all_active": "true"}
        data = self._get_json("/streams", form)
        return [ZulipStream.from_json(stream) for stream in data["streams"]]

    def get_stream_members(self, stream_id: int) -> list[int]:
        """Ids of the users subscribed to a stream."""
        data = self._get_json(f"/streams/{stream_id}/members")
        return [int(member) for member in data["subscribers"]]

    def get_users(self) -> list[ZulipUser]:
        """All users of the Zulip instance."""
        data = self._get_json("/users")
        return [ZulipUser.from_json(member) for member in data["members"]]

    def is_stream_private(self, stream_id: int) -> bool:
        """Whether the stream is invite-only."""
        try:
            stream = self._get_stream(stream_id)
        except (requests.RequestException, ValueError, KeyError, TypeError) as err:
            raise ZulipError(
                f"Failed to determine if stream with id {stream_id} is private"
            ) from err
        return stream.invite_only

    def update_user_group_members(
        self, user_group_id: int, add_ids: Iterable[int], remove_ids: Iterable[int]
    ) -> None:
        """Add and remove members of a user group."""
        add_ids, remove_ids = list(add_ids), list(remove_ids)
        if not add_ids and not remove_ids:
            log.debug(
                "user group %s does not need to have its group members updated",
                user_group_id,
            )
            return

        log.info(
            "updating user group %s by adding %s and removing %s",
            user_group_id,
            add_ids,
            remove_ids,
        )
        if self.dry_run:
            return

        form = {"add": serialize_as_array(add_ids), "delete": serialize_as_array(remove_ids)}
        response = self._req("POST", f"/user_groups/{user_group_id}/members", form)
        if response.status_code == 400:
            log.warning(
                "failed to update group membership with a bad request: %s", response.text
            )
            return
        response.raise_for_status()

    def update_stream_membership(
        self,
        stream_name: str,
        stream_id: int,
        add_ids: Iterable[int],
        remove_ids: Iterable[int],
    ) -> None:
        """Subscribe and unsubscribe users to and from a stream."""
        add_ids, remove_ids = list(add_ids), list(remove_ids)
        if not add_ids and not remove_ids:
            log.debug("stream %s does not need to have its members updated", stream_id)
            return

        log.info(
            "updating stream %s by adding %s and removing %s",
            stream_id,
            add_ids,
            remove_ids,
        )
        if self.dry_run:
            return

        if add_ids:
            self._submit_subscription("POST", stream_name, add_ids)
        if remove_ids:
            self._submit_subscription("DELETE", stream_name, remove_ids)

    def _submit_subscription(self, method: str, stream_name: str, ids: list[int]) -> None:
        form = {
            "subscriptions": json.dumps(
                [{"name": stream_name}], separators=(",", ":"), ensure_ascii=False
            ),
            "principals": serialize_as_array(ids),
        }
        response = self._req(method, "/users/me/subscriptions", form)
        if response.status_code == 400:
            log.warning(
                "failed to update stream membership with a bad request: %s. Sent form: %s",
                response.text,
                form,
            )
            return
        response.raise_for_status()

    def _get_stream(self, stream_id: int) -> ZulipStream:
        return ZulipStream.from_json(self._get_json(f"/streams/{stream_id}")["stream"])

    def _get_json(self, path: str, form: Mapping[str, str] | None = None) -> Any:
        response = self._req("GET", path, form)
        response.raise_for_status()
        return response.json()

    def _req(
        self, method: str, path: str, form: Mapping[str, str] | None = None
    ) -> requests.Response:
        return self._session.request(
            method,
            f"{ZULIP_BASE_URL}{path}",
            auth=(self.username, self._token),
            data=dict(form) if form is not None else None,
            timeout=_TIMEOUT,
        )