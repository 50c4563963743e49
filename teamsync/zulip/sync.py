"""Computing and applying the differences between the team data and Zulip."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Union

from teamsync.zulip.api import ZulipApi, ZulipError, ZulipStream, ZulipUserGroup

log = logging.getLogger(__name__)

# Id of the `rust-lang-owner` Zulip user, who owns the API token.
RUST_LANG_OWNER_ID = 494485


def _email_map(zulip_api: ZulipApi) -> dict[str, int]:
    return {
        user.email: user.user_id
        for user in zulip_api.get_users()
        if user.email is not None
    }


def _member_id(member: Any, email_map: Mapping[str, int]) -> int | None:
    """Resolve one member entry of the team data to a Zulip user id."""
    email: str | None = None
    if isinstance(member, bool):
        raise ValueError(f"unsupported member definition: {member!r}")
    if isinstance(member, int):
        return member
    if isinstance(member, str):
        email = member
    elif isinstance(member, Mapping):
        for key in ("Id", "id"):
            if key in member:
                return int(member[key])
        for key in ("Email", "email"):
            if key in member:
                email = str(member[key])
                break
    if email is None:
        raise ValueError(f"unsupported member definition: {member!r}")

    user_id = email_map.get(email)
    if user_id is None:
        log.warning("no Zulip id found for '%s'", email)
    return user_id


def _resolve_definitions(
    entries: Mapping[str, Any], email_map: Mapping[str, int]
) -> dict[str, list[int]]:
    definitions = {}
    for name in sorted(entries):
        resolved = (_member_id(member, email_map) for member in entries[name]["members"])
        definitions[name] = [user_id for user_id in resolved if user_id is not None]
    return definitions


def get_user_group_definitions(
    team_api: Any, zulip_api: ZulipApi
) -> dict[str, list[int]]:
    """User group name to the Zulip ids its members should have, sorted by name."""
    email_map = _email_map(zulip_api)
    return _resolve_definitions(team_api.get_zulip_groups()["groups"], email_map)


def get_stream_definitions(team_api: Any, zulip_api: ZulipApi) -> dict[str, list[int]]:
    """Stream name to the Zulip ids its members should have, sorted by name."""
    email_map = _email_map(zulip_api)
    return _resolve_definitions(team_api.get_zulip_streams()["streams"], email_map)


class ZulipController:
    """The state of user groups and streams on Zulip, with access to the API."""

    def __init__(self, zulip_api: ZulipApi) -> None:
        streams = zulip_api.get_streams()
        user_groups = zulip_api.get_user_groups()

        self.stream_ids: dict[str, ZulipStream] = {}
        for stream in streams:
            self.stream_ids[stream.name] = stream
        self.user_group_ids: dict[str, ZulipUserGroup] = {}
        for group in user_groups:
            group.members.sort()  # sorted for better diagnostics
            self.user_group_ids[group.name] = group
        self.zulip_api = zulip_api

    def user_group_id_from_name(self, user_group_name: str) -> int | None:
        group = self.user_group_ids.get(user_group_name)
        return None if group is None else group.id

    def stream_id_from_name(self, stream_name: str) -> int | None:
        stream = self.stream_ids.get(stream_name)
        return None if stream is None else stream.stream_id

    def create_user_group(
        self, user_group_name: str, description: str, member_ids: Iterable[int]
    ) -> None:
        self.zulip_api.create_user_group(user_group_name, description, member_ids)

    def user_group_members_from_name(self, user_group_name: str) -> list[int] | None:
        group = self.user_group_ids.get(user_group_name)
        return None if group is None else list(group.members)

    def stream_members_from_id(self, stream_id: int) -> list[int]:
        return self.zulip_api.get_stream_members(stream_id)

    def is_stream_private(self, stream_id: int) -> bool:
        return self.zulip_api.is_stream_private(stream_id)


def add_rust_lang_owner_to_private_streams(
    stream_definitions: dict[str, list[int]], zulip_controller: ZulipController
) -> None:
    """Put the token owner first in every private stream, so it can manage members."""
    for stream_name, members in stream_definitions.items():
        stream_id = zulip_controller.stream_id_from_name(stream_name)
        if stream_id is None:
            raise ZulipError(
                f"Id of stream '{stream_name}' not found. "
                "The stream probably doesn't exist and sync-team doesn't support "
                "creating it yet. Please create the stream manually and add the "
                "rust-lang-owner user to it."
            )
        if zulip_controller.zulip_api.is_stream_private(stream_id):
            members.insert(0, RUST_LANG_OWNER_ID)


@dataclass
class UpdateStreamMembershipDiff:
    stream_name: str
    stream_id: int
    member_id_additions: list[int]
    member_id_deletions: list[int]

    def apply(self, sync: SyncZulip) -> None:
        sync.zulip_controller.zulip_api.update_stream_membership(
            self.stream_name,
            self.stream_id,
            self.member_id_additions,
            self.member_id_deletions,
        )

    def __str__(self) -> str:
        lines = [
            "📝 Updating stream membership:",
            f"  Name: {self.stream_name}",
            f"  ID: {self.stream_id}",
            "  Members:",
        ]
        lines += [f"    ➕ {member_id}" for member_id in self.member_id_additions]
        lines += [f"    \u2212 {member_id}" for member_id in self.member_id_deletions]
        return "".join(f"{line}\n" for line in lines)


@dataclass
class CreateUserGroupDiff:
    name: str
    description: str
    member_ids: list[int]

    def apply(self, sync: SyncZulip) -> None:
        sync.zulip_controller.create_user_group(
            self.name, self.description, self.member_ids
        )

    def __str__(self) -> str:
        lines = [
            "➕ Creating user group:",
            f"  Name: {self.name}",
            f"  Description: {self.description}",
            "  Members:",
        ]
        lines += [f"    {member_id}" for member_id in self.member_ids]
        return "".join(f"{line}\n" for line in lines)


@dataclass
class UpdateUserGroupDiff:
    name: str
    user_group_id: int
    member_id_additions: list[int]
    member_id_deletions: list[int]

    def apply(self, sync: SyncZulip) -> None:
        sync.zulip_controller.zulip_api.update_user_group_members(
            self.user_group_id, self.member_id_additions, self.member_id_deletions
        )

    def __str__(self) -> str:
        lines = ["📝 Updating user group:", f"  Name: {self.name}", "  Members:"]
        lines += [f"    ➕ {member_id}" for member_id in self.member_id_additions]
        lines += [f"    \u2212 {member_id}" for member_id in self.member_id_deletions]
        return "".join(f"{line}\n" for line in lines)


UserGroupDiff = Union[CreateUserGroupDiff, UpdateUserGroupDiff]


@dataclass
class Diff:
    """All the changes needed to bring Zulip in line with the team data."""

    user_group_diffs: list[UserGroupDiff] = field(default_factory=list)
    stream_membership_diffs: list[UpdateStreamMembershipDiff] = field(default_factory=list)

    def apply(self, sync: SyncZulip) -> None:
        for user_group_diff in self.user_group_diffs:
            user_group_diff.apply(sync)
        for stream_membership_diff in self.stream_membership_diffs:
            stream_membership_diff.apply(sync)

    def is_empty(self) -> bool:
        return not self.user_group_diffs and not self.stream_membership_diffs

    def __str__(self) -> str:
        parts = []
        if self.user_group_diffs:
            parts.append("💻 User Group Diffs:\n")
            parts.extend(str(diff) for diff in self.user_group_diffs)
        if self.stream_membership_diffs:
            parts.append("💻 Stream Membership Diffs:\n")
            parts.extend(str(diff) for diff in self.stream_membership_diffs)
        return "".join(parts)


class SyncZulip:
    """Synchronises Zulip user groups and stream memberships with the team data."""

    def __init__(self, username: str, token: str, team_api: Any, dry_run: bool) -> None:
        zulip_api = ZulipApi(username, token, dry_run)
        stream_definitions = get_stream_definitions(team_api, zulip_api)
        user_group_definitions = get_user_group_definitions(team_api, zulip_api)
        zulip_controller = ZulipController(zulip_api)
        # The token owner is not in the team data but must be in private streams
        # to be able to add and remove their members.
        add_rust_lang_owner_to_private_streams(stream_definitions, zulip_controller)
        self.zulip_controller = zulip_controller
        self.stream_definitions = stream_definitions
        self.user_group_definitions = user_group_definitions

    def diff_all(self) -> Diff:
        stream_membership_diffs = [
            diff
            for name, member_ids in self.stream_definitions.items()
            if (diff := self._diff_stream_membership(name, member_ids)) is not None
        ]
        user_group_diffs = [
            diff
            for name, member_ids in self.user_group_definitions.items()
            if (diff := self._diff_user_group(name, member_ids)) is not None
        ]
        return Diff(
            user_group_diffs=user_group_diffs,
            stream_membership_diffs=stream_membership_diffs,
        )

    def _diff_user_group(
        self, user_group_name: str, member_ids: list[int]
    ) -> UserGroupDiff | None:
        controller = self.zulip_controller
        user_group_id = controller.user_group_id_from_name(user_group_name)
        if user_group_id is None:
            log.debug("no '%s' user group found on Zulip", user_group_name)
            return CreateUserGroupDiff(
                name=user_group_name,
                description=f"The {user_group_name} team (managed by the Team repo)",
                member_ids=list(member_ids),
            )
        log.debug(
            "'%s' user group (%s) already exists on Zulip", user_group_name, user_group_id
        )

        existing_members = controller.user_group_members_from_name(user_group_name) or []
        log.debug(
            "'%s' user group (%s) has members on Zulip %s and needs to have %s",
            user_group_name,
            user_group_id,
            existing_members,
            member_ids,
        )
        add_ids = [i for i in member_ids if i not in existing_members]
        remove_ids = [i for i in existing_members if i not in member_ids]
        if not add_ids and not remove_ids:
            log.debug(
                "'%s' user group (%s) does not need to be updated",
                user_group_name,
                user_group_id,
            )
            return None
        return UpdateUserGroupDiff(
            name=user_group_name,
            user_group_id=user_group_id,
            member_id_additions=add_ids,
            member_id_deletions=remove_ids,
        )

    def _diff_stream_membership(
        self, stream_name: str, member_ids: list[int]
    ) -> UpdateStreamMembershipDiff | None:
        controller = self.zulip_controller
        stream_id = controller.stream_id_from_name(stream_name)
        if stream_id is None:
            log.error("no '%s' user group found on Zulip", stream_name)
            return None
        log.debug("'%s' stream (%s) found on Zulip", stream_name, stream_id)

        is_private = controller.is_stream_private(stream_id)
        existing_members = controller.stream_members_from_id(stream_id)
        log.debug(
            "'%s' stream (%s) has members on Zulip %s and needs to have %s",
            stream_name,
            stream_id,
            existing_members,
            member_ids,
        )
        add_ids = [i for i in member_ids if i not in existing_members]
        remove_ids = (
            [i for i in existing_members if i not in member_ids] if is_private else []
        )
        if not add_ids and not remove_ids:
            log.debug("'%s' stream (%s) does not need to be updated", stream_name, stream_id)
            return None
        return UpdateStreamMembershipDiff(
            stream_name=stream_name,
            stream_id=stream_id,
            member_id_additions=add_ids,
            member_id_deletions=remove_ids,
        )