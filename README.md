# teamsync

This package keeps Zulip user groups and stream memberships in line with the
team data published by a team database.

It reads the ground-truth data from one of two places: the published REST
API, or a directory of prebuilt JSON files. It then compares that data with
what Zulip currently holds and works out the changes that bring Zulip up to
date.

## Installation

```
pip install teamsync
```

## Reading team data

```python
from teamsync.team_api import TeamApi

api = TeamApi.production()          # uses TEAM_DATA_BASE_URL if set
teams = api.get_teams()             # list of team objects
repos = api.get_repos()             # all repositories, flattened across orgs
lists = api.get_lists()

local = TeamApi.prebuilt("build/static-api")   # reads build/static-api/v1/*.json
groups = local.get_zulip_groups()
streams = local.get_zulip_streams()
```

The data comes back as plain decoded JSON: dicts and lists.

A payload that cannot be decoded raises `teamsync.utils.DeserializeError`. When the payload was fetched over HTTP, the error message includes the response body.

## Syncing Zulip

```python
from teamsync.team_api import TeamApi
from teamsync.zulip.sync import SyncZulip

sync = SyncZulip("bot@example.com", "token", TeamApi.production(), dry_run=True)
diff = sync.diff_all()
if not diff.is_empty():
    print(diff)
    diff.apply(sync)
```

`diff_all()` returns a `Diff` that holds two lists:

- **User group changes.** A `CreateUserGroupDiff` for a group missing on Zulip, or an `UpdateUserGroupDiff` for members to add or remove.
- **Stream changes.** An `UpdateStreamMembershipDiff` for each stream whose members differ.

Members are only removed from private (invite-only) streams. On public streams, members are only added.

Each private stream always includes the account that owns the Zulip token, user id 494485, so that this account can keep managing the stream's members.

Every stream named in the team data must already exist on Zulip. If one does not, `teamsync.zulip.api.ZulipError` is raised.

With `dry_run=True`, the changes are logged but no modifying requests are sent to Zulip. Read requests are still made.

## The Zulip client

`teamsync.zulip.api.ZulipApi(username, token, dry_run)` exposes the individual Zulip calls:

- `get_users`
- `get_user_groups`
- `get_streams`
- `get_stream_members`
- `is_stream_private`
- `create_user_group` (does nothing if the group already exists)
- `update_user_group_members`
- `update_stream_membership`

The results are `ZulipUser`, `ZulipUserGroup` and `ZulipStream` dataclasses, or lists of user ids. A "bad request" reply to a membership update is logged as a warning rather than raised.

## What it does not do

The package has no command-line program. You drive the synchronisation from Python as shown above.

It does not produce or validate the team data itself.

It only synchronises Zulip. It has no support for other services, such as GitHub or mailing lists.

It does not create streams.

## Running the tests

```
pip install -e ".[test]"
pytest
```