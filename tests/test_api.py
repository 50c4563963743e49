import json
from urllib.parse import parse_qs

import pytest
import requests
import responses

from teamsync.zulip.api import (
    ZULIP_BASE_URL,
    ZulipApi,
    ZulipError,
    ZulipStream,
    ZulipUser,
    ZulipUserGroup,
    serialize_as_array,
)

USERNAME = "bot@example.com"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def api():
    return ZulipApi(USERNAME, "token", False)


@pytest.fixture
def dry_api():
    return ZulipApi(USERNAME, "token", True)


def _form(call):
    body = call.request.body
    if isinstance(body, bytes):
        body = body.decode()
    return {k: v[0] for k, v in parse_qs(body, keep_blank_values=True).items()}


def test_serialize_as_array_is_compact():
    assert serialize_as_array([1, 2, 3]) == "[1,2,3]"
    assert serialize_as_array([]) == "[]"


def test_serialize_as_array_round_trips():
    ids = [494485, 7, 0]
    assert json.loads(serialize_as_array(ids)) == ids


def test_user_from_json_reads_delivery_email():
    user = ZulipUser.from_json({"delivery_email": "a@example.com", "user_id": 5})
    assert user == ZulipUser(email="a@example.com", user_id=5)


def test_user_from_json_hidden_email():
    assert ZulipUser.from_json({"user_id": 9}).email is None
    assert ZulipUser.from_json({"delivery_email": None, "user_id": 9}).user_id == 9


def test_group_and_stream_from_json():
    group = ZulipUserGroup.from_json({"id": 3, "name": "T-x", "members": [2, 1]})
    stream = ZulipStream.from_json({"stream_id": 4, "name": "s", "invite_only": True})
    assert group == ZulipUserGroup(id=3, name="T-x", members=[2, 1])
    assert stream == ZulipStream(stream_id=4, name="s", invite_only=True)


def test_from_json_missing_key_raises():
    with pytest.raises(KeyError):
        ZulipStream.from_json({"stream_id": 4, "name": "s"})


def test_repr_hides_token(api):
    assert "token" not in repr(api).replace("ZulipApi", "")
    assert USERNAME in repr(api)


def test_create_user_group_dry_run_sends_nothing(mocked, dry_api):
    result = dry_api.create_user_group("T-x", "desc", [1, 2])
    assert result is None
    assert len(mocked.calls) == 0


def test_create_user_group_posts_form(mocked, api):
    mocked.post(f"{ZULIP_BASE_URL}/user_groups/create", json={"result": "success"})
    api.create_user_group("T-x", "The T-x team", [1, 2])
    assert len(mocked.calls) == 1
    call = mocked.calls[0]
    assert _form(call) == {
        "name": "T-x",
        "description": "The T-x team",
        "members": serialize_as_array([1, 2]),
    }
    assert call.request.headers["Authorization"].startswith("Basic ")


def test_create_user_group_already_exists_is_ignored(mocked, api):
    mocked.post(
        f"{ZULIP_BASE_URL}/user_groups/create",
        status=400,
        json={"msg": "User group 'T-x' already exists."},
    )
    assert api.create_user_group("T-x", "d", [1]) is None
    assert len(mocked.calls) == 1


def test_create_user_group_other_bad_request_raises(mocked, api):
    mocked.post(
        f"{ZULIP_BASE_URL}/user_groups/create", status=400, json={"msg": "Invalid user"}
    )
    with pytest.raises(ZulipError, match="got 400 when creating user group T-x"):
        api.create_user_group("T-x", "d", [1])


def test_create_user_group_bad_request_without_msg_raises(mocked, api):
    mocked.post(f"{ZULIP_BASE_URL}/user_groups/create", status=400, json={"code": 1})
    with pytest.raises(ZulipError):
        api.create_user_group("T-x", "d", [1])


def test_create_user_group_server_error_raises(mocked, api):
    mocked.post(f"{ZULIP_BASE_URL}/user_groups/create", status=500)
    with pytest.raises(requests.HTTPError):
        api.create_user_group("T-x", "d", [1])


def test_get_user_groups(mocked, api):
    mocked.get(
        f"{ZULIP_BASE_URL}/user_groups",
        json={"user_groups": [{"id": 1, "name": "a", "members": [3, 2]}]},
    )
    assert api.get_user_groups() == [ZulipUserGroup(id=1, name="a", members=[3, 2])]


def test_get_streams_sends_flags(mocked, api):
    mocked.get(
        f"{ZULIP_BASE_URL}/streams",
        json={"streams": [{"stream_id": 8, "name": "general", "invite_only": False}]},
    )
    assert api.get_streams() == [ZulipStream(stream_id=8, name="general", invite_only=False)]
    assert _form(mocked.calls[0]) == {
        "include_web_public": "true",
        "include_all_active": "true",
    }


def test_get_stream_members(mocked, api):
    mocked.get(f"{ZULIP_BASE_URL}/streams/42/members", json={"subscribers": [5, 6]})
    assert api.get_stream_members(42) == [5, 6]


def test_get_users(mocked, api):
    mocked.get(
        f"{ZULIP_BASE_URL}/users",
        json={"members": [{"delivery_email": "u@example.com", "user_id": 11}, {"user_id": 12}]},
    )
    assert api.get_users() == [
        ZulipUser(email="u@example.com", user_id=11),
        ZulipUser(email=None, user_id=12),
    ]


def test_get_users_error_status_raises(mocked, api):
    mocked.get(f"{ZULIP_BASE_URL}/users", status=401)
    with pytest.raises(requests.HTTPError):
        api.get_users()


@pytest.mark.parametrize("invite_only", [True, False])
def test_is_stream_private(mocked, api, invite_only):
    mocked.get(
        f"{ZULIP_BASE_URL}/streams/42",
        json={"stream": {"stream_id": 42, "name": "s", "invite_only": invite_only}},
    )
    assert api.is_stream_private(42) is invite_only


def test_is_stream_private_wraps_errors(mocked, api):
    mocked.get(f"{ZULIP_BASE_URL}/streams/42", status=404)
    with pytest.raises(ZulipError, match="Failed to determine if stream with id 42 is private"):
        api.is_stream_private(42)


def test_update_user_group_members_nothing_to_do(mocked, api):
    result = api.update_user_group_members(7, [], [])
    assert result is None
    assert len(mocked.calls) == 0


def test_update_user_group_members_dry_run(mocked, dry_api):
    result = dry_api.update_user_group_members(7, [1], [2])
    assert result is None
    assert len(mocked.calls) == 0


def test_update_user_group_members_posts_form(mocked, api):
    mocked.post(f"{ZULIP_BASE_URL}/user_groups/7/members", json={})
    api.update_user_group_members(7, [1, 2], [])
    assert _form(mocked.calls[0]) == {
        "add": serialize_as_array([1, 2]),
        "delete": serialize_as_array([]),
    }


def test_update_user_group_members_bad_request_is_tolerated(mocked, api):
    mocked.post(f"{ZULIP_BASE_URL}/user_groups/7/members", status=400, body="bad")
    assert api.update_user_group_members(7, [1], [2]) is None
    assert len(mocked.calls) == 1


def test_update_user_group_members_server_error_raises(mocked, api):
    mocked.post(f"{ZULIP_BASE_URL}/user_groups/7/members", status=503)
    with pytest.raises(requests.HTTPError):
        api.update_user_group_members(7, [1], [])


def test_update_stream_membership_nothing_to_do(mocked, api):
    result = api.update_stream_membership("general", 8, [], [])
    assert result is None
    assert len(mocked.calls) == 0


def test_update_stream_membership_dry_run(mocked, dry_api):
    result = dry_api.update_stream_membership("general", 8, [1], [2])
    assert result is None
    assert len(mocked.calls) == 0


def test_update_stream_membership_adds_then_removes(mocked, api):
    url = f"{ZULIP_BASE_URL}/users/me/subscriptions"
    mocked.post(url, json={})
    mocked.delete(url, json={})
    api.update_stream_membership("general", 8, [1, 2], [3])
    assert [call.request.method for call in mocked.calls] == ["POST", "DELETE"]
    added, removed = (_form(call) for call in mocked.calls)
    assert json.loads(added["subscriptions"]) == [{"name": "general"}]
    assert added["principals"] == serialize_as_array([1, 2])
    assert json.loads(removed["subscriptions"]) == [{"name": "general"}]
    assert removed["principals"] == serialize_as_array([3])


def test_update_stream_membership_only_removal(mocked, api):
    mocked.delete(f"{ZULIP_BASE_URL}/users/me/subscriptions", json={})
    result = api.update_stream_membership("private", 9, [], [4])
    assert result is None
    assert [call.request.method for call in mocked.calls] == ["DELETE"]
    assert _form(mocked.calls[0])["principals"] == "[4]"


def test_update_stream_membership_bad_request_is_tolerated(mocked, api):
    url = f"{ZULIP_BASE_URL}/users/me/subscriptions"
    mocked.post(url, status=400, body="bad")
    mocked.delete(url, json={})
    result = api.update_stream_membership("general", 8, [1], [2])
    assert result is None
    assert [call.request.method for call in mocked.calls] == ["POST", "DELETE"]


def test_update_stream_membership_server_error_raises(mocked, api):
    mocked.post(f"{ZULIP_BASE_URL}/users/me/subscriptions", status=500)
    with pytest.raises(requests.HTTPError):
        api.update_stream_membership("general", 8, [1], [])