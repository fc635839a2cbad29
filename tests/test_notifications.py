"""Notification inbox API tests."""

import pytest

from qahub.services.notification_service import NotificationService

URL = "/api/v1/notifications"


@pytest.fixture()
def inbox(user):
    """Three notifications for the logged-in user, one for somebody else."""
    NotificationService.create(type="test_run.completed", notifiable_id=user["id"], data={"run": 1})
    NotificationService.create(type="test_run.completed", notifiable_id=user["id"], data={"run": 2})
    NotificationService.create(type="comment.mention", notifiable_id=user["id"], data="You were mentioned")
    NotificationService.create(type="comment.mention", notifiable_id=user["id"] + 100)
    return user


class TestNotifications:
    def test_create_via_api(self, client, auth_headers, user):
        res = client.post(URL, json={"type": "digest", "notifiable_id": user["id"], "data": {"count": 3}},
                          headers=auth_headers)
        assert res.status_code == 201
        notif = res.get_json()["data"]
        assert notif["notifiable_type"] == "user"
        assert notif["data"] == {"count": 3}
        assert notif["is_read"] is False

    def test_create_requires_type(self, client, auth_headers, user):
        res = client.post(URL, json={"notifiable_id": user["id"]}, headers=auth_headers)
        assert res.status_code == 400

    def test_list_only_own_inbox(self, client, auth_headers, inbox):
        body = client.get(URL, headers=auth_headers).get_json()
        assert body["pagination"]["total"] == 3
        texts = [n["data"] for n in body["data"]]
        assert "You were mentioned" in texts

    def test_filter_by_type(self, client, auth_headers, inbox):
        body = client.get(f"{URL}?type=comment.mention", headers=auth_headers).get_json()
        assert len(body["data"]) == 1

    def test_stats(self, client, auth_headers, inbox):
        stats = client.get(f"{URL}/stats", headers=auth_headers).get_json()["data"]
        assert stats == {
            "total": 3, "unread": 3, "read": 0,
            "by_type": {"test_run.completed": 2, "comment.mention": 1},
        }

    def test_mark_read_and_unread(self, client, auth_headers, inbox):
        notif = client.get(URL, headers=auth_headers).get_json()["data"][0]
        url = f"{URL}/{notif['id']}"
        res = client.patch(url, json={"read_at": "2024-05-01T10:00:00Z"}, headers=auth_headers)
        assert res.get_json()["data"]["is_read"] is True
        assert client.get(f"{URL}?read=true", headers=auth_headers).get_json()["pagination"]["total"] == 1

        res = client.patch(url, json={"read_at": None}, headers=auth_headers)
        assert res.get_json()["data"]["is_read"] is False

    def test_mark_all_read(self, client, auth_headers, inbox):
        res = client.post(f"{URL}/mark-all-read", headers=auth_headers)
        assert res.get_json()["data"] == {"count": 3}
        assert client.get(f"{URL}?read=false", headers=auth_headers).get_json()["data"] == []

    def test_delete_and_bulk_delete(self, client, auth_headers, inbox):
        ids = [n["id"] for n in client.get(URL, headers=auth_headers).get_json()["data"]]
        assert client.delete(f"{URL}/{ids[0]}", headers=auth_headers).status_code == 200
        res = client.get(f"{URL}/{ids[0]}", headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["error"]["code"] == "NOTIFICATION_NOT_FOUND"

        res = client.delete(f"{URL}/bulk", json={"ids": ids[1:]}, headers=auth_headers)
        assert res.get_json()["data"] == {"count": 2}

    def test_foreign_notification_is_hidden(self, client, auth_headers, inbox):
        foreign = NotificationService.inbox(inbox["id"] + 100).first()
        assert client.get(f"{URL}/{foreign.id}", headers=auth_headers).status_code == 404
        res = client.delete(f"{URL}/bulk", json={"ids": [foreign.id]}, headers=auth_headers)
        assert res.get_json()["data"] == {"count": 0}
