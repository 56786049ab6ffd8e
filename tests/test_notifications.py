import asyncio
import json

import httpx
import pytest

from examdesk.services import NotificationService
from fakes import profile_doc


@pytest.fixture
def push_settings(test_settings):
    test_settings.PUSH_ENABLED = True
    test_settings.EXPO_PUSH_URL = "https://push.test/send"
    return test_settings


def _client(status_code, sent):
    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(status_code, json={"data": {"status": "ok"}})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_notify_stores_and_pushes(db, push_settings):
    db.seed("profiles", profile_doc(push_token="ExponentPushToken[abc]"))
    sent = []
    notifier = NotificationService(db, push_settings, http_client=_client(200, sent))

    asyncio.run(notifier.notify("student_1", "top_up_approved", "Wallet topped up", "50 added", "/wallet"))

    assert db.notifications.docs[0]["is_read"] is False
    assert sent == [{
        "to": "ExponentPushToken[abc]",
        "sound": "default",
        "title": "Wallet topped up",
        "body": "50 added",
        "data": {"link": "/wallet"},
    }]


def test_failed_push_does_not_fail_notify(db, push_settings):
    db.seed("profiles", profile_doc(push_token="ExponentPushToken[abc]"))
    sent = []
    notifier = NotificationService(db, push_settings, http_client=_client(500, sent))

    notification_id = asyncio.run(notifier.notify("student_1", "info", "Hello", "Body"))

    assert notification_id.startswith("notif_")
    assert len(sent) == 1
    assert len(db.notifications.docs) == 1


def test_no_push_without_token(db, push_settings):
    db.seed("profiles", profile_doc())
    sent = []
    notifier = NotificationService(db, push_settings, http_client=_client(200, sent))

    asyncio.run(notifier.notify("student_1", "info", "Hello", "Body"))
    assert sent == []


def test_list_and_mark_read(db, notifier):
    async def scenario():
        first = await notifier.notify("student_1", "info", "One", "First")
        await notifier.notify("student_1", "info", "Two", "Second")
        await notifier.notify("student_2", "info", "Other", "Not mine")
        marked = await notifier.mark_read(first, "student_1")
        foreign = await notifier.mark_read(first, "student_2")
        return marked, foreign, await notifier.list_for_user("student_1")

    marked, foreign, listing = asyncio.run(scenario())

    assert marked and not foreign
    assert len(listing["notifications"]) == 2
    assert listing["unread_count"] == 1
