"""Shared fixtures: a small document store and helpers for driving the loop."""

import asyncio

import pytest

from activity_dashboard.storage import DocumentStore

USERS = [
    {"id": "u1", "email": "u1@example.com", "displayName": "User One"},
    {"id": "u2", "displayName": "Bee"},
    {"id": "u3"},
]

INTERACTIONS = {
    "u1": [
        {"interactionId": "i1", "activity": "view", "time": 3, "content": '{"watched": 12}', "videoId": "v1"},
        {"interactionId": "i2", "activity": "like", "time": 1, "content": "liked it", "videoId": "v2"},
    ],
    "u2": [
        {"interactionId": "i3", "activity": "view", "time": "2024-05-01T10:00:00Z", "content": "{not json", "videoId": "v1"},
        {"interactionId": "i4", "activity": "share", "time": "2024-05-02T10:00:00Z", "content": "to a friend", "videoId": "v3"},
    ],
}

VIDEOS = [
    {"id": "v1", "title": "A", "category": "Kids", "author": {"name": "Ann"}},
    {"id": "v3", "title": "C", "category": ""},
    {"id": "v4", "title": "D", "category": "Sports"},
]


@pytest.fixture()
def store():
    return DocumentStore(users=USERS, interactions=INTERACTIONS, videos=VIDEOS)


async def settle(rounds: int = 10):
    """Let call_soon callbacks and freshly created tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
