import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from api.main import app
from core.database import get_db
from core.settings import settings
from services.auth import verify_github_signature
from services.commits import get_pipeline
from services.schemas import SaveResult
from helpers import REPO

SECRET = "hook-secret"


class FakePipeline:
    def __init__(self):
        self.batches = []

    async def save_commits(self, events):
        self.batches.append(list(events))
        return [SaveResult(sha=e.sha, status="saved", commit_id=f"id-{e.sha[:7]}") for e in events]


def push_payload(ref="refs/heads/main", repository=REPO, commits=None):
    return {
        "ref": ref,
        "repository": {"full_name": repository},
        "commits": commits
        if commits is not None
        else [
            {
                "id": "a" * 40,
                "message": "feat: add export\n\nDetails",
                "author": {"name": "Dana", "email": "dana@example.com"},
                "url": f"https://github.com/{REPO}/commit/{'a' * 40}",
                "timestamp": "2024-05-01T12:00:00+02:00",
                "distinct": True,
            },
            {
                "id": "b" * 40,
                "message": "Merge branch 'feature'",
                "author": {"name": "Dana", "email": "dana@example.com"},
                "url": f"https://github.com/{REPO}/commit/{'b' * 40}",
                "timestamp": "2024-05-01T12:05:00+02:00",
                "distinct": False,
            },
        ],
    }


def sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def pipeline(monkeypatch):
    monkeypatch.setattr(settings, "github_repository", REPO)
    monkeypatch.setattr(settings, "github_webhook_secret", SECRET)
    monkeypatch.setattr(settings, "changelog_api_key", None)
    fake = FakePipeline()
    app.dependency_overrides[get_pipeline] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


def post_webhook(payload, signature=None):
    body = json.dumps(payload).encode()
    headers = {"content-type": "application/json", "x-hub-signature-256": signature or sign(body)}
    return TestClient(app).post("/webhook/github", content=body, headers=headers)


def test_push_to_tracked_branch_ingests_distinct_commits(pipeline):
    resp = post_webhook(push_payload())

    assert resp.status_code == 200
    data = resp.json()
    assert data["processed"] == 1
    assert data["results"][0]["status"] == "saved"
    [event] = pipeline.batches[0]
    assert event.sha == "a" * 40
    assert event.author_email == "dana@example.com"
    assert event.repository == REPO
    assert event.timestamp.utcoffset().total_seconds() == 7200


def test_invalid_signature_is_rejected(pipeline):
    resp = post_webhook(push_payload(), signature="sha256=deadbeef")
    assert resp.status_code == 401
    assert pipeline.batches == []


@pytest.mark.parametrize(
    "payload",
    [
        {"zen": "Keep it logically awesome.", "hook_id": 1},
        push_payload(ref="refs/heads/feature"),
        push_payload(repository="acme/other"),
        push_payload(commits=[]),
    ],
)
def test_irrelevant_events_are_ignored(pipeline, payload):
    resp = post_webhook(payload)
    assert resp.status_code == 200
    assert "processed" not in resp.json()
    assert pipeline.batches == []


@pytest.mark.parametrize("missing", ["id", "timestamp"])
def test_push_with_malformed_commit_is_rejected(pipeline, missing):
    payload = push_payload()
    del payload["commits"][0][missing]
    resp = post_webhook(payload)
    assert resp.status_code == 400
    assert pipeline.batches == []


def test_push_with_unparsable_timestamp_is_rejected(pipeline):
    payload = push_payload()
    payload["commits"][0]["timestamp"] = "yesterday-ish"
    assert post_webhook(payload).status_code == 400
    assert pipeline.batches == []


def test_master_branch_is_tracked_too(pipeline):
    resp = post_webhook(push_payload(ref="refs/heads/master"))
    assert resp.json()["processed"] == 1


def test_signature_check_skipped_without_secret():
    assert verify_github_signature(b"{}", None, None) is True
    assert verify_github_signature(b"{}", None, SECRET) is False
    assert verify_github_signature(b"{}", sign(b"{}"), SECRET) is True


def test_commit_listing_rejects_bad_cursor():
    app.dependency_overrides[get_db] = lambda: None
    try:
        resp = TestClient(app).get("/commits", params={"cursor": "garbage"})
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 400
