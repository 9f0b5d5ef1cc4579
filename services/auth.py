import hashlib
import hmac

from fastapi import Header, HTTPException

from core.settings import settings


async def require_api_key(x_changelog_api_key: str | None = Header(default=None)):
    """Guards the ingest, regenerate, retry and release-sync routes.

    Open when CHANGELOG_API_KEY is unset; otherwise callers must send it as
    X-Changelog-Api-Key.
    """
    if not settings.changelog_api_key:
        return
    if x_changelog_api_key != settings.changelog_api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


def verify_github_signature(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check X-Hub-Signature-256. Verification is skipped when no secret is configured."""
    if not secret:
        return True
    if not signature:
        return False
    digest = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, digest)
