"""Bluesky (AT Protocol) client.

Covers the three XRPC calls publishing needs: create a session, upload an
image blob, and create a post record. Every call is a single blocking
request; failures raise NetworkError and are never retried.
"""

from __future__ import annotations

import http.client
import json
import logging
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from noat.errors import NetworkError

if TYPE_CHECKING:
    from noat.drafts import Draft

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_URL = "https://bsky.social"
APP_URL = "https://bsky.app"

CREATE_SESSION = "com.atproto.server.createSession"
UPLOAD_BLOB = "com.atproto.repo.uploadBlob"
CREATE_RECORD = "com.atproto.repo.createRecord"

POST_COLLECTION = "app.bsky.feed.post"
IMAGES_EMBED = "app.bsky.embed.images"

_POST_URI_RE = re.compile(rf"^at://([^/]+)/{re.escape(POST_COLLECTION)}/([^/]+)$")


@dataclass
class Session:
    access_jwt: str
    did: str


@dataclass
class PublishResult:
    uri: str
    cid: str


def extract_api_error(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    for key in ("message", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_json_response(status: int, reason: str, body: bytes, context: str) -> dict[str, Any]:
    """Decode an XRPC response body, raising NetworkError on any failure."""
    ok = 200 <= status < 300
    text = body.decode("utf-8", errors="replace")
    parsed: Any = {}
    if text.strip():
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            if ok:
                raise NetworkError(context, f"Could not parse JSON: {exc}", status) from exc

    if not ok:
        message = extract_api_error(parsed) or reason or "request failed"
        raise NetworkError(context, message, status)

    if not isinstance(parsed, dict):
        raise NetworkError(context, "Expected a JSON object", status)
    return parsed


def to_post_url(handle: str, uri: str) -> str:
    """Convert ``at://<did>/app.bsky.feed.post/<rkey>`` to its bsky.app URL."""
    match = _POST_URI_RE.match(uri)
    if match is None:
        raise NetworkError("create record", f'Unexpected post URI "{uri}"')
    return f"{APP_URL}/profile/{handle}/post/{match.group(2)}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BlueskyClient:
    """Client for posting to Bluesky via the AT Protocol."""

    def __init__(
        self,
        service_url: str = DEFAULT_SERVICE_URL,
        urlopen: Callable[..., Any] | None = None,
    ) -> None:
        self.service_url = service_url.strip().rstrip("/")
        self._urlopen = urlopen or urllib.request.urlopen  # Injectable for testing

    def _call(
        self,
        operation: str,
        data: bytes,
        content_type: str,
        context: str,
        session: Session | None = None,
    ) -> dict[str, Any]:
        url = f"{self.service_url}/xrpc/{operation}"
        headers = {"Content-Type": content_type}
        if session is not None:
            headers["Authorization"] = f"Bearer {session.access_jwt}"
        req = urllib.request.Request(url, data=data, headers=headers, method="POST")
        logger.debug("POST %s (%d bytes)", url, len(data))

        try:
            with self._urlopen(req) as resp:
                status, reason, body = resp.status, resp.reason, resp.read()
        except urllib.error.HTTPError as exc:
            status, reason, body = exc.code, str(exc.reason), exc.read() or b""
        except urllib.error.URLError as exc:
            raise NetworkError(context, f"connection error: {exc.reason}") from exc
        except (OSError, http.client.HTTPException) as exc:
            raise NetworkError(context, f"connection error: {exc}") from exc

        return parse_json_response(status, reason, body, context)

    def _post_json(
        self, operation: str, payload: dict[str, Any], context: str, session: Session | None = None,
    ) -> dict[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        return self._call(operation, data, "application/json", context, session)

    def create_session(self, handle: str, password: str) -> Session:
        """Authenticate and create an AT Protocol session."""
        result = self._post_json(
            CREATE_SESSION,
            {"identifier": handle, "password": password},
            "create session",
        )
        access_jwt = result.get("accessJwt")
        did = result.get("did")
        if not isinstance(access_jwt, str) or not access_jwt or not isinstance(did, str) or not did:
            raise NetworkError("create session", 'Session response missing "accessJwt" or "did"')
        return Session(access_jwt=access_jwt, did=did)

    def upload_blob(
        self, session: Session, data: bytes, mime_type: str, context: str = "upload blob",
    ) -> dict[str, Any]:
        """Upload raw image bytes; returns the opaque blob object."""
        result = self._call(UPLOAD_BLOB, data, mime_type, context, session)
        blob = result.get("blob")
        if not isinstance(blob, dict):
            raise NetworkError(context, 'Unexpected uploadBlob response: missing "blob" object')
        return blob

    def create_record(
        self,
        session: Session,
        text: str,
        created_at: str | None = None,
        blob: dict[str, Any] | None = None,
        alt: str = "",
        context: str = "create record",
    ) -> PublishResult:
        """Create an ``app.bsky.feed.post`` record, optionally with one image."""
        record: dict[str, Any] = {
            "$type": POST_COLLECTION,
            "text": text,
            "createdAt": created_at or _now(),
        }
        if blob is not None:
            record["embed"] = {
                "$type": IMAGES_EMBED,
                "images": [{"alt": alt, "image": blob}],
            }

        result = self._post_json(
            CREATE_RECORD,
            {"repo": session.did, "collection": POST_COLLECTION, "record": record},
            context,
            session,
        )
        uri = result.get("uri")
        cid = result.get("cid")
        if not isinstance(uri, str) or not uri or not isinstance(cid, str) or not cid:
            raise NetworkError(context, 'Unexpected createRecord response: missing "uri" or "cid"')
        return PublishResult(uri=uri, cid=cid)

    def publish(self, session: Session, draft: Draft) -> PublishResult:
        """Upload the draft's image, if any, then create its post record."""
        blob = None
        if draft.image is not None:
            blob = self.upload_blob(
                session, draft.image.data, draft.image.mime_type,
                context=f"upload blob for {draft.path}",
            )
        return self.create_record(
            session,
            draft.text,
            blob=blob,
            alt=draft.image.alt if draft.image is not None else "",
            context=f"create record for {draft.path}",
        )
