from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
import urllib.error
import urllib.request
import uuid
from dataclasses import dataclass, field
from typing import Any

from app.hse.errors import ExternalProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureOrder:
    """What we hand the signing provider for one signer of one version."""

    document_code: str
    document_title: str
    version_label: str
    file_path: str
    signer_user_id: int
    signer_name: str
    signer_position: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class SigningProvider:
    name = "base"

    def create_signing_request(self, order: SignatureOrder) -> str:
        """Submit one signature order; returns the provider's request id."""
        raise NotImplementedError


@dataclass
class LocalSigningProvider(SigningProvider):
    """
    In-process provider for development and tests. Orders are kept in ``sent``;
    ``fail_next`` makes the next N requests raise like an unreachable provider.
    """

    name = "local"
    sent: list[SignatureOrder] = field(default_factory=list)
    fail_next: int = 0

    def create_signing_request(self, order: SignatureOrder) -> str:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise ExternalProviderError("Local signing provider unavailable.", provider=self.name)
        self.sent.append(order)
        return f"local-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class HttpSigningProvider(SigningProvider):
    base_url: str
    api_key: str
    timeout_seconds: int = 30
    retries: int = 2

    name = "http"

    def request_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path
        data = json.dumps(payload, default=str).encode("utf-8")

        last_err: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                req = urllib.request.Request(url, data=data, method="POST")
                req.add_header("Authorization", f"Bearer {self.api_key}")
                req.add_header("Content-Type", "application/json")
                req.add_header("Accept", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    try:
                        return json.loads(raw.decode("utf-8"))
                    except Exception as e:
                        raise ExternalProviderError(f"Invalid JSON from signing provider ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429 or e.code >= 500:
                    logger.warning("Signing provider returned HTTP %s (attempt %s); retrying", e.code, attempt + 1)
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = e
                    continue
                try:
                    body = e.read().decode("utf-8", errors="ignore")
                except Exception:
                    body = ""
                raise ExternalProviderError(f"HTTP {e.code} from signing provider: {body[:300]}", http_code=e.code) from e
            except ExternalProviderError:
                raise
            except Exception as e:
                last_err = e
                logger.warning("Signing provider request failed (attempt %s): %s", attempt + 1, e)
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise ExternalProviderError(f"Signing provider request failed after retries: {last_err}")

    def create_signing_request(self, order: SignatureOrder) -> str:
        j = self.request_json(
            "/signature-requests",
            {
                "document_code": order.document_code,
                "title": order.document_title,
                "version": order.version_label,
                "file_path": order.file_path,
                "signer": {
                    "id": order.signer_user_id,
                    "name": order.signer_name,
                    "position": order.signer_position,
                },
                "metadata": order.metadata,
            },
        )
        request_id = j.get("request_id") or j.get("id")
        if not request_id:
            raise ExternalProviderError("Signing provider response has no request id.", response_keys=sorted(j))
        return str(request_id)


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_callback_signature(secret: str | None, body: bytes, signature: str | None) -> bool:
    """HMAC-SHA256 hex digest of the raw body. No secret configured means no check."""
    if not secret:
        return True
    if not signature:
        return False
    sig = signature.strip()
    if sig.lower().startswith("sha256="):
        sig = sig[len("sha256="):]
    return hmac.compare_digest(sign_payload(secret, body), sig.lower())


def provider_from_config(config: dict) -> SigningProvider:
    backend = (config.get("ESIGN_PROVIDER") or "local").strip().lower()
    if backend == "http":
        url = (config.get("ESIGN_PROVIDER_URL") or "").strip()
        key = (config.get("ESIGN_API_KEY") or "").strip()
        if not url or not key:
            raise RuntimeError("ESIGN_PROVIDER=http requires ESIGN_PROVIDER_URL and ESIGN_API_KEY.")
        return HttpSigningProvider(base_url=url, api_key=key)
    return LocalSigningProvider()
