from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import requests
from google.cloud import secretmanager

from payables.errors import DependencyFailure
from payables.models import JournalEntryRef, JournalEntryRequest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


def _get_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value.strip() if value else None


def _get_api_token() -> Optional[str]:
    secret_name = _get_env("JOURNAL_TOKEN_SECRET_NAME")
    if secret_name:
        client = secretmanager.SecretManagerServiceClient()
        version = client.access_secret_version(name=f"{secret_name}/versions/latest")
        return version.payload.data.decode("utf-8").strip()
    return _get_env("JOURNAL_API_TOKEN")


def _journal_headers(access_token: Optional[str]) -> Dict[str, str]:
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def build_journal_payload(entry: JournalEntryRequest, actor_id: str) -> Dict[str, Any]:
    body = entry.model_dump(mode="json")
    body["lines"] = [
        dict(line, line_number=index) for index, line in enumerate(body["lines"], start=1)
    ]
    body["entry_type"] = "standard"
    body["status"] = "draft"
    body["total_debit"] = entry.total_debit
    body["total_credit"] = entry.total_debit
    return {"journal_entry": body, "created_by": actor_id}


class HttpJournalBridge:
    """Posts payment journal entries to the ledger service over HTTP."""

    def __init__(self, api_base: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT) -> None:
        self._api_base = (api_base or _get_env("JOURNAL_API_BASE") or "").rstrip("/")
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._api_base)

    def create_journal_entry(self, entry: JournalEntryRequest, actor_id: str) -> JournalEntryRef:
        if not self._api_base:
            raise RuntimeError("Missing journal API configuration")

        try:
            resp = requests.post(
                f"{self._api_base}/journal_entries",
                headers=_journal_headers(_get_api_token()),
                json=build_journal_payload(entry, actor_id),
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise DependencyFailure(f"Journal API request failed: {exc}") from exc

        if isinstance(data, dict) and isinstance(data.get("journal_entry"), dict):
            data = data["journal_entry"]

        entry_id = data.get("id") if isinstance(data, dict) else None
        if not entry_id:
            raise DependencyFailure("Journal API response has no entry id")

        entry_number = data.get("entry_number") or data.get("entryNumber") or ""
        logger.info("Journal entry created id: %s", entry_id)
        return JournalEntryRef(id=str(entry_id), entry_number=str(entry_number))

    def check_health(self) -> Dict[str, Any]:
        if not self._api_base:
            return {"status": "disabled"}
        try:
            resp = requests.get(
                f"{self._api_base}/health",
                headers=_journal_headers(_get_api_token()),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            return {"status": "error", "message": str(exc)}
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {"raw": resp.text[:2000]}
            return {"status": "error", "http_status": resp.status_code, "body": body}
        return {"status": "ok"}
