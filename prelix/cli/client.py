"""API client for the Prelix REST API."""

from __future__ import annotations

from typing import Any

import httpx


class PrelixClient:
    """HTTP client wrapping the Prelix API endpoints."""

    def __init__(self, base_url: str = "http://localhost:8400", auth_token: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._client = httpx.Client(base_url=f"{self.base_url}/api/v1", headers=headers, timeout=90)

    def _handle(self, resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                body = resp.json()
                detail = body.get("message") or body.get("detail") or resp.text
            except ValueError:
                detail = resp.text
            raise RuntimeError(f"API error ({resp.status_code}): {detail}")
        if resp.status_code == 204:
            return None
        return resp.json()

    # --- Workflow ---

    def workflow(self, action: str, **fields: Any) -> dict:
        payload = {"action": action, **{k: v for k, v in fields.items() if v is not None}}
        return self._handle(self._client.post("/workflow", json=payload))

    # --- Sessions ---

    def list_sessions(self) -> list[dict]:
        return self._handle(self._client.get("/sessions"))

    def messages(self, session_id: str) -> list[dict]:
        return self._handle(self._client.get(f"/sessions/{session_id}/messages"))

    def state(self, session_id: str) -> dict:
        return self._handle(self._client.get(f"/sessions/{session_id}/state"))

    # --- Catalogue ---

    def list_models(self) -> list[dict]:
        return self._handle(self._client.get("/models"))

    def list_templates(self, **params: Any) -> list[dict]:
        return self._handle(self._client.get("/templates", params=params))
