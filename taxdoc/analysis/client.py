"""
Azure AI Content Understanding — async REST client

Two calls, both thin wrappers over httpx:

  submit(document_url)
      POST <analyzer endpoint>?api-version=…&stringEncoding=utf16&enableJailbreakDetection=false
      body {"url": document_url}
      → AnalysisJob(operation_location=<Operation-Location header>, response_body=<text>)

  get_job_status(operation_location)
      GET <operation_location> (api-version appended when the URI omits it)
      → raw JSON text

Non-2xx responses raise httpx.HTTPStatusError; network failures raise
httpx.RequestError. Both are httpx.HTTPError, which is what the pipeline
classifies as ContentUnderstandingApiError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from taxdoc.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"
OPERATION_LOCATION_HEADER = "Operation-Location"


@dataclass(frozen=True)
class AnalysisJob:
    """Handle for an in-flight analysis. operation_location may be empty."""
    operation_location: str
    response_body:      str


class ContentUnderstandingClient:
    """
    One instance per worker is fine; each call opens its own AsyncClient so
    the object carries no connection state between documents.

    `transport` exists for tests (httpx.MockTransport) and proxies.
    """

    def __init__(
        self,
        endpoint:    str,
        api_key:     str,
        api_version: str = "2025-05-01-preview",
        user_agent:  str = "cu-sample-code",
        timeout:     float = 30.0,
        transport:   httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint    = endpoint
        self._api_key     = api_key
        self._api_version = api_version
        self._user_agent  = user_agent
        self._timeout     = timeout
        self._transport   = transport

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "ContentUnderstandingClient":
        cfg = cfg or default_settings
        return cls(
            endpoint=cfg.content_understanding_endpoint,
            api_key=cfg.content_understanding_api_key,
            api_version=cfg.content_understanding_api_version,
            user_agent=cfg.content_understanding_user_agent,
            timeout=cfg.http_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        return {
            SUBSCRIPTION_KEY_HEADER: self._api_key,
            "x-ms-useragent":        self._user_agent,
        }

    def status_url(self, operation_location: str) -> httpx.URL:
        """Append the default api-version unless the handle already carries one."""
        url = httpx.URL(operation_location)
        if not url.params.get("api-version"):
            url = url.copy_set_param("api-version", self._api_version)
        return url

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def submit(self, document_url: str) -> AnalysisJob:
        params = {
            "api-version":              self._api_version,
            "stringEncoding":           "utf16",
            "enableJailbreakDetection": "false",
        }
        async with self._http() as http:
            resp = await http.post(
                self._endpoint,
                params=params,
                headers=self._headers(),
                json={"url": document_url},
            )
            resp.raise_for_status()

        job = AnalysisJob(
            operation_location=resp.headers.get(OPERATION_LOCATION_HEADER, ""),
            response_body=resp.text,
        )
        logger.info(
            "Analysis submitted | status=%d operation_location=%s",
            resp.status_code, job.operation_location or "-",
        )
        logger.debug("Analysis submit body | %s", job.response_body)
        return job

    async def get_job_status(self, operation_location: str) -> str:
        headers = {**self._headers(), "Accept": "application/json"}
        async with self._http() as http:
            resp = await http.get(self.status_url(operation_location), headers=headers)
            resp.raise_for_status()
        return resp.text
