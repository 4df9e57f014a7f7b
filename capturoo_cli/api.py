from __future__ import annotations

import codecs
import sys
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type
from urllib.parse import urljoin

import requests

from .config import REQUEST_TIMEOUT
from .errors import (
    APIError,
    BadRequest,
    BucketCodeExists,
    ExportError,
    SentinelAPIError,
    TransportError,
    WebhookCodeExists,
    WebhookResourcesNotFound,
    WebhookURLExists,
)
from .export import iter_json_array
from .models import Account, Bucket, FirebaseConfig, Lead, Webhook

STREAM_CHUNK_SIZE = 64 * 1024

SENTINEL_ERRORS: Dict[str, Type[SentinelAPIError]] = {
    "buckets/bucket-code-exists": BucketCodeExists,
    "webhook/webhook-url-exists": WebhookURLExists,
    "webhook/webhook-code/exists": WebhookCodeExists,
    "webhook/webhook-code-exists": WebhookCodeExists,
    "webhook/webhook-resources-not-found": WebhookResourcesNotFound,
    "bad-request": BadRequest,
}


def error_from_response(resp: requests.Response) -> Exception:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return APIError(resp.status_code, message=resp.reason or "")
    code = body.get("code") or ""
    message = body.get("message") or ""
    sentinel = SENTINEL_ERRORS.get(code)
    if sentinel is not None:
        return sentinel(message or None)
    return APIError(resp.status_code, code=code, message=message)


class ApiClient:
    """Authenticated client for the Capturoo REST API."""

    def __init__(
        self,
        endpoint: str,
        id_token: Optional[str] = None,
        *,
        timeout: float = REQUEST_TIMEOUT,
        debug: bool = False,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.id_token = id_token
        self.timeout = timeout
        self.debug = debug
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        stream: bool = False,
    ) -> requests.Response:
        url = urljoin(self.endpoint + "/", path.lstrip("/"))
        if self.debug:
            print(
                f"HTTP {method} {url} params={params} json_body_present={json_body is not None} "
                f"timeout={self.timeout}",
                file=sys.stderr,
            )
        headers = {"Accept": "application/json"}
        if self.id_token:
            headers["Authorization"] = f"Bearer {self.id_token}"
        if json_body is not None:
            headers["Content-Type"] = "application/json"
        try:
            resp = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
                stream=stream,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if self.debug:
            print(f"HTTP {method} {url} status={resp.status_code}", file=sys.stderr)

        if not 200 <= resp.status_code < 300:
            try:
                raise error_from_response(resp)
            finally:
                resp.close()
        return resp

    def _json(self, resp: requests.Response) -> Dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError as exc:
            raise APIError(resp.status_code, message=f"invalid JSON response: {exc}") from exc
        if not isinstance(payload, dict):
            raise APIError(resp.status_code, message="response body is not a JSON object")
        return payload

    def _list(self, resp: requests.Response) -> List[Dict[str, Any]]:
        items = self._json(resp).get("data") or []
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise APIError(resp.status_code, message="response data is not a list of objects")
        return items

    def auto_conf(self) -> FirebaseConfig:
        payload = self._json(self.request("GET", "/autoconf"))
        try:
            return FirebaseConfig.from_dict(payload["data"]["firebaseConfig"])
        except (KeyError, TypeError) as exc:
            raise APIError(200, message=f"autoconf response missing firebaseConfig: {exc}") from exc

    def sign_in_with_dev_key(self, developer_key: str) -> Tuple[str, Account]:
        resp = self.request("POST", "/signin-with-devkey", json_body={"developerKey": developer_key})
        payload = self._json(resp)
        custom_token = payload.get("customToken")
        account = payload.get("account") or {}
        if not isinstance(custom_token, str) or not custom_token or not isinstance(account, dict):
            raise APIError(resp.status_code, message="sign-in response missing customToken")
        return custom_token, Account.from_dict(account)

    # Buckets

    def create_bucket(self, account_id: str, resource_name: str, bucket_name: str) -> Bucket:
        body = {"accountId": account_id, "resourceName": resource_name, "bucketName": bucket_name}
        return Bucket.from_dict(self._json(self.request("POST", "/buckets", json_body=body)))

    def get_bucket(self, bucket_id: str) -> Bucket:
        return Bucket.from_dict(self._json(self.request("GET", f"/buckets/{bucket_id}")))

    def list_buckets(self, account_id: str) -> List[Bucket]:
        resp = self.request("GET", "/buckets", params={"accountId": account_id})
        return [Bucket.from_dict(item) for item in self._list(resp)]

    def update_bucket(self, bucket_id: str, bucket_name: str) -> Bucket:
        body = {"bucketName": bucket_name}
        return Bucket.from_dict(self._json(self.request("PATCH", f"/buckets/{bucket_id}", json_body=body)))

    def delete_bucket(self, bucket_id: str) -> None:
        self.request("DELETE", f"/buckets/{bucket_id}").close()

    # Webhooks

    def create_webhook(
        self, account_id: str, code: str, url: str, events: List[str], enabled: bool = True
    ) -> Webhook:
        body = {
            "accountId": account_id,
            "webhookCode": code,
            "url": url,
            "events": events,
            "enabled": enabled,
        }
        return Webhook.from_dict(self._json(self.request("POST", "/webhooks", json_body=body)))

    def get_webhook(self, webhook_id: str) -> Webhook:
        return Webhook.from_dict(self._json(self.request("GET", f"/webhooks/{webhook_id}")))

    def list_webhooks(self, account_id: str) -> List[Webhook]:
        resp = self.request("GET", "/webhooks", params={"accountId": account_id})
        return [Webhook.from_dict(item) for item in self._list(resp)]

    def update_webhook(
        self,
        webhook_id: str,
        *,
        events: Optional[List[str]] = None,
        url: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> Webhook:
        body: Dict[str, Any] = {}
        if events is not None:
            body["events"] = events
        if url is not None:
            body["url"] = url
        if enabled is not None:
            body["enabled"] = enabled
        return Webhook.from_dict(self._json(self.request("PATCH", f"/webhooks/{webhook_id}", json_body=body)))

    def delete_webhook(self, webhook_id: str) -> None:
        self.request("DELETE", f"/webhooks/{webhook_id}").close()

    # Leads

    def stream_leads(self, bucket_id: str) -> Iterator[Lead]:
        resp = self.request("GET", "/leads", params={"bucketId": bucket_id}, stream=True)
        try:
            for item in iter_json_array(_decode_chunks(resp), key="data"):
                if not isinstance(item, dict):
                    raise ExportError(f"malformed lead stream: lead {item!r} is not an object")
                yield Lead.from_dict(item)
        except requests.RequestException as exc:
            raise TransportError(f"reading leads for bucket {bucket_id} failed: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise ExportError(f"malformed lead stream: {exc}") from exc
        finally:
            resp.close()


def _decode_chunks(resp: requests.Response) -> Iterator[str]:
    decoder = codecs.getincrementaldecoder("utf-8")()
    for chunk in resp.iter_content(chunk_size=STREAM_CHUNK_SIZE):
        yield decoder.decode(chunk)
    # raises on a multi-byte sequence cut off at the end of the body
    yield decoder.decode(b"", final=True)
