#!/usr/bin/env python3
"""
connection.py

MailChimp 3.0 REST client used by ListServiceFacade.

One MailchimpConnection owns one requests.Session authenticated with the
account API key. Every method issues blocking calls and returns the decoded
JSON body (or a small dict such as {"complete": True} for endpoints that
answer 204). Any error response is raised as a MailchimpError subclass; the
facade is the only caller expected to catch them.
"""

import hashlib
import logging
import uuid
from typing import Any, Dict, List, Optional

import requests

from . import config
from .errors import (
    MailchimpError, TransportError, ResourceNotFoundError, ListDoesNotExistError,
    InvalidOptionError, InvalidSegmentError, LIST_DOES_NOT_EXIST, NO_INTEREST_GROUPINGS
)

logger = logging.getLogger(__name__)

# Largest "count" the API accepts for sub-resources (merge fields, interests, folders...)
MAX_SUB_RESOURCE_COUNT = 1000


def calculate_subscriber_hash(email: str) -> str:
    """MD5 hash of the lowercase email, as Mailchimp expects in member URLs."""
    return hashlib.md5(email.lower().encode()).hexdigest()


class MailchimpConnection:
    """Manages MailChimp API calls for a single account"""

    def __init__(self, api_key: str, options: Optional[Dict[str, Any]] = None):
        """Initialize the connection from an API key and optional user options"""
        options = dict(options or {})

        self.api_key = api_key
        self.timeout = float(options.get("timeout", config.MAILCHIMP_TIMEOUT))
        self.data_center = options.get("data_center") or config.get_mailchimp_datacenter(api_key)
        self.base_url = (
            options.get("base_url") or f"https://{self.data_center}.api.mailchimp.com/3.0"
        ).rstrip('/')

        self.session = requests.Session()
        self.session.auth = ("anystring", api_key)
        self.session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': options.get("user_agent", config.MAILCHIMP_USER_AGENT)
        })

    def __repr__(self) -> str:
        return f"<MailchimpConnection {self.base_url}>"

    def __enter__(self) -> "MailchimpConnection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    # ─── Transport ──────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                 payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(method, url, params=params, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {url} returned a non-JSON body", status=response.status_code) from e

    @staticmethod
    def _error_from_response(response: requests.Response) -> MailchimpError:
        """Translate an RFC 7807 problem document into a MailchimpError."""
        status = response.status_code
        try:
            problem = response.json()
        except ValueError:
            problem = {}
        if not isinstance(problem, dict):
            problem = {}

        title = problem.get("title") or f"HTTP {status}"
        detail = problem.get("detail") or ""
        message = f"{title}: {detail}" if detail else title

        if status == 404:
            return ResourceNotFoundError(message, code=status, status=status)
        return MailchimpError(message, code=status, status=status)

    def _discard(self, path: str, what: str) -> None:
        """DELETE a leftover resource; a failure is logged, never raised."""
        try:
            self._request("DELETE", path)
        except MailchimpError as e:
            logger.warning(f"⚠️ Could not delete {what} {path}: {e.message}")

    # ─── Helper ─────────────────────────────────────────────────────────────

    def ping(self) -> Dict[str, Any]:
        """Liveness check: {"health_status": "Everything's Chimpy!"} when healthy"""
        return self._request("GET", "ping")

    # ─── Lists ──────────────────────────────────────────────────────────────

    def get_list(self, list_id: str) -> Dict[str, Any]:
        try:
            return self._request("GET", f"lists/{list_id}")
        except ResourceNotFoundError as e:
            raise ListDoesNotExistError(f"Invalid MailChimp List ID: {list_id}",
                                        code=LIST_DOES_NOT_EXIST, status=e.status) from e

    def get_lists(self, offset: int = 0, count: int = config.MAX_PAGE_SIZE) -> Dict[str, Any]:
        """One page of lists: {"lists": [...], "total_items": N}"""
        params = {"offset": offset, "count": min(count, config.MAX_PAGE_SIZE)}
        return self._request("GET", "lists", params=params)

    def list_members(self, list_id: str, offset: int = 0, count: int = config.MAX_PAGE_SIZE,
                     status: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"offset": offset, "count": count}
        if status:
            params["status"] = status
        return self._request("GET", f"lists/{list_id}/members", params=params)

    def list_member_tags(self, list_id: str, email: str) -> Dict[str, Any]:
        return self._request("GET", f"lists/{list_id}/members/{calculate_subscriber_hash(email)}/tags")

    def batch_subscribe(self, list_id: str, members: List[Dict[str, Any]],
                        double_optin: bool = True, update_existing: bool = False) -> Dict[str, Any]:
        """
        Subscribe many members at once.

        Each member is a dict with "email" (or "email_address") and optional
        "merge_fields" (or "merge_vars"). With double_optin the members are
        added as "pending" so Mailchimp sends a confirmation email.
        """
        status = "pending" if double_optin else "subscribed"
        batch = []
        for member in members:
            email = member.get("email_address") or member.get("email")
            if not email:
                logger.warning(f"Skipping member without an email address: {member}")
                continue
            entry: Dict[str, Any] = {"email_address": email, "status": status}
            merge_fields = member.get("merge_fields") or member.get("merge_vars")
            if merge_fields:
                entry["merge_fields"] = merge_fields
            batch.append(entry)

        payload = {"members": batch, "update_existing": update_existing}
        return self._request("POST", f"lists/{list_id}", payload=payload)

    # ─── Interest groupings (interest categories) ──────────────────────────

    def interest_groupings(self, list_id: str) -> List[Dict[str, Any]]:
        """
        Every grouping of the list with its groups:
        [{"id", "name", "type", "groups": [{"id", "name"}]}]

        Raises InvalidOptionError (code 211) when the list has no groupings.
        """
        body = self._request("GET", f"lists/{list_id}/interest-categories",
                             params={"count": MAX_SUB_RESOURCE_COUNT})
        categories = body.get("categories", [])
        if not categories:
            raise InvalidOptionError("This list does not have interest groups enabled",
                                     code=NO_INTEREST_GROUPINGS)

        groupings = []
        for category in categories:
            interests = self._request(
                "GET", f"lists/{list_id}/interest-categories/{category['id']}/interests",
                params={"count": MAX_SUB_RESOURCE_COUNT}
            ).get("interests", [])
            groupings.append({
                "id": category["id"],
                "name": category.get("title"),
                "type": category.get("type"),
                "display_order": category.get("display_order", 0),
                "groups": [{"id": i["id"], "name": i.get("name")} for i in interests],
            })
        return groupings

    def interest_grouping_add(self, list_id: str, name: str, grouping_type: str,
                              groups: List[str]) -> Dict[str, Any]:
        """
        Create an interest category and its groups. If a group cannot be
        added, the half-made category is deleted and the error re-raised.
        """
        category = self._request("POST", f"lists/{list_id}/interest-categories",
                                 payload={"title": name, "type": grouping_type})
        try:
            for group_name in groups:
                self.interest_group_add(list_id, group_name, category["id"])
        except MailchimpError:
            self._discard(f"lists/{list_id}/interest-categories/{category['id']}", "interest category")
            raise
        return {"id": category["id"]}

    def interest_grouping_del(self, list_id: str, grouping_id: str) -> Dict[str, Any]:
        self._request("DELETE", f"lists/{list_id}/interest-categories/{grouping_id}")
        return {"complete": True}

    def interest_group_add(self, list_id: str, name: str, grouping_id: str) -> Dict[str, Any]:
        return self._request("POST", f"lists/{list_id}/interest-categories/{grouping_id}/interests",
                             payload={"name": name})

    def interest_group_del(self, list_id: str, group_id: str, grouping_id: str) -> Dict[str, Any]:
        self._request("DELETE", f"lists/{list_id}/interest-categories/{grouping_id}/interests/{group_id}")
        return {"complete": True}

    # ─── Merge fields ───────────────────────────────────────────────────────

    def merge_vars(self, list_id: str) -> List[Dict[str, Any]]:
        body = self._request("GET", f"lists/{list_id}/merge-fields", params={"count": MAX_SUB_RESOURCE_COUNT})
        return body.get("merge_fields", [])

    def merge_var_add(self, list_id: str, tag: str, name: str,
                      options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = dict(options or {})
        field_type = payload.pop("field_type", None)
        payload.setdefault("type", field_type or "text")
        payload.update({"tag": tag, "name": name})
        return self._request("POST", f"lists/{list_id}/merge-fields", payload=payload)

    def merge_var_update(self, list_id: str, merge_id: int,
                         options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        # The API requires a "name" on every update; callers pass the current one
        return self._request("PATCH", f"lists/{list_id}/merge-fields/{merge_id}", payload=dict(options or {}))

    # ─── Segments ───────────────────────────────────────────────────────────

    def segment_test(self, list_id: str, segment_opts: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dry-run a segment: create a temporary saved segment, read its member
        count and delete it again. Returns {"total": member_count}.
        """
        payload = {"name": f"chimplet-segment-test-{uuid.uuid4().hex[:12]}", "options": segment_opts}
        try:
            segment = self._request("POST", f"lists/{list_id}/segments", payload=payload)
        except MailchimpError as e:
            if e.status == 400:
                raise InvalidSegmentError(e.message, code=e.code, status=e.status) from e
            raise

        total = segment.get("member_count")
        self._discard(f"lists/{list_id}/segments/{segment['id']}", "temporary segment")
        return {"total": total}

    # ─── Campaigns ──────────────────────────────────────────────────────────

    def campaigns(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("GET", "campaigns", params=filters or {})

    def campaign_create(self, campaign_type: str, options: Dict[str, Any], content: Optional[Dict[str, Any]] = None,
                        segment_opts: Optional[Dict[str, Any]] = None,
                        type_opts: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create a campaign and upload its content.

        `options` holds the campaign settings (subject_line, title, from_name,
        reply_to, folder_id...) plus the "list_id" of the recipients.
        """
        settings = dict(options or {})
        recipients: Dict[str, Any] = {"list_id": settings.pop("list_id", None)}
        if segment_opts:
            recipients["segment_opts"] = segment_opts

        payload: Dict[str, Any] = {"type": campaign_type, "recipients": recipients, "settings": settings}
        if type_opts:
            if campaign_type == "rss":
                payload["rss_opts"] = type_opts
            elif campaign_type == "variate":
                payload["variate_settings"] = type_opts

        campaign = self._request("POST", "campaigns", payload=payload)
        if content:
            try:
                self._request("PUT", f"campaigns/{campaign['id']}/content", payload=content)
            except MailchimpError:
                self._discard(f"campaigns/{campaign['id']}", "draft campaign")
                raise
        return campaign

    def campaign_send(self, campaign_id: str) -> Dict[str, Any]:
        self._request("POST", f"campaigns/{campaign_id}/actions/send")
        return {"complete": True}

    def campaign_schedule(self, campaign_id: str, schedule_time: str) -> Dict[str, Any]:
        self._request("POST", f"campaigns/{campaign_id}/actions/schedule",
                      payload={"schedule_time": schedule_time})
        return {"complete": True}

    def campaign_unschedule(self, campaign_id: str) -> Dict[str, Any]:
        self._request("POST", f"campaigns/{campaign_id}/actions/unschedule")
        return {"complete": True}

    def campaign_replicate(self, campaign_id: str) -> Dict[str, Any]:
        return self._request("POST", f"campaigns/{campaign_id}/actions/replicate")

    def campaign_delete(self, campaign_id: str) -> Dict[str, Any]:
        self._request("DELETE", f"campaigns/{campaign_id}")
        return {"complete": True}

    # ─── Campaign folders ───────────────────────────────────────────────────

    def campaign_folders(self) -> List[Dict[str, Any]]:
        body = self._request("GET", "campaign-folders", params={"count": MAX_SUB_RESOURCE_COUNT})
        return body.get("folders", [])

    def campaign_folder_add(self, name: str) -> Dict[str, Any]:
        return self._request("POST", "campaign-folders", payload={"name": name})

    # ─── Templates ──────────────────────────────────────────────────────────

    def templates(self, template_type: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"count": MAX_SUB_RESOURCE_COUNT}
        if template_type:
            params["type"] = template_type
        return self._request("GET", "templates", params=params).get("templates", [])
