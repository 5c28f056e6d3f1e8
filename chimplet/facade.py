#!/usr/bin/env python3
"""
facade.py

ListServiceFacade: the single entry point for MailChimp list, grouping,
merge field, folder, segment and campaign operations.

The facade owns one MailchimpConnection (created lazily, never replaced) and
the "current list" context with the groupings and merge fields fetched for
it. Every MailchimpError is caught here, logged once, and turned into a
boolean, plain data or a Result - nothing vendor-specific reaches the caller.

One instance serves one session. Instances are not thread-safe and must not
be shared between concurrent requests.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from . import config
from .connection import MailchimpConnection
from .errors import (
    MailchimpError, InvalidOptionError, EmptySegmentError, SegmentTestError,
    UnsupportedOperationError, NO_INTEREST_GROUPINGS
)
from .results import Result

logger = logging.getLogger(__name__)

GROUPING_TYPES = ("checkboxes", "radio", "dropdown", "hidden")

# Merge field options the remote service refuses to change after creation
IMMUTABLE_MERGE_OPTIONS = ("field_type", "type")

# Operations forwarded verbatim by ListServiceFacade.call(): name -> connection method
PASSTHROUGH_OPERATIONS = {
    "ping": "ping",
    "lists": "get_lists",
    "list_members": "list_members",
    "list_member_tags": "list_member_tags",
    "campaigns": "campaigns",
    "campaign_schedule": "campaign_schedule",
    "campaign_unschedule": "campaign_unschedule",
    "campaign_replicate": "campaign_replicate",
    "campaign_delete": "campaign_delete",
    "templates": "templates",
}


@dataclass
class ReconcileReport:
    """Outcome of a grouping reconciliation"""
    deleted: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _group_name(group: Union[str, Dict[str, Any]]) -> str:
    return group["name"] if isinstance(group, dict) else group


class ListServiceFacade:
    """Facade over one MailChimp connection and the current list context"""

    def __init__(self, api_key: Optional[str] = None, user_options: Optional[Dict[str, Any]] = None,
                 connection_factory: Callable[..., MailchimpConnection] = MailchimpConnection):
        self._connection_factory = connection_factory
        self.connection: Optional[MailchimpConnection] = None

        self.current_list: Optional[Dict[str, Any]] = None
        self._groupings: Optional[List[Dict[str, Any]]] = None
        self._merge_vars: Optional[List[Dict[str, Any]]] = None
        self._all_lists: Optional[Dict[str, Any]] = None

        if api_key:
            self.initialize(api_key, user_options)

    @classmethod
    def from_config(cls, settings: Optional[Dict[str, Any]] = None, **kwargs) -> "ListServiceFacade":
        """Build a facade from the caller configuration mapping ({api_key, user_options})."""
        settings = settings if settings is not None else config.load_settings()
        return cls(settings.get("api_key"), settings.get("user_options"), **kwargs)

    def __enter__(self) -> "ListServiceFacade":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()

    # ─── Initialization ─────────────────────────────────────────────────────

    def initialize(self, api_key: Optional[str] = None,
                   user_options: Optional[Dict[str, Any]] = None) -> Optional[MailchimpConnection]:
        """
        Create the connection on first use.

        Once a connection exists it is returned unchanged, whatever the
        arguments. Without a connection and without a key nothing happens.
        """
        if self.is_initialized():
            return self.connection

        if api_key:
            self.connection = self._connection_factory(api_key, user_options or {})
            return self.connection
        return None

    def is_initialized(self) -> bool:
        return isinstance(self.connection, MailchimpConnection)

    @property
    def client(self) -> MailchimpConnection:
        if not self.is_initialized():
            raise RuntimeError("ListServiceFacade is not initialized; call initialize() with an API key first")
        return self.connection

    def _log(self, e: BaseException, method: str = "", level: int = logging.ERROR) -> None:
        origin = "ListServiceFacade" + (f"::{method}" if method else "")
        message = getattr(e, "message", None) or str(e)
        code = getattr(e, "code", None)
        logger.log(level, f"{origin}, {type(e).__name__} -- {message} {code if code is not None else ''}".rstrip())

    def _fail(self, e: MailchimpError, method: str) -> Result:
        self._log(e, method)
        return Result.failure(e)

    def is_api_key_valid(self, api_key: Optional[str] = None,
                         user_options: Optional[Dict[str, Any]] = None) -> bool:
        """
        Is the api key entered by the user valid?

        The check uses its own throwaway connection so the stored one is
        never replaced.
        """
        if not api_key:
            return False

        checker = self._connection_factory(api_key, user_options or {})
        try:
            response = checker.ping()
        except MailchimpError as e:
            self._log(e, "is_api_key_valid")
            return False
        finally:
            checker.close()

        return isinstance(response, dict) and response.get("health_status") == config.PING_ACKNOWLEDGEMENT

    # ─── List context ───────────────────────────────────────────────────────

    def set_current_list(self, current_list: Optional[Dict[str, Any]], keep_caches: bool = False) -> None:
        """
        Switch the list context used by grouping, merge field and segment calls.

        Derived caches are dropped unless `keep_caches` is set.
        """
        self.current_list = current_list
        if not keep_caches:
            self._invalidate_caches()

    def _invalidate_caches(self) -> None:
        self._groupings = None
        self._merge_vars = None

    def _current_list_id(self) -> str:
        if not self.current_list or not self.current_list.get("id"):
            raise RuntimeError("No current list selected; call get_list_by_id() or set_current_list() first")
        return self.current_list["id"]

    def get_list_by_id(self, list_id: str) -> Result:
        """Fetch a list, make it the current list and reset its derived caches."""
        try:
            current = self.client.get_list(list_id)
        except MailchimpError as e:
            return self._fail(e, "get_list_by_id")

        self.set_current_list(current)
        return Result.success(current)

    def get_all_lists(self) -> Result:
        """
        Fetch the first page of lists (at most MAX_PAGE_SIZE).

        Only one page is requested; accounts with more lists get a truncated
        result and get_current_list_total_results() tells how many exist.
        """
        try:
            page = self.client.get_lists(offset=0, count=config.MAX_PAGE_SIZE)
        except MailchimpError as e:
            return self._fail(e, "get_all_lists")

        self._all_lists = page
        return Result.success(page.get("lists", []))

    def get_current_list_total_results(self) -> int:
        if self._all_lists is None:
            return 0
        return int(self._all_lists.get("total_items", 0))

    # ─── Groupings ──────────────────────────────────────────────────────────

    def get_all_groupings(self) -> Union[List[Dict[str, Any]], bool]:
        """Groupings of the current list, fetched once per list context; False when there are none."""
        if self._groupings is not None:
            return self._groupings

        try:
            self._groupings = self.client.interest_groupings(self._current_list_id())
        except InvalidOptionError as e:
            if e.code == NO_INTEREST_GROUPINGS:
                # There is no grouping present
                self._log(e, "get_all_groupings", level=logging.INFO)
            else:
                self._log(e, "get_all_groupings")
            return False
        except MailchimpError as e:
            self._log(e, "get_all_groupings")
            return False

        return self._groupings

    def get_grouping(self, name: str) -> Union[Dict[str, Any], bool]:
        groupings = self.get_all_groupings()
        if groupings:
            for grouping in groupings:
                if grouping.get("name") == name:
                    return grouping
        return False

    def add_grouping(self, name: str, groups: Optional[Iterable[str]] = None,
                     grouping_type: str = "checkboxes") -> Union[str, bool]:
        """
        Create a grouping with its initial groups. Returns the new grouping id or False.

        `groups` comes before `grouping_type` (the reverse of the old
        name/type/groups order) so the type can default to "checkboxes".
        """
        if grouping_type not in GROUPING_TYPES:
            raise ValueError(f"Unknown grouping type {grouping_type!r}; expected one of {GROUPING_TYPES}")

        try:
            response = self.client.interest_grouping_add(self._current_list_id(), name, grouping_type,
                                                         list(groups or []))
        except MailchimpError as e:
            # The remote side may have changed before the failure
            self._groupings = None
            self._log(e, "add_grouping")
            return False

        self._groupings = None
        return response["id"]

    def delete_grouping(self, name: str) -> bool:
        grouping = self.get_grouping(name)
        if not grouping:
            return False

        try:
            response = self.client.interest_grouping_del(self._current_list_id(), grouping["id"])
        except MailchimpError as e:
            self._log(e, "delete_grouping")
            return False

        self._groupings = None
        return bool(response.get("complete"))

    def add_to_grouping(self, name: str, grouping_id: str) -> bool:
        """Add a group to a grouping"""
        try:
            self.client.interest_group_add(self._current_list_id(), name, grouping_id)
        except MailchimpError as e:
            self._log(e, "add_to_grouping")
            return False

        self._groupings = None
        return True

    def _find_group_id(self, name: str, grouping_id: str) -> Optional[str]:
        """Id of a group in the cached groupings, None when unknown."""
        for grouping in self.get_all_groupings() or []:
            if grouping.get("id") != grouping_id:
                continue
            for group in grouping.get("groups", []):
                if group.get("name") == name:
                    return group["id"]
        return None

    def delete_from_grouping(self, name: str, grouping_id: str, group_id: Optional[str] = None) -> bool:
        """Remove a group from a grouping. Without `group_id` the id is looked up by name in the cache."""
        group_id = group_id or self._find_group_id(name, grouping_id)
        if not group_id:
            logger.warning(f'ListServiceFacade::delete_from_grouping, group "{name}" not found in {grouping_id}')
            return False

        try:
            self.client.interest_group_del(self._current_list_id(), group_id, grouping_id)
        except MailchimpError as e:
            self._log(e, "delete_from_grouping")
            return False

        self._groupings = None
        return True

    def reconcile_grouping_membership(self, local_groups: Iterable[str],
                                      remote_groups: Iterable[Union[str, Dict[str, Any]]],
                                      grouping_id: str) -> ReconcileReport:
        """
        Make the groups of a grouping match the local set.

        Remote groups missing locally are deleted first, then local groups
        missing remotely are added. Groups present on both sides are left alone.
        """
        remote_groups = list(remote_groups)
        desired = list(dict.fromkeys(local_groups))
        observed = list(dict.fromkeys(_group_name(g) for g in remote_groups))
        desired_names = set(desired)
        observed_names = set(observed)

        # Resolve ids before any delete drops the grouping cache
        known_ids = {g["name"]: g.get("id") for g in remote_groups if isinstance(g, dict)}
        stale = [name for name in observed if name not in desired_names]
        stale_ids = {name: known_ids.get(name) or self._find_group_id(name, grouping_id) for name in stale}

        report = ReconcileReport()
        for name in stale:
            if self.delete_from_grouping(name, grouping_id, stale_ids[name]):
                report.deleted.append(name)
            else:
                report.failed.append(name)

        for name in desired:
            if name in observed_names:
                continue
            if self.add_to_grouping(name, grouping_id):
                report.added.append(name)
            else:
                report.failed.append(name)

        logger.info(f"Reconciled grouping {grouping_id}: -{len(report.deleted)} +{len(report.added)}"
                    f" ({len(report.failed)} failed)")
        return report

    # ─── Merge fields ───────────────────────────────────────────────────────

    def get_all_merge_vars(self) -> Union[List[Dict[str, Any]], bool]:
        if self._merge_vars is not None:
            return self._merge_vars

        try:
            self._merge_vars = self.client.merge_vars(self._current_list_id())
        except MailchimpError as e:
            self._log(e, "get_all_merge_vars")
            return False

        return self._merge_vars

    def get_merge_var(self, tag: str) -> Union[Dict[str, Any], bool]:
        merge_vars = self.get_all_merge_vars()
        if merge_vars:
            for merge_var in merge_vars:
                if merge_var.get("tag") == tag:
                    return merge_var
        return False

    def add_merge_var(self, tag: str, name: str, options: Optional[Dict[str, Any]] = None) -> bool:
        try:
            self.client.merge_var_add(self._current_list_id(), tag, name, dict(options or {}))
        except MailchimpError as e:
            self._log(e, "add_merge_var")
            return False

        self._merge_vars = None
        return True

    def update_merge_var(self, tag: str, options: Optional[Dict[str, Any]] = None) -> bool:
        """Update a merge field. Its type cannot change after creation, so type options are dropped."""
        merge_var = self.get_merge_var(tag)
        if not merge_var:
            logger.warning(f'ListServiceFacade::update_merge_var, merge field "{tag}" does not exist')
            return False

        options = {k: v for k, v in (options or {}).items() if k not in IMMUTABLE_MERGE_OPTIONS}
        # Every update must carry a name
        options.setdefault("name", merge_var.get("name"))

        try:
            self.client.merge_var_update(self._current_list_id(), merge_var["merge_id"], options)
        except MailchimpError as e:
            self._log(e, "update_merge_var")
            return False

        self._merge_vars = None
        return True

    def reconcile_merge_var(self, tag: str, name: str = "", options: Optional[Dict[str, Any]] = None) -> bool:
        """Make sure the merge field exists with these options: update it if present, else create it."""
        if self.get_merge_var(tag):
            return self.update_merge_var(tag, options)
        return self.add_merge_var(tag, name, options)

    # ─── Campaign folders ───────────────────────────────────────────────────

    def get_campaign_folder_id(self, name: str) -> Union[str, bool]:
        """Get a folder id by name, creating the folder if it doesn't exist"""
        if not name:
            return False

        try:
            folders = self.client.campaign_folders()
        except MailchimpError as e:
            self._log(e, "get_campaign_folder_id")
            return False

        for folder in folders:
            if folder.get("name") == name:
                return folder["id"]

        return self.create_campaign_folder(name)

    def create_campaign_folder(self, name: str = "") -> Union[str, bool]:
        try:
            folder = self.client.campaign_folder_add(name)
        except MailchimpError as e:
            self._log(e, "create_campaign_folder")
            return False
        return folder.get("id", False)

    # ─── Segments & campaigns ───────────────────────────────────────────────

    def test_segment(self, segment_opts: Dict[str, Any]) -> Result:
        """Dry-run a segment against the current list. The value holds the recipient "total"."""
        try:
            result = self.client.segment_test(self._current_list_id(), segment_opts)
        except MailchimpError as e:
            return self._fail(e, "test_segment")

        if not isinstance(result, dict) or result.get("total") is None:
            return self._fail(SegmentTestError(), "test_segment")
        return Result.success(result)

    def create_campaign(self, campaign: Dict[str, Any]) -> Result:
        """
        Create a campaign for the current list and send it right away.

        `campaign` holds "type", "options", "content" and optionally
        "segment_opts" and "type_opts". A segment is tested first and a
        segment matching 0 recipients stops here without creating anything.
        The returned campaign carries "is_broadcast" with the send outcome.
        """
        segment_opts = campaign.get("segment_opts") or None
        if segment_opts is not None:
            tested = self.test_segment(segment_opts)
            if not tested:
                return tested
            if int(tested.value["total"]) == 0:
                return self._fail(EmptySegmentError(), "create_campaign")

        campaign_type = campaign.get("type", "regular")
        options = dict(campaign.get("options") or {})
        if self.current_list and self.current_list.get("id"):
            options.setdefault("list_id", self.current_list["id"])

        try:
            created = self.client.campaign_create(campaign_type, options, campaign.get("content"),
                                                  segment_opts, campaign.get("type_opts"))
        except MailchimpError as e:
            return self._fail(e, "create_campaign")

        created = dict(created)
        if created.get("id"):
            created["is_broadcast"] = self.send_campaign(created["id"], created.get("type", campaign_type))
        return Result.success(created)

    def send_campaign(self, campaign_id: str, campaign_type: str = "") -> bool:
        """
        Send a campaign immediately. For RSS campaigns this "starts" them.

        Success is the "complete" flag of the response; a missing flag counts
        as a failure for every campaign type.
        """
        # TODO: RSS sends are asynchronous; poll the campaign status instead of requiring "complete".
        try:
            response = self.client.campaign_send(campaign_id)
        except MailchimpError as e:
            self._log(e, "send_campaign")
            return False

        if isinstance(response, dict) and "complete" in response:
            return bool(response["complete"])

        if campaign_type == "rss":
            error = MailchimpError("The RSS campaign could not be started for an unknown reason.")
        else:
            error = MailchimpError("The campaign could not be sent for an unknown reason.")
        self._log(error, "send_campaign")
        return False

    # ─── Templates & members ────────────────────────────────────────────────

    def get_user_templates(self) -> List[Dict[str, Any]]:
        try:
            return self.client.templates("user")
        except MailchimpError as e:
            self._log(e, "get_user_templates")
            return []

    def sync_list_users(self, list_id: str, users: List[Dict[str, Any]]) -> bool:
        """Subscribe users to a list without double opt-in, updating the ones already there."""
        try:
            self.client.batch_subscribe(list_id, users, double_optin=False, update_existing=True)
        except MailchimpError as e:
            self._log(e, "sync_list_users")
            return False
        return True

    # ─── Generic pass-through ───────────────────────────────────────────────

    def call(self, operation: str, *args, **kwargs) -> Any:
        """
        Forward a known operation to the connection.

        A response holding a "complete" flag is reduced to that flag.
        Service errors give False; an operation outside
        PASSTHROUGH_OPERATIONS raises UnsupportedOperationError.
        """
        method_name = PASSTHROUGH_OPERATIONS.get(operation)
        if method_name is None:
            raise UnsupportedOperationError(operation)

        try:
            response = getattr(self.client, method_name)(*args, **kwargs)
        except MailchimpError as e:
            self._log(e, f"call({operation})")
            return False

        if isinstance(response, dict) and "complete" in response:
            return bool(response["complete"])
        return response
