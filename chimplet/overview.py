#!/usr/bin/env python3
"""
overview.py

Account overview for the control center: whether an API key is registered
and valid, and a summary of every list (members, groupings, merge fields).
"""

import logging
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from .facade import ListServiceFacade

logger = logging.getLogger(__name__)

APP_NAME = "Chimplet"


def needs_api_key_badge(api_key: Optional[str]) -> bool:
    """True when no API key is registered yet"""
    return not api_key


def badge_text() -> str:
    return f"You need to register a MailChimp API key to use {APP_NAME}."


def _summarize_list(facade: ListServiceFacade, mc_list: Dict[str, Any]) -> Dict[str, Any]:
    facade.set_current_list(mc_list)
    groupings = facade.get_all_groupings() or []
    merge_vars = facade.get_all_merge_vars() or []
    return {
        "id": mc_list.get("id"),
        "name": mc_list.get("name"),
        "member_count": mc_list.get("stats", {}).get("member_count", 0),
        "groupings": [
            {"name": g.get("name"), "groups": [grp.get("name") for grp in g.get("groups", [])]}
            for g in groupings
        ],
        "merge_vars": [m.get("tag") for m in merge_vars],
    }


def build_overview(facade: ListServiceFacade, api_key: Optional[str] = None,
                   user_options: Optional[Dict[str, Any]] = None,
                   show_progress: bool = True) -> Dict[str, Any]:
    """
    Collect everything the overview panel shows.

    Without an API key only the badge information is returned. List detail
    is gathered one list at a time, which is one groupings call and one merge
    field call per list.
    """
    report: Dict[str, Any] = {
        "api_key_registered": not needs_api_key_badge(api_key),
        "api_key_valid": False,
        "total_lists": 0,
        "lists": [],
        "truncated": False,
    }
    if not report["api_key_registered"]:
        return report

    report["api_key_valid"] = facade.is_api_key_valid(api_key, user_options)
    if not report["api_key_valid"]:
        logger.warning("⚠️ The registered MailChimp API key was rejected")
        return report

    facade.initialize(api_key, user_options)
    lists = facade.get_all_lists()
    if not lists:
        logger.error(f"Could not fetch lists: {lists.error.message}")
        return report

    summaries: List[Dict[str, Any]] = []
    for mc_list in tqdm(lists.value, desc="Summarizing lists", unit="list", disable=not show_progress):
        summaries.append(_summarize_list(facade, mc_list))

    report["lists"] = summaries
    report["total_lists"] = facade.get_current_list_total_results()
    report["truncated"] = report["total_lists"] > len(summaries)
    return report


def render_overview(report: Dict[str, Any]) -> str:
    """Plain-text rendering of build_overview() output"""
    lines = ["=" * 60, f"📬 {APP_NAME.upper()} OVERVIEW", "=" * 60]

    if not report["api_key_registered"]:
        lines.append(f"🔑 {badge_text()}")
        return "\n".join(lines)

    if not report["api_key_valid"]:
        lines.append("❌ The registered MailChimp API key is not valid.")
        return "\n".join(lines)

    lines.append(f"✅ API key valid - {report['total_lists']} list(s)")
    if report.get("truncated"):
        lines.append(f"⚠️ Showing the first {len(report['lists'])} lists only")
    lines.append("-" * 60)

    for summary in report["lists"]:
        lines.append(f"📋 {summary['name']} ({summary['id']}) - {summary['member_count']} members")
        for grouping in summary["groupings"]:
            lines.append(f"   🏷️ {grouping['name']}: {', '.join(grouping['groups']) or '-'}")
        if summary["merge_vars"]:
            lines.append(f"   🧩 Merge fields: {', '.join(summary['merge_vars'])}")

    return "\n".join(lines)
