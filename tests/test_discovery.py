"""Tests for discovery parsing, fetching and action URL building."""

import asyncio
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from common.types import ActionDescriptor
from wopi_host.exceptions import DiscoveryUnavailableError
from wopi_host.wopi.actions import (
    ActionUrlSettings,
    build_action_url,
    parameter_name,
)
from wopi_host.wopi.discovery import DiscoveryClient, parse_discovery

BASE_URL = "https://host.example.com"
FILE_ID = "abc"


def action(urlsrc: str, name: str = "view", ext: str = "xlsx", is_default: bool = False) -> ActionDescriptor:
    return ActionDescriptor(app="Excel", name=name, ext=ext, urlsrc=urlsrc, is_default=is_default)


class TestParseDiscovery:
    """Test parsing of the discovery manifest."""

    def test_actions_are_parsed(self, discovery_xml):
        manifest = parse_discovery(discovery_xml)

        assert len(manifest.actions) == 5
        edit = next(a for a in manifest.actions if a.name == "edit")
        assert edit.app == "Excel"
        assert edit.ext == "xlsx"
        assert edit.requires == "update"
        assert edit.check_license is True
        assert edit.is_default is False
        assert edit.fav_icon_url == "https://excel.officeapps.live.com/x/favicon.ico"
        assert "<wopisrc=WOPI_SOURCE&>" in edit.urlsrc

    def test_default_flag_and_extension_case(self, discovery_xml):
        manifest = parse_discovery(discovery_xml)

        word = next(a for a in manifest.actions if a.app == "Word")
        assert word.ext == "docx"
        assert word.is_default is True
        assert word.check_license is False

    def test_proof_key_is_parsed(self, discovery_xml, proof_keys):
        manifest = parse_discovery(discovery_xml)

        assert manifest.proof_key == proof_keys

    def test_missing_proof_key(self):
        manifest = parse_discovery("<wopi-discovery><net-zone /></wopi-discovery>")

        assert manifest.actions == []
        assert manifest.proof_key is None

    def test_malformed_document(self):
        with pytest.raises(DiscoveryUnavailableError):
            parse_discovery("<wopi-discovery><app>")


class TestDiscoveryClient:
    """Test the outbound discovery fetch."""

    @pytest.mark.asyncio
    async def test_fetch_actions_and_keys(self, discovery_xml, proof_keys):
        client = DiscoveryClient("https://discovery.example.com/hosting/discovery")

        with patch.object(client, "_download", AsyncMock(return_value=discovery_xml)):
            actions = await client.fetch_actions()
            keys = await client.fetch_proof_keys()

        assert len(actions) == 5
        assert keys == proof_keys

    @pytest.mark.asyncio
    async def test_actions_and_keys_share_one_download(self, discovery_xml, monotonic):
        client = DiscoveryClient("https://discovery.example.com/hosting/discovery", clock=monotonic)
        download = AsyncMock(return_value=discovery_xml)

        with patch.object(client, "_download", download):
            await asyncio.gather(client.fetch_actions(), client.fetch_proof_keys())
            await client.fetch_proof_keys()

        assert download.await_count == 1

    @pytest.mark.asyncio
    async def test_manifest_is_downloaded_again_after_reuse_window(self, discovery_xml, monotonic):
        client = DiscoveryClient(
            "https://discovery.example.com/hosting/discovery", reuse_seconds=60, clock=monotonic
        )
        download = AsyncMock(return_value=discovery_xml)

        with patch.object(client, "_download", download):
            await client.fetch_actions()
            monotonic.advance(61)
            await client.fetch_proof_keys()

        assert download.await_count == 2

    @pytest.mark.asyncio
    async def test_connection_error_is_discovery_unavailable(self):
        client = DiscoveryClient("https://discovery.example.com/hosting/discovery", timeout_seconds=1)

        with patch(
            "wopi_host.wopi.discovery.aiohttp.ClientSession",
            side_effect=aiohttp.ClientConnectionError("refused")
        ):
            with pytest.raises(DiscoveryUnavailableError):
                await client.fetch_manifest()


class TestBuildActionUrl:
    """Test placeholder substitution."""

    def test_supported_placeholders_are_joined(self):
        template = (
            "https://x.example.com/view.aspx?"
            "<IsLicensedUser=BUSINESS_USER&><rs=DC_LLCC&><wopisrc=WOPI_SOURCE&>"
        )

        url = build_action_url(action(template), FILE_ID, BASE_URL, ActionUrlSettings(locale="de-DE"))

        assert url == (
            "https://x.example.com/view.aspx?"
            "IsLicensedUser=1&rs=de-DE&wopisrc=https://host.example.com/wopi/files/abc"
        )

    def test_disabled_placeholders_are_empty(self):
        template = (
            "https://x.example.com/view.aspx?"
            "<ui=UI_LLCC&><hid=HOST_SESSION_ID&><vp=DISABLE_BROADCAST&><e=EMBEDDED&><thm=THEME_ID&>"
        )

        url = build_action_url(action(template), FILE_ID, BASE_URL)

        assert url == "https://x.example.com/view.aspx?ui=en-US&thm=1"

    def test_substitution_follows_table_order(self):
        template = "https://x.example.com/v.aspx?<ui=UI_LLCC&><IsLicensedUser=BUSINESS_USER&>"

        url = build_action_url(action(template), FILE_ID, BASE_URL)

        # BUSINESS_USER precedes UI_LLCC in the table, so it is the unprefixed one
        assert url == "https://x.example.com/v.aspx?&ui=en-USIsLicensedUser=1"

    def test_validator_category_and_toggles(self):
        template = (
            "https://x.example.com/v.aspx?<dchat=DISABLE_CHAT&><showpagestats=PERFSTATS&>"
            "<testcategory=VALIDATOR_TEST_CATEGORY>"
        )

        url = build_action_url(action(template), FILE_ID, BASE_URL)

        assert url == "https://x.example.com/v.aspx?dchat=0&showpagestats=0&testcategory=OfficeOnline"

    def test_unknown_placeholders_are_removed(self):
        template = "https://x.example.com/v.aspx?<wopisrc=WOPI_SOURCE&><future=NEW_THING&>"

        url = build_action_url(action(template), FILE_ID, BASE_URL)

        assert url == "https://x.example.com/v.aspx?wopisrc=https://host.example.com/wopi/files/abc"

    def test_parameter_name(self):
        assert parameter_name("<IsLicensedUser=BUSINESS_USER&>") == "IsLicensedUser="
        assert parameter_name("<testcategory=VALIDATOR_TEST_CATEGORY>") == "testcategory="


class TestActionResolver:
    """Test per-extension action resolution."""

    @pytest.mark.asyncio
    async def test_actions_filtered_by_extension_default_last(self, resolver):
        actions = await resolver.actions_for("Budget.XLSX")

        assert [a.name for a in actions] == ["edit", "embedview", "view"]
        assert actions[-1].is_default

    @pytest.mark.asyncio
    async def test_unknown_extension_has_no_actions(self, resolver):
        assert await resolver.actions_for("notes.txt") == []

    @pytest.mark.asyncio
    async def test_find_action(self, resolver):
        edit = await resolver.find_action("report.xlsx", "edit")
        missing = await resolver.find_action("report.xls", "edit")

        assert edit is not None and edit.name == "edit"
        assert missing is None

    @pytest.mark.asyncio
    async def test_action_url_uses_wopi_source(self, resolver):
        view = await resolver.find_action("report.xlsx", "view")

        url = resolver.action_url(view, "abc", BASE_URL)

        assert url.endswith("wopisrc=https://host.example.com/wopi/files/abc")
        assert url.startswith("https://excel.officeapps.live.com/x/_layouts/xlviewerinternal.aspx?IsLicensedUser=1&")

    @pytest.mark.asyncio
    async def test_discovery_is_fetched_once(self, resolver, action_cache):
        await resolver.actions_for("a.xlsx")
        await resolver.actions_for("b.docx")

        assert action_cache._loader.await_count == 1
