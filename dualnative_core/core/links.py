"""
Links between the human and the machine representation of resources
"""

import re
import html
import urllib.parse
from typing import Dict, List, Optional

from .. import schemas
from ..misc.events import EventSink, NullEventSink


HR_CONTENT_TYPE = "text/html"
MR_CONTENT_TYPE = "application/json"

_LINK_PATTERN = re.compile(r'<([^>]*)>\s*((?:;\s*[^;,]+)*)')
_PARAM_PATTERN = re.compile(r';\s*([^=;,\s]+)\s*=\s*"?([^";,]*)"?')


class LinkManager:
    """
    Create and parse the links of both representations

    The machine representation embeds its links in the ``links`` field,
    the human representation uses ``<link rel="alternate">`` tags, while
    HTTP responses carry both directions in the ``Link`` header.
    """

    def __init__(self, events: Optional[EventSink] = None):
        self.events = events or NullEventSink()

    def bidirectional_links(self, rid: str, hr_url: str, mr_url: str) -> schemas.ResourceLinks:
        links = schemas.ResourceLinks(
            hr=schemas.ResourceLink(url=hr_url, rel="self", type=HR_CONTENT_TYPE),
            mr=schemas.ResourceLink(url=mr_url, rel="alternate", type=MR_CONTENT_TYPE)
        )
        return self.events.filter(schemas.FilterHook.BIDIRECTIONAL_LINKS, links, rid)

    def link_header(self, hr_url: str, mr_url: str) -> str:
        header = (
            f'<{mr_url}>; rel="alternate"; type="{MR_CONTENT_TYPE}", '
            f'<{hr_url}>; rel="canonical"; type="{HR_CONTENT_TYPE}"'
        )
        return self.events.filter(schemas.FilterHook.LINK_HEADER, header, hr_url, mr_url)

    @staticmethod
    def parse_link_header(value: Optional[str]) -> Dict[str, Dict[str, Optional[str]]]:
        """
        Parse a ``Link`` header into a mapping of the relation types to their URL and media type

        Links without ``rel`` parameter are ignored, later links
        with the same relation type overwrite earlier ones.
        """

        result = {}
        for match in _LINK_PATTERN.finditer(value or ""):
            params = {k.lower(): v for k, v in _PARAM_PATTERN.findall(match.group(2))}
            if "rel" not in params:
                continue
            for rel in params["rel"].split():
                result[rel] = {"url": match.group(1).strip(), "type": params.get("type")}
        return result

    def mr_links(self, human_url: str, api_url: Optional[str] = None, public_url: Optional[str] = None) -> dict:
        """
        Create the ``links`` object embedded into a machine representation
        """

        links = {"human_url": human_url}
        if api_url:
            links["api_url"] = api_url
        if public_url:
            links["public_url"] = public_url
        return self.events.filter(schemas.FilterHook.MR_LINKS, links, human_url)

    def hr_links(self, mr_url: str, public_mr_url: Optional[str] = None) -> List[str]:
        """
        Create the HTML ``<link>`` tags for the head of a human representation
        """

        tags = [f'<link rel="alternate" type="{MR_CONTENT_TYPE}" href="{html.escape(mr_url)}">']
        if public_mr_url:
            tags.append(
                f'<link rel="alternate" type="{MR_CONTENT_TYPE}" '
                f'href="{html.escape(public_mr_url)}" title="public">'
            )
        return self.events.filter(schemas.FilterHook.HR_LINKS, tags, mr_url)

    @staticmethod
    def validate_consistency(hr_url: str, mr_url: str) -> bool:
        """
        Check that both representations have absolute HTTP(S) URLs
        """

        for url in (hr_url, mr_url):
            parts = urllib.parse.urlsplit(url or "")
            if parts.scheme not in ("http", "https") or not parts.netloc:
                return False
        return True
