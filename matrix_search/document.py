"""Turns Matrix message events into search documents."""
import re
from html.parser import HTMLParser
from typing import Any, Optional
from urllib.parse import quote, urlparse

from pydantic import BaseModel

from .logger import get_logger

logger = get_logger(__name__)

MEDIA_DOWNLOAD_PATH = "/_matrix/media/v3/download"

# Body prefix for each indexed msgtype; text bodies are used as-is
MESSAGE_PREFIXES = {
    "m.text": None,
    "m.image": "[Image]",
    "m.file": "[File]",
    "m.video": "[Video]",
}

_REPLY_FALLBACK = re.compile(r"\A(?:>[^\n]*\n)+\n")


class SearchDocument(BaseModel):
    event_id: str  # Primary key of the index
    body: str
    external_url: Optional[str] = None
    sender_id: str
    sender_display_name: Optional[str] = None
    sender_avatar: Optional[str] = None
    timestamp: int  # Milliseconds since the epoch
    room_id: str
    ocr_body: Optional[str] = None


class _TextExtractor(HTMLParser):
    """Collects the text of an HTML fragment, dropping reply fallbacks."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._reply_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag == "mx-reply":
            self._reply_depth += 1
        elif tag == "br":
            self.parts.append("\n")

    def handle_endtag(self, tag):
        if tag == "mx-reply" and self._reply_depth:
            self._reply_depth -= 1

    def handle_data(self, data):
        if not self._reply_depth:
            self.parts.append(data)


def strip_markup(text: str) -> str:
    """Drop the tags of a fragment, keeping its text as written.

    Character references are left alone so escaped markup such as
    ``&lt;b&gt;`` stays escaped instead of becoming a tag.
    """
    parser = _TextExtractor()
    parser.feed(text.replace("&", "&amp;"))
    parser.close()
    return "".join(parser.parts)


def remove_reply_fallback(body: str) -> str:
    """Drop the quoted ``> <@user> ...`` block a client prepends to replies."""
    return _REPLY_FALLBACK.sub("", body, count=1)


def sanitize_body(body: str) -> str:
    return strip_markup(remove_reply_fallback(body))


def normalize_event_id(event_id: str) -> str:
    """Event id without its ``$`` sigil, as used for the index primary key."""
    return event_id[1:] if event_id.startswith("$") else event_id


def mxc_to_http(mxc: str, homeserver: str) -> Optional[str]:
    """Download URL of an ``mxc://server/media_id`` URI on the given homeserver."""
    parsed = urlparse(mxc)
    media_id = parsed.path.lstrip("/")
    if parsed.scheme != "mxc" or not parsed.netloc or not media_id or "/" in media_id:
        return None
    return "{}{}/{}/{}".format(
        homeserver.rstrip("/"),
        MEDIA_DOWNLOAD_PATH,
        quote(parsed.netloc, safe=""),
        quote(media_id, safe=""),
    )


class DocumentBuilder:
    """Builds the search document for one message event.

    ``user_id`` is the bot's own account; its messages are never indexed.
    ``homeserver`` is the base URL used to turn avatar ``mxc://`` URIs
    into download links.
    """

    def __init__(self, user_id: str, homeserver: str) -> None:
        self.user_id = user_id
        self.homeserver = homeserver

    def build(self, room: Any, source: dict) -> Optional[SearchDocument]:
        """Return the document for a raw message event, or None to skip it.

        ``room`` is the nio ``MatrixRoom`` the event belongs to and
        ``source`` the event as received from the homeserver.
        """
        sender = source.get("sender")
        if not sender or sender == self.user_id:
            return None

        content = source.get("content") or {}
        event_id = source.get("event_id")
        external_url = content.get("external_url")

        # An edit replaces the original message's document
        relates_to = content.get("m.relates_to") or {}
        if relates_to.get("rel_type") == "m.replace":
            new_content = content.get("m.new_content")
            if not isinstance(new_content, dict) or not relates_to.get("event_id"):
                return None
            event_id = relates_to["event_id"]
            content = new_content

        if not event_id:
            return None

        body = self._build_body(content)
        if body is None:
            return None

        display_name, avatar = self._resolve_sender(room, sender)
        return SearchDocument(
            event_id=normalize_event_id(event_id),
            body=body,
            external_url=external_url if isinstance(external_url, str) else None,
            sender_id=sender,
            sender_display_name=display_name,
            sender_avatar=avatar,
            timestamp=int(source.get("origin_server_ts", 0)),
            room_id=room.room_id,
        )

    @staticmethod
    def _build_body(content: dict) -> Optional[str]:
        msgtype = content.get("msgtype")
        if msgtype not in MESSAGE_PREFIXES:
            return None
        body = content.get("body")
        if not isinstance(body, str):
            return None

        body = sanitize_body(body)
        prefix = MESSAGE_PREFIXES[msgtype]
        if prefix is None:
            return body.lstrip()
        return f"{prefix} {body}"

    def _resolve_sender(self, room: Any, sender: str) -> tuple[Optional[str], Optional[str]]:
        """Display name and avatar URL of the sender from room membership."""
        try:
            member = room.users.get(sender)
        except Exception as e:
            logger.warning(f"Could not look up {sender} in {room.room_id}: {e}")
            return None, None
        if member is None:
            return None, None

        display_name = getattr(member, "display_name", None) or None
        avatar = None
        avatar_url = getattr(member, "avatar_url", None)
        if avatar_url:
            avatar = mxc_to_http(avatar_url, self.homeserver)
        return display_name, avatar
