from datetime import datetime, timedelta, tzinfo
from html import escape
from typing import Optional

from ..models.AccessEvent import AccessEvent, Principal

DEFAULT_AVATAR = "https://www.gravatar.com/avatar/00000000000000000000000000000000?d=mp"
WALLET_CLOSE_URL = "https://app.citizenwallet.xyz/close"


def page(title: str, body: str, redirect: Optional[str] = None, redirect_after: int = 3) -> str:
    script = ""
    if redirect:
        script = f'<script>setTimeout(() => {{ window.location.href = "{escape(redirect)}"; }}, {redirect_after * 1000});</script>'
    return f"""<!DOCTYPE html>
<html>
  <head>
    <title>{escape(title)}</title>
    <link rel="stylesheet" href="/styles.css">
    <meta name="viewport" content="width=device-width, initial-scale=1">
  </head>
  <body>
    {body}
  </body>
  {script}
</html>
"""


def avatar_grid(user_ids: list[str], users: dict[str, Principal]) -> str:
    if not user_ids:
        return "<p>No visitors today</p>"
    avatars = "".join(
        f'<div class="today-user"><img class="today-avatar" src="{escape(_avatar(users.get(uid)))}" alt="Avatar">'
        f'<div class="today-name">{escape(_name(users.get(uid)))}</div></div>'
        for uid in user_ids
    )
    return f'<div class="today-visitors"><h2>Today\'s Visitors</h2><div class="avatar-grid">{avatars}</div></div>'


def _avatar(user: Optional[Principal]) -> str:
    return (user and user.avatar_url) or DEFAULT_AVATAR


def _name(user: Optional[Principal]) -> str:
    if user is None:
        return "Unknown"
    return user.display_name or user.username or "Unknown"


def home_page(is_open: bool, events: list[AccessEvent], today: list[str], users: dict[str, Principal]) -> str:
    rows = "".join(
        f'<div class="log-entry"><img class="avatar" src="{escape(_avatar(users.get(e.userid)))}" alt="Avatar">'
        f'<div class="log-content"><div class="username">{escape(_name(users.get(e.userid)))}</div>'
        f'<div class="timestamp">{e.timestamp.strftime("%d/%m/%Y, %H:%M:%S")}</div></div></div>'
        for e in events
    )
    state = "open" if is_open else "closed"
    body = f"<h1>The door is {state}</h1>{avatar_grid(today, users)}<h2>Recent access</h2>{rows}"
    return page("Door", body)


def signature_success_page(name: str, event_name: str, event_url: Optional[str]) -> str:
    body = (
        "<h1>Welcome to the Commons Hub!</h1>"
        f"<p>Welcome {escape(name)}, the door is open for <strong>{escape(event_name)}</strong>.</p>"
    )
    if event_url:
        body += f'<p>Redirecting you to <a href="{escape(event_url)}">the event page</a>...</p>'
    return page("Welcome - Commons Hub", body, redirect=event_url)


def validity_range(start_time: int, duration: int, grace: int, tz: tzinfo) -> tuple[datetime, datetime]:
    """Window shown to the visitor, grace buffer included."""
    start = datetime.fromtimestamp(start_time - grace, tz=tz)
    end = start + timedelta(seconds=duration * 60 + 2 * grace)
    return start, end


def signature_error_page(
    error: str,
    event_name: Optional[str],
    event_url: Optional[str],
    start_time: Optional[int],
    duration: Optional[int],
    grace: int,
    tz: tzinfo,
) -> str:
    body = f"<h1>Access Denied</h1><p>{escape(error)}</p>"
    if start_time and duration:
        start, end = validity_range(start_time, duration, grace, tz)
        body += (
            '<div class="validity-info"><h2>When is this code valid?</h2>'
            f"<p><strong>Date:</strong> {start.strftime('%A, %B %d, %Y')}</p>"
            f"<p><strong>Time:</strong> {start.strftime('%I:%M %p')} - {end.strftime('%I:%M %p')}</p></div>"
        )
    if event_name:
        label = escape(event_name)
        body += f'<p>Event: <a href="{escape(event_url)}">{label}</a></p>' if event_url else f"<p>Event: {label}</p>"
    return page("Access Denied - Commons Hub", body)


def wallet_success_page(profile: Optional[dict], today: list[str], users: dict[str, Principal]) -> str:
    profile = profile or {}
    body = (
        f'<img src="{escape(profile.get("image_medium") or DEFAULT_AVATAR)}" alt="Avatar" class="avatar">'
        f"<h1>Welcome {escape(profile.get('username') or 'visitor')}!</h1>"
        f"<h2>Door opened</h2>{avatar_grid(today, users)}"
        f'<a href="{WALLET_CLOSE_URL}">Close</a>'
    )
    return page("Door opened", body, redirect=WALLET_CLOSE_URL, redirect_after=5)


def wallet_forbidden_page(profile: Optional[dict]) -> str:
    name = (profile or {}).get("username") or "visitor"
    body = (
        f"<h1>Sorry {escape(name)}</h1>"
        "<p>You need a positive community token balance to open the door.</p>"
        f'<a href="{WALLET_CLOSE_URL}">Close</a>'
    )
    return page("Access Denied", body)


def wallet_no_app_page(community: Optional[dict]) -> str:
    name = ((community or {}).get("community") or {}).get("name", "the community")
    body = (
        "<h1>Open the door with your wallet</h1>"
        f"<p>Install the Citizen Wallet app and join {escape(name)} to open the door.</p>"
    )
    return page("Door", body)
