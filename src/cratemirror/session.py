"""HTTP session used to download archives."""

from __future__ import annotations

import requests
from requests.adapters import HTTPAdapter

from . import __version__

USER_AGENT = f"cratemirror/{__version__}"


def user_agent(contact: str | None = None) -> str:
    """
    Return the User-Agent header value.

    Some registries ask crawlers to provide contact information, which we
    append in parentheses when given.
    """
    return USER_AGENT if not contact else f"{USER_AGENT} ({contact})"


def build_session(*, jobs: int, contact: str | None = None) -> requests.Session:
    """Create a session whose connection pool can serve `jobs` workers."""
    session = requests.Session()
    session.headers["User-Agent"] = user_agent(contact)
    adapter = HTTPAdapter(pool_connections=jobs, pool_maxsize=jobs)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session
