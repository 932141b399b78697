from __future__ import annotations

import logging
import urllib.parse

import httpx

from .errors import KeyFetchError, NoAuthorizedKeys
from .options import DEFAULT_PROFILE_URL

logger = logging.getLogger(__name__)

KeySet = tuple[str, ...]

DEFAULT_FETCH_TIMEOUT = 10.0


def resolve_literal_keys(raw: str | None) -> KeySet:
    """Split multi-line key text into one entry per non-blank line, keeping order.

    Key syntax is not validated here; sshd rejects malformed entries itself.
    """
    return tuple(line for line in (raw or "").splitlines() if line.strip())


def keys_url(username: str, *, profile_url: str = DEFAULT_PROFILE_URL) -> str:
    return f"{profile_url.rstrip('/')}/{urllib.parse.quote(username, safe='')}.keys"


def fetch_remote_keys(
        username: str,
        *,
        profile_url: str = DEFAULT_PROFILE_URL,
        timeout_s: float = DEFAULT_FETCH_TIMEOUT,
) -> KeySet:
    url = keys_url(username, profile_url=profile_url)
    logger.debug(f"GET {url}")
    try:
        response = httpx.get(url, timeout=timeout_s, follow_redirects=True)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise KeyFetchError(f"Could not fetch keys for {username}: {exc}") from exc
    if response.status_code != 200:
        raise KeyFetchError(f"{url} returned HTTP {response.status_code}")
    return resolve_literal_keys(response.text)


def resolve(
        literal: str | None,
        use_remote: bool,
        remote_username: str | None,
        *,
        profile_url: str = DEFAULT_PROFILE_URL,
        timeout_s: float = DEFAULT_FETCH_TIMEOUT,
) -> KeySet:
    keys = list(resolve_literal_keys(literal))
    if use_remote:
        if not remote_username:
            logger.warning("Remote keys requested but no username is available; skipping fetch.")
        else:
            try:
                remote = fetch_remote_keys(remote_username, profile_url=profile_url, timeout_s=timeout_s)
            except KeyFetchError as exc:
                logger.warning(f"Could not fetch public keys for {remote_username}: {exc}")
            else:
                if not remote:
                    logger.warning(f"No public keys published for {remote_username}.")
                keys.extend(remote)
    if not keys:
        raise NoAuthorizedKeys(
            "No public keys provided. Set authorized-keys, or enable use-actor-ssh-keys "
            "for an account that has public keys."
        )
    return tuple(keys)
