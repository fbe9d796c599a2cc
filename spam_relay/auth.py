"""
auth.py — Hive Permission Check
================================
Every send is authorized by Hive. This layer never makes a local decision.

    GET {HIVE_URL}/token/{key}/permission/send
    Authorization: Bearer {HIVE_SECRET}

Hive answers with the literal text "true" or "false". Anything else, an HTTP
error status or a network failure is a lookup failure, not a denial.

Configuration is read per call, so a missing variable only fails requests:
  HIVE_URL      — Hive base URL (required)
  HIVE_SECRET   — bearer token for Hive (required)
  HIVE_TIMEOUT  — seconds, optional; unset means the socket default
"""

import http.client
import logging
import os
import urllib.error
import urllib.parse
import urllib.request

from spam_relay.errors import ApiKeyLookupError, ConfigurationMissingError

log = logging.getLogger(__name__)


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ConfigurationMissingError(name)
    return value


def _timeout() -> float | None:
    raw = os.environ.get("HIVE_TIMEOUT")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationMissingError(f"HIVE_TIMEOUT is not a number: {raw!r}")


def permission_url(hive_url: str, key: str) -> str:
    return f"{hive_url.rstrip('/')}/token/{urllib.parse.quote(key, safe='')}/permission/send"


def _call_hive(url: str, secret: str, timeout: float | None) -> str:
    kwargs = {} if timeout is None else {'timeout': timeout}
    try:
        req = urllib.request.Request(url, headers={
            'Authorization': f'Bearer {secret}',
            'Accept': 'text/plain',
        })
        with urllib.request.urlopen(req, **kwargs) as resp:
            return resp.read().decode('utf-8', errors='replace')
    except urllib.error.HTTPError as e:
        raise ApiKeyLookupError(f"Hive returned HTTP {e.code}") from e
    except (urllib.error.URLError, OSError) as e:
        raise ApiKeyLookupError(str(e)) from e
    except http.client.HTTPException as e:
        raise ApiKeyLookupError(f"Malformed response from Hive: {e!r}") from e
    except ValueError as e:
        # Raised by Request for a HIVE_URL without a scheme
        raise ApiKeyLookupError(f"Bad Hive URL: {e}") from e


def check_permission(key: str) -> bool:
    """
    Public interface. Pipeline calls this.
    True/False is Hive's answer; every other outcome raises.
    """
    hive_url = _require_env('HIVE_URL')
    secret = _require_env('HIVE_SECRET')

    body = _call_hive(permission_url(hive_url, key), secret, _timeout()).strip()
    log.debug(f"Hive answered '{body}' for send permission")

    if body == 'true':
        return True
    if body == 'false':
        return False
    raise ApiKeyLookupError(f"Key parse failed: unexpected response '{body[:80]}'")
