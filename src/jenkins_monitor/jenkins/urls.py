"""URL composition and reconciliation for the Jenkins JSON API.

Jenkins is known to hand back ``lastBuild.url`` values that point at an
internal address (``http://10.0.0.5:8080/...``) instead of the public host the
monitor talks to, and folder names with unescaped spaces. Reconciliation is a
compatibility policy: keep a reference on the configured scheme and host
as-is, otherwise graft its path onto the configured base.
"""

from __future__ import annotations

import string
from urllib.parse import SplitResult, quote, urljoin, urlsplit, urlunsplit

from jenkins_monitor.errors import MalformedUpstreamReference

API_SUFFIX = "api/json"

# RFC 3986 reserved and unreserved characters, plus "%" for existing escapes.
_URL_SAFE = set(string.ascii_letters + string.digits + "-._~:/?#[]@!$&'()*+,;=%")
_QUOTE_SAFE = ":/?#[]@!$&'()*+,;=%~"


def build_job_url(base_url: str, job_name: str) -> str:
    """Compose the URL of a (possibly nested) job.

    Each ``/``-separated segment is percent-encoded on its own and prefixed
    with ``/job/``, e.g. ``folder/sub/nightly build`` becomes
    ``/job/folder/job/sub/job/nightly%20build``. Empty segments are ignored.
    """
    url = base_url.rstrip("/")
    for part in job_name.split("/"):
        if part:
            url += f"/job/{quote(part, safe='')}"
    return url


def build_job_api_url(base_url: str, job_name: str) -> str:
    return f"{build_job_url(base_url, job_name)}/{API_SUFFIX}"


def build_job_config_url(base_url: str, job_name: str) -> str:
    return f"{build_job_url(base_url, job_name)}/config.xml"


def parse_strict(raw: str) -> SplitResult:
    """Parse an absolute http(s) URL, rejecting characters that need escaping.

    :raises ValueError: If ``raw`` is not a well-formed absolute URL.
    """
    bad = sorted({ch for ch in raw if ch not in _URL_SAFE})
    if bad:
        raise ValueError(f"unescaped characters {''.join(bad)!r}")
    parts = urlsplit(raw)
    if parts.scheme.lower() not in ("http", "https"):
        raise ValueError(f"unsupported scheme {parts.scheme!r}")
    if not parts.hostname:
        raise ValueError("missing host")
    _ = parts.port  # raises ValueError on a bad port
    return parts


def _same_origin(left: SplitResult, right: SplitResult) -> bool:
    return left.scheme.lower() == right.scheme.lower() and left.hostname == right.hostname


def _with_api_suffix(parts: SplitResult) -> str:
    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    return urlunsplit((parts.scheme, parts.netloc, path + API_SUFFIX, "", ""))


def build_api_url_from_last_build(raw: str, configured_base: str) -> str:
    """Turn a ``lastBuild.url`` reference into the build's ``api/json`` URL.

    :param raw: URL returned by Jenkins for the last build.
    :param configured_base: Jenkins base URL from configuration.
    :return: Request URL on the configured host.
    :raises MalformedUpstreamReference: If ``raw`` cannot be parsed even after
        percent-encoding, or the configured base itself is unusable.
    """
    reference = raw.strip() if isinstance(raw, str) else ""
    if not reference:
        raise MalformedUpstreamReference(str(raw), "empty reference")
    if not reference.endswith("/"):
        reference += "/"

    try:
        parts = parse_strict(reference)
    except ValueError:
        try:
            parts = parse_strict(quote(reference, safe=_QUOTE_SAFE))
        except ValueError as exc:
            raise MalformedUpstreamReference(raw, str(exc)) from exc

    try:
        base = parse_strict(configured_base)
    except ValueError as exc:
        raise MalformedUpstreamReference(raw, f"configured base {configured_base!r} is invalid: {exc}") from exc

    if _same_origin(parts, base):
        return _with_api_suffix(parts)

    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    joined = urlsplit(urljoin(urlunsplit(base), path))
    return _with_api_suffix(joined)


def describe_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` of ``url`` for log messages, without credentials."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://{host}"
