"""
Exec Restrictions - Hard blocks for sudo and outbound HTTP

Guarded execution refuses ``sudo`` and http(s) URLs that leave the local
machine unless the operator opted in through EXECGUARD_ALLOW_SUDO or
EXECGUARD_ALLOW_NET. Loopback hosts never count as external. Neither
block can be lifted by trust, bypass or approval.
"""

import os
import re
from typing import List, Mapping
from urllib.parse import urlsplit

ALLOW_SUDO_ENV = "EXECGUARD_ALLOW_SUDO"
ALLOW_NET_ENV = "EXECGUARD_ALLOW_NET"

_URL = re.compile(r"https?://[^\s'\"]+")


def read_opt_in(env: Mapping[str, str], var_name: str) -> bool:
    """Any non-empty value opts in"""
    return bool(env.get(var_name))


def is_local_host(host: str) -> bool:
    host = host.lower()
    return host in ("localhost", "::1") or host.startswith("127.")


def external_urls(text: str) -> List[str]:
    """http(s) URLs in text whose host is not loopback, in order"""
    found: List[str] = []
    for raw in _URL.findall(text):
        try:
            host = urlsplit(raw).hostname
        except ValueError:
            continue
        if host and not is_local_host(host):
            found.append(raw)
    return found


def is_sudo(text: str) -> bool:
    """True if the command line runs sudo as its program"""
    words = text.split(maxsplit=1)
    return bool(words) and os.path.basename(words[0]) == "sudo"
