#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse


def abs_url(u: str, base: str) -> str:
    if not u:
        return ""
    u = u.strip()
    if u.startswith("//"):
        return "https:" + u
    if u.startswith("http"):
        return u
    return urljoin(base, u)


def with_query(u: str, **params: object) -> str:
    """Set query parameters on ``u``, keeping the rest of its query and fragment."""
    p = urlparse(u)
    query = [(k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if k not in params]
    query.extend((k, str(v)) for k, v in params.items())
    return urlunparse(p._replace(query=urlencode(query)))


def sanitize_filename(s: str) -> str:
    return re.sub(r'[\\/*?:"<>|]+', "_", s).strip() or "File"
