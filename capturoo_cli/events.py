"""Webhook event specifications and identifier validation.

An event list is written as ``EVT1,EVT2,lead.created:code-one|code-two``.
``lead.created`` is context driven and must name the buckets it applies to;
every other event is account wide and takes no resources.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Tuple
from urllib.parse import urlparse

from .errors import EventSpecError

CONTEXT_DRIVEN_EVENTS = ("lead.created",)
VALID_EVENTS = ("bucket.created", "bucket.deleted", "lead.created")
MAX_CODE_LENGTH = 40

_CODE_RE = re.compile(r"[a-z0-9-]{1,40}")


@dataclass
class EventSpecifier:
    name: str
    resources: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        if not self.resources:
            return self.name
        return self.name + ":" + "|".join(self.resources)


def is_valid_code(code: str) -> Tuple[bool, str]:
    """Check a bucket resource name or webhook code.

    Returns ``(True, "")`` for a valid code, otherwise ``(False, reason)``
    where reason names the first rule that failed.
    """
    if len(code) == 0:
        return False, "must be at least 1 character in length"
    if len(code) > MAX_CODE_LENGTH:
        return False, f"exceeds {MAX_CODE_LENGTH} characters"
    if code.startswith("-"):
        return False, "starts with hyphen character"
    if code.endswith("-"):
        return False, "ends with hyphen character"
    if "--" in code:
        return False, "has two or more adjacent hyphens"
    if not _CODE_RE.fullmatch(code):
        return False, "must contain lower case characters a-z, digits and the hyphen only"
    return True, ""


def parse_events(spec: str) -> List[EventSpecifier]:
    events: List[EventSpecifier] = []
    for entry in spec.split(","):
        if not entry:
            raise EventSpecError(f"empty event in event list {spec!r}")
        if ":" in entry:
            parts = entry.split(":")
            if len(parts) != 2:
                raise EventSpecError(
                    f"context driven event {entry!r} must contain a single colon : character"
                )
            name, resource_list = parts
            if name not in CONTEXT_DRIVEN_EVENTS:
                raise EventSpecError(f"{name} is not a context driven event and does not take resource names")
            resources = resource_list.split("|")
            for resource in resources:
                valid, reason = is_valid_code(resource)
                if not valid:
                    raise EventSpecError(f"resource name {resource!r} is invalid : {reason}")
            events.append(EventSpecifier(name=name, resources=resources))
        else:
            if entry in CONTEXT_DRIVEN_EVENTS:
                raise EventSpecError(
                    f"{entry} is a context driven event and must contain a resource name "
                    "in the form of evt:resource"
                )
            events.append(EventSpecifier(name=entry))
    return events


def is_valid_secure_webhook_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme == "https" and bool(parsed.netloc)
