from __future__ import annotations
import re
from collections import Counter
from typing import Iterable

# Fastly log fields (whitespace separated) used for counting
PATH_FIELD = 10
STATUS_FIELD = 11

# We consider a 304 response a download attempt too
DOWNLOAD_STATUSES = frozenset((200, 304))

# Leading greedy .* anchors the capture on the last /gems/ segment
GEM_PATH_PATTERN = re.compile(r".*/gems/(?P<path>.+)\.gem")


def download_counts(lines: Iterable[str]) -> Counter:
    """
    Fold log lines into download counts per gem version.

    E.g.
        Counter({'rails-4.0.0': 25, 'rails-4.2.0': 50})

    Lines that are too short, carry a non-numeric or non-download status, or
    whose path is not a .gem file are skipped.
    """
    counts: Counter = Counter()
    for line in lines:
        full_name = parse_line(line)
        if full_name is not None:
            counts[full_name] += 1
    return counts


def parse_line(line: str) -> str | None:
    """Return the gem version full name downloaded by this line, if any."""
    fields = line.split()
    if len(fields) <= STATUS_FIELD:
        return None

    path, status = fields[PATH_FIELD], fields[STATUS_FIELD]
    try:
        if int(status) not in DOWNLOAD_STATUSES:
            return None
    except ValueError:
        return None

    match = GEM_PATH_PATTERN.match(path)
    if match is None:
        return None
    return match.group("path")
