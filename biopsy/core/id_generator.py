"""
Experiment identifiers.

An experiment id names what was run, not just when:

    <target>.<strategy>[.seed<N>].<YYYYMMDDTHHMMSSZ>.<hex6>

    soap_dt.tabu.20261018T101500Z.3fa81c
    soap_dt.spea2.seed42.20261018T101500Z.91d0e2

The trailing random tag keeps two runs started in the same second apart,
which the ledger requires since ``(experiment_id, sequence_id)`` is unique.
"""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timezone
from typing import Dict, Optional

_UNSAFE = re.compile(r"[^a-z0-9]+")


def slugify(name: str, fallback: str) -> str:
    """Lower-case ``name`` and collapse anything but letters and digits to ``_``."""
    slug = _UNSAFE.sub("_", name.lower()).strip("_")
    return slug or fallback


def generate_experiment_id(
    target: str,
    strategy: str,
    seed: Optional[int] = None,
    now: Optional[datetime] = None,
) -> str:
    parts = [slugify(target, "target"), slugify(strategy, "strategy")]
    if seed is not None:
        parts.append(f"seed{seed}")
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    parts.extend([stamp, secrets.token_hex(3)])
    return ".".join(parts)


def parse_experiment_id(experiment_id: str) -> Dict[str, Optional[str]]:
    """
    Split an id produced by generate_experiment_id back into its fields.

    Raises:
        ValueError: the id does not have the expected shape.
    """
    parts = experiment_id.split(".")
    if len(parts) == 4:
        target, strategy, stamp, tag = parts
        seed: Optional[str] = None
    elif len(parts) == 5 and parts[2].startswith("seed"):
        target, strategy, seed_part, stamp, tag = parts
        seed = seed_part[len("seed"):]
    else:
        raise ValueError(f"Not an experiment id: {experiment_id!r}")
    return {"target": target, "strategy": strategy, "seed": seed, "started": stamp, "tag": tag}

