"""
Run Identity

A solve run is identified by a runId that is either supplied by the
caller or derived from a content hash over:

    (accountId, canonicalized ProblemSpec, Idempotency-Key)

Canonicalization sorts object keys, drops nulls and sorts every list
except the ordered ones (secondary objective hints), so the hash does not
depend on payload arrival order. Identical input + key always yields the
identical runId, which is what makes solve safe to retry.
"""

import hashlib
import json
from typing import Any, Optional

from season_scheduler.services.scheduler_schemas import ProblemSpec

RUN_ID_HASH_LENGTH = 16

# List-valued keys whose order carries meaning and must be preserved
ORDERED_LIST_KEYS = frozenset({"secondary"})


def canonicalize(value: Any, key: Optional[str] = None) -> Any:
    if isinstance(value, dict):
        return {k: canonicalize(v, k) for k, v in sorted(value.items()) if v is not None}
    if isinstance(value, list):
        items = [canonicalize(v) for v in value]
        if key in ORDERED_LIST_KEYS:
            return items
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True, default=str))
    return value


def canonical_problem_json(spec: ProblemSpec) -> str:
    """Stable JSON for a ProblemSpec, excluding its runId."""
    data = spec.model_dump(mode="json", by_alias=True, exclude={"run_id"})
    return json.dumps(canonicalize(data), sort_keys=True, separators=(",", ":"), default=str)


def derive_run_id(
    spec: ProblemSpec,
    account_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> str:
    prefix = f"sched_account_{account_id}" if account_id is not None else "sched"
    payload = f"{prefix}:spec:{canonical_problem_json(spec)}"
    if idempotency_key:
        payload += f":key:{idempotency_key}"
    digest = hashlib.sha256(payload.encode()).hexdigest()[:RUN_ID_HASH_LENGTH]
    return f"{prefix}_{digest}"


def resolve_run_id(
    spec: ProblemSpec,
    account_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> str:
    """Caller-supplied runId wins; otherwise derive one."""
    if spec.run_id:
        return spec.run_id
    return derive_run_id(spec, account_id=account_id, idempotency_key=idempotency_key)
