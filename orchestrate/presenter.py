"""
Presentation helpers for crawl output.

Builds per-post JSON records (post + comments + orders) and run summaries so
the crawler stays focused on control flow.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
import json
import re


def _safe(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", name) or "_"


def build_post_record(post, comments: list, orders: list, account_id: str | None = None) -> dict:
    return {
        "account_id": account_id,
        "post": post.as_dict(),
        "comments": [c.as_dict() for c in comments],
        "orders": [o.as_dict() for o in orders],
        "written_at": datetime.now(timezone.utc).isoformat(),
    }


def post_json_path(output_dir: Path, band_id: str, post_id: str) -> Path:
    return output_dir / _safe(band_id) / "posts" / f"{_safe(post_id)}.json"


def write_post_json(record: dict, output_dir: Path) -> Path:
    post = record["post"]
    post_file = post_json_path(output_dir, post["band_id"], post["post_id"])
    post_file.parent.mkdir(parents=True, exist_ok=True)
    with open(post_file, "w", encoding="utf-8") as f:
        json.dump(record, f, indent=2, ensure_ascii=False)
    return post_file


def merge_by_key(existing: list[dict], incoming: list[dict], key: str) -> list[dict]:
    """Upsert ``incoming`` into ``existing`` by ``key``, keeping first-seen order."""
    merged = {item[key]: item for item in existing if key in item}
    order = [item[key] for item in existing if key in item]
    for item in incoming:
        if item[key] not in merged:
            order.append(item[key])
        merged[item[key]] = item
    return [merged[k] for k in order]


def order_status_counts(orders: list) -> dict[str, int]:
    return dict(Counter(o.status for o in orders))


def summarize_run(result) -> dict:
    """Flat dict for CLI output and run logs."""
    return {
        "run_id": result.run_id,
        "account_id": result.account_id,
        "status": result.status,
        "posts_loaded": result.posts_loaded,
        "posts_extracted": result.posts_extracted,
        "comments": result.comment_count,
        "orders": len(result.orders),
        "order_status": order_status_counts(result.orders),
        "mismatches": len(result.mismatches),
        "error": result.error,
        "started_at": result.started_at,
        "finished_at": result.finished_at,
    }


__all__ = [
    "build_post_record",
    "merge_by_key",
    "order_status_counts",
    "post_json_path",
    "summarize_run",
    "write_post_json",
]
