#!/usr/bin/env python3
"""Audit LLM API usage from call logs.

Parses llm_calls_*.jsonl (and lesson_gen_*.jsonl when present) to produce:
- Calls by model (success/fail rate, estimated cost)
- Calls by task type (one per lesson section, plus title)
- Truncation: how often a budget ran out and was halved
- Failure kinds (QUOTA / NETWORK / MAX_TOKENS_NO_CONTENT / MALFORMED_RESPONSE)
- Section regeneration counts from the lesson generation log
- Daily volume

Usage:
    python3 scripts/audit_llm_usage.py                    # default: backend/data/logs/
    python3 scripts/audit_llm_usage.py --log-dir /path    # custom log dir
    python3 scripts/audit_llm_usage.py --days 7           # last N days only
"""

import argparse
import collections
import glob
import json
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Approximate pricing per 1M tokens (USD): (input, output)
PRICING = {
    "gemini/gemini-3-flash-preview": (0.075, 0.30),
    "gpt-5.2": (2.50, 10.0),
    "claude-haiku-4-5": (0.80, 4.0),
}

CHARS_PER_TOKEN = 4


def parse_logs(log_dir: str, prefix: str, days: int | None = None) -> list[dict]:
    """Parse all <prefix>_*.jsonl files, optionally filtering by recency."""
    entries = []
    files = sorted(glob.glob(os.path.join(log_dir, f"{prefix}_*.jsonl")))

    if days:
        cutoff = (datetime.now() - timedelta(days=days)).strftime("%Y-%m-%d")
        files = [f for f in files if os.path.basename(f).replace(f"{prefix}_", "").replace(".jsonl", "") >= cutoff]

    for f in files:
        with open(f) as fh:
            for line in fh:
                try:
                    entries.append(json.loads(line))
                except (json.JSONDecodeError, ValueError):
                    pass
    return entries


def estimate_cost(entry: dict) -> float:
    """Estimate cost of one call, from token usage when logged, else prompt length."""
    price_in, price_out = PRICING.get(entry.get("model", ""), (0.10, 0.40))
    prompt_tokens = entry.get("prompt_tokens") or entry.get("prompt_length", 0) / CHARS_PER_TOKEN
    completion_tokens = entry.get("completion_tokens")
    if completion_tokens is None:
        completion_tokens = entry.get("max_output_tokens") or 0
    return (prompt_tokens * price_in + completion_tokens * price_out) / 1_000_000


def find_log_dir() -> str | None:
    script_dir = Path(__file__).resolve().parent
    candidates = [
        script_dir.parent / "data" / "logs",
        Path("/app/data/logs"),  # Docker path
    ]
    for c in candidates:
        if c.exists():
            return str(c)
    return None


def main():
    parser = argparse.ArgumentParser(description="Audit LLM API usage")
    parser.add_argument("--log-dir", default=None, help="Log directory (default: backend/data/logs/)")
    parser.add_argument("--days", type=int, default=None, help="Only analyze last N days")
    args = parser.parse_args()

    log_dir = args.log_dir or find_log_dir()
    if not log_dir:
        print("ERROR: No log directory found. Use --log-dir.", file=sys.stderr)
        sys.exit(1)

    entries = parse_logs(log_dir, "llm_calls", args.days)
    if not entries:
        print(f"No log entries found in {log_dir}")
        sys.exit(0)

    dates = sorted(set(e.get("ts", "")[:10] for e in entries if e.get("ts")))
    print("=" * 70)
    print(f"LLM Usage Audit: {len(entries)} calls from {dates[0]} to {dates[-1]}")
    print(f"Log directory: {log_dir}")
    print("=" * 70)

    # === By Model ===
    print("\n--- Calls by Model ---")
    model_stats: dict[str, dict] = collections.defaultdict(lambda: {"ok": 0, "fail": 0, "cost": 0.0})
    for e in entries:
        s = model_stats[e.get("model", "?")]
        if e.get("success"):
            s["ok"] += 1
            s["cost"] += estimate_cost(e)
        else:
            s["fail"] += 1

    total_cost = 0.0
    for model in sorted(model_stats, key=lambda m: model_stats[m]["ok"] + model_stats[m]["fail"], reverse=True):
        s = model_stats[model]
        total = s["ok"] + s["fail"]
        rate = s["ok"] / total * 100 if total else 0
        total_cost += s["cost"]
        print(f"  {model:34s}  total={total:>5}  ok={s['ok']:>5}  fail={s['fail']:>3}  rate={rate:5.1f}%  est_cost=${s['cost']:.3f}")
    print(f"\n  TOTAL: {len(entries)} calls, estimated cost ${total_cost:.3f}")
    if len(dates) > 1:
        print(f"  Average: ${total_cost / len(dates):.3f}/day over {len(dates)} days")

    # === By Task Type ===
    print("\n--- Calls by Task Type ---")
    task_stats: dict[str, dict] = collections.defaultdict(lambda: {"count": 0, "fail": 0, "truncated": 0, "chars": 0})
    for e in entries:
        t = task_stats[e.get("task_type") or "untagged"]
        t["count"] += 1
        t["chars"] += e.get("prompt_length", 0)
        if not e.get("success"):
            t["fail"] += 1
        if e.get("truncated"):
            t["truncated"] += 1

    for task in sorted(task_stats, key=lambda t: task_stats[t]["count"], reverse=True):
        t = task_stats[task]
        avg_p = t["chars"] / t["count"] if t["count"] else 0
        print(f"  {task:22s}  calls={t['count']:>5}  fail={t['fail']:>3}  truncated={t['truncated']:>3}  avg_prompt={avg_p:.0f} chars")

    # === Truncation ===
    truncated = [e for e in entries if e.get("truncated")]
    if truncated:
        print(f"\n--- Truncated Responses ({len(truncated)}) ---")
        budgets = collections.Counter(e.get("max_output_tokens") for e in truncated)
        for budget, count in sorted(budgets.items(), key=lambda kv: kv[0] or 0, reverse=True):
            print(f"  max_output_tokens={budget!s:>6}  {count:>4}x")

    # === Failure Analysis ===
    failures = [e for e in entries if not e.get("success")]
    if failures:
        print(f"\n--- Failure Analysis ({len(failures)} failures) ---")
        kinds = collections.Counter(e.get("failure_kind", "unclassified") for e in failures)
        for kind, count in kinds.most_common():
            print(f"  {count:>4}x  {kind}")
        err_counts = collections.Counter()
        for e in failures:
            err = (e.get("error") or "unknown")[:80]
            err_counts[f"{e.get('model', '?')}: {err}"] += 1
        print()
        for err, count in err_counts.most_common(10):
            print(f"  {count:>4}x  {err}")

    # === Regenerations ===
    gen_entries = parse_logs(log_dir, "lesson_gen", args.days)
    if gen_entries:
        print("\n--- Section Regenerations ---")
        validated = [e for e in gen_entries if e.get("event") == "validated"]
        retries = collections.Counter(e.get("section") for e in validated if (e.get("attempt") or 1) > 1)
        invalid = collections.Counter(e.get("section") for e in validated if not e.get("valid"))
        for section in sorted(set(retries) | set(invalid)):
            print(f"  {section:22s}  retries={retries[section]:>4}  invalid={invalid[section]:>4}")
        failed = [e for e in gen_entries if e.get("event") == "lesson_failed"]
        completed = [e for e in gen_entries if e.get("event") == "lesson_complete"]
        print(f"\n  lessons: completed={len(completed)} failed={len(failed)}")

    # === Daily Volume ===
    print("\n--- Daily Volume ---")
    daily = collections.Counter()
    daily_cost: dict[str, float] = collections.defaultdict(float)
    for e in entries:
        day = e.get("ts", "")[:10]
        daily[day] += 1
        if e.get("success"):
            daily_cost[day] += estimate_cost(e)

    for day in sorted(daily):
        count = daily[day]
        bar = "#" * (count // 20)
        print(f"  {day}  {count:>5}  ${daily_cost.get(day, 0):.3f}  {bar}")

    print()


if __name__ == "__main__":
    main()
