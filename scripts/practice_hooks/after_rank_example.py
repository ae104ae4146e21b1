"""Example afterRank hook: drop reddit results from the ranked list.

Enable it in practice.config.json:

    "hooks": {"afterRank": {"module": "scripts/practice_hooks/after_rank_example.py"}}
"""


def hook(payload, metadata):
    ranked = payload.get("ranked") or []
    kept = [item for item in ranked if not str(item.get("domain", "")).endswith("reddit.com")]
    return {**payload, "ranked": kept}
