"""Smoke test: push sample reflections through a running Double Mirror API.

Reports score distributions per question, latency, and how many
submissions ended in retry exhaustion.
Usage: python -m scripts.smoke_analysis [--rounds 3] [--base-url http://localhost:8000] [--lang en]
"""
import argparse
import asyncio
import random
import statistics
import sys
import time
from typing import Any

import httpx


DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_ROUNDS = 3

SAMPLE_ANSWERS = {
    "routine": [
        "I drink a full glass of water right after waking up to rehydrate, then do ten minutes of stretching "
        "to wake my body. Before opening email I write down my tasks and pick the 3 most important ones to "
        "do first while my focus is highest.",
        "Honestly I just hit snooze a few times and scroll my phone in bed until I feel ready to face the day.",
    ],
    "money_logic": [
        "Use the 100 won as a token to open a brokerage position with maximum leverage and exploit price gaps "
        "between two markets, borrowing other people's capital to scale quickly within the 48 hours.",
        "I would sell handmade bracelets to my neighbours and save every coin I earn.",
    ],
    "whale_space": [
        "Build a pressurised water capsule with radiation shielding, spin it for artificial gravity so the "
        "whale's muscles don't waste away, and run a closed ecosystem that recycles carbon and oxygen.",
        "Teach the whale to hold its breath for a really long time and hope for the best.",
    ],
    "water_existential": [
        "Organic life collapses within days, the planet loses its cooling system causing temperature spikes "
        "and geological upheaval, and only machines with solid-state cooling could keep running.",
        "Everyone would be very thirsty and sad, and the oceans would turn into deserts.",
    ],
}


async def submit(
    client: httpx.AsyncClient,
    base_url: str,
    question_id: str,
    text: str,
    lang: str,
    mode: str,
) -> tuple[int, dict[str, Any] | None]:
    """Submit a single reflection and return (status_code, body)."""
    payload = {"question_id": question_id, "user_text": text, "language": lang, "mode": mode}
    try:
        resp = await client.post(f"{base_url}/api/v1/analysis", json=payload, timeout=90.0)
    except Exception as e:
        print(f"  [ERROR] {question_id}: {e}")
        return 0, None
    body = resp.json() if resp.content else None
    return resp.status_code, body


async def run_smoke(base_url: str, rounds: int, lang: str) -> dict[str, Any]:
    print(f"\n{'='*60}")
    print(f"Double Mirror Smoke Test: {rounds} rounds")
    print(f"Target: {base_url}")
    print(f"{'='*60}\n")

    results: dict[str, Any] = {
        "submitted": 0,
        "succeeded": 0,
        "exhausted": 0,
        "errors": [],
        "scores": {qid: [] for qid in SAMPLE_ANSWERS},
        "latency": [],
        "attempts": [],
    }

    async with httpx.AsyncClient() as client:
        for r in range(rounds):
            print(f"[{r + 1}/{rounds}] Submitting {sum(len(v) for v in SAMPLE_ANSWERS.values())} answers...")
            for question_id, answers in SAMPLE_ANSWERS.items():
                for text in answers:
                    mode = random.choice(["sync", "identity"])
                    t0 = time.monotonic()
                    status, body = await submit(client, base_url, question_id, text, lang, mode)
                    results["latency"].append(time.monotonic() - t0)
                    results["submitted"] += 1

                    if status == 200 and body:
                        results["succeeded"] += 1
                        results["scores"][question_id].append(body["sync_score"])
                        results["attempts"].append(body["attempts"])
                    elif status == 503:
                        results["exhausted"] += 1
                        results["errors"].append(f"{question_id}: {body.get('error') if body else status}")
                    else:
                        results["errors"].append(f"{question_id}: status {status} {body}")

    print(f"\n{'='*60}")
    print("SMOKE TEST RESULTS")
    print(f"{'='*60}")
    print(f"Succeeded: {results['succeeded']}/{results['submitted']}")
    print(f"Exhausted: {results['exhausted']}")

    for question_id, scores in results["scores"].items():
        if scores:
            print(f"\n{question_id} sync scores: {scores}")
            print(f"  mean:   {statistics.mean(scores):.1f}")
            print(f"  spread: {max(scores) - min(scores)}")

    if results["latency"]:
        latency = sorted(results["latency"])
        print("\nlatency:")
        print(f"  mean:   {statistics.mean(latency):.2f}s")
        print(f"  p95:    {latency[int(len(latency) * 0.95)]:.2f}s")
        print(f"  max:    {max(latency):.2f}s")

    if results["attempts"]:
        print(f"\nmean attempts per success: {statistics.mean(results['attempts']):.2f}")

    if results["errors"]:
        print(f"\nErrors ({len(results['errors'])}):")
        for e in results["errors"][:10]:
            print(f"  - {e}")

    print(f"\n{'='*60}\n")
    return results


def main():
    parser = argparse.ArgumentParser(description="Double Mirror Smoke Test")
    parser.add_argument("--rounds", type=int, default=DEFAULT_ROUNDS, help="Passes over the sample answers")
    parser.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    parser.add_argument("--lang", choices=["ko", "en"], default="en", help="Feedback language")
    args = parser.parse_args()

    results = asyncio.run(run_smoke(args.base_url, args.rounds, args.lang))

    success_rate = results["succeeded"] / max(results["submitted"], 1)
    if success_rate < 0.8:
        print(f"FAIL: Only {success_rate:.0%} success rate (target: 80%)")
        sys.exit(1)
    print(f"PASS: {success_rate:.0%} success rate")


if __name__ == "__main__":
    main()
