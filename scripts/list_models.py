"""List Gemini models and check the configured model chains against them.

Model identifiers get deprecated and renamed; this probes which of the
configured primary/fallback models the API key can actually reach on the
``v1`` and ``v1beta`` REST endpoints.
Usage: python -m scripts.list_models [--all] [--model models/gemini-2.0-flash ...]
"""
import argparse
import sys

sys.path.insert(0, ".")

import google.generativeai as genai
import httpx

from app.config import get_settings

API_ROOT = "https://generativelanguage.googleapis.com"
API_VERSIONS = ("v1", "v1beta")


def _qualified(name: str) -> str:
    return name if name.startswith("models/") else f"models/{name}"


def list_sdk_models(show_all: bool) -> list[str]:
    """Models visible through the SDK; text-generation models only unless ``show_all``."""
    names = []
    for model in genai.list_models():
        if show_all or "generateContent" in model.supported_generation_methods:
            names.append(model.name)
    return sorted(names)


def fetch_rest_models(client: httpx.Client, version: str, api_key: str) -> set[str]:
    names: set[str] = set()
    page_token = None
    while True:
        params = {"key": api_key, "pageSize": 1000}
        if page_token:
            params["pageToken"] = page_token
        resp = client.get(f"{API_ROOT}/{version}/models", params=params)
        resp.raise_for_status()
        data = resp.json()
        names.update(m["name"] for m in data.get("models", []))
        page_token = data.get("nextPageToken")
        if not page_token:
            return names


def main():
    parser = argparse.ArgumentParser(description="Double Mirror model availability probe")
    parser.add_argument("--all", action="store_true", help="List every model, not only generateContent ones")
    parser.add_argument("--model", action="append", default=[], help="Extra model id to check (repeatable)")
    args = parser.parse_args()

    settings = get_settings()
    if not settings.GEMINI_API_KEY:
        print("GEMINI_API_KEY is not set (env or .env)")
        sys.exit(2)

    genai.configure(api_key=settings.GEMINI_API_KEY)

    print(f"\n{'='*60}")
    print("Models visible to this key (SDK)")
    print(f"{'='*60}")
    for name in list_sdk_models(args.all):
        print(f"  {name}")

    wanted = []
    for name in [*settings.scoring_model_chain, *settings.feedback_model_chain, *args.model]:
        qualified = _qualified(name)
        if qualified not in wanted:
            wanted.append(qualified)

    print(f"\n{'='*60}")
    print("Configured chain availability (REST)")
    print(f"{'='*60}")

    missing = 0
    with httpx.Client(timeout=20.0) as client:
        available: dict[str, set[str]] = {}
        for version in API_VERSIONS:
            try:
                available[version] = fetch_rest_models(client, version, settings.GEMINI_API_KEY)
            except httpx.HTTPError as e:
                print(f"  [{version}] ERROR: {e}")
                available[version] = set()

        for name in wanted:
            found_in = [v for v in API_VERSIONS if name in available[v]]
            if found_in:
                print(f"  FOUND     {name}  ({', '.join(found_in)})")
            else:
                missing += 1
                stem = name.split("/", 1)[-1].split("-")[0]
                similar = sorted(
                    {m for v in API_VERSIONS for m in available[v] if stem in m}
                )[:5]
                print(f"  MISSING   {name}")
                if similar:
                    print(f"            alternatives: {', '.join(similar)}")

    print(f"\n{'='*60}\n")
    if missing:
        print(f"FAIL: {missing} configured model(s) unavailable")
        sys.exit(1)
    print("PASS: every configured model is available")


if __name__ == "__main__":
    main()
