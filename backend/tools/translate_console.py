from __future__ import annotations

import argparse
from typing import Any

import httpx


def emit(message: str = "") -> None:
    print(message, flush=True)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Interactive console for the translator backend. Each line is sent as a "
            "translate action; ':swap' flips the language direction, ':detect' toggles "
            "auto-detect mode, ':status' prints orchestrator metrics, ':quit' exits."
        )
    )
    parser.add_argument(
        "--base-url",
        default="http://127.0.0.1:8000",
        help="Backend base URL (default: http://127.0.0.1:8000)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="HTTP timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "text",
        nargs="?",
        help="Translate a single text and exit instead of starting the console",
    )
    return parser.parse_args()


def _language_label(payload: dict[str, Any], key: str) -> str:
    language = payload.get(key)
    if isinstance(language, dict):
        return str(language.get("name") or language.get("code") or "?")
    return "?"


def render_result(payload: dict[str, Any]) -> None:
    status = payload.get("status")
    direction = (
        f"{_language_label(payload, 'source_language')} -> "
        f"{_language_label(payload, 'target_language')}"
    )

    if status == "empty":
        return
    if status == "busy":
        emit("a translation is already running, try again when it finishes")
        return
    if status == "gated":
        emit(f"cooling down: {payload.get('cooldown_remaining_seconds', 0)}s remaining")
        return
    if status == "failed":
        emit(f"error: {payload.get('message') or 'translation failed'}")
        return

    origin = "cache" if status == "cached" else "model"
    emit(f"[{direction}] ({origin})")
    emit(f"  {payload.get('translation')}")
    replies = payload.get("suggested_replies") or []
    for index, reply in enumerate(replies, start=1):
        emit(f"  suggestion {index}: {reply}")


def translate_once(
    client: httpx.Client,
    base_url: str,
    text: str,
    mode: str,
) -> dict[str, Any]:
    response = client.post(f"{base_url}/translations", json={"text": text, "mode": mode})
    response.raise_for_status()
    return response.json()


def run_console(client: httpx.Client, base_url: str) -> None:
    mode = "translate"
    direction = client.get(f"{base_url}/translations/direction").json()
    emit(
        f"direction: {_language_label(direction, 'source_language')} -> "
        f"{_language_label(direction, 'target_language')}"
    )

    while True:
        try:
            line = input("> ")
        except EOFError:
            emit()
            return

        command = line.strip()
        if command == ":quit":
            return
        if command == ":swap":
            direction = client.post(f"{base_url}/translations/direction/swap").json()
            emit(
                f"direction: {_language_label(direction, 'source_language')} -> "
                f"{_language_label(direction, 'target_language')}"
            )
            continue
        if command == ":detect":
            mode = "translate" if mode == "detect" else "detect"
            emit(f"mode: {mode}")
            continue
        if command == ":status":
            status = client.get(f"{base_url}/translations/status").json()
            for key in ("translations", "cache_hits", "failures", "gated_rejections"):
                emit(f"  {key}={status.get(key)}")
            cooldown = status.get("cooldown") or {}
            emit(f"  cooldown_remaining={cooldown.get('remaining_seconds')}")
            continue

        render_result(translate_once(client, base_url, line, mode))


def main() -> int:
    args = parse_args()
    base_url = args.base_url.rstrip("/")

    with httpx.Client(timeout=max(1.0, args.timeout)) as client:
        try:
            health = client.get(f"{base_url}/health")
            health.raise_for_status()
        except httpx.HTTPError as exc:
            emit(f"failed to reach backend health endpoint: {exc}")
            return 2

        try:
            if args.text is not None:
                render_result(translate_once(client, base_url, args.text, "translate"))
            else:
                run_console(client, base_url)
        except httpx.HTTPError as exc:
            emit(f"request failed: {exc}")
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
