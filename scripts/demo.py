#!/usr/bin/env python3
"""
Avatutor demo: one conversation turn against a running server.
Usage: python scripts/demo.py [--host HOST] [--port PORT] [--character maria] [--text "Hola!"]

Start the server first, e.g.:
    AVATUTOR_PROFILE=demo uvicorn avatutor.api.main:app
"""
from __future__ import annotations
import argparse
import asyncio
import json
import sys
import httpx
import websockets


async def run_demo(host: str, port: int, character: str, text: str) -> None:
    base_url = f"http://{host}:{port}"
    ws_url = f"ws://{host}:{port}/v1/ws/demo-user?character={character}"

    print(f"\nAvatutor demo: connecting to {base_url}\n")

    # ── 1. Health check ───────────────────────────────────────────────────────
    async with httpx.AsyncClient() as client:
        r = await client.get(f"{base_url}/v1/health")
        if r.status_code != 200:
            print(f"[FAIL] Health check failed: {r.status_code}")
            sys.exit(1)
        health = r.json()
        print(f"[health] llm={health['llm']['healthy']}  tts={health['tts']['healthy']}")

    # ── 2. One turn over the WebSocket ────────────────────────────────────────
    seen: list[str] = []
    streamed: list[str] = []
    response_text = ""
    async with websockets.connect(ws_url) as ws:
        await ws.send(json.dumps({"type": "send_message", "text": text}))
        print(f"[sent] {text}\n")

        async for raw in ws:
            evt = json.loads(raw)
            etype = evt.get("type")
            if etype != "vrm_idle":
                seen.append(etype)

            if etype == "character_thinking":
                print("[thinking] ...")

            elif etype == "character_stream" and not evt["isComplete"]:
                streamed.append(evt["text"])
                print(evt["text"], end="", flush=True)

            elif etype == "character_response":
                response_text = evt["text"]
                print(
                    f"\n\n[response] emotion={evt['emotion']} "
                    f"fallback={evt['fallback']} isError={evt['isError']}"
                )

            elif etype == "vrm_animation":
                print(
                    f"[animation] {evt['animation']} gesture={evt['gesture']} "
                    f"duration={evt['duration']}ms"
                )

            elif etype == "language_feedback":
                print(f"[feedback] pattern={evt['pattern']} corrections={evt['corrections']}")

            elif etype == "performance_metrics":
                print(f"[metrics] {evt['responseTime']:.0f}ms slow={evt['isSlowResponse']}")

            elif etype == "voice_audio":
                print(
                    f"[voice] {evt['audioUrl']} {evt['durationMs']:.0f}ms "
                    f"visemes={len(evt['visemes'])}"
                )
                break

            elif etype == "error":
                print(f"\n[ERROR] {evt['errorType']}: {evt['message']}")
                sys.exit(1)

    print(f"\n{'─'*60}")
    print(f"Events:   {' → '.join(seen)}")
    print(f"Response: {response_text}")
    print(f"{'─'*60}")

    if "".join(streamed) != response_text:
        print("[FAIL] Streamed chunks do not add up to the response")
        sys.exit(1)
    if "voice_audio" not in seen:
        print("[FAIL] No voice audio received")
        sys.exit(1)

    print("\n[PASS] Demo turn completed")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--character", default="maria")
    parser.add_argument("--text", default="Hola! Quiero practicar my Spanish, por favor.")
    args = parser.parse_args()
    asyncio.run(run_demo(args.host, args.port, args.character, args.text))


if __name__ == "__main__":
    main()
