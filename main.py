from __future__ import annotations
import argparse
import base64
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional, Dict, Any

import requests
from dotenv import load_dotenv
load_dotenv()

# -----------------------------
# Config defaults
# -----------------------------
DEFAULT_BASE_URL = os.getenv("PICTIONARY_BASE_URL", "http://127.0.0.1:8000")
API = "/v1/pictionary"

# -----------------------------
# Simple HTTP client helpers
# -----------------------------
def _request(method: str, base_url: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    url = f"{base_url.rstrip('/')}{API}{path}"
    r = requests.request(method, url, json=payload, timeout=120)
    if r.status_code >= 400:
        try:
            detail = r.json().get("detail", r.text)
        except ValueError:
            detail = r.text[:1000]
        raise RuntimeError(f"HTTP {r.status_code} from {url}: {detail}")
    return r.json() if r.content else {}

# -----------------------------
# API wrappers
# -----------------------------
def start_session(base_url: str, style: Optional[str] = None) -> Dict[str, Any]:
    return _request("POST", base_url, "/sessions", {"style": style})

def get_state(base_url: str, session_id: str) -> Dict[str, Any]:
    return _request("GET", base_url, f"/sessions/{session_id}")

def start_round(base_url: str, session_id: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/sessions/{session_id}/rounds")

def submit_guess(base_url: str, session_id: str, value: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/sessions/{session_id}/guess", {"value": value})

def set_style(base_url: str, session_id: str, style: str) -> Dict[str, Any]:
    return _request("PUT", base_url, f"/sessions/{session_id}/style", {"style": style})

def reset_game(base_url: str, session_id: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/sessions/{session_id}/reset")

def get_chat(base_url: str, session_id: str) -> Dict[str, Any]:
    return _request("GET", base_url, f"/sessions/{session_id}/chat")

def send_chat(base_url: str, session_id: str, message: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/sessions/{session_id}/chat", {"message": message})

def request_clue(base_url: str, session_id: str) -> Dict[str, Any]:
    return _request("POST", base_url, f"/sessions/{session_id}/clue")

# -----------------------------
# Pretty printers
# -----------------------------
_ROLE_PREFIX = {"model": "AI  ", "user": "You ", "system": "!!  ", "game_event": "--  "}

class ChatPrinter:
    """Prints only the transcript lines not shown yet."""
    def __init__(self):
        self.seen = 0

    def show(self, chat: Dict[str, Any]) -> None:
        messages = chat.get("messages", [])
        if len(messages) < self.seen:
            # transcript was reset
            self.seen = 0
        for m in messages[self.seen:]:
            print(f"{_ROLE_PREFIX.get(m['role'], '    ')}{m['content']}")
        self.seen = len(messages)

def grid(state: Dict[str, Any]) -> str:
    guess = state.get("guess", "")
    if state.get("answer"):
        return " / ".join(state["answer"].upper().split())
    cells, i = [], 0
    for n in state.get("word_lengths", []):
        word = "".join((guess[i + k] if i + k < len(guess) else "_") for k in range(n))
        cells.append(" ".join(word.upper()))
        i += n
    return "   ".join(cells)

def print_state(state: Dict[str, Any], image_dir: Optional[Path] = None) -> None:
    status = state["status"]
    line = f"[{status.upper():7}] score {state['score']}  level {state['level']}  style '{state['style']}'"
    if status == "playing":
        line += f"  0:{state['time_left']:02d}"
    print(line)
    if status in ("playing", "won", "lost"):
        print(f"   {grid(state)}" + ("   ✗ wrong guess" if state.get("wrong_guess") else ""))
        if state.get("image_url"):
            print(f"   image: {_save_image(state, image_dir)}")
    if status in ("won", "lost") and state.get("explanation"):
        print(f"   {state['explanation']}")
    if state.get("error"):
        print(f"   error: {state['error']}  (type /start to try again)")

def _save_image(state: Dict[str, Any], image_dir: Optional[Path]) -> str:
    url = state["image_url"]
    if image_dir is None or not url.startswith("data:"):
        return url[:60] + ("..." if len(url) > 60 else "")
    header, _, data = url.partition(",")
    ext = "png" if "png" in header else "jpg"
    image_dir.mkdir(parents=True, exist_ok=True)
    path = image_dir / f"round-{state['round_id']}.{ext}"
    if not path.exists():
        path.write_bytes(base64.b64decode(data))
    return str(path)

# -----------------------------
# Interactive play loop
# -----------------------------
HELP = """Commands:
  /start, /next     start a new round
  /clue             ask the AI for a clue
  /style <name>     change image style (between rounds)
  /chat <message>   talk to the AI
  /reset            reset score and level
  /state            refresh the board
  /quit             leave
Anything else is typed into the guess grid."""

def interactive_play(base_url: str, style: Optional[str], image_dir: Optional[Path]) -> None:
    state = start_session(base_url, style)
    sid = state["session_id"]
    printer = ChatPrinter()
    print(f"\n✅ Session started: {sid}")
    print(HELP)
    printer.show(get_chat(base_url, sid))

    while True:
        try:
            line = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not line:
            line = "/state"
        cmd, _, arg = line.partition(" ")
        try:
            if cmd == "/quit":
                break
            elif cmd in ("/start", "/next"):
                state = start_round(base_url, sid)
            elif cmd == "/clue":
                printer.show(request_clue(base_url, sid))
                state = get_state(base_url, sid)
            elif cmd == "/style":
                state = set_style(base_url, sid, arg)
            elif cmd == "/chat":
                printer.show(send_chat(base_url, sid, arg))
                state = get_state(base_url, sid)
            elif cmd == "/reset":
                state = reset_game(base_url, sid)
            elif cmd == "/state":
                state = get_state(base_url, sid)
            elif cmd.startswith("/"):
                print(HELP)
                continue
            else:
                out = submit_guess(base_url, sid, line)
                if not out["accepted"]:
                    print("   (input locked)")
                state = out["state"]
        except RuntimeError as e:
            print(f"   {e}")
            continue
        printer.show(get_chat(base_url, sid))
        print_state(state, image_dir)

# -----------------------------
# Auto-demo play loop
# -----------------------------
def auto_demo_play(base_url: str, style: Optional[str]) -> None:
    """
    Plays one round blindly: a wrong guess, a clue, then skips to the next round.
    """
    print("\n🤖 Running auto-demo...")
    state = start_session(base_url, style)
    sid = state["session_id"]
    printer = ChatPrinter()
    print(f"✅ Session started: {sid}")

    state = start_round(base_url, sid)
    printer.show(get_chat(base_url, sid))
    print_state(state)
    if state["status"] != "playing":
        print("❌ Round did not start")
        sys.exit(1)

    out = submit_guess(base_url, sid, "z" * state["answer_length"])
    print_state(out["state"])
    time.sleep(1.2)
    printer.show(request_clue(base_url, sid))

    state = start_round(base_url, sid)
    printer.show(get_chat(base_url, sid))
    print_state(state)

    state = reset_game(base_url, sid)
    print_state(state)
    print(json.dumps({k: v for k, v in state.items() if k != "image_url"}, indent=2))

# -----------------------------
# Run server (programmatically)
# -----------------------------
def run_server(port: int, host: str = "127.0.0.1", reload: bool = True) -> None:
    try:
        import uvicorn
    except ImportError:
        print("❌ uvicorn not installed. Run: pip install -e .")
        sys.exit(1)
    uvicorn.run("api:app", host=host, port=port, reload=reload)

# -----------------------------
# Health checker
# -----------------------------
def health_check(base_url: str) -> None:
    print(f"🔎 Checking server at {base_url} ...")
    try:
        r = requests.get(f"{base_url.rstrip('/')}/docs", timeout=10)
        r.raise_for_status()
        print("✅ /docs reachable")

        state = start_session(base_url)
        print(f"✅ JSON API ok (session_id={state['session_id']})")
        _request("DELETE", base_url, f"/sessions/{state['session_id']}")
    except (requests.RequestException, RuntimeError) as e:
        print(f"❌ Health check failed: {e}")
        sys.exit(1)

# -----------------------------
# CLI
# -----------------------------
def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Image Pictionary: server + terminal client in one file")

    sub = p.add_subparsers(dest="cmd", required=True)

    ps = sub.add_parser("serve", help="Start the FastAPI server (uvicorn)")
    ps.add_argument("--port", type=int, default=8000, help="Port to bind")
    ps.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind")
    ps.add_argument("--no-reload", action="store_true", help="Disable auto-reload")

    pp = sub.add_parser("play", help="Play in the terminal (interactive or auto)")
    pp.add_argument("--style", type=str, default=None, help="Image style, e.g. 'claymation'")
    pp.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    pp.add_argument("--save-images", type=Path, default=None, help="Directory to write round images to")
    pp.add_argument("--auto-demo", action="store_true", help="Run a canned demo instead of prompting")

    ph = sub.add_parser("health", help="Check server availability")
    ph.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")

    return p.parse_args(argv)

def main() -> None:
    args = parse_args()
    logging.basicConfig(level=os.getenv("PICTIONARY_LOG_LEVEL", "WARNING").upper())

    if args.cmd == "serve":
        run_server(port=args.port, host=args.host, reload=(not args.no_reload))
        return

    if args.cmd == "play":
        try:
            requests.get(f"{args.base_url.rstrip('/')}/docs", timeout=5).raise_for_status()
        except requests.RequestException:
            print("⚠️  Could not reach the server. Is it running?\n"
                  "    Start it in another terminal:\n"
                  "    python main.py serve")
            sys.exit(1)

        if args.auto_demo:
            auto_demo_play(args.base_url, args.style)
        else:
            interactive_play(args.base_url, args.style, args.save_images)
        return

    if args.cmd == "health":
        health_check(args.base_url)
        return

    print("Unknown command. Try: python main.py --help")
    sys.exit(2)

if __name__ == "__main__":
    main()
