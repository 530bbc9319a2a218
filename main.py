"""NPC Council dev launcher. Starts the backend in watch mode."""

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

from npc_council.config import load_settings

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="NPC Council dev launcher")
    parser.add_argument("--scenarios-dir", type=Path, default=None,
                        help="Scenario directory (default: ./scenarios)")
    parser.add_argument("--demo", action="store_true",
                        help="Write the demo scenario before starting")
    args = parser.parse_args()

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Build env for the server process so it picks up the same scenario dir
    env = os.environ.copy()
    if args.scenarios_dir:
        env["SCENARIOS_DIR"] = str(args.scenarios_dir.resolve())

    if args.demo:
        from backend import storage
        from backend.demo import create_demo_data
        storage.init_storage(args.scenarios_dir or settings.scenarios_dir)
        create_demo_data()

    print(f"Starting backend on http://localhost:{BACKEND_PORT} ...")
    proc = subprocess.Popen(
        ["uvicorn", "backend.app:app", "--reload", "--host", HOST, "--port", BACKEND_PORT,
         "--log-level", settings.log_level.lower()],
        cwd=ROOT, env=env,
    )
    try:
        sys.exit(proc.wait())
    except KeyboardInterrupt:
        print("\nShutting down...")
        proc.terminate()
        proc.wait()


if __name__ == "__main__":
    main()
