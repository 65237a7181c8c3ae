#!/usr/bin/env python3
"""Cross-platform install script for rakka.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes pytest)
"""

import os
import platform
import secrets
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)
MASTER_KEY_PLACEHOLDER = "change-me"


def _fill_master_key(env_path: str) -> None:
    """Replace the placeholder credits master key in .env with a random one."""
    with open(env_path, encoding="utf-8") as f:
        lines = f.read().splitlines()

    changed = False
    for i, line in enumerate(lines):
        if line.strip() == f"RAKKA_MASTER_KEY={MASTER_KEY_PLACEHOLDER}":
            lines[i] = f"RAKKA_MASTER_KEY={secrets.token_urlsafe(32)}"
            changed = True

    if changed:
        with open(env_path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        print("Generated RAKKA_MASTER_KEY in .env (keep it safe: stored API keys depend on it)")


def main() -> None:
    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"

    bin_dir = "Scripts" if is_windows else "bin"
    pip = os.path.join(venv_dir, bin_dir, "pip")

    # 2. Create virtual environment
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    # 3. Upgrade pip
    print("Upgrading pip...")
    subprocess.check_call([pip, "install", "--upgrade", "pip"])

    # 4. Install project
    if dev:
        print("Installing rakka in development mode...")
        subprocess.check_call([pip, "install", "-e", ".[dev]"], cwd=project_dir)
    else:
        print("Installing rakka...")
        subprocess.check_call([pip, "install", "."], cwd=project_dir)

    # 5. Create data directory (credits file lives here)
    data_dir = os.path.join(project_dir, "data")
    os.makedirs(data_dir, mode=0o700, exist_ok=True)

    # 6. Copy config files if missing
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if not os.path.exists(dst_path) and os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")
        elif os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")

    env_path = os.path.join(project_dir, ".env")
    if os.path.exists(env_path):
        _fill_master_key(env_path)

    # 7. Print instructions
    if is_windows:
        activate_cmd = r".\.venv\Scripts\activate"
    else:
        activate_cmd = "source .venv/bin/activate"

    print()
    print("=" * 50)
    print("  rakka installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    print("  1. Edit config.yaml - pick the LLM provider and platforms")
    print("  2. Edit .env - set your keys and tokens:")
    print("       LLM_API_KEY=...")
    print("       TELEGRAM_BOT_TOKEN=...")
    print("       DISCORD_BOT_TOKEN=...")
    print("  3. Activate the virtual environment:")
    print(f"       {activate_cmd}")
    print("  4. Start the bot:")
    print("       python -m rakka")
    print("  5. Or check config:")
    print("       python -m rakka config-check")
    print()


if __name__ == "__main__":
    main()
