"""Bot folder provisioning and listing."""

from __future__ import annotations

from pathlib import Path

from botpanel.supervisor.errors import InvalidBotNameError
from botpanel.supervisor.identity import bot_dir, validate_bot_name

DEMO_SCRIPTS = {
    "js": (
        "index.js",
        "console.log('Bot {name} started');\n"
        "setInterval(() => console.log('Bot {name} is running...'), 5000);\n"
        "process.stdin.on('data', (d) => console.log('received: ' + d.toString().trim()));\n",
    ),
    "py": (
        "main.py",
        "import sys\n"
        "\n"
        "print('Bot {name} started', flush=True)\n"
        "for line in sys.stdin:\n"
        "    print('received: ' + line.strip(), flush=True)\n",
    ),
}


def list_bots(bots_dir: Path) -> list[str]:
    """Return valid bot folder names, sorted; a missing bots dir means no bots."""
    root = Path(bots_dir)
    if not root.is_dir():
        return []
    names: list[str] = []
    for entry in root.iterdir():
        if not entry.is_dir():
            continue
        try:
            names.append(validate_bot_name(entry.name))
        except InvalidBotNameError:
            continue
    return sorted(names)


def create_bot(bots_dir: Path, name: str, runtime: str = "js") -> Path:
    """Create a bot folder with a demo entry script; refuses to overwrite."""
    if runtime not in DEMO_SCRIPTS:
        raise ValueError(f"unsupported runtime: {runtime}")
    target = bot_dir(bots_dir, name)
    if target.exists():
        raise FileExistsError(f"bot already exists: {name}")
    target.mkdir(parents=True)
    filename, template = DEMO_SCRIPTS[runtime]
    (target / filename).write_text(template.format(name=name), encoding="utf-8")
    return target
