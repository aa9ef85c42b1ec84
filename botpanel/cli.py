import os
import signal
import socket
import subprocess
import sys
from pathlib import Path

import httpx
import typer
import uvicorn

from botpanel.supervisor.bot_store import DEMO_SCRIPTS, create_bot, list_bots
from botpanel.supervisor.errors import InvalidBotNameError
from botpanel.supervisor.panel_config import PANEL_HOME, load_config

app = typer.Typer()

PID_FILE = PANEL_HOME / "supervisor.pid"
LOG_DIR = PANEL_HOME / "logs"
APP_FACTORY = "botpanel.supervisor.app:create_app"


def ensure_dirs():
    PANEL_HOME.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def panel_url(config: dict) -> str:
    return f"http://{config['host']}:{config['port']}"


def is_port_in_use(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


def pid_exists(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@app.command()
def serve():
    """Run the panel in the foreground."""
    config = load_config()
    uvicorn.run(APP_FACTORY, factory=True, host=config["host"], port=int(config["port"]))


@app.command()
def start():
    """Start the panel in the background."""
    ensure_dirs()
    config = load_config()

    if PID_FILE.exists():
        try:
            pid = int(PID_FILE.read_text())
            if pid_exists(pid):
                typer.echo(f"Panel already running (PID: {pid})")
                return
            typer.echo("Stale PID file found. Removing...")
            PID_FILE.unlink()
        except ValueError:
            PID_FILE.unlink()

    if is_port_in_use(config["host"], int(config["port"])):
        typer.echo(f"Error: Port {config['port']} is already in use by another process.")
        raise typer.Exit(code=1)

    typer.echo("Starting panel...")
    cmd = [
        sys.executable, "-m", "uvicorn",
        "--factory", APP_FACTORY,
        "--host", config["host"],
        "--port", str(config["port"]),
    ]

    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    with open(LOG_DIR / "panel.log", "a") as log_file:
        process = subprocess.Popen(cmd, stdout=log_file, stderr=log_file, **kwargs)

    PID_FILE.write_text(str(process.pid))
    typer.echo(f"Panel started (PID: {process.pid}) at {panel_url(config)}")


@app.command()
def stop():
    """Stop the background panel; its bot processes are killed on shutdown."""
    if not PID_FILE.exists():
        typer.echo("Panel not running (no PID file)")
        return
    try:
        pid = int(PID_FILE.read_text())
        os.kill(pid, signal.SIGTERM)
        typer.echo(f"Panel stopped (PID: {pid}).")
    except ProcessLookupError:
        typer.echo("Panel process not found. Cleaning up PID file.")
    except (ValueError, OSError) as e:
        typer.echo(f"Failed to stop panel: {e}")
        raise typer.Exit(code=1)
    PID_FILE.unlink(missing_ok=True)


@app.command()
def status():
    """Show panel health and bot states."""
    config = load_config()
    url = panel_url(config)
    try:
        response = httpx.get(f"{url}/health", timeout=5.0)
        if response.status_code != 200:
            typer.echo("Panel: UNHEALTHY (API not responding correctly)")
            return
        typer.echo("Panel: RUNNING")
        bots_resp = httpx.get(f"{url}/bots", timeout=5.0)
        if bots_resp.status_code == 200:
            bots = bots_resp.json()
            typer.echo(f"Bots: {len(bots)}")
            for bot in bots:
                pid = f" pid={bot['pid']}" if bot.get("pid") else ""
                typer.echo(f" - {bot['name']} [{bot['state']}]{pid}")
    except (httpx.ConnectError, httpx.TimeoutException):
        typer.echo("Panel: NOT RESPONDING")


@app.command()
def create(
    name: str,
    runtime: str = typer.Option("js", "--runtime", help=f"Demo script flavour: {', '.join(sorted(DEMO_SCRIPTS))}"),
):
    """Provision a new bot folder with a demo script."""
    config = load_config()
    try:
        path = create_bot(Path(config["bots_dir"]), name, runtime)
    except (InvalidBotNameError, FileExistsError, ValueError) as exc:
        typer.echo(f"Failed to create bot: {exc}")
        raise typer.Exit(code=1)
    typer.echo(f"Bot created: {name} ({path})")


@app.command("list")
def list_command():
    """List provisioned bot folders."""
    config = load_config()
    names = list_bots(Path(config["bots_dir"]))
    if not names:
        typer.echo("No bots found.")
        return
    for name in names:
        typer.echo(name)


if __name__ == "__main__":
    app()
