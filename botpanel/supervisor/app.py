from fastapi import FastAPI
import logging
from pathlib import Path
from typing import Any

from .broadcast import BroadcastHub
from .bot_store import list_bots
from .gateway import ControlGateway, router as gateway_router
from .log_buffer import LogRingBuffer
from .models import BotSummary
from .panel_config import load_config
from .process_supervisor import ProcessSupervisor

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),
    ]
)
logger = logging.getLogger("botpanel.supervisor")


def create_app(config: dict[str, Any] | None = None) -> FastAPI:
    """Build the panel app with its own hub, supervisor and gateway."""
    config = config or load_config()
    bots_dir = Path(config["bots_dir"])
    hub = BroadcastHub(LogRingBuffer(int(config["log_buffer_size"])))
    supervisor = ProcessSupervisor.from_config(hub, config)
    gateway = ControlGateway(
        supervisor,
        hub,
        access_token=str(config.get("access_token", "")),
        queue_size=int(config["subscriber_queue_size"]),
    )

    app = FastAPI(title="BotPanel Supervisor")
    app.state.config = config
    app.state.hub = hub
    app.state.supervisor = supervisor
    app.state.gateway = gateway
    app.include_router(gateway_router)

    @app.on_event("startup")
    async def startup_event():
        bots_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Serving bots from %s", bots_dir)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Stopping bot processes...")
        await supervisor.shutdown()
        logger.info("Bot processes stopped.")

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "running": len(supervisor.running_bots())}

    @app.get("/bots", response_model=list[BotSummary])
    async def get_bots():
        names = set(list_bots(bots_dir)) | set(supervisor.running_bots())
        return [supervisor.describe(name) for name in sorted(names)]

    return app
