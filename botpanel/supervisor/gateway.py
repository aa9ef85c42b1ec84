"""WebSocket control channel: join/action/command in, output events out."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from botpanel.supervisor.broadcast import BroadcastHub, Subscriber
from botpanel.supervisor.errors import InvalidBotNameError
from botpanel.supervisor.identity import validate_bot_name
from botpanel.supervisor.launch import LaunchSpec
from botpanel.supervisor.models import (
    ActionCommand,
    ActionRequest,
    ActionResult,
    CommandRequest,
    GatewayMessage,
    JoinRequest,
)
from botpanel.supervisor.process_supervisor import ProcessSupervisor

logger = logging.getLogger("botpanel.supervisor.gateway")

router = APIRouter()


def output_event(text: str) -> dict[str, str]:
    return {"event": "output", "data": text}


class ControlGateway:
    """Translate inbound socket messages into supervisor and hub calls."""

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        hub: BroadcastHub,
        *,
        access_token: str = "",
        queue_size: int = 1000,
    ):
        self.supervisor = supervisor
        self.hub = hub
        self.access_token = access_token
        self.queue_size = queue_size

    def authorized(self, token: str | None) -> bool:
        if not self.access_token:
            return True
        return secrets.compare_digest(str(token or ""), self.access_token)

    async def handle(self, subscriber: Subscriber, raw: Any) -> None:
        """Dispatch one inbound message; problems become output lines for this caller only."""
        try:
            message = GatewayMessage.model_validate(raw)
        except ValidationError:
            subscriber.deliver("Invalid message: expected {event, data}\n")
            return

        try:
            if message.event == "join":
                payload = message.data if isinstance(message.data, dict) else {"botId": message.data}
                request = JoinRequest.model_validate(payload)
                self.hub.join(validate_bot_name(request.bot_id), subscriber)
            elif message.event == "leave":
                self.hub.leave(subscriber)
            elif message.event == "action":
                await self._handle_action(subscriber, ActionRequest.model_validate(message.data))
            elif message.event == "command":
                request = CommandRequest.model_validate(message.data)
                result = await self.supervisor.send_input(validate_bot_name(request.bot_id), request.command)
                if not result.ok:
                    subscriber.deliver(result.message)
            else:
                subscriber.deliver(f"Unknown event: {message.event}\n")
        except ValidationError as exc:
            subscriber.deliver(f"Invalid {message.event} payload: {exc.error_count()} error(s)\n")
        except InvalidBotNameError as exc:
            subscriber.deliver(f"{exc}\n")

    async def _handle_action(self, subscriber: Subscriber, request: ActionRequest) -> ActionResult:
        bot_id = validate_bot_name(request.bot_id)
        logger.info("%s requested %s for %s", subscriber.name, request.cmd.value, bot_id)
        if request.cmd is ActionCommand.RUN:
            return await self.supervisor.start(bot_id, LaunchSpec(file=request.file, port=request.port))
        if request.cmd is ActionCommand.STOP:
            return await self.supervisor.stop(bot_id)
        return await self.supervisor.install_runtime(bot_id, request.runtime_version)

    async def serve(self, websocket: WebSocket) -> None:
        """Run one viewer connection until it disconnects."""
        if not self.authorized(websocket.query_params.get("token")):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        await websocket.accept()
        client = websocket.client
        subscriber = Subscriber(
            name=f"ws-{client.host}:{client.port}" if client else None,
            max_pending=self.queue_size,
        )
        sender = asyncio.create_task(self._pump_outbound(websocket, subscriber))
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", status.WS_1000_NORMAL_CLOSURE))
                text = frame.get("text")
                if text is None:
                    subscriber.deliver("Invalid message: expected a text frame\n")
                    continue
                try:
                    raw = json.loads(text)
                except ValueError:
                    subscriber.deliver("Invalid message: not JSON\n")
                    continue
                await self.handle(subscriber, raw)
        except WebSocketDisconnect:
            logger.info("%s disconnected", subscriber.name)
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            self.hub.leave(subscriber)
            subscriber.close()

    @staticmethod
    async def _pump_outbound(websocket: WebSocket, subscriber: Subscriber) -> None:
        while True:
            line = await subscriber.get()
            if line is None:
                # Hub evicted this viewer for falling behind.
                await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
                return
            await websocket.send_json(output_event(line))


@router.websocket("/ws")
async def control_socket(websocket: WebSocket) -> None:
    gateway: ControlGateway = websocket.app.state.gateway
    await gateway.serve(websocket)
