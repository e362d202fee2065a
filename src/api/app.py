import asyncio
import logging

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from models.errors import AutoStartError
from models.events import SetAutoStart
from services.gateway import CommandGateway

logger = logging.getLogger(__name__)


def create_app(gateway: CommandGateway) -> FastAPI:
    app = FastAPI(title="ClipSqueeze")

    @app.get("/health")
    def health():
        return "running"

    @app.post("/hide_progress")
    def hide_progress():
        return gateway.hide_progress().model_dump()

    @app.post("/revert_clipboard")
    def revert_clipboard():
        return gateway.revert_clipboard().model_dump()

    @app.get("/auto_start")
    def get_auto_start():
        try:
            return {"enabled": gateway.get_auto_start()}
        except AutoStartError as e:
            return {"error": str(e)}

    @app.post("/auto_start")
    async def set_auto_start(request: Request):
        try:
            payload = await request.json()
            command = SetAutoStart.model_validate(payload)
        except ValidationError as e:
            return {"ok": False, "error": str(e)}
        except ValueError as e:
            return {"ok": False, "error": f"invalid JSON body: {e}"}
        result = await run_in_threadpool(gateway.set_auto_start, command.enabled)
        return result.model_dump()

    @app.get("/session")
    def session():
        current = gateway.current_session()
        return current.to_dict() if current is not None else None

    @app.websocket("/events")
    async def events(websocket: WebSocket):
        subscription = gateway.events.subscribe()
        await websocket.accept()

        async def forward():
            while True:
                event = await run_in_threadpool(subscription.get, 0.5)
                if event is not None:
                    await websocket.send_json(event.to_message())

        async def until_disconnect():
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return

        tasks = [asyncio.ensure_future(forward()), asyncio.ensure_future(until_disconnect())]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                if not task.cancelled() and task.exception() is not None and \
                        not isinstance(task.exception(), WebSocketDisconnect):
                    logger.warning("Event stream ended with error: %s", task.exception())
        finally:
            subscription.close()
        logger.debug("Event stream client disconnected")

    return app
