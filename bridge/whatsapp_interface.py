# --- START OF FULL bridge/whatsapp_interface.py ---

from fastapi import FastAPI, Request, HTTPException, BackgroundTasks
from fastapi.responses import JSONResponse
import base64
import uuid
from threading import Lock
import json
import re
from typing import Any, Dict, List

# Use the central logger
from tools.logger import log_info, log_error, log_warning
from bridge.request_router import handle_incoming_message, IncomingMessage

# --- Bridge Definition ---
outgoing_whatsapp_messages: List[Dict[str, Any]] = []
whatsapp_queue_lock = Lock()

def format_chat_id(chat_id: str) -> str:
    if re.match(r'^\d+$', chat_id):
        return f"{chat_id}@c.us"
    if '@' not in chat_id:
        log_warning("WhatsAppBridge", "format_chat_id", f"Chat ID '{chat_id}' lacks '@' suffix and is not digits. Sending as is.")
    return chat_id


class WhatsAppBridge:
    """
    Queues outgoing actions for the Node WhatsApp client, which polls /outgoing and
    confirms each action through /ack. Documents travel base64 encoded.
    """

    def __init__(self, message_queue, lock):
        self.message_queue = message_queue
        self.lock = lock
        log_info("WhatsAppBridge", "__init__", "WhatsApp Bridge initialized for queuing.")

    def _enqueue(self, chat_id: str, action: str, **payload: Any) -> str:
        outgoing = {
            "message_id": str(uuid.uuid4()),
            "chat_id": format_chat_id(chat_id),
            "type": action,
            **payload,
        }
        with self.lock:
            self.message_queue.append(outgoing)
            queue_size = len(self.message_queue)
        log_info("WhatsAppBridge", "_enqueue", f"{action} for {outgoing['chat_id']} queued (ID: {outgoing['message_id']}). Queue size: {queue_size}")
        return outgoing["message_id"]

    async def send_text(self, chat_id: str, text: str, mentions: List[str] | None = None) -> None:
        if not chat_id or not text:
            log_warning("WhatsAppBridge", "send_text", f"Attempted to queue empty message or invalid chat_id: {chat_id}")
            return
        self._enqueue(chat_id, "text", message=text, mentions=mentions or [])

    async def send_document(self, chat_id: str, data: bytes, file_name: str, mime_type: str) -> None:
        if not data:
            raise ValueError(f"Refusing to queue empty document {file_name}")
        self._enqueue(chat_id, "document",
                      document=base64.b64encode(data).decode("ascii"),
                      file_name=file_name, mime_type=mime_type)

    async def delete_message(self, chat_id: str, message_id: str, participant_id: str | None = None) -> None:
        self._enqueue(chat_id, "delete", target_message_id=message_id, participant_id=participant_id)

    async def remove_participant(self, chat_id: str, participant_id: str) -> None:
        self._enqueue(chat_id, "remove_participant", participant_id=participant_id)


# --- Helper for Background Task ---
async def process_incoming_message_background(incoming: IncomingMessage):
    """
    Runs after /incoming has been acknowledged. File deliveries started from here keep
    running as their own tasks, so this returns as soon as routing is done.
    """
    fn_name = "process_incoming_message_background"
    try:
        await handle_incoming_message(incoming)
    except Exception as e:
        log_error("whatsapp_interface", fn_name, "Unhandled exception in background message processing", e, chat_id=incoming.chat_id)


def create_whatsapp_app() -> FastAPI:
    app = FastAPI(
        title="StudyShare WhatsApp Bridge API",
        description="Handles incoming messages from and outgoing actions to the WhatsApp client bridge.",
        version="1.0.0"
    )

    @app.post("/incoming", tags=["WhatsApp Bridge"])
    async def incoming_whatsapp_message(request: Request, background_tasks: BackgroundTasks):
        endpoint_name = "incoming_whatsapp_message"
        try:
            data = await request.json()
            chat_id = data.get("chat_id")
            message_body = data.get("message")

            if not chat_id or message_body is None:
                log_warning("whatsapp_interface", endpoint_name, f"Received invalid payload: {data}")
                raise HTTPException(status_code=400, detail="Missing chat_id or message")

            incoming = IncomingMessage(
                chat_id=chat_id,
                sender_id=data.get("sender_id") or chat_id,
                text=str(message_body),
                message_id=data.get("message_id"),
                sender_is_admin=bool(data.get("sender_is_admin", False)),
                from_me=bool(data.get("from_me", False)),
                mentions=list(data.get("mentions") or []),
            )
            background_tasks.add_task(process_incoming_message_background, incoming)
            log_info("whatsapp_interface", endpoint_name, f"ACK for incoming in {chat_id}. Msg: '{str(message_body)[:30]}...'")
            return JSONResponse(content={"ack": True}, status_code=200)

        except json.JSONDecodeError:
            log_error("whatsapp_interface", endpoint_name, "Received non-JSON payload.")
            raise HTTPException(status_code=400, detail="Invalid JSON payload")
        except HTTPException:
            raise
        except Exception as e:
            log_error("whatsapp_interface", endpoint_name, "Error processing incoming WhatsApp message (before background task)", e)
            raise HTTPException(status_code=500, detail="Internal server error processing message")

    @app.get("/outgoing", tags=["WhatsApp Bridge"])
    async def get_outgoing_whatsapp_messages():
        with whatsapp_queue_lock:
            msgs_to_send = outgoing_whatsapp_messages[:]
        return JSONResponse(content={"messages": msgs_to_send})

    @app.post("/ack", tags=["WhatsApp Bridge"])
    async def acknowledge_whatsapp_message(request: Request):
        endpoint_name = "acknowledge_whatsapp_message"
        message_id = None
        try:
            data = await request.json()
            message_id = data.get("message_id")

            if not message_id:
                log_warning("whatsapp_interface", endpoint_name, f"Received ACK without message_id: {data}")
                raise HTTPException(status_code=400, detail="Missing message_id in ACK payload")

            removed = False
            with whatsapp_queue_lock:
                for i, msg in enumerate(outgoing_whatsapp_messages):
                    if msg.get("message_id") == message_id:
                        outgoing_whatsapp_messages.pop(i)
                        removed = True
                        break
                queue_size = len(outgoing_whatsapp_messages)
            if removed:
                log_info("whatsapp_interface", endpoint_name, f"ACK received and action removed for ID: {message_id}. Queue size: {queue_size}")
            else:
                log_warning("whatsapp_interface", endpoint_name, f"ACK for unknown/already removed message ID: {message_id}")
            return JSONResponse(content={"ack_received": True, "removed": removed})
        except json.JSONDecodeError:
            log_error("whatsapp_interface", endpoint_name, "Received non-JSON ACK payload.")
            raise HTTPException(status_code=400, detail="Invalid JSON payload for ACK")
        except HTTPException:
            raise
        except Exception as e:
            log_error("whatsapp_interface", endpoint_name, f"Error processing ACK for message_id {message_id or 'N/A'}", e)
            raise HTTPException(status_code=500, detail="Internal server error processing ACK")

    @app.get("/health", tags=["WhatsApp Bridge"])
    async def health():
        with whatsapp_queue_lock:
            queue_size = len(outgoing_whatsapp_messages)
        return {"status": "ok", "queue_size": queue_size}

    return app

app = create_whatsapp_app()

# --- END OF FULL bridge/whatsapp_interface.py ---
