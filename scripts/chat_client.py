#!/usr/bin/env python3
"""
Chat Client - Negotiation Thread Demo

This client demonstrates a participant of a negotiation thread that:
1. Mints a development credential with the relay's JWT_SECRET
2. Connects to the relay with ?token=
3. Joins an RFQ, quotation or product room
4. Optionally sends one message into the thread
5. Prints every frame it receives (messages, typing, errors)

Usage:
    JWT_SECRET=... python scripts/chat_client.py <userId> rfq <rfqId> [receiverId] [message]
    JWT_SECRET=... python scripts/chat_client.py <userId> quotation <quotationId> [receiverId] [message]
    JWT_SECRET=... python scripts/chat_client.py <userId> product <productId> <receiverId> [message]

Run two clients (buyer and supplier) against the same thread to watch
messages and typing indicators flow between them.
"""

import asyncio
import json
import os
import sys
import time

import jwt
import websockets

RELAY_URL = os.getenv("RELAY_URL", "ws://localhost:3001/ws")

JOIN_EVENTS = {
    "rfq": ("join-rfq-room", "rfqId"),
    "quotation": ("join-quotation-room", "quotationId"),
    "product": ("join-product-room", "productId"),
}


def mint_token(user_id: str) -> str:
    """Development-only credential, signed the way the primary backend signs them."""
    secret = os.getenv("JWT_SECRET")
    if not secret:
        print("❌ JWT_SECRET is not set")
        sys.exit(1)
    return jwt.encode(
        {"userId": user_id, "exp": int(time.time()) + 3600},
        secret,
        algorithm="HS256",
    )


def frame(event: str, data: dict) -> str:
    return json.dumps({"event": event, "data": data})


def print_frame(raw: str) -> None:
    data = json.loads(raw)
    event = data.get("event", "unknown")
    payload = data.get("data", {})

    if event in ("message-received", "new-message"):
        message = payload.get("message", {})
        sender = message.get("sender") or {}
        print(f"\n💬 {event}: {sender.get('username', message.get('receiver'))}: {message.get('message')}")
        if message.get("attachments"):
            print(f"   📎 {message['attachments']}")
    elif event == "user-typing":
        state = "is typing..." if payload.get("typing") else "stopped typing"
        print(f"✏️  {payload.get('userId')} {state}")
    elif event == "joined-room":
        print(f"✅ Joined {payload.get('room')}")
    elif event == "error":
        print(f"❌ Error: {payload.get('message')}")
        if payload.get("details"):
            print(f"   Details: {payload['details']}")
    else:
        print(f"📨 {event}: {payload}")


async def main():
    if len(sys.argv) < 4 or sys.argv[2] not in JOIN_EVENTS:
        print(__doc__)
        sys.exit(1)

    user_id, kind, thread_id = sys.argv[1], sys.argv[2], sys.argv[3]
    receiver = sys.argv[4] if len(sys.argv) > 4 else None
    text = sys.argv[5] if len(sys.argv) > 5 else None

    join_event, id_field = JOIN_EVENTS[kind]
    join_data = {id_field: thread_id}
    if kind == "product":
        if not receiver:
            print("❌ product threads need a receiverId")
            sys.exit(1)
        join_data["receiverId"] = receiver

    print("=" * 70)
    print("💬 CHAT CLIENT STARTING")
    print("=" * 70)
    print(f"User ID: {user_id}")
    print(f"Thread: {kind} {thread_id}")
    print(f"Relay URL: {RELAY_URL}")
    print("=" * 70)

    url = f"{RELAY_URL}?token={mint_token(user_id)}"
    async with websockets.connect(url) as ws:
        await ws.send(frame(join_event, join_data))
        print_frame(await ws.recv())

        if receiver and text:
            typing_data = {id_field: thread_id, "receiverId": receiver}
            await ws.send(frame("typing", typing_data))
            await asyncio.sleep(0.5)
            await ws.send(frame("stop-typing", typing_data))
            await ws.send(frame("send-message", {
                id_field: thread_id,
                "receiver": receiver,
                "message": text,
            }))
            print(f"📤 Sent to {receiver}: {text}")

        print("\n⌨️  Press Ctrl+C to quit\n")
        async for raw in ws:
            print_frame(raw)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Bye")
