# Overview: Server-Sent Events stream of live domain events.

"""
GET /api/events streams every event published while the client is connected.

There is no replay: clients reload state over the regular endpoints after
(re)connecting.
"""

import json
import queue

from flask import Blueprint, Response, current_app

from ..extensions import broadcaster

events_bp = Blueprint("events", __name__, url_prefix="/api")


def _format(event) -> str:
    return f"event: {event.name}\ndata: {json.dumps(event.payload)}\n\n"


@events_bp.get("/events")
def stream_events():
    keepalive = current_app.config.get("EVENT_KEEPALIVE_SECONDS", 15)
    sub = broadcaster.subscribe()

    def generate():
        try:
            yield ": connected\n\n"
            while not sub.closed:
                try:
                    event = sub.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield _format(event)
        finally:
            broadcaster.unsubscribe(sub)

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
