"""Shared test helpers: controllable response streams and a recording transport."""

import asyncio
import json

import httpx

from model_invocation import Model


class ControlledStream(httpx.AsyncByteStream):
    """Response body whose chunks are pushed by the test, one at a time."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, text: str) -> None:
        self.queue.put_nowait(text.encode("utf-8"))

    def end(self) -> None:
        self.queue.put_nowait(None)

    async def __aiter__(self):
        while True:
            chunk = await self.queue.get()
            if chunk is None:
                return
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class RecordingHandler:
    """httpx.MockTransport handler that records requests and answers per prompt."""

    def __init__(self, respond=None):
        self.requests: list[httpx.Request] = []
        self.streams: dict[str, ControlledStream] = {}
        self.respond = respond

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.respond is not None:
            return self.respond(request)
        body = json.loads(request.content)
        stream = ControlledStream()
        self.streams[body.get("prompt", "")] = stream
        return httpx.Response(200, stream=stream, headers={"content-type": "text/event-stream"})

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


async def wait_until(predicate, attempts: int = 300, delay: float = 0.01) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(delay)
    raise AssertionError("condition not met in time")


def make_model(**overrides) -> Model:
    fields = {
        "id": "m-1",
        "name": "Test Model",
        "endpoint": "https://models.example.com/v1/generate",
        "authType": "bearerToken",
        "apiKey": "secret-key",
        "inputSchema": '{"prompt": "{prompt}"}',
        "outputKeyPath": "text",
        "outputTiming": "async",
        "temperature": "0.5",
        "isDefault": True,
    }
    fields.update(overrides)
    return Model.model_validate(fields)
