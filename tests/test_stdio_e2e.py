import asyncio

import pytest
from anyio import create_memory_object_stream
from mcp import types
from mcp.shared.message import SessionMessage

from tramites.main import TramitesRuntime
from tramites.service import TramitesService
from tramites.validation import DocumentValidator, ValidationResult


class FakeStore:
    def __init__(self):
        self.saved = []

    def save(self, state):  # pragma: no cover - simple stub
        self.saved.append(state)


@pytest.mark.asyncio
async def test_stdio_runtime_end_to_end(service, settings):
    store = FakeStore()
    runtime = TramitesRuntime(settings=settings, service=service, store=store)

    read_writer, read_stream = create_memory_object_stream[SessionMessage | Exception](0)
    write_stream, write_reader = create_memory_object_stream[SessionMessage](0)

    async def send(request):
        message = types.JSONRPCMessage.model_validate(request)
        await read_writer.send(SessionMessage(message))
        response = await write_reader.receive()
        return response.message.model_dump()

    async def notify(notification):
        message = types.JSONRPCMessage.model_validate(notification)
        await read_writer.send(SessionMessage(message))

    async def call(request_id, name, arguments):
        return await send(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "method": "tools/call",
                "params": {"name": name, "arguments": arguments},
            }
        )

    task = asyncio.create_task(runtime.run_session(read_stream, write_stream))

    try:
        initialize = await send(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {
                    "protocolVersion": "2025-06-18",
                    "capabilities": {},
                    "clientInfo": {"name": "test", "version": "0.0.0"},
                },
            }
        )
        assert initialize["result"] is not None
        await notify({"jsonrpc": "2.0", "method": "notifications/initialized"})

        list_tools = await send({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
        tool_names = {tool["name"] for tool in list_tools["result"]["tools"]}
        assert tool_names == set(runtime.tool_names)
        assert {"generate_from_template", "transition_process", "list_notifications"}.issubset(tool_names)

        templates_msg = await call(3, "list_templates", {})
        template_ids = [item["id"] for item in templates_msg["result"]["structuredContent"]["templates"]]
        assert template_ids == ["rne", "libre-venta", "afidi"]

        created_msg = await call(4, "generate_from_template", {"template_id": "afidi", "client_id": "client-1"})
        process = created_msg["result"]["structuredContent"]["process"]
        assert process["authority_id"] == "senasa"
        assert len(process["documents"]) == 2
        assert len(store.saved) == 1

        rejected_msg = await call(5, "transition_process", {"process_id": process["id"], "target": "archived"})
        assert rejected_msg["result"]["isError"] is True

        listing_msg = await call(6, "list_processes", {"filters": [{"field": "client", "client_id": "client-1"}]})
        assert listing_msg["result"]["structuredContent"]["total"] == 1

        feed_msg = await call(7, "list_notifications", {"source": "system"})
        feed = feed_msg["result"]["structuredContent"]
        assert feed["notifications"][0]["kind"] == "newProcess"
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


@pytest.mark.asyncio
async def test_completed_validation_is_saved(templates, pricing, settings, clock):
    async def _approve(process_id, document_id):
        return ValidationResult(valid=True, confidence=95.0)

    validator = DocumentValidator(_approve)
    service = TramitesService(templates, pricing, settings=settings, validator=validator, clock=clock)
    store = FakeStore()
    runtime = TramitesRuntime(settings=settings, service=service, store=store)
    process = service.generate_from_template("afidi", "client-1")

    task = service.validate_document(process.id, "doc-1")
    await validator.wait(task.id)
    for _ in range(50):
        if store.saved:
            break
        await asyncio.sleep(0.01)

    saved = store.saved[-1].processes[0]
    assert saved.get_document("doc-1").status.value == "approved"

    await runtime.shutdown()
    assert len(store.saved) == 2
