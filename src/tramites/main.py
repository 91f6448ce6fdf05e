"""MCP server entrypoint for the process engine."""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from asyncio import Lock
from contextlib import asynccontextmanager, suppress
from typing import Any, Awaitable, Callable, Dict

import uvicorn
from mcp import types
from mcp.server.lowlevel import server as lowlevel_server
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http import StreamableHTTPServerTransport
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .bootstrap import initialise_service, load_workspace_state
from .config import Settings, get_settings
from .metrics import metrics_payload, record_http_request
from .registry import WorkspaceStore
from .schemas import (
    APPLY_PRICE_INCREASE_INPUT_SCHEMA,
    APPLY_PRICE_INCREASE_OUTPUT_SCHEMA,
    BUDGET_OUTPUT_SCHEMA,
    CANCEL_VALIDATION_OUTPUT_SCHEMA,
    CREATE_BUDGET_INPUT_SCHEMA,
    GENERATE_FROM_BUDGET_INPUT_SCHEMA,
    GENERATE_FROM_BUDGET_OUTPUT_SCHEMA,
    GENERATE_FROM_TEMPLATE_INPUT_SCHEMA,
    GET_PROCESS_INPUT_SCHEMA,
    LIST_NOTIFICATIONS_INPUT_SCHEMA,
    LIST_NOTIFICATIONS_OUTPUT_SCHEMA,
    LIST_PROCESSES_INPUT_SCHEMA,
    LIST_PROCESSES_OUTPUT_SCHEMA,
    LIST_TEMPLATES_INPUT_SCHEMA,
    LIST_TEMPLATES_OUTPUT_SCHEMA,
    MARK_NOTIFICATION_READ_INPUT_SCHEMA,
    MARK_NOTIFICATION_READ_OUTPUT_SCHEMA,
    PROCESS_OUTPUT_SCHEMA,
    RECONCILE_PRICING_INPUT_SCHEMA,
    RECONCILE_PRICING_OUTPUT_SCHEMA,
    SEARCH_TEMPLATES_INPUT_SCHEMA,
    SEARCH_TEMPLATES_OUTPUT_SCHEMA,
    SET_DOCUMENT_STATUS_INPUT_SCHEMA,
    SET_DOCUMENT_STATUS_OUTPUT_SCHEMA,
    TRANSITION_PROCESS_INPUT_SCHEMA,
    UPDATE_BUDGET_STATUS_INPUT_SCHEMA,
    UPSERT_PRICE_INPUT_SCHEMA,
    UPSERT_PRICE_OUTPUT_SCHEMA,
    VALIDATE_DOCUMENT_INPUT_SCHEMA,
    VALIDATION_OUTPUT_SCHEMA,
    VALIDATION_TASK_INPUT_SCHEMA,
)
from .service import TramitesService
from .tools import (
    apply_price_increase_tool,
    cancel_validation_tool,
    create_budget_tool,
    generate_from_budget_tool,
    generate_from_template_tool,
    get_process_tool,
    get_validation_tool,
    list_notifications_tool,
    list_processes_tool,
    list_templates_tool,
    mark_notification_read_tool,
    reconcile_pricing_tool,
    retry_validation_tool,
    search_templates_tool,
    set_document_status_tool,
    transition_process_tool,
    update_budget_status_tool,
    upsert_price_tool,
    validate_document_tool,
)
from .validation import ValidationTask

logger = logging.getLogger(__name__)


def _build_tool_definitions() -> list[types.Tool]:
    return [
        types.Tool(
            name="list_templates",
            title="Listar plantillas",
            description="Devuelve las plantillas de trámites disponibles y sus organismos.",
            inputSchema=LIST_TEMPLATES_INPUT_SCHEMA,
            outputSchema=LIST_TEMPLATES_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="search_templates",
            title="Buscar plantillas",
            description="Busca plantillas por nombre, organismo o documentación requerida.",
            inputSchema=SEARCH_TEMPLATES_INPUT_SCHEMA,
            outputSchema=SEARCH_TEMPLATES_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="create_budget",
            title="Crear presupuesto",
            description="Crea un presupuesto en borrador con IVA para las plantillas indicadas.",
            inputSchema=CREATE_BUDGET_INPUT_SCHEMA,
            outputSchema=BUDGET_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="update_budget_status",
            title="Actualizar presupuesto",
            description="Cambia el estado de un presupuesto (enviado, aprobado, rechazado, vencido).",
            inputSchema=UPDATE_BUDGET_STATUS_INPUT_SCHEMA,
            outputSchema=BUDGET_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="generate_from_template",
            title="Generar proceso",
            description="Crea un proceso para un cliente a partir de una plantilla.",
            inputSchema=GENERATE_FROM_TEMPLATE_INPUT_SCHEMA,
            outputSchema=PROCESS_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="generate_from_budget",
            title="Generar procesos desde presupuesto",
            description="Crea un proceso por cada plantilla de un presupuesto aprobado.",
            inputSchema=GENERATE_FROM_BUDGET_INPUT_SCHEMA,
            outputSchema=GENERATE_FROM_BUDGET_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="transition_process",
            title="Cambiar estado",
            description="Mueve un proceso a otro estado si la transición está permitida.",
            inputSchema=TRANSITION_PROCESS_INPUT_SCHEMA,
            outputSchema=PROCESS_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="set_document_status",
            title="Estado de documento",
            description="Actualiza el estado de un documento y recalcula el avance del proceso.",
            inputSchema=SET_DOCUMENT_STATUS_INPUT_SCHEMA,
            outputSchema=SET_DOCUMENT_STATUS_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="apply_price_increase",
            title="Aumento de precios",
            description="Aplica un aumento porcentual a los precios activos, opcionalmente por categoría.",
            inputSchema=APPLY_PRICE_INCREASE_INPUT_SCHEMA,
            outputSchema=APPLY_PRICE_INCREASE_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="upsert_price",
            title="Guardar precio",
            description="Crea o actualiza un precio del catálogo y reconcilia las plantillas.",
            inputSchema=UPSERT_PRICE_INPUT_SCHEMA,
            outputSchema=UPSERT_PRICE_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="reconcile_pricing",
            title="Reconciliar precios",
            description="Detecta plantillas sin precio o con precios desactualizados.",
            inputSchema=RECONCILE_PRICING_INPUT_SCHEMA,
            outputSchema=RECONCILE_PRICING_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="list_notifications",
            title="Notificaciones",
            description="Devuelve el feed de notificaciones, de la más reciente a la más antigua.",
            inputSchema=LIST_NOTIFICATIONS_INPUT_SCHEMA,
            outputSchema=LIST_NOTIFICATIONS_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="mark_notification_read",
            title="Marcar como leída",
            description="Marca una notificación, o todas, como leída.",
            inputSchema=MARK_NOTIFICATION_READ_INPUT_SCHEMA,
            outputSchema=MARK_NOTIFICATION_READ_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="get_process",
            title="Detalle de proceso",
            description="Devuelve un proceso con sus documentos, historial y transiciones posibles.",
            inputSchema=GET_PROCESS_INPUT_SCHEMA,
            outputSchema=PROCESS_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="list_processes",
            title="Listar procesos",
            description="Lista procesos aplicando filtros combinables.",
            inputSchema=LIST_PROCESSES_INPUT_SCHEMA,
            outputSchema=LIST_PROCESSES_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="validate_document",
            title="Validar documento",
            description="Inicia la validación automática de un documento y devuelve la tarea creada.",
            inputSchema=VALIDATE_DOCUMENT_INPUT_SCHEMA,
            outputSchema=VALIDATION_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="get_validation",
            title="Estado de validación",
            description="Devuelve el estado y el resultado de una tarea de validación.",
            inputSchema=VALIDATION_TASK_INPUT_SCHEMA,
            outputSchema=VALIDATION_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="retry_validation",
            title="Reintentar validación",
            description="Crea una nueva tarea para una validación fallida o cancelada.",
            inputSchema=VALIDATION_TASK_INPUT_SCHEMA,
            outputSchema=VALIDATION_OUTPUT_SCHEMA,
        ),
        types.Tool(
            name="cancel_validation",
            title="Cancelar validación",
            description="Cancela una validación pendiente o en curso.",
            inputSchema=VALIDATION_TASK_INPUT_SCHEMA,
            outputSchema=CANCEL_VALIDATION_OUTPUT_SCHEMA,
        ),
    ]


class TramitesRuntime:
    """Shared runtime objects for both stdio and HTTP transports."""

    def __init__(
        self,
        *,
        settings: Settings,
        service: TramitesService,
        store: WorkspaceStore,
    ) -> None:
        self.settings = settings
        self.service = service
        self._store = store
        self._persist_lock = Lock()
        self._shutdown_lock = Lock()
        self._is_shutdown = False
        self._pending_saves: set[asyncio.Task[None]] = set()
        self._apply_validation = service.validator.on_complete
        service.validator.on_complete = self._on_validation_complete

        self._tool_definitions = _build_tool_definitions()
        self._app = self._build_low_level_app()
        self._initialization_options = self._app.create_initialization_options()

    @classmethod
    def create(cls, settings: Settings) -> "TramitesRuntime":
        state, store = load_workspace_state(settings)
        service = initialise_service(settings, state)
        return cls(settings=settings, service=service, store=store)

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self._tool_definitions]

    def _build_low_level_app(self) -> lowlevel_server.Server:
        app = lowlevel_server.Server(
            name="gestor-tramites",
            version="0.1.0",
            instructions=(
                "Este servidor MCP gestiona trámites regulatorios: plantillas, precios, "
                "presupuestos, procesos con su documentación y notificaciones."
            ),
        )
        service = self.service
        persist = self.persist_state

        @app.list_tools()
        async def _list_tools(_: types.ListToolsRequest | None = None) -> types.ListToolsResult:
            return types.ListToolsResult(tools=self._tool_definitions)

        async def handle_list_templates(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await list_templates_tool(service, authority=arguments.get("authority"))

        async def handle_search_templates(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await search_templates_tool(
                service,
                query=arguments.get("query", ""),
                limit=int(arguments.get("limit", 10)),
            )

        async def handle_create_budget(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await create_budget_tool(
                service,
                client_id=arguments["client_id"],
                template_ids=list(arguments.get("template_ids") or []),
                operation_type=arguments.get("operation_type"),
                description=arguments.get("description"),
                persist_state=persist,
            )

        async def handle_update_budget_status(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await update_budget_status_tool(
                service,
                budget_id=arguments["budget_id"],
                status=arguments["status"],
                persist_state=persist,
            )

        async def handle_generate_from_template(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await generate_from_template_tool(
                service,
                template_id=arguments["template_id"],
                client_id=arguments["client_id"],
                title=arguments.get("title"),
                priority=arguments.get("priority", "medium"),
                authority_mapping=arguments.get("authority_mapping"),
                persist_state=persist,
            )

        async def handle_generate_from_budget(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await generate_from_budget_tool(
                service,
                budget_id=arguments["budget_id"],
                authority_mapping=arguments.get("authority_mapping"),
                persist_state=persist,
            )

        async def handle_transition_process(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await transition_process_tool(
                service,
                process_id=arguments["process_id"],
                target=arguments["target"],
                author=arguments.get("author", "mcp"),
                persist_state=persist,
            )

        async def handle_set_document_status(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await set_document_status_tool(
                service,
                process_id=arguments["process_id"],
                document_id=arguments["document_id"],
                status=arguments["status"],
                author=arguments.get("author", "mcp"),
                persist_state=persist,
            )

        async def handle_apply_price_increase(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await apply_price_increase_tool(
                service,
                percent=arguments["percent"],
                category=arguments.get("category"),
                persist_state=persist,
            )

        async def handle_upsert_price(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await upsert_price_tool(service, entry=arguments, persist_state=persist)

        async def handle_reconcile_pricing(_: Dict[str, Any]) -> Dict[str, Any]:
            return await reconcile_pricing_tool(service, persist_state=persist)

        async def handle_list_notifications(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await list_notifications_tool(
                service,
                unread_only=bool(arguments.get("unread_only", False)),
                source=arguments.get("source"),
            )

        async def handle_mark_notification_read(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await mark_notification_read_tool(
                service,
                notification_id=arguments.get("notification_id"),
                persist_state=persist,
            )

        async def handle_get_process(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await get_process_tool(service, process_id=arguments["process_id"])

        async def handle_list_processes(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await list_processes_tool(service, filters=arguments.get("filters"))

        async def handle_validate_document(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await validate_document_tool(
                service,
                process_id=arguments["process_id"],
                document_id=arguments["document_id"],
            )

        async def handle_get_validation(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await get_validation_tool(service, task_id=arguments["task_id"])

        async def handle_retry_validation(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await retry_validation_tool(service, task_id=arguments["task_id"])

        async def handle_cancel_validation(arguments: Dict[str, Any]) -> Dict[str, Any]:
            return await cancel_validation_tool(service, task_id=arguments["task_id"])

        tool_handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "list_templates": handle_list_templates,
            "search_templates": handle_search_templates,
            "create_budget": handle_create_budget,
            "update_budget_status": handle_update_budget_status,
            "generate_from_template": handle_generate_from_template,
            "generate_from_budget": handle_generate_from_budget,
            "transition_process": handle_transition_process,
            "set_document_status": handle_set_document_status,
            "apply_price_increase": handle_apply_price_increase,
            "upsert_price": handle_upsert_price,
            "reconcile_pricing": handle_reconcile_pricing,
            "list_notifications": handle_list_notifications,
            "mark_notification_read": handle_mark_notification_read,
            "get_process": handle_get_process,
            "list_processes": handle_list_processes,
            "validate_document": handle_validate_document,
            "get_validation": handle_get_validation,
            "retry_validation": handle_retry_validation,
            "cancel_validation": handle_cancel_validation,
        }

        @app.call_tool()
        async def _call_tool(tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
            handler = tool_handlers.get(tool_name)
            if handler is None:
                raise ValueError(f"Unknown tool '{tool_name}'")
            return await handler(arguments or {})

        return app

    async def persist_state(self) -> None:
        async with self._persist_lock:
            snapshot = self.service.snapshot()
            await asyncio.to_thread(self._store.save, snapshot)

    def _on_validation_complete(self, task: ValidationTask) -> None:
        if self._apply_validation is not None:
            self._apply_validation(task)
        save = asyncio.get_running_loop().create_task(self.persist_state())
        self._pending_saves.add(save)
        save.add_done_callback(self._pending_saves.discard)

    async def run_session(self, read_stream: Any, write_stream: Any) -> None:
        await self._app.run(
            read_stream,
            write_stream,
            self._initialization_options,
            raise_exceptions=False,
        )

    async def shutdown(self) -> None:
        async with self._shutdown_lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
            await self.service.validator.aclose()
            if self._pending_saves:
                await asyncio.gather(*self._pending_saves, return_exceptions=True)
            await self.persist_state()


def build_http_app(runtime: TramitesRuntime, transport: Any | None = None) -> Starlette:
    """Starlette app with health and metrics routes, plus ``/mcp`` when a transport is given."""

    lifespan = None
    if transport is not None:

        @asynccontextmanager
        async def lifespan(_app):
            async with transport.connect() as (read_stream, write_stream):
                session_task = asyncio.create_task(runtime.run_session(read_stream, write_stream))
                try:
                    yield
                finally:
                    session_task.cancel()
                    with suppress(asyncio.CancelledError):
                        await session_task

    async def health_endpoint(request: Request) -> JSONResponse:
        start = time.perf_counter()
        service = runtime.service
        columns = service.board()
        response = JSONResponse(
            {
                "status": "ok",
                "templates": len(service.templates),
                "prices": len(service.pricing),
                "budgets": len(service.budgets),
                "processes": {status.value: len(items) for status, items in columns.items()},
                "unread_notifications": service.notifications.unread_count(),
            }
        )
        record_http_request(request.method, "/healthz", response.status_code, time.perf_counter() - start)
        return response

    async def metrics_endpoint(request: Request) -> Response:
        start = time.perf_counter()
        payload, content_type = metrics_payload()
        response = Response(content=payload, media_type=content_type)
        record_http_request(request.method, "/metrics", response.status_code, time.perf_counter() - start)
        return response

    routes = [
        Route("/healthz", endpoint=health_endpoint, methods=["GET"]),
        Route("/metrics", endpoint=metrics_endpoint, methods=["GET"]),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)

    if transport is not None:

        async def transport_app(scope, receive, send):
            await transport.handle_request(scope, receive, send)

        app.mount("/mcp", transport_app)

    return app


async def serve_stdio(settings: Settings) -> None:
    runtime = TramitesRuntime.create(settings)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await runtime.run_session(read_stream, write_stream)
    finally:
        await runtime.shutdown()


async def serve_http(
    settings: Settings,
    *,
    host: str,
    port: int,
    log_level: str,
    json_response: bool = False,
) -> None:
    runtime = TramitesRuntime.create(settings)
    transport = StreamableHTTPServerTransport(
        mcp_session_id=None,
        is_json_response_enabled=json_response,
    )
    app = build_http_app(runtime, transport)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=log_level.lower(),
        loop="asyncio",
    )
    server = uvicorn.Server(config)

    try:
        logger.info("Starting streamable HTTP server on %s:%s", host, port)
        await server.serve()
    finally:
        await transport.terminate()
        await runtime.shutdown()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the regulatory process MCP server")
    parser.add_argument(
        "--transport",
        default="stdio",
        choices=["stdio", "http"],
        help="Transport to use for serving the MCP protocol.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host/IP to bind when using the HTTP transport.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind when using the HTTP transport.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    parser.add_argument(
        "--http-json-response",
        action="store_true",
        help="Return JSON responses when using the HTTP transport (default is streaming).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    settings = get_settings()

    if args.transport == "stdio":
        asyncio.run(serve_stdio(settings))
        return

    asyncio.run(
        serve_http(
            settings,
            host=args.host,
            port=args.port,
            log_level=args.log_level,
            json_response=args.http_json_response,
        )
    )


if __name__ == "__main__":  # pragma: no cover
    main()
