"""HTTP route handlers with NDJSON progress streaming.

Run endpoints come in two flavours: a plain JSON response once the execution
has finished, and a ``/stream`` variant that emits one NDJSON line per
progress update followed by a single ``done`` or ``error`` line.
"""

import asyncio
import json
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from coderun_core.artifacts import artifact_uri, media_type
from coderun_core.exceptions import (
    ArtifactCollectionFailedError,
    ConfigInvalidError,
    NotFoundError,
)
from coderun_core.languages import SUPPORTED_LANGUAGES
from coderun_core.protocols.progress import ProgressUpdate

if TYPE_CHECKING:
    from coderun_core.orchestrator import ExecutionResult, Orchestrator

RunCall = Callable[[Any], Awaitable["ExecutionResult"]]


class NDJSONResponse(StreamingResponse):
    """Newline-delimited JSON streaming response.

    Each chunk is a JSON object followed by a newline.
    """

    media_type = "application/x-ndjson"

    def __init__(
        self,
        content: AsyncIterator[str],
        status_code: int = 200,
        headers: dict | None = None,
    ) -> None:
        ndjson_headers = {
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        }
        if headers:
            ndjson_headers.update(headers)

        super().__init__(
            content=content,
            status_code=status_code,
            headers=ndjson_headers,
            media_type=self.media_type,
        )


def format_ndjson(data: dict) -> str:
    """Format data as NDJSON line."""
    return json.dumps(data) + "\n"


def error_status(error: Exception) -> int:
    """HTTP status for an exception raised by the orchestrator."""
    if isinstance(error, ConfigInvalidError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    return 500


def error_payload(error: Exception) -> dict[str, Any]:
    """JSON body for an error; harvest failures keep the execution logs."""
    payload: dict[str, Any] = {"error": str(error), "type": type(error).__name__}
    if isinstance(error, ArtifactCollectionFailedError):
        payload["execution_id"] = error.execution_id
        payload["logs"] = error.logs
    return payload


def error_response(error: Exception) -> JSONResponse:
    return JSONResponse(error_payload(error), status_code=error_status(error))


async def _read_body(request: Request) -> dict[str, Any] | JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "JSON body must be an object"}, status_code=400)
    return body


def create_routes(orchestrator: "Orchestrator") -> list[Route]:
    """Create HTTP routes for the orchestrator.

    Args:
        orchestrator: The configured Orchestrator instance

    Returns:
        List of Starlette routes
    """

    def code_call(body: dict[str, Any]) -> RunCall:
        async def call(observer: Any) -> "ExecutionResult":
            return await orchestrator.run_code(
                language=body.get("language") or "",
                code=body.get("code") or "",
                output_path=body.get("output_path"),
                observer=observer,
                progress_token=body.get("progress_token"),
            )

        return call

    def project_call(body: dict[str, Any]) -> RunCall:
        async def call(observer: Any) -> "ExecutionResult":
            project_dir = body.get("project_dir")
            if not project_dir:
                raise ConfigInvalidError("Missing required field: project_dir")
            return await orchestrator.run_project(
                language=body.get("language") or "",
                project_dir=project_dir,
                entrypoint=body.get("entrypoint"),
                output_path=body.get("output_path"),
                observer=observer,
                progress_token=body.get("progress_token"),
            )

        return call

    async def run_json(call: RunCall) -> Response:
        try:
            result = await call(None)
        except Exception as e:
            return error_response(e)
        return JSONResponse(result.to_dict())

    def run_stream(call: RunCall) -> Response:
        async def generate() -> AsyncIterator[str]:
            """Generate NDJSON stream."""
            queue: asyncio.Queue[ProgressUpdate | None] = asyncio.Queue()

            async def observer(update: ProgressUpdate) -> None:
                await queue.put(update)

            async def runner() -> "ExecutionResult":
                try:
                    return await call(observer)
                finally:
                    await queue.put(None)

            task = asyncio.create_task(runner())
            try:
                while (update := await queue.get()) is not None:
                    yield format_ndjson({"type": "progress", **update.to_dict()})
                try:
                    result = await task
                except Exception as e:
                    payload = error_payload(e)
                    payload["error_type"] = payload.pop("type")
                    yield format_ndjson({"type": "error", **payload})
                    return
                yield format_ndjson({"type": "done", **result.to_dict()})
            finally:
                if not task.done():
                    task.cancel()

        return NDJSONResponse(generate())

    async def health(request: Request) -> Response:
        """Health check endpoint."""
        return JSONResponse({"status": "ok", "timestamp": time.time()})

    async def languages(request: Request) -> Response:
        """List supported languages and their runtime profiles."""
        return JSONResponse(
            {
                "languages": [
                    {
                        "id": profile.language,
                        "image": profile.image,
                        "run_command": list(profile.run_command),
                        "file_extension": profile.file_extension,
                        "dependency_files": list(profile.dependency_files),
                    }
                    for profile in SUPPORTED_LANGUAGES.values()
                ]
            }
        )

    async def run_code(request: Request) -> Response:
        """Run inline code.

        Body: {"language": "...", "code": "...", "output_path": "..."}
        """
        body = await _read_body(request)
        if isinstance(body, Response):
            return body
        return await run_json(code_call(body))

    async def run_code_stream(request: Request) -> Response:
        body = await _read_body(request)
        if isinstance(body, Response):
            return body
        return run_stream(code_call(body))

    async def run_project(request: Request) -> Response:
        """Run a project directory.

        Body: {"language": "...", "project_dir": "...", "entrypoint": "...",
        "output_path": "..."}
        """
        body = await _read_body(request)
        if isinstance(body, Response):
            return body
        return await run_json(project_call(body))

    async def run_project_stream(request: Request) -> Response:
        body = await _read_body(request)
        if isinstance(body, Response):
            return body
        return run_stream(project_call(body))

    async def artifacts_list(request: Request) -> Response:
        execution_id = request.path_params["execution_id"]
        listings = await orchestrator.list_artifacts(artifact_uri(execution_id, ""))
        return JSONResponse({"artifacts": [listing.to_dict() for listing in listings]})

    async def artifact_fetch(request: Request) -> Response:
        """Raw artifact bytes; the category travels in ``X-Artifact-Category``."""
        execution_id = request.path_params["execution_id"]
        file_name = request.path_params["file_name"]
        try:
            content, category = await orchestrator.fetch_artifact(
                artifact_uri(execution_id, file_name)
            )
        except NotFoundError as e:
            return error_response(e)
        return Response(
            content,
            media_type=media_type(file_name),
            headers={"X-Artifact-Category": category.value},
        )

    async def artifacts_purge(request: Request) -> Response:
        execution_id = request.path_params["execution_id"]
        count = await orchestrator.purge_artifacts(execution_id)
        return JSONResponse({"execution_id": execution_id, "purged": count})

    async def execution_logs(request: Request) -> Response:
        execution_id = request.path_params["execution_id"]
        try:
            logs = await orchestrator.container_logs(execution_id)
        except Exception as e:
            return error_response(e)
        return JSONResponse({"execution_id": execution_id, "logs": logs})

    async def execution_discard(request: Request) -> Response:
        execution_id = request.path_params["execution_id"]
        try:
            await orchestrator.discard(execution_id)
        except Exception as e:
            return error_response(e)
        return JSONResponse({"execution_id": execution_id, "status": "discarded"})

    return [
        Route("/health", health, methods=["GET"]),
        Route("/ping", health, methods=["GET"]),
        Route("/languages", languages, methods=["GET"]),
        # Execution
        Route("/run/code", run_code, methods=["POST"]),
        Route("/run/code/stream", run_code_stream, methods=["POST"]),
        Route("/run/project", run_project, methods=["POST"]),
        Route("/run/project/stream", run_project_stream, methods=["POST"]),
        Route("/executions/{execution_id}/logs", execution_logs, methods=["GET"]),
        Route("/executions/{execution_id}", execution_discard, methods=["DELETE"]),
        # Artifacts
        Route("/artifacts/{execution_id}", artifacts_list, methods=["GET"]),
        Route("/artifacts/{execution_id}", artifacts_purge, methods=["DELETE"]),
        Route("/artifacts/{execution_id}/{file_name}", artifact_fetch, methods=["GET"]),
    ]
