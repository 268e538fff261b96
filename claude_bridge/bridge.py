"""Control bridge: answers control requests from the CLI.

Each ``control_request`` gets exactly one ``control_response`` carrying the
same ``request_id``. Requests are answered in the order received and
answering one never waits on another; there is no pending-request table.
"""

import logging
from typing import Any, Callable, Dict, Optional, Type

from .control import (
    ControlHookCallbackRequest,
    ControlInitializeRequest,
    ControlInterruptRequest,
    ControlMcpMessageRequest,
    ControlPermissionRequest,
    ControlRequestInner,
    ControlResponse,
    ControlRewindFilesRequest,
    ControlSetPermissionModeRequest,
    MalformedControlRequest,
    UnknownControlRequest,
)
from .errors import UnknownControlSubtypeError
from .pipeline import HookPipeline
from .tool_server import SDKMCPServer
from .trace import wire_trace
from .types import ControlRequest

logger = logging.getLogger(__name__)


class ControlBridge:
    """Dispatches control requests to their handlers.

    Args:
        send_response: Writes a control response to the CLI.
        pipeline: Hook/permission pipeline for permission checks and hook
            callbacks.
        servers: In-process tool servers by name.
    """

    def __init__(
        self,
        send_response: Callable[[ControlResponse], None],
        pipeline: HookPipeline,
        servers: Optional[Dict[str, SDKMCPServer]] = None,
    ):
        self._send_response = send_response
        self._pipeline = pipeline
        self._servers: Dict[str, SDKMCPServer] = dict(servers or {})

        self._handlers: Dict[Type[Any], Callable[[str, Any], ControlResponse]] = {
            ControlInitializeRequest: self._handle_initialize,
            ControlMcpMessageRequest: self._handle_mcp_message,
            ControlPermissionRequest: self._handle_permission,
            ControlHookCallbackRequest: self._handle_hook_callback,
            ControlInterruptRequest: self._acknowledge,
            ControlSetPermissionModeRequest: self._handle_set_permission_mode,
            ControlRewindFilesRequest: self._acknowledge,
            MalformedControlRequest: self._handle_malformed,
        }

    @property
    def server_names(self):
        return list(self._servers)

    def handle(self, request: ControlRequest) -> ControlResponse:
        """Answer one control request and return the response sent.

        Handler failures become error responses. Only a failure to write
        the response propagates.
        """
        response = self._dispatch(request.request_id, request.request)
        if response.is_error:
            logger.warning(
                f"Control request {request.request_id} ({request.subtype}) failed: "
                f"{response.response.get('error')}"
            )
        self._send_response(response)
        return response

    def _dispatch(self, request_id: str, inner: ControlRequestInner) -> ControlResponse:
        handler = self._handlers.get(type(inner))
        try:
            if handler is None:
                subtype = inner.subtype if isinstance(inner, UnknownControlRequest) else None
                raise UnknownControlSubtypeError(subtype)
            return handler(request_id, inner)
        except Exception as e:
            wire_trace("bridge", f"request {request_id} failed: {e}", include_traceback=True)
            return ControlResponse.error(request_id, str(e))

    # ==================== Handlers ====================

    def _handle_initialize(self, request_id: str, inner: ControlInitializeRequest) -> ControlResponse:
        # Our own servers were announced at startup; nothing to negotiate
        return ControlResponse.success(request_id)

    def _handle_mcp_message(self, request_id: str, inner: ControlMcpMessageRequest) -> ControlResponse:
        server = self._servers.get(inner.server_name)
        if server is None:
            return ControlResponse.error(request_id, f"Unknown MCP server: {inner.server_name}")
        return ControlResponse.mcp_response(request_id, server.handle_jsonrpc(inner.message))

    def _handle_permission(self, request_id: str, inner: ControlPermissionRequest) -> ControlResponse:
        return ControlResponse.success(request_id, self._pipeline.check_tool_permission(inner))

    def _handle_hook_callback(
        self, request_id: str, inner: ControlHookCallbackRequest
    ) -> ControlResponse:
        self._pipeline.handle_hook_callback(inner)
        return ControlResponse.success(request_id)

    def _handle_set_permission_mode(
        self, request_id: str, inner: ControlSetPermissionModeRequest
    ) -> ControlResponse:
        logger.debug(f"CLI reported permission mode change to {inner.mode}")
        return ControlResponse.success(request_id)

    def _handle_malformed(self, request_id: str, inner: MalformedControlRequest) -> ControlResponse:
        return ControlResponse.error(
            request_id, f"Malformed {inner.subtype or 'control'} request: {inner.error}"
        )

    def _acknowledge(self, request_id: str, inner: ControlRequestInner) -> ControlResponse:
        return ControlResponse.success(request_id)
