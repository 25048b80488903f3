"""Server-side async jobs.

A context built with ``with_async()`` sends the request with
``x-arango-async: store``; the server answers ``202`` with a job id, which
is raised as :class:`AsyncJobInProgressError`. Repeating the call with
``with_async_id(job_id)`` fetches the job result through
``PUT /_api/job/<id>`` instead of sending the original request again.
"""

from __future__ import annotations

import logging
from typing import Any

from arangodriver.connection.base import Connection, ConnectionWrapper
from arangodriver.connection.context import RequestContext, context_or_background
from arangodriver.connection.request import PUT, Request, segment
from arangodriver.connection.response import Response
from arangodriver.errors import AsyncJobInProgressError, ProtocolError

logger = logging.getLogger(__name__)

ASYNC_HEADER = "x-arango-async"
ASYNC_HEADER_VALUE = "store"
ASYNC_ID_HEADER = "x-arango-async-id"


class AsyncJobConnection(ConnectionWrapper):
    def do(self, ctx: RequestContext | None, request: Request, target: Any = None) -> Response:
        ctx = context_or_background(ctx)
        if ctx.async_id:
            return self._job_result(ctx, ctx.async_id, target)
        if not ctx.async_request:
            return self._inner.do(ctx, request, target)

        request = request.clone()
        request.add_header(ASYNC_HEADER, ASYNC_HEADER_VALUE)
        response = self._inner.do(ctx, request)
        if response.code != 202:
            return response

        job_id = response.header(ASYNC_ID_HEADER)
        if not job_id:
            raise ProtocolError("async request accepted without a job id")
        logger.debug("Request %s %s stored as async job %s", request.method, request.url_path(), job_id)
        raise AsyncJobInProgressError(job_id)

    def _job_result(self, ctx: RequestContext, job_id: str, target: Any) -> Response:
        request = self._inner.new_request(PUT, "_api/job", segment(job_id))
        response = self._inner.do(ctx, request, target)
        if response.code == 204 and response.header(ASYNC_ID_HEADER) != job_id:
            raise AsyncJobInProgressError(job_id)
        return response


def async_job_wrapper(connection: Connection) -> Connection:
    return AsyncJobConnection(connection)


__all__ = [
    "ASYNC_HEADER",
    "ASYNC_HEADER_VALUE",
    "ASYNC_ID_HEADER",
    "AsyncJobConnection",
    "async_job_wrapper",
]
