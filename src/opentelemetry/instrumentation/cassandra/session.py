# Copyright The OpenTelemetry Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Tracing decorator for :class:`cassandra.cluster.Session`."""

import logging
import threading
import typing
from concurrent.futures import Executor, ThreadPoolExecutor

import wrapt
from cassandra.cluster import EXEC_PROFILE_DEFAULT

from opentelemetry import context, trace
from opentelemetry.instrumentation.cassandra.name_provider import (
    CustomStringSpanName,
    QuerySpanNameProvider,
)
from opentelemetry.instrumentation.cassandra.util import (
    ERROR,
    error_event_attributes,
    extract_peer_attributes,
    extract_session_attributes,
    extract_statement_attributes,
    get_query_string,
)
from opentelemetry.instrumentation.cassandra.version import __version__
from opentelemetry.instrumentation.utils import _SUPPRESS_INSTRUMENTATION_KEY
from opentelemetry.semconv.trace import SpanAttributes
from opentelemetry.trace import Span, SpanKind, TracerProvider
from opentelemetry.trace.status import Status, StatusCode

logger = logging.getLogger(__name__)

_RequestHookT = typing.Optional[typing.Callable[[Span, str], None]]
_ResponseHookT = typing.Optional[typing.Callable[[Span, typing.Any], None]]


class _SpanFinisher:
    """Ends a span once, whichever way the query completes.

    The driver calls the callbacks of a response future again for every
    page fetched afterwards, those later calls are ignored.
    """

    def __init__(self, session, span, statement):
        self._session = session
        self._span = span
        self._statement = statement
        self._lock = threading.Lock()
        self._done = False

    def _claim(self):
        with self._lock:
            if self._done:
                return False
            self._done = True
            return True

    def finish(self, response_future, result):
        if not self._claim():
            logger.debug("Ignoring repeated completion of a cassandra query")
            return
        # pylint: disable=protected-access
        self._session._end_span(self._span, response_future, result)

    def fail(self, exc):
        if not self._claim():
            logger.debug("Ignoring repeated failure of a cassandra query")
            return
        # pylint: disable=protected-access
        self._session._end_span_with_error(self._span, exc, self._statement)


# pylint: disable=abstract-method
class TracingSession(wrapt.ObjectProxy):
    """Traces the queries executed through a cassandra session.

    Every call to :meth:`execute` or :meth:`execute_async` produces one
    ``CLIENT`` span named by the ``query_span_name_provider``. Everything
    else is forwarded to the wrapped session untouched.

    Args:
        session: The :class:`cassandra.cluster.Session` to trace.
        tracer_provider: The :class:`opentelemetry.trace.TracerProvider` to
            use. If omitted the globally configured one is used.
        query_span_name_provider: A
            :class:`~opentelemetry.instrumentation.cassandra.name_provider.QuerySpanNameProvider`,
            defaults to naming every span ``execute``.
        executor: The executor ending the spans of asynchronous queries.
            A thread pool owned by the session is created when omitted,
            bounded by the ``ThreadPoolExecutor`` default worker count.
            Ending a span does no I/O, so the bound only queues work.
        request_hook: Called with the span and the query text before the
            query is sent.
        response_hook: Called with the span and the result after a
            successful query.
    """

    def __init__(
        self,
        session,
        tracer_provider: typing.Optional[TracerProvider] = None,
        query_span_name_provider: typing.Optional[
            QuerySpanNameProvider
        ] = None,
        executor: typing.Optional[Executor] = None,
        request_hook: _RequestHookT = None,
        response_hook: _ResponseHookT = None,
    ):
        wrapt.ObjectProxy.__init__(self, session)
        self._self_tracer = trace.get_tracer(
            __name__, __version__, tracer_provider
        )
        self._self_query_span_name_provider = (
            query_span_name_provider or CustomStringSpanName()
        )
        self._self_owns_executor = executor is None
        if executor is None:
            executor = ThreadPoolExecutor(
                thread_name_prefix="cassandra-tracing"
            )
        self._self_executor = executor
        self._self_request_hook = request_hook
        self._self_response_hook = response_hook

    @property
    def query_span_name_provider(self) -> QuerySpanNameProvider:
        return self._self_query_span_name_provider

    def execute(self, query, parameters=None, *args, **kwargs):
        if context.get_value(_SUPPRESS_INSTRUMENTATION_KEY):
            return self.__wrapped__.execute(query, parameters, *args, **kwargs)

        query_string = get_query_string(query)
        with self._self_tracer.start_as_current_span(
            self._span_name(query_string),
            kind=SpanKind.CLIENT,
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            self._populate_span(span, query, query_string, kwargs)
            try:
                result = self.__wrapped__.execute(
                    query, parameters, *args, **kwargs
                )
            except Exception as exc:
                self._end_span_with_error(span, exc, query)
                raise
            self._end_span(
                span, getattr(result, "response_future", None), result
            )
            return result

    def execute_async(self, query, parameters=None, *args, **kwargs):
        if context.get_value(_SUPPRESS_INSTRUMENTATION_KEY):
            return self.__wrapped__.execute_async(
                query, parameters, *args, **kwargs
            )

        query_string = get_query_string(query)
        with self._self_tracer.start_as_current_span(
            self._span_name(query_string),
            kind=SpanKind.CLIENT,
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            self._populate_span(span, query, query_string, kwargs)
            try:
                response_future = self.__wrapped__.execute_async(
                    query, parameters, *args, **kwargs
                )
            except Exception as exc:
                self._end_span_with_error(span, exc, query)
                raise

        finisher = _SpanFinisher(self, span, query)
        response_future.add_callbacks(
            callback=self._make_callback(finisher, response_future),
            errback=self._make_errback(finisher),
        )
        return response_future

    def shutdown(self):
        try:
            self.__wrapped__.shutdown()
        finally:
            if self._self_owns_executor:
                self._self_executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.shutdown()

    def _submit(self, func, *args):
        try:
            self._self_executor.submit(func, *args)
        except RuntimeError:
            # executor already shut down
            func(*args)

    def _make_callback(self, finisher, response_future):
        def callback(result):
            self._submit(finisher.finish, response_future, result)

        return callback

    def _make_errback(self, finisher):
        def errback(exc):
            self._submit(finisher.fail, exc)

        return errback

    def _span_name(self, query_string):
        try:
            return self._self_query_span_name_provider.query_span_name(
                query_string
            )
        except Exception as ex:  # pylint: disable=broad-except
            logger.warning(
                "Failed to name cassandra span, using the default %s", str(ex)
            )
            return CustomStringSpanName().query_span_name(query_string)

    def _populate_span(self, span, query, query_string, kwargs):
        if span.is_recording():
            try:
                span.set_attribute(SpanAttributes.DB_STATEMENT, query_string)
                for key, value in extract_session_attributes(
                    self.__wrapped__
                ).items():
                    span.set_attribute(key, value)
                for key, value in extract_statement_attributes(
                    query,
                    self.__wrapped__,
                    kwargs.get("execution_profile", EXEC_PROFILE_DEFAULT),
                ).items():
                    span.set_attribute(key, value)
            except Exception as ex:  # pylint: disable=broad-except
                logger.warning(
                    "Failed to set attributes for cassandra span %s", str(ex)
                )
        if callable(self._self_request_hook):
            try:
                self._self_request_hook(span, query_string)
            except Exception as ex:  # pylint: disable=broad-except
                logger.warning(
                    "Failed to run request hook for cassandra span %s", str(ex)
                )

    def _end_span(self, span, response_future, result):
        try:
            if span.is_recording() and response_future is not None:
                for key, value in extract_peer_attributes(
                    response_future
                ).items():
                    span.set_attribute(key, value)
            if callable(self._self_response_hook):
                self._self_response_hook(span, result)
        except Exception as ex:  # pylint: disable=broad-except
            logger.warning(
                "Failed to set attributes for cassandra span %s", str(ex)
            )
        finally:
            span.end()

    # pylint: disable=no-self-use
    def _end_span_with_error(self, span, exc, statement):
        try:
            if span.is_recording():
                span.set_attribute(ERROR, True)
                span.set_status(
                    Status(
                        status_code=StatusCode.ERROR,
                        description=f"{type(exc).__name__}: {exc}",
                    )
                )
                span.add_event(
                    ERROR, attributes=error_event_attributes(exc, statement)
                )
        except Exception as ex:  # pylint: disable=broad-except
            logger.warning(
                "Failed to record error on cassandra span %s", str(ex)
            )
        finally:
            span.end()


def wrap_session(session, **kwargs):
    """Return ``session`` as a :class:`TracingSession`.

    A session which is already traced is returned as is, so that no query
    is ever reported twice.
    """
    if isinstance(session, TracingSession):
        return session
    return TracingSession(session, **kwargs)
