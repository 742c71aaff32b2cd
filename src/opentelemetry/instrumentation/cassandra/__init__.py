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

"""
Instrument `cassandra-driver`_ to report Cassandra queries.

.. _cassandra-driver: https://pypi.org/project/cassandra-driver/

Every query executed through a traced session reports a ``CLIENT`` span
carrying the statement, the keyspace, the coordinator host and the outcome
of the query.

Usage
-----

Wrap a cluster, every session it connects is traced:

.. code-block:: python

    from cassandra.cluster import Cluster
    from opentelemetry.instrumentation.cassandra import TracingCluster
    from opentelemetry.instrumentation.cassandra.name_provider import (
        QueryMethodTableSpanName,
    )

    cluster = TracingCluster(
        Cluster(["127.0.0.1"]),
        query_span_name_provider=QueryMethodTableSpanName(),
    )
    session = cluster.connect("my_keyspace")
    # reports a span named "Cassandra.SELECT - my_table"
    session.execute("SELECT id FROM my_table LIMIT 10")

Or instrument the driver, so that ``Cluster.connect`` returns traced
sessions:

.. code-block:: python

    from cassandra.cluster import Cluster
    from opentelemetry.instrumentation.cassandra import CassandraInstrumentor

    CassandraInstrumentor().instrument()

    session = Cluster(["127.0.0.1"]).connect("my_keyspace")
    session.execute("SELECT id FROM my_table LIMIT 10")

The `instrument` method accepts the following keyword args:

tracer_provider (TracerProvider) - an optional tracer provider

query_span_name_provider (QuerySpanNameProvider) - names the spans, every
span is named ``execute`` by default

request_hook (Callable) - a function with extra user-defined logic to be performed before sending the query
this function signature is:  def request_hook(span: Span, query: str) -> None

response_hook (Callable) - a function with extra user-defined logic to be performed after a successful query
this function signature is: def response_hook(span: Span, result) -> None

API
---
"""
import logging
from typing import Collection

import cassandra.cluster
from wrapt import wrap_function_wrapper

from opentelemetry.instrumentation.cassandra.cluster import TracingCluster
from opentelemetry.instrumentation.cassandra.package import _instruments
from opentelemetry.instrumentation.cassandra.session import (
    TracingSession,
    wrap_session,
)
from opentelemetry.instrumentation.cassandra.version import __version__
from opentelemetry.instrumentation.instrumentor import BaseInstrumentor
from opentelemetry.instrumentation.utils import unwrap

logger = logging.getLogger(__name__)


def instrument_session(
    session,
    tracer_provider=None,
    query_span_name_provider=None,
    request_hook=None,
    response_hook=None,
):
    """Enable tracing on a cassandra session.

    Args:
        session: The :class:`cassandra.cluster.Session` to trace.
        tracer_provider: The :class:`opentelemetry.trace.TracerProvider` to
            use. If omitted the globally configured one is used.
        query_span_name_provider: Names the spans of the session.
        request_hook: Called with the span and the query text before the
            query is sent.
        response_hook: Called with the span and the result of a successful
            query.

    Returns:
        A traced session.
    """
    return wrap_session(
        session,
        tracer_provider=tracer_provider,
        query_span_name_provider=query_span_name_provider,
        request_hook=request_hook,
        response_hook=response_hook,
    )


def uninstrument_session(session):
    """Disable tracing on a cassandra session.

    Args:
        session: The session to uninstrument.

    Returns:
        The session that was traced.
    """
    if isinstance(session, TracingSession):
        return session.__wrapped__

    logger.warning("Session is not instrumented")
    return session


class CassandraInstrumentor(BaseInstrumentor):
    """An instrumentor for cassandra-driver
    See `BaseInstrumentor`
    """

    def instrumentation_dependencies(self) -> Collection[str]:
        return _instruments

    def _instrument(self, **kwargs):
        """Makes ``Cluster.connect`` return traced sessions

        Args:
            **kwargs: Optional arguments
                ``tracer_provider``: a TracerProvider, defaults to global.
                ``query_span_name_provider``: names the spans.
                ``request_hook``: called before a query is sent.
                ``response_hook``: called after a successful query.
        """
        session_kwargs = {
            "tracer_provider": kwargs.get("tracer_provider"),
            "query_span_name_provider": kwargs.get(
                "query_span_name_provider"
            ),
            "request_hook": kwargs.get("request_hook"),
            "response_hook": kwargs.get("response_hook"),
        }

        # pylint: disable=unused-argument
        def _traced_connect(func, instance, args, kwargs):
            return instrument_session(func(*args, **kwargs), **session_kwargs)

        wrap_function_wrapper(
            "cassandra.cluster", "Cluster.connect", _traced_connect
        )

    def _uninstrument(self, **kwargs):
        unwrap(cassandra.cluster.Cluster, "connect")


__all__ = [
    "CassandraInstrumentor",
    "TracingCluster",
    "TracingSession",
    "instrument_session",
    "uninstrument_session",
    "__version__",
]
