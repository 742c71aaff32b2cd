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

"""Tracing decorator for :class:`cassandra.cluster.Cluster`."""

import threading
import typing
from concurrent.futures import Future, ThreadPoolExecutor

import wrapt

from opentelemetry.instrumentation.cassandra.name_provider import (
    CustomStringSpanName,
    QuerySpanNameProvider,
)
from opentelemetry.instrumentation.cassandra.session import (
    TracingSession,
    wrap_session,
)
from opentelemetry.trace import TracerProvider


# pylint: disable=abstract-method
class TracingCluster(wrapt.ObjectProxy):
    """Hands out :class:`TracingSession` objects for a cassandra cluster.

    Sessions are wrapped once, by :meth:`new_session`. :meth:`connect_async`
    runs :meth:`new_session` in the background and :meth:`connect` waits on
    :meth:`connect_async`, so neither wraps a second time. The wait costs
    one connect thread per cluster, reused across calls.

    A session which is already traced, such as one returned while
    :class:`~opentelemetry.instrumentation.cassandra.CassandraInstrumentor`
    is active, is kept as is. Its tracer provider and
    ``query_span_name_provider`` win over the ones given here.

    Args:
        cluster: The :class:`cassandra.cluster.Cluster` to connect through.
        tracer_provider: The :class:`opentelemetry.trace.TracerProvider` to
            use. If omitted the globally configured one is used.
        query_span_name_provider: Names the spans of every session of this
            cluster, defaults to ``execute`` for every query.
    """

    def __init__(
        self,
        cluster,
        tracer_provider: typing.Optional[TracerProvider] = None,
        query_span_name_provider: typing.Optional[
            QuerySpanNameProvider
        ] = None,
    ):
        wrapt.ObjectProxy.__init__(self, cluster)
        self._self_tracer_provider = tracer_provider
        self._self_query_span_name_provider = (
            query_span_name_provider or CustomStringSpanName()
        )
        self._self_connect_executor = None
        self._self_connect_lock = threading.Lock()

    def new_session(
        self, keyspace=None, wait_for_all_pools=False
    ) -> TracingSession:
        session = self.__wrapped__.connect(
            keyspace, wait_for_all_pools=wait_for_all_pools
        )
        return wrap_session(
            session,
            tracer_provider=self._self_tracer_provider,
            query_span_name_provider=self._self_query_span_name_provider,
        )

    def connect_async(self, keyspace=None, wait_for_all_pools=False) -> Future:
        with self._self_connect_lock:
            if self._self_connect_executor is None:
                self._self_connect_executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="cassandra-connect"
                )
            return self._self_connect_executor.submit(
                self.new_session, keyspace, wait_for_all_pools
            )

    def connect(self, keyspace=None, wait_for_all_pools=False):
        # already a TracingSession, wrapped on the async path
        return self.connect_async(keyspace, wait_for_all_pools).result()

    def shutdown(self):
        try:
            self.__wrapped__.shutdown()
        finally:
            with self._self_connect_lock:
                if self._self_connect_executor is not None:
                    self._self_connect_executor.shutdown(wait=True)
                    self._self_connect_executor = None

    def __enter__(self):
        return self

    def __exit__(self, *args, **kwargs):
        self.shutdown()
