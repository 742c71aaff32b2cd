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

from unittest import mock

from cassandra.cluster import Cluster

from opentelemetry.instrumentation.cassandra import (
    CassandraInstrumentor,
    TracingCluster,
    TracingSession,
    instrument_session,
    uninstrument_session,
)
from opentelemetry.instrumentation.cassandra.name_provider import (
    CustomStringSpanName,
    QueryMethodTableSpanName,
)
from opentelemetry.test.test_base import TestBase

from .utils import ImmediateExecutor, MockSession, UnconnectedCluster

TEST_QUERY = "INSERT INTO test.person (name, age) VALUES ('Athena', 100)"


class TestCassandraInstrumentor(TestBase):
    def setUp(self):
        super().setUp()
        self.wrapped = MockSession(keyspace="test")
        wrapped = self.wrapped

        # pylint: disable=unused-argument
        def connect(cluster, keyspace=None, wait_for_all_pools=False):
            return wrapped

        patcher = mock.patch.object(Cluster, "connect", connect)
        patcher.start()
        self.addCleanup(patcher.stop)
        CassandraInstrumentor().instrument(
            tracer_provider=self.tracer_provider,
            query_span_name_provider=QueryMethodTableSpanName(),
        )

    def tearDown(self):
        super().tearDown()
        CassandraInstrumentor().uninstrument()

    def test_instrumentation_dependencies(self):
        self.assertEqual(
            CassandraInstrumentor().instrumentation_dependencies(),
            ("cassandra-driver >= 3.15",),
        )

    def test_connect_returns_traced_session(self):
        session = UnconnectedCluster().connect("test")

        self.assertIsInstance(session, TracingSession)
        self.assertIs(session.__wrapped__, self.wrapped)
        session.execute(TEST_QUERY)
        session.shutdown()

        spans = self.memory_exporter.get_finished_spans()
        self.assertEqual(len(spans), 1)
        self.assertEqual(spans[0].name, "Cassandra.INSERT - test.person")

    def test_tracing_cluster_does_not_wrap_twice(self):
        cluster = TracingCluster(
            UnconnectedCluster(), tracer_provider=self.tracer_provider
        )
        session = cluster.connect()
        session.execute(TEST_QUERY)
        session.shutdown()
        cluster.shutdown()

        self.assertIs(session.__wrapped__, self.wrapped)
        self.assertEqual(len(self.memory_exporter.get_finished_spans()), 1)

    def test_instrumented_session_keeps_its_span_names(self):
        cluster = TracingCluster(
            UnconnectedCluster(),
            tracer_provider=self.tracer_provider,
            query_span_name_provider=CustomStringSpanName("cluster"),
        )
        session = cluster.connect()
        session.execute(TEST_QUERY)
        session.shutdown()
        cluster.shutdown()

        spans = self.memory_exporter.get_finished_spans()
        self.assertEqual(len(spans), 1)
        self.assertEqual(spans[0].name, "Cassandra.INSERT - test.person")

    def test_uninstrument(self):
        CassandraInstrumentor().uninstrument()
        session = UnconnectedCluster().connect()

        self.assertNotIsInstance(session, TracingSession)
        session.execute(TEST_QUERY)
        self.assertEqual(len(self.memory_exporter.get_finished_spans()), 0)

        CassandraInstrumentor().instrument(tracer_provider=self.tracer_provider)
        session = UnconnectedCluster().connect()
        session.execute(TEST_QUERY)
        session.shutdown()
        spans = self.memory_exporter.get_finished_spans()
        self.assertEqual(len(spans), 1)
        self.assertEqual(spans[0].name, "execute")


class TestInstrumentSession(TestBase):
    def test_instrument_session(self):
        wrapped = MockSession()
        session = instrument_session(
            wrapped, tracer_provider=self.tracer_provider
        )
        session.execute(TEST_QUERY)
        session.shutdown()

        self.assertIsInstance(session, TracingSession)
        self.assertEqual(len(self.memory_exporter.get_finished_spans()), 1)

    def test_instrument_session_twice(self):
        session = instrument_session(
            MockSession(), tracer_provider=self.tracer_provider
        )
        self.assertIs(instrument_session(session), session)

    def test_uninstrument_session(self):
        wrapped = MockSession()
        session = TracingSession(
            wrapped,
            tracer_provider=self.tracer_provider,
            executor=ImmediateExecutor(),
        )

        self.assertIs(uninstrument_session(session), wrapped)
        with self.assertLogs(
            "opentelemetry.instrumentation.cassandra", level="WARNING"
        ):
            self.assertIs(uninstrument_session(wrapped), wrapped)
