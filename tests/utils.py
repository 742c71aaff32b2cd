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

from cassandra import ConsistencyLevel
from cassandra.cluster import Cluster
from cassandra.query import FETCH_SIZE_UNSET


class MockEndPoint:
    def __init__(self, address, port=9042):
        self.address = address
        self.port = port


class MockHost:
    def __init__(self, address, port=9042):
        self.endpoint = MockEndPoint(address, port)

    @property
    def address(self):
        return self.endpoint.address


class MockResponseFuture:
    """Completes when the test says so, like a driver ResponseFuture."""

    def __init__(self, host=None, rows=None, failure=None):
        self.coordinator_host = host
        self.query = None
        self._rows = rows
        self._failure = failure
        self._done = False
        self._callbacks = []
        self._errbacks = []

    def add_callbacks(self, callback, errback):
        self._callbacks.append(callback)
        self._errbacks.append(errback)
        if self._done:
            self._run_callbacks()

    def complete(self):
        self._done = True
        self._run_callbacks()

    def _run_callbacks(self):
        if self._failure is not None:
            for errback in self._errbacks:
                errback(self._failure)
        else:
            for callback in self._callbacks:
                callback(self._rows)

    def result(self):
        if self._failure is not None:
            raise self._failure
        return MockResultSet(self, self._rows)


class MockResultSet:
    def __init__(self, response_future, rows):
        self.response_future = response_future
        self.current_rows = rows or []

    def one(self):
        return self.current_rows[0] if self.current_rows else None


class MockExecutionProfile:
    def __init__(self, consistency_level=ConsistencyLevel.LOCAL_ONE):
        self.consistency_level = consistency_level


class MockSession:
    """Stands in for ``cassandra.cluster.Session``.

    Queries succeed on ``host`` unless ``failure`` is set. Asynchronous
    queries complete immediately unless ``complete_async`` is False.
    """

    def __init__(
        self,
        keyspace=None,
        host=None,
        rows=None,
        failure=None,
        complete_async=True,
    ):
        self.keyspace = keyspace
        self.default_fetch_size = 5000
        self.host = host or MockHost("127.0.0.1")
        self.rows = rows if rows is not None else [("Cassandra", 100)]
        self.failure = failure
        self.complete_async = complete_async
        self.queries = []
        self.futures = []
        self.prepared = []
        self.is_shutdown = False
        self._profile = MockExecutionProfile()

    def get_execution_profile(self, name):  # pylint: disable=unused-argument
        return self._profile

    def execute(self, query, parameters=None, **kwargs):
        return self.execute_async(query, parameters, **kwargs).result()

    def execute_async(self, query, parameters=None, **kwargs):
        self.queries.append((query, parameters, kwargs))
        future = MockResponseFuture(self.host, self.rows, self.failure)
        future.query = query
        self.futures.append(future)
        if self.complete_async:
            future.complete()
        return future

    def prepare(self, query):
        prepared = MockPreparedStatement(query)
        self.prepared.append(prepared)
        return prepared

    def shutdown(self):
        self.is_shutdown = True


class MockPreparedStatement:
    def __init__(self, query_string):
        self.query_string = query_string

    def bind(self, values):
        return MockBoundStatement(self, values)


class MockBoundStatement:
    def __init__(
        self,
        prepared_statement,
        values,
        consistency_level=None,
        fetch_size=FETCH_SIZE_UNSET,
        is_idempotent=False,
    ):
        self.prepared_statement = prepared_statement
        self.values = values
        self.consistency_level = consistency_level
        self.fetch_size = fetch_size
        self.is_idempotent = is_idempotent

    def __str__(self):
        return '<BoundStatement query="{}", values={}>'.format(
            self.prepared_statement.query_string, self.values
        )


class MockCluster:
    def __init__(self, **session_kwargs):
        self.session_kwargs = session_kwargs
        self.sessions = []
        self.is_shutdown = False

    def connect(self, keyspace=None, wait_for_all_pools=False):
        session = MockSession(keyspace=keyspace, **self.session_kwargs)
        session.wait_for_all_pools = wait_for_all_pools
        self.sessions.append(session)
        return session

    def shutdown(self):
        self.is_shutdown = True


class ImmediateExecutor:
    """Runs submitted work in the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, func, *args, **kwargs):
        self.submitted += 1
        return func(*args, **kwargs)

    def shutdown(self, wait=True):  # pylint: disable=unused-argument
        pass


class UnconnectedCluster(Cluster):
    """A driver cluster which never opens a connection."""

    def __init__(self):  # pylint: disable=super-init-not-called
        self.is_shutdown = False

    def shutdown(self):
        self.is_shutdown = True
