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
Span name providers decide the name of the span created for a query.

``CustomStringSpanName`` is used by default and names every span
``execute``. ``QueryMethodTableSpanName`` recognizes the CQL verb and the
table, keyspace, index or view it targets:

.. code-block:: python

    from opentelemetry.instrumentation.cassandra.name_provider import span_name

    span_name("SELECT * FROM ks.users WHERE id = 1")
    # 'Cassandra.SELECT - ks.users'
"""

import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

DEFAULT_SPAN_NAME = "execute"
DEFAULT_PREFIX = "Cassandra"
NOT_AVAILABLE = "N/A"

_WHITESPACE = re.compile(r"\s+")
# statement terminators may be glued to a verb, as in "APPLY BATCH;"
_TOKEN_SEPARATOR = re.compile(r"[ ;]+")


class QuerySpanNameProvider(ABC):
    """Maps the text of a query to the name of its span.

    Implementations hold immutable configuration only, must accept empty
    and ``None`` queries and must never raise.
    """

    @abstractmethod
    def query_span_name(self, query: Optional[str]) -> str:
        """Return the span name for ``query``"""

    def __call__(self, query: Optional[str]) -> str:
        return self.query_span_name(query)


class CustomStringSpanName(QuerySpanNameProvider):
    """Names every span with the same string, ``execute`` by default."""

    def __init__(self, custom_name: Optional[str] = None):
        self._custom_name = custom_name or DEFAULT_SPAN_NAME

    def query_span_name(self, query: Optional[str]) -> str:
        return self._custom_name


class FullQuerySpanName(QuerySpanNameProvider):
    """Uses the query itself as the span name."""

    def query_span_name(self, query: Optional[str]) -> str:
        return query or NOT_AVAILABLE


class PrefixedFullQuerySpanName(QuerySpanNameProvider):
    """Uses the query, preceded by ``"<prefix>: "``, as the span name.

    Without a prefix this behaves as :class:`FullQuerySpanName`.
    """

    def __init__(self, prefix: Optional[str] = DEFAULT_PREFIX):
        self._prefix = prefix

    def query_span_name(self, query: Optional[str]) -> str:
        if not self._prefix:
            return query or NOT_AVAILABLE
        return "{}: {}".format(self._prefix, query or NOT_AVAILABLE)


# Pulled from http://cassandra.apache.org/doc/latest/cql/
class ManipulationMethod(Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BATCH = "BATCH"
    NOT_FOUND = None


# Declaration order is the matching order.
class DefinitionMethod(Enum):
    CREATE_KEYSPACE = "CREATE KEYSPACE"
    USE = "USE"
    ALTER_KEYSPACE = "ALTER KEYSPACE"
    DROP_KEYSPACE = "DROP KEYSPACE"
    CREATE_TABLE = "CREATE TABLE"
    ALTER_TABLE = "ALTER TABLE"
    DROP_TABLE = "DROP TABLE"
    TRUNCATE = "TRUNCATE"
    CREATE_INDEX = "CREATE INDEX"
    DROP_INDEX = "DROP INDEX"
    CREATE_MATERIALIZED_VIEW = "CREATE MATERIALIZED VIEW"
    ALTER_MATERIALIZED_VIEW = "ALTER MATERIALIZED VIEW"
    DROP_MATERIALIZED_VIEW = "DROP MATERIALIZED VIEW"
    NOT_FOUND = None


_MANIPULATION_KEYWORDS = {
    method.value: method
    for method in ManipulationMethod
    if method is not ManipulationMethod.NOT_FOUND
}


def _entity_pattern(anchor):
    return re.compile(
        re.escape(anchor) + r" ([\w.]+)", re.IGNORECASE | re.ASCII
    )


def _anchors(method):
    words = method.value
    if method.name.startswith("DROP_"):
        return (words + " IF EXISTS", words)
    if method.name.startswith("CREATE_"):
        return (words + " IF NOT EXISTS", words)
    if method is DefinitionMethod.TRUNCATE:
        return ("TRUNCATE TABLE", "TRUNCATE")
    return (words,)


_ENTITY_PATTERNS = {
    ManipulationMethod.SELECT: (_entity_pattern("FROM"),),
    ManipulationMethod.DELETE: (_entity_pattern("FROM"),),
    ManipulationMethod.INSERT: (_entity_pattern("INTO"),),
    ManipulationMethod.UPDATE: (_entity_pattern("UPDATE"),),
}
_ENTITY_PATTERNS.update(
    {
        method: tuple(_entity_pattern(anchor) for anchor in _anchors(method))
        for method in DefinitionMethod
        if method is not DefinitionMethod.NOT_FOUND
    }
)

_DEFINITION_PATTERNS = tuple(
    (method, re.compile(re.escape(method.value) + r"\b"))
    for method in DefinitionMethod
    if method is not DefinitionMethod.NOT_FOUND
)


def _normalize(query):
    return _WHITESPACE.sub(" ", query).strip()


def _manipulation_method(upper_query):
    for token in _TOKEN_SEPARATOR.split(upper_query):
        method = _MANIPULATION_KEYWORDS.get(token)
        if method is not None:
            return method
    return ManipulationMethod.NOT_FOUND


def _definition_method(upper_query):
    for method, pattern in _DEFINITION_PATTERNS:
        if pattern.match(upper_query):
            return method
    return DefinitionMethod.NOT_FOUND


def _find_target_entity(query, method):
    for pattern in _ENTITY_PATTERNS[method]:
        match = pattern.search(query)
        if match:
            return match.group(1)
    return NOT_AVAILABLE


class QueryMethodTableSpanName(QuerySpanNameProvider):
    """Names spans after the CQL verb and the entity it targets.

    Data manipulation statements are recognized by the first verb token
    anywhere in the query, so that ``BEGIN BATCH ... APPLY BATCH`` is a
    ``BATCH`` even though it contains ``INSERT`` or ``UPDATE`` statements.
    Data definition statements are recognized by their leading words.
    The result is one of:

    * ``Cassandra`` for empty queries and unknown verbs
    * ``Cassandra.BATCH`` for batches
    * ``Cassandra.<VERB> - <entity>``, with ``N/A`` when no entity is found
    """

    def query_span_name(self, query: Optional[str]) -> str:
        if not query or not isinstance(query, str):
            return DEFAULT_PREFIX

        normalized = _normalize(query)
        upper_query = normalized.upper()

        method = _manipulation_method(upper_query)
        if method is ManipulationMethod.BATCH:
            return "{}.{}".format(DEFAULT_PREFIX, method.name)
        if method is ManipulationMethod.NOT_FOUND:
            method = _definition_method(upper_query)
            if method is DefinitionMethod.NOT_FOUND:
                return DEFAULT_PREFIX

        return "{}.{} - {}".format(
            DEFAULT_PREFIX,
            method.name,
            _find_target_entity(normalized, method),
        )


_QUERY_METHOD_TABLE_SPAN_NAME = QueryMethodTableSpanName()


def span_name(query: Optional[str]) -> str:
    """Return the ``Cassandra.<VERB> - <entity>`` span name for ``query``"""
    return _QUERY_METHOD_TABLE_SPAN_NAME.query_span_name(query)
