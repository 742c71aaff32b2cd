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
#
"""
Some utils used by the cassandra integration
"""
import ipaddress
import traceback

from cassandra import ConsistencyLevel
from cassandra.cluster import EXEC_PROFILE_DEFAULT
from cassandra.query import FETCH_SIZE_UNSET

from opentelemetry.semconv.trace import DbSystemValues, SpanAttributes

COMPONENT_NAME = "java-cassandra"
DB_TYPE = "cassandra"

# tags
COMPONENT = "component"
DB_TYPE_KEY = "db.type"
DB_INSTANCE = "db.instance"
ERROR = "error"
PEER_PORT = "peer.port"
PEER_HOSTNAME = "peer.hostname"
PEER_HOST_IPV4 = "peer.ipv4"
PEER_HOST_IPV6 = "peer.ipv6"
QUERY_CONSISTENCY_LEVEL = "query.cl"
QUERY_FETCH_SIZE = "query.fetchSize"
QUERY_IDEMPOTENCE = "query.idempotence"
QUERY_STATEMENT = "query.statement"

# driver default for statements that do not say otherwise
DEFAULT_IDEMPOTENCE = False


def get_query_string(query):
    """Return the CQL text of a query string or a statement object.

    Bound statements report the text of the statement they were prepared
    from. Anything without CQL text, such as a batch, yields ``""``.
    """
    if isinstance(query, str):
        return query
    prepared = getattr(query, "prepared_statement", None)
    if prepared is not None:
        query = prepared
    query_string = getattr(query, "query_string", None)
    if isinstance(query_string, str):
        return query_string
    return ""


def _default_consistency_level(session, execution_profile):
    try:
        profile = session.get_execution_profile(execution_profile)
    except (AttributeError, ValueError):
        profile = None
    level = getattr(profile, "consistency_level", None)
    if level is None:
        level = getattr(session, "default_consistency_level", None)
    return level


def extract_statement_attributes(
    statement, session, execution_profile=EXEC_PROFILE_DEFAULT
):
    """Consistency level, fetch size and idempotence of a query.

    Values set on the statement win; a plain query string, or a statement
    leaving a value unset, falls back to the session and cluster defaults.
    """
    attributes = {}

    level = getattr(statement, "consistency_level", None)
    if level is None:
        level = _default_consistency_level(session, execution_profile)
    if level is not None:
        attributes[
            QUERY_CONSISTENCY_LEVEL
        ] = ConsistencyLevel.value_to_name.get(level, str(level))

    fetch_size = getattr(statement, "fetch_size", FETCH_SIZE_UNSET)
    if fetch_size is FETCH_SIZE_UNSET or fetch_size is None:
        fetch_size = getattr(session, "default_fetch_size", None)
    if isinstance(fetch_size, int):
        attributes[QUERY_FETCH_SIZE] = fetch_size

    idempotent = getattr(statement, "is_idempotent", None)
    if idempotent is None:
        idempotent = DEFAULT_IDEMPOTENCE
    attributes[QUERY_IDEMPOTENCE] = bool(idempotent)

    return attributes


def extract_session_attributes(session):
    """Transform the session info into span attributes"""
    attributes = {
        COMPONENT: COMPONENT_NAME,
        DB_TYPE_KEY: DB_TYPE,
        SpanAttributes.DB_SYSTEM: DbSystemValues.CASSANDRA.value,
    }
    keyspace = getattr(session, "keyspace", None)
    if keyspace:
        attributes[DB_INSTANCE] = keyspace
    return attributes


def _coordinator_endpoint(response_future):
    host = getattr(response_future, "coordinator_host", None)
    if host is None:
        host = getattr(response_future, "_current_host", None)
    if host is None:
        return None, None
    if isinstance(host, str):
        return host, None
    endpoint = getattr(host, "endpoint", host)
    return (
        getattr(endpoint, "address", None),
        getattr(endpoint, "port", None),
    )


def extract_peer_attributes(response_future):
    """Peer attributes of the host which coordinated the query"""
    attributes = {}
    address, port = _coordinator_endpoint(response_future)
    if isinstance(port, int):
        attributes[PEER_PORT] = port
    if not address:
        return attributes

    attributes[PEER_HOSTNAME] = address
    try:
        ip_address = ipaddress.ip_address(address)
    except ValueError:
        return attributes
    if ip_address.version == 4:
        attributes[PEER_HOST_IPV4] = str(ip_address)
    else:
        attributes[PEER_HOST_IPV6] = str(ip_address)
    return attributes


def error_event_attributes(exc, statement=None):
    """Attributes of the ``error`` event logged when a query fails"""
    kind = type(exc)
    attributes = {
        "event": ERROR,
        "error.kind": "{}.{}".format(kind.__module__, kind.__qualname__),
        "error.object": repr(exc),
        "message": str(exc),
        "stack": "".join(
            traceback.format_exception(kind, exc, exc.__traceback__)
        ),
    }
    if statement is not None and not isinstance(statement, str):
        attributes[QUERY_STATEMENT] = str(statement)
    return attributes
