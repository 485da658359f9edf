"""
Resource fetchers for Graph list endpoints, raw JSON endpoints and usage reports.

Collection-level failures raise FetchError. Per-record sub-fetch failures are
logged and replaced by the "Unknown" sentinel so one bad record never stops
the run.
"""
import csv
import io
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from kiota_abstractions.base_request_configuration import RequestConfiguration
from kiota_abstractions.method import Method
from kiota_abstractions.request_information import RequestInformation
from msgraph.generated.models.o_data_errors.o_data_error import ODataError

from .constants import UNKNOWN
from .errors import FetchError, SubFetchError, describe_cause, is_auth_error

logger = logging.getLogger(__name__)


def build_request_configuration(builder_class: Any, **query: Any) -> Optional[RequestConfiguration]:
    """
    Build a request configuration carrying $select/$filter/$top/... parameters.

    Uses the builder's generated ``<Builder>GetQueryParameters`` class, so
    only parameters the endpoint supports can be passed.
    """
    query = {k: v for k, v in query.items() if v is not None}
    if not query:
        return None
    params_class = getattr(builder_class, f"{builder_class.__name__}GetQueryParameters")
    return RequestConfiguration(query_parameters=params_class(**query))


def _next_link(response: Any) -> Optional[str]:
    link = getattr(response, 'odata_next_link', None)
    return link if isinstance(link, str) and link else None


def collect_pages(session, builder: Any, request_configuration: Any = None) -> List[Any]:
    """
    Collect all items from a paginated Graph collection.

    Follows odata_next_link until the last page, so callers always get the
    whole collection rather than the first 100 items.
    """
    if request_configuration is not None:
        response = session.call(builder.get(request_configuration=request_configuration))
    else:
        response = session.call(builder.get())

    items: List[Any] = []
    pages = 0
    while response is not None:
        pages += 1
        items.extend(getattr(response, 'value', None) or [])
        link = _next_link(response)
        if not link:
            break
        logger.debug(f"Following next page link (page {pages + 1})")
        response = session.call(builder.with_url(link).get())
    return items


def fetch_collection(
    session,
    resource_type: str,
    builder: Any,
    builder_class: Any = None,
    **query: Any
) -> List[Any]:
    """
    Fetch a complete resource collection.

    Args:
        session: Active Session
        resource_type: Name used in log and error messages (e.g. "groups")
        builder: SDK request builder for the collection (e.g. client.groups)
        builder_class: Request builder class providing the query parameter type
        **query: Query parameters (select, filter, top, ...)

    Raises:
        FetchError: If any page cannot be retrieved
    """
    logger.info(f"Fetching {resource_type}...")
    try:
        config = build_request_configuration(builder_class, **query) if builder_class else None
        items = collect_pages(session, builder, config)
    except Exception as e:
        cause = describe_cause(e)
        if is_auth_error(e):
            cause = f"permission denied ({cause})"
        logger.error(f"Failed to fetch {resource_type}: {cause}")
        raise FetchError(resource_type, cause) from e

    logger.info(f"Found {len(items)} {resource_type}")
    return items


def request_json(session, url: str) -> Dict[str, Any]:
    """
    GET an absolute Graph URL and decode the JSON body.

    For endpoints the SDK has no request builder for (beta APIs). Goes through
    the client's request adapter so authentication and retries still apply.
    """
    request_info = RequestInformation(Method.GET)
    request_info.url = url
    request_info.headers.try_add('Accept', 'application/json')
    body = session.call(session.client.request_adapter.send_primitive_async(
        request_info, 'bytes', {'XXX': ODataError}
    ))
    if not body:
        return {}
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode('utf-8-sig')
    return json.loads(body)


def fetch_json_collection(session, resource_type: str, url: str) -> List[Dict[str, Any]]:
    """
    Fetch every item of a JSON collection, following @odata.nextLink.

    Raises:
        FetchError: If any page cannot be retrieved or decoded
    """
    logger.info(f"Fetching {resource_type}...")
    items: List[Dict[str, Any]] = []
    try:
        link: Optional[str] = url
        while link:
            page = request_json(session, link)
            items.extend(page.get('value') or [])
            link = page.get('@odata.nextLink')
    except Exception as e:
        cause = describe_cause(e)
        if is_auth_error(e):
            cause = f"permission denied ({cause})"
        logger.error(f"Failed to fetch {resource_type}: {cause}")
        raise FetchError(resource_type, cause) from e

    logger.info(f"Found {len(items)} {resource_type}")
    return items


def parse_usage_csv(content: Any) -> List[Dict[str, str]]:
    """Parse a usage report CSV download (bytes or text) into row dicts."""
    if content is None:
        return []
    if isinstance(content, (bytes, bytearray)):
        text = bytes(content).decode('utf-8-sig')
    else:
        text = str(content).lstrip('\ufeff')
    reader = csv.DictReader(io.StringIO(text))
    return [dict(row) for row in reader]


def fetch_usage_report(session, resource_type: str, builder: Any) -> List[Dict[str, str]]:
    """
    Download a Graph usage report (CSV) and return its rows.

    Raises:
        FetchError: If the report cannot be downloaded or parsed
    """
    logger.info(f"Downloading {resource_type} usage report...")
    try:
        rows = parse_usage_csv(session.call(builder.get()))
    except Exception as e:
        cause = describe_cause(e)
        if is_auth_error(e):
            cause = f"permission denied ({cause})"
        logger.error(f"Failed to download {resource_type} usage report: {cause}")
        raise FetchError(resource_type, cause) from e

    logger.info(f"Found {len(rows)} {resource_type} report rows")
    return rows


def record_id(record: Any) -> str:
    """Identifier of a source record for log messages."""
    if isinstance(record, dict):
        for key in ('Site Id', 'User Principal Name', 'Owner Principal Name', 'id'):
            if record.get(key):
                return str(record[key])
        return UNKNOWN
    value = getattr(record, 'id', None)
    return value if isinstance(value, str) else UNKNOWN


def fetch_related(session, record: Any, related: Sequence[Any]) -> Tuple[Dict[str, Any], int]:
    """
    Run each sub-fetch for one record.

    Returns:
        (values by name, number of failed sub-fetches). Failed values are "Unknown".
    """
    values: Dict[str, Any] = {}
    failures = 0
    for spec in related:
        try:
            values[spec.name] = spec.fetch(session, record)
        except Exception as e:
            error = SubFetchError(spec.resource_type, record_id(record), describe_cause(e))
            logger.warning(f"{error}; using '{UNKNOWN}'")
            values[spec.name] = UNKNOWN
            failures += 1
    return values, failures
