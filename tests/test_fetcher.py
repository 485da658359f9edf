"""
Tests for reportlib/fetcher.py resource fetchers.

Covers:
- Pagination via odata_next_link
- FetchError on collection failures (including permission errors)
- Usage report CSV parsing (BOM, bytes, text)
- Raw JSON collections through the request adapter (nextLink paging)
- Per-record sub-fetch failures replaced by the "Unknown" sentinel
"""
import os
import sys
from unittest.mock import Mock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from msgraph.generated.groups.groups_request_builder import GroupsRequestBuilder

from reportlib.connection import Session
from reportlib.constants import UNKNOWN
from reportlib.errors import FetchError
from reportlib.fetcher import (
    build_request_configuration,
    collect_pages,
    fetch_collection,
    fetch_json_collection,
    fetch_related,
    fetch_usage_report,
    parse_usage_csv,
    record_id,
)
from reportlib.models import RelatedFetch


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def session():
    """Session with a mock Graph client; plain return values pass through call()."""
    return Session('graph', frozenset(), '12345678-1234-1234-1234-123456789012', client=Mock())


def make_page(items, next_link=None):
    page = Mock()
    page.value = items
    page.odata_next_link = next_link
    return page


class ODataError(Exception):
    """Stand-in with the shape of the Graph SDK's ODataError."""

    def __init__(self, code, message, status=None):
        super().__init__(message)
        self.error = Mock(code=code, message=message)
        self.response_status_code = status


# =============================================================================
# Pagination Tests
# =============================================================================

class TestCollectPages:
    """Tests for collect_pages function."""

    def test_single_page(self, session):
        builder = Mock()
        builder.get.return_value = make_page(['a', 'b'])

        assert collect_pages(session, builder) == ['a', 'b']
        builder.get.assert_called_once_with()

    def test_follows_next_links(self, session):
        builder = Mock()
        builder.get.return_value = make_page(['a'], next_link='https://graph/page2')
        builder.with_url.side_effect = lambda url: Mock(get=Mock(return_value={
            'https://graph/page2': make_page(['b'], next_link='https://graph/page3'),
            'https://graph/page3': make_page(['c']),
        }[url]))

        assert collect_pages(session, builder) == ['a', 'b', 'c']
        assert builder.with_url.call_count == 2

    def test_empty_response(self, session):
        builder = Mock()
        builder.get.return_value = None
        assert collect_pages(session, builder) == []

    def test_page_without_value(self, session):
        builder = Mock()
        builder.get.return_value = make_page(None)
        assert collect_pages(session, builder) == []

    def test_request_configuration_passed(self, session):
        builder = Mock()
        builder.get.return_value = make_page([])
        config = build_request_configuration(GroupsRequestBuilder, select=['id'], top=999)

        collect_pages(session, builder, config)

        builder.get.assert_called_once_with(request_configuration=config)
        assert config.query_parameters.select == ['id']
        assert config.query_parameters.top == 999

    def test_no_query_no_configuration(self):
        assert build_request_configuration(GroupsRequestBuilder, select=None) is None


class TestFetchCollection:
    """Tests for fetch_collection function."""

    def test_returns_all_items(self, session):
        builder = Mock()
        builder.get.return_value = make_page([1, 2, 3])
        assert fetch_collection(session, 'groups', builder) == [1, 2, 3]

    def test_failure_raises_fetch_error(self, session):
        builder = Mock()
        builder.get.side_effect = ConnectionError("connection reset")

        with pytest.raises(FetchError) as exc_info:
            fetch_collection(session, 'groups', builder)

        assert exc_info.value.resource_type == 'groups'
        assert str(exc_info.value) == "Fetch groups failed: connection reset"

    def test_permission_error_tagged(self, session):
        builder = Mock()
        builder.get.side_effect = ODataError('Authorization_RequestDenied', 'Insufficient privileges', 403)

        with pytest.raises(FetchError) as exc_info:
            fetch_collection(session, 'groups', builder)

        assert 'permission denied' in str(exc_info.value)
        assert 'Insufficient privileges' in str(exc_info.value)

    def test_failure_on_later_page(self, session):
        builder = Mock()
        builder.get.return_value = make_page(['a'], next_link='https://graph/page2')
        builder.with_url.return_value.get.side_effect = TimeoutError("timed out")

        with pytest.raises(FetchError):
            fetch_collection(session, 'groups', builder)


# =============================================================================
# Usage Report Tests
# =============================================================================

USAGE_CSV = (
    "\ufeffReport Refresh Date,Site Id,Site URL,Storage Used (Byte)\r\n"
    "2024-06-29,site-1,https://contoso.sharepoint.com/sites/a,1024\r\n"
    "2024-06-29,site-2,https://contoso.sharepoint.com/sites/b,2048\r\n"
)


class TestUsageReports:
    """Tests for usage report parsing."""

    def test_parse_bytes_strips_bom(self):
        rows = parse_usage_csv(USAGE_CSV.encode('utf-8'))
        assert rows[0]['Report Refresh Date'] == '2024-06-29'
        assert rows[1]['Storage Used (Byte)'] == '2048'

    def test_parse_text(self):
        rows = parse_usage_csv(USAGE_CSV)
        assert [r['Site Id'] for r in rows] == ['site-1', 'site-2']

    def test_parse_empty(self):
        assert parse_usage_csv(None) == []
        assert parse_usage_csv(b'') == []

    def test_fetch_usage_report(self, session):
        builder = Mock()
        builder.get.return_value = USAGE_CSV.encode('utf-8')
        assert len(fetch_usage_report(session, 'sites', builder)) == 2

    def test_fetch_usage_report_error(self, session):
        builder = Mock()
        builder.get.side_effect = ODataError('UnknownError', 'Report not available', 500)
        with pytest.raises(FetchError) as exc_info:
            fetch_usage_report(session, 'sites', builder)
        assert 'Report not available' in str(exc_info.value)


# =============================================================================
# JSON Collection Tests
# =============================================================================

class TestFetchJsonCollection:
    """Tests for raw JSON collections read through the request adapter."""

    def _pages(self, session, pages):
        session.client.request_adapter.send_primitive_async.side_effect = pages
        return session.client.request_adapter.send_primitive_async

    def test_follows_next_links(self, session):
        send = self._pages(session, [
            b'{"value": [{"id": "1"}], "@odata.nextLink": "https://graph/beta/traces?page=2"}',
            '{"value": [{"id": "2"}]}',
        ])

        items = fetch_json_collection(session, 'message traces', 'https://graph/beta/traces')

        assert [item['id'] for item in items] == ['1', '2']
        urls = [call.args[0].url for call in send.call_args_list]
        assert urls == ['https://graph/beta/traces', 'https://graph/beta/traces?page=2']
        assert send.call_args_list[0].args[1] == 'bytes'

    def test_empty_body(self, session):
        self._pages(session, [None])
        assert fetch_json_collection(session, 'message traces', 'https://graph/beta/traces') == []

    def test_permission_error_tagged(self, session):
        self._pages(session, ODataError('Forbidden', 'Access denied', 403))

        with pytest.raises(FetchError) as exc_info:
            fetch_json_collection(session, 'message traces', 'https://graph/beta/traces')

        assert str(exc_info.value).startswith('Fetch message traces failed: permission denied')

    def test_invalid_json(self, session):
        self._pages(session, [b'<html>gateway timeout</html>'])
        with pytest.raises(FetchError):
            fetch_json_collection(session, 'message traces', 'https://graph/beta/traces')


# =============================================================================
# Sub-fetch Tests
# =============================================================================

class TestFetchRelated:
    """Tests for per-record sub-fetches."""

    def test_values_by_name(self, session):
        related = (
            RelatedFetch('owners', 'group owners', lambda s, r: ['ana']),
            RelatedFetch('members', 'group members', lambda s, r: ['ana', 'bo']),
        )
        values, failures = fetch_related(session, Mock(id='g1'), related)
        assert values == {'owners': ['ana'], 'members': ['ana', 'bo']}
        assert failures == 0

    def test_failure_substitutes_unknown(self, session, caplog):
        def broken(s, r):
            raise ODataError('Request_ResourceNotFound', 'Owner lookup failed')

        related = (
            RelatedFetch('owners', 'group owners', broken),
            RelatedFetch('members', 'group members', lambda s, r: []),
        )
        values, failures = fetch_related(session, Mock(id='g1'), related)

        assert values == {'owners': UNKNOWN, 'members': []}
        assert failures == 1
        assert 'Fetch group owners for g1 failed' in caplog.text

    def test_record_id(self):
        assert record_id(Mock(id='abc')) == 'abc'
        assert record_id({'Site Id': 's1', 'Site URL': 'x'}) == 's1'
        assert record_id({'User Principal Name': 'a@b.com'}) == 'a@b.com'
        assert record_id({}) == UNKNOWN
