"""
Tests for reportlib/pipeline.py report pipeline.

Covers:
- State progression Idle -> ... -> Done
- Abort on AuthError / FetchError / ExportError or any unexpected error, with exactly one disconnect
- Filtered group scenario and summary risk counters
- Site storage percentages, Over Quota classification and tenant host filter
- Sub-fetch failures replaced by "Unknown" while the run continues
- Per-record failures isolated and counted
- Site external users (one row per user) and paged JSON message traces
"""
import csv
import dataclasses
import os
import sys
import tempfile
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from reportlib.connection import Session
from reportlib.constants import NOT_AVAILABLE, UNKNOWN
from reportlib.errors import AuthError, ExportError, FetchError
from reportlib.pipeline import PipelineState, ReportPipeline
from reports import REPORTS
from reports.group_owners import map_group

NOW = datetime(2024, 6, 30, 12, 0, 0, tzinfo=timezone.utc)
TENANT = '12345678-1234-1234-1234-123456789012'
MB = 1024 * 1024


# =============================================================================
# Fakes
# =============================================================================

class FakeConnector:
    """Connection provider that hands out a prepared session."""

    def __init__(self, session=None, error=None):
        self.session = session
        self.error = error
        self.connected = []
        self.disconnected = []

    def connect(self, service, scopes):
        self.connected.append((service, scopes))
        if self.error is not None:
            raise self.error
        return self.session

    def disconnect(self, session):
        self.disconnected.append(session)


def make_page(items):
    page = Mock()
    page.value = items
    page.odata_next_link = None
    return page


def make_user(name):
    user = Mock()
    user.display_name = name
    return user


def make_group(gid, name):
    group = Mock()
    group.id = gid
    group.display_name = name
    group.mail = f"{name.lower()}@contoso.com"
    group.group_types = ['Unified']
    group.security_enabled = False
    group.mail_enabled = True
    group.visibility = 'Private'
    group.created_date_time = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return group


def group_client(groups, owners, members, failing_owners=()):
    """Graph client mock serving groups and their owners/members by id."""
    client = Mock()
    client.groups.get.return_value = make_page(groups)

    def by_group_id(gid):
        item = Mock()
        if gid in failing_owners:
            item.owners.get.side_effect = RuntimeError("owner lookup failed")
        else:
            item.owners.get.return_value = make_page([make_user(n) for n in owners.get(gid, [])])
        item.members.get.return_value = make_page([make_user(n) for n in members.get(gid, [])])
        return item

    client.groups.by_group_id.side_effect = by_group_id
    return client


def graph_session(client):
    return Session('graph', frozenset(), TENANT, client=client)


def three_groups(failing_owners=()):
    groups = [make_group('g1', 'Finance'), make_group('g2', 'Legacy'), make_group('g3', 'Sales')]
    owners = {'g1': ['Ana'], 'g2': [], 'g3': ['Bo', 'Cy']}
    members = {'g1': ['Ana', 'Dee'], 'g2': ['Eli'], 'g3': ['Bo']}
    return group_client(groups, owners, members, failing_owners)


def _read_csv(path):
    with open(path, encoding='utf-8', newline='') as f:
        return list(csv.DictReader(f))


# =============================================================================
# State Tests
# =============================================================================

class TestStates:
    """Tests for pipeline state progression."""

    def test_successful_run_history(self):
        connector = FakeConnector(graph_session(three_groups()))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(output_dir=tmpdir, now=NOW)

            assert ctx.history == [
                PipelineState.IDLE, PipelineState.CONNECTING, PipelineState.FETCHING,
                PipelineState.MAPPING, PipelineState.AGGREGATING, PipelineState.EXPORTING,
                PipelineState.DISCONNECTING, PipelineState.DONE,
            ]
            assert ctx.output_path == os.path.join(tmpdir, 'GroupOwnershipReport_20240630_120000.csv')
            assert os.path.exists(ctx.output_path)

        assert connector.connected == [('graph', REPORTS['group-owners'].scopes)]
        assert len(connector.disconnected) == 1

    def test_terminal_state_is_final(self):
        connector = FakeConnector(graph_session(three_groups()))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(output_dir=tmpdir, now=NOW)

        with pytest.raises(RuntimeError):
            ctx.transition(PipelineState.FETCHING)

    def test_progress_counts_every_record(self):
        connector = FakeConnector(graph_session(three_groups()))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(options={'orphaned_only': True}, output_dir=tmpdir, now=NOW)

        assert ctx.source_count == 3
        assert ctx.processed == 3

    def test_unset_options_keep_defaults(self):
        connector = FakeConnector(graph_session(three_groups()))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(options={'orphaned_only': None, 'name_contains': 'sal'},
                               output_dir=tmpdir, now=NOW)

        assert ctx.options['orphaned_only'] is None
        assert [row['DisplayName'] for row in ctx.rows] == ['Sales']


# =============================================================================
# Abort Tests
# =============================================================================

class TestAbort:
    """Tests for fatal errors."""

    def test_auth_error_nothing_to_disconnect(self):
        connector = FakeConnector(error=AuthError('graph', 'invalid client secret'))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(AuthError):
                pipeline.run(output_dir=tmpdir, now=NOW)
            assert os.listdir(tmpdir) == []

        assert pipeline.context.state == PipelineState.ABORTED
        assert isinstance(pipeline.context.error, AuthError)
        assert connector.disconnected == []

    def test_fetch_error_disconnects_once(self):
        client = three_groups()
        client.groups.get.side_effect = ConnectionError("connection reset")
        session = graph_session(client)
        connector = FakeConnector(session)
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FetchError) as exc_info:
                pipeline.run(output_dir=tmpdir, now=NOW)
            assert os.listdir(tmpdir) == []

        assert str(exc_info.value) == "Fetch groups failed: connection reset"
        assert connector.disconnected == [session]
        assert pipeline.context.history[-2:] == [PipelineState.FETCHING, PipelineState.ABORTED]

    def test_export_error_after_data_work(self):
        session = graph_session(three_groups())
        connector = FakeConnector(session)
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            # a directory cannot be opened as a file
            with pytest.raises(ExportError):
                pipeline.run(output_path=tmpdir, now=NOW)

        ctx = pipeline.context
        assert ctx.state == PipelineState.ABORTED
        assert ctx.summary is not None
        assert len(ctx.rows) == 3
        assert connector.disconnected == [session]

    def test_interrupt_still_disconnects(self):
        session = graph_session(three_groups())
        connector = FakeConnector(session)
        definition = dataclasses.replace(
            REPORTS['group-owners'], fetch=Mock(side_effect=KeyboardInterrupt)
        )
        pipeline = ReportPipeline(definition, connector, show_progress=False)

        with pytest.raises(KeyboardInterrupt):
            pipeline.run(now=NOW)

        assert connector.disconnected == [session]
        assert pipeline.context.state == PipelineState.ABORTED
        assert pipeline.context.error is None

    def test_unexpected_error_aborts(self):
        session = graph_session(three_groups())
        connector = FakeConnector(session)
        definition = dataclasses.replace(
            REPORTS['license-usage'], fetch=Mock(side_effect=TypeError("boom"))
        )
        pipeline = ReportPipeline(definition, connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(TypeError):
                pipeline.run(output_dir=tmpdir, now=NOW)
            assert os.listdir(tmpdir) == []

        ctx = pipeline.context
        assert ctx.state == PipelineState.ABORTED
        assert ctx.history[-2:] == [PipelineState.FETCHING, PipelineState.ABORTED]
        assert isinstance(ctx.error, TypeError)
        assert connector.disconnected == [session]


# =============================================================================
# Group Scenario Tests
# =============================================================================

class TestGroupScenario:
    """End-to-end group ownership runs against a mocked Graph client."""

    def test_orphaned_only(self):
        connector = FakeConnector(graph_session(three_groups()))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(options={'orphaned_only': True}, output_dir=tmpdir, now=NOW)
            exported = _read_csv(ctx.output_path)

        assert len(ctx.rows) == 1
        assert ctx.rows[0]['DisplayName'] == 'Legacy'
        assert ctx.rows[0]['Owners'] == 'None'
        assert ctx.rows[0]['Status'] == 'Orphaned'
        assert ctx.summary.total == 1
        assert ctx.summary.risk_counts['orphaned_count'] == 1
        assert [row['GroupId'] for row in exported] == ['g2']

    def test_owner_lookup_failure_continues(self):
        connector = FakeConnector(graph_session(three_groups(failing_owners={'g2'})))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(output_dir=tmpdir, now=NOW)

        rows = {row['GroupId']: row for row in ctx.rows}
        assert len(rows) == 3
        assert rows['g2']['Owners'] == UNKNOWN
        assert rows['g2']['OwnerCount'] == NOT_AVAILABLE
        assert rows['g2']['Status'] == 'Active'
        assert rows['g3']['Owners'] == 'Bo; Cy'
        assert ctx.sub_fetch_errors == 1
        assert ctx.record_errors == 0

    def test_unknown_owners_never_counted_as_orphaned(self):
        connector = FakeConnector(graph_session(three_groups(failing_owners={'g2'})))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(options={'orphaned_only': True}, output_dir=tmpdir, now=NOW)

        assert ctx.rows == []
        assert ctx.summary.risk_counts['orphaned_count'] == 0

    def test_record_failure_isolated(self):
        def flaky(record, related, now, options):
            if record.id == 'g2':
                raise ValueError("malformed record")
            return map_group(record, related, now, options)

        definition = dataclasses.replace(REPORTS['group-owners'], map_record=flaky)
        connector = FakeConnector(graph_session(three_groups()))
        pipeline = ReportPipeline(definition, connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(output_dir=tmpdir, now=NOW)

        assert [row['GroupId'] for row in ctx.rows] == ['g1', 'g3']
        assert ctx.record_errors == 1
        assert ctx.processed == 3
        assert ctx.state == PipelineState.DONE

    def test_empty_collection_writes_header(self):
        connector = FakeConnector(graph_session(group_client([], {}, {})))
        pipeline = ReportPipeline(REPORTS['group-owners'], connector, show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(output_dir=tmpdir, now=NOW)
            with open(ctx.output_path, encoding='utf-8') as f:
                lines = f.read().splitlines()

        assert lines == [','.join(REPORTS['group-owners'].columns)]
        assert ctx.summary.total == 0


# =============================================================================
# Site Storage Scenario Tests
# =============================================================================

SITE_HEADER = ['Report Refresh Date', 'Site URL', 'Owner Display Name', 'Is Deleted',
               'Last Activity Date', 'File Count', 'Storage Used (Byte)',
               'Storage Allocated (Byte)', 'Root Web Template']


def site_csv(rows):
    lines = [','.join(SITE_HEADER)]
    for url, used_mb, quota_mb in rows:
        lines.append(','.join([
            '2024-06-29', url, 'Site Owner', 'False', '2024-06-20', '10',
            str(used_mb * MB), str(quota_mb * MB), 'Team Site',
        ]))
    return ('\ufeff' + '\r\n'.join(lines) + '\r\n').encode('utf-8')


def sharepoint_session(csv_bytes):
    client = Mock()
    client.reports.get_share_point_site_usage_detail_with_period.return_value.get.return_value = csv_bytes
    return Session('sharepoint', frozenset(), TENANT, client=client,
                   endpoint='https://contoso-admin.sharepoint.com')


class TestSiteStorageScenario:
    """End-to-end site storage runs against a mocked usage report."""

    def test_percent_and_over_quota(self):
        session = sharepoint_session(site_csv([
            ('https://contoso.sharepoint.com/sites/a', 800, 1000),
            ('https://contoso.sharepoint.com/sites/b', 1200, 1000),
        ]))
        pipeline = ReportPipeline(REPORTS['site-storage'], FakeConnector(session), show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(output_dir=tmpdir, now=NOW)

        first, second = ctx.rows
        assert first['PercentUsed'] == 80.0
        assert first['StorageUsageCurrentMB'] == 800.0
        assert first['Status'] == 'Active'
        assert second['PercentUsed'] == 120.0
        assert second['Status'] == 'Over Quota'
        assert ctx.summary.risk_counts['over_quota_count'] == 1
        session.client.reports.get_share_point_site_usage_detail_with_period.assert_called_once_with('D180')

    def test_other_hosts_skipped(self):
        session = sharepoint_session(site_csv([
            ('https://contoso.sharepoint.com/sites/a', 100, 1000),
            ('https://fabrikam.sharepoint.com/sites/x', 100, 1000),
            ('', 100, 1000),
        ]))
        pipeline = ReportPipeline(REPORTS['site-storage'], FakeConnector(session), show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(output_dir=tmpdir, now=NOW)

        assert ctx.source_count == 2
        assert [row['SiteUrl'] for row in ctx.rows] == ['https://contoso.sharepoint.com/sites/a', '']

    def test_over_quota_only(self):
        session = sharepoint_session(site_csv([
            ('https://contoso.sharepoint.com/sites/a', 800, 1000),
            ('https://contoso.sharepoint.com/sites/b', 1200, 1000),
            ('https://contoso.sharepoint.com/sites/c', 950, 1000),
        ]))
        pipeline = ReportPipeline(REPORTS['site-storage'], FakeConnector(session), show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(options={'over_quota_only': True}, output_dir=tmpdir, now=NOW)

        assert [row['SiteUrl'] for row in ctx.rows] == ['https://contoso.sharepoint.com/sites/b']
        assert ctx.processed == 3


# =============================================================================
# Site Sharing / Message Trace Scenario Tests
# =============================================================================

def make_site(sid, name):
    site = Mock()
    site.id = sid
    site.display_name = name
    site.name = name.lower()
    site.web_url = f"https://contoso.sharepoint.com/sites/{name.lower()}"
    return site


def make_site_user(title, login, email):
    user = Mock()
    user.fields.additional_data = {'Title': title, 'Name': login, 'EMail': email,
                                   'IsSiteAdmin': False, 'Created': '2024-03-01T00:00:00Z'}
    return user


def sharing_client():
    client = Mock()
    client.sites.get.return_value = make_page([make_site('s1', 'Projects'), make_site('s2', 'Board')])
    users = {
        's1': [
            make_site_user('Ana', 'i:0#.f|membership|ana@contoso.com', 'ana@contoso.com'),
            make_site_user('Gail', 'i:0#.f|membership|gail_fabrikam.com#ext#@contoso.onmicrosoft.com',
                           'gail@fabrikam.com'),
            make_site_user('Hugo', 'i:0#.f|membership|urn:spo:guest#hugo@partner.org', 'hugo@partner.org'),
        ],
    }

    def by_site_id(sid):
        item = Mock()
        items = item.lists.by_list_id.return_value.items
        if sid in users:
            items.get.return_value = make_page(users[sid])
        else:
            items.get.side_effect = RuntimeError("list not found")
        return item

    client.sites.by_site_id.side_effect = by_site_id
    return client


class TestSharingAndTraceScenario:
    """End-to-end runs of the fan-out site report and the JSON-backed trace report."""

    def test_site_external_users(self):
        client = sharing_client()
        pipeline = ReportPipeline(REPORTS['site-sharing'], FakeConnector(graph_session(client)), show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(output_dir=tmpdir, now=NOW)
            exported = _read_csv(ctx.output_path)

        assert ctx.source_count == 2
        assert [(r['SiteName'], r['UserName']) for r in exported] == [
            ('Projects', 'Gail'), ('Projects', 'Hugo'), ('Board', UNKNOWN),
        ]
        assert ctx.sub_fetch_errors == 1
        assert ctx.summary.risk_counts['unknown_membership_count'] == 1

    def test_message_traces(self):
        client = Mock()
        client.request_adapter.send_primitive_async.side_effect = [
            b'{"value": [{"id": "1", "status": "delivered", "senderAddress": "ana@contoso.com",'
            b' "recipientAddress": "bo@fabrikam.com", "size": 2048}],'
            b' "@odata.nextLink": "https://graph.microsoft.com/beta/next"}',
            b'{"value": [{"id": "2", "status": "failed", "senderAddress": "ana@contoso.com",'
            b' "recipientAddress": "cy@partner.org", "size": 1024}]}',
        ]
        pipeline = ReportPipeline(REPORTS['message-trace'], FakeConnector(graph_session(client)), show_progress=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            ctx = pipeline.run(options={'problems_only': True}, output_dir=tmpdir, now=NOW)

        assert ctx.source_count == 2
        assert [row['RecipientAddress'] for row in ctx.rows] == ['cy@partner.org']
        assert ctx.summary.risk_counts['failed_count'] == 1
        assert os.path.basename(ctx.output_path) == 'MessageTraceReport_20240630_120000.csv'
