"""
Message trace report.

One row per message and recipient over a recent window, from the Exchange
Online message trace API. Sender and recipient filters are applied server
side; status filters run on the exported rows.
"""
from datetime import timedelta
from urllib.parse import quote, urlencode

from reportlib.constants import (
    GRAPH_BETA_URL,
    MESSAGE_TRACE_DEFAULT_DAYS,
    MESSAGE_TRACE_MAX_DAYS,
    NOT_AVAILABLE,
    REQUIRE_MESSAGE_TRACE_READ,
    SERVICE_GRAPH,
    TRACE_PROBLEM_STATUSES,
    TRACE_STATUS_DELIVERED,
    TRACE_STATUS_FAILED,
    TRACE_STATUS_QUARANTINED,
    TRACE_STATUS_SPAM,
)
from reportlib.fetcher import fetch_json_collection
from reportlib.filters import FilterSpec, equals
from reportlib.mapping import mail_domain, parse_timestamp, to_float
from reportlib.models import ReportDefinition, ReportOption, SummarySpec
from reportlib.utils import utc_now

from .common import name_filter, status_is

COLUMNS = (
    'ReceivedDateTime', 'SenderAddress', 'SenderDomain', 'RecipientAddress',
    'RecipientDomain', 'Subject', 'Status', 'SizeKB', 'FromIP', 'ToIP', 'MessageId',
)

MESSAGE_TRACE_URL = f"{GRAPH_BETA_URL}/admin/exchange/tracing/messageTraces"


def trace_days(value) -> int:
    """Option type: a whole number of days the trace API can cover."""
    days = int(value)
    if not 1 <= days <= MESSAGE_TRACE_MAX_DAYS:
        raise ValueError(f"days must be between 1 and {MESSAGE_TRACE_MAX_DAYS}, got {days}")
    return days


def _odata_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def trace_query_url(options, now) -> str:
    end = now.replace(microsecond=0)
    start = end - timedelta(days=options['days'])
    clauses = [
        f"receivedDateTime ge {start.strftime('%Y-%m-%dT%H:%M:%SZ')}",
        f"receivedDateTime le {end.strftime('%Y-%m-%dT%H:%M:%SZ')}",
    ]
    if options.get('sender'):
        clauses.append(f"senderAddress eq {_odata_string(options['sender'])}")
    if options.get('recipient'):
        clauses.append(f"recipientAddress eq {_odata_string(options['recipient'])}")
    return f"{MESSAGE_TRACE_URL}?{urlencode({'$filter': ' and '.join(clauses)}, quote_via=quote)}"


def fetch_message_traces(session, options):
    return fetch_json_collection(session, 'message traces', trace_query_url(options, utc_now()))


def trace_status(value) -> str:
    """'filteredAsSpam' -> 'FilteredAsSpam'"""
    if not isinstance(value, str) or not value:
        return NOT_AVAILABLE
    return value[0].upper() + value[1:]


def map_trace(record, related, now, options):
    received = parse_timestamp(record.get('receivedDateTime'))
    sender = record.get('senderAddress')
    recipient = record.get('recipientAddress')
    return [{
        'ReceivedDateTime': received.strftime('%Y-%m-%d %H:%M:%S') if received else NOT_AVAILABLE,
        'SenderAddress': sender or NOT_AVAILABLE,
        'SenderDomain': mail_domain(sender),
        'RecipientAddress': recipient or NOT_AVAILABLE,
        'RecipientDomain': mail_domain(recipient),
        'Subject': record.get('subject') or '',
        'Status': trace_status(record.get('status')),
        'SizeKB': round(to_float(record.get('size')) / 1024, 2),
        'FromIP': record.get('fromIP') or NOT_AVAILABLE,
        'ToIP': record.get('toIP') or NOT_AVAILABLE,
        'MessageId': record.get('messageId') or NOT_AVAILABLE,
    }]


REPORT = ReportDefinition(
    slug='message-trace',
    name='MessageTraceReport',
    description="Mail flow over the last few days, one row per message and recipient",
    service=SERVICE_GRAPH,
    scopes=(REQUIRE_MESSAGE_TRACE_READ,),
    columns=COLUMNS,
    fetch=fetch_message_traces,
    map_record=map_trace,
    options=(
        ReportOption('days', f"Days of mail flow to trace, 1-{MESSAGE_TRACE_MAX_DAYS} "
                             f"(default: {MESSAGE_TRACE_DEFAULT_DAYS})",
                     type=trace_days, default=MESSAGE_TRACE_DEFAULT_DAYS),
        ReportOption('sender', "Only trace mail from this address"),
        ReportOption('recipient', "Only trace mail to this address"),
        ReportOption('status', "Only include messages with this delivery status (e.g. Failed)"),
        ReportOption('problems_only', "Only include failed, quarantined or spam-filtered messages", type=bool),
        ReportOption('subject_contains', "Only include messages whose subject contains this text"),
    ),
    filters=(
        FilterSpec('status', equals('Status')),
        FilterSpec('problems_only', lambda row, _value: row.get('Status') in TRACE_PROBLEM_STATUSES),
        name_filter('subject_contains', 'Subject'),
    ),
    summary=SummarySpec(
        numeric_columns=('SizeKB',),
        category_columns=('Status', 'SenderDomain'),
        risk_counters=(
            ('delivered_count', status_is(TRACE_STATUS_DELIVERED)),
            ('failed_count', status_is(TRACE_STATUS_FAILED)),
            ('quarantined_count', status_is(TRACE_STATUS_QUARANTINED)),
            ('spam_count', status_is(TRACE_STATUS_SPAM)),
        ),
    ),
)
