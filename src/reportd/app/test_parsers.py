import json
from datetime import datetime, timezone

import pytest

from reportd.app.errors import MalformedJSON, MissingRequiredField, UnsupportedReportType
from reportd.app.fields import FieldExtractor, WarningCollector
from reportd.app.parsers import (
    decode_csp_report,
    decode_deprecation_body,
    decode_expect_ct_report,
    decode_reporting_batch,
    decode_security_report,
    decode_web_vital,
    load_json,
)
from reportd.app.schemas import (
    CSPViolation,
    DeprecationNotice,
    Disposition,
    GenericReportBody,
)

EXPECT_CT_BODY = (
    '{"expect-ct-report":{"date-time":"2019-10-06T15:09:06.894Z",'
    '"effective-expiration-date":"2019-10-06T15:09:06.894Z",'
    '"hostname":"expect-ct-report.test","port":443,"scts":[],'
    '"served-certificate-chain":[],"validated-certificate-chain":[]}}'
)

LEGACY_CSP = {
    "document-uri": "https://example.com/page",
    "referrer": "https://search.example/",
    "blocked-uri": "https://evil.example/x.js",
    "violated-directive": "script-src",
    "effective-directive": "script-src-elem",
    "original-policy": "default-src 'self'; report-uri /report/reportd",
    "source-file": "https://example.com/app.js",
    "line-number": 10,
    "column-number": 4,
    "script-sample": "",
    "status-code": 200,
    "disposition": "enforce",
}

CSP_BODY = {
    "documentURL": "https://example.com/violating/page",
    "referrer": "https://www.examplesearchengine.com/",
    "blockedURL": "inline",
    "violatedDirective": "script-src",
    "effectiveDirective": "script-src-elem",
    "originalPolicy": "default-src 'self'; report-to csp-endpoint-name",
    "sourceFile": "https://example.com/csp-report",
    "lineNumber": 121,
    "columnNumber": 39,
    "sample": 'console.log("lo")',
    "statusCode": 200,
    "disposition": "enforce",
}

DEPRECATION_BODY = {
    "id": "websql",
    "anticipatedRemoval": "2020-01-01",
    "message": "WebSQL is deprecated and will be removed in Chrome 97 around January 2020",
    "sourceFile": "https://example.com/index.js",
    "lineNumber": 1234,
    "columnNumber": 42,
}

EXPECT_CT_LEAVES = [
    "date-time",
    "effective-expiration-date",
    "hostname",
    "port",
    "scts",
    "served-certificate-chain",
    "validated-certificate-chain",
]

WEB_VITAL = {"name": "LCP", "value": 2500.5, "delta": 2500.5, "id": "v2-1600000000000-123"}

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36"
)


def without(d, key):
    return {k: v for k, v in d.items() if k != key}


# ---------- load_json ----------

@pytest.mark.parametrize("body", [b"", b"   ", b"{", b"nope", b"NaN", b'{"age": Infinity}', b"\xff\xfe"])
def test_load_json_rejects(body):
    with pytest.raises(MalformedJSON):
        load_json(body)


def test_load_json_accepts_str_and_bytes():
    assert load_json(b'{"a": 1}') == {"a": 1}
    assert load_json('[1]') == [1]


# ---------- expect-ct ----------

def test_expect_ct_scenario():
    warnings = WarningCollector()
    report = decode_expect_ct_report(json.loads(EXPECT_CT_BODY), warnings)

    assert report.hostname == "expect-ct-report.test"
    assert report.port == 443
    assert report.scts == []
    assert report.served_certificate_chain == []
    assert report.validated_certificate_chain == []
    assert report.date_time == datetime(2019, 10, 6, 15, 9, 6, 894000, tzinfo=timezone.utc)
    assert warnings.warnings == []


@pytest.mark.parametrize("leaf", EXPECT_CT_LEAVES)
def test_expect_ct_tolerates_missing_leaf(leaf):
    inner = json.loads(EXPECT_CT_BODY)["expect-ct-report"]
    warnings = WarningCollector()
    report = decode_expect_ct_report({"expect-ct-report": without(inner, leaf)}, warnings)

    assert report.hostname == ("" if leaf == "hostname" else "expect-ct-report.test")
    assert report.port == (0 if leaf == "port" else 443)
    assert [w.path for w in warnings.warnings] == [f"expect-ct-report.{leaf}"]


def test_expect_ct_requires_envelope():
    with pytest.raises(MissingRequiredField) as exc:
        decode_expect_ct_report({}, WarningCollector())
    assert exc.value.field == "expect-ct-report"


# ---------- legacy csp ----------

def test_legacy_csp():
    warnings = WarningCollector()
    report = decode_csp_report({"csp-report": LEGACY_CSP}, warnings)

    assert report.model_dump() == CSPViolation(
        document_uri="https://example.com/page",
        referrer="https://search.example/",
        blocked_uri="https://evil.example/x.js",
        violated_directive="script-src",
        effective_directive="script-src-elem",
        original_policy="default-src 'self'; report-uri /report/reportd",
        source_file="https://example.com/app.js",
        line_number=10,
        column_number=4,
        script_sample="",
        status_code=200,
        disposition="enforce",
    ).model_dump()
    assert warnings.warnings == []


@pytest.mark.parametrize("leaf", sorted(LEGACY_CSP))
def test_legacy_csp_tolerates_missing_leaf(leaf):
    warnings = WarningCollector()
    report = decode_csp_report({"csp-report": without(LEGACY_CSP, leaf)}, warnings)

    field = leaf.replace("-uri", "_uri").replace("-", "_")
    zero = CSPViolation().model_dump()[field]
    assert report.model_dump()[field] == zero
    assert len(warnings.warnings) == 1
    assert warnings.warnings[0].observed == "missing"


def test_legacy_csp_wrong_shape():
    with pytest.raises(MalformedJSON):
        decode_csp_report([{"csp-report": LEGACY_CSP}], WarningCollector())
    with pytest.raises(MalformedJSON):
        decode_csp_report({"csp-report": "oops"}, WarningCollector())


# ---------- reporting api ----------

def test_reporting_batch_keeps_malformed_sibling():
    good = {"type": "csp-violation", "age": 10, "url": "https://a/", "user_agent": CHROME_UA, "body": CSP_BODY}
    bad = dict(good, body=dict(CSP_BODY, lineNumber="121"))
    warnings = WarningCollector()

    envelopes = decode_reporting_batch([good, bad], warnings)

    assert len(envelopes) == 2
    assert isinstance(envelopes[0].body, CSPViolation)
    assert envelopes[0].body.line_number == 121
    assert envelopes[1].body.line_number == 0
    assert envelopes[1].body.document_uri == "https://example.com/violating/page"
    assert [w.path for w in warnings.warnings] == ["[1].body.lineNumber"]


def test_reporting_batch_dispatches_body_by_type():
    items = [
        {"type": "deprecation", "age": 1, "url": "https://a/", "user_agent": "UA", "body": DEPRECATION_BODY},
        {"type": "network-error", "age": 1, "url": "https://a/", "user_agent": "UA",
         "body": {"type": "tcp.reset", "status_code": 0, "elapsed_time": 18, "phase": "connection"}},
    ]
    envelopes = decode_reporting_batch(items, WarningCollector())

    assert isinstance(envelopes[0].body, DeprecationNotice)
    assert envelopes[0].body.id == "websql"
    expected = GenericReportBody(type="tcp.reset", elapsed_time=18, phase="connection")
    assert envelopes[1].body.model_dump() == expected.model_dump()


def test_generic_body_warns_only_on_wrong_type():
    warnings = WarningCollector()
    item = {"type": "intervention", "age": 1, "url": "u", "user_agent": "UA", "body": {"status": "500"}}
    envelope = decode_reporting_batch([item], warnings)[0]
    assert envelope.body.status == 0
    assert [w.path for w in warnings.warnings] == ["[0].body.status"]


DEPRECATION_ATTRS = {
    "id": "id",
    "anticipatedRemoval": "anticipated_removal",
    "message": "message",
    "sourceFile": "source_file",
    "lineNumber": "line_number",
    "columnNumber": "column_number",
}


@pytest.mark.parametrize("leaf", sorted(DEPRECATION_ATTRS))
def test_deprecation_tolerates_missing_leaf(leaf):
    warnings = WarningCollector()
    body = FieldExtractor(without(DEPRECATION_BODY, leaf), warnings, path="body")

    notice = decode_deprecation_body(body)

    assert isinstance(notice, DeprecationNotice)
    assert getattr(notice, DEPRECATION_ATTRS[leaf]) in ("", 0)
    assert len(warnings.warnings) == 1
    assert warnings.warnings[0].path == f"body.{leaf}"
    assert warnings.warnings[0].observed == "missing"


def test_reporting_batch_outer_shape():
    with pytest.raises(MalformedJSON):
        decode_reporting_batch({"type": "csp-violation"}, WarningCollector())
    with pytest.raises(MalformedJSON):
        decode_reporting_batch([{"type": "csp-violation", "body": {}}, "oops"], WarningCollector())


def test_reporting_batch_empty_array():
    assert decode_reporting_batch([], WarningCollector()) == []


# ---------- web vitals ----------

def test_web_vital():
    vital = decode_web_vital(dict(WEB_VITAL, label="web-vital", entries=[{"startTime": 1}]), WarningCollector())
    assert vital.name == "LCP"
    assert vital.value == 2500.5
    assert vital.label == "web-vital"
    assert vital.entries == [{"startTime": 1}]


@pytest.mark.parametrize("leaf", sorted(WEB_VITAL))
def test_web_vital_tolerates_missing_leaf(leaf):
    warnings = WarningCollector()
    vital = decode_web_vital(without(WEB_VITAL, leaf), warnings)
    assert getattr(vital, leaf) in ("", 0.0)
    assert len(warnings.warnings) == 1


def test_web_vital_optional_fields_are_silent():
    warnings = WarningCollector()
    vital = decode_web_vital(WEB_VITAL, warnings)
    assert vital.label == ""
    assert vital.entries == []
    assert warnings.warnings == []


def test_web_vital_must_be_object():
    with pytest.raises(MalformedJSON):
        decode_web_vital([WEB_VITAL], WarningCollector())


# ---------- security report ----------

def fixed_now():
    return 1_700_000_000_000


def test_security_report_scenario():
    item = {
        "type": "csp-violation",
        "age": 10,
        "user_agent": "UA/1.0",
        "body": {"documentURL": "https://a", "blockedURL": "https://b", "disposition": "enforce"},
    }
    report = decode_security_report(item, WarningCollector(), now=fixed_now)

    assert report.disposition == Disposition.ENFORCED
    assert report.report_count == 1
    assert len(report.report_checksum) == 64
    assert report.report_time == fixed_now() - 10
    assert report.user_agent == "UA/1.0"
    assert isinstance(report.extension, CSPViolation)
    assert report.extension.document_uri == "https://a"
    assert report.extension.blocked_uri == "https://b"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("enforce", Disposition.ENFORCED),
        ("report", Disposition.REPORTING),
        ("ENFORCE", Disposition.UNKNOWN),
        (None, Disposition.UNKNOWN),
    ],
)
def test_security_report_disposition(value, expected):
    item = {"type": "csp-violation", "age": 1, "user_agent": "UA", "body": {"disposition": value}}
    assert decode_security_report(item, WarningCollector(), now=fixed_now).disposition == expected


def test_security_report_deprecation():
    item = {"type": "deprecation", "age": 5, "user_agent": "UA", "body": DEPRECATION_BODY}
    report = decode_security_report(item, WarningCollector(), now=fixed_now)
    assert isinstance(report.extension, DeprecationNotice)
    assert report.extension.anticipated_removal == "2020-01-01"
    assert report.disposition == Disposition.UNKNOWN


def test_security_report_without_age_has_no_time():
    item = {"type": "deprecation", "user_agent": "UA", "body": DEPRECATION_BODY}
    assert decode_security_report(item, WarningCollector(), now=fixed_now).report_time == 0


@pytest.mark.parametrize(
    "item, field",
    [
        ({"body": {}}, "type"),
        ({"type": 1, "body": {}}, "type"),
        ({"type": "deprecation"}, "body"),
        ({"type": "deprecation", "body": "websql"}, "body"),
    ],
)
def test_security_report_requires_type_and_body(item, field):
    with pytest.raises(MissingRequiredField) as exc:
        decode_security_report(item, WarningCollector(), now=fixed_now)
    assert exc.value.field == field


def test_security_report_unknown_type():
    with pytest.raises(UnsupportedReportType):
        decode_security_report({"type": "crash", "body": {}}, WarningCollector(), now=fixed_now)


def test_security_report_checksum_ignores_key_order():
    first = {"type": "deprecation", "age": 5, "body": DEPRECATION_BODY}
    second = {"body": dict(reversed(list(DEPRECATION_BODY.items()))), "age": 5, "type": "deprecation"}
    a = decode_security_report(first, WarningCollector(), now=fixed_now)
    b = decode_security_report(second, WarningCollector(), now=fixed_now)
    assert a.report_checksum == b.report_checksum
