from core.exceptions import ParseFailure
from schemas.clients import ClientInfo
from schemas.documents import LineItem
from schemas.intents import (
    DocumentMergeIntent,
    DocumentSendIntent,
    coerce_parse_result,
)
from schemas.review import DraftDocument


def test_client_full_name_prefers_explicit_name():
    assert ClientInfo(name=" Ana Lopez ", first_name="x").full_name == "Ana Lopez"
    assert ClientInfo(first_name="Ana", last_name="Lopez").full_name == "Ana Lopez"
    assert ClientInfo(last_name="Lopez").full_name == "Lopez"
    assert ClientInfo().full_name == ""


def test_draft_totals_apply_tax_percent():
    draft = DraftDocument(
        items=[
            LineItem(description="a", quantity=1, rate=100, total=100),
            LineItem(description="b", quantity=2, rate=25.5, total=51),
        ],
        tax_rate=10,
    )
    assert draft.subtotal == 151
    assert draft.tax_amount == 15.1
    assert draft.total == 166.1
    assert draft.template_data()["tax_rate"] == 0.1


def test_draft_total_override_wins():
    draft = DraftDocument(
        items=[LineItem(description="a", quantity=1, rate=100, total=100)],
        total_override=90,
    )
    assert draft.total == 90


def test_discriminated_payloads_validate():
    merge = coerce_parse_result(
        {"intent_type": "document_merge", "source_clients": ["Alice", "Bob"]}
    )
    send = coerce_parse_result(
        {"intent_type": "document_send", "client_name": "John", "selector": "first"}
    )
    assert isinstance(merge, DocumentMergeIntent)
    assert isinstance(send, DocumentSendIntent)
    assert send.delivery_method == "email"


def test_invalid_body_is_a_parse_failure():
    payload = {"intent_type": "document_merge", "source_clients": []}
    result = coerce_parse_result(payload)
    assert isinstance(result, ParseFailure)
    assert result.message == "Failed to parse"


def test_non_mapping_payload_is_a_parse_failure():
    assert isinstance(coerce_parse_result(["not", "a", "dict"]), ParseFailure)
    assert isinstance(coerce_parse_result(None), ParseFailure)
