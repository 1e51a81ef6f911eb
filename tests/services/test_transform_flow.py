import pytest

from core.exceptions import PreviewNotReady
from schemas.clients import ClientInfo, ClientSuggestion, ClientSuggestResult
from schemas.documents import DocumentSearchResult
from schemas.intents import (
    ConversionConfig,
    DocumentTransformIntent,
    SplitConfig,
    TransformSource,
)
from services.review.client_resolver import ClientResolver
from services.review.document_resolver import DocumentResolver
from services.review.transform_flow import (
    search_transform_client,
    select_transform_source,
    start_transform,
    transform_draft,
)


def _intent(**overrides) -> DocumentTransformIntent:
    data = {
        "source": TransformSource(client_name="Jackson", document_type="estimate"),
        "conversion": ConversionConfig(enabled=True, target_type="invoice"),
        "summary": "Convert Jackson's estimate",
    }
    data.update(overrides)
    return DocumentTransformIntent(**data)


@pytest.mark.asyncio
async def test_newest_document_is_chosen(documents_repo, clients_repo, make_document):
    newest = make_document(type="estimate", client="Jackson")
    older = make_document(type="estimate", client="Jackson")
    documents_repo.search.return_value = DocumentSearchResult(
        documents=[newest, older]
    )

    flow = await start_transform(
        _intent(), DocumentResolver(documents_repo), ClientResolver(clients_repo)
    )

    assert flow.selection == "auto"
    assert flow.source == newest
    assert flow.search_query == "Jackson"
    assert flow.error is None


@pytest.mark.asyncio
async def test_document_number_wins_over_recency(
    documents_repo, clients_repo, make_document
):
    newest = make_document(type="estimate", number="EST-2026-0009")
    wanted = make_document(type="estimate", number="EST-2026-0002")
    documents_repo.search.return_value = DocumentSearchResult(
        documents=[newest, wanted]
    )
    intent = _intent(
        source=TransformSource(client_name="Jackson", document_number="EST-2026-0002")
    )

    flow = await start_transform(
        intent, DocumentResolver(documents_repo), ClientResolver(clients_repo)
    )

    assert flow.source == wanted


@pytest.mark.asyncio
async def test_miss_offers_client_picker(documents_repo, clients_repo):
    clients_repo.suggest.return_value = ClientSuggestResult(
        suggestions=[ClientSuggestion(id="c1", name="Jaxon Ltd", similarity=0.7)]
    )
    documents = DocumentResolver(documents_repo)
    clients = ClientResolver(clients_repo)

    flow = await start_transform(_intent(), documents, clients)

    assert flow.selection == "no_match"
    assert flow.source is None
    assert [s.name for s in flow.client_suggestions] == ["Jaxon Ltd"]
    with pytest.raises(PreviewNotReady):
        transform_draft(flow)


@pytest.mark.asyncio
async def test_research_with_picked_client(documents_repo, clients_repo, make_document):
    documents = DocumentResolver(documents_repo)
    clients = ClientResolver(clients_repo)
    flow = await start_transform(_intent(), documents, clients)

    estimate = make_document(type="estimate", client="Jaxon Ltd")
    documents_repo.search.return_value = DocumentSearchResult(documents=[estimate])
    flow = await search_transform_client(flow, "Jaxon Ltd", documents, clients)

    assert flow.source == estimate
    assert flow.client_suggestions == []
    assert flow.search_query == "Jaxon Ltd"


@pytest.mark.asyncio
async def test_converting_to_same_type_is_an_error(
    documents_repo, clients_repo, make_document
):
    documents_repo.search.return_value = DocumentSearchResult(
        documents=[make_document(type="invoice")]
    )
    flow = await start_transform(
        _intent(), DocumentResolver(documents_repo), ClientResolver(clients_repo)
    )

    assert flow.error == "Source document is already the target type"
    with pytest.raises(PreviewNotReady):
        transform_draft(flow)


@pytest.mark.asyncio
async def test_explicit_selection(documents_repo, clients_repo, make_document):
    first = make_document(type="estimate")
    second = make_document(type="estimate")
    documents_repo.search.return_value = DocumentSearchResult(
        documents=[first, second]
    )
    documents = DocumentResolver(documents_repo)
    flow = await start_transform(_intent(), documents, ClientResolver(clients_repo))

    flow = await select_transform_source(flow, second.id, documents)

    assert flow.selection == "selected"
    assert flow.source == second


@pytest.mark.asyncio
async def test_draft_converts_and_keeps_source_client(
    documents_repo, clients_repo, make_document
):
    estimate = make_document(type="estimate", client="Jackson", tax_rate=8.0)
    documents_repo.search.return_value = DocumentSearchResult(documents=[estimate])
    intent = _intent(split=SplitConfig(enabled=True, number_of_parts=3))
    flow = await start_transform(
        intent, DocumentResolver(documents_repo), ClientResolver(clients_repo)
    )

    draft, actions = transform_draft(flow)

    assert draft.document_type == "invoice"
    assert draft.client.full_name == "Jackson"
    assert draft.tax_rate == 8.0
    assert draft.total == 540
    assert draft.source_document_id == estimate.id
    assert [a.type for a in actions] == ["create_document"]
    assert flow.intent.split.number_of_parts == 3


@pytest.mark.asyncio
async def test_draft_uses_target_client_when_given(
    documents_repo, clients_repo, make_document
):
    documents_repo.search.return_value = DocumentSearchResult(
        documents=[make_document(type="estimate")]
    )
    intent = _intent(
        conversion=ConversionConfig(), target_client=ClientInfo(name="Mike Jones")
    )
    flow = await start_transform(
        intent, DocumentResolver(documents_repo), ClientResolver(clients_repo)
    )

    draft, _ = transform_draft(flow)

    assert draft.document_type == "estimate"
    assert draft.client.full_name == "Mike Jones"
