"""Read-only information queries over saved documents."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crud.documents import SqlDocumentRepository
from models.documents import Document
from schemas.intents import DateRange, InformationQuery
from schemas.queries import QueryDocument, QueryResult, QuerySummary
from services.review.similarity import MATCH_THRESHOLD, calculate_similarity


logger = logging.getLogger(__name__)


def _parse_day(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _month_start(day: date) -> date:
    return day.replace(day=1)


def period_bounds(
    period: str | None, today: date | None = None
) -> tuple[date | None, date | None]:
    """Half-open ``[start, end)`` day range for a named period."""
    if not period:
        return None, None
    today = today or datetime.now(UTC).date()
    key = period.strip().lower().replace(" ", "_")
    match key:
        case "today":
            return today, today + timedelta(days=1)
        case "this_week":
            start = today - timedelta(days=today.weekday())
            return start, start + timedelta(days=7)
        case "this_month":
            start = _month_start(today)
            return start, _month_start(start + timedelta(days=32))
        case "last_month":
            end = _month_start(today)
            return _month_start(end - timedelta(days=1)), end
        case "this_year":
            return date(today.year, 1, 1), date(today.year + 1, 1, 1)
        case "last_year":
            return date(today.year - 1, 1, 1), date(today.year, 1, 1)
    return None, None


def date_bounds(
    date_range: DateRange, today: date | None = None
) -> tuple[date | None, date | None]:
    start = _parse_day(date_range.start)
    end_day = _parse_day(date_range.end)
    end = end_day + timedelta(days=1) if end_day else None
    if start is None and end is None:
        return period_bounds(date_range.period, today)
    return start, end


def to_query_document(doc: Document) -> QueryDocument:
    return QueryDocument(
        id=str(doc.id),
        type=doc.document_type,
        title=doc.title,
        number=doc.document_number,
        client=doc.client_name,
        client_id=str(doc.client_id) if doc.client_id else None,
        date=doc.created_at,
        amount=doc.total,
        status=doc.status,
        due_date=doc.due_date,
    )


def _plural(count: int) -> str:
    return "document" if count == 1 else "documents"


def format_sum_answer(total: float, count: int) -> str:
    return f"Total amount: ${total:,.2f} across {count} {_plural(count)}."


class SqlQueryExecutor:
    """``QueryExecutor`` answering list, count, sum and details questions."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def execute(self, query: InformationQuery) -> QueryResult:
        statement = select(Document)
        if query.document_types:
            statement = statement.where(
                Document.document_type.in_(query.document_types)
            )
        if query.status:
            statement = statement.where(Document.status == query.status)
        start, end = date_bounds(query.date_range)
        if start is not None:
            statement = statement.where(
                Document.created_at >= datetime.combine(start, datetime.min.time())
            )
        if end is not None:
            statement = statement.where(
                Document.created_at < datetime.combine(end, datetime.min.time())
            )
        if query.sort_by == "amount":
            statement = statement.order_by(Document.total.desc())
        else:
            statement = statement.order_by(Document.created_at.desc())

        result = await self.db.execute(statement)
        documents = list(result.scalars().all())

        name = (query.client_name or "").strip()
        suggestions = None
        if name:
            documents = [
                d
                for d in documents
                if calculate_similarity(name, d.client_name) >= MATCH_THRESHOLD
            ]
            repository = SqlDocumentRepository(self.db)
            suggestions = await repository.client_alternatives(name)

        logger.info(
            "Information query %s matched %d document(s)", query.type, len(documents)
        )
        total = round(sum(d.total for d in documents), 2)
        count = len(documents)
        listed = documents[: query.limit] if query.limit else documents

        match query.type:
            case "sum":
                by_status: dict[str, float] = defaultdict(float)
                by_type: dict[str, float] = defaultdict(float)
                for doc in documents:
                    by_status[doc.status] += doc.total
                    by_type[doc.document_type] += doc.total
                return QueryResult(
                    query_type="sum",
                    summary=QuerySummary(
                        count=count,
                        total_amount=total,
                        by_status={k: round(v, 2) for k, v in by_status.items()},
                        by_type={k: round(v, 2) for k, v in by_type.items()},
                    ),
                    answer=format_sum_answer(total, count),
                    suggestions=suggestions,
                )
            case "count" | "details":
                summary = QuerySummary(
                    count=count,
                    total_amount=total,
                    by_status=dict(Counter(d.status for d in documents)),
                    by_type=dict(Counter(d.document_type for d in documents)),
                )
                return QueryResult(
                    query_type=query.type,
                    documents=(
                        [to_query_document(d) for d in listed]
                        if query.type == "details"
                        else []
                    ),
                    summary=summary,
                    answer=f"Found {count} {_plural(count)}.",
                    suggestions=suggestions,
                )
            case _:
                answer = (
                    f"Found {count} {_plural(count)}."
                    if count
                    else "No documents found."
                )
                return QueryResult(
                    query_type="list",
                    documents=[to_query_document(d) for d in listed],
                    answer=answer,
                    suggestions=suggestions,
                )
