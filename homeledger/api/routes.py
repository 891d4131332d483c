from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from loguru import logger
from sqlalchemy import desc, func, or_, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homeledger.core.config import AppConfig, Settings, get_settings
from homeledger.core.errors import NotFoundError
from homeledger.core.security import (
    TOKEN_COOKIE,
    CurrentUser,
    create_access_token,
    get_current_user,
    hash_password,
    rate_limit_auth,
    verify_password,
)
from homeledger.db import models
from homeledger.db.session import get_session
from homeledger.schemas.auth import AuthResponse, LoginRequest, Me, RegisterRequest, SetupStatus
from homeledger.schemas.categories import Category, CategoryCreate, MerchantSuggestion
from homeledger.schemas.documents import Document, DocumentCategory, DocumentCreated
from homeledger.schemas.reports import MonthlySummary, PaymentSummary, Summary
from homeledger.schemas.transactions import (
    Transaction,
    TransactionCreate,
    TransactionCreated,
    sanitize_text,
)
from homeledger.services.aggregator import ExpenseAggregator
from homeledger.services.documents import (
    DEFAULT_DOCUMENT_CATEGORIES,
    DocumentStore,
    get_document_store,
)
from homeledger.services.periods import parse_iso_date, today_in

router = APIRouter(prefix="/api")
app_config = AppConfig()

MERCHANT_SUGGESTION_LIMIT = 10


def get_aggregator(
    session: AsyncSession = Depends(get_session), settings: Settings = Depends(get_settings)
) -> ExpenseAggregator:
    return ExpenseAggregator(session, settings=settings)


@router.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.exception("Health check failed")
        return JSONResponse(status_code=500, content={"status": "unhealthy", "error": str(exc)})
    return {
        "status": "healthy",
        "version": app_config.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# Auth


def _set_token_cookie(response: Response, user: models.User, settings: Settings) -> None:
    token = create_access_token(user.id, user.username, settings)
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=settings.token_ttl_days * 24 * 60 * 60,
    )


@router.post("/auth/register", response_model=AuthResponse, dependencies=[Depends(rate_limit_auth)])
async def register(
    body: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    user_count = await session.scalar(select(func.count(models.User.id)))
    if user_count >= settings.max_users:
        raise HTTPException(status_code=403, detail="Maximum users reached. Contact admin.")

    username = body.username.strip().lower()
    user = models.User(
        username=username,
        password_hash=hash_password(body.password),
        display_name=body.display_name,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=400, detail="Username already exists")
    await session.refresh(user)

    logger.info("Registered user", user_id=user.id, username=username)
    _set_token_cookie(response, user, settings)
    return AuthResponse(display_name=user.display_name)


@router.post("/auth/login", response_model=AuthResponse, dependencies=[Depends(rate_limit_auth)])
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    username = body.username.strip().lower()
    user = await session.scalar(select(models.User).where(models.User.username == username))
    if user is None or not verify_password(body.password, user.password_hash):
        logger.info("Failed login attempt", username=username)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    _set_token_cookie(response, user, settings)
    return AuthResponse(display_name=user.display_name)


@router.post("/auth/logout")
async def logout(response: Response) -> dict:
    response.delete_cookie(TOKEN_COOKIE)
    return {"success": True}


@router.get("/auth/me", response_model=Me)
async def me(
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Me:
    user = await session.get(models.User, current_user.id)
    if user is None:
        raise NotFoundError("User not found")
    return Me(id=user.id, username=user.username, display_name=user.display_name)


@router.get("/auth/setup-status", response_model=SetupStatus)
async def setup_status(session: AsyncSession = Depends(get_session)) -> SetupStatus:
    user_count = await session.scalar(select(func.count(models.User.id)))
    return SetupStatus(needs_setup=user_count == 0, user_count=user_count)


# Categories


@router.get("/categories", response_model=list[Category])
async def list_categories(
    category_type: Annotated[Literal["expense", "income", "both"], Query(alias="type")] = "expense",
    group: Annotated[Literal["home", "office"] | None, Query()] = None,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[Category]:
    # Usage is counted across the whole household so shared favourites float up.
    usage = (
        select(models.Transaction.category_id, func.count(models.Transaction.id).label("uses"))
        .group_by(models.Transaction.category_id)
        .subquery()
    )
    usage_count = func.coalesce(usage.c.uses, 0).label("usage_count")

    filters = [
        or_(models.Category.is_default.is_(True), models.Category.user_id == current_user.id),
        models.Category.type.in_([category_type, "both"]),
    ]
    if group is not None:
        filters.append(models.Category.category_group == group)

    stmt = (
        select(models.Category, usage_count)
        .join(usage, models.Category.id == usage.c.category_id, isouter=True)
        .where(*filters)
        .order_by(models.Category.category_group, desc("usage_count"), models.Category.name)
    )
    result = await session.execute(stmt)
    return [_category_to_schema(category, count) for category, count in result.all()]


@router.post("/categories", response_model=Category, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreate,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Category:
    category = models.Category(
        name=body.name,
        type=body.type,
        icon=body.icon or "💰",
        color=body.color or "#6366f1",
        category_group=body.group,
        user_id=current_user.id,
        is_default=False,
    )
    session.add(category)
    await session.commit()
    await session.refresh(category)
    return _category_to_schema(category, 0)


@router.get("/categories/{category_id}/merchants", response_model=list[MerchantSuggestion])
async def suggest_merchants(
    category_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[MerchantSuggestion]:
    usage_count = func.count(models.Transaction.id).label("usage_count")
    last_used = func.max(models.Transaction.tx_date).label("last_used")
    stmt = (
        select(models.Transaction.merchant, usage_count, last_used)
        .where(
            models.Transaction.category_id == category_id,
            models.Transaction.merchant.is_not(None),
            models.Transaction.merchant != "",
        )
        .group_by(models.Transaction.merchant)
        .order_by(desc("usage_count"), desc("last_used"))
        .limit(MERCHANT_SUGGESTION_LIMIT)
    )
    result = await session.execute(stmt)
    return [
        MerchantSuggestion(merchant=merchant, usage_count=count, last_used=used)
        for merchant, count, used in result.all()
    ]


# Transactions


@router.post("/transactions", response_model=TransactionCreated)
async def create_transaction(
    body: TransactionCreate,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> TransactionCreated:
    category = await session.get(models.Category, body.category_id)
    if category is None:
        raise HTTPException(status_code=400, detail="Unknown category")

    tx = models.Transaction(
        user_id=current_user.id,
        type=body.type,
        amount=Decimal(str(body.amount)),
        category_id=body.category_id,
        merchant=body.merchant,
        payment_mode=body.payment_mode,
        note=body.note,
        tx_date=body.tx_date or today_in(settings.timezone),
    )
    session.add(tx)
    await session.commit()
    await session.refresh(tx)
    return TransactionCreated(id=tx.id)


@router.get("/transactions", response_model=list[Transaction])
async def list_transactions(
    start_date: Annotated[str | None, Query(alias="startDate")] = None,
    end_date: Annotated[str | None, Query(alias="endDate")] = None,
    tx_type: Annotated[Literal["expense", "income"] | None, Query(alias="type")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[Transaction]:
    filters = []
    start = parse_iso_date(start_date)
    end = parse_iso_date(end_date)
    if start is not None:
        filters.append(models.Transaction.tx_date >= start)
    if end is not None:
        filters.append(models.Transaction.tx_date <= end)
    if tx_type is not None:
        filters.append(models.Transaction.type == tx_type)

    stmt = (
        select(models.Transaction, models.Category, models.User.display_name)
        .join(models.Category, models.Transaction.category_id == models.Category.id)
        .join(models.User, models.Transaction.user_id == models.User.id)
        .where(*filters)
        .order_by(models.Transaction.tx_date.desc(), models.Transaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(stmt)
    return [
        _transaction_to_schema(tx, category, added_by)
        for tx, category, added_by in result.all()
    ]


@router.get("/transactions/summary", response_model=Summary)
async def transactions_summary(
    start_date: Annotated[str | None, Query(alias="startDate")] = None,
    end_date: Annotated[str | None, Query(alias="endDate")] = None,
    current_user: CurrentUser = Depends(get_current_user),
    aggregator: ExpenseAggregator = Depends(get_aggregator),
) -> Summary:
    return await aggregator.compute_summary(start_date, end_date)


@router.get("/transactions/monthly-summary", response_model=MonthlySummary)
async def transactions_monthly_summary(
    year: Annotated[str | None, Query()] = None,
    month: Annotated[str | None, Query()] = None,
    current_user: CurrentUser = Depends(get_current_user),
    aggregator: ExpenseAggregator = Depends(get_aggregator),
) -> MonthlySummary:
    return await aggregator.compute_monthly_summary(year, month)


@router.get("/transactions/payment-summary", response_model=PaymentSummary)
async def transactions_payment_summary(
    current_user: CurrentUser = Depends(get_current_user),
    aggregator: ExpenseAggregator = Depends(get_aggregator),
) -> PaymentSummary:
    return await aggregator.compute_payment_summary()


@router.delete("/transactions/{transaction_id}")
async def delete_transaction(
    transaction_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> dict:
    # Any household member may delete any transaction.
    tx = await session.get(models.Transaction, transaction_id)
    if tx is None:
        raise NotFoundError("Transaction not found")
    await session.delete(tx)
    await session.commit()
    logger.info("Deleted transaction", transaction_id=transaction_id, user_id=current_user.id)
    return {"success": True}


# Documents


@router.post("/documents", response_model=DocumentCreated)
async def upload_document(
    file: UploadFile = File(...),
    name: Annotated[str | None, Form()] = None,
    category: Annotated[str | None, Form()] = None,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentCreated:
    content = await file.read(store.max_bytes + 1)
    store.validate(content, file.content_type)

    original_name = sanitize_text(file.filename, 255) or "document"
    stored_name = await store.save(content, original_name)
    document = models.Document(
        user_id=current_user.id,
        name=sanitize_text(name, 255) or original_name,
        original_name=original_name,
        category=sanitize_text(category, 64) or "General",
        file_path=stored_name,
        file_size=len(content),
        mime_type=file.content_type,
    )
    session.add(document)
    await session.commit()
    await session.refresh(document)
    return DocumentCreated(id=document.id)


@router.get("/documents", response_model=list[Document])
async def list_documents(
    category: Annotated[str | None, Query()] = None,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[Document]:
    filters = [models.Document.user_id == current_user.id]
    if category:
        filters.append(models.Document.category == category)
    stmt = (
        select(models.Document)
        .where(*filters)
        .order_by(models.Document.uploaded_at.desc(), models.Document.id.desc())
    )
    result = await session.scalars(stmt)
    return [Document.model_validate(doc, from_attributes=True) for doc in result.all()]


@router.get("/documents/categories", response_model=list[DocumentCategory])
async def list_document_categories(
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> list[DocumentCategory]:
    stmt = (
        select(models.Document.category, func.count(models.Document.id))
        .where(models.Document.user_id == current_user.id)
        .group_by(models.Document.category)
    )
    counts = dict((await session.execute(stmt)).all())
    for default in DEFAULT_DOCUMENT_CATEGORIES:
        counts.setdefault(default, 0)
    return [
        DocumentCategory(category=name, count=count)
        for name, count in sorted(counts.items(), key=lambda item: item[0].casefold())
    ]


@router.get("/documents/{document_id}/download")
async def download_document(
    document_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    store: DocumentStore = Depends(get_document_store),
) -> FileResponse:
    document = await _owned_document(session, document_id, current_user)
    return FileResponse(
        _document_file(store, document),
        media_type=document.mime_type,
        filename=document.original_name,
    )


@router.get("/documents/{document_id}/view")
async def view_document(
    document_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    store: DocumentStore = Depends(get_document_store),
) -> FileResponse:
    document = await _owned_document(session, document_id, current_user)
    return FileResponse(
        _document_file(store, document),
        media_type=document.mime_type,
        filename=document.original_name,
        content_disposition_type="inline",
    )


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    store: DocumentStore = Depends(get_document_store),
) -> dict:
    document = await _owned_document(session, document_id, current_user)
    await store.delete(document.file_path)
    await session.delete(document)
    await session.commit()
    logger.info("Deleted document", document_id=document_id, user_id=current_user.id)
    return {"success": True}


async def _owned_document(
    session: AsyncSession, document_id: int, current_user: CurrentUser
) -> models.Document:
    document = await session.scalar(
        select(models.Document).where(
            models.Document.id == document_id, models.Document.user_id == current_user.id
        )
    )
    if document is None:
        raise NotFoundError("Document not found")
    return document


def _document_file(store: DocumentStore, document: models.Document) -> Path:
    path = store.path_for(document.file_path)
    if path is None:
        raise NotFoundError("File not found on disk")
    return path


def _category_to_schema(category: models.Category, usage_count: int) -> Category:
    return Category(
        id=category.id,
        name=category.name,
        type=category.type,
        group=category.category_group,
        icon=category.icon,
        color=category.color,
        is_default=category.is_default,
        usage_count=usage_count,
    )


def _transaction_to_schema(
    tx: models.Transaction, category: models.Category, added_by: str
) -> Transaction:
    return Transaction(
        id=tx.id,
        user_id=tx.user_id,
        type=tx.type,
        amount=float(tx.amount),
        category_id=tx.category_id,
        category_name=category.name,
        category_icon=category.icon,
        category_color=category.color,
        merchant=tx.merchant,
        payment_mode=tx.payment_mode,
        note=tx.note,
        tx_date=tx.tx_date,
        created_at=tx.created_at,
        added_by=added_by,
    )
